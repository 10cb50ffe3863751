"""
Test suite for accounts module

Tests balance mutation, the non-negative balance rule, conversion strategy
swaps, subscriber management and the transaction queue.
"""

import pytest
from decimal import Decimal
from unittest.mock import Mock

from bank_ledger import config as config_module
from bank_ledger.accounts import Account
from bank_ledger.config import get_config, reload_config
from bank_ledger.conversion import CurrentRateConversionStrategy, FixedRateConversionStrategy
from bank_ledger.currency import Currency, Money
from bank_ledger.customers import BankClient
from bank_ledger.exceptions import (
    InsufficientFundsError, InvalidAmountError, RateUnavailableError,
    NotYetExecutedError, AlreadyExecutedError
)
from bank_ledger.transactions import Transaction


@pytest.fixture
def client():
    return BankClient(first_name="John", last_name="Doe")


@pytest.fixture
def unit_rates():
    return CurrentRateConversionStrategy({
        Currency.USD: Decimal('1.0'),
        Currency.EUR: Decimal('1.1'),
    })


@pytest.fixture
def account(client, unit_rates):
    return Account(client, Currency.USD, unit_rates, initial_balance=Decimal('100'))


class TestAccountCreation:
    """Test account construction"""

    def test_defaults(self, client, unit_rates):
        """Test a new account starts empty with generated identifiers"""
        account = Account(client, Currency.EUR, unit_rates)

        assert account.balance == Decimal('0.00')
        assert account.currency == Currency.EUR
        assert account.holder is client
        assert account.conversion_strategy is unit_rates
        assert account.account_number.startswith("ACC")
        assert account.id
        assert account.pending_transactions == ()
        assert account.subscribers == ()

    def test_initial_balance_is_rounded(self, client, unit_rates):
        """Test the opening balance is rounded to currency precision"""
        account = Account(client, Currency.USD, unit_rates, initial_balance="10.005")
        assert account.balance == Decimal('10.01')
        assert account.balance_money == Money(Decimal('10.01'), Currency.USD)

    def test_negative_initial_balance_rejected(self, client, unit_rates):
        """Test a negative opening balance is rejected"""
        with pytest.raises(InvalidAmountError, match="cannot be negative"):
            Account(client, Currency.USD, unit_rates, initial_balance=-1)

    def test_unique_ids(self, client, unit_rates):
        """Test every account gets its own id and number"""
        a = Account(client, Currency.USD, unit_rates)
        b = Account(client, Currency.USD, unit_rates)
        assert a.id != b.id
        assert a.account_number != b.account_number

    def test_account_number_uses_configured_prefix(self, client, unit_rates, monkeypatch):
        """Test generated account numbers take the configured prefix"""
        original = get_config()
        monkeypatch.setenv("BANK_LEDGER_ACCOUNT_NUMBER_PREFIX", "SAV")
        try:
            reload_config()
            account = Account(client, Currency.USD, unit_rates)
        finally:
            config_module.config = original

        assert account.account_number.startswith("SAV")

    def test_rejects_non_strategy(self, client):
        """Test construction requires a conversion strategy"""
        with pytest.raises(TypeError):
            Account(client, Currency.USD, object())


class TestDeposit:
    """Test deposits"""

    def test_deposit_increases_balance(self, account):
        """Test depositing funds"""
        credited = account.deposit(Decimal('50.25'))
        assert credited == Decimal('50.25')
        assert account.balance == Decimal('150.25')

    @pytest.mark.parametrize("amount", [0, -5, "0.001", "abc", 1.5])
    def test_invalid_deposit_rejected(self, account, amount):
        """Test invalid deposit amounts leave the balance untouched"""
        with pytest.raises(InvalidAmountError):
            account.deposit(amount)
        assert account.balance == Decimal('100.00')

    def test_deposit_notifies(self, account):
        """Test a deposit notifies subscribers"""
        subscriber = Mock()
        account.attach(subscriber)
        account.deposit(10)
        subscriber.on_balance_changed.assert_called_once_with(account)

    def test_deposit_without_notification(self, account):
        """Test a silent deposit"""
        subscriber = Mock()
        account.attach(subscriber)
        account.deposit(10, notify=False)
        subscriber.on_balance_changed.assert_not_called()


class TestWithdraw:
    """Test withdrawals and the non-negative balance rule"""

    def test_withdraw_in_account_currency(self, account):
        """Test withdrawing in the account currency"""
        debited = account.withdraw(Decimal('40'))
        assert debited == Decimal('40.00')
        assert account.balance == Decimal('60.00')

    def test_withdraw_converts_foreign_amount(self, account):
        """Test withdrawing a foreign amount converts it first"""
        debited = account.withdraw(Decimal('10'), Currency.EUR)
        assert debited == Decimal('11.00')
        assert account.balance == Decimal('89.00')

    def test_conversion_applies_to_own_currency(self, client):
        """Test the strategy converts even the account's own currency"""
        strategy = CurrentRateConversionStrategy({Currency.USD: Decimal('1.1')})
        account = Account(client, Currency.USD, strategy, initial_balance=1000)

        account.withdraw(500, Currency.USD)
        assert account.balance == Decimal('450.00')

    def test_insufficient_funds(self, account):
        """Test overdrawing is rejected with the amounts involved"""
        subscriber = Mock()
        account.attach(subscriber)

        with pytest.raises(InsufficientFundsError) as exc_info:
            account.withdraw(Decimal('200'), Currency.USD)

        assert account.balance == Decimal('100.00')
        assert exc_info.value.requested == Decimal('200.00')
        assert exc_info.value.available == Decimal('100.00')
        assert exc_info.value.code == "INSUFFICIENT_FUNDS"
        subscriber.on_balance_changed.assert_not_called()

    def test_withdraw_entire_balance(self, account):
        """Test the balance can be drawn down to zero"""
        account.withdraw(100)
        assert account.balance == Decimal('0.00')

    def test_rate_unavailable_leaves_balance(self, account):
        """Test a missing rate leaves the balance untouched"""
        with pytest.raises(RateUnavailableError):
            account.withdraw(1, Currency.UAH)
        assert account.balance == Decimal('100.00')

    @pytest.mark.parametrize("amount", [0, -1, "nan"])
    def test_invalid_withdrawal_rejected(self, account, amount):
        """Test invalid withdrawal amounts"""
        with pytest.raises(InvalidAmountError):
            account.withdraw(amount)
        assert account.balance == Decimal('100.00')

    def test_balance_never_negative(self, account):
        """Test a mixed run of operations never goes below zero"""
        operations = [
            ("withdraw", 30), ("withdraw", 80), ("deposit", 5),
            ("withdraw", 75), ("withdraw", 1), ("deposit", 20), ("withdraw", 21),
        ]
        for op, amount in operations:
            try:
                getattr(account, op)(amount)
            except InsufficientFundsError:
                pass
            assert account.balance >= 0
        assert account.balance == Decimal('20.00')

    def test_sub_cent_withdrawal_rejected(self, account):
        """Test an amount that rounds to zero is rejected without notifying"""
        subscriber = Mock()
        account.attach(subscriber)

        with pytest.raises(InvalidAmountError, match="rounds to zero"):
            account.withdraw("0.004")
        with pytest.raises(InvalidAmountError):
            Transaction(account, "0.004")

        assert account.balance == Decimal('100.00')
        subscriber.on_balance_changed.assert_not_called()

    def test_zero_conversion_does_not_notify(self, account):
        """Test a withdrawal converted to zero leaves subscribers alone"""
        account.conversion_strategy = FixedRateConversionStrategy(0)
        subscriber = Mock()
        account.attach(subscriber)

        assert account.withdraw(10) == Decimal('0.00')
        assert account.balance == Decimal('100.00')
        subscriber.on_balance_changed.assert_not_called()

    def test_strategy_swap_affects_next_withdrawal(self, account):
        """Test swapping the conversion strategy"""
        account.conversion_strategy = FixedRateConversionStrategy(Decimal('0.5'))
        account.withdraw(100, Currency.UAH)
        assert account.balance == Decimal('50.00')

    def test_negative_conversion_rejected(self, account):
        """Test a strategy producing a negative amount is rejected"""
        account.conversion_strategy = FixedRateConversionStrategy(-1)
        with pytest.raises(InvalidAmountError):
            account.withdraw(10)
        assert account.balance == Decimal('100.00')


class TestSubscribers:
    """Test attach, detach and notify"""

    def test_attach_is_idempotent(self, account):
        """Test attaching twice notifies once"""
        subscriber = Mock()
        account.attach(subscriber)
        account.attach(subscriber)

        account.deposit(1)

        assert account.subscribers == (subscriber,)
        subscriber.on_balance_changed.assert_called_once()

    def test_detach_unknown_is_noop(self, account):
        """Test detaching an unknown subscriber"""
        account.detach(Mock())
        assert account.subscribers == ()

    def test_detach_stops_notifications(self, account):
        """Test a detached subscriber is not notified"""
        subscriber = Mock()
        account.attach(subscriber)
        account.detach(subscriber)
        account.deposit(1)
        subscriber.on_balance_changed.assert_not_called()

    def test_notification_order(self, account):
        """Test subscribers are notified in attachment order"""
        calls = []
        first = Mock()
        first.on_balance_changed.side_effect = lambda a: calls.append("first")
        second = Mock()
        second.on_balance_changed.side_effect = lambda a: calls.append("second")

        account.attach(first)
        account.attach(second)
        account.attach(first)
        account.notify()

        assert calls == ["first", "second"]

    def test_failing_subscriber_aborts_round(self, account):
        """Test a failing subscriber stops the notification round"""
        failing = Mock()
        failing.on_balance_changed.side_effect = RuntimeError("channel down")
        later = Mock()
        account.attach(failing)
        account.attach(later)

        with pytest.raises(RuntimeError, match="channel down"):
            account.deposit(10)

        later.on_balance_changed.assert_not_called()

    def test_attach_rejects_non_subscriber(self, account):
        """Test attach requires on_balance_changed"""
        with pytest.raises(TypeError):
            account.attach(object())


class TestTransactionQueue:
    """Test FIFO execution and LIFO rollback of queued transactions"""

    def test_queue_does_not_execute(self, account):
        """Test queueing a transaction does not execute it"""
        tx = Transaction(account, 10)
        account.queue_transaction(tx)

        assert account.pending_transactions == (tx,)
        assert tx.is_pending
        assert account.balance == Decimal('100.00')

    def test_queue_rejects_foreign_transaction(self, account, client, unit_rates):
        """Test a transaction bound to another account cannot be queued"""
        other = Account(client, Currency.USD, unit_rates, initial_balance=10)
        with pytest.raises(ValueError, match="another account"):
            account.queue_transaction(Transaction(other, 1))

    def test_execute_fifo_then_clear(self, account):
        """Test queued transactions run oldest first and the queue empties"""
        order = []
        subscriber = Mock()
        subscriber.on_balance_changed.side_effect = lambda a: order.append(a.balance)
        account.attach(subscriber)

        txs = [Transaction(account, amount) for amount in (10, 20, 30)]
        for tx in txs:
            account.queue_transaction(tx)

        account.execute_queued_transactions()

        assert order == [Decimal('90.00'), Decimal('70.00'), Decimal('40.00')]
        assert all(tx.is_executed for tx in txs)
        assert account.pending_transactions == ()

    def test_mid_batch_failure_keeps_earlier_and_queue(self, account):
        """Test a failing batch keeps earlier executions and the queue"""
        t1 = Transaction(account, 30)
        t2 = Transaction(account, 500)
        t3 = Transaction(account, 10)
        for tx in (t1, t2, t3):
            account.queue_transaction(tx)

        with pytest.raises(InsufficientFundsError):
            account.execute_queued_transactions()

        assert t1.is_executed
        assert t2.is_pending
        assert t3.is_pending
        assert account.balance == Decimal('70.00')
        assert account.pending_transactions == (t1, t2, t3)

    def test_atomic_batch_rolls_back_on_failure(self, account):
        """Test an atomic batch undoes what it applied"""
        t1 = Transaction(account, 30)
        t2 = Transaction(account, 40)
        t3 = Transaction(account, 500)
        for tx in (t1, t2, t3):
            account.queue_transaction(tx)

        with pytest.raises(InsufficientFundsError):
            account.execute_queued_transactions(atomic=True)

        assert account.balance == Decimal('100.00')
        assert t1.is_rolled_back
        assert t2.is_rolled_back
        assert t3.is_pending
        assert account.pending_transactions == (t3,)

    def test_atomic_batch_survives_failing_subscriber(self, client):
        """Test atomic compensation completes when a subscriber starts failing mid-batch"""
        account = Account(client, Currency.USD, FixedRateConversionStrategy(1), initial_balance=100)
        subscriber = Mock()
        subscriber.on_balance_changed.side_effect = [
            None, RuntimeError("subscriber down"), RuntimeError("still down")
        ]
        account.attach(subscriber)

        t1 = Transaction(account, 10)
        t2 = Transaction(account, 20)
        t3 = Transaction(account, 30)
        for tx in (t1, t2, t3):
            account.queue_transaction(tx)

        with pytest.raises(RuntimeError, match="subscriber down"):
            account.execute_queued_transactions(atomic=True)

        assert account.balance == Decimal('100.00')
        assert t1.is_rolled_back
        assert t2.is_rolled_back
        assert t3.is_pending
        assert account.pending_transactions == (t3,)
        assert subscriber.on_balance_changed.call_count == 3

    def test_atomic_compensation_notifies_once(self, account):
        """Test subscribers hear about a compensated batch once"""
        t1 = Transaction(account, 30)
        t2 = Transaction(account, 40)
        t3 = Transaction(account, 500)
        for tx in (t1, t2, t3):
            account.queue_transaction(tx)

        balances = []
        subscriber = Mock()
        subscriber.on_balance_changed.side_effect = lambda a: balances.append(a.balance)
        account.attach(subscriber)

        with pytest.raises(InsufficientFundsError):
            account.execute_queued_transactions(atomic=True)

        assert balances == [Decimal('70.00'), Decimal('30.00'), Decimal('100.00')]

    def test_atomic_batch_success_clears_queue(self, account):
        """Test a successful atomic batch"""
        account.queue_transaction(Transaction(account, 30))
        account.execute_queued_transactions(atomic=True)
        assert account.balance == Decimal('70.00')
        assert account.pending_transactions == ()

    def test_rollback_lifo(self, account):
        """Test queued transactions roll back newest first"""
        txs = [Transaction(account, amount) for amount in (10, 20, 30)]
        for tx in txs:
            tx.execute()
            account.queue_transaction(tx)

        order = []
        subscriber = Mock()
        subscriber.on_balance_changed.side_effect = lambda a: order.append(a.balance)
        account.attach(subscriber)

        account.rollback_queued_transactions()

        assert order == [Decimal('70.00'), Decimal('90.00'), Decimal('100.00')]
        assert all(tx.is_rolled_back for tx in txs)
        assert account.pending_transactions == ()

    def test_rollback_stops_on_first_failure(self, account):
        """Test rollback stops at the first failing transaction"""
        executed = Transaction(account, 10)
        executed.execute()
        pending = Transaction(account, 20)
        account.queue_transaction(executed)
        account.queue_transaction(pending)

        with pytest.raises(NotYetExecutedError):
            account.rollback_queued_transactions()

        assert executed.is_executed
        assert account.pending_transactions == (executed,)
        assert account.balance == Decimal('90.00')

    def test_rollback_after_successful_batch_is_noop(self, account):
        """Test rollback after a cleared queue does nothing"""
        account.queue_transaction(Transaction(account, 10))
        account.execute_queued_transactions()
        account.rollback_queued_transactions()
        assert account.balance == Decimal('90.00')

    def test_reexecuting_queue_with_executed_transaction_fails(self, account):
        """Test an executed transaction cannot run again from the queue"""
        tx = Transaction(account, 10)
        tx.execute()
        account.queue_transaction(tx)

        with pytest.raises(AlreadyExecutedError):
            account.execute_queued_transactions()
        assert account.balance == Decimal('90.00')
