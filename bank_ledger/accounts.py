"""
Account Module

A bank account holds a non-negative balance in one currency, converts
withdrawals through a swappable conversion strategy, keeps a queue of
pending transactions and notifies attached subscribers whenever its
balance changes.
"""

from decimal import Decimal
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple
import uuid

from .currency import AmountLike, Currency, Money, quantize, to_decimal
from .config import get_config
from .conversion import ConversionStrategy
from .customers import BankClient
from .exceptions import InsufficientFundsError, InvalidAmountError
from .logging_config import get_logger, log_action

if TYPE_CHECKING:
    from .notifications import BalanceSubscriber
    from .transactions import Transaction


logger = get_logger("bank_ledger.accounts")


class Account:
    """
    Bank account with queued, reversible transactions.

    The balance only changes through deposit(), withdraw() and the
    transactions executed against this account, and never goes below zero.
    """

    def __init__(
        self,
        holder: BankClient,
        currency: Currency,
        conversion_strategy: ConversionStrategy,
        initial_balance: AmountLike = 0,
        account_number: Optional[str] = None,
        account_id: Optional[str] = None
    ):
        self.id = account_id or str(uuid.uuid4())
        self.account_number = account_number or self._generate_account_number()
        self.currency = currency
        self.created_at = datetime.now(timezone.utc)
        self._holder = holder
        self._conversion_strategy = self._check_strategy(conversion_strategy)

        try:
            balance = quantize(to_decimal(initial_balance), currency)
        except ValueError as e:
            raise InvalidAmountError(initial_balance, "Invalid initial balance") from e
        if balance < 0:
            raise InvalidAmountError(initial_balance, "Initial balance cannot be negative")
        self._balance = balance

        self._transactions_queue: List['Transaction'] = []
        # Keyed by subscriber identity; dict order is attachment order
        self._subscribers: Dict[int, 'BalanceSubscriber'] = {}

    def __repr__(self) -> str:
        return (
            f"Account(number={self.account_number!r}, "
            f"balance={self.balance_money.to_string()!r})"
        )

    @property
    def holder(self) -> BankClient:
        return self._holder

    @property
    def balance(self) -> Decimal:
        return self._balance

    @property
    def balance_money(self) -> Money:
        """Current balance as Money in account currency"""
        return Money(self._balance, self.currency)

    @property
    def conversion_strategy(self) -> ConversionStrategy:
        return self._conversion_strategy

    @conversion_strategy.setter
    def conversion_strategy(self, strategy: ConversionStrategy) -> None:
        """Swap the strategy; only later withdrawals are affected"""
        self._conversion_strategy = self._check_strategy(strategy)
        logger.debug(f"Account {self.account_number} now converts with {strategy!r}")

    @property
    def pending_transactions(self) -> Tuple['Transaction', ...]:
        """Queued transactions, oldest first"""
        return tuple(self._transactions_queue)

    @property
    def subscribers(self) -> Tuple['BalanceSubscriber', ...]:
        return tuple(self._subscribers.values())

    # Balance mutation

    def deposit(self, amount: AmountLike, notify: bool = True) -> Decimal:
        """
        Credit the account.

        Args:
            amount: Positive amount in account currency
            notify: Notify subscribers after the balance changed

        Returns:
            The credited amount, rounded to account currency precision

        Raises:
            InvalidAmountError: If amount is not positive
        """
        credited = self._validate_amount(amount)
        self._balance += credited

        log_action(
            logger, "info", f"Deposit to account {self.account_number}",
            action="deposit", resource=f"account:{self.id}",
            extra={
                "amount": str(credited),
                "currency": self.currency.code,
                "balance": str(self._balance)
            }
        )

        if notify:
            self.notify()
        return credited

    def withdraw(
        self,
        amount: AmountLike,
        currency: Optional[Currency] = None,
        notify: bool = True
    ) -> Decimal:
        """
        Debit the account by ``amount`` of ``currency``.

        The amount is converted through the active conversion strategy, even
        when ``currency`` is the account currency.

        Args:
            amount: Positive amount expressed in ``currency``
            currency: Currency of the amount (account currency if omitted)
            notify: Notify subscribers after the balance changed

        Returns:
            The amount debited, in account currency

        Raises:
            InvalidAmountError: If amount is not positive
            RateUnavailableError: If the strategy has no rate for ``currency``
            InsufficientFundsError: If the converted amount exceeds the balance
        """
        requested = self._validate_amount(amount, round_to_account=False)
        currency = currency or self.currency
        if quantize(requested, currency) <= 0:
            raise InvalidAmountError(amount, f"Amount rounds to zero in {currency.code}")

        converted = self._conversion_strategy.convert(requested, currency)
        debited = quantize(to_decimal(converted), self.currency)
        if debited < 0:
            raise InvalidAmountError(debited, "Conversion produced a negative amount")

        if debited > self._balance:
            log_action(
                logger, "warning", f"Withdrawal rejected for account {self.account_number}",
                action="withdraw_rejected", resource=f"account:{self.id}",
                extra={
                    "requested": str(requested),
                    "requested_currency": currency.code,
                    "converted": str(debited),
                    "balance": str(self._balance)
                }
            )
            raise InsufficientFundsError(self.id, debited, self._balance)

        self._balance -= debited

        log_action(
            logger, "info", f"Withdrawal from account {self.account_number}",
            action="withdraw", resource=f"account:{self.id}",
            extra={
                "requested": str(requested),
                "requested_currency": currency.code,
                "debited": str(debited),
                "currency": self.currency.code,
                "balance": str(self._balance)
            }
        )

        if notify and debited > 0:
            self.notify()
        return debited

    # Subscribers

    def attach(self, subscriber: 'BalanceSubscriber') -> None:
        """Attach a subscriber; attaching it again is a no-op"""
        if not callable(getattr(subscriber, "on_balance_changed", None)):
            raise TypeError(f"{subscriber!r} does not implement on_balance_changed()")
        self._subscribers.setdefault(id(subscriber), subscriber)

    def detach(self, subscriber: 'BalanceSubscriber') -> None:
        """Detach a subscriber; detaching an unknown one is a no-op"""
        self._subscribers.pop(id(subscriber), None)

    def notify(self) -> None:
        """
        Deliver the current account state to every subscriber, in attachment
        order. A failing subscriber aborts the round and its error propagates.
        """
        for subscriber in list(self._subscribers.values()):
            subscriber.on_balance_changed(self)

    # Transaction queue

    def queue_transaction(self, transaction: 'Transaction') -> None:
        """Append a transaction to the queue without executing it"""
        if transaction.account is not self:
            raise ValueError(
                f"Transaction {transaction.id} is bound to another account"
            )
        self._transactions_queue.append(transaction)
        logger.debug(f"Queued transaction {transaction.id} on account {self.account_number}")

    def execute_queued_transactions(self, atomic: bool = False) -> None:
        """
        Execute every queued transaction in FIFO order, then clear the queue.

        If a transaction fails the error propagates at once: later
        transactions are not attempted, earlier ones stay executed and the
        queue is left untouched. With ``atomic=True`` the transactions this
        batch executed are rolled back (newest first) and dropped from the
        queue before the error is re-raised.
        """
        batch = list(self._transactions_queue)
        was_pending = {id(tx) for tx in batch if tx.is_pending}

        try:
            for transaction in batch:
                transaction.execute()
        except Exception:
            if atomic:
                applied = [
                    tx for tx in batch
                    if id(tx) in was_pending and tx.is_executed
                ]
                self._compensate(applied)
            raise

        self._transactions_queue.clear()
        log_action(
            logger, "info", f"Executed {len(batch)} queued transactions",
            action="execute_queued_transactions", resource=f"account:{self.id}",
            extra={"count": len(batch), "balance": str(self._balance)}
        )

    def rollback_queued_transactions(self) -> None:
        """
        Pop queued transactions from the tail and roll each back. Stops at
        the first failure; the failing transaction has already been popped
        and the ones before it stay queued.
        """
        count = 0
        while self._transactions_queue:
            transaction = self._transactions_queue.pop()
            transaction.rollback()
            count += 1

        log_action(
            logger, "info", f"Rolled back {count} queued transactions",
            action="rollback_queued_transactions", resource=f"account:{self.id}",
            extra={"count": count, "balance": str(self._balance)}
        )

    def _compensate(self, applied: List['Transaction']) -> None:
        """
        Roll back transactions applied by a failed batch, newest first.

        Subscribers are notified once, after every transaction has been
        rolled back. A subscriber failing in that round is logged so the
        batch error stays the one that propagates.
        """
        log_action(
            logger, "warning",
            f"Batch failed on account {self.account_number}, "
            f"rolling back {len(applied)} transactions",
            action="compensate_batch", resource=f"account:{self.id}",
            extra={"transaction_ids": [tx.id for tx in applied]}
        )
        try:
            for transaction in reversed(applied):
                self._transactions_queue.remove(transaction)
                transaction.rollback(notify=False)
        finally:
            if applied:
                try:
                    self.notify()
                except Exception:
                    logger.exception(
                        f"Subscriber failed after compensating batch on account "
                        f"{self.account_number}"
                    )

    # Helpers

    def _validate_amount(self, amount: AmountLike, round_to_account: bool = True) -> Decimal:
        try:
            value = to_decimal(amount)
        except ValueError as e:
            raise InvalidAmountError(amount, "Invalid amount") from e
        if round_to_account:
            value = quantize(value, self.currency)
        if value <= 0:
            raise InvalidAmountError(amount)
        return value

    @staticmethod
    def _check_strategy(strategy: ConversionStrategy) -> ConversionStrategy:
        if not callable(getattr(strategy, "convert", None)):
            raise TypeError(f"{strategy!r} is not a conversion strategy")
        return strategy

    @staticmethod
    def _generate_account_number() -> str:
        prefix = get_config().account_number_prefix
        return f"{prefix}{uuid.uuid4().hex[:10].upper()}"
