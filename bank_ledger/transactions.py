"""
Transaction Module

A transaction is a single withdrawal bound to one account. It records the
account balance right before and right after it executes, so rolling it
back credits exactly what was debited, whatever conversion was applied.

States: PENDING -> EXECUTED -> ROLLED_BACK. Each transition happens at most
once.
"""

from decimal import Decimal
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional
import uuid

from .currency import AmountLike, Currency, Money
from .exceptions import (
    AlreadyExecutedError, AlreadyRolledBackError, InvalidAmountError,
    NotYetExecutedError
)
from .logging_config import get_logger, log_action

if TYPE_CHECKING:
    from .accounts import Account


logger = get_logger("bank_ledger.transactions")


class TransactionState(Enum):
    """States of a transaction"""
    PENDING = "pending"          # Created, not yet executed
    EXECUTED = "executed"        # Withdrawal applied
    ROLLED_BACK = "rolled_back"  # Withdrawal undone


class Transaction:
    """Withdrawal of ``amount`` in ``currency`` from ``account``"""

    def __init__(
        self,
        account: 'Account',
        amount: AmountLike,
        currency: Optional[Currency] = None,
        description: str = ""
    ):
        currency = currency or account.currency
        try:
            money = Money(amount, currency)
        except ValueError as e:
            raise InvalidAmountError(amount, "Invalid transaction amount") from e
        if not money.is_positive():
            raise InvalidAmountError(amount, "Transaction amount must be positive")

        self.id = str(uuid.uuid4())
        self.account = account
        self.amount = money
        self.description = description
        self.state = TransactionState.PENDING
        self.created_at = datetime.now(timezone.utc)
        self.executed_at: Optional[datetime] = None
        self.rolled_back_at: Optional[datetime] = None
        self.balance_before: Optional[Decimal] = None
        self.balance_after: Optional[Decimal] = None

    def __repr__(self) -> str:
        return (
            f"Transaction(id={self.id[:8]}, amount={self.amount.to_string()!r}, "
            f"state={self.state.value})"
        )

    @property
    def currency(self) -> Currency:
        return self.amount.currency

    @property
    def is_pending(self) -> bool:
        return self.state == TransactionState.PENDING

    @property
    def is_executed(self) -> bool:
        return self.state == TransactionState.EXECUTED

    @property
    def is_rolled_back(self) -> bool:
        return self.state == TransactionState.ROLLED_BACK

    @property
    def amount_debited(self) -> Optional[Decimal]:
        """Amount taken from the account in account currency, once executed"""
        if self.balance_before is None or self.balance_after is None:
            return None
        return self.balance_before - self.balance_after

    def execute(self) -> None:
        """
        Withdraw the amount from the bound account.

        Raises:
            AlreadyExecutedError: If the transaction is not PENDING
            InsufficientFundsError, RateUnavailableError: From the withdrawal;
                the transaction stays PENDING
        """
        if not self.is_pending:
            raise AlreadyExecutedError(self.id)

        balance_before = self.account.balance
        self.account.withdraw(self.amount.amount, self.amount.currency, notify=False)

        self.balance_before = balance_before
        self.balance_after = self.account.balance
        self.state = TransactionState.EXECUTED
        self.executed_at = datetime.now(timezone.utc)

        log_action(
            logger, "info", f"Transaction executed: {self.amount.to_string()}",
            action="execute_transaction", resource=f"transaction:{self.id}",
            extra=self.to_dict()
        )

        if self.amount_debited > 0:
            self.account.notify()

    def rollback(self, notify: bool = True) -> None:
        """
        Credit back exactly what execute() debited.

        Args:
            notify: Notify the account subscribers once the credit is applied

        Raises:
            NotYetExecutedError: If the transaction is still PENDING
            AlreadyRolledBackError: If the transaction was already rolled back
        """
        if self.is_pending:
            raise NotYetExecutedError(self.id)
        if self.is_rolled_back:
            raise AlreadyRolledBackError(self.id)

        delta = self.amount_debited
        if delta > 0:
            self.account.deposit(delta, notify=False)

        self.state = TransactionState.ROLLED_BACK
        self.rolled_back_at = datetime.now(timezone.utc)

        log_action(
            logger, "info", f"Transaction rolled back: {self.amount.to_string()}",
            action="rollback_transaction", resource=f"transaction:{self.id}",
            extra=self.to_dict()
        )

        if notify and delta > 0:
            self.account.notify()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging and inspection"""
        return {
            "id": self.id,
            "account_id": self.account.id,
            "amount": str(self.amount.amount),
            "currency": self.amount.currency.code,
            "description": self.description,
            "state": self.state.value,
            "balance_before": str(self.balance_before) if self.balance_before is not None else None,
            "balance_after": str(self.balance_after) if self.balance_after is not None else None,
            "created_at": self.created_at.isoformat(),
            "executed_at": self.executed_at.isoformat() if self.executed_at else None,
            "rolled_back_at": self.rolled_back_at.isoformat() if self.rolled_back_at else None
        }
