"""
Ledger Exceptions

Typed errors raised by accounts, conversion strategies, transactions and the
bank directory. Every error has a machine-readable ``code`` and derives from
ValueError, so callers may catch either the precise type or ValueError.
"""

from decimal import Decimal
from typing import Optional


class BankLedgerError(ValueError):
    """Base class for all ledger errors"""
    code: str = "BANK_LEDGER_ERROR"


class InvalidAmountError(BankLedgerError):
    """Amount is not a positive monetary value"""
    code = "INVALID_AMOUNT"

    def __init__(self, amount, reason: str = "Amount must be positive"):
        self.amount = amount
        super().__init__(f"{reason}: {amount}")


class InsufficientFundsError(BankLedgerError):
    """Withdrawal would drive the balance below zero"""
    code = "INSUFFICIENT_FUNDS"

    def __init__(self, account_id: str, requested: Decimal, available: Decimal):
        self.account_id = account_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient funds in account {account_id}: "
            f"requested {requested}, available {available}"
        )


class RateUnavailableError(BankLedgerError):
    """Conversion strategy has no usable rate for a currency"""
    code = "RATE_UNAVAILABLE"

    def __init__(self, currency):
        self.currency = currency
        code = getattr(currency, "code", currency)
        super().__init__(f"Exchange rate not available for currency {code}")


class AccountNotFoundError(BankLedgerError):
    """Account is not registered in the bank directory"""
    code = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: Optional[str]):
        self.account_id = account_id
        super().__init__(f"Account {account_id} not found in the bank")


class TransactionStateError(BankLedgerError):
    """Transaction state machine violation"""
    code = "TRANSACTION_STATE"

    message = "Invalid transaction state"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"{self.message} (transaction {transaction_id})")


class AlreadyExecutedError(TransactionStateError):
    code = "ALREADY_EXECUTED"
    message = "Transaction has already been executed"


class NotYetExecutedError(TransactionStateError):
    code = "NOT_YET_EXECUTED"
    message = "Cannot rollback a transaction that has not been executed"


class AlreadyRolledBackError(TransactionStateError):
    code = "ALREADY_ROLLED_BACK"
    message = "Transaction has already been rolled back"
