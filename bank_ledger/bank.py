"""
Bank Directory Module

Keeps track of which accounts each client holds and forwards queue
operations to accounts. A Bank is constructed explicitly and passed to
whoever needs it; there is no process-wide instance.
"""

from typing import Dict, List, Optional

from .accounts import Account
from .config import BankLedgerConfig, get_config
from .conversion import ConversionStrategy, CurrentRateConversionStrategy
from .currency import AmountLike, Currency
from .customers import BankClient
from .exceptions import AccountNotFoundError
from .logging_config import get_logger, log_action
from .transactions import Transaction


class Bank:
    """
    Directory of accounts by owner.
    """

    def __init__(self, config: Optional[BankLedgerConfig] = None):
        self.config = config or get_config()
        self.logger = get_logger("bank_ledger.bank")
        self._accounts: Dict[BankClient, List[Account]] = {}
        self._next_number = 1

    def create_account(
        self,
        client: BankClient,
        currency: Optional[Currency] = None,
        conversion_strategy: Optional[ConversionStrategy] = None,
        initial_balance: AmountLike = 0
    ) -> Account:
        """
        Open an account for a client and register it.

        Args:
            client: Account owner
            currency: Account currency (config default_currency if omitted)
            conversion_strategy: Strategy for withdrawals (current rates
                from config if omitted)
            initial_balance: Opening balance, not negative

        Returns:
            Created Account
        """
        if currency is None:
            currency = Currency.from_code(self.config.default_currency)
        if conversion_strategy is None:
            conversion_strategy = CurrentRateConversionStrategy.from_config(self.config)

        account = Account(
            holder=client,
            currency=currency,
            conversion_strategy=conversion_strategy,
            initial_balance=initial_balance,
            account_number=self._generate_account_number()
        )
        self._accounts.setdefault(client, []).append(account)

        log_action(
            self.logger, "info", f"Account created: {account.account_number}",
            action="create_account", resource=f"account:{account.id}",
            extra={
                "client_id": client.id,
                "holder": client.display_name,
                "currency": currency.code,
                "initial_balance": str(account.balance)
            }
        )
        return account

    def close_account(self, account: Account) -> None:
        """
        Remove an account from the directory. The account object itself,
        with its balance, queue and subscribers, is left as it is.

        Raises:
            AccountNotFoundError: If the account is not registered
        """
        for client, accounts in self._accounts.items():
            if any(a is account for a in accounts):
                accounts[:] = [a for a in accounts if a is not account]
                if not accounts:
                    del self._accounts[client]
                log_action(
                    self.logger, "info", f"Account closed: {account.account_number}",
                    action="close_account", resource=f"account:{account.id}",
                    extra={"client_id": client.id}
                )
                return
        raise AccountNotFoundError(account.id)

    def get_account(self, account_id: str) -> Optional[Account]:
        """Get account by ID"""
        for accounts in self._accounts.values():
            for account in accounts:
                if account.id == account_id:
                    return account
        return None

    def get_client_accounts(self, client: BankClient) -> List[Account]:
        """Get all open accounts of a client"""
        return list(self._accounts.get(client, []))

    def list_accounts(self) -> List[Account]:
        return [account for accounts in self._accounts.values() for account in accounts]

    def queue_transaction(self, account: Account, transaction: Transaction) -> None:
        account.queue_transaction(transaction)

    def execute_queued_transactions(self, account: Account, atomic: bool = False) -> None:
        try:
            account.execute_queued_transactions(atomic=atomic)
        except Exception as e:
            log_action(
                self.logger, "error",
                f"Queued transactions failed on account {account.account_number}: {e}",
                action="execute_queued_transactions", resource=f"account:{account.id}",
                extra={"error": type(e).__name__, "atomic": atomic}
            )
            raise

    def rollback_queued_transactions(self, account: Account) -> None:
        account.rollback_queued_transactions()

    def _generate_account_number(self) -> str:
        """Sequential account number unique within this bank"""
        number = f"{self.config.account_number_prefix}{self._next_number:08d}"
        self._next_number += 1
        return number
