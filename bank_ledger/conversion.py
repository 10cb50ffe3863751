"""
Currency Conversion Strategies

A conversion strategy turns an amount expressed in some currency into the
amount to debit from an account. Strategies are pure, hold no per-account
state and may be shared between accounts.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Dict, Mapping, Optional

from .currency import AmountLike, Currency, to_decimal
from .exceptions import RateUnavailableError


class ConversionStrategy(ABC):
    """Converts an amount in a source currency into account currency"""

    @abstractmethod
    def convert(self, amount: Decimal, currency: Currency) -> Decimal:
        """Return ``amount`` of ``currency`` expressed in account currency"""
        pass


class CurrentRateConversionStrategy(ConversionStrategy):
    """
    Converts using a per-currency rate table.

    A currency missing from the table, or configured with a rate of zero,
    has no usable rate and raises RateUnavailableError.
    """

    def __init__(self, exchange_rates: Mapping[Currency, AmountLike]):
        self._rates: Dict[Currency, Decimal] = {
            currency: to_decimal(rate) for currency, rate in exchange_rates.items()
        }

    @classmethod
    def from_config(cls, ledger_config=None) -> 'CurrentRateConversionStrategy':
        """Build the strategy from BankLedgerConfig.exchange_rates"""
        if ledger_config is None:
            from .config import get_config
            ledger_config = get_config()
        rates = {
            Currency.from_code(code): rate
            for code, rate in ledger_config.exchange_rates.items()
        }
        return cls(rates)

    def get_rate(self, currency: Currency) -> Optional[Decimal]:
        """Get the configured rate for a currency, if any"""
        return self._rates.get(currency)

    def get_all_rates(self) -> Dict[Currency, Decimal]:
        return self._rates.copy()

    def convert(self, amount: Decimal, currency: Currency) -> Decimal:
        rate = self._rates.get(currency)
        # A zero rate counts as unavailable
        if not rate:
            raise RateUnavailableError(currency)
        return to_decimal(amount) * rate

    def __repr__(self) -> str:
        rates = ", ".join(f"{c.code}={r}" for c, r in self._rates.items())
        return f"CurrentRateConversionStrategy({rates})"


class FixedRateConversionStrategy(ConversionStrategy):
    """Multiplies every amount by one constant, whatever its currency"""

    def __init__(self, fixed_rate: AmountLike):
        self.fixed_rate = to_decimal(fixed_rate)

    @classmethod
    def from_config(cls, ledger_config=None) -> 'FixedRateConversionStrategy':
        """Build the strategy from BankLedgerConfig.fixed_conversion_rate"""
        if ledger_config is None:
            from .config import get_config
            ledger_config = get_config()
        return cls(ledger_config.fixed_conversion_rate)

    def convert(self, amount: Decimal, currency: Currency) -> Decimal:
        return to_decimal(amount) * self.fixed_rate

    def __repr__(self) -> str:
        return f"FixedRateConversionStrategy({self.fixed_rate})"
