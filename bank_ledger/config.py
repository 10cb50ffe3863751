"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Dict


class BankLedgerConfig(BaseSettings):
    """Bank ledger configuration"""

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Currency configuration
    default_currency: str = "USD"
    exchange_rates: Dict[str, str] = {
        "USD": "1.1",
        "EUR": "0.9",
        "UAH": "38",
    }
    fixed_conversion_rate: str = "0.5"

    # Account numbering
    account_number_prefix: str = "ACC"

    # Webhook notifications
    webhook_timeout: float = 5.0

    class Config:
        env_prefix = "BANK_LEDGER_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = BankLedgerConfig()


def get_config() -> BankLedgerConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> BankLedgerConfig:
    """Reload configuration from environment"""
    global config
    config = BankLedgerConfig()
    return config
