"""
Configuration management for Ledgerfolio.
Uses pydantic-settings for type-safe, centralized configuration.
"""

from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_STABLE_VALUE_CURRENCIES = [
    'USDT', 'USDC', 'DAI', 'BUSD',
    'TUSD', 'USDP', 'GUSD', 'FRAX',
]


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Uses pydantic-settings for validation and type safety.
    """

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore'  # Allow extra fields in .env for flexibility
    )

    # Database
    database_url: str = "sqlite:///ledgerfolio.db"
    db_echo: bool = False

    # Ledger
    default_owner: str = "default_user"
    stable_value_currencies: List[str] = list(DEFAULT_STABLE_VALUE_CURRENCIES)
    stable_value_price: float = 1.0  # Stable-value holdings are pegged 1:1
    default_cost_basis_method: str = "fifo"

    # Market data
    quote_currency: str = "USD"
    price_fetch_workers: int = 5

    # Logging (used by the maintenance script)
    log_level: str = "INFO"

    @property
    def stable_value_set(self) -> frozenset:
        """Normalized set of recognized stable-value symbols."""
        return frozenset(s.strip().upper() for s in self.stable_value_currencies)

    @property
    def is_sqlite(self) -> bool:
        """Check if the configured database is SQLite."""
        return self.database_url.startswith("sqlite")


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Reload settings from environment (useful for testing)."""
    global _settings
    _settings = Settings()
    return _settings
