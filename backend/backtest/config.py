"""Backtest-specific configuration.

BacktestConfig describes one run (symbols, range, balance, risk rules) and
is usually loaded from a YAML file. BacktestSettings carries the
environment-level bits (ledger database URL).
"""

from __future__ import annotations

import logging
import os
from datetime import date, datetime, timezone
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.errors import ConfigurationError
from core.models import RiskParameters, Timeframe

logger = logging.getLogger(__name__)


class BacktestSettings(BaseSettings):
    """Backtest configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="BACKTEST_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # PostgreSQL signal ledger
    database_url: str = os.environ.get(
        "DATABASE_URL", "postgresql://localhost/trading_signals"
    )


_settings: BacktestSettings | None = None


def get_backtest_settings() -> BacktestSettings:
    """Get cached backtest settings instance."""
    global _settings
    if _settings is None:
        _settings = BacktestSettings()
    return _settings


class BacktestConfig(BaseModel):
    """Parameters of a single backtest run."""

    symbols: list[str] = Field(min_length=1)
    from_date: datetime
    to_date: datetime
    timeframe: Timeframe = Timeframe.HOUR_1
    initial_balance: float = Field(default=100_000.0, gt=0)
    risk_params: RiskParameters = Field(default_factory=RiskParameters)
    use_enriched_indicators: bool = False
    max_signals_per_symbol: int = Field(default=10, gt=0)
    max_concurrent_positions: int = Field(default=5, gt=0)

    @field_validator("symbols")
    @classmethod
    def _normalize_symbols(cls, value: list[str]) -> list[str]:
        symbols = [s.strip().upper() for s in value if s.strip()]
        if not symbols:
            raise ValueError("at least one symbol is required")
        return symbols

    @field_validator("timeframe", mode="before")
    @classmethod
    def _coerce_timeframe(cls, value):
        # YAML reads "timeframe: 60" as an int
        return str(value) if isinstance(value, int) else value

    @field_validator("from_date", "to_date", mode="before")
    @classmethod
    def _coerce_date(cls, value):
        # YAML reads bare 2024-01-01 as a date
        if isinstance(value, date) and not isinstance(value, datetime):
            return datetime(value.year, value.month, value.day)
        return value

    @field_validator("from_date", "to_date")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def _check_range(self):
        if self.from_date >= self.to_date:
            raise ValueError(
                f"from_date {self.from_date.isoformat()} must be before "
                f"to_date {self.to_date.isoformat()}"
            )
        return self

    @classmethod
    def build(cls, **kwargs) -> "BacktestConfig":
        """Construct and validate, raising ConfigurationError on bad input."""
        try:
            return cls(**kwargs)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid backtest configuration: {e}") from e


def load_backtest_config(path: Path | str) -> BacktestConfig:
    """Load a backtest run definition from a YAML file.

    Raises:
        ConfigurationError: If the file is missing, unreadable or invalid.
    """
    config_path = Path(path)

    # Provider keys may live in a .env beside the config
    load_dotenv(config_path.parent / ".env", override=False)

    if not config_path.exists():
        raise ConfigurationError(f"Backtest config not found: {config_path}")

    try:
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Cannot parse {config_path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigurationError(f"{config_path} must contain a mapping")

    config = BacktestConfig.build(**raw)
    logger.info(
        f"Loaded backtest config: {len(config.symbols)} symbols, "
        f"{config.from_date.date()} -> {config.to_date.date()}, "
        f"timeframe={config.timeframe.value}"
    )
    return config
