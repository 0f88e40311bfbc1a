"""Risk configuration models."""

from __future__ import annotations

from datetime import datetime, time
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator, model_validator


def _parse_hhmm(value: str) -> time:
    try:
        hours, minutes = value.split(":")
        return time(int(hours), int(minutes))
    except ValueError:
        raise ValueError(f"Invalid time of day: {value!r} (expected HH:MM)")


class KillZone(BaseModel):
    """Time-of-day window (inclusive) during which new entries are allowed."""

    start: str
    end: str

    @field_validator("start", "end")
    @classmethod
    def _check_format(cls, value: str) -> str:
        _parse_hhmm(value)
        return value

    @property
    def start_time(self) -> time:
        return _parse_hhmm(self.start)

    @property
    def end_time(self) -> time:
        return _parse_hhmm(self.end)

    def contains(self, moment: time) -> bool:
        """Check a wall-clock time against the window.

        A window whose end is before its start wraps past midnight.
        """
        start, end = self.start_time, self.end_time
        if start <= end:
            return start <= moment <= end
        return moment >= start or moment <= end


class RiskParameters(BaseModel):
    """Per-run risk constraints consumed by the validator and the simulator."""

    max_risk_percent: float = Field(default=2.0, ge=0)  # % of balance risked per trade
    max_daily_loss: float = Field(default=3.0, ge=0)  # % of balance
    max_daily_win: float = Field(default=5.0, ge=0)  # % of balance
    symbol_cooldown_hours: float = Field(default=2.0, ge=0)
    kill_zones: list[KillZone] = Field(default_factory=list)
    timezone: str = "UTC"  # wall clock the kill zones are evaluated in
    commission_per_trade: float = Field(default=1.0, ge=0)
    slippage_percent: float = Field(default=0.1, ge=0)  # applied as a fraction
    max_risk_amount: float = Field(default=500.0, ge=0)
    min_confluence_score: float = Field(default=0.6, ge=0, le=1)
    min_risk_reward: float = Field(default=2.0, ge=0)

    @field_validator("timezone")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {value!r}")
        return value

    @model_validator(mode="after")
    def _check_budget(self):
        if self.max_risk_amount == 0 and self.max_risk_percent == 0:
            raise ValueError("one of max_risk_amount or max_risk_percent must be > 0")
        return self

    def risk_budget(self, balance: float) -> float:
        """Currency amount a single trade may lose.

        The fixed amount wins when set; otherwise a percent of balance.
        """
        if self.max_risk_amount > 0:
            return self.max_risk_amount
        return balance * self.max_risk_percent / 100

    def in_kill_zone(self, timestamp: datetime) -> bool:
        """Check whether new entries are allowed at this timestamp.

        No configured kill zones means no time-of-day restriction.
        """
        if not self.kill_zones:
            return True
        local = timestamp.astimezone(ZoneInfo(self.timezone)) if timestamp.tzinfo else timestamp
        moment = local.time().replace(microsecond=0)
        return any(zone.contains(moment) for zone in self.kill_zones)
