"""Application configuration."""

from functools import lru_cache
from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict


class RateLimitSettings(BaseModel):
    """Provider request caps. 0 disables a window."""

    requests_per_minute: int
    requests_per_hour: int = 0
    requests_per_day: int = 0


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Polygon.io (historical bars)
    polygon_api_key: str = ""
    polygon_base_url: str = "https://api.polygon.io"

    # Twelve Data (indicators)
    twelvedata_api_key: str = ""
    twelvedata_base_url: str = "https://api.twelvedata.com"

    # Tradier (execution, quotes)
    tradier_access_token: str = ""
    tradier_account_id: str = ""
    tradier_paper: bool = True

    # Rate limits
    polygon_rate_limit: RateLimitSettings = RateLimitSettings(
        requests_per_minute=5, requests_per_hour=300, requests_per_day=5000
    )
    twelvedata_rate_limit: RateLimitSettings = RateLimitSettings(
        requests_per_minute=8, requests_per_hour=800, requests_per_day=8000
    )
    tradier_rate_limit: RateLimitSettings = RateLimitSettings(
        requests_per_minute=120, requests_per_hour=1000, requests_per_day=10000
    )

    # HTTP
    request_timeout: float = 30.0

    @property
    def tradier_base_url(self) -> str:
        if self.tradier_paper:
            return "https://sandbox.tradier.com/v1"
        return "https://api.tradier.com/v1"

    def rate_limits(self) -> dict[str, RateLimitSettings]:
        """Per-provider caps keyed by gateway provider name."""
        return {
            "polygon": self.polygon_rate_limit,
            "twelvedata": self.twelvedata_rate_limit,
            "tradier": self.tradier_rate_limit,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
