"""Twelve Data REST client for technical indicators."""

import logging
import re
from datetime import datetime, timezone
from typing import Any

import httpx
import orjson

from app.clients.base import BaseRestClient
from app.clients.gateway import ThrottledFetchGateway
from core.errors import ProviderError
from core.models import IndicatorValue

logger = logging.getLogger(__name__)

INDICATOR_TTL = 5 * 60.0
HISTORICAL_TTL = 15 * 60.0

# "ema20" -> endpoint "ema" with time_period=20
_PERIOD_SUFFIX = re.compile(r"^([a-z]+?)(\d+)$")


def _split_indicator(name: str) -> tuple[str, dict[str, Any]]:
    """Map an indicator name to its endpoint and implied parameters."""
    match = _PERIOD_SUFFIX.match(name.lower())
    if match:
        return match.group(1), {"time_period": int(match.group(2))}
    return name.lower(), {}


def _parse_datetime(value: str | None) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    ts = datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _extract_value(row: dict[str, Any], endpoint: str) -> float:
    for key in (endpoint, "value", "close"):
        if row.get(key) not in (None, ""):
            return float(row[key])
    raise ValueError(f"no value field in {sorted(row)}")


class TwelveDataRestClient(BaseRestClient):
    """Twelve Data technical indicator API client."""

    PROVIDER = "twelvedata"
    BASE_URL = "https://api.twelvedata.com"
    DEFAULT_INTERVAL = "1day"

    def __init__(
        self,
        api_key: str = "",
        base_url: str = BASE_URL,
        gateway: ThrottledFetchGateway | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        params = {"apikey": api_key} if api_key else {}
        super().__init__(
            base_url, params=params, gateway=gateway, client=client, timeout=timeout
        )

    async def get_indicators(
        self,
        symbol: str,
        indicators: list[str],
        params: dict[str, Any] | None = None,
    ) -> list[IndicatorValue]:
        """
        Fetch the latest value of each indicator, one request per indicator.

        An indicator that fails to load is logged and left out of the result.

        Args:
            symbol: Ticker
            indicators: Indicator names, e.g. ["atr", "ema20", "rsi"]
            params: Extra query parameters (interval, time_period, ...)

        Returns:
            One IndicatorValue per indicator that loaded
        """
        results: list[IndicatorValue] = []
        for name in indicators:
            endpoint, implied = _split_indicator(name)
            query = {
                "symbol": symbol,
                "interval": self.DEFAULT_INTERVAL,
                **implied,
                **(params or {}),
            }
            cache_key = f"{name}:{symbol}:{orjson.dumps(query, option=orjson.OPT_SORT_KEYS).decode()}"

            async def fetch(endpoint=endpoint, query=query, name=name) -> dict[str, Any]:
                data = await self._request("GET", f"/{endpoint}", query)
                if data.get("status") != "ok":
                    raise ProviderError(
                        self.PROVIDER,
                        f"indicator {name} not available: {data.get('message', 'unknown error')}",
                    )
                if data.get("values"):
                    return data["values"][0]
                if data.get("value") is not None:
                    return {"value": data["value"]}
                raise ProviderError(self.PROVIDER, f"indicator {name} returned no values")

            try:
                row = await self._call(fetch, cache_key, INDICATOR_TTL)
                results.append(
                    IndicatorValue(
                        symbol=symbol,
                        indicator=name,
                        value=_extract_value(row, endpoint),
                        timestamp=_parse_datetime(row.get("datetime")),
                        parameters=query,
                    )
                )
            except (ProviderError, ValueError) as e:
                logger.warning(f"Indicator fetch failed ({name}, {symbol}): {e}")

        return results

    async def get_historical_indicators(
        self,
        symbol: str,
        from_date: datetime,
        to_date: datetime,
        indicators: list[str],
        interval: str = DEFAULT_INTERVAL,
    ) -> list[IndicatorValue]:
        """Fetch indicator series for a date range. Failed indicators are skipped."""
        results: list[IndicatorValue] = []
        start, end = from_date.date().isoformat(), to_date.date().isoformat()
        for name in indicators:
            endpoint, implied = _split_indicator(name)
            query = {
                "symbol": symbol,
                "interval": interval,
                "start_date": start,
                "end_date": end,
                "outputsize": 5000,
                **implied,
            }

            async def fetch(endpoint=endpoint, query=query) -> list[dict[str, Any]]:
                data = await self._request("GET", f"/{endpoint}", query)
                if data.get("status") == "error":
                    raise ProviderError(self.PROVIDER, data.get("message", "unknown error"))
                return data.get("values") or []

            try:
                rows = await self._call(
                    fetch, f"hist:{name}:{symbol}:{interval}:{start}:{end}", HISTORICAL_TTL
                )
                for row in rows:
                    results.append(
                        IndicatorValue(
                            symbol=symbol,
                            indicator=name,
                            value=_extract_value(row, endpoint),
                            timestamp=_parse_datetime(row.get("datetime")),
                            parameters=implied or None,
                        )
                    )
            except (ProviderError, ValueError) as e:
                logger.warning(f"Historical indicator fetch failed ({name}, {symbol}): {e}")

        return results
