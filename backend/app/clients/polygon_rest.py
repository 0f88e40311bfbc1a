"""Polygon.io REST client for historical bars."""

import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from app.clients.base import BaseRestClient
from app.clients.gateway import ThrottledFetchGateway
from core.errors import ProviderError
from core.models import Bar, Timeframe

logger = logging.getLogger(__name__)

# Timeframe -> (multiplier, timespan) for the aggregates endpoint
TIMEFRAME_MAP: dict[Timeframe, tuple[int, str]] = {
    Timeframe.MINUTE_1: (1, "minute"),
    Timeframe.MINUTE_5: (5, "minute"),
    Timeframe.MINUTE_15: (15, "minute"),
    Timeframe.MINUTE_30: (30, "minute"),
    Timeframe.HOUR_1: (1, "hour"),
    Timeframe.DAY_1: (1, "day"),
    Timeframe.WEEK_1: (1, "week"),
    Timeframe.MONTH_1: (1, "month"),
}

BARS_TTL = 15 * 60.0
PREV_CLOSE_TTL = 5 * 60.0
TICKER_TTL = 60 * 60.0


class PolygonRestClient(BaseRestClient):
    """Polygon.io aggregates / reference API client."""

    PROVIDER = "polygon"
    BASE_URL = "https://api.polygon.io"

    def __init__(
        self,
        api_key: str = "",
        base_url: str = BASE_URL,
        gateway: ThrottledFetchGateway | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        super().__init__(
            base_url, headers=headers, gateway=gateway, client=client, timeout=timeout
        )

    async def get_historical_bars(
        self,
        symbol: str,
        from_date: datetime,
        to_date: datetime,
        timeframe: Timeframe = Timeframe.DAY_1,
    ) -> list[Bar]:
        """
        Fetch aggregate bars for a date range.

        Args:
            symbol: Ticker (e.g., "AAPL")
            from_date: Range start (date part is used)
            to_date: Range end (date part is used)
            timeframe: Bar interval

        Returns:
            Bars ordered by timestamp (ascending)
        """
        timeframe = Timeframe(timeframe)
        multiplier, timespan = TIMEFRAME_MAP[timeframe]
        start, end = from_date.date().isoformat(), to_date.date().isoformat()
        endpoint = f"/v2/aggs/ticker/{symbol}/range/{multiplier}/{timespan}/{start}/{end}"
        cache_key = f"bars:{symbol}:{timeframe.value}:{start}:{end}"

        async def fetch() -> list[Bar]:
            data = await self._request(
                "GET",
                endpoint,
                {"adjusted": "true", "sort": "asc", "limit": 50000},
            )
            return [
                self._parse_aggregate(symbol, timeframe, item)
                for item in data.get("results") or []
            ]

        bars = await self._call(fetch, cache_key, BARS_TTL)
        logger.debug(f"Polygon returned {len(bars)} bars for {symbol} {timeframe.value}")
        return bars

    async def get_previous_close(self, symbol: str) -> dict[str, Any]:
        """Previous session's aggregate for a ticker (raw payload)."""

        async def fetch() -> dict[str, Any]:
            return await self._request("GET", f"/v2/aggs/ticker/{symbol}/prev")

        return await self._call(fetch, f"prev_close:{symbol}", PREV_CLOSE_TTL)

    async def get_ticker_details(self, symbol: str) -> dict[str, Any]:
        """Reference data for a ticker (raw payload)."""

        async def fetch() -> dict[str, Any]:
            return await self._request("GET", f"/v3/reference/tickers/{symbol}")

        return await self._call(fetch, f"ticker:{symbol}", TICKER_TTL)

    def _parse_aggregate(
        self, symbol: str, timeframe: Timeframe, item: dict[str, Any]
    ) -> Bar:
        try:
            return Bar(
                symbol=symbol,
                timeframe=timeframe,
                timestamp=datetime.fromtimestamp(item["t"] / 1000, tz=timezone.utc),
                open=item["o"],
                high=item["h"],
                low=item["l"],
                close=item["c"],
                volume=item["v"],
                vwap=item.get("vw"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ProviderError(self.PROVIDER, f"malformed aggregate for {symbol}: {e}") from e
