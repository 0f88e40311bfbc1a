"""Tradier brokerage REST client (orders, account, quotes).

Used only in live and paper modes; backtests never place orders.
"""

import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from app.clients.base import BaseRestClient
from app.clients.gateway import ThrottledFetchGateway
from core.errors import ProviderError
from core.models import (
    AccountBalance,
    OrderResponse,
    Position,
    Quote,
    TradeOrder,
)
from core.models.order import OrderStatus

logger = logging.getLogger(__name__)

ORDER_STATUS_TTL = 15.0
ORDERS_TTL = 30.0
ACCOUNT_TTL = 60.0
QUOTE_TTL = 15.0

LIVE_URL = "https://api.tradier.com/v1"
SANDBOX_URL = "https://sandbox.tradier.com/v1"


def map_order_status(status: str) -> OrderStatus:
    """Collapse Tradier's order states onto pending/filled/cancelled/rejected."""
    status = (status or "").lower()
    if status == "filled":
        return "filled"
    if status in ("canceled", "cancelled", "expired"):
        return "cancelled"
    if status == "rejected":
        return "rejected"
    return "pending"


def _as_list(container: Any, key: str) -> list[dict[str, Any]]:
    """Tradier returns null, a single object, or a list for collections."""
    if not isinstance(container, dict):
        return []
    items = container.get(key)
    if items is None:
        return []
    if isinstance(items, dict):
        return [items]
    return list(items)


def _parse_time(value: str | None) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _parse_quote(raw: dict[str, Any]) -> Quote:
    return Quote(
        symbol=raw.get("symbol", ""),
        bid=float(raw.get("bid") or 0),
        ask=float(raw.get("ask") or 0),
        last=float(raw.get("last") or 0),
    )


class TradierRestClient(BaseRestClient):
    """Tradier brokerage API client."""

    PROVIDER = "tradier"

    def __init__(
        self,
        access_token: str,
        account_id: str,
        paper: bool = True,
        base_url: str | None = None,
        gateway: ThrottledFetchGateway | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }
        super().__init__(
            base_url or (SANDBOX_URL if paper else LIVE_URL),
            headers=headers,
            gateway=gateway,
            client=client,
            timeout=timeout,
        )
        self.account_id = account_id
        self.paper = paper

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    async def place_order(self, order: TradeOrder) -> OrderResponse:
        """Submit an equity order. Never cached."""
        form: dict[str, Any] = {
            "class": "equity",
            "symbol": order.symbol,
            "side": order.side,
            "quantity": order.quantity,
            "type": order.type,
            "duration": order.time_in_force,
        }
        if order.price is not None:
            form["price"] = order.price
        if order.stop_price is not None:
            form["stop"] = order.stop_price

        async def submit() -> OrderResponse:
            data = await self._request(
                "POST", f"/accounts/{self.account_id}/orders", data=form
            )
            raw = data.get("order") or {}
            if "id" not in raw:
                raise ProviderError(self.PROVIDER, f"order rejected: {data}")
            return OrderResponse(
                order_id=str(raw["id"]),
                status=map_order_status(raw.get("status", "pending")),
                timestamp=datetime.now(timezone.utc),
            )

        response = await self._call(submit)
        logger.info(
            f"Order placed: {order.side} {order.quantity} {order.symbol} -> "
            f"{response.order_id} ({response.status})"
        )
        return response

    async def get_order_status(self, order_id: str) -> OrderResponse:
        async def fetch() -> OrderResponse:
            data = await self._request("GET", f"/accounts/{self.account_id}/orders/{order_id}")
            return self._parse_order(data.get("order") or {})

        return await self._call(fetch, f"order_status:{order_id}", ORDER_STATUS_TTL)

    async def cancel_order(self, order_id: str) -> bool:
        async def cancel() -> bool:
            await self._request("DELETE", f"/accounts/{self.account_id}/orders/{order_id}")
            return True

        return await self._call(cancel)

    async def get_orders(self, status: str | None = None) -> list[OrderResponse]:
        """List account orders, optionally filtered by normalised status."""

        async def fetch() -> list[OrderResponse]:
            data = await self._request("GET", f"/accounts/{self.account_id}/orders")
            return [self._parse_order(o) for o in _as_list(data.get("orders"), "order")]

        orders = await self._call(fetch, f"orders:{self.account_id}", ORDERS_TTL)
        if status:
            orders = [o for o in orders if o.status == status]
        return orders

    def _parse_order(self, raw: dict[str, Any]) -> OrderResponse:
        try:
            return OrderResponse(
                order_id=str(raw["id"]),
                status=map_order_status(raw.get("status", "")),
                filled_quantity=float(raw.get("exec_quantity") or raw.get("filled_quantity") or 0),
                filled_price=float(raw.get("avg_fill_price") or raw.get("filled_price") or 0),
                commission=float(raw.get("commission") or 0),
                timestamp=_parse_time(raw.get("transaction_date") or raw.get("create_date")),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ProviderError(self.PROVIDER, f"malformed order payload: {e}") from e

    # ------------------------------------------------------------------
    # Account
    # ------------------------------------------------------------------

    async def get_account_balance(self) -> AccountBalance:
        async def fetch() -> AccountBalance:
            data = await self._request("GET", f"/accounts/{self.account_id}/balances")
            raw = data.get("balances") or {}
            margin = raw.get("margin") or {}
            cash_section = raw.get("cash") if isinstance(raw.get("cash"), dict) else {}
            try:
                return AccountBalance(
                    account_id=str(raw.get("account_number", self.account_id)),
                    cash=float(raw.get("total_cash") or cash_section.get("cash_available") or 0),
                    buying_power=float(
                        margin.get("stock_buying_power") or raw.get("buying_power") or 0
                    ),
                    day_trading_buying_power=float(
                        margin.get("day_trade_buying_power")
                        or raw.get("day_trading_buying_power")
                        or 0
                    ),
                    equity=float(raw.get("total_equity") or raw.get("equity") or 0),
                    long_market_value=float(raw.get("long_market_value") or 0),
                    short_market_value=float(raw.get("short_market_value") or 0),
                    total_market_value=float(raw.get("market_value") or 0),
                    timestamp=datetime.now(timezone.utc),
                )
            except (TypeError, ValueError) as e:
                raise ProviderError(self.PROVIDER, f"malformed balance payload: {e}") from e

        return await self._call(fetch, f"balance:{self.account_id}", ACCOUNT_TTL)

    async def get_positions(self) -> list[Position]:
        async def fetch() -> list[Position]:
            data = await self._request("GET", f"/accounts/{self.account_id}/positions")
            positions = []
            now = datetime.now(timezone.utc)
            for raw in _as_list(data.get("positions"), "position"):
                try:
                    quantity = float(raw["quantity"])
                    cost_basis = float(raw["cost_basis"])
                except (KeyError, TypeError, ValueError) as e:
                    raise ProviderError(self.PROVIDER, f"malformed position payload: {e}") from e
                average_price = cost_basis / quantity if quantity else 0.0
                market_value = float(raw.get("market_value") or cost_basis)
                positions.append(
                    Position(
                        symbol=raw["symbol"],
                        quantity=quantity,
                        average_price=average_price,
                        market_value=market_value,
                        unrealized_pnl=market_value - cost_basis,
                        timestamp=now,
                    )
                )
            return positions

        return await self._call(fetch, f"positions:{self.account_id}", ACCOUNT_TTL)

    # ------------------------------------------------------------------
    # Market data
    # ------------------------------------------------------------------

    async def get_quote(self, symbol: str) -> Quote:
        quotes = await self.get_quotes([symbol])
        if not quotes:
            raise ProviderError(self.PROVIDER, f"no quote for {symbol}")
        return quotes[0]

    async def get_quotes(self, symbols: list[str]) -> list[Quote]:
        joined = ",".join(symbols)

        async def fetch() -> list[Quote]:
            data = await self._request("GET", "/markets/quotes", {"symbols": joined})
            return [_parse_quote(q) for q in _as_list(data.get("quotes"), "quote")]

        return await self._call(fetch, f"quotes:{joined}", QUOTE_TTL)

    async def is_market_open(self) -> bool:
        """True while the market clock reports "open"; False if unreachable."""
        try:
            data = await self._call(
                lambda: self._request("GET", "/markets/clock"), "clock", QUOTE_TTL
            )
        except ProviderError as e:
            logger.warning(f"Market clock unavailable: {e}")
            return False
        return (data.get("clock") or {}).get("state") == "open"
