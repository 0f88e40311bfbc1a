"""Provider clients and the throttled fetch gateway."""

from app.clients.events import EventBus, GatewayEvent, GatewayEventType
from app.clients.gateway import ThrottledFetchGateway, DEFAULT_RATE_LIMITS
from app.clients.polygon_rest import PolygonRestClient
from app.clients.twelvedata_rest import TwelveDataRestClient
from app.clients.tradier_rest import TradierRestClient

__all__ = [
    "EventBus",
    "GatewayEvent",
    "GatewayEventType",
    "ThrottledFetchGateway",
    "DEFAULT_RATE_LIMITS",
    "PolygonRestClient",
    "TwelveDataRestClient",
    "TradierRestClient",
]
