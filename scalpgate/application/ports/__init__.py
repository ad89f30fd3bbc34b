"""Application ports - Interfaces to infrastructure."""
from scalpgate.application.ports.event_publisher import IEventPublisher
from scalpgate.application.ports.market_data_provider import IMarketDataProvider

__all__ = [
    "IEventPublisher",
    "IMarketDataProvider",
]
