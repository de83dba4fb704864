"""Event-driven architecture components."""

from .event_bus import EventBus
from .events import (
    DomainEvent,
    OrderCancelledEvent,
    OrderClosedEvent,
    OrderFilledEvent,
    OrderPlacedEvent,
    PriceUpdatedEvent,
    WalletBalanceChangedEvent,
)

__all__ = [
    "DomainEvent",
    "PriceUpdatedEvent",
    "OrderPlacedEvent",
    "OrderFilledEvent",
    "OrderClosedEvent",
    "OrderCancelledEvent",
    "WalletBalanceChangedEvent",
    "EventBus",
]
