"""Service layer for business logic encapsulation."""

from .trading import TradingService

__all__ = [
    "TradingService",
]
