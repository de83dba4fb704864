"""API routers for the trading engine."""

from .portfolio import router as portfolio_router
from .trading import router as trading_router
from .wallet import router as wallet_router

__all__ = ["trading_router", "portfolio_router", "wallet_router"]
