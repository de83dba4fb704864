"""Order execution and portfolio accounting service module."""

from .models import HoldingSummary, OrderRequest, PortfolioSummary, ReconciliationReport
from .order_executor import OrderExecutor, match_positions
from .portfolio_aggregator import EntryPriceFallback, PortfolioAggregator
from .position_closer import PositionCloser
from .service import TradingService
from .wallet_service import FUNDING_METHODS, WalletService

__all__ = [
    "TradingService",
    "OrderRequest",
    "PortfolioSummary",
    "HoldingSummary",
    "ReconciliationReport",
    "OrderExecutor",
    "PositionCloser",
    "PortfolioAggregator",
    "EntryPriceFallback",
    "WalletService",
    "FUNDING_METHODS",
    "match_positions",
]
