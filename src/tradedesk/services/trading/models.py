"""Data models for order execution and portfolio accounting."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from ...core.types import AssetType, OrderKind, OrderSide


@dataclass
class OrderRequest:
    """Request for placing an order."""

    user_id: str
    symbol: str
    side: OrderSide
    quantity: Decimal
    asset_type: AssetType = AssetType.EQUITY
    order_kind: OrderKind = OrderKind.MARKET
    requested_price: Optional[Decimal] = None  # required for limit/stop


@dataclass
class HoldingSummary:
    """Open positions in one symbol, aggregated."""

    symbol: str
    asset_type: str
    quantity: Decimal
    average_price: Decimal
    current_price: Decimal
    market_value: Decimal
    unrealized_pnl: Decimal
    unrealized_pnl_percent: Decimal
    position_count: int
    price_fallback: bool = False


@dataclass
class PortfolioSummary:
    """Cash, realized and unrealized P&L rolled into one view."""

    user_id: str
    total_balance: Decimal
    total_pnl: Decimal
    total_pnl_percent: Decimal
    todays_pnl: Decimal
    todays_pnl_percent: Decimal
    open_positions: int
    profitable_positions: int
    cash_balance: Decimal
    unrealized_pnl: Decimal
    realized_pnl: Decimal
    market_value: Decimal
    as_of: datetime
    fallback_symbols: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ReconciliationReport:
    """Stored wallet balance checked against the ledger."""

    user_id: str
    wallet_id: str
    balanced: bool
    expected_balance: Decimal
    actual_balance: Decimal
    difference: Decimal
    transaction_count: int
