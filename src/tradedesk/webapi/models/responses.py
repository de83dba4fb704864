"""Response models for the trading API."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_serializer

# Generic type for data responses
T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseResponse(BaseModel):
    """Base response model for all API responses."""

    success: bool = Field(..., description="Whether the request was successful")
    timestamp: datetime = Field(default_factory=_utcnow, description="Response timestamp")
    request_id: Optional[str] = Field(
        None, description="Unique request identifier for tracking"
    )

    model_config = ConfigDict(
        use_enum_values=True,
        arbitrary_types_allowed=True,
    )

    @field_serializer("timestamp")
    def serialize_timestamp(self, dt: datetime) -> str:
        """Serialize datetime to ISO format with Z suffix."""
        return dt.astimezone(timezone.utc).replace(tzinfo=None).isoformat() + "Z"


class SuccessResponse(BaseResponse, Generic[T]):
    """Generic success response with typed data."""

    success: bool = Field(True, description="Always true for success responses")
    data: T = Field(..., description="Response data")
    message: Optional[str] = Field(None, description="Optional success message")


class ErrorResponse(BaseResponse):
    """Error response model; ``error`` carries ``kind`` and ``message``."""

    success: bool = Field(False, description="Always false for error responses")
    error: Dict[str, Any] = Field(..., description="Error details")


class HealthStatus(BaseModel):
    """Health status model."""

    status: str = Field(
        ..., description="Overall health status: healthy, degraded, unhealthy"
    )
    services: Dict[str, Dict[str, Any]] = Field(
        default_factory=dict, description="Individual service statuses"
    )
    uptime_seconds: float = Field(..., description="Application uptime in seconds")
    version: Optional[str] = Field(None, description="Application version")


class HealthResponse(BaseResponse):
    """Health check response."""

    success: bool = Field(True, description="Always true for health responses")
    health: HealthStatus = Field(..., description="Detailed health information")


class OrderData(BaseModel):
    """Order as returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    symbol: str
    asset_type: str
    order_kind: str
    side: str
    quantity: Decimal
    requested_price: Optional[Decimal] = None
    execution_price: Optional[Decimal] = None
    status: str
    filled_quantity: Decimal
    close_price: Optional[Decimal] = None
    realized_pnl: Optional[Decimal] = None
    realized_pnl_percent: Optional[Decimal] = None
    created_at: datetime
    executed_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None


class WalletData(BaseModel):
    """Wallet balance."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    balance: Decimal
    currency: str
    updated_at: datetime


class TransactionData(BaseModel):
    """Ledger entry."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    type: str
    amount: Decimal
    method: Optional[str] = None
    status: str
    reference: Optional[str] = None
    created_at: datetime


class PortfolioSummaryData(BaseModel):
    """Portfolio valuation."""

    model_config = ConfigDict(from_attributes=True)

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
    fallback_symbols: List[str] = Field(
        default_factory=list, description="Symbols valued at entry price"
    )
    as_of: datetime


class HoldingData(BaseModel):
    """Open positions in one symbol."""

    model_config = ConfigDict(from_attributes=True)

    symbol: str
    asset_type: str
    quantity: Decimal
    average_price: Decimal
    current_price: Decimal
    market_value: Decimal
    unrealized_pnl: Decimal
    unrealized_pnl_percent: Decimal
    position_count: int
    price_fallback: bool


class ReconciliationData(BaseModel):
    """Wallet balance checked against its ledger."""

    model_config = ConfigDict(from_attributes=True)

    wallet_id: str
    balanced: bool
    expected_balance: Decimal
    actual_balance: Decimal
    difference: Decimal
    transaction_count: int


class OrderResponse(SuccessResponse[OrderData]):
    """Response model for a single order."""

    data: OrderData = Field(..., description="Order data")


class OrderListResponse(SuccessResponse[List[OrderData]]):
    """Response model for an order list."""

    data: List[OrderData] = Field(..., description="Orders")


class WalletResponse(SuccessResponse[WalletData]):
    """Response model for a wallet."""

    data: WalletData = Field(..., description="Wallet data")


class TransactionListResponse(SuccessResponse[List[TransactionData]]):
    """Response model for ledger entries."""

    data: List[TransactionData] = Field(..., description="Ledger entries, newest first")


class PortfolioSummaryResponse(SuccessResponse[PortfolioSummaryData]):
    """Response model for the portfolio summary."""

    data: PortfolioSummaryData = Field(..., description="Portfolio summary")


class HoldingListResponse(SuccessResponse[List[HoldingData]]):
    """Response model for holdings."""

    data: List[HoldingData] = Field(..., description="Holdings by symbol")


class ReconciliationResponse(SuccessResponse[ReconciliationData]):
    """Response model for a reconciliation check."""

    data: ReconciliationData = Field(..., description="Reconciliation report")
