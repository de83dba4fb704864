"""API Models package for request/response schemas."""

from .requests import FillOrderRequest, PlaceOrderRequest, WalletFundsRequest
from .responses import (
    BaseResponse,
    ErrorResponse,
    HealthResponse,
    HoldingListResponse,
    OrderListResponse,
    OrderResponse,
    PortfolioSummaryResponse,
    ReconciliationResponse,
    SuccessResponse,
    TransactionListResponse,
    WalletResponse,
)

__all__ = [
    # Response models
    "BaseResponse",
    "SuccessResponse",
    "ErrorResponse",
    "HealthResponse",
    "OrderResponse",
    "OrderListResponse",
    "WalletResponse",
    "TransactionListResponse",
    "PortfolioSummaryResponse",
    "HoldingListResponse",
    "ReconciliationResponse",
    # Request models
    "PlaceOrderRequest",
    "FillOrderRequest",
    "WalletFundsRequest",
]
