"""Request models for the trading API."""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ...core.types import AssetType, OrderKind, OrderSide


class PlaceOrderRequest(BaseModel):
    """Request model for placing an order."""

    symbol: str = Field(
        ..., description="Instrument symbol (e.g., AAPL, BTC/USD)", min_length=1, max_length=64
    )
    asset_type: AssetType = Field(AssetType.EQUITY, description="equity, crypto or forex")
    order_kind: OrderKind = Field(OrderKind.MARKET, description="market, limit or stop")
    side: OrderSide = Field(..., description="buy or sell")
    quantity: Decimal = Field(..., gt=0, description="Units to trade")
    requested_price: Optional[Decimal] = Field(
        None, gt=0, description="Limit or stop price; ignored for market orders"
    )

    @field_validator("symbol")
    @classmethod
    def validate_symbol(cls, v: str) -> str:
        """Normalize symbol to upper case."""
        v = v.strip()
        if not v:
            raise ValueError("Symbol must not be blank")
        return v.upper()

    @model_validator(mode="after")
    def require_price_for_resting_orders(self) -> "PlaceOrderRequest":
        if self.order_kind != OrderKind.MARKET and self.requested_price is None:
            raise ValueError(f"requested_price is required for {self.order_kind.value} orders")
        return self


class FillOrderRequest(BaseModel):
    """Request model for filling a pending order."""

    fill_price: Decimal = Field(..., gt=0, description="Price the order fills at")


class WalletFundsRequest(BaseModel):
    """Request model for deposits and withdrawals."""

    amount: Decimal = Field(..., gt=0, description="Amount in wallet currency")
    method: str = Field("bank", description="upi, card, crypto or bank")

    @field_validator("method")
    @classmethod
    def validate_method(cls, v: str) -> str:
        """Validate funding method."""
        valid_methods = ["upi", "card", "crypto", "bank"]
        if v.lower() not in valid_methods:
            raise ValueError(f"Method must be one of: {', '.join(valid_methods)}")
        return v.lower()
