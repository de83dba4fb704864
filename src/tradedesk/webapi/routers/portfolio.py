"""Portfolio summary, open positions and holdings endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from ...services import TradingService
from ..dependencies import get_trading_service, get_user_id
from ..models.responses import (
    HoldingData,
    HoldingListResponse,
    OrderData,
    OrderListResponse,
    PortfolioSummaryData,
    PortfolioSummaryResponse,
)

router = APIRouter()


@router.get(
    "/summary",
    response_model=PortfolioSummaryResponse,
    summary="Portfolio Summary",
    description="Cash, realized and unrealized P&L with today's change",
)
async def get_portfolio_summary(
    request: Request,
    tz: Optional[str] = Query(
        None, description="IANA timezone that defines 'today' (e.g., Asia/Kolkata)"
    ),
    user_id: str = Depends(get_user_id),
    service: TradingService = Depends(get_trading_service),
):
    """
    Get the portfolio summary.

    Symbols whose quote failed are valued at entry price and listed in
    ``fallback_symbols``.
    """
    summary = await service.get_portfolio_summary(user_id, tz=tz)
    return PortfolioSummaryResponse(
        data=PortfolioSummaryData.model_validate(summary),
        request_id=getattr(request.state, "request_id", None),
    )


@router.get("/positions", response_model=OrderListResponse, summary="Open Positions")
async def get_open_positions(
    request: Request,
    user_id: str = Depends(get_user_id),
    service: TradingService = Depends(get_trading_service),
):
    positions = service.get_open_positions(user_id)
    return OrderListResponse(
        data=[OrderData.model_validate(p) for p in positions],
        request_id=getattr(request.state, "request_id", None),
    )


@router.get("/holdings", response_model=HoldingListResponse, summary="Holdings")
async def get_holdings(
    request: Request,
    user_id: str = Depends(get_user_id),
    service: TradingService = Depends(get_trading_service),
):
    holdings = await service.get_holdings(user_id)
    return HoldingListResponse(
        data=[HoldingData.model_validate(h) for h in holdings],
        request_id=getattr(request.state, "request_id", None),
    )
