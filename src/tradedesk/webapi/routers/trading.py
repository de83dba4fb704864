"""Order placement, fill, cancel and close endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from ...config.logging import get_logger
from ...core.errors import OrderNotFound
from ...core.types import OrderStatus
from ...services import TradingService
from ...services.trading import OrderRequest
from ..dependencies import get_trading_service, get_user_id
from ..models.requests import FillOrderRequest, PlaceOrderRequest
from ..models.responses import OrderData, OrderListResponse, OrderResponse

logger = get_logger(__name__)

router = APIRouter()


def _order_response(order, request: Request, message: Optional[str] = None) -> OrderResponse:
    return OrderResponse(
        data=OrderData.model_validate(order),
        message=message,
        request_id=getattr(request.state, "request_id", None),
    )


@router.post(
    "/orders",
    response_model=OrderResponse,
    status_code=201,
    summary="Place Order",
    description="Place a market, limit or stop order",
)
async def place_order(
    body: PlaceOrderRequest,
    request: Request,
    user_id: str = Depends(get_user_id),
    service: TradingService = Depends(get_trading_service),
):
    """
    Place an order.

    Market orders fill immediately at the current quote; limit and stop
    orders stay pending until filled or cancelled.
    """
    order = await service.place_order(
        OrderRequest(
            user_id=user_id,
            symbol=body.symbol,
            side=body.side,
            quantity=body.quantity,
            asset_type=body.asset_type,
            order_kind=body.order_kind,
            requested_price=body.requested_price,
        )
    )
    return _order_response(order, request, message=f"Order {order.status}")


@router.get(
    "/orders",
    response_model=OrderListResponse,
    summary="List Orders",
    description="Orders for the caller, newest first",
)
async def list_orders(
    request: Request,
    status: Optional[OrderStatus] = Query(None, description="Filter by status"),
    symbol: Optional[str] = Query(None, description="Filter by symbol"),
    limit: int = Query(100, ge=1, le=500, description="Maximum orders returned"),
    user_id: str = Depends(get_user_id),
    service: TradingService = Depends(get_trading_service),
):
    orders = service.list_orders(
        user_id, status=status.value if status else None, symbol=symbol, limit=limit
    )
    return OrderListResponse(
        data=[OrderData.model_validate(o) for o in orders],
        request_id=getattr(request.state, "request_id", None),
    )


@router.get("/orders/{order_id}", response_model=OrderResponse, summary="Get Order")
async def get_order(
    order_id: str,
    request: Request,
    user_id: str = Depends(get_user_id),
    service: TradingService = Depends(get_trading_service),
):
    order = service.get_order(user_id, order_id)
    if order is None:
        raise OrderNotFound(order_id)
    return _order_response(order, request)


@router.post(
    "/orders/{order_id}/close",
    response_model=OrderResponse,
    summary="Close Position",
    description="Close a filled buy order at the current quote and realize P&L",
)
async def close_order(
    order_id: str,
    request: Request,
    user_id: str = Depends(get_user_id),
    service: TradingService = Depends(get_trading_service),
):
    order = await service.close_order(user_id, order_id)
    return _order_response(order, request, message="Position closed")


@router.post(
    "/orders/{order_id}/fill",
    response_model=OrderResponse,
    summary="Fill Pending Order",
    description="Fill a pending limit or stop order at the given price",
)
async def fill_order(
    order_id: str,
    body: FillOrderRequest,
    request: Request,
    user_id: str = Depends(get_user_id),
    service: TradingService = Depends(get_trading_service),
):
    order = await service.fill_order(user_id, order_id, body.fill_price)
    return _order_response(order, request, message="Order filled")


@router.post(
    "/orders/{order_id}/cancel",
    response_model=OrderResponse,
    summary="Cancel Pending Order",
)
async def cancel_order(
    order_id: str,
    request: Request,
    user_id: str = Depends(get_user_id),
    service: TradingService = Depends(get_trading_service),
):
    order = await service.cancel_order(user_id, order_id)
    return _order_response(order, request, message="Order cancelled")
