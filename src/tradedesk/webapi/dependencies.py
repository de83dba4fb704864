"""Request-scoped dependencies for the API routers."""

from typing import Optional

from fastapi import Header, HTTPException, Request

from ..config.logging import bind_request_context
from ..services import TradingService


def get_trading_service(request: Request) -> TradingService:
    """Trading service built by ``create_app``."""
    return request.app.state.trading_service


def get_user_id(x_user_id: Optional[str] = Header(None, alias="X-User-Id")) -> str:
    """Caller identity from the ``X-User-Id`` header."""
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=400, detail="X-User-Id header is required")
    bind_request_context(user_id=user_id)
    return user_id
