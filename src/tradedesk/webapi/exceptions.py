"""Error handling for the trading API."""

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..config.logging import get_logger
from ..core.errors import TradingError
from .models.responses import ErrorResponse

logger = get_logger(__name__)


def _error_response(
    request: Request, status_code: int, error: dict
) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    error_response = ErrorResponse(success=False, error=error, request_id=request_id)
    return JSONResponse(
        status_code=status_code, content=error_response.model_dump(mode="json")
    )


async def trading_exception_handler(request: Request, exc: TradingError) -> JSONResponse:
    """Map engine errors onto their status code and ``{kind, message}``."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "Trading error",
        kind=exc.kind,
        message=exc.message,
        status_code=exc.status_code,
        path=request.url.path,
        method=request.method,
        **exc.context,
    )
    return _error_response(request, exc.status_code, exc.to_dict())


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle request body and parameter validation failures."""
    # Extract field errors from the validation error
    field_errors = {}
    for error in exc.errors():
        field_path = ".".join(str(loc) for loc in error["loc"])
        field_errors[field_path] = error["msg"]

    logger.warning(
        "Validation error occurred",
        field_errors=field_errors,
        path=request.url.path,
        method=request.method,
    )
    return _error_response(
        request,
        422,
        {
            "kind": "InvalidOrderRequest",
            "message": "Request validation failed",
            "details": {"field_errors": field_errors},
        },
    )


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Handle routing and framework HTTP errors."""
    logger.warning(
        "HTTP exception occurred",
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path,
        method=request.method,
    )
    return _error_response(
        request, exc.status_code, {"kind": "HTTPError", "message": str(exc.detail)}
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.error(
        "Unexpected exception occurred",
        exception_type=type(exc).__name__,
        message=str(exc),
        path=request.url.path,
        method=request.method,
        exc_info=True,
    )

    # Don't expose internal error details
    return _error_response(
        request,
        500,
        {"kind": "InternalError", "message": "An unexpected error occurred"},
    )


def setup_exception_handlers(app):
    """Register exception handlers with FastAPI app."""
    app.add_exception_handler(TradingError, trading_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
