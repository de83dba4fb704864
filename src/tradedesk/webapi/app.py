"""FastAPI application for the trading engine."""

import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import Engine

from ..config.logging import bind_request_context, clear_request_context, get_logger
from ..config.settings import Settings, get_settings
from ..core.quotes import QuoteProvider, ResilientQuoteProvider, YahooQuoteProvider
from ..events import EventBus
from ..ormdb.database import create_session_factory, create_tables, get_engine
from ..ormdb.ledger import LedgerStore
from ..services import TradingService
from .exceptions import setup_exception_handlers
from .health import router as health_router
from .routers import portfolio_router, trading_router, wallet_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables on startup."""
    logger.info("Starting Tradedesk API")
    create_tables(app.state.engine)
    logger.info("Tradedesk API started successfully")

    yield

    logger.info(
        "Shutting down Tradedesk API",
        event_stats=app.state.event_bus.get_statistics(),
    )


async def add_request_id_middleware(request: Request, call_next):
    """Add unique request ID to each request for tracking."""
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id
    clear_request_context()
    bind_request_context(request_id=request_id)

    # Log request start
    logger.info(
        "Request started",
        method=request.method,
        path=request.url.path,
        query_params=str(request.query_params),
        remote_addr=request.client.host if request.client else None,
    )

    try:
        response = await call_next(request)

        # Add request ID to response headers
        response.headers["X-Request-ID"] = request_id

        logger.info(
            "Request completed",
            status_code=response.status_code,
            method=request.method,
            path=request.url.path,
        )
        return response
    finally:
        clear_request_context()


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[Engine] = None,
    quote_provider: Optional[QuoteProvider] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    The ledger, quote provider, event bus and trading service are built here
    and kept on ``app.state``.

    Args:
        settings: Application settings (defaults to ``get_settings()``)
        engine: Database engine (defaults to the configured one)
        quote_provider: Raw quote source (defaults to yfinance); it is
            always wrapped with timeout and retry handling
    """
    settings = settings or get_settings()
    engine = engine or get_engine()
    session_factory = create_session_factory(engine)

    event_bus = EventBus(name="tradedesk")
    quotes = ResilientQuoteProvider.from_settings(
        quote_provider or YahooQuoteProvider(), settings, event_bus
    )
    ledger = LedgerStore(session_factory)

    app = FastAPI(
        title="Tradedesk API",
        description="""
        Simulated retail trading engine.

        * **Orders**: market, limit and stop orders priced from live quotes
        * **Positions**: close filled orders and realize P&L
        * **Portfolio**: cash, realized and unrealized P&L in one summary
        * **Wallet**: deposits, withdrawals, ledger and reconciliation

        Callers identify themselves with the `X-User-Id` header.
        """,
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.event_bus = event_bus
    app.state.ledger = ledger
    app.state.trading_service = TradingService(ledger, quotes, settings, event_bus)

    # Add middleware for request tracking
    app.middleware("http")(add_request_id_middleware)

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Setup exception handlers
    setup_exception_handlers(app)

    app.include_router(health_router, prefix="/api/v1", tags=["Health & Status"])
    app.include_router(trading_router, prefix="/api/v1/trade", tags=["Trading"])
    app.include_router(portfolio_router, prefix="/api/v1/portfolio", tags=["Portfolio"])
    app.include_router(wallet_router, prefix="/api/v1/wallet", tags=["Wallet"])

    return app
