"""Shared test configuration and fixtures."""

import asyncio
import sys
from decimal import Decimal
from typing import Dict, List, Optional

import pytest

sys.path.append("src")

from tradedesk.config.settings import Settings, get_settings
from tradedesk.core.errors import QuoteUnavailable
from tradedesk.core.quotes import ResilientQuoteProvider
from tradedesk.core.types import AssetType
from tradedesk.events import EventBus
from tradedesk.ormdb import LedgerStore, build_engine, create_session_factory, create_tables
from tradedesk.services import TradingService


class FakeQuoteProvider:
    """Scripted quote source.

    Every call yields to the event loop once, so concurrent callers
    interleave the way they would against a real network provider.
    """

    def __init__(self, prices: Optional[Dict[str, object]] = None):
        self.prices: Dict[str, Decimal] = {}
        self.failures: Dict[str, Exception] = {}
        self.calls: List[str] = []
        for symbol, price in (prices or {}).items():
            self.set_price(symbol, price)

    def set_price(self, symbol: str, price) -> None:
        self.prices[symbol.upper()] = Decimal(str(price))
        self.failures.pop(symbol.upper(), None)

    def fail(self, symbol: str, error: Optional[Exception] = None) -> None:
        self.failures[symbol.upper()] = error or QuoteUnavailable(symbol, "scripted outage")

    async def get_current_price(self, symbol: str, asset_type=AssetType.EQUITY) -> Decimal:
        self.calls.append(symbol)
        await asyncio.sleep(0)

        key = symbol.upper()
        if key in self.failures:
            raise self.failures[key]
        if key not in self.prices:
            raise QuoteUnavailable(symbol, "no scripted price")
        return self.prices[key]


@pytest.fixture
def isolated_db(tmp_path):
    """Create an isolated SQLite database for testing."""
    db_path = tmp_path / "ledger.db"
    db_url = f"sqlite:///{db_path}"
    engine = build_engine(db_url)
    create_tables(engine)

    yield {
        "engine": engine,
        "session_factory": create_session_factory(engine),
        "db_url": db_url,
        "db_path": db_path,
    }

    engine.dispose()


@pytest.fixture
def ledger(isolated_db):
    """Ledger store bound to the isolated database."""
    return LedgerStore(isolated_db["session_factory"])


@pytest.fixture
def test_settings():
    """Settings with fast quote retries and no log file."""
    return Settings(
        environment="testing",
        default_wallet_balance=Decimal("0"),
        quote_timeout_seconds=1.0,
        quote_max_attempts=2,
        quote_backoff_seconds=0,
        log_file_enabled=False,
        portfolio_timezone="UTC",
    )


@pytest.fixture
def fake_quotes():
    """Scripted quote provider, empty until a test sets prices."""
    return FakeQuoteProvider()


@pytest.fixture
def event_bus():
    return EventBus(name="test")


@pytest.fixture
def trading_service(ledger, fake_quotes, test_settings, event_bus):
    """Trading service over the isolated ledger and scripted quotes."""
    quotes = ResilientQuoteProvider.from_settings(fake_quotes, test_settings, event_bus)
    return TradingService(ledger, quotes, test_settings, event_bus)


@pytest.fixture
def fund_wallet(ledger):
    """Create a wallet seeded with the given balance."""

    def _fund(user_id: str = "user-1", balance: str = "1000.00"):
        return ledger.create_wallet(user_id, Decimal(balance))

    return _fund


@pytest.fixture(autouse=True)
def clean_lru_cache():
    """Clear cached settings between tests to avoid state pollution."""
    yield

    get_settings.cache_clear()
