"""Market quote access: provider protocol, yfinance adapter and retry wrapper."""

import asyncio
import math
from decimal import Decimal
from typing import Awaitable, Callable, Optional, Protocol

import yfinance as yf

from ..config.logging import get_logger
from ..config.settings import Settings
from ..events import EventBus, PriceUpdatedEvent
from .errors import QuoteUnavailable
from .money import to_decimal
from .types import AssetType

logger = get_logger(__name__)


class QuoteProvider(Protocol):
    """Anything that can price a symbol."""

    async def get_current_price(
        self, symbol: str, asset_type: AssetType = AssetType.EQUITY
    ) -> Decimal: ...


def to_yahoo_symbol(symbol: str, asset_type: AssetType = AssetType.EQUITY) -> str:
    """
    Map a platform symbol onto Yahoo Finance's ticker format.

    Examples:
        BTC/USD (crypto) -> BTC-USD
        EUR/USD (forex)  -> EURUSD=X
        AAPL (equity)    -> AAPL
    """
    symbol = symbol.strip().upper()
    asset_type = AssetType(asset_type)

    if asset_type == AssetType.FOREX:
        if symbol.endswith("=X"):
            return symbol
        return symbol.replace("/", "").replace("-", "") + "=X"
    if asset_type == AssetType.CRYPTO:
        return symbol.replace("/", "-")
    return symbol


class YahooQuoteProvider:
    """Quote provider backed by yfinance."""

    def __init__(self):
        self.logger = logger.bind(component="yahoo_quote_provider")

    async def get_current_price(
        self, symbol: str, asset_type: AssetType = AssetType.EQUITY
    ) -> Decimal:
        """
        Get the latest traded price for a symbol.

        The yfinance call blocks, so it runs in a worker thread.

        Raises:
            QuoteUnavailable: No price in the response
        """
        yahoo_symbol = to_yahoo_symbol(symbol, asset_type)
        return await asyncio.to_thread(self._fetch_last_price, symbol, yahoo_symbol)

    def _fetch_last_price(self, symbol: str, yahoo_symbol: str) -> Decimal:
        stock = yf.Ticker(yahoo_symbol)
        data = stock.history(period="1d", interval="1m")

        if not data.empty:
            current_price = data["Close"].dropna().iloc[-1]  # most recent minute
        else:
            current_price = stock.fast_info.last_price  # fallback

        if current_price is None or math.isnan(float(current_price)):
            raise QuoteUnavailable(symbol, "empty quote response")

        self.logger.debug("Fetched quote", symbol=symbol, yahoo_symbol=yahoo_symbol)
        return to_decimal(float(current_price))


class ResilientQuoteProvider:
    """Wraps an untrusted provider with a timeout, bounded retries and validation.

    Every failure mode (timeout, provider exception, missing or non-positive
    price) is retried with exponential backoff and finally surfaces as
    ``QuoteUnavailable``. Successful quotes are published as
    ``PriceUpdatedEvent`` when an event bus is attached.
    """

    def __init__(
        self,
        provider: QuoteProvider,
        timeout_seconds: float = 5.0,
        max_attempts: int = 3,
        backoff_seconds: float = 0.25,
        event_bus: Optional[EventBus] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.provider = provider
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.event_bus = event_bus
        self._sleep = sleep
        self.logger = logger.bind(component="quote_provider")

    @classmethod
    def from_settings(
        cls,
        provider: QuoteProvider,
        settings: Settings,
        event_bus: Optional[EventBus] = None,
    ) -> "ResilientQuoteProvider":
        return cls(
            provider,
            timeout_seconds=settings.quote_timeout_seconds,
            max_attempts=settings.quote_max_attempts,
            backoff_seconds=settings.quote_backoff_seconds,
            event_bus=event_bus,
        )

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt + 1`` (attempt is 0-based)."""
        return self.backoff_seconds * (2**attempt)

    async def get_current_price(
        self, symbol: str, asset_type: AssetType = AssetType.EQUITY
    ) -> Decimal:
        """
        Get a validated price, retrying transient failures.

        Raises:
            QuoteUnavailable: All attempts failed
        """
        reason = "no price available"

        for attempt in range(self.max_attempts):
            try:
                raw_price = await asyncio.wait_for(
                    self.provider.get_current_price(symbol, asset_type),
                    timeout=self.timeout_seconds,
                )
                price = to_decimal(raw_price)
                if price <= 0:
                    raise QuoteUnavailable(symbol, f"non-positive price {price}")

                if self.event_bus is not None:
                    await self.event_bus.publish(
                        PriceUpdatedEvent(
                            symbol=symbol, asset_type=AssetType(asset_type).value, price=price
                        )
                    )
                return price

            except asyncio.TimeoutError:
                reason = f"timed out after {self.timeout_seconds}s"
            except QuoteUnavailable as e:
                reason = e.reason
            except Exception as e:
                # Provider is untrusted: network, parse and data errors all retry
                reason = f"{type(e).__name__}: {e}"

            self.logger.warning(
                "Quote attempt failed",
                symbol=symbol,
                attempt=attempt + 1,
                max_attempts=self.max_attempts,
                reason=reason,
            )
            if attempt + 1 < self.max_attempts:
                await self._sleep(self.backoff_delay(attempt))

        self.logger.error("Quote unavailable", symbol=symbol, reason=reason)
        raise QuoteUnavailable(symbol, reason)
