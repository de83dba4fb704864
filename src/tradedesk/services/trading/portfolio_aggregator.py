"""Portfolio valuation over cash, closed trades and open positions."""

import asyncio
from collections import OrderedDict
from datetime import datetime, timezone, tzinfo
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ...config.logging import get_logger
from ...core.errors import InvalidOrderRequest
from ...core.money import (
    ZERO,
    notional,
    pnl_percent,
    portfolio_percent,
    quantize_money,
    unrealized_pnl,
)
from ...core.quotes import QuoteProvider
from ...core.types import OrderStatus
from ...ormdb.ledger import LedgerStore
from ...ormdb.models import Order
from .models import HoldingSummary, PortfolioSummary

logger = get_logger(__name__)

PriceKey = Tuple[str, str]


class EntryPriceFallback:
    """Values a position at its entry price when no quote is available.

    The position then contributes its cost to market value and nothing to
    unrealized P&L.
    """

    name = "entry_price"

    def price_for(self, position: Order) -> Decimal:
        return position.execution_price


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class PortfolioAggregator:
    """Read-only portfolio summaries and holdings."""

    def __init__(
        self,
        ledger: LedgerStore,
        quotes: QuoteProvider,
        default_timezone: str = "UTC",
        fallback: Optional[EntryPriceFallback] = None,
    ):
        self.ledger = ledger
        self.quotes = quotes
        self.default_timezone = default_timezone
        self.fallback = fallback or EntryPriceFallback()
        self.logger = logger.bind(component="portfolio_aggregator")

    def get_open_positions(self, user_id: str) -> List[Order]:
        """Open positions for a user, oldest execution first."""
        return self.ledger.get_open_positions(user_id)

    async def summarize(
        self,
        user_id: str,
        tz: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> PortfolioSummary:
        """
        Build the portfolio summary for a user.

        Never mutates the ledger. A symbol whose quote fails is valued with
        the fallback policy and listed in ``fallback_symbols``; the summary
        itself does not fail.

        Args:
            user_id: Portfolio owner
            tz: IANA timezone defining "today" (defaults to the configured one)
            now: Reference time, for deterministic callers
        """
        zone = self._zone(tz)
        now = _as_utc(now or datetime.now(timezone.utc))
        today = now.astimezone(zone).date()

        wallet = self.ledger.get_wallet(user_id)
        cash = wallet.balance if wallet is not None else ZERO

        orders = self.ledger.get_orders_by_user(user_id, limit=None)
        closed = [o for o in orders if o.status == OrderStatus.CLOSED.value]
        open_positions = [o for o in orders if o.is_open_position]

        prices = await self._fetch_prices(open_positions)

        realized = sum((o.realized_pnl or ZERO for o in closed), ZERO)
        realized_today = sum(
            (
                o.realized_pnl or ZERO
                for o in closed
                if o.closed_at is not None
                and _as_utc(o.closed_at).astimezone(zone).date() == today
            ),
            ZERO,
        )

        unrealized = ZERO
        market_value = ZERO
        profitable = 0
        fallback_symbols: List[str] = []

        for position in open_positions:
            price = prices.get((position.symbol, position.asset_type))
            if price is None:
                price = self.fallback.price_for(position)
                if position.symbol not in fallback_symbols:
                    fallback_symbols.append(position.symbol)

            position_pnl = unrealized_pnl(position.execution_price, price, position.quantity)
            unrealized += position_pnl
            market_value += notional(price, position.quantity)
            if position_pnl > ZERO:
                profitable += 1

        total_balance = quantize_money(cash + market_value)
        total_pnl = quantize_money(realized + unrealized)
        todays_pnl = quantize_money(realized_today + unrealized)
        cost_basis = total_balance - total_pnl

        if fallback_symbols:
            self.logger.warning(
                "Portfolio valued with fallback prices",
                user_id=user_id,
                symbols=fallback_symbols,
                policy=self.fallback.name,
            )

        return PortfolioSummary(
            user_id=user_id,
            total_balance=total_balance,
            total_pnl=total_pnl,
            total_pnl_percent=portfolio_percent(total_pnl, cost_basis),
            todays_pnl=todays_pnl,
            todays_pnl_percent=portfolio_percent(todays_pnl, cost_basis),
            open_positions=len(open_positions),
            profitable_positions=profitable,
            cash_balance=quantize_money(cash),
            unrealized_pnl=quantize_money(unrealized),
            realized_pnl=quantize_money(realized),
            market_value=quantize_money(market_value),
            as_of=now,
            fallback_symbols=fallback_symbols,
        )

    async def get_holdings(self, user_id: str) -> List[HoldingSummary]:
        """
        Aggregate open positions per symbol.

        Holdings are derived from the order ledger on every call; nothing
        is stored.
        """
        positions = self.ledger.get_open_positions(user_id)
        prices = await self._fetch_prices(positions)

        grouped: Dict[PriceKey, List[Order]] = OrderedDict()
        for position in positions:
            grouped.setdefault((position.symbol, position.asset_type), []).append(position)

        holdings = []
        for (symbol, asset_type), group in grouped.items():
            quantity = sum((p.quantity for p in group), ZERO)
            cost = sum((notional(p.execution_price, p.quantity) for p in group), ZERO)
            average_price = quantize_money(cost / quantity)

            price = prices.get((symbol, asset_type))
            used_fallback = price is None

            pnl = ZERO
            market_value = ZERO
            for position in group:
                position_price = self.fallback.price_for(position) if used_fallback else price
                pnl += unrealized_pnl(position.execution_price, position_price, position.quantity)
                market_value += notional(position_price, position.quantity)

            holdings.append(
                HoldingSummary(
                    symbol=symbol,
                    asset_type=asset_type,
                    quantity=quantity,
                    average_price=average_price,
                    current_price=average_price if used_fallback else price,
                    market_value=quantize_money(market_value),
                    unrealized_pnl=quantize_money(pnl),
                    unrealized_pnl_percent=pnl_percent(pnl, cost),
                    position_count=len(group),
                    price_fallback=used_fallback,
                )
            )

        return holdings

    async def _fetch_prices(self, positions: Iterable[Order]) -> Dict[PriceKey, Decimal]:
        """Quote each distinct symbol once, concurrently; failures are omitted."""
        keys = list(OrderedDict.fromkeys((p.symbol, p.asset_type) for p in positions))
        if not keys:
            return {}

        results = await asyncio.gather(
            *(self.quotes.get_current_price(symbol, asset_type) for symbol, asset_type in keys),
            return_exceptions=True,
        )

        prices: Dict[PriceKey, Decimal] = {}
        for key, result in zip(keys, results):
            if isinstance(result, Exception):
                self.logger.warning(
                    "Quote failed, using fallback price",
                    symbol=key[0],
                    error=str(result),
                )
                continue
            if isinstance(result, BaseException):
                raise result
            prices[key] = quantize_money(result)
        return prices

    def _zone(self, tz: Optional[str]) -> tzinfo:
        name = tz or self.default_timezone
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            raise InvalidOrderRequest(f"Unknown timezone: {name}")
