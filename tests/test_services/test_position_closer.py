"""Tests for closing positions and realizing P&L."""

import asyncio
import sys
from decimal import Decimal

import pytest

sys.path.append("src")

from tradedesk.core.errors import OrderNotClosable, OrderNotFound, QuoteUnavailable
from tradedesk.core.types import OrderKind, OrderSide, OrderStatus
from tradedesk.events import OrderClosedEvent
from tradedesk.services.trading import OrderRequest


async def open_position(service, quotes, price, quantity, symbol="AAPL"):
    quotes.set_price(symbol, price)
    return await service.place_order(
        OrderRequest(
            user_id="user-1", symbol=symbol, side=OrderSide.BUY, quantity=Decimal(quantity)
        )
    )


class TestClosePosition:
    """Test the close flow end to end."""

    @pytest.mark.asyncio
    async def test_buy_then_close_at_profit(self, trading_service, fake_quotes, fund_wallet, ledger):
        wallet = fund_wallet("user-1", "1000")
        order = await open_position(trading_service, fake_quotes, "20", "5")
        assert ledger.get_wallet("user-1").balance == Decimal("900")

        fake_quotes.set_price("AAPL", "25")
        closed = await trading_service.close_order("user-1", order.id)

        assert closed.status == OrderStatus.CLOSED.value
        assert closed.close_price == Decimal("25")
        assert closed.realized_pnl == Decimal("25")
        assert closed.realized_pnl_percent == Decimal("25")
        assert closed.closed_at is not None
        assert ledger.get_wallet("user-1").balance == Decimal("1025")

        credit = ledger.get_transactions(wallet.id)[0]
        assert credit.type == "trade_credit"
        assert credit.amount == Decimal("125")
        assert credit.reference == order.id

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "close_price,expected_pnl,expected_pct",
        [("110", "20", "10"), ("90", "-20", "-10"), ("100", "0", "0")],
    )
    async def test_pnl_sign(
        self, trading_service, fake_quotes, fund_wallet, close_price, expected_pnl, expected_pct
    ):
        fund_wallet("user-1", "1000")
        order = await open_position(trading_service, fake_quotes, "100", "2")

        fake_quotes.set_price("AAPL", close_price)
        closed = await trading_service.close_order("user-1", order.id)

        assert closed.realized_pnl == Decimal(expected_pnl)
        assert closed.realized_pnl_percent == Decimal(expected_pct)

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, trading_service, fake_quotes, fund_wallet, ledger):
        fund_wallet("user-1", "1000")
        order = await open_position(trading_service, fake_quotes, "20", "5")
        fake_quotes.set_price("AAPL", "25")
        await trading_service.close_order("user-1", order.id)

        with pytest.raises(OrderNotClosable) as exc_info:
            await trading_service.close_order("user-1", order.id)

        assert exc_info.value.status == "closed"
        assert ledger.get_wallet("user-1").balance == Decimal("1025")

    @pytest.mark.asyncio
    async def test_concurrent_closes_credit_once(
        self, trading_service, fake_quotes, fund_wallet, ledger, event_bus
    ):
        wallet = fund_wallet("user-1", "1000")
        order = await open_position(trading_service, fake_quotes, "20", "5")
        fake_quotes.set_price("AAPL", "25")
        closes = []
        event_bus.subscribe(OrderClosedEvent, closes.append)

        results = await asyncio.gather(
            *(trading_service.close_order("user-1", order.id) for _ in range(3)),
            return_exceptions=True,
        )

        assert sum(1 for r in results if not isinstance(r, Exception)) == 1
        assert sum(1 for r in results if isinstance(r, OrderNotClosable)) == 2
        assert ledger.get_wallet("user-1").balance == Decimal("1025")
        credits = [e for e in ledger.get_transactions(wallet.id) if e.type == "trade_credit"]
        assert len(credits) == 1
        assert len(closes) == 1

    @pytest.mark.asyncio
    async def test_quote_failure_leaves_position_open(
        self, trading_service, fake_quotes, fund_wallet, ledger
    ):
        fund_wallet("user-1", "1000")
        order = await open_position(trading_service, fake_quotes, "20", "5")
        fake_quotes.fail("AAPL")

        with pytest.raises(QuoteUnavailable):
            await trading_service.close_order("user-1", order.id)

        assert ledger.get_order(order.id).status == OrderStatus.FILLED.value
        assert ledger.get_wallet("user-1").balance == Decimal("900")

    @pytest.mark.asyncio
    async def test_unknown_or_foreign_order(self, trading_service, fake_quotes, fund_wallet):
        fund_wallet("user-1", "1000")
        order = await open_position(trading_service, fake_quotes, "20", "5")

        with pytest.raises(OrderNotFound):
            await trading_service.close_order("user-1", "missing")
        with pytest.raises(OrderNotFound):
            await trading_service.close_order("user-2", order.id)

    @pytest.mark.asyncio
    async def test_pending_order_not_closable(self, trading_service, fund_wallet):
        fund_wallet()
        pending = await trading_service.place_order(
            OrderRequest(
                user_id="user-1",
                symbol="AAPL",
                side=OrderSide.BUY,
                quantity=Decimal("1"),
                order_kind=OrderKind.LIMIT,
                requested_price=Decimal("10"),
            )
        )

        with pytest.raises(OrderNotClosable) as exc_info:
            await trading_service.close_order("user-1", pending.id)

        assert exc_info.value.status == "pending"


class TestBalanceConservation:
    """Cash plus open cost minus realized P&L stays at seed plus deposits."""

    @pytest.mark.asyncio
    async def test_round_trips(self, trading_service, fake_quotes, fund_wallet, ledger):
        fund_wallet("user-1", "1000")
        await trading_service.deposit("user-1", Decimal("250"), "card")

        aapl = await open_position(trading_service, fake_quotes, "20", "5")
        btc = await open_position(trading_service, fake_quotes, "100", "0.5", symbol="BTC/USD")
        await open_position(trading_service, fake_quotes, "30", "2", symbol="MSFT")

        fake_quotes.set_price("AAPL", "18.5")
        fake_quotes.set_price("BTC/USD", "140")
        await trading_service.close_order("user-1", aapl.id)
        await trading_service.close_order("user-1", btc.id)

        cash = ledger.get_wallet("user-1").balance
        orders = ledger.get_orders_by_user("user-1", limit=None)
        open_cost = sum(
            o.execution_price * o.quantity for o in orders if o.is_open_position
        )
        realized = sum(o.realized_pnl for o in orders if o.status == "closed")

        assert realized == Decimal("12.5")
        assert cash + open_cost - realized == Decimal("1250")
        assert trading_service.reconcile("user-1").balanced
