"""Tests for order placement, fills, cancellation and sell-to-close."""

import asyncio
import sys
from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

sys.path.append("src")

from tradedesk.config.settings import Settings
from tradedesk.core.errors import (
    InsufficientBalance,
    InvalidOrderRequest,
    OrderNotClosable,
    PersistenceFailure,
    QuoteUnavailable,
)
from tradedesk.core.quotes import ResilientQuoteProvider
from tradedesk.core.types import OrderKind, OrderSide, OrderStatus
from tradedesk.events import OrderCancelledEvent, OrderPlacedEvent, WalletBalanceChangedEvent
from tradedesk.ormdb.repositories import TransactionRepository
from tradedesk.services import TradingService
from tradedesk.services.trading import OrderRequest, match_positions


def buy(symbol="AAPL", quantity="5", user_id="user-1", **kwargs):
    return OrderRequest(
        user_id=user_id, symbol=symbol, side=OrderSide.BUY, quantity=Decimal(quantity), **kwargs
    )


def sell(symbol="AAPL", quantity="5", user_id="user-1", **kwargs):
    return OrderRequest(
        user_id=user_id, symbol=symbol, side=OrderSide.SELL, quantity=Decimal(quantity), **kwargs
    )


class TestMarketBuy:
    """Test market buy execution and the wallet debit."""

    @pytest.mark.asyncio
    async def test_buy_debits_notional(self, trading_service, fake_quotes, fund_wallet, ledger):
        wallet = fund_wallet("user-1", "1000")
        fake_quotes.set_price("AAPL", "20")

        order = await trading_service.place_order(buy(quantity="5"))

        assert order.status == OrderStatus.FILLED.value
        assert order.execution_price == Decimal("20")
        assert order.filled_quantity == Decimal("5")
        assert order.executed_at is not None
        assert ledger.get_wallet("user-1").balance == Decimal("900")

        entries = ledger.get_transactions(wallet.id)
        assert [(e.type, e.amount, e.reference) for e in entries] == [
            ("trade_debit", Decimal("100"), order.id)
        ]

    @pytest.mark.asyncio
    async def test_insufficient_balance_persists_nothing(
        self, trading_service, fake_quotes, fund_wallet, ledger
    ):
        wallet = fund_wallet("user-1", "50")
        fake_quotes.set_price("AAPL", "20")

        with pytest.raises(InsufficientBalance) as exc_info:
            await trading_service.place_order(buy(quantity="10"))

        assert exc_info.value.required == Decimal("200")
        assert ledger.get_wallet("user-1").balance == Decimal("50")
        assert ledger.get_orders_by_user("user-1") == []
        assert ledger.get_transactions(wallet.id) == []

    @pytest.mark.asyncio
    async def test_concurrent_buys_never_double_spend(
        self, trading_service, fake_quotes, fund_wallet, ledger
    ):
        fund_wallet("user-1", "1000")
        fake_quotes.set_price("AAPL", "600")

        results = await asyncio.gather(
            *(trading_service.place_order(buy(quantity="1")) for _ in range(5)),
            return_exceptions=True,
        )

        filled = [r for r in results if not isinstance(r, Exception)]
        rejected = [r for r in results if isinstance(r, InsufficientBalance)]
        assert len(filled) == 1
        assert len(rejected) == 4
        assert ledger.get_wallet("user-1").balance == Decimal("400")
        assert len(ledger.get_orders_by_user("user-1")) == 1

    @pytest.mark.asyncio
    async def test_quote_failure_leaves_no_state(
        self, trading_service, fake_quotes, fund_wallet, ledger
    ):
        fund_wallet("user-1", "1000")
        fake_quotes.fail("AAPL")

        with pytest.raises(QuoteUnavailable):
            await trading_service.place_order(buy())

        assert ledger.get_wallet("user-1").balance == Decimal("1000")
        assert ledger.get_orders_by_user("user-1") == []
        # One call per attempt
        assert fake_quotes.calls == ["AAPL", "AAPL"]

    @pytest.mark.asyncio
    async def test_buy_spending_exact_fractional_balance(
        self, trading_service, fake_quotes, ledger
    ):
        await trading_service.deposit("user-1", Decimal("0.7"), "upi")
        await trading_service.deposit("user-1", Decimal("0.1"), "card")
        fake_quotes.set_price("PENNY", "0.8")

        order = await trading_service.place_order(buy(symbol="PENNY", quantity="1"))

        assert order.status == OrderStatus.FILLED.value
        assert ledger.get_wallet("user-1").balance == Decimal("0")
        assert trading_service.reconcile("user-1").balanced

    @pytest.mark.asyncio
    async def test_first_buy_creates_wallet_with_default_balance(
        self, ledger, fake_quotes, event_bus
    ):
        settings = Settings(
            environment="testing",
            default_wallet_balance=Decimal("1000"),
            quote_max_attempts=1,
            quote_backoff_seconds=0,
            log_file_enabled=False,
        )
        quotes = ResilientQuoteProvider.from_settings(fake_quotes, settings, event_bus)
        service = TradingService(ledger, quotes, settings, event_bus)
        fake_quotes.set_price("AAPL", "20")

        await service.place_order(buy(user_id="newcomer"))

        wallet = ledger.get_wallet("newcomer")
        assert wallet.initial_balance == Decimal("1000")
        assert wallet.balance == Decimal("900")
        assert service.reconcile("newcomer").balanced

    @pytest.mark.asyncio
    async def test_failed_first_buy_creates_no_wallet(self, trading_service, fake_quotes, ledger):
        fake_quotes.set_price("AAPL", "20")

        with pytest.raises(InsufficientBalance):
            await trading_service.place_order(buy(user_id="newcomer"))

        assert ledger.get_wallet("newcomer") is None

    @pytest.mark.asyncio
    async def test_ledger_failure_rolls_back_debit(
        self, trading_service, fake_quotes, fund_wallet, ledger
    ):
        fund_wallet("user-1", "1000")
        fake_quotes.set_price("AAPL", "20")

        with patch.object(
            TransactionRepository,
            "insert",
            side_effect=OperationalError("INSERT", {}, Exception("disk I/O error")),
        ):
            with pytest.raises(PersistenceFailure):
                await trading_service.place_order(buy())

        assert ledger.get_wallet("user-1").balance == Decimal("1000")
        assert ledger.get_orders_by_user("user-1") == []

    @pytest.mark.asyncio
    async def test_events_published_after_commit(
        self, trading_service, fake_quotes, fund_wallet, event_bus
    ):
        fund_wallet("user-1", "1000")
        fake_quotes.set_price("AAPL", "20")
        received = []

        async def record(event):
            received.append(event)

        event_bus.subscribe(OrderPlacedEvent, record)
        event_bus.subscribe(WalletBalanceChangedEvent, record)

        order = await trading_service.place_order(buy())

        assert [type(e).__name__ for e in received] == [
            "OrderPlacedEvent",
            "WalletBalanceChangedEvent",
        ]
        assert received[0].order_id == order.id
        assert received[1].balance == Decimal("900")


class TestOrderValidation:
    """Test request validation before any state change."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "request_",
        [
            buy(quantity="0"),
            buy(quantity="-1"),
            buy(symbol="  "),
            OrderRequest(user_id="user-1", symbol="AAPL", side="hold", quantity=Decimal("1")),
            OrderRequest(
                user_id="user-1", symbol="AAPL", side="buy", quantity=Decimal("1"), asset_type="bond"
            ),
            buy(order_kind=OrderKind.LIMIT),
            buy(order_kind=OrderKind.STOP, requested_price=Decimal("0")),
        ],
    )
    async def test_rejects_bad_requests(self, trading_service, fake_quotes, request_):
        fake_quotes.set_price("AAPL", "20")

        with pytest.raises(InvalidOrderRequest):
            await trading_service.place_order(request_)

        assert fake_quotes.calls == []

    @pytest.mark.asyncio
    async def test_notional_rounding_to_zero(self, trading_service, fake_quotes, fund_wallet):
        fund_wallet()
        fake_quotes.set_price("SHIB/USD", "0.1")

        with pytest.raises(InvalidOrderRequest, match="rounds to zero"):
            await trading_service.place_order(
                buy(symbol="SHIB/USD", quantity="0.00000001", asset_type="crypto")
            )

    @pytest.mark.asyncio
    async def test_symbol_normalized(self, trading_service, fake_quotes, fund_wallet):
        fund_wallet()
        fake_quotes.set_price("AAPL", "20")

        order = await trading_service.place_order(buy(symbol=" aapl ", quantity="1"))

        assert order.symbol == "AAPL"


class TestSellToClose:
    """Test sells closing open buy positions oldest first."""

    @pytest.mark.asyncio
    async def test_sell_closes_position(self, trading_service, fake_quotes, fund_wallet, ledger):
        fund_wallet("user-1", "1000")
        fake_quotes.set_price("AAPL", "20")
        position = await trading_service.place_order(buy(quantity="5"))

        fake_quotes.set_price("AAPL", "25")
        sale = await trading_service.place_order(sell(quantity="5"))

        assert sale.side == "sell"
        assert sale.status == OrderStatus.FILLED.value
        closed = ledger.get_order(position.id)
        assert closed.status == OrderStatus.CLOSED.value
        assert closed.realized_pnl == Decimal("25")
        assert ledger.get_wallet("user-1").balance == Decimal("1025")
        assert ledger.get_open_positions("user-1") == []

    @pytest.mark.asyncio
    async def test_sell_spans_oldest_positions(self, trading_service, fake_quotes, fund_wallet, ledger):
        fund_wallet("user-1", "1000")
        fake_quotes.set_price("AAPL", "10")
        first = await trading_service.place_order(buy(quantity="5"))
        second = await trading_service.place_order(buy(quantity="3"))
        third = await trading_service.place_order(buy(quantity="2"))

        await trading_service.place_order(sell(quantity="8"))

        assert ledger.get_order(first.id).status == "closed"
        assert ledger.get_order(second.id).status == "closed"
        assert [p.id for p in ledger.get_open_positions("user-1")] == [third.id]

    @pytest.mark.asyncio
    async def test_naked_sell_rejected(self, trading_service, fake_quotes, fund_wallet, ledger):
        fund_wallet()
        fake_quotes.set_price("AAPL", "20")

        with pytest.raises(InvalidOrderRequest, match="No open AAPL position"):
            await trading_service.place_order(sell())

        assert ledger.get_orders_by_user("user-1") == []
        assert fake_quotes.calls == []

    @pytest.mark.asyncio
    async def test_partial_sell_rejected(self, trading_service, fake_quotes, fund_wallet, ledger):
        fund_wallet()
        fake_quotes.set_price("AAPL", "20")
        await trading_service.place_order(buy(quantity="5"))

        with pytest.raises(InvalidOrderRequest):
            await trading_service.place_order(sell(quantity="4"))

        assert len(ledger.get_open_positions("user-1")) == 1
        assert ledger.get_wallet("user-1").balance == Decimal("900")

    def test_match_positions_whole_positions_only(self):
        class Position:
            def __init__(self, quantity):
                self.quantity = Decimal(quantity)

        positions = [Position("5"), Position("3")]

        assert match_positions(positions, Decimal("5"), "AAPL") == positions[:1]
        assert match_positions(positions, Decimal("8"), "AAPL") == positions
        with pytest.raises(InvalidOrderRequest):
            match_positions(positions, Decimal("3"), "AAPL")


class TestPendingOrders:
    """Test limit and stop order lifecycle."""

    @pytest.mark.asyncio
    async def test_limit_order_moves_no_money_until_filled(
        self, trading_service, fake_quotes, fund_wallet, ledger
    ):
        fund_wallet("user-1", "1000")

        order = await trading_service.place_order(
            buy(quantity="2", order_kind=OrderKind.LIMIT, requested_price=Decimal("10"))
        )

        assert order.status == OrderStatus.PENDING.value
        assert order.requested_price == Decimal("10")
        assert order.execution_price is None
        assert ledger.get_wallet("user-1").balance == Decimal("1000")
        assert fake_quotes.calls == []

        filled = await trading_service.fill_order("user-1", order.id, Decimal("9"))

        assert filled.status == OrderStatus.FILLED.value
        assert filled.execution_price == Decimal("9")
        assert filled.filled_quantity == Decimal("2")
        assert ledger.get_wallet("user-1").balance == Decimal("982")

    @pytest.mark.asyncio
    async def test_fill_twice_rejected(self, trading_service, fund_wallet):
        fund_wallet()
        order = await trading_service.place_order(
            buy(quantity="1", order_kind=OrderKind.STOP, requested_price=Decimal("10"))
        )
        await trading_service.fill_order("user-1", order.id, Decimal("10"))

        with pytest.raises(OrderNotClosable):
            await trading_service.fill_order("user-1", order.id, Decimal("10"))

    @pytest.mark.asyncio
    async def test_unaffordable_fill_rejects_order(
        self, trading_service, fund_wallet, ledger, event_bus
    ):
        fund_wallet("user-1", "1000")
        cancelled = []
        event_bus.subscribe(OrderCancelledEvent, cancelled.append)
        order = await trading_service.place_order(
            buy(quantity="200", order_kind=OrderKind.LIMIT, requested_price=Decimal("10"))
        )

        with pytest.raises(InsufficientBalance):
            await trading_service.fill_order("user-1", order.id, Decimal("10"))

        assert ledger.get_order(order.id).status == OrderStatus.REJECTED.value
        assert ledger.get_wallet("user-1").balance == Decimal("1000")
        assert cancelled[0].status == "rejected"

    @pytest.mark.asyncio
    async def test_unmatched_sell_fill_rejects_order(
        self, trading_service, fake_quotes, fund_wallet, ledger, event_bus
    ):
        fund_wallet("user-1", "1000")
        fake_quotes.set_price("AAPL", "20")
        await trading_service.place_order(buy(quantity="5"))
        cancelled = []
        event_bus.subscribe(OrderCancelledEvent, cancelled.append)

        first, second = [
            await trading_service.place_order(
                sell(quantity="5", order_kind=OrderKind.LIMIT, requested_price=Decimal("25"))
            )
            for _ in range(2)
        ]
        await trading_service.fill_order("user-1", first.id, Decimal("25"))

        with pytest.raises(InvalidOrderRequest):
            await trading_service.fill_order("user-1", second.id, Decimal("25"))

        assert ledger.get_order(second.id).status == OrderStatus.REJECTED.value
        assert ledger.get_wallet("user-1").balance == Decimal("1025")
        assert cancelled[0].order_id == second.id
        assert cancelled[0].status == "rejected"
        with pytest.raises(OrderNotClosable):
            await trading_service.fill_order("user-1", second.id, Decimal("25"))

    @pytest.mark.asyncio
    async def test_cancel_pending_only(self, trading_service, fake_quotes, fund_wallet):
        fund_wallet()
        pending = await trading_service.place_order(
            buy(quantity="1", order_kind=OrderKind.LIMIT, requested_price=Decimal("10"))
        )

        cancelled = await trading_service.cancel_order("user-1", pending.id)

        assert cancelled.status == OrderStatus.CANCELLED.value
        with pytest.raises(OrderNotClosable):
            await trading_service.cancel_order("user-1", pending.id)
        with pytest.raises(OrderNotClosable):
            await trading_service.fill_order("user-1", pending.id, Decimal("10"))

    @pytest.mark.asyncio
    async def test_fill_price_must_be_positive(self, trading_service, fund_wallet):
        fund_wallet()
        order = await trading_service.place_order(
            buy(quantity="1", order_kind=OrderKind.LIMIT, requested_price=Decimal("10"))
        )

        with pytest.raises(InvalidOrderRequest):
            await trading_service.fill_order("user-1", order.id, Decimal("0"))
