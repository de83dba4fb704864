"""Closing open positions and realizing their profit or loss."""

from datetime import datetime
from decimal import Decimal
from typing import Optional, Tuple

from ...config.logging import get_logger, log_audit_event
from ...core.errors import OrderNotClosable, OrderNotFound, WalletNotFound
from ...core.money import ZERO, notional, pnl_percent, quantize_money, realized_pnl
from ...core.quotes import QuoteProvider
from ...core.types import TRADE_METHOD, TransactionStatus, TransactionType
from ...events import EventBus, OrderClosedEvent, WalletBalanceChangedEvent
from ...ormdb.ledger import LedgerStore, LedgerUnit
from ...ormdb.models import Order, Wallet, utcnow

logger = get_logger(__name__)


class PositionCloser:
    """Closes filled buy orders at a fresh quote."""

    def __init__(
        self,
        ledger: LedgerStore,
        quotes: QuoteProvider,
        event_bus: Optional[EventBus] = None,
    ):
        self.ledger = ledger
        self.quotes = quotes
        self.event_bus = event_bus
        self.logger = logger.bind(component="position_closer")

    async def close_order(self, user_id: str, order_id: str) -> Order:
        """
        Close an open position at the current market price.

        Args:
            user_id: Owner of the order
            order_id: Order to close

        Returns:
            The closed order with close price and realized P&L

        Raises:
            OrderNotFound: No such order for this user
            OrderNotClosable: Order is not an open position (including
                one that was already closed)
            QuoteUnavailable: No price; the order is left untouched
        """
        order = self.ledger.get_order(order_id, user_id)
        if order is None:
            raise OrderNotFound(order_id)
        if not order.is_open_position:
            raise OrderNotClosable(order_id, order.status)

        # Price first; no transaction is open while we wait on the provider
        close_price = quantize_money(
            await self.quotes.get_current_price(order.symbol, order.asset_type)
        )

        with self.ledger.unit_of_work("close_order") as unit:
            closed, wallet, proceeds = self.settle(unit, order, close_price, utcnow())

        self.logger.info(
            "Position closed",
            user_id=user_id,
            order_id=order_id,
            symbol=closed.symbol,
            close_price=str(close_price),
            realized_pnl=str(closed.realized_pnl),
        )
        await self.publish_close(closed, wallet, proceeds)
        return closed

    def settle(
        self,
        unit: LedgerUnit,
        order: Order,
        close_price: Decimal,
        closed_at: datetime,
    ) -> Tuple[Order, Wallet, Decimal]:
        """
        Realize one position inside an open unit of work.

        Finalizes the order with a compare-and-set, then credits the full
        close notional. Used by ``close_order`` and by sell-to-close.

        Returns:
            (closed order, credited wallet, proceeds)

        Raises:
            OrderNotClosable: Position was closed concurrently
        """
        entry_price = order.execution_price
        pnl = realized_pnl(order.side, entry_price, close_price, order.quantity)
        pnl_pct = pnl_percent(pnl, notional(entry_price, order.quantity))
        proceeds = notional(close_price, order.quantity)

        if not unit.close_position(
            order.id,
            close_price=close_price,
            realized_pnl=pnl,
            realized_pnl_percent=pnl_pct,
            closed_at=closed_at,
        ):
            current = unit.get_order(order.id)
            raise OrderNotClosable(order.id, current.status if current else "unknown")

        if proceeds > ZERO:
            wallet = unit.adjust_wallet_balance(order.user_id, proceeds, require_funds=False)
            if wallet is None:
                raise WalletNotFound(order.user_id)
            unit.insert_transaction(
                wallet_id=wallet.id,
                type=TransactionType.TRADE_CREDIT.value,
                amount=proceeds,
                method=TRADE_METHOD,
                status=TransactionStatus.COMPLETED.value,
                reference=order.id,
                completed_at=closed_at,
            )
        else:
            wallet = unit.get_wallet(order.user_id)
            if wallet is None:
                raise WalletNotFound(order.user_id)

        return unit.get_order(order.id), wallet, proceeds

    async def publish_close(self, order: Order, wallet: Wallet, proceeds: Decimal) -> None:
        """Audit and announce a committed close."""
        log_audit_event(
            "position_closed",
            user_id=order.user_id,
            order_id=order.id,
            symbol=order.symbol,
            proceeds=str(proceeds),
            realized_pnl=str(order.realized_pnl),
            balance=str(wallet.balance),
        )
        if self.event_bus is None:
            return

        await self.event_bus.publish(
            OrderClosedEvent(
                order_id=order.id,
                user_id=order.user_id,
                symbol=order.symbol,
                close_price=order.close_price,
                realized_pnl=order.realized_pnl,
                realized_pnl_percent=order.realized_pnl_percent,
            )
        )
        if proceeds > ZERO:
            await self.event_bus.publish(
                WalletBalanceChangedEvent(
                    user_id=order.user_id,
                    wallet_id=wallet.id,
                    transaction_type=TransactionType.TRADE_CREDIT.value,
                    amount=proceeds,
                    balance=wallet.balance,
                    reference=order.id,
                )
            )
