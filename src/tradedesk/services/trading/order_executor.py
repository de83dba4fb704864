"""Order execution: validation, pricing and the atomic wallet debit."""

from decimal import Decimal
from typing import List, Optional

from ...config.logging import get_logger, log_audit_event
from ...config.settings import Settings
from ...core.errors import (
    InsufficientBalance,
    InvalidOrderRequest,
    OrderNotClosable,
    OrderNotFound,
)
from ...core.money import ZERO, notional, quantize_money
from ...core.quotes import QuoteProvider
from ...core.types import (
    TRADE_METHOD,
    AssetType,
    OrderKind,
    OrderSide,
    OrderStatus,
    TransactionStatus,
    TransactionType,
)
from ...events import (
    EventBus,
    OrderCancelledEvent,
    OrderFilledEvent,
    OrderPlacedEvent,
    WalletBalanceChangedEvent,
)
from ...ormdb.ledger import LedgerStore, LedgerUnit
from ...ormdb.models import Order, Wallet, new_id, utcnow
from .models import OrderRequest
from .position_closer import PositionCloser

logger = get_logger(__name__)


def match_positions(
    positions: List[Order], quantity: Decimal, symbol: str
) -> List[Order]:
    """
    Pick the open positions a sell of ``quantity`` closes, oldest first.

    The quantity has to equal the combined size of the oldest N positions;
    positions are never split.

    Raises:
        InvalidOrderRequest: No open position, or no exact FIFO match
    """
    if not positions:
        raise InvalidOrderRequest(
            f"No open {symbol} position to sell",
            context={"symbol": symbol, "quantity": str(quantity)},
        )

    matched: List[Order] = []
    remaining = quantity
    for position in positions:
        if remaining <= ZERO:
            break
        if position.quantity > remaining:
            break
        matched.append(position)
        remaining -= position.quantity

    if remaining != ZERO:
        held = sum((p.quantity for p in positions), ZERO)
        raise InvalidOrderRequest(
            f"Sell quantity {quantity} does not match open {symbol} positions "
            f"(held {held}, closed oldest first, whole positions only)",
            context={"symbol": symbol, "quantity": str(quantity), "held": str(held)},
        )
    return matched


class OrderExecutor:
    """Places, fills and cancels orders against the ledger."""

    def __init__(
        self,
        ledger: LedgerStore,
        quotes: QuoteProvider,
        closer: PositionCloser,
        settings: Settings,
        event_bus: Optional[EventBus] = None,
    ):
        self.ledger = ledger
        self.quotes = quotes
        self.closer = closer
        self.settings = settings
        self.event_bus = event_bus
        self.logger = logger.bind(component="order_executor")

    def validate(self, request: OrderRequest) -> OrderRequest:
        """
        Normalize an order request or reject it.

        Raises:
            InvalidOrderRequest: Any field is missing or out of range
        """
        if not request.user_id:
            raise InvalidOrderRequest("user_id is required")

        symbol = (request.symbol or "").strip().upper()
        if not symbol:
            raise InvalidOrderRequest("symbol is required")

        try:
            asset_type = AssetType(request.asset_type)
            order_kind = OrderKind(request.order_kind)
            side = OrderSide(request.side)
        except ValueError as e:
            raise InvalidOrderRequest(str(e), context={"symbol": symbol})

        try:
            quantity = quantize_money(request.quantity)
        except ValueError as e:
            raise InvalidOrderRequest(f"Invalid quantity: {e}", context={"symbol": symbol})
        if quantity <= ZERO:
            raise InvalidOrderRequest(
                "quantity must be greater than 0", context={"symbol": symbol}
            )

        requested_price = None
        if order_kind != OrderKind.MARKET:
            if request.requested_price is None:
                raise InvalidOrderRequest(
                    f"requested_price is required for {order_kind.value} orders",
                    context={"symbol": symbol},
                )
            try:
                requested_price = quantize_money(request.requested_price)
            except ValueError as e:
                raise InvalidOrderRequest(
                    f"Invalid requested_price: {e}", context={"symbol": symbol}
                )
            if requested_price <= ZERO:
                raise InvalidOrderRequest(
                    "requested_price must be greater than 0", context={"symbol": symbol}
                )

        return OrderRequest(
            user_id=request.user_id,
            symbol=symbol,
            side=side,
            quantity=quantity,
            asset_type=asset_type,
            order_kind=order_kind,
            requested_price=requested_price,
        )

    async def place_order(self, request: OrderRequest) -> Order:
        """
        Place an order.

        Market orders are priced from the quote provider and filled at once.
        Limit and stop orders are stored pending at the requested price and
        move no money until ``fill_order``. A sell closes the user's oldest
        open buy positions for the symbol.

        Args:
            request: Order details

        Returns:
            The persisted order

        Raises:
            InvalidOrderRequest: Bad input, or a sell with nothing to close
            QuoteUnavailable: Market order could not be priced
            InsufficientBalance: Buy costs more than the wallet holds
            PersistenceFailure: Ledger write failed and was rolled back
        """
        request = self.validate(request)
        log = self.logger.bind(
            user_id=request.user_id, symbol=request.symbol, side=request.side.value
        )

        if request.side == OrderSide.SELL:
            match_positions(
                self.ledger.get_open_positions(request.user_id, request.symbol),
                request.quantity,
                request.symbol,
            )

        if request.order_kind != OrderKind.MARKET:
            order = self.ledger.insert_order(
                id=new_id(),
                user_id=request.user_id,
                symbol=request.symbol,
                asset_type=request.asset_type.value,
                order_kind=request.order_kind.value,
                side=request.side.value,
                quantity=request.quantity,
                requested_price=request.requested_price,
                status=OrderStatus.PENDING.value,
            )
            log.info("Pending order placed", order_id=order.id, kind=order.order_kind)
            await self._publish_placed(order)
            return order

        execution_price = quantize_money(
            await self.quotes.get_current_price(request.symbol, request.asset_type)
        )
        cost = self._cost(execution_price, request.quantity, request.symbol)

        executed_at = utcnow()
        order_id = new_id()
        settled = []
        wallet = None

        with self.ledger.unit_of_work("place_order") as unit:
            if request.side == OrderSide.BUY:
                wallet = self._debit(unit, request.user_id, cost, order_id, executed_at)
            else:
                settled = self._close_matched(
                    unit, request.user_id, request.symbol, request.quantity,
                    execution_price, executed_at,
                )

            order = unit.insert_order(
                id=order_id,
                user_id=request.user_id,
                symbol=request.symbol,
                asset_type=request.asset_type.value,
                order_kind=request.order_kind.value,
                side=request.side.value,
                quantity=request.quantity,
                execution_price=execution_price,
                status=OrderStatus.FILLED.value,
                filled_quantity=request.quantity,
                executed_at=executed_at,
            )

        log.info(
            "Market order filled",
            order_id=order.id,
            quantity=str(order.quantity),
            execution_price=str(execution_price),
            notional=str(cost),
        )
        await self._publish_placed(order)
        if wallet is not None:
            await self._publish_debit(order, wallet, cost)
        for closed, credited, proceeds in settled:
            await self.closer.publish_close(closed, credited, proceeds)
        return order

    async def fill_order(self, user_id: str, order_id: str, fill_price) -> Order:
        """
        Fill a pending limit or stop order at ``fill_price``.

        A buy whose cost exceeds the wallet balance is marked rejected.

        Raises:
            InvalidOrderRequest: Non-positive fill price, or a sell with
                nothing left to close; order now rejected
            OrderNotFound: No such order for this user
            OrderNotClosable: Order is not pending
            InsufficientBalance: Buy cannot be paid for; order now rejected
        """
        try:
            price = quantize_money(fill_price)
        except ValueError as e:
            raise InvalidOrderRequest(f"Invalid fill_price: {e}")
        if price <= ZERO:
            raise InvalidOrderRequest("fill_price must be greater than 0")

        order = self.ledger.get_order(order_id, user_id)
        if order is None:
            raise OrderNotFound(order_id)
        if order.status != OrderStatus.PENDING.value:
            raise OrderNotClosable(order_id, order.status, action="fill")

        cost = self._cost(price, order.quantity, order.symbol)
        is_buy = order.side == OrderSide.BUY.value

        executed_at = utcnow()
        settled = []
        wallet = None
        try:
            with self.ledger.unit_of_work("fill_order") as unit:
                if not unit.transition_order(
                    order_id,
                    OrderStatus.PENDING.value,
                    status=OrderStatus.FILLED.value,
                    execution_price=price,
                    filled_quantity=order.quantity,
                    executed_at=executed_at,
                ):
                    current = unit.get_order(order_id)
                    raise OrderNotClosable(order_id, current.status, action="fill")

                if is_buy:
                    wallet = self._debit(unit, user_id, cost, order_id, executed_at)
                else:
                    settled = self._close_matched(
                        unit, user_id, order.symbol, order.quantity, price, executed_at
                    )
                filled = unit.get_order(order_id)
        except InsufficientBalance:
            await self._reject(order, "insufficient balance")
            raise
        except InvalidOrderRequest:
            # Positions it was placed against were closed by another sell
            await self._reject(order, "no matching open position")
            raise

        self.logger.info(
            "Pending order filled",
            user_id=user_id,
            order_id=order_id,
            symbol=filled.symbol,
            fill_price=str(price),
        )
        if self.event_bus is not None:
            await self.event_bus.publish(
                OrderFilledEvent(
                    order_id=filled.id,
                    user_id=user_id,
                    symbol=filled.symbol,
                    fill_price=price,
                )
            )
        if wallet is not None:
            await self._publish_debit(filled, wallet, cost)
        for closed, credited, proceeds in settled:
            await self.closer.publish_close(closed, credited, proceeds)
        return filled

    async def cancel_order(self, user_id: str, order_id: str) -> Order:
        """
        Cancel a pending order.

        Raises:
            OrderNotFound: No such order for this user
            OrderNotClosable: Order is no longer pending
        """
        order = self.ledger.get_order(order_id, user_id)
        if order is None:
            raise OrderNotFound(order_id)
        if order.status != OrderStatus.PENDING.value:
            raise OrderNotClosable(order_id, order.status, action="cancel")

        with self.ledger.unit_of_work("cancel_order") as unit:
            if not unit.transition_order(
                order_id, OrderStatus.PENDING.value, status=OrderStatus.CANCELLED.value
            ):
                current = unit.get_order(order_id)
                raise OrderNotClosable(order_id, current.status, action="cancel")
            cancelled = unit.get_order(order_id)

        self.logger.info("Order cancelled", user_id=user_id, order_id=order_id)
        if self.event_bus is not None:
            await self.event_bus.publish(
                OrderCancelledEvent(
                    order_id=order_id,
                    user_id=user_id,
                    status=cancelled.status,
                    reason="cancelled by user",
                )
            )
        return cancelled

    def _cost(self, price: Decimal, quantity: Decimal, symbol: str) -> Decimal:
        cost = notional(price, quantity)
        if cost <= ZERO:
            raise InvalidOrderRequest(
                "Order value rounds to zero",
                context={"symbol": symbol, "price": str(price), "quantity": str(quantity)},
            )
        return cost

    def _debit(
        self,
        unit: LedgerUnit,
        user_id: str,
        cost: Decimal,
        order_id: str,
        executed_at,
    ) -> Wallet:
        """Conditionally debit ``cost`` and record the trade debit.

        A missing wallet is created here, seeded with the default balance, so
        a debit that fails rolls the new wallet back with it.
        """
        current = unit.get_or_create_wallet(
            user_id, self.settings.default_wallet_balance, self.settings.default_currency
        )
        wallet = unit.adjust_wallet_balance(user_id, -cost)
        if wallet is None:
            self.logger.warning(
                "Insufficient balance",
                user_id=user_id,
                order_id=order_id,
                required=str(cost),
                available=str(current.balance),
            )
            raise InsufficientBalance(user_id, cost, current.balance)

        unit.insert_transaction(
            wallet_id=wallet.id,
            type=TransactionType.TRADE_DEBIT.value,
            amount=cost,
            method=TRADE_METHOD,
            status=TransactionStatus.COMPLETED.value,
            reference=order_id,
            completed_at=executed_at,
        )
        return wallet

    def _close_matched(
        self,
        unit: LedgerUnit,
        user_id: str,
        symbol: str,
        quantity: Decimal,
        price: Decimal,
        executed_at,
    ) -> list:
        """Close the positions a sell matches, re-read inside the unit."""
        positions = match_positions(unit.open_positions(user_id, symbol), quantity, symbol)
        return [
            self.closer.settle(unit, position, price, executed_at)
            for position in positions
        ]

    async def _reject(self, order: Order, reason: str) -> None:
        with self.ledger.unit_of_work("reject_order") as unit:
            rejected = unit.transition_order(
                order.id, OrderStatus.PENDING.value, status=OrderStatus.REJECTED.value
            )

        if not rejected:
            return
        self.logger.warning(
            "Order rejected", user_id=order.user_id, order_id=order.id, reason=reason
        )
        if self.event_bus is not None:
            await self.event_bus.publish(
                OrderCancelledEvent(
                    order_id=order.id,
                    user_id=order.user_id,
                    status=OrderStatus.REJECTED.value,
                    reason=reason,
                )
            )

    async def _publish_placed(self, order: Order) -> None:
        if self.event_bus is None:
            return
        await self.event_bus.publish(
            OrderPlacedEvent(
                order_id=order.id,
                user_id=order.user_id,
                symbol=order.symbol,
                side=order.side,
                order_kind=order.order_kind,
                status=order.status,
                quantity=order.quantity,
                execution_price=order.execution_price,
            )
        )

    async def _publish_debit(self, order: Order, wallet: Wallet, cost: Decimal) -> None:
        log_audit_event(
            "trade_debit",
            user_id=order.user_id,
            order_id=order.id,
            symbol=order.symbol,
            amount=str(cost),
            balance=str(wallet.balance),
        )
        if self.event_bus is None:
            return
        await self.event_bus.publish(
            WalletBalanceChangedEvent(
                user_id=order.user_id,
                wallet_id=wallet.id,
                transaction_type=TransactionType.TRADE_DEBIT.value,
                amount=cost,
                balance=wallet.balance,
                reference=order.id,
            )
        )
