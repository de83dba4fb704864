"""Repository for order operations."""

from typing import List, Optional

from sqlalchemy import update

from ...core.types import OrderSide, OrderStatus
from ..models import Order, utcnow
from .base import BaseRepository


class OrderRepository(BaseRepository):
    """Repository for order operations."""

    def insert(self, **fields) -> Order:
        """Persist a new order."""
        order = Order(**fields)
        self.session.add(order)
        self.session.flush()
        return order

    def get(self, order_id: str, user_id: Optional[str] = None) -> Optional[Order]:
        """Get an order by id, optionally scoped to its owner."""
        query = self.session.query(Order).filter(Order.id == order_id)
        if user_id is not None:
            query = query.filter(Order.user_id == user_id)
        return query.first()

    def update(self, order_id: str, **fields) -> Optional[Order]:
        """Set fields on an order; returns None if it does not exist."""
        order = self.get(order_id)
        if order is None:
            return None

        for key, value in fields.items():
            setattr(order, key, value)
        self.session.flush()
        return order

    def list_by_user(
        self,
        user_id: str,
        status: Optional[str] = None,
        symbol: Optional[str] = None,
        limit: Optional[int] = 100,
    ) -> List[Order]:
        """Orders for a user, newest first. ``limit=None`` returns all."""
        query = self.session.query(Order).filter(Order.user_id == user_id)
        if status:
            query = query.filter(Order.status == status)
        if symbol:
            query = query.filter(Order.symbol == symbol.upper())
        query = query.order_by(Order.created_at.desc())
        if limit:
            query = query.limit(limit)
        return query.all()

    def open_positions(self, user_id: str, symbol: Optional[str] = None) -> List[Order]:
        """Open positions, oldest execution first."""
        query = self.session.query(Order).filter(
            Order.user_id == user_id, Order.open_position_clause()
        )
        if symbol:
            query = query.filter(Order.symbol == symbol.upper())
        return query.order_by(Order.executed_at, Order.created_at, Order.id).all()

    def mark_closed(self, order_id: str, **fields) -> bool:
        """
        Close an open position if, and only if, it is still open.

        The status check and the write happen in one UPDATE, so of two
        concurrent closes exactly one matches.

        Returns:
            True if this call closed the position
        """
        closed_at = fields.pop("closed_at", None) or utcnow()
        stmt = (
            update(Order)
            .where(
                Order.id == order_id,
                Order.status == OrderStatus.FILLED.value,
                Order.side == OrderSide.BUY.value,
                Order.closed_at.is_(None),
            )
            .values(
                status=OrderStatus.CLOSED.value,
                closed_at=closed_at,
                updated_at=utcnow(),
                **fields,
            )
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        if result.rowcount != 1:
            return False

        order = self.get(order_id)
        self.session.refresh(order)
        return True

    def transition_status(
        self, order_id: str, from_status: str, **fields
    ) -> bool:
        """Move an order out of ``from_status``; False if it already moved on."""
        stmt = (
            update(Order)
            .where(Order.id == order_id, Order.status == from_status)
            .values(updated_at=utcnow(), **fields)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        if result.rowcount != 1:
            return False

        order = self.get(order_id)
        self.session.refresh(order)
        return True
