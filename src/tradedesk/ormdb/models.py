"""SQLAlchemy ORM models for wallets, orders and ledger transactions."""

import datetime
import uuid
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Any, Dict, Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    and_,
)
from sqlalchemy.orm import relationship
from sqlalchemy.types import TypeDecorator

from ..core.money import to_decimal
from ..core.types import OrderSide, OrderStatus, TransactionStatus
from .database import Base


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def _amount(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)


class ScaledDecimal(TypeDecorator):
    """Decimal stored as an integer count of 10**-places units.

    SQLite keeps NUMERIC as a binary float, so comparisons and arithmetic
    done in SQL (the conditional balance update) would be inexact. Integers
    are exact on every backend.
    """

    impl = BigInteger
    cache_ok = True

    def __init__(self, places: int = 8):
        super().__init__()
        self.places = places

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        unit = Decimal(1).scaleb(-self.places)
        exact = to_decimal(value).quantize(unit, rounding=ROUND_HALF_EVEN)
        return int(exact.scaleb(self.places))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(int(value)).scaleb(-self.places)


class Wallet(Base):
    """Cash wallet, one per user."""

    __tablename__ = "wallets"
    __table_args__ = (CheckConstraint("balance >= 0", name="ck_wallet_balance"),)

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(255), unique=True, nullable=False, index=True)
    balance = Column(ScaledDecimal(), nullable=False, default=Decimal("0"))
    # Seed balance at creation; reconciliation starts from here
    initial_balance = Column(ScaledDecimal(), nullable=False, default=Decimal("0"))
    currency = Column(String(16), nullable=False, default="USD")
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    transactions = relationship(
        "LedgerTransaction", back_populates="wallet", order_by="LedgerTransaction.created_at"
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "balance": _amount(self.balance),
            "currency": self.currency,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self):
        return f"<Wallet(user_id='{self.user_id}', balance={self.balance} {self.currency})>"


class Order(Base):
    """One trade intent and, once filled, the position it opened."""

    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_quantity"),
        CheckConstraint("filled_quantity <= quantity", name="ck_order_filled"),
        Index("ix_orders_user_status", "user_id", "status"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(255), nullable=False, index=True)
    symbol = Column(String(64), nullable=False, index=True)
    asset_type = Column(String(32), nullable=False)
    order_kind = Column(String(32), nullable=False)
    side = Column(String(16), nullable=False)
    quantity = Column(ScaledDecimal(), nullable=False)
    requested_price = Column(ScaledDecimal(), nullable=True)
    execution_price = Column(ScaledDecimal(), nullable=True)
    status = Column(String(32), nullable=False, default=OrderStatus.PENDING.value)
    filled_quantity = Column(ScaledDecimal(), nullable=False, default=Decimal("0"))
    close_price = Column(ScaledDecimal(), nullable=True)
    realized_pnl = Column(ScaledDecimal(), nullable=True)
    realized_pnl_percent = Column(ScaledDecimal(places=4), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )
    executed_at = Column(DateTime(timezone=True), nullable=True)
    closed_at = Column(DateTime(timezone=True), nullable=True)

    @classmethod
    def open_position_clause(cls):
        """SQL form of ``is_open_position``."""
        return and_(
            cls.status == OrderStatus.FILLED.value,
            cls.side == OrderSide.BUY.value,
            cls.closed_at.is_(None),
        )

    @property
    def is_open_position(self) -> bool:
        """A filled buy order that has not been closed."""
        return (
            self.status == OrderStatus.FILLED.value
            and self.side == OrderSide.BUY.value
            and self.closed_at is None
        )

    @property
    def entry_price(self) -> Optional[Decimal]:
        return self.execution_price

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "symbol": self.symbol,
            "asset_type": self.asset_type,
            "order_kind": self.order_kind,
            "side": self.side,
            "quantity": _amount(self.quantity),
            "requested_price": _amount(self.requested_price),
            "execution_price": _amount(self.execution_price),
            "status": self.status,
            "filled_quantity": _amount(self.filled_quantity),
            "close_price": _amount(self.close_price),
            "realized_pnl": _amount(self.realized_pnl),
            "realized_pnl_percent": _amount(self.realized_pnl_percent),
            "created_at": self.created_at,
            "executed_at": self.executed_at,
            "closed_at": self.closed_at,
        }

    def __repr__(self):
        return (
            f"<Order(id='{self.id}', {self.side} {self.quantity} {self.symbol}, "
            f"status='{self.status}')>"
        )


class LedgerTransaction(Base):
    """Immutable balance-affecting ledger entry."""

    __tablename__ = "transactions"
    __table_args__ = (CheckConstraint("amount > 0", name="ck_transaction_amount"),)

    id = Column(String(36), primary_key=True, default=new_id)
    wallet_id = Column(
        String(36), ForeignKey("wallets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type = Column(String(32), nullable=False)
    amount = Column(ScaledDecimal(), nullable=False)
    method = Column(String(64), nullable=True)
    status = Column(
        String(32), nullable=False, default=TransactionStatus.COMPLETED.value
    )
    # Order id for trade entries
    reference = Column(String(36), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    wallet = relationship("Wallet", back_populates="transactions")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "wallet_id": self.wallet_id,
            "type": self.type,
            "amount": _amount(self.amount),
            "method": self.method,
            "status": self.status,
            "reference": self.reference,
            "created_at": self.created_at,
            "completed_at": self.completed_at,
        }

    def __repr__(self):
        return f"<LedgerTransaction(type='{self.type}', amount={self.amount}, status='{self.status}')>"
