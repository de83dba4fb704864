"""Domain events emitted by the trading engine."""

from abc import ABC
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import uuid4


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DomainEvent(ABC):
    """Base class for all domain events."""

    event_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=_utcnow)
    event_version: str = "1.0"
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to a JSON-safe dictionary."""
        result = {
            "event_type": self.__class__.__name__,
            "event_id": self.event_id,
            "timestamp": self.timestamp.isoformat(),
            "event_version": self.event_version,
            "metadata": self.metadata,
        }

        for field_name, field_value in self.__dict__.items():
            if field_name in result:
                continue
            if isinstance(field_value, datetime):
                result[field_name] = field_value.isoformat()
            elif isinstance(field_value, Decimal):
                result[field_name] = str(field_value)
            else:
                result[field_name] = field_value

        return result


@dataclass
class PriceUpdatedEvent(DomainEvent):
    """A fresh quote was obtained from the quote provider."""

    symbol: str = ""
    asset_type: str = ""
    price: Decimal = Decimal("0")


@dataclass
class OrderPlacedEvent(DomainEvent):
    """An order was accepted and persisted."""

    order_id: str = ""
    user_id: str = ""
    symbol: str = ""
    side: str = ""
    order_kind: str = ""
    status: str = ""
    quantity: Decimal = Decimal("0")
    execution_price: Optional[Decimal] = None


@dataclass
class OrderFilledEvent(DomainEvent):
    """A pending order was filled at a provided price."""

    order_id: str = ""
    user_id: str = ""
    symbol: str = ""
    fill_price: Decimal = Decimal("0")


@dataclass
class OrderClosedEvent(DomainEvent):
    """A position was closed and its P&L realized."""

    order_id: str = ""
    user_id: str = ""
    symbol: str = ""
    close_price: Decimal = Decimal("0")
    realized_pnl: Decimal = Decimal("0")
    realized_pnl_percent: Decimal = Decimal("0")


@dataclass
class OrderCancelledEvent(DomainEvent):
    """A pending order was cancelled or rejected."""

    order_id: str = ""
    user_id: str = ""
    status: str = ""
    reason: Optional[str] = None


@dataclass
class WalletBalanceChangedEvent(DomainEvent):
    """A wallet balance moved through the atomic adjust primitive."""

    user_id: str = ""
    wallet_id: str = ""
    transaction_type: str = ""
    amount: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")
    reference: Optional[str] = None
