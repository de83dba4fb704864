"""Enumerations shared by the ledger models and the trading services."""

from enum import Enum


class AssetType(str, Enum):
    """Market an instrument trades in."""

    EQUITY = "equity"
    CRYPTO = "crypto"
    FOREX = "forex"


class OrderKind(str, Enum):
    """How the execution price is determined."""

    MARKET = "market"
    LIMIT = "limit"
    STOP = "stop"


class OrderSide(str, Enum):
    """Direction of the trade."""

    BUY = "buy"
    SELL = "sell"


class OrderStatus(str, Enum):
    """Order lifecycle states.

    pending -> filled -> closed, with pending -> cancelled and
    pending -> rejected as terminal alternates.
    """

    PENDING = "pending"
    FILLED = "filled"
    CLOSED = "closed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


class TransactionType(str, Enum):
    """Kinds of balance-affecting ledger entries."""

    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    TRADE_DEBIT = "trade_debit"
    TRADE_CREDIT = "trade_credit"

    @property
    def is_credit(self) -> bool:
        return self in (TransactionType.DEPOSIT, TransactionType.TRADE_CREDIT)


class TransactionStatus(str, Enum):
    """Settlement state of a ledger entry."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


TRADE_METHOD = "trade"
