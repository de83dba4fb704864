"""SQLAlchemy ORM package for the trading ledger."""

from .database import (
    Base,
    build_engine,
    check_database_health,
    create_session_factory,
    create_tables,
    drop_tables,
    get_engine,
    get_session_factory,
    reset_database,
)
from .ledger import LedgerStore, LedgerUnit
from .models import LedgerTransaction, Order, Wallet

__all__ = [
    "Base",
    "build_engine",
    "check_database_health",
    "create_session_factory",
    "create_tables",
    "drop_tables",
    "get_engine",
    "get_session_factory",
    "reset_database",
    "LedgerStore",
    "LedgerUnit",
    "LedgerTransaction",
    "Order",
    "Wallet",
]
