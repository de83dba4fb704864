"""Repository classes for database operations using SQLAlchemy ORM."""

from .base import BaseRepository
from .order import OrderRepository
from .transaction import TransactionRepository
from .wallet import WalletRepository

__all__ = [
    "BaseRepository",
    "OrderRepository",
    "TransactionRepository",
    "WalletRepository",
]
