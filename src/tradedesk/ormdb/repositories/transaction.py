"""Repository for ledger transaction operations."""

from decimal import Decimal
from typing import List, Optional

from ...core.types import TransactionStatus, TransactionType
from ..models import LedgerTransaction
from .base import BaseRepository


class TransactionRepository(BaseRepository):
    """Append-only access to ledger entries."""

    def insert(self, **fields) -> LedgerTransaction:
        """Record a ledger entry."""
        entry = LedgerTransaction(**fields)
        self.session.add(entry)
        self.session.flush()
        return entry

    def list_by_wallet(
        self, wallet_id: str, limit: Optional[int] = 100
    ) -> List[LedgerTransaction]:
        """Entries for a wallet, newest first. ``limit=None`` returns all."""
        query = (
            self.session.query(LedgerTransaction)
            .filter(LedgerTransaction.wallet_id == wallet_id)
            .order_by(LedgerTransaction.created_at.desc(), LedgerTransaction.id)
        )
        if limit:
            query = query.limit(limit)
        return query.all()

    def net_completed_total(self, wallet_id: str) -> Decimal:
        """Credits minus debits over all completed entries."""
        rows = (
            self.session.query(LedgerTransaction.type, LedgerTransaction.amount)
            .filter(
                LedgerTransaction.wallet_id == wallet_id,
                LedgerTransaction.status == TransactionStatus.COMPLETED.value,
            )
            .all()
        )

        # Summed in Python so SQLite's float storage never leaks into the total
        total = Decimal("0")
        for entry_type, amount in rows:
            if TransactionType(entry_type).is_credit:
                total += amount
            else:
                total -= amount
        return total
