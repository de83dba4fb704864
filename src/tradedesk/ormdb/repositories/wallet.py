"""Repository for wallet operations."""

from decimal import Decimal
from typing import Optional

from sqlalchemy import update

from ..models import Wallet, utcnow
from .base import BaseRepository


class WalletRepository(BaseRepository):
    """Repository for wallet operations."""

    def get_by_user(self, user_id: str) -> Optional[Wallet]:
        """Get the wallet belonging to a user."""
        return self.session.query(Wallet).filter(Wallet.user_id == user_id).first()

    def create(
        self, user_id: str, initial_balance: Decimal, currency: str = "USD"
    ) -> Wallet:
        """Create a wallet seeded with ``initial_balance``."""
        wallet = Wallet(
            user_id=user_id,
            balance=initial_balance,
            initial_balance=initial_balance,
            currency=currency,
        )
        self.session.add(wallet)
        self.session.flush()
        return wallet

    def adjust_balance(
        self, user_id: str, delta: Decimal, require_funds: bool = True
    ) -> Optional[Wallet]:
        """
        Apply ``delta`` to the balance as a single conditional UPDATE.

        A debit only matches when ``balance >= -delta``, so two concurrent
        debits can never both pass the check against the same balance.

        Returns:
            The refreshed wallet, or None if no row matched (missing wallet
            or, for debits with ``require_funds``, insufficient balance)
        """
        stmt = update(Wallet).where(Wallet.user_id == user_id)
        if delta < 0 and require_funds:
            stmt = stmt.where(Wallet.balance >= -delta)
        stmt = stmt.values(balance=Wallet.balance + delta, updated_at=utcnow())

        result = self.session.execute(stmt.execution_options(synchronize_session=False))
        if result.rowcount != 1:
            return None

        wallet = self.get_by_user(user_id)
        self.session.refresh(wallet)
        return wallet
