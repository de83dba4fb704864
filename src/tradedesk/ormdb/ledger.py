"""Transactional ledger store over wallets, orders and ledger entries."""

from contextlib import contextmanager
from decimal import Decimal
from typing import Iterator, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ..config.logging import get_logger
from ..core.errors import (
    InsufficientBalance,
    PersistenceFailure,
    TradingError,
    WalletNotFound,
)
from .database import get_session_factory
from .models import LedgerTransaction, Order, Wallet
from .repositories import OrderRepository, TransactionRepository, WalletRepository

logger = get_logger(__name__)


class LedgerUnit:
    """Operations available inside one unit of work.

    Everything done through a unit shares a single database transaction:
    it is committed together when the ``unit_of_work`` block exits cleanly
    and rolled back together otherwise.
    """

    def __init__(self, session):
        self.session = session
        self.wallets = WalletRepository(session)
        self.orders = OrderRepository(session)
        self.transactions = TransactionRepository(session)

    def get_wallet(self, user_id: str) -> Optional[Wallet]:
        return self.wallets.get_by_user(user_id)

    def create_wallet(
        self, user_id: str, initial_balance: Decimal, currency: str = "USD"
    ) -> Wallet:
        return self.wallets.create(user_id, initial_balance, currency)

    def get_or_create_wallet(
        self, user_id: str, initial_balance: Decimal, currency: str = "USD"
    ) -> Wallet:
        """Wallet for ``user_id``, created in this unit if missing."""
        wallet = self.wallets.get_by_user(user_id)
        if wallet is None:
            wallet = self.wallets.create(user_id, initial_balance, currency)
        return wallet

    def adjust_wallet_balance(
        self, user_id: str, delta: Decimal, require_funds: bool = True
    ) -> Optional[Wallet]:
        """Atomic conditional balance change; None when it did not apply."""
        return self.wallets.adjust_balance(user_id, delta, require_funds=require_funds)

    def insert_transaction(self, **fields) -> LedgerTransaction:
        return self.transactions.insert(**fields)

    def insert_order(self, **fields) -> Order:
        return self.orders.insert(**fields)

    def get_order(self, order_id: str, user_id: Optional[str] = None) -> Optional[Order]:
        return self.orders.get(order_id, user_id)

    def update_order(self, order_id: str, **fields) -> Optional[Order]:
        return self.orders.update(order_id, **fields)

    def get_orders_by_user(self, user_id: str, **filters) -> List[Order]:
        return self.orders.list_by_user(user_id, **filters)

    def open_positions(self, user_id: str, symbol: Optional[str] = None) -> List[Order]:
        return self.orders.open_positions(user_id, symbol)

    def close_position(self, order_id: str, **fields) -> bool:
        """Compare-and-set close; False if the position is no longer open."""
        return self.orders.mark_closed(order_id, **fields)

    def transition_order(self, order_id: str, from_status: str, **fields) -> bool:
        return self.orders.transition_status(order_id, from_status, **fields)


class LedgerStore:
    """Entry point to the ledger.

    Multi-step mutations go through ``unit_of_work``; the read helpers each
    open their own short-lived session.
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory or get_session_factory()
        self.logger = logger.bind(component="ledger_store")

    @contextmanager
    def unit_of_work(self, operation: str = "unit_of_work") -> Iterator[LedgerUnit]:
        """
        Run a block of ledger operations as one atomic transaction.

        Raises:
            PersistenceFailure: A database error occurred; nothing was applied
        """
        session = self._session_factory()
        try:
            yield LedgerUnit(session)
            session.commit()
        except TradingError:
            session.rollback()
            raise
        except SQLAlchemyError as e:
            session.rollback()
            self.logger.error(
                "Ledger operation rolled back",
                operation=operation,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise PersistenceFailure(operation, e) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def ensure_wallet(
        self, user_id: str, initial_balance: Decimal, currency: str = "USD"
    ) -> Wallet:
        """Get the user's wallet, creating it with ``initial_balance`` if missing."""
        wallet = self.get_wallet(user_id)
        if wallet is not None:
            return wallet

        session = self._session_factory()
        try:
            wallet = WalletRepository(session).create(user_id, initial_balance, currency)
            session.commit()
            self.logger.info(
                "Wallet created", user_id=user_id, initial_balance=str(initial_balance)
            )
            return wallet
        except IntegrityError:
            # Lost a creation race on the unique user_id; the winner's row stands
            session.rollback()
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceFailure("create_wallet", e) from e
        finally:
            session.close()

        wallet = self.get_wallet(user_id)
        if wallet is None:
            raise PersistenceFailure("create_wallet")
        return wallet

    def get_wallet(self, user_id: str) -> Optional[Wallet]:
        with self.unit_of_work("get_wallet") as unit:
            return unit.get_wallet(user_id)

    def create_wallet(
        self, user_id: str, initial_balance: Decimal, currency: str = "USD"
    ) -> Wallet:
        with self.unit_of_work("create_wallet") as unit:
            return unit.create_wallet(user_id, initial_balance, currency)

    def adjust_wallet_balance(
        self, user_id: str, delta: Decimal, require_funds: bool = True
    ) -> Wallet:
        """
        Apply a balance change in its own transaction.

        Raises:
            WalletNotFound: User has no wallet
            InsufficientBalance: Debit would overdraw the wallet
        """
        with self.unit_of_work("adjust_wallet_balance") as unit:
            wallet = unit.adjust_wallet_balance(user_id, delta, require_funds)
            if wallet is None:
                current = unit.get_wallet(user_id)
                if current is None:
                    raise WalletNotFound(user_id)
                raise InsufficientBalance(user_id, -delta, current.balance)
            return wallet

    def insert_transaction(self, **fields) -> LedgerTransaction:
        with self.unit_of_work("insert_transaction") as unit:
            return unit.insert_transaction(**fields)

    def insert_order(self, **fields) -> Order:
        with self.unit_of_work("insert_order") as unit:
            return unit.insert_order(**fields)

    def update_order(self, order_id: str, **fields) -> Optional[Order]:
        with self.unit_of_work("update_order") as unit:
            return unit.update_order(order_id, **fields)

    def get_order(self, order_id: str, user_id: Optional[str] = None) -> Optional[Order]:
        with self.unit_of_work("get_order") as unit:
            return unit.get_order(order_id, user_id)

    def get_orders_by_user(self, user_id: str, **filters) -> List[Order]:
        with self.unit_of_work("get_orders_by_user") as unit:
            return unit.get_orders_by_user(user_id, **filters)

    def get_open_positions(
        self, user_id: str, symbol: Optional[str] = None
    ) -> List[Order]:
        with self.unit_of_work("get_open_positions") as unit:
            return unit.open_positions(user_id, symbol)

    def get_transactions(
        self, wallet_id: str, limit: Optional[int] = 100
    ) -> List[LedgerTransaction]:
        with self.unit_of_work("get_transactions") as unit:
            return unit.transactions.list_by_wallet(wallet_id, limit)

    def get_ledger_total(self, wallet_id: str) -> Decimal:
        with self.unit_of_work("get_ledger_total") as unit:
            return unit.transactions.net_completed_total(wallet_id)
