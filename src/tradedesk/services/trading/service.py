"""Main trading service orchestration."""

from datetime import datetime
from typing import List, Optional

from ...config.logging import get_logger
from ...config.settings import Settings, get_settings
from ...core.quotes import QuoteProvider
from ...events import EventBus
from ...ormdb.ledger import LedgerStore
from ...ormdb.models import LedgerTransaction, Order, Wallet
from .models import HoldingSummary, OrderRequest, PortfolioSummary, ReconciliationReport
from .order_executor import OrderExecutor
from .portfolio_aggregator import PortfolioAggregator
from .position_closer import PositionCloser
from .wallet_service import WalletService

logger = get_logger(__name__)


class TradingService:
    """Facade over order execution, position closing, valuation and wallets.

    Collaborators are passed in; the service holds no global state.
    """

    def __init__(
        self,
        ledger: LedgerStore,
        quotes: QuoteProvider,
        settings: Optional[Settings] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.logger = logger.bind(component="trading_service")
        self.ledger = ledger
        self.quotes = quotes
        self.settings = settings or get_settings()
        self.event_bus = event_bus

        # Initialize component managers
        self.position_closer = PositionCloser(ledger, quotes, event_bus)
        self.order_executor = OrderExecutor(
            ledger, quotes, self.position_closer, self.settings, event_bus
        )
        self.portfolio_aggregator = PortfolioAggregator(
            ledger, quotes, default_timezone=self.settings.portfolio_timezone
        )
        self.wallet_service = WalletService(ledger, self.settings, event_bus)

    async def place_order(self, request: OrderRequest) -> Order:
        return await self.order_executor.place_order(request)

    async def fill_order(self, user_id: str, order_id: str, fill_price) -> Order:
        return await self.order_executor.fill_order(user_id, order_id, fill_price)

    async def cancel_order(self, user_id: str, order_id: str) -> Order:
        return await self.order_executor.cancel_order(user_id, order_id)

    async def close_order(self, user_id: str, order_id: str) -> Order:
        return await self.position_closer.close_order(user_id, order_id)

    def get_order(self, user_id: str, order_id: str) -> Optional[Order]:
        return self.ledger.get_order(order_id, user_id)

    def list_orders(
        self,
        user_id: str,
        status: Optional[str] = None,
        symbol: Optional[str] = None,
        limit: int = 100,
    ) -> List[Order]:
        return self.ledger.get_orders_by_user(
            user_id, status=status, symbol=symbol, limit=limit
        )

    async def get_portfolio_summary(
        self, user_id: str, tz: Optional[str] = None, now: Optional[datetime] = None
    ) -> PortfolioSummary:
        return await self.portfolio_aggregator.summarize(user_id, tz=tz, now=now)

    def get_open_positions(self, user_id: str) -> List[Order]:
        return self.portfolio_aggregator.get_open_positions(user_id)

    async def get_holdings(self, user_id: str) -> List[HoldingSummary]:
        return await self.portfolio_aggregator.get_holdings(user_id)

    def get_wallet(self, user_id: str) -> Wallet:
        return self.wallet_service.get_wallet(user_id)

    def get_ledger(self, user_id: str, limit: Optional[int] = 100) -> List[LedgerTransaction]:
        return self.wallet_service.get_ledger(user_id, limit)

    async def deposit(self, user_id: str, amount, method: str = "bank") -> Wallet:
        return await self.wallet_service.deposit(user_id, amount, method)

    async def withdraw(self, user_id: str, amount, method: str = "bank") -> Wallet:
        return await self.wallet_service.withdraw(user_id, amount, method)

    def reconcile(self, user_id: str) -> ReconciliationReport:
        return self.wallet_service.reconcile(user_id)
