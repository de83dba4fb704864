"""Wallet deposits, withdrawals, ledger listing and reconciliation."""

from decimal import Decimal
from typing import List, Optional

from ...config.logging import get_logger, log_audit_event
from ...config.settings import Settings
from ...core.errors import InsufficientBalance, InvalidOrderRequest, WalletNotFound
from ...core.money import ZERO, quantize_money
from ...core.types import TransactionStatus, TransactionType
from ...events import EventBus, WalletBalanceChangedEvent
from ...ormdb.ledger import LedgerStore
from ...ormdb.models import LedgerTransaction, Wallet, utcnow
from .models import ReconciliationReport

logger = get_logger(__name__)

FUNDING_METHODS = ("upi", "card", "crypto", "bank")


class WalletService:
    """Cash movements that are not trades."""

    def __init__(
        self,
        ledger: LedgerStore,
        settings: Settings,
        event_bus: Optional[EventBus] = None,
    ):
        self.ledger = ledger
        self.settings = settings
        self.event_bus = event_bus
        self.logger = logger.bind(component="wallet_service")

    def get_wallet(self, user_id: str) -> Wallet:
        """
        Get a user's wallet.

        Raises:
            WalletNotFound: User has no wallet yet
        """
        wallet = self.ledger.get_wallet(user_id)
        if wallet is None:
            raise WalletNotFound(user_id)
        return wallet

    def get_ledger(self, user_id: str, limit: Optional[int] = 100) -> List[LedgerTransaction]:
        """Ledger entries for a user's wallet, newest first."""
        wallet = self.get_wallet(user_id)
        return self.ledger.get_transactions(wallet.id, limit)

    async def deposit(self, user_id: str, amount, method: str = "bank") -> Wallet:
        """
        Credit a wallet, creating it on first use.

        Raises:
            InvalidOrderRequest: Non-positive amount or unknown method
        """
        amount = self._validate(amount, method)
        self.ledger.ensure_wallet(
            user_id, self.settings.default_wallet_balance, self.settings.default_currency
        )

        with self.ledger.unit_of_work("deposit") as unit:
            wallet = unit.adjust_wallet_balance(user_id, amount, require_funds=False)
            if wallet is None:
                raise WalletNotFound(user_id)
            entry = unit.insert_transaction(
                wallet_id=wallet.id,
                type=TransactionType.DEPOSIT.value,
                amount=amount,
                method=method,
                status=TransactionStatus.COMPLETED.value,
                completed_at=utcnow(),
            )

        await self._record(wallet, TransactionType.DEPOSIT, amount, entry.id)
        return wallet

    async def withdraw(self, user_id: str, amount, method: str = "bank") -> Wallet:
        """
        Debit a wallet.

        Raises:
            InvalidOrderRequest: Non-positive amount or unknown method
            WalletNotFound: User has no wallet
            InsufficientBalance: Amount exceeds the balance
        """
        amount = self._validate(amount, method)

        with self.ledger.unit_of_work("withdraw") as unit:
            wallet = unit.adjust_wallet_balance(user_id, -amount)
            if wallet is None:
                current = unit.get_wallet(user_id)
                if current is None:
                    raise WalletNotFound(user_id)
                raise InsufficientBalance(user_id, amount, current.balance)
            entry = unit.insert_transaction(
                wallet_id=wallet.id,
                type=TransactionType.WITHDRAWAL.value,
                amount=amount,
                method=method,
                status=TransactionStatus.COMPLETED.value,
                completed_at=utcnow(),
            )

        await self._record(wallet, TransactionType.WITHDRAWAL, amount, entry.id)
        return wallet

    def reconcile(self, user_id: str) -> ReconciliationReport:
        """
        Check the stored balance against the seed plus completed entries.

        Raises:
            WalletNotFound: User has no wallet
        """
        wallet = self.get_wallet(user_id)
        net = self.ledger.get_ledger_total(wallet.id)
        entries = self.ledger.get_transactions(wallet.id, limit=None)

        expected = quantize_money(wallet.initial_balance + net)
        actual = quantize_money(wallet.balance)
        difference = actual - expected
        report = ReconciliationReport(
            user_id=user_id,
            wallet_id=wallet.id,
            balanced=difference == ZERO,
            expected_balance=expected,
            actual_balance=actual,
            difference=difference,
            transaction_count=len(entries),
        )

        if not report.balanced:
            self.logger.warning(
                "Wallet out of balance",
                user_id=user_id,
                wallet_id=wallet.id,
                expected=str(expected),
                actual=str(actual),
                difference=str(difference),
            )
        return report

    def _validate(self, amount, method: str) -> Decimal:
        if method not in FUNDING_METHODS:
            raise InvalidOrderRequest(
                f"Unknown method '{method}', expected one of {', '.join(FUNDING_METHODS)}"
            )
        try:
            amount = quantize_money(amount)
        except ValueError as e:
            raise InvalidOrderRequest(f"Invalid amount: {e}")
        if amount <= ZERO:
            raise InvalidOrderRequest("amount must be greater than 0")
        return amount

    async def _record(
        self,
        wallet: Wallet,
        transaction_type: TransactionType,
        amount: Decimal,
        reference: str,
    ) -> None:
        self.logger.info(
            "Wallet balance changed",
            user_id=wallet.user_id,
            type=transaction_type.value,
            amount=str(amount),
            balance=str(wallet.balance),
        )
        log_audit_event(
            transaction_type.value,
            user_id=wallet.user_id,
            amount=str(amount),
            balance=str(wallet.balance),
            transaction_id=reference,
        )
        if self.event_bus is not None:
            await self.event_bus.publish(
                WalletBalanceChangedEvent(
                    user_id=wallet.user_id,
                    wallet_id=wallet.id,
                    transaction_type=transaction_type.value,
                    amount=amount,
                    balance=wallet.balance,
                    reference=reference,
                )
            )
