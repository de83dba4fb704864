"""Error taxonomy for order execution and portfolio accounting."""

from typing import Any, Dict, Optional


class TradingError(Exception):
    """Base exception for all engine failures.

    Every subclass carries a stable ``kind`` used by the API layer, a
    human-readable message, and optional diagnostic context that is logged
    but never sent to callers.
    """

    kind = "TradingError"
    status_code = 500

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> Dict[str, str]:
        """Structured ``{kind, message}`` pair for callers."""
        return {"kind": self.kind, "message": self.message}


class InvalidOrderRequest(TradingError):
    """Bad input detected before any state change."""

    kind = "InvalidOrderRequest"
    status_code = 422


class InsufficientBalance(TradingError):
    """Wallet balance does not cover the requested debit."""

    kind = "InsufficientBalance"
    status_code = 409

    def __init__(
        self,
        user_id: str,
        required,
        available=None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"Insufficient balance: {required} required"
        if available is not None:
            message += f", {available} available"
        super().__init__(
            message,
            context={"user_id": user_id, "required": str(required), **(context or {})},
        )
        self.user_id = user_id
        self.required = required
        self.available = available


class QuoteUnavailable(TradingError):
    """The quote provider failed, timed out, or returned no usable price."""

    kind = "QuoteUnavailable"
    status_code = 503

    def __init__(self, symbol: str, reason: str = "no price available"):
        super().__init__(
            f"Quote unavailable for {symbol}: {reason}",
            context={"symbol": symbol, "reason": reason},
        )
        self.symbol = symbol
        self.reason = reason


class OrderNotFound(TradingError):
    """Order does not exist or belongs to another user."""

    kind = "OrderNotFound"
    status_code = 404

    def __init__(self, order_id: str):
        super().__init__(f"Order {order_id} not found", context={"order_id": order_id})
        self.order_id = order_id


class OrderNotClosable(TradingError):
    """Order is not in a status that allows the requested transition."""

    kind = "OrderNotClosable"
    status_code = 409

    def __init__(self, order_id: str, status: str, action: str = "close"):
        super().__init__(
            f"Order {order_id} cannot {action} from status '{status}'",
            context={"order_id": order_id, "status": status, "action": action},
        )
        self.order_id = order_id
        self.status = status


class WalletNotFound(TradingError):
    """User has no wallet yet."""

    kind = "WalletNotFound"
    status_code = 404

    def __init__(self, user_id: str):
        super().__init__(
            f"Wallet for user {user_id} not found", context={"user_id": user_id}
        )
        self.user_id = user_id


class PersistenceFailure(TradingError):
    """Ledger store failed after validation; the unit of work was rolled back."""

    kind = "PersistenceFailure"
    status_code = 500

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        super().__init__(
            f"Ledger {operation} failed; no changes were applied",
            context={
                "operation": operation,
                "cause": type(cause).__name__ if cause else None,
            },
        )
        self.operation = operation
