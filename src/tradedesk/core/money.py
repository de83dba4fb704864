"""Fixed-point arithmetic for prices, notionals and profit/loss.

All amounts are ``Decimal``. Stored values use eight decimal places, the
same scale as the ledger columns; percentages use four.
"""

from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation
from typing import Union

from .types import OrderSide

Number = Union[Decimal, int, float, str]

MONEY_PLACES = Decimal("0.00000001")
PERCENT_PLACES = Decimal("0.0001")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value: Number) -> Decimal:
    """Convert an int, float, str or Decimal into a finite Decimal.

    Floats go through ``str`` so 0.1 becomes Decimal("0.1") and not its
    binary expansion.
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValueError("Booleans are not amounts")
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        try:
            result = Decimal(value)
        except (InvalidOperation, TypeError):
            raise ValueError(f"Not a decimal amount: {value!r}")

    if not result.is_finite():
        raise ValueError(f"Amount must be finite: {value!r}")
    return result


def quantize_money(value: Number) -> Decimal:
    return to_decimal(value).quantize(MONEY_PLACES, rounding=ROUND_HALF_EVEN)


def quantize_percent(value: Number) -> Decimal:
    return to_decimal(value).quantize(PERCENT_PLACES, rounding=ROUND_HALF_EVEN)


def notional(price: Number, quantity: Number) -> Decimal:
    """Cash value of a trade: price x quantity."""
    return quantize_money(to_decimal(price) * to_decimal(quantity))


def realized_pnl(
    side: OrderSide, entry_price: Number, close_price: Number, quantity: Number
) -> Decimal:
    """Profit or loss of a position closed at ``close_price``.

    Buy positions gain when the price rises, sell-originated positions gain
    when it falls.
    """
    entry = to_decimal(entry_price)
    close = to_decimal(close_price)
    qty = to_decimal(quantity)

    if OrderSide(side) == OrderSide.BUY:
        pnl = (close - entry) * qty
    else:
        pnl = (entry - close) * qty
    return quantize_money(pnl)


def unrealized_pnl(
    entry_price: Number, current_price: Number, quantity: Number
) -> Decimal:
    """Paper profit or loss of an open buy position."""
    return realized_pnl(OrderSide.BUY, entry_price, current_price, quantity)


def pnl_percent(pnl: Number, cost_basis: Number) -> Decimal:
    """P&L as a percentage of the cost basis, 0 when the basis is 0."""
    basis = to_decimal(cost_basis)
    if basis == ZERO:
        return quantize_percent(ZERO)
    return quantize_percent(to_decimal(pnl) / basis * HUNDRED)


def portfolio_percent(pnl: Number, cost_basis: Number) -> Decimal:
    """Portfolio-level percentage with a defined result for non-positive bases.

    A zero or negative basis yields +100 for a gain, -100 for a loss and 0
    for no change.
    """
    basis = to_decimal(cost_basis)
    amount = to_decimal(pnl)

    if basis <= ZERO:
        if amount > ZERO:
            return quantize_percent(HUNDRED)
        if amount < ZERO:
            return quantize_percent(-HUNDRED)
        return quantize_percent(ZERO)
    return quantize_percent(amount / basis * HUNDRED)
