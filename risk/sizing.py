# risk/sizing.py

from typing import Optional


def fixed_fractional_size(
    balance: float,
    risk_pct: float,
    entry_price: float,
    stop_price: float,
    max_position_notional_pct: Optional[float] = None,
) -> float:
    """
    Classic fixed-fractional position sizing.

    risk_pct = fraction of balance you are willing to lose if the stop is hit
    max_position_notional_pct = optional cap on notional as a fraction of balance
    """

    risk_amount = balance * risk_pct
    per_unit_risk = abs(entry_price - stop_price)

    if per_unit_risk <= 0:
        return 0.0

    qty = risk_amount / per_unit_risk

    if max_position_notional_pct is not None and entry_price > 0:
        max_qty_by_notional = (balance * max_position_notional_pct) / entry_price
        qty = min(qty, max_qty_by_notional)

    return max(0.0, qty)


def implied_leverage(quantity: float, entry_price: float, equity: float) -> float:
    if equity <= 0:
        return 0.0
    return quantity * entry_price / equity
