# execution/settlement.py

from enum import Enum


LONG = "LONG"
SHORT = "SHORT"

ENTRY = "ENTRY"
EXIT = "EXIT"


class FeePolicy(str, Enum):
    """
    How a closed position is charged.

    ROUND_TRIP: entry and exit notional (backtest ledger default)
    EXIT_ONLY:  exit notional only (margin ledger default)
    """
    ROUND_TRIP = "round_trip"
    EXIT_ONLY = "exit_only"


def fill_price(market_price: float, side: str, direction: str, slippage: float) -> float:
    """
    Slippage always moves the fill against the trader:
    buys (LONG entry, SHORT exit) pay more, sells receive less.
    """
    if side not in (LONG, SHORT):
        raise ValueError(f"Unknown side: {side}")
    if direction not in (ENTRY, EXIT):
        raise ValueError(f"Unknown direction: {direction}")

    is_buy = (side == LONG) == (direction == ENTRY)
    if is_buy:
        return market_price * (1 + slippage)
    return market_price * (1 - slippage)


def gross_pnl(side: str, entry_price: float, exit_price: float, quantity: float) -> float:
    if side == LONG:
        return (exit_price - entry_price) * quantity
    return (entry_price - exit_price) * quantity


def round_trip_fee(entry_notional: float, exit_notional: float, fee_rate: float) -> float:
    return (entry_notional + exit_notional) * fee_rate


def exit_only_fee(exit_notional: float, fee_rate: float) -> float:
    return exit_notional * fee_rate


def fee(policy: FeePolicy, entry_notional: float, exit_notional: float, fee_rate: float) -> float:
    policy = FeePolicy(policy)
    if policy is FeePolicy.ROUND_TRIP:
        return round_trip_fee(entry_notional, exit_notional, fee_rate)
    return exit_only_fee(exit_notional, fee_rate)


def safe_ratio(numerator: float, denominator: float) -> float:
    # zero denominators resolve to 0 instead of inf / nan
    if denominator == 0:
        return 0.0
    return numerator / denominator
