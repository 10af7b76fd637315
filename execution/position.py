# execution/position.py

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from execution.settlement import gross_pnl


@dataclass(slots=True)
class Position:
    """
    Represents a single open trading position.
    """
    symbol: str
    side: str            # "LONG" or "SHORT"
    entry_price: float   # slippage-adjusted
    quantity: float
    entry_time: datetime
    leverage: Optional[float] = None  # margin mode only

    def pnl(self, price: float) -> float:
        """
        Gross profit / loss if the position were valued at `price`.
        """
        return gross_pnl(self.side, self.entry_price, price, self.quantity)

    @property
    def notional(self) -> float:
        return self.entry_price * self.quantity

    @property
    def margin(self) -> float:
        if not self.leverage:
            return self.notional
        return self.notional / self.leverage


@dataclass(slots=True, frozen=True)
class Trade:
    """
    Closed position. Created once by a ledger, never mutated.
    """
    id: int
    symbol: str
    side: str
    entry_time: datetime
    entry_price: float
    exit_time: datetime
    exit_price: float
    quantity: float
    pnl: float               # net of fees
    pnl_percent: float       # pnl over committed capital, x100
    reason: str
    cumulative_balance: Optional[float] = None
    fee: float = 0.0
