# metrics/performance.py

import math
from dataclasses import asdict, dataclass
from typing import Sequence

import numpy as np

from execution.position import Trade
from execution.settlement import safe_ratio


@dataclass(slots=True, frozen=True)
class BacktestMetrics:
    total_trades: int
    winning_trades: int
    losing_trades: int
    win_rate: float             # percent
    total_pnl: float
    total_pnl_percent: float
    average_win: float
    average_loss: float         # <= 0
    profit_factor: float        # +inf with wins and no losses
    max_drawdown_percent: float

    @property
    def max_drawdown(self) -> float:
        return self.max_drawdown_percent

    def as_dict(self) -> dict:
        out = asdict(self)
        out["max_drawdown"] = self.max_drawdown_percent
        return out


def profit_factor(pnls: Sequence[float]) -> float:
    gross_win = sum(p for p in pnls if p > 0)
    gross_loss = abs(sum(p for p in pnls if p <= 0))

    if gross_loss > 0:
        return gross_win / gross_loss
    if gross_win > 0:
        return math.inf
    return 0.0


def performance_summary(
    trades: Sequence[Trade],
    equity_balances: Sequence[float],
    initial_capital: float,
    max_drawdown_percent: float,
) -> BacktestMetrics:
    pnls = np.array([t.pnl for t in trades], dtype="float64")

    wins = pnls[pnls > 0]
    losses = pnls[pnls <= 0]

    total = len(pnls)
    win_rate = len(wins) / total * 100 if total else 0.0

    first = equity_balances[0] if equity_balances else initial_capital
    last = equity_balances[-1] if equity_balances else initial_capital
    total_pnl = last - first

    return BacktestMetrics(
        total_trades=total,
        winning_trades=len(wins),
        losing_trades=len(losses),
        win_rate=win_rate,
        total_pnl=total_pnl,
        total_pnl_percent=safe_ratio(total_pnl, initial_capital) * 100,
        average_win=float(wins.mean()) if len(wins) else 0.0,
        average_loss=float(losses.mean()) if len(losses) else 0.0,
        profit_factor=profit_factor(pnls.tolist()),
        max_drawdown_percent=max(0.0, max_drawdown_percent),
    )
