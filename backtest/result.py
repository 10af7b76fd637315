# backtest/result.py

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import List

import pandas as pd

from execution.position import Trade
from metrics.performance import BacktestMetrics


@dataclass(slots=True)
class EquityPoint:
    timestamp: datetime
    balance: float              # realized + unrealized
    drawdown_percent: float = 0.0


@dataclass
class BacktestResult:
    config: object
    trades: List[Trade]
    metrics: BacktestMetrics
    equity_curve: List[EquityPoint] = field(default_factory=list)

    def trades_frame(self) -> pd.DataFrame:
        if not self.trades:
            return pd.DataFrame(columns=[f for f in Trade.__dataclass_fields__])
        return pd.DataFrame([asdict(t) for t in self.trades])

    def equity_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [asdict(p) for p in self.equity_curve],
            columns=["timestamp", "balance", "drawdown_percent"],
        )
