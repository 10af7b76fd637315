# metrics/equity.py

from typing import Sequence

import pandas as pd


def drawdown_percent(balances: pd.Series) -> pd.Series:
    """
    Running-peak drawdown in percent. Always >= 0.
    Points where the peak is not positive report 0.
    """
    balances = balances.astype("float64")
    peak = balances.cummax()
    dd = (peak - balances) / peak * 100
    return dd.where(peak > 0, 0.0).fillna(0.0).clip(lower=0.0)


def apply_drawdown(points: Sequence) -> None:
    """
    Second pass over an equity curve: fills `drawdown_percent` in place.
    """
    if not points:
        return

    dd = drawdown_percent(pd.Series([p.balance for p in points]))
    for point, value in zip(points, dd):
        point.drawdown_percent = float(value)
