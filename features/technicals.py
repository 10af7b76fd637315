# features/technicals.py

import ta
import pandas as pd


def compute_macd(
    close: pd.Series,
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> pd.DataFrame:
    """
    EMA-based MACD line, signal line and histogram.
    Rows before the indicators are defined are dropped.
    """
    macd = ta.trend.MACD(
        close=close,
        window_slow=slow,
        window_fast=fast,
        window_sign=signal,
    )

    out = pd.DataFrame({
        "macd": macd.macd(),
        "signal": macd.macd_signal(),
        "histogram": macd.macd_diff(),
    })
    return out.dropna()


def compute_rsi(close: pd.Series, window: int = 14) -> pd.Series:
    return ta.momentum.RSIIndicator(close=close, window=window).rsi().dropna()


def closes(candles) -> pd.Series:
    return pd.Series([c.close for c in candles], dtype="float64")
