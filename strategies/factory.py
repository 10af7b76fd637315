# strategies/factory.py

from enum import Enum
from typing import Union

from strategies.base import Strategy
from strategies.macd_histogram import MacdHistogramStrategy
from strategies.macd_rsi import MacdRsiStrategy
from strategies.volatility_breakout import VolatilityBreakoutStrategy


class StrategyName(str, Enum):
    MACD_RSI = "MACD_RSI"
    MACD_HISTOGRAM = "MACD_HISTOGRAM"
    VOLATILITY_BREAKOUT = "VOLATILITY_BREAKOUT"


_REGISTRY = {
    StrategyName.MACD_RSI: MacdRsiStrategy,
    StrategyName.MACD_HISTOGRAM: MacdHistogramStrategy,
    StrategyName.VOLATILITY_BREAKOUT: VolatilityBreakoutStrategy,
}


def create_strategy(name: Union[str, StrategyName]) -> Strategy:
    """
    Unknown names raise ValueError (no silent fallback).
    """
    try:
        key = StrategyName(str(name).upper()) if not isinstance(name, StrategyName) else name
    except ValueError:
        valid = ", ".join(s.value for s in StrategyName)
        raise ValueError(f"Unknown strategy: {name!r} (expected one of {valid})") from None

    return _REGISTRY[key]()
