# data/candle.py

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Iterable

import pandas as pd


CANDLE_COLUMNS = ["time", "open", "high", "low", "close", "volume"]


@dataclass(slots=True, frozen=True)
class Candle:
    symbol: str
    interval: str
    open: float
    high: float
    low: float
    close: float
    volume: float
    timestamp: int          # candle open time, ms
    is_final: bool = True

    @property
    def time(self) -> datetime:
        return ms_to_datetime(self.timestamp)


@dataclass(slots=True, frozen=True)
class Ticker:
    symbol: str
    price: float
    timestamp: int


def ms_to_datetime(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


def datetime_to_ms(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def candle_from_ohlcv(symbol: str, interval: str, bar: list) -> Candle:
    """
    ccxt OHLCV row: [time, open, high, low, close, volume]
    """
    return Candle(
        symbol=symbol,
        interval=interval,
        open=float(bar[1]),
        high=float(bar[2]),
        low=float(bar[3]),
        close=float(bar[4]),
        volume=float(bar[5]),
        timestamp=int(bar[0]),
        is_final=True,
    )


def candles_to_frame(candles: Iterable[Candle]) -> pd.DataFrame:
    rows = [asdict(c) for c in candles]
    if not rows:
        return pd.DataFrame(columns=CANDLE_COLUMNS)

    df = pd.DataFrame(rows)
    df = df.rename(columns={"timestamp": "time"})
    return df[CANDLE_COLUMNS].reset_index(drop=True)
