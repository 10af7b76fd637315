# strategies/macd_rsi.py

from typing import Sequence

from data.candle import Candle
from features.technicals import closes, compute_macd, compute_rsi
from strategies.base import Strategy
from strategies.signal import Action, Signal


MIN_CANDLES = 50
RSI_OVERBOUGHT = 70
RSI_OVERSOLD = 30


class MacdRsiStrategy(Strategy):
    """
    MACD(12, 26, 9) crossover filtered by RSI(14).

    golden cross + RSI < 70  -> ENTER_LONG
    dead cross   + RSI > 30  -> ENTER_SHORT
    dead cross  (filtered)   -> EXIT_LONG
    golden cross (filtered)  -> EXIT_SHORT
    """

    name = "MACD_RSI"

    def analyze(self, window: Sequence[Candle]) -> Signal:
        latest = window[-1]

        if len(window) < MIN_CANDLES:
            return Signal.at(latest)

        close = closes(window)
        macd = compute_macd(close)
        rsi = compute_rsi(close)

        if len(macd) < 2 or rsi.empty:
            return Signal.at(latest)

        cur = macd.iloc[-1]
        prev = macd.iloc[-2]
        cur_rsi = float(rsi.iloc[-1])

        golden = prev["macd"] <= prev["signal"] and cur["macd"] > cur["signal"]
        dead = prev["macd"] >= prev["signal"] and cur["macd"] < cur["signal"]

        diag = {
            "macd": float(cur["macd"]),
            "signal": float(cur["signal"]),
            "rsi": cur_rsi,
        }

        if golden and cur_rsi < RSI_OVERBOUGHT:
            return Signal.at(latest, Action.ENTER_LONG, reason="MACD Golden Cross + RSI < 70", **diag)
        if dead and cur_rsi > RSI_OVERSOLD:
            return Signal.at(latest, Action.ENTER_SHORT, reason="MACD Dead Cross + RSI > 30", **diag)
        if dead:
            return Signal.at(latest, Action.EXIT_LONG, reason="MACD Dead Cross", **diag)
        if golden:
            return Signal.at(latest, Action.EXIT_SHORT, reason="MACD Golden Cross", **diag)

        return Signal.at(latest, **diag)
