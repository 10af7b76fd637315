# strategies/volatility_breakout.py

from typing import Sequence

from data.candle import Candle
from strategies.base import Strategy
from strategies.signal import Action, Signal


class VolatilityBreakoutStrategy(Strategy):
    """
    Long-only breakout: enter when the close clears
    today's open + K * (yesterday's high - yesterday's low).
    Days are UTC calendar days.
    """

    name = "VOLATILITY_BREAKOUT"

    def __init__(self, k: float = 0.5):
        self.k = k

    def analyze(self, window: Sequence[Candle]) -> Signal:
        latest = window[-1]
        if len(window) < 2:
            return Signal.at(latest)

        today = latest.time.date()
        today_bars = [c for c in window if c.time.date() == today]
        before = [c for c in window if c.time.date() < today]
        if not before or not today_bars:
            return Signal.at(latest)

        yesterday = before[-1].time.date()
        yesterday_bars = [c for c in before if c.time.date() == yesterday]

        prev_high = max(c.high for c in yesterday_bars)
        prev_low = min(c.low for c in yesterday_bars)
        today_open = today_bars[0].open

        rng = prev_high - prev_low
        target = today_open + rng * self.k

        if latest.close > target:
            return Signal.at(
                latest,
                Action.ENTER_LONG,
                reason=(
                    f"Volatility Breakout: Price({latest.close}) > Target({target}) "
                    f"[Open({today_open}) + Range({rng}) * K({self.k})]"
                ),
                target_price=target,
                today_open=today_open,
                prev_high=prev_high,
                prev_low=prev_low,
            )

        return Signal.at(latest)
