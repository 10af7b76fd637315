# strategies/macd_histogram.py

from typing import Sequence

from data.candle import Candle
from features.technicals import closes, compute_macd
from strategies.base import Strategy
from strategies.signal import Action, Signal


class MacdHistogramStrategy(Strategy):
    """
    Histogram turning points over the last three bars.

    all three < 0 and h[-3] > h[-2] < h[-1]  -> ENTER_LONG  (valley)
    all three > 0 and h[-3] < h[-2] > h[-1]  -> ENTER_SHORT (peak)
    """

    name = "MACD_HISTOGRAM"

    def analyze(self, window: Sequence[Candle]) -> Signal:
        latest = window[-1]

        hist = compute_macd(closes(window))["histogram"]
        if len(hist) < 3:
            return Signal.at(latest)

        h2, h1, h0 = (float(v) for v in hist.iloc[-3:])

        if h0 < 0 and h1 < 0 and h2 < 0:
            if h2 > h1 and h1 < h0:
                return Signal.at(
                    latest,
                    Action.ENTER_LONG,
                    reason="MACD Histogram Valley (Reversal Up)",
                    histogram=h0,
                )
        elif h0 > 0 and h1 > 0 and h2 > 0:
            if h2 < h1 and h1 > h0:
                return Signal.at(
                    latest,
                    Action.ENTER_SHORT,
                    reason="MACD Histogram Peak (Reversal Down)",
                    histogram=h0,
                )

        return Signal.at(latest)
