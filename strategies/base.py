# strategies/base.py

from abc import ABC, abstractmethod
from typing import Sequence

from data.candle import Candle
from strategies.signal import Signal


class Strategy(ABC):
    name = "base"

    def on_init(self) -> None:
        """
        Called once before a run. Strategies with state reset it here.
        """

    @abstractmethod
    def analyze(self, window: Sequence[Candle]) -> Signal:
        """
        window: closed candles, oldest first, latest last (never empty)
        """
