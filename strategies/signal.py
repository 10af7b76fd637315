# strategies/signal.py

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict

from data.candle import Candle


class Action(str, Enum):
    HOLD = "HOLD"
    ENTER_LONG = "ENTER_LONG"
    ENTER_SHORT = "ENTER_SHORT"
    EXIT_LONG = "EXIT_LONG"
    EXIT_SHORT = "EXIT_SHORT"


@dataclass(slots=True)
class Signal:
    action: Action
    price: float
    timestamp: int                                   # ms
    metadata: Dict[str, Any] = field(default_factory=dict)  # diagnostics only

    @classmethod
    def at(cls, candle: Candle, action: Action = Action.HOLD, **metadata) -> "Signal":
        return cls(
            action=action,
            price=candle.close,
            timestamp=candle.timestamp,
            metadata=metadata,
        )
