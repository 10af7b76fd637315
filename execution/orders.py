# execution/orders.py

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class OrderSide(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class OrderType(str, Enum):
    MARKET = "MARKET"
    LIMIT = "LIMIT"


class OrderStatus(str, Enum):
    NEW = "NEW"
    FILLED = "FILLED"
    CANCELED = "CANCELED"
    REJECTED = "REJECTED"


def side_for_entry(position_side: str) -> OrderSide:
    return OrderSide.BUY if position_side == "LONG" else OrderSide.SELL


def side_for_exit(position_side: str) -> OrderSide:
    return OrderSide.SELL if position_side == "LONG" else OrderSide.BUY


@dataclass(slots=True)
class Order:
    id: str
    symbol: str
    side: OrderSide
    type: OrderType
    quantity: float
    price: Optional[float]
    status: OrderStatus
    timestamp: int                      # ms
    filled_quantity: float = 0.0
    average_price: Optional[float] = None


@dataclass(slots=True, frozen=True)
class Fill:
    id: str
    order_id: str
    symbol: str
    side: OrderSide
    price: float
    quantity: float
    commission: float
    commission_asset: str
    realized_pnl: float
    timestamp: int


@dataclass(slots=True, frozen=True)
class Balance:
    asset: str
    free: float
    locked: float
    total: float


@dataclass(slots=True, frozen=True)
class PositionSnapshot:
    """
    Exchange-style view of an open position. `size` is signed:
    positive for long, negative for short.
    """
    symbol: str
    size: float
    entry_price: float
    mark_price: float
    unrealized_pnl: float
    leverage: float
    margin_type: str = "isolated"
    liquidation_price: float = 0.0
