# execution/paper_exchange.py

import itertools
import logging
import math
import time
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Set

from data.candle import Ticker, datetime_to_ms
from execution.broker import ExchangeClient
from execution.errors import PriceUnavailable, UnsupportedPartialOrFlip, UnsupportedPendingOrder
from execution.ledger import MarginLedger
from execution.orders import (
    Balance,
    Fill,
    Order,
    OrderSide,
    OrderStatus,
    OrderType,
    PositionSnapshot,
    side_for_exit,
)
from execution.position import Position, Trade
from execution.settlement import ENTRY, EXIT, LONG, SHORT, fill_price

logger = logging.getLogger(__name__)


DEFAULT_LEVERAGE = 10


class PaperExchange(ExchangeClient):
    """
    Fills orders synthetically against the last mark price seen on the stream
    and settles them on a MarginLedger.

    Orders either fill immediately or fail; nothing rests on a book.
    Once the price is resolved, settlement runs without awaiting, so two
    orders never interleave.
    """

    def __init__(
        self,
        ledger: MarginLedger,
        stream,
        leverage: float = DEFAULT_LEVERAGE,
        slippage_percent: float = 0.0,
        quote_asset: str = "USDT",
        on_trade: Optional[Callable[[Trade], None]] = None,
    ):
        self.ledger = ledger
        self.stream = stream
        self.leverage = leverage
        self.slippage = slippage_percent
        self.quote_asset = quote_asset
        self.on_trade = on_trade

        self._prices: Dict[str, float] = {}
        self._subscribed: Set[str] = set()
        self._order_ids = itertools.count(1)

    # ----------------------------
    # PRICE CACHE
    # ----------------------------
    def watch(self, symbol: str) -> None:
        if symbol in self._subscribed:
            return
        self._subscribed.add(symbol)
        self.stream.subscribe_ticker(symbol, self._on_ticker)

    def _on_ticker(self, ticker: Ticker) -> None:
        self._prices[ticker.symbol] = ticker.price

    def last_price(self, symbol: str) -> Optional[float]:
        return self._prices.get(symbol)

    # ----------------------------
    # ORDERS
    # ----------------------------
    async def create_order(
        self,
        symbol: str,
        side: OrderSide,
        order_type: OrderType,
        quantity: float,
        price: Optional[float] = None,
    ) -> Order:
        side = OrderSide(side)
        order_type = OrderType(order_type)

        if quantity <= 0:
            raise ValueError(f"Order quantity must be > 0, got {quantity}")

        self.watch(symbol)
        last = self._prices.get(symbol)

        if order_type is OrderType.LIMIT:
            if price is None:
                raise ValueError("LIMIT order requires a price")
            if last is not None:
                if side is OrderSide.BUY and price < last:
                    raise UnsupportedPendingOrder(
                        f"BUY limit {price} below last price {last}: pending orders not supported"
                    )
                if side is OrderSide.SELL and price > last:
                    raise UnsupportedPendingOrder(
                        f"SELL limit {price} above last price {last}: pending orders not supported"
                    )
            exec_price = price
        else:
            if last is None:
                raise PriceUnavailable(f"Market price unavailable for {symbol}. Stream not ready?")
            exec_price = None

        position_side = LONG if side is OrderSide.BUY else SHORT
        existing = self.ledger.get_open_position(symbol)

        if existing is not None and existing.side != position_side:
            if not math.isclose(quantity, existing.quantity, rel_tol=1e-9, abs_tol=1e-12):
                raise UnsupportedPartialOrFlip(
                    f"{symbol}: order qty {quantity} != open {existing.side} qty "
                    f"{existing.quantity}; partial close or flip not supported"
                )
            px = exec_price if exec_price is not None else fill_price(last, existing.side, EXIT, self.slippage)
            trade = self.ledger.close(symbol, px, "Order Signal")
            if self.on_trade is not None:
                self.on_trade(trade)
        else:
            px = exec_price if exec_price is not None else fill_price(last, position_side, ENTRY, self.slippage)
            self.ledger.open(Position(
                symbol=symbol,
                side=position_side,
                entry_price=px,
                quantity=quantity,
                entry_time=_utcnow(),
                leverage=self.leverage,
            ))

        return Order(
            id=str(next(self._order_ids)),
            symbol=symbol,
            side=side,
            type=order_type,
            quantity=quantity,
            price=px,
            status=OrderStatus.FILLED,
            timestamp=_now_ms(),
            filled_quantity=quantity,
            average_price=px,
        )

    async def cancel_order(self, order_id: str, symbol: str) -> None:
        logger.warning(
            "cancel_order(%s, %s) ignored: paper orders fill immediately or fail",
            order_id, symbol,
        )

    # ----------------------------
    # READ-ONLY PROJECTIONS
    # ----------------------------
    async def get_positions(self) -> List[PositionSnapshot]:
        out: List[PositionSnapshot] = []
        for p in self.ledger.get_portfolio().open_positions:
            mark = self._prices.get(p.symbol, p.entry_price)
            out.append(PositionSnapshot(
                symbol=p.symbol,
                size=p.quantity if p.side == LONG else -p.quantity,
                entry_price=p.entry_price,
                mark_price=mark,
                unrealized_pnl=p.pnl(mark),
                leverage=p.leverage or self.leverage,
                margin_type="isolated",
                liquidation_price=0.0,
            ))
        return out

    async def get_balance(self) -> List[Balance]:
        portfolio = self.ledger.get_portfolio()
        free = portfolio.current_balance
        locked = portfolio.locked_margin
        return [Balance(asset=self.quote_asset, free=free, locked=locked, total=free + locked)]

    async def get_trade_history(self, symbol: str) -> List[Fill]:
        return [
            Fill(
                id=str(t.id),
                order_id=str(t.id),
                symbol=t.symbol,
                side=side_for_exit(t.side),
                price=t.exit_price,
                quantity=t.quantity,
                commission=t.fee,
                commission_asset=self.quote_asset,
                realized_pnl=t.pnl,
                timestamp=datetime_to_ms(t.exit_time),
            )
            for t in self.ledger.get_portfolio().closed_trades
            if t.symbol == symbol
        ]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _now_ms() -> int:
    return int(time.time() * 1000)
