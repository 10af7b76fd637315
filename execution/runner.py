# execution/runner.py

import asyncio
import logging
from collections import deque
from typing import List, Optional

from ccxt.base.errors import BaseError

from data.candle import Candle
from data.stream import market_id
from execution.broker import ExchangeClient
from execution.errors import SettlementError
from execution.orders import OrderType, PositionSnapshot, side_for_entry, side_for_exit
from execution.settlement import LONG, SHORT
from risk.gate import AccountBalance, RiskGate, TradeSignal
from strategies.base import Strategy
from strategies.signal import Action, Signal

logger = logging.getLogger(__name__)


# open side -> actions that close it
CLOSING_ACTIONS = {
    LONG: {Action.EXIT_LONG, Action.ENTER_SHORT},
    SHORT: {Action.EXIT_SHORT, Action.ENTER_LONG},
}
ENTRY_SIDES = {
    Action.ENTER_LONG: LONG,
    Action.ENTER_SHORT: SHORT,
}


def _position_side(p: PositionSnapshot) -> str:
    return LONG if p.size > 0 else SHORT


class TradingRunner:
    """
    Live / paper trading runner.

    Keeps a rolling window of closed candles, runs the strategy on every
    closed bar and routes the resulting signal through the RiskGate to an
    ExchangeClient. Order and risk failures are logged and the runner keeps
    going.
    """

    def __init__(
        self,
        symbol: str,
        timeframe: str,
        strategy: Strategy,
        exchange: ExchangeClient,
        stream,
        fetcher,
        risk_gate: RiskGate,
        lookback: int = 500,
        stop_loss_pct: float = 0.01,
        take_profit_rr: float = 2.0,
        quote_asset: str = "USDT",
    ):
        self.symbol = symbol
        self.timeframe = timeframe
        self.strategy = strategy
        self.exchange = exchange
        self.stream = stream
        self.fetcher = fetcher
        self.risk_gate = risk_gate
        self.lookback = lookback
        self.stop_loss_pct = stop_loss_pct
        self.take_profit_rr = take_profit_rr
        self.quote_asset = quote_asset

        self.window: deque = deque(maxlen=lookback)

    # ----------------------------
    # LIFECYCLE
    # ----------------------------
    async def start(self) -> None:
        candles = await asyncio.to_thread(
            self.fetcher.fetch_recent, self.symbol, self.timeframe, self.lookback
        )
        self.window.extend(candles)
        logger.info("%s warm-up: %d candles", self.symbol, len(self.window))

        self.strategy.on_init()
        self.stream.subscribe_candles(self.symbol, self.timeframe, self.on_candle)

    async def run(self, stop: Optional[asyncio.Event] = None) -> None:
        stop = stop or asyncio.Event()
        await self.start()
        await self.stream.connect()
        logger.info("Trading runner started: %s %s", self.symbol, self.timeframe)

        try:
            await stop.wait()
        finally:
            await self.stream.disconnect()
            await self.exchange.close()
            logger.info("Trading runner stopped")

    # ----------------------------
    # BAR HANDLING
    # ----------------------------
    async def on_candle(self, candle: Candle) -> None:
        if not candle.is_final:
            return
        if self.window and candle.timestamp <= self.window[-1].timestamp:
            return

        self.window.append(candle)
        signal = self.strategy.analyze(list(self.window))

        logger.info(
            "%s close=%.4f signal=%s %s",
            self.symbol, candle.close, signal.action.value, signal.metadata.get("reason", ""),
        )
        await self.handle_signal(signal)

    async def _open_positions(self) -> List[PositionSnapshot]:
        mid = market_id(self.symbol)
        return [p for p in await self.exchange.get_positions() if market_id(p.symbol) == mid]

    async def handle_signal(self, signal: Signal) -> None:
        if signal.action is Action.HOLD:
            return

        # 1. exits / reversals
        for pos in await self._open_positions():
            side = _position_side(pos)
            if signal.action not in CLOSING_ACTIONS[side]:
                continue
            try:
                await self.exchange.create_order(
                    self.symbol, side_for_exit(side), OrderType.MARKET, abs(pos.size)
                )
                logger.info("EXIT %s %s qty=%s [%s]", self.symbol, side, abs(pos.size), signal.action.value)
            except (SettlementError, ValueError, BaseError) as e:
                logger.warning("Exit order rejected for %s: %s", self.symbol, e)
                return

        # 2. entries (flat only)
        side = ENTRY_SIDES.get(signal.action)
        if side is None or await self._open_positions():
            return

        await self._enter(side, signal.price)

    async def _account_balance(self) -> AccountBalance:
        balances = await self.exchange.get_balance()
        quote = next((b for b in balances if b.asset == self.quote_asset), None)
        if quote is None:
            return AccountBalance(total_equity=0.0, available_balance=0.0)

        unrealized = sum(p.unrealized_pnl for p in await self.exchange.get_positions())
        return AccountBalance(total_equity=quote.total + unrealized, available_balance=quote.free)

    async def _enter(self, side: str, price: float) -> None:
        if side == LONG:
            stop = price * (1 - self.stop_loss_pct)
            target = price + self.take_profit_rr * (price - stop)
        else:
            stop = price * (1 + self.stop_loss_pct)
            target = price - self.take_profit_rr * (stop - price)

        balance = await self._account_balance()

        try:
            request = self.risk_gate.evaluate(
                TradeSignal(
                    symbol=self.symbol,
                    side=side_for_entry(side),
                    entry_price=price,
                    stop_loss_price=stop,
                    take_profit_price=target,
                ),
                balance,
            )
        except SettlementError as e:
            logger.warning("Entry refused by risk gate for %s: %s", self.symbol, e)
            return

        if request.quantity <= 0:
            logger.warning("Entry skipped for %s: zero quantity", self.symbol)
            return

        try:
            order = await self.exchange.create_order(
                self.symbol, request.side, OrderType.MARKET, request.quantity
            )
        except (SettlementError, ValueError, BaseError) as e:
            logger.warning("Entry order rejected for %s: %s", self.symbol, e)
            return

        logger.info(
            "ENTER %s %s qty=%.8f @ %s (SL=%.4f TP=%.4f)",
            self.symbol, side, order.quantity, order.average_price, stop, target,
        )
