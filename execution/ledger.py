# execution/ledger.py

import itertools
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import List, Optional

from data.candle import Candle
from execution.errors import InsufficientBalance, NoOpenPosition, PositionAlreadyOpen
from execution.position import Position, Trade
from execution.settlement import (
    ENTRY,
    EXIT,
    FeePolicy,
    fee,
    fill_price,
    gross_pnl,
    safe_ratio,
)

logger = logging.getLogger(__name__)


class ReinvestmentLedger:
    """
    Single-position ledger used by the backtest.

    Each entry invests the amount it is given (the engine passes the whole
    current balance). The balance is never debited on open, only credited /
    debited with the net pnl on close.
    """

    def __init__(
        self,
        symbol: str,
        initial_capital: float = 10_000.0,
        fee_rate: float = 0.0,
        slippage: float = 0.0,
        fee_policy: FeePolicy = FeePolicy.ROUND_TRIP,
    ):
        self.symbol = symbol
        self.fee_rate = fee_rate
        self.slippage = slippage
        self.fee_policy = FeePolicy(fee_policy)
        self.reset(initial_capital)

    def reset(self, initial_capital: float) -> None:
        self.initial_capital = initial_capital
        self._balance = initial_capital
        self._position: Optional[Position] = None
        self._trades: List[Trade] = []
        self._ids = itertools.count(1)

    # ----------------------------
    # ACCESSORS
    # ----------------------------
    def current_balance(self) -> float:
        return self._balance

    def current_position(self) -> Optional[Position]:
        return self._position

    @property
    def trades(self) -> List[Trade]:
        return list(self._trades)

    def mark_to_market(self, price: float) -> float:
        if self._position is None:
            return self._balance
        return self._balance + self._position.pnl(price)

    # ----------------------------
    # OPEN / CLOSE
    # ----------------------------
    def open(self, side: str, candle: Candle, invest_amount: float) -> Position:
        if self._position is not None:
            raise PositionAlreadyOpen(
                f"{self.symbol}: {self._position.side} position already open"
            )
        if invest_amount <= 0:
            raise InsufficientBalance(
                f"{self.symbol}: nothing to invest (amount={invest_amount:.4f})"
            )

        entry_price = fill_price(candle.close, side, ENTRY, self.slippage)
        if entry_price <= 0:
            raise ValueError(f"Invalid entry price for {self.symbol}: {entry_price}")

        self._position = Position(
            symbol=self.symbol,
            side=side,
            entry_price=entry_price,
            quantity=invest_amount / entry_price,
            entry_time=candle.time,
        )

        logger.debug(
            "OPEN %s %s @ %.4f qty=%.8f",
            side, self.symbol, entry_price, self._position.quantity,
        )
        return self._position

    def close(self, candle: Candle, reason: str) -> Trade:
        pos = self._position
        if pos is None:
            raise NoOpenPosition(f"{self.symbol}: no position to close")

        exit_price = fill_price(candle.close, pos.side, EXIT, self.slippage)

        entry_notional = pos.entry_price * pos.quantity
        exit_notional = exit_price * pos.quantity
        charged = fee(self.fee_policy, entry_notional, exit_notional, self.fee_rate)

        net = gross_pnl(pos.side, pos.entry_price, exit_price, pos.quantity) - charged
        self._balance += net

        trade = Trade(
            id=next(self._ids),
            symbol=pos.symbol,
            side=pos.side,
            entry_time=pos.entry_time,
            entry_price=pos.entry_price,
            exit_time=candle.time,
            exit_price=exit_price,
            quantity=pos.quantity,
            pnl=net,
            pnl_percent=safe_ratio(net, entry_notional) * 100,
            reason=reason,
            cumulative_balance=self._balance,
            fee=charged,
        )

        self._trades.append(trade)
        self._position = None

        logger.debug(
            "CLOSE %s %s @ %.4f pnl=%.4f balance=%.4f [%s]",
            pos.side, self.symbol, exit_price, net, self._balance, reason,
        )
        return trade


@dataclass
class Portfolio:
    initial_balance: float
    current_balance: float
    locked_margin: float
    total_pnl: float
    total_pnl_percent: float
    open_positions: List[Position] = field(default_factory=list)
    closed_trades: List[Trade] = field(default_factory=list)


class MarginLedger:
    """
    Multi-position margin ledger used by paper trading.

    `current_balance` is the free balance: margin locked by open positions
    is debited on open and returned (with the net pnl) on close.
    """

    def __init__(
        self,
        initial_balance: float = 10_000.0,
        fee_rate: float = 0.0004,
        fee_policy: FeePolicy = FeePolicy.EXIT_ONLY,
    ):
        self.fee_rate = fee_rate
        self.fee_policy = FeePolicy(fee_policy)
        self.init(initial_balance)

    def init(self, balance: float) -> None:
        self.initial_balance = balance
        self.current_balance = balance
        self._open: List[Position] = []
        self._closed: List[Trade] = []
        self._ids = itertools.count(1)

    def open(self, position: Position) -> Position:
        if not position.leverage or position.leverage <= 0:
            raise ValueError(f"Margin position requires positive leverage: {position.leverage}")
        if position.quantity <= 0 or position.entry_price <= 0:
            raise ValueError(
                f"Invalid margin position for {position.symbol}: "
                f"qty={position.quantity} entry={position.entry_price}"
            )

        margin = position.margin
        if margin > self.current_balance:
            raise InsufficientBalance(
                f"Insufficient balance. Required: {margin:.4f}, "
                f"Available: {self.current_balance:.4f}"
            )

        self.current_balance -= margin
        self._open.append(position)

        logger.info(
            "Opened position: %s %s @ %s qty=%s margin=%.4f",
            position.side, position.symbol, position.entry_price, position.quantity, margin,
        )
        return position

    def close(self, symbol: str, exit_price: float, reason: str) -> Trade:
        index = next(
            (i for i, p in enumerate(self._open) if p.symbol == symbol),
            None,
        )
        if index is None:
            raise NoOpenPosition(f"No open position found for {symbol}")

        pos = self._open[index]
        margin = pos.margin

        entry_notional = pos.entry_price * pos.quantity
        exit_notional = exit_price * pos.quantity
        charged = fee(self.fee_policy, entry_notional, exit_notional, self.fee_rate)

        net = gross_pnl(pos.side, pos.entry_price, exit_price, pos.quantity) - charged
        self.current_balance += margin + net

        trade = Trade(
            id=next(self._ids),
            symbol=pos.symbol,
            side=pos.side,
            entry_time=pos.entry_time,
            entry_price=pos.entry_price,
            exit_time=datetime.now(timezone.utc),
            exit_price=exit_price,
            quantity=pos.quantity,
            pnl=net,
            pnl_percent=safe_ratio(net, margin) * 100,
            reason=reason,
            fee=charged,
        )

        del self._open[index]
        self._closed.append(trade)

        logger.info(
            "Closed position: %s pnl=%.2f (%.2f%%) [%s]",
            symbol, net, trade.pnl_percent, reason,
        )
        return trade

    def get_open_position(self, symbol: str) -> Optional[Position]:
        return next((p for p in self._open if p.symbol == symbol), None)

    def get_open_positions(self, symbol: Optional[str] = None) -> List[Position]:
        if symbol is None:
            return list(self._open)
        return [p for p in self._open if p.symbol == symbol]

    def get_portfolio(self) -> Portfolio:
        realized = sum(t.pnl for t in self._closed)
        locked = sum(p.margin for p in self._open)

        return Portfolio(
            initial_balance=self.initial_balance,
            current_balance=self.current_balance,
            locked_margin=locked,
            total_pnl=realized,
            total_pnl_percent=safe_ratio(
                self.current_balance - self.initial_balance, self.initial_balance
            ) * 100,
            open_positions=[replace(p) for p in self._open],
            closed_trades=list(self._closed),
        )
