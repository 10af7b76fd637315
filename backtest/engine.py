# backtest/engine.py

import logging
from typing import List, Optional

from backtest.result import BacktestResult, EquityPoint
from config.backtest import LOOKBACK
from execution.ledger import ReinvestmentLedger
from execution.position import Trade
from execution.settlement import LONG, SHORT
from metrics.equity import apply_drawdown
from metrics.performance import performance_summary
from strategies.base import Strategy
from strategies.signal import Action

logger = logging.getLogger(__name__)


# (open side, action) -> close reason
EXIT_REASONS = {
    (LONG, Action.EXIT_LONG): "Signal Exit (ExitLong)",
    (SHORT, Action.EXIT_SHORT): "Signal Exit (ExitShort)",
}
REVERSAL_REASONS = {
    (LONG, Action.ENTER_SHORT): "Reversal (EnterShort)",
    (SHORT, Action.ENTER_LONG): "Reversal (EnterLong)",
}
ENTRY_SIDES = {
    Action.ENTER_LONG: LONG,
    Action.ENTER_SHORT: SHORT,
}


class BacktestEngine:
    """
    Candle-by-candle backtest over a reinvestment ledger.

    Within one candle, exits and reversals are applied before entries, so a
    reversal closes the open position and opens the opposite one in the same
    step.
    """

    def __init__(self, loader, ledger: Optional[ReinvestmentLedger] = None):
        self.loader = loader
        self.ledger = ledger

    def _build_ledger(self, config) -> ReinvestmentLedger:
        """
        An injected ledger keeps its own symbol, fee and slippage settings.
        Differences from `config` are logged, not applied.
        """
        if self.ledger is not None:
            self._warn_on_mismatch(self.ledger, config)
            return self.ledger
        return ReinvestmentLedger(
            symbol=config.symbol,
            initial_capital=config.initial_capital,
            fee_rate=config.fee_percent,
            slippage=config.slippage_percent,
            fee_policy=config.fee_policy,
        )

    @staticmethod
    def _warn_on_mismatch(ledger: ReinvestmentLedger, config) -> None:
        pairs = (
            ("symbol", ledger.symbol, config.symbol),
            ("fee_percent", ledger.fee_rate, config.fee_percent),
            ("slippage_percent", ledger.slippage, config.slippage_percent),
            ("fee_policy", ledger.fee_policy, config.fee_policy),
        )
        for name, held, wanted in pairs:
            if held != wanted:
                logger.warning(
                    "Injected ledger ignores config %s=%r (ledger uses %r)",
                    name, wanted, held,
                )

    def run(self, config, strategy: Strategy) -> BacktestResult:
        logger.info(
            "Starting backtest %s %s %s -> %s",
            config.symbol, config.interval, config.start_date, config.end_date,
        )

        # load errors propagate: no partial result
        candles = self.loader.load_candles(
            config.symbol, config.interval, config.start_date, config.end_date
        )
        logger.info("Loaded %d candles", len(candles))

        ledger = self._build_ledger(config)
        ledger.reset(config.initial_capital)
        strategy.on_init()

        lookback = getattr(config, "lookback", LOOKBACK) or LOOKBACK

        trades: List[Trade] = []
        equity: List[EquityPoint] = [
            EquityPoint(timestamp=config.start_date, balance=config.initial_capital)
        ]

        for i, candle in enumerate(candles):
            window = candles[max(0, i + 1 - lookback): i + 1]
            signal = strategy.analyze(window)

            # 1. exits / reversals
            pos = ledger.current_position()
            if pos is not None:
                key = (pos.side, signal.action)
                reason = EXIT_REASONS.get(key) or REVERSAL_REASONS.get(key)
                if reason:
                    trades.append(ledger.close(candle, reason))

            # 2. entries (flat only, including right after a same-step close)
            if ledger.current_position() is None and signal.action in ENTRY_SIDES:
                balance = ledger.current_balance()
                if balance > 0:
                    ledger.open(ENTRY_SIDES[signal.action], candle, balance)
                else:
                    logger.warning(
                        "Skipping %s at %s: balance exhausted (%.2f)",
                        signal.action.value, candle.time, balance,
                    )

            # 3. mark-to-market
            equity.append(
                EquityPoint(timestamp=candle.time, balance=ledger.mark_to_market(candle.close))
            )

        if ledger.current_position() is not None and candles:
            trades.append(ledger.close(candles[-1], "End of Backtest"))
            equity[-1].balance = ledger.current_balance()

        apply_drawdown(equity)

        metrics = performance_summary(
            trades=trades,
            equity_balances=[p.balance for p in equity],
            initial_capital=config.initial_capital,
            max_drawdown_percent=max((p.drawdown_percent for p in equity), default=0.0),
        )

        logger.info(
            "Backtest done: trades=%d win_rate=%.2f%% pnl=%.2f (%.2f%%) max_dd=%.2f%%",
            metrics.total_trades, metrics.win_rate, metrics.total_pnl,
            metrics.total_pnl_percent, metrics.max_drawdown_percent,
        )

        return BacktestResult(
            config=config,
            trades=trades,
            metrics=metrics,
            equity_curve=equity,
        )
