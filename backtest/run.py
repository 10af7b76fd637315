# backtest/run.py

import argparse
import logging
import sys
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from backtest.engine import BacktestEngine  # noqa: E402
from backtest.result import BacktestResult  # noqa: E402
from config.backtest import BacktestSettings, parse_date  # noqa: E402
from config.env_loader import load_env_file  # noqa: E402
from data.fetcher import MarketDataFetcher  # noqa: E402
from logs.logger import configure_logging  # noqa: E402
from strategies.factory import StrategyName, create_strategy  # noqa: E402

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a candle-by-candle strategy backtest")
    parser.add_argument("--symbol", help="e.g. BTC/USDT (default: BACKTEST_SYMBOL)")
    parser.add_argument("--interval", help="e.g. 15m (default: BACKTEST_INTERVAL)")
    parser.add_argument("--start", help="ISO start date (default: 30 days ago)")
    parser.add_argument("--end", help="ISO end date (default: now)")
    parser.add_argument("--capital", type=float, help="initial capital")
    parser.add_argument(
        "--strategy",
        choices=[s.value for s in StrategyName],
        help="strategy name (default: BACKTEST_STRATEGY)",
    )
    parser.add_argument("--out", default="data_outputs", help="directory for CSV exports")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--log-file", default=None)
    return parser.parse_args(argv)


def settings_from_args(args: argparse.Namespace) -> BacktestSettings:
    settings = BacktestSettings.from_env()

    if args.symbol:
        settings.symbol = args.symbol.upper()
    if args.interval:
        settings.interval = args.interval
    if args.start:
        settings.start_date = parse_date(args.start)
    if args.end:
        settings.end_date = parse_date(args.end)
    if args.capital is not None:
        settings.initial_capital = args.capital
    if args.strategy:
        settings.strategy = args.strategy

    settings.validate()
    return settings


def print_report(result: BacktestResult) -> None:
    m = result.metrics
    cfg = result.config

    print("\n========== BACKTEST REPORT ==========")
    print(f"Symbol            : {cfg.symbol} ({cfg.interval})")
    print(f"Period            : {cfg.start_date:%Y-%m-%d} -> {cfg.end_date:%Y-%m-%d}")
    print(f"Strategy          : {cfg.strategy}")
    print(f"Initial capital   : {cfg.initial_capital:.2f}")
    print(f"Total trades      : {m.total_trades}")
    print(f"Win / Loss        : {m.winning_trades} / {m.losing_trades}")
    print(f"Win rate          : {m.win_rate:.2f}%")
    print(f"Total PnL         : {m.total_pnl:.2f} ({m.total_pnl_percent:.2f}%)")
    print(f"Average win       : {m.average_win:.2f}")
    print(f"Average loss      : {m.average_loss:.2f}")
    print(f"Profit factor     : {m.profit_factor:.2f}")
    print(f"Max drawdown      : {m.max_drawdown_percent:.2f}%")
    print("=====================================\n")


def export_csv(result: BacktestResult, out_dir: str) -> None:
    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)

    trades_path = out / "backtest_trades.csv"
    equity_path = out / "backtest_equity.csv"

    result.trades_frame().to_csv(trades_path, index=False)
    result.equity_frame().to_csv(equity_path, index=False)

    logger.info("Trades saved to %s", trades_path)
    logger.info("Equity curve saved to %s", equity_path)


def main(argv=None):
    load_env_file()
    args = parse_args(argv)
    configure_logging(args.log_level, args.log_file)

    settings = settings_from_args(args)

    engine = BacktestEngine(loader=MarketDataFetcher())
    result = engine.run(settings, create_strategy(settings.strategy))

    print_report(result)
    export_csv(result, args.out)


if __name__ == "__main__":
    main()
