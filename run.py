# run.py

import asyncio
import logging
import signal

from config.env_loader import env_str, load_env_file
from config.live import LiveSettings
from data.fetcher import MarketDataFetcher
from data.stream import BinanceMarketStream
from execution.broker import LiveExchange
from execution.ledger import MarginLedger
from execution.paper_exchange import PaperExchange
from execution.runner import TradingRunner
from logs.logger import TradeLogger, configure_logging
from risk.gate import RiskGate
from risk.limits import RiskConfig
from strategies.factory import create_strategy

logger = logging.getLogger(__name__)


def build_runner(settings: LiveSettings) -> TradingRunner:
    stream = BinanceMarketStream(
        url=settings.stream_url,
        reconnect_delay=settings.reconnect_delay_seconds,
        subscribe_retry=settings.subscribe_retry_seconds,
    )

    if settings.mode == "live":
        exchange = LiveExchange(
            api_key=settings.api_key,
            api_secret=settings.api_secret,
            testnet=settings.testnet,
            allow_live_trading=settings.allow_live_trading,
        )
    else:
        ledger = MarginLedger(
            initial_balance=settings.starting_balance_usdt,
            fee_rate=settings.fee_percent,
            fee_policy=settings.fee_policy,
        )
        journal = TradeLogger(settings.trade_log_path)
        exchange = PaperExchange(
            ledger=ledger,
            stream=stream,
            leverage=settings.leverage,
            slippage_percent=settings.slippage_percent,
            on_trade=lambda trade: journal.log(trade, balance=ledger.current_balance),
        )

    return TradingRunner(
        symbol=settings.symbol,
        timeframe=settings.timeframe,
        strategy=create_strategy(settings.strategy),
        exchange=exchange,
        stream=stream,
        fetcher=MarketDataFetcher(),
        risk_gate=RiskGate(RiskConfig.from_settings(settings)),
        lookback=settings.lookback,
        stop_loss_pct=settings.stop_loss_pct,
        take_profit_rr=settings.take_profit_rr,
    )


async def _run(settings: LiveSettings) -> None:
    runner = build_runner(settings)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # windows: fall back to KeyboardInterrupt
            pass

    if isinstance(runner.exchange, PaperExchange):
        runner.exchange.watch(settings.symbol)

    await runner.run(stop)


def main():
    load_env_file()
    configure_logging(env_str("LOG_LEVEL", "INFO"), env_str("LOG_FILE", "") or None)

    settings = LiveSettings.from_env()
    settings.validate()

    logger.info(
        "Starting %s trading: %s %s strategy=%s",
        settings.mode, settings.symbol, settings.timeframe, settings.strategy,
    )

    try:
        asyncio.run(_run(settings))
    except KeyboardInterrupt:
        logger.info("Stopped by user")


if __name__ == "__main__":
    main()
