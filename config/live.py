# config/live.py

from dataclasses import dataclass

from config.env_loader import env_bool, env_float, env_int, env_str
from execution.settlement import FeePolicy
from strategies.factory import StrategyName


LIVE_UNLOCK_TOKEN = "YES_I_UNDERSTAND"
DEFAULT_STREAM_URL = "wss://fstream.binance.com/ws"


@dataclass
class LiveSettings:
    mode: str = "paper"  # paper | live
    symbol: str = "BTC/USDT"
    timeframe: str = "15m"
    strategy: str = StrategyName.MACD_HISTOGRAM.value

    api_key: str = ""
    api_secret: str = ""
    testnet: bool = True
    allow_live_trading: bool = False

    lookback: int = 500

    starting_balance_usdt: float = 10_000.0
    fee_percent: float = 0.0004
    fee_policy: str = FeePolicy.EXIT_ONLY.value
    slippage_percent: float = 0.0
    leverage: float = 10.0

    risk_per_trade: float = 0.01
    max_leverage: float = 5.0
    min_reward_risk: float = 1.5
    max_daily_loss: float = 0.03
    enforce_max_leverage: bool = True
    stop_loss_pct: float = 0.01
    take_profit_rr: float = 2.0

    stream_url: str = DEFAULT_STREAM_URL
    reconnect_delay_seconds: float = 5.0
    subscribe_retry_seconds: float = 1.0

    trade_log_path: str = "data_outputs/live_trades.csv"

    @classmethod
    def from_env(cls) -> "LiveSettings":
        return cls(
            mode=env_str("TRADING_MODE", "paper").lower(),
            symbol=env_str("TRADING_SYMBOL", "BTC/USDT").upper(),
            timeframe=env_str("TRADING_TIMEFRAME", "15m"),
            strategy=env_str("TRADING_STRATEGY", StrategyName.MACD_HISTOGRAM.value).upper(),
            api_key=env_str("EXCHANGE_API_KEY", ""),
            api_secret=env_str("EXCHANGE_API_SECRET", ""),
            testnet=env_bool("EXCHANGE_TESTNET", True),
            allow_live_trading=env_str("ALLOW_LIVE_TRADING", "") == LIVE_UNLOCK_TOKEN,
            lookback=env_int("LOOKBACK_BARS", 500),
            starting_balance_usdt=env_float("PAPER_STARTING_BALANCE_USDT", 10_000.0),
            fee_percent=env_float("PAPER_FEE_PERCENT", 0.0004),
            fee_policy=env_str("PAPER_FEE_POLICY", FeePolicy.EXIT_ONLY.value).lower(),
            slippage_percent=env_float("PAPER_SLIPPAGE_PERCENT", 0.0),
            leverage=env_float("PAPER_LEVERAGE", 10.0),
            risk_per_trade=env_float("RISK_PER_TRADE", 0.01),
            max_leverage=env_float("MAX_LEVERAGE", 5.0),
            min_reward_risk=env_float("MIN_REWARD_RISK", 1.5),
            max_daily_loss=env_float("MAX_DAILY_LOSS", 0.03),
            enforce_max_leverage=env_bool("ENFORCE_MAX_LEVERAGE", True),
            stop_loss_pct=env_float("STOP_LOSS_PCT", 0.01),
            take_profit_rr=env_float("TAKE_PROFIT_RR", 2.0),
            stream_url=env_str("STREAM_URL", DEFAULT_STREAM_URL),
            reconnect_delay_seconds=env_float("RECONNECT_DELAY_SECONDS", 5.0),
            subscribe_retry_seconds=env_float("SUBSCRIBE_RETRY_SECONDS", 1.0),
            trade_log_path=env_str("TRADE_LOG_PATH", "data_outputs/live_trades.csv"),
        )

    def validate(self) -> None:
        if self.mode not in {"paper", "live"}:
            raise ValueError("TRADING_MODE must be 'paper' or 'live'.")

        if "/" not in self.symbol:
            raise ValueError(f"Invalid symbol format: {self.symbol}. Use format like BTC/USDT")

        if self.strategy not in {s.value for s in StrategyName}:
            raise ValueError(f"Unknown TRADING_STRATEGY: {self.strategy}")

        if self.lookback < 50:
            raise ValueError("LOOKBACK_BARS must be >= 50 for MACD/RSI warm-up.")

        if self.starting_balance_usdt <= 0:
            raise ValueError("PAPER_STARTING_BALANCE_USDT must be > 0.")

        if not (0 <= self.fee_percent < 1):
            raise ValueError("PAPER_FEE_PERCENT must be in [0, 1).")

        if self.fee_policy not in {p.value for p in FeePolicy}:
            raise ValueError("PAPER_FEE_POLICY must be 'round_trip' or 'exit_only'.")

        if not (0 <= self.slippage_percent < 1):
            raise ValueError("PAPER_SLIPPAGE_PERCENT must be in [0, 1).")

        if self.leverage <= 0:
            raise ValueError("PAPER_LEVERAGE must be > 0.")

        if not (0 < self.risk_per_trade <= 0.05):
            raise ValueError("RISK_PER_TRADE must be in (0, 0.05].")

        if self.max_leverage <= 0:
            raise ValueError("MAX_LEVERAGE must be > 0.")

        if self.min_reward_risk < 0:
            raise ValueError("MIN_REWARD_RISK must be >= 0.")

        if not (0 < self.stop_loss_pct < 1):
            raise ValueError("STOP_LOSS_PCT must be in (0, 1).")

        if self.take_profit_rr <= 0:
            raise ValueError("TAKE_PROFIT_RR must be > 0.")

        if self.reconnect_delay_seconds <= 0 or self.subscribe_retry_seconds <= 0:
            raise ValueError("RECONNECT_DELAY_SECONDS and SUBSCRIBE_RETRY_SECONDS must be > 0.")

        if self.mode == "live":
            if not self.allow_live_trading:
                raise ValueError(
                    "Live trading is locked. Set ALLOW_LIVE_TRADING=YES_I_UNDERSTAND to unlock."
                )
            if not self.api_key or not self.api_secret:
                raise ValueError("EXCHANGE_API_KEY and EXCHANGE_API_SECRET are required for live mode.")
