# config/backtest.py

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from config.env_loader import env_float, env_int, env_str
from execution.settlement import FeePolicy
from strategies.factory import StrategyName


LOOKBACK = 500


def parse_date(raw: str) -> datetime:
    try:
        value = datetime.fromisoformat(raw.strip())
    except ValueError:
        raise ValueError(f"Invalid date {raw!r}, expected ISO format like 2024-01-01") from None

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _env_date(name: str) -> Optional[datetime]:
    raw = env_str(name, "")
    return parse_date(raw) if raw else None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class BacktestSettings:
    symbol: str = "BTC/USDT"
    interval: str = "15m"
    start_date: datetime = field(default_factory=lambda: _utcnow() - timedelta(days=30))
    end_date: datetime = field(default_factory=_utcnow)
    initial_capital: float = 10_000.0

    fee_percent: float = 0.0004
    slippage_percent: float = 0.0001
    fee_policy: str = FeePolicy.ROUND_TRIP.value

    risk_per_trade: float = 0.01
    max_leverage: float = 5.0
    min_reward_risk: float = 1.5

    strategy: str = StrategyName.MACD_HISTOGRAM.value
    lookback: int = LOOKBACK

    @classmethod
    def from_env(cls) -> "BacktestSettings":
        end = _env_date("BACKTEST_END_DATE") or _utcnow()
        start = _env_date("BACKTEST_START_DATE") or end - timedelta(days=30)

        return cls(
            symbol=env_str("BACKTEST_SYMBOL", "BTC/USDT").upper(),
            interval=env_str("BACKTEST_INTERVAL", "15m"),
            start_date=start,
            end_date=end,
            initial_capital=env_float("BACKTEST_INITIAL_CAPITAL", 10_000.0),
            fee_percent=env_float("BACKTEST_FEE_PERCENT", 0.0004),
            slippage_percent=env_float("BACKTEST_SLIPPAGE_PERCENT", 0.0001),
            fee_policy=env_str("BACKTEST_FEE_POLICY", FeePolicy.ROUND_TRIP.value).lower(),
            risk_per_trade=env_float("RISK_PER_TRADE", 0.01),
            max_leverage=env_float("MAX_LEVERAGE", 5.0),
            min_reward_risk=env_float("MIN_REWARD_RISK", 1.5),
            strategy=env_str("BACKTEST_STRATEGY", StrategyName.MACD_HISTOGRAM.value).upper(),
            lookback=env_int("LOOKBACK_BARS", LOOKBACK),
        )

    def validate(self) -> None:
        if "/" not in self.symbol:
            raise ValueError(f"Invalid symbol format: {self.symbol}. Use format like BTC/USDT")

        if self.start_date >= self.end_date:
            raise ValueError("BACKTEST_START_DATE must be before BACKTEST_END_DATE.")

        if self.initial_capital <= 0:
            raise ValueError("BACKTEST_INITIAL_CAPITAL must be > 0.")

        if not (0 <= self.fee_percent < 1):
            raise ValueError("BACKTEST_FEE_PERCENT must be in [0, 1).")

        if not (0 <= self.slippage_percent < 1):
            raise ValueError("BACKTEST_SLIPPAGE_PERCENT must be in [0, 1).")

        if self.fee_policy not in {p.value for p in FeePolicy}:
            raise ValueError("BACKTEST_FEE_POLICY must be 'round_trip' or 'exit_only'.")

        if self.strategy not in {s.value for s in StrategyName}:
            raise ValueError(f"Unknown BACKTEST_STRATEGY: {self.strategy}")

        if self.lookback < 1:
            raise ValueError("LOOKBACK_BARS must be >= 1.")
