# risk/limits.py

from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class RiskConfig:
    risk_per_trade_percent: float = 0.01   # fraction of equity
    max_leverage: float = 5.0
    reward_to_risk_ratio: float = 1.5
    max_daily_loss_percent: float = 0.03   # declared only, not enforced
    enforce_max_leverage: bool = True

    def validate(self) -> None:
        if not (0 < self.risk_per_trade_percent <= 1):
            raise ValueError("risk_per_trade_percent must be in (0, 1]")
        if self.max_leverage <= 0:
            raise ValueError("max_leverage must be > 0")
        if self.reward_to_risk_ratio < 0:
            raise ValueError("reward_to_risk_ratio must be >= 0")
        if not (0 <= self.max_daily_loss_percent <= 1):
            raise ValueError("max_daily_loss_percent must be in [0, 1]")

    @classmethod
    def from_settings(cls, settings) -> "RiskConfig":
        """
        Build from any settings object exposing the risk fields
        (BacktestSettings or LiveSettings).
        """
        cfg = cls(
            risk_per_trade_percent=settings.risk_per_trade,
            max_leverage=settings.max_leverage,
            reward_to_risk_ratio=settings.min_reward_risk,
            max_daily_loss_percent=getattr(settings, "max_daily_loss", 0.03),
            enforce_max_leverage=getattr(settings, "enforce_max_leverage", True),
        )
        cfg.validate()
        return cfg
