# risk/gate.py

import logging
from dataclasses import dataclass
from typing import Optional

from execution.errors import InvalidRisk, RewardRiskTooLow
from execution.orders import OrderSide
from risk.limits import RiskConfig
from risk.sizing import fixed_fractional_size, implied_leverage

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class TradeSignal:
    symbol: str
    side: OrderSide
    entry_price: float
    stop_loss_price: Optional[float] = None
    take_profit_price: Optional[float] = None


@dataclass(slots=True, frozen=True)
class AccountBalance:
    total_equity: float         # realized + unrealized
    available_balance: float


@dataclass(slots=True, frozen=True)
class OrderRequest:
    symbol: str
    side: OrderSide
    quantity: float
    entry_price: float
    stop_loss_price: float
    take_profit_price: float
    leverage: float


class RiskGate:
    """
    Turns a strategy's entry idea into a sized order, or refuses it.

    Checks, in order:
      1. stop-loss and take-profit are present
      2. stop distance is non-zero
      3. reward / risk >= config.reward_to_risk_ratio
    then sizes with fixed-fractional risk on total equity and applies the
    leverage cap.
    """

    def __init__(self, config: RiskConfig):
        self.config = config

    def evaluate(self, signal: TradeSignal, balance: AccountBalance) -> OrderRequest:
        entry = signal.entry_price
        stop = signal.stop_loss_price
        target = signal.take_profit_price

        if not stop or not target:
            raise InvalidRisk("StopLoss and TakeProfit prices are required.")

        risk = abs(entry - stop)
        reward = abs(target - entry)

        if risk == 0:
            raise InvalidRisk("Invalid StopLoss: Risk cannot be zero.")

        ratio = reward / risk
        if ratio < self.config.reward_to_risk_ratio:
            raise RewardRiskTooLow(
                f"Risk Reward Ratio is too low: {ratio:.2f} < "
                f"{self.config.reward_to_risk_ratio}"
            )

        equity = balance.total_equity
        qty = fixed_fractional_size(
            balance=equity,
            risk_pct=self.config.risk_per_trade_percent,
            entry_price=entry,
            stop_price=stop,
        )

        leverage = implied_leverage(qty, entry, equity)
        if leverage > self.config.max_leverage:
            if self.config.enforce_max_leverage:
                capped = self.config.max_leverage * equity / entry
                logger.warning(
                    "%s: implied leverage %.2fx > max %.2fx, qty %.8f -> %.8f",
                    signal.symbol, leverage, self.config.max_leverage, qty, capped,
                )
                qty = capped
            else:
                logger.warning(
                    "%s: implied leverage %.2fx exceeds max %.2fx (not enforced)",
                    signal.symbol, leverage, self.config.max_leverage,
                )

        return OrderRequest(
            symbol=signal.symbol,
            side=signal.side,
            quantity=qty,
            entry_price=entry,
            stop_loss_price=stop,
            take_profit_price=target,
            leverage=self.config.max_leverage,
        )
