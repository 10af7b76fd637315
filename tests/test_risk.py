import logging
from types import SimpleNamespace

import pytest

from execution.errors import InvalidRisk, RewardRiskTooLow, SettlementError
from execution.orders import OrderSide
from risk.gate import AccountBalance, RiskGate, TradeSignal
from risk.limits import RiskConfig
from risk.sizing import fixed_fractional_size, implied_leverage


EQUITY = AccountBalance(total_equity=10_000.0, available_balance=10_000.0)


def long_signal(entry=100.0, stop=95.0, target=110.0):
    return TradeSignal(
        symbol="BTC/USDT",
        side=OrderSide.BUY,
        entry_price=entry,
        stop_loss_price=stop,
        take_profit_price=target,
    )


def test_fixed_fractional_size():
    assert fixed_fractional_size(10_000.0, 0.01, 100.0, 95.0) == pytest.approx(20.0)


def test_fixed_fractional_size_zero_distance():
    assert fixed_fractional_size(10_000.0, 0.01, 100.0, 100.0) == 0.0


def test_fixed_fractional_size_notional_cap():
    # uncapped: 100 / 0.1 = 1000 units -> notional 100_000
    qty = fixed_fractional_size(10_000.0, 0.01, 100.0, 99.9, max_position_notional_pct=0.5)
    assert qty == pytest.approx(50.0)


def test_implied_leverage():
    assert implied_leverage(20.0, 100.0, 10_000.0) == pytest.approx(0.2)
    assert implied_leverage(20.0, 100.0, 0.0) == 0.0


def test_gate_sizes_by_risk():
    gate = RiskGate(RiskConfig(risk_per_trade_percent=0.01, max_leverage=5, reward_to_risk_ratio=1.5))
    request = gate.evaluate(long_signal(), EQUITY)

    assert request.quantity == pytest.approx(20.0)
    assert request.side is OrderSide.BUY
    assert request.leverage == 5
    assert request.stop_loss_price == 95.0
    assert request.take_profit_price == 110.0


def test_gate_zero_stop_distance_is_invalid():
    gate = RiskGate(RiskConfig())
    with pytest.raises(InvalidRisk):
        gate.evaluate(long_signal(stop=100.0), EQUITY)


@pytest.mark.parametrize("stop, target", [(None, 110.0), (95.0, None)])
def test_gate_requires_stop_and_target(stop, target):
    gate = RiskGate(RiskConfig())
    with pytest.raises(InvalidRisk):
        gate.evaluate(long_signal(stop=stop, target=target), EQUITY)


def test_gate_rejects_low_reward_to_risk():
    gate = RiskGate(RiskConfig(reward_to_risk_ratio=1.5))
    with pytest.raises(RewardRiskTooLow, match="Risk Reward Ratio is too low"):
        gate.evaluate(long_signal(stop=95.0, target=105.0), EQUITY)


def test_risk_errors_are_value_errors():
    assert issubclass(InvalidRisk, ValueError)
    assert issubclass(RewardRiskTooLow, ValueError)
    assert issubclass(RewardRiskTooLow, SettlementError)


def test_gate_caps_leverage_when_enforced(caplog):
    gate = RiskGate(RiskConfig(max_leverage=5, reward_to_risk_ratio=1.0))
    with caplog.at_level(logging.WARNING, logger="risk.gate"):
        request = gate.evaluate(long_signal(stop=99.9, target=101.0), EQUITY)

    # uncapped 1000 units = 10x; capped to 5x
    assert request.quantity == pytest.approx(500.0)
    assert "implied leverage" in caplog.text


def test_gate_only_logs_leverage_when_not_enforced(caplog):
    gate = RiskGate(RiskConfig(max_leverage=5, reward_to_risk_ratio=1.0, enforce_max_leverage=False))
    with caplog.at_level(logging.WARNING, logger="risk.gate"):
        request = gate.evaluate(long_signal(stop=99.9, target=101.0), EQUITY)

    assert request.quantity == pytest.approx(1_000.0)
    assert "not enforced" in caplog.text


def test_risk_config_from_settings():
    settings = SimpleNamespace(
        risk_per_trade=0.02,
        max_leverage=3.0,
        min_reward_risk=2.0,
        max_daily_loss=0.05,
        enforce_max_leverage=False,
    )
    cfg = RiskConfig.from_settings(settings)
    assert cfg == RiskConfig(0.02, 3.0, 2.0, 0.05, False)


def test_risk_config_validation():
    with pytest.raises(ValueError):
        RiskConfig(risk_per_trade_percent=0.0).validate()
    with pytest.raises(ValueError):
        RiskConfig(max_leverage=0).validate()
