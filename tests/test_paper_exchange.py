import logging

import pytest

from execution.errors import (
    InsufficientBalance,
    PriceUnavailable,
    UnsupportedPartialOrFlip,
    UnsupportedPendingOrder,
)
from execution.ledger import MarginLedger
from execution.orders import OrderSide, OrderStatus, OrderType
from execution.paper_exchange import PaperExchange

SYMBOL = "BTC/USDT"


@pytest.fixture
def trades():
    return []


@pytest.fixture
def exchange(fake_stream, trades):
    ledger = MarginLedger(initial_balance=10_000.0, fee_rate=0.0004)
    return PaperExchange(ledger, fake_stream, leverage=10, on_trade=trades.append)


def test_watch_subscribes_once(exchange, fake_stream):
    exchange.watch(SYMBOL)
    exchange.watch(SYMBOL)
    assert fake_stream.subscribe_calls == [("ticker", SYMBOL)]


def test_ticker_updates_last_price(exchange, fake_stream):
    exchange.watch(SYMBOL)
    assert exchange.last_price(SYMBOL) is None
    fake_stream.push_price(SYMBOL, 50_000.0)
    assert exchange.last_price(SYMBOL) == 50_000.0


@pytest.mark.asyncio
async def test_market_order_without_price_fails(exchange):
    with pytest.raises(PriceUnavailable):
        await exchange.create_order(SYMBOL, OrderSide.BUY, OrderType.MARKET, 0.1)
    assert exchange.ledger.get_open_positions() == []


@pytest.mark.asyncio
async def test_market_open_then_close(exchange, fake_stream, trades):
    exchange.watch(SYMBOL)
    fake_stream.push_price(SYMBOL, 50_000.0)

    order = await exchange.create_order(SYMBOL, OrderSide.BUY, OrderType.MARKET, 0.1)

    assert order.status is OrderStatus.FILLED
    assert order.filled_quantity == 0.1
    assert order.average_price == 50_000.0
    assert exchange.ledger.current_balance == pytest.approx(9_500.0)

    fake_stream.push_price(SYMBOL, 55_000.0)
    close = await exchange.create_order(SYMBOL, "SELL", "MARKET", 0.1)

    assert close.id != order.id
    assert exchange.ledger.get_open_positions() == []
    assert exchange.ledger.current_balance == pytest.approx(10_497.8)

    assert len(trades) == 1
    assert trades[0].reason == "Order Signal"
    assert trades[0].pnl == pytest.approx(497.8)


@pytest.mark.asyncio
async def test_market_slippage(fake_stream):
    ledger = MarginLedger(initial_balance=10_000.0, fee_rate=0.0)
    exchange = PaperExchange(ledger, fake_stream, leverage=10, slippage_percent=0.001)
    exchange.watch(SYMBOL)
    fake_stream.push_price(SYMBOL, 100.0)

    order = await exchange.create_order(SYMBOL, OrderSide.SELL, OrderType.MARKET, 1.0)
    assert order.average_price == pytest.approx(99.9)

    close = await exchange.create_order(SYMBOL, OrderSide.BUY, OrderType.MARKET, 1.0)
    assert close.average_price == pytest.approx(100.1)


@pytest.mark.asyncio
async def test_partial_close_is_rejected(exchange, fake_stream):
    exchange.watch(SYMBOL)
    fake_stream.push_price(SYMBOL, 100.0)
    await exchange.create_order(SYMBOL, OrderSide.BUY, OrderType.MARKET, 2.0)

    with pytest.raises(UnsupportedPartialOrFlip):
        await exchange.create_order(SYMBOL, OrderSide.SELL, OrderType.MARKET, 1.0)
    with pytest.raises(UnsupportedPartialOrFlip):
        await exchange.create_order(SYMBOL, OrderSide.SELL, OrderType.MARKET, 3.0)

    assert len(exchange.ledger.get_open_positions()) == 1


@pytest.mark.asyncio
async def test_same_side_orders_pyramid(exchange, fake_stream):
    exchange.watch(SYMBOL)
    fake_stream.push_price(SYMBOL, 100.0)
    await exchange.create_order(SYMBOL, OrderSide.BUY, OrderType.MARKET, 1.0)
    fake_stream.push_price(SYMBOL, 110.0)
    await exchange.create_order(SYMBOL, OrderSide.BUY, OrderType.MARKET, 2.0)

    positions = exchange.ledger.get_open_positions(SYMBOL)
    assert [p.entry_price for p in positions] == [100.0, 110.0]


@pytest.mark.asyncio
@pytest.mark.parametrize("side, price", [(OrderSide.BUY, 99.0), (OrderSide.SELL, 101.0)])
async def test_pending_limit_orders_are_rejected(exchange, fake_stream, side, price):
    exchange.watch(SYMBOL)
    fake_stream.push_price(SYMBOL, 100.0)
    with pytest.raises(UnsupportedPendingOrder):
        await exchange.create_order(SYMBOL, side, OrderType.LIMIT, 1.0, price)


@pytest.mark.asyncio
async def test_marketable_limit_fills_at_limit_price(exchange, fake_stream):
    exchange.watch(SYMBOL)
    fake_stream.push_price(SYMBOL, 100.0)
    order = await exchange.create_order(SYMBOL, OrderSide.BUY, OrderType.LIMIT, 1.0, 101.0)
    assert order.average_price == 101.0
    assert exchange.ledger.get_open_position(SYMBOL).entry_price == 101.0


@pytest.mark.asyncio
async def test_limit_without_tick_fills_at_limit_price(exchange):
    order = await exchange.create_order(SYMBOL, OrderSide.SELL, OrderType.LIMIT, 1.0, 100.0)
    assert order.status is OrderStatus.FILLED
    assert order.price == 100.0


@pytest.mark.asyncio
async def test_order_validation(exchange, fake_stream):
    exchange.watch(SYMBOL)
    fake_stream.push_price(SYMBOL, 100.0)
    with pytest.raises(ValueError):
        await exchange.create_order(SYMBOL, OrderSide.BUY, OrderType.MARKET, 0.0)
    with pytest.raises(ValueError):
        await exchange.create_order(SYMBOL, OrderSide.BUY, OrderType.LIMIT, 1.0)


@pytest.mark.asyncio
async def test_insufficient_balance_propagates(exchange, fake_stream):
    exchange.watch(SYMBOL)
    fake_stream.push_price(SYMBOL, 50_000.0)
    with pytest.raises(InsufficientBalance):
        await exchange.create_order(SYMBOL, OrderSide.BUY, OrderType.MARKET, 10.0)
    assert exchange.ledger.current_balance == 10_000.0


@pytest.mark.asyncio
async def test_positions_and_balance_projection(exchange, fake_stream):
    exchange.watch(SYMBOL)
    fake_stream.push_price(SYMBOL, 100.0)
    await exchange.create_order(SYMBOL, OrderSide.SELL, OrderType.MARKET, 5.0)
    fake_stream.push_price(SYMBOL, 90.0)

    [pos] = await exchange.get_positions()
    assert pos.size == -5.0
    assert pos.entry_price == 100.0
    assert pos.mark_price == 90.0
    assert pos.unrealized_pnl == pytest.approx(50.0)
    assert pos.leverage == 10
    assert pos.margin_type == "isolated"

    [balance] = await exchange.get_balance()
    assert balance.asset == "USDT"
    assert balance.free == pytest.approx(9_950.0)
    assert balance.locked == pytest.approx(50.0)
    assert balance.total == pytest.approx(10_000.0)


@pytest.mark.asyncio
async def test_trade_history(exchange, fake_stream):
    exchange.watch(SYMBOL)
    fake_stream.push_price(SYMBOL, 100.0)
    await exchange.create_order(SYMBOL, OrderSide.BUY, OrderType.MARKET, 1.0)
    fake_stream.push_price(SYMBOL, 120.0)
    await exchange.create_order(SYMBOL, OrderSide.SELL, OrderType.MARKET, 1.0)

    [fill] = await exchange.get_trade_history(SYMBOL)
    assert fill.side is OrderSide.SELL
    assert fill.price == 120.0
    assert fill.commission == pytest.approx(0.048)
    assert fill.commission_asset == "USDT"
    assert fill.realized_pnl == pytest.approx(19.952)
    assert fill.timestamp > 0

    assert await exchange.get_trade_history("ETH/USDT") == []


@pytest.mark.asyncio
async def test_cancel_order_only_warns(exchange, caplog):
    with caplog.at_level(logging.WARNING, logger="execution.paper_exchange"):
        await exchange.cancel_order("1", SYMBOL)
    assert "ignored" in caplog.text


@pytest.mark.asyncio
async def test_price_cache_is_per_instance(fake_stream):
    first = PaperExchange(MarginLedger(10_000.0), fake_stream)
    second = PaperExchange(MarginLedger(10_000.0), fake_stream)

    first.watch(SYMBOL)
    fake_stream.push_price(SYMBOL, 100.0)

    assert first.last_price(SYMBOL) == 100.0
    assert second.last_price(SYMBOL) is None
    with pytest.raises(PriceUnavailable):
        await second.create_order(SYMBOL, OrderSide.BUY, OrderType.MARKET, 1.0)

    await first.create_order(SYMBOL, OrderSide.BUY, OrderType.MARKET, 1.0)
    assert second.ledger.get_open_positions() == []
