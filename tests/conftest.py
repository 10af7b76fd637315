import asyncio
from datetime import datetime, timezone

import orjson
import pytest

from data.candle import Candle, Ticker
from strategies.base import Strategy
from strategies.signal import Action, Signal


BASE_TS = 1704067200000  # 2024-01-01T00:00:00Z
MINUTE_MS = 60_000


def make_candle(
    close: float,
    i: int = 0,
    symbol: str = "BTC/USDT",
    interval: str = "15m",
    open_: float = None,
    high: float = None,
    low: float = None,
    ts: int = None,
    is_final: bool = True,
) -> Candle:
    open_ = close if open_ is None else open_
    return Candle(
        symbol=symbol,
        interval=interval,
        open=open_,
        high=max(open_, close) if high is None else high,
        low=min(open_, close) if low is None else low,
        close=close,
        volume=1.0,
        timestamp=BASE_TS + i * 15 * MINUTE_MS if ts is None else ts,
        is_final=is_final,
    )


class ScriptedStrategy(Strategy):
    """
    Emits one scripted action per analyze() call, HOLD once exhausted.
    """

    name = "SCRIPTED"

    def __init__(self, actions):
        self.actions = list(actions)
        self.calls = 0
        self.window_sizes = []
        self.init_calls = 0

    def on_init(self) -> None:
        self.init_calls += 1
        self.calls = 0

    def analyze(self, window):
        self.window_sizes.append(len(window))
        action = self.actions[self.calls] if self.calls < len(self.actions) else Action.HOLD
        self.calls += 1
        return Signal.at(window[-1], action)


class FakeLoader:
    def __init__(self, candles=None, error: Exception = None):
        self.candles = candles or []
        self.error = error
        self.calls = []

    def load_candles(self, symbol, interval, start, end):
        self.calls.append((symbol, interval, start, end))
        if self.error is not None:
            raise self.error
        return list(self.candles)


class FakeStream:
    """
    Records subscriptions; `push_price` delivers a mark price synchronously.
    """

    def __init__(self):
        self.ticker_handlers = {}
        self.candle_handlers = {}
        self.subscribe_calls = []
        self.connected = False

    def subscribe_ticker(self, symbol, handler):
        self.subscribe_calls.append(("ticker", symbol))
        self.ticker_handlers.setdefault(symbol, []).append(handler)

    def subscribe_candles(self, symbol, interval, handler):
        self.subscribe_calls.append(("kline", symbol, interval))
        self.candle_handlers.setdefault((symbol, interval), []).append(handler)

    def push_price(self, symbol, price, ts=BASE_TS):
        for handler in self.ticker_handlers.get(symbol, []):
            handler(Ticker(symbol=symbol, price=price, timestamp=ts))

    async def connect(self):
        self.connected = True

    async def disconnect(self):
        self.connected = False


class FakeWebSocket:
    """
    Minimal stand-in for a websockets client connection.
    """

    def __init__(self):
        self.sent = []
        self.closed = False
        self._queue = asyncio.Queue()

    async def send(self, data):
        self.sent.append(orjson.loads(data))

    async def close(self):
        self.closed = True
        self._queue.put_nowait(None)

    def feed(self, message):
        self._queue.put_nowait(orjson.dumps(message))

    def feed_raw(self, raw):
        self._queue.put_nowait(raw)

    def drop(self):
        self._queue.put_nowait(None)

    def fail(self, error: Exception):
        self._queue.put_nowait(error)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._queue.get()
        if item is None:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return item


async def wait_until(predicate, timeout: float = 1.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def candle():
    return make_candle


@pytest.fixture
def fake_stream():
    return FakeStream()


@pytest.fixture
def utc():
    def _utc(*args):
        return datetime(*args, tzinfo=timezone.utc)
    return _utc
