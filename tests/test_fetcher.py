from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from ccxt.base.errors import RequestTimeout

from data import fetcher as fetcher_module
from data.fetcher import MarketDataFetcher

MINUTE = 60_000
START = datetime(2024, 1, 1, tzinfo=timezone.utc)
START_MS = 1704067200000


def ohlcv(ts, close=100.0):
    return [ts, close, close + 1, close - 1, close, 10.0]


class PagedExchange:
    """
    Serves 1m bars from `first` up to (excluding) `last`, `limit` per call.
    """

    def __init__(self, first, last):
        self.first = first
        self.last = last
        self.calls = []

    def fetch_ohlcv(self, symbol, timeframe, since=None, limit=None):
        self.calls.append(since)
        start = max(since, self.first)
        start += (-(start - self.first)) % MINUTE
        return [ohlcv(ts) for ts in range(start, self.last, MINUTE)][:limit]


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    sleeps = []
    monkeypatch.setattr(fetcher_module.time, "sleep", sleeps.append)
    return sleeps


def test_load_candles_paginates(monkeypatch):
    monkeypatch.setattr(fetcher_module, "PAGE_LIMIT", 4)
    exchange = PagedExchange(START_MS, START_MS + 100 * MINUTE)
    fetcher = MarketDataFetcher(exchange=exchange)

    end = datetime(2024, 1, 1, 0, 10, tzinfo=timezone.utc)
    candles = fetcher.load_candles("BTC/USDT", "1m", START, end)

    assert len(candles) == 10
    assert candles[0].timestamp == START_MS
    assert candles[-1].timestamp == START_MS + 9 * MINUTE
    assert all(a.timestamp < b.timestamp for a, b in zip(candles, candles[1:]))
    assert exchange.calls[:2] == [START_MS, START_MS + 3 * MINUTE + 1]


def test_load_candles_stops_on_short_page(monkeypatch):
    monkeypatch.setattr(fetcher_module, "PAGE_LIMIT", 50)
    exchange = PagedExchange(START_MS, START_MS + 7 * MINUTE)
    fetcher = MarketDataFetcher(exchange=exchange)

    candles = fetcher.load_candles("BTC/USDT", "1m", START, datetime(2024, 1, 2, tzinfo=timezone.utc))

    assert len(candles) == 7
    assert len(exchange.calls) == 1


def test_load_candles_naive_dates_are_utc():
    exchange = PagedExchange(START_MS, START_MS + 3 * MINUTE)
    fetcher = MarketDataFetcher(exchange=exchange)
    candles = fetcher.load_candles("BTC/USDT", "1m", datetime(2024, 1, 1), datetime(2024, 1, 1, 1))
    assert candles[0].timestamp == START_MS
    assert candles[0].symbol == "BTC/USDT"
    assert candles[0].is_final


def test_retries_on_timeout(no_sleep):
    exchange = MagicMock()
    exchange.fetch_ohlcv.side_effect = [RequestTimeout("slow"), [ohlcv(START_MS)]]
    fetcher = MarketDataFetcher(exchange=exchange, retries=3, page_delay=0)

    candles = fetcher.load_candles("BTC/USDT", "1m", START, datetime(2024, 1, 2, tzinfo=timezone.utc))

    assert len(candles) == 1
    assert exchange.fetch_ohlcv.call_count == 2
    assert no_sleep == [2]


def test_gives_up_after_retries():
    exchange = MagicMock()
    exchange.fetch_ohlcv.side_effect = RequestTimeout("slow")
    fetcher = MarketDataFetcher(exchange=exchange, retries=2, page_delay=0)

    with pytest.raises(RequestTimeout):
        fetcher.load_candles("BTC/USDT", "1m", START, datetime(2024, 1, 2, tzinfo=timezone.utc))
    assert exchange.fetch_ohlcv.call_count == 2


def test_fetch_recent_drops_forming_bar():
    exchange = MagicMock()
    exchange.fetch_ohlcv.return_value = [ohlcv(START_MS + i * MINUTE, 100.0 + i) for i in range(4)]
    fetcher = MarketDataFetcher(exchange=exchange)

    candles = fetcher.fetch_recent("BTC/USDT", "1m", limit=3)

    exchange.fetch_ohlcv.assert_called_once_with("BTC/USDT", "1m", since=None, limit=4)
    assert [c.close for c in candles] == [100.0, 101.0, 102.0]


def test_fetch_recent_empty():
    exchange = MagicMock()
    exchange.fetch_ohlcv.return_value = []
    with pytest.raises(RuntimeError):
        MarketDataFetcher(exchange=exchange).fetch_recent("BTC/USDT", "1m")


def test_unsupported_exchange():
    with pytest.raises(ValueError):
        MarketDataFetcher(exchange_name="kraken")
