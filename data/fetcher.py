# data/fetcher.py

import logging
import time
from datetime import datetime
from typing import List, Optional

import ccxt
from ccxt.base.errors import NetworkError, RequestTimeout

from data.candle import Candle, candle_from_ohlcv, datetime_to_ms

logger = logging.getLogger(__name__)


PAGE_LIMIT = 1000


class MarketDataFetcher:
    """
    Historical OHLCV loader with pagination, retry and timeout safety.
    """

    def __init__(
        self,
        exchange_name: str = "binance",
        exchange=None,
        retries: int = 3,
        page_delay: float = 0.1,
    ):
        self.exchange = exchange if exchange is not None else self._init_exchange(exchange_name)
        self.retries = retries
        self.page_delay = page_delay

    def _init_exchange(self, exchange_name: str):
        if exchange_name not in {"binance", "binanceusdm"}:
            raise ValueError(f"Unsupported exchange: {exchange_name}")

        exchange_cls = getattr(ccxt, exchange_name)
        return exchange_cls({
            "enableRateLimit": True,
            "timeout": 20000,  # 20s
        })

    def _fetch_page(self, symbol: str, interval: str, since: Optional[int], limit: int) -> list:
        for attempt in range(1, self.retries + 1):
            try:
                return self.exchange.fetch_ohlcv(symbol, interval, since=since, limit=limit)

            except (RequestTimeout, NetworkError) as e:
                if attempt == self.retries:
                    raise
                logger.warning(
                    "fetch_ohlcv %s %s failed (attempt %d/%d): %s",
                    symbol, interval, attempt, self.retries, e,
                )
                time.sleep(2 * attempt)

        raise RuntimeError("fetch_ohlcv failed after retries")

    def load_candles(
        self,
        symbol: str,
        interval: str,
        start: datetime,
        end: datetime,
    ) -> List[Candle]:
        """
        All closed candles with open time in [start, end), oldest first.
        """
        start_ms = datetime_to_ms(start)
        end_ms = datetime_to_ms(end)

        logger.info("Fetching candles for %s (%s) from %s to %s", symbol, interval, start, end)

        candles: List[Candle] = []
        since = start_ms

        while since < end_ms:
            if self.page_delay:
                time.sleep(self.page_delay)

            bars = self._fetch_page(symbol, interval, since, PAGE_LIMIT)
            if not bars:
                break

            for bar in bars:
                if start_ms <= int(bar[0]) < end_ms:
                    candles.append(candle_from_ohlcv(symbol, interval, bar))

            last_ts = int(bars[-1][0])
            if last_ts < since or len(bars) < PAGE_LIMIT:
                break
            since = last_ts + 1

        logger.info("Fetched total %d candles", len(candles))
        return candles

    def fetch_recent(self, symbol: str, interval: str, limit: int = 500) -> List[Candle]:
        """
        Latest `limit` bars for live warm-up. The last bar may still be forming
        and is dropped.
        """
        bars = self._fetch_page(symbol, interval, None, limit + 1)
        if not bars:
            raise RuntimeError(f"empty OHLCV for {symbol} {interval}")

        return [candle_from_ohlcv(symbol, interval, bar) for bar in bars[:-1]]

