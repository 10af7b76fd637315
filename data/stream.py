# data/stream.py

import asyncio
import contextlib
import inspect
import itertools
import logging
from collections import defaultdict
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Set, Tuple, Union

import orjson
import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from data.candle import Candle, Ticker

logger = logging.getLogger(__name__)


BINANCE_FUTURES_WS = "wss://fstream.binance.com/ws"

Handler = Callable[..., Union[None, Awaitable[None]]]


class ConnectionState(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"


def market_id(symbol: str) -> str:
    """
    'BTC/USDT' / 'BTC/USDT:USDT' / 'btcusdt' -> 'BTCUSDT'
    """
    return symbol.split(":")[0].replace("/", "").upper()


def ticker_stream(symbol: str) -> str:
    return f"{market_id(symbol).lower()}@markPrice"


def kline_stream(symbol: str, interval: str) -> str:
    return f"{market_id(symbol).lower()}@kline_{interval}"


class BinanceMarketStream:
    """
    Binance USD-M raw websocket stream with automatic reconnect.

    DISCONNECTED -> CONNECTING -> CONNECTED -> (drop) -> DISCONNECTED -> ...

    One reconnect task at most. Subscriptions made while not connected are
    retried until the socket is open, and every known stream is re-sent on
    each (re)connect. Re-subscribing is harmless on Binance.

    Subscription methods must be called from inside the running event loop.
    """

    def __init__(
        self,
        url: str = BINANCE_FUTURES_WS,
        reconnect_delay: float = 5.0,
        subscribe_retry: float = 1.0,
        connect=None,
    ):
        self.url = url
        self.reconnect_delay = reconnect_delay
        self.subscribe_retry = subscribe_retry
        self._connect = connect or websockets.connect

        self.state = ConnectionState.DISCONNECTED
        self._ws = None
        self._closing = False

        self._streams: List[str] = []
        self._ticker_handlers: Dict[str, List[Tuple[str, Handler]]] = defaultdict(list)
        self._candle_handlers: Dict[Tuple[str, str], List[Tuple[str, Handler]]] = defaultdict(list)

        self._reader_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()
        self._ids = itertools.count(1)

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    @property
    def streams(self) -> List[str]:
        return list(self._streams)

    # ----------------------------
    # CONNECTION
    # ----------------------------
    async def connect(self) -> None:
        if self.state is not ConnectionState.DISCONNECTED:
            return

        self._closing = False
        self.state = ConnectionState.CONNECTING
        logger.info("Connecting to %s", self.url)

        try:
            ws = await self._connect(self.url)
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            logger.warning("Connection to %s failed: %s", self.url, e)
            self.state = ConnectionState.DISCONNECTED
            self._schedule_reconnect()
            return

        if self._closing:
            await ws.close()
            self.state = ConnectionState.DISCONNECTED
            return

        self._ws = ws
        self.state = ConnectionState.CONNECTED
        logger.info("Connected to %s", self.url)

        if self._streams:
            await self._send_subscribe(list(self._streams))

        self._reader_task = asyncio.create_task(self._read_loop(ws))

    async def disconnect(self) -> None:
        self._closing = True
        ws, self._ws = self._ws, None

        tasks = [t for t in (self._reconnect_task, self._reader_task) if t is not None]
        tasks.extend(self._pending)
        current = asyncio.current_task()
        for task in tasks:
            if task is not current:
                task.cancel()
        for task in tasks:
            if task is not current:
                with contextlib.suppress(asyncio.CancelledError):
                    await task

        self._reconnect_task = None
        self._reader_task = None
        self._pending.clear()

        if ws is not None:
            await ws.close()

        self.state = ConnectionState.DISCONNECTED
        logger.info("Market stream disconnected")

    def _schedule_reconnect(self) -> None:
        if self._closing:
            return
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        logger.info("Reconnecting in %.1fs", self.reconnect_delay)
        self._reconnect_task = asyncio.create_task(self._reconnect_later())

    async def _reconnect_later(self) -> None:
        await asyncio.sleep(self.reconnect_delay)
        self._reconnect_task = None
        logger.info("Attempting to reconnect...")
        await self.connect()

    async def _read_loop(self, ws) -> None:
        try:
            async for raw in ws:
                await self._dispatch(raw)
        except ConnectionClosed as e:
            logger.warning("Market stream closed: %s", e)
        except (OSError, WebSocketException) as e:
            logger.error("Market stream read failed: %s", e)
        finally:
            if self._ws is ws:
                self._ws = None
                self.state = ConnectionState.DISCONNECTED
                if not self._closing:
                    logger.warning("Market stream disconnected")
                    self._schedule_reconnect()

    # ----------------------------
    # SUBSCRIPTIONS
    # ----------------------------
    def subscribe_ticker(self, symbol: str, handler: Handler) -> None:
        self._ticker_handlers[market_id(symbol)].append((symbol, handler))
        self._request(ticker_stream(symbol))

    def subscribe_candles(self, symbol: str, interval: str, handler: Handler) -> None:
        self._candle_handlers[(market_id(symbol), interval)].append((symbol, handler))
        self._request(kline_stream(symbol, interval))

    def _request(self, stream: str) -> None:
        if stream in self._streams:
            return
        self._streams.append(stream)

        if self.is_connected:
            self._track(asyncio.create_task(self._send_subscribe([stream])))
        else:
            self._track(asyncio.create_task(self._subscribe_when_connected(stream)))

    def _track(self, task: asyncio.Task) -> None:
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _subscribe_when_connected(self, stream: str) -> None:
        while not self.is_connected:
            await asyncio.sleep(self.subscribe_retry)
        await self._send_subscribe([stream])

    async def _send_subscribe(self, streams: List[str]) -> None:
        ws = self._ws
        if ws is None:
            return

        payload = {"method": "SUBSCRIBE", "params": streams, "id": next(self._ids)}
        try:
            await ws.send(orjson.dumps(payload).decode())
        except ConnectionClosed as e:
            # re-sent on the next connect
            logger.warning("SUBSCRIBE %s not sent: %s", streams, e)
            return
        logger.debug("SUBSCRIBE %s", streams)

    # ----------------------------
    # DISPATCH
    # ----------------------------
    async def _dispatch(self, raw) -> None:
        try:
            msg = orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            logger.error("Failed to parse message: %s", e)
            return

        if not isinstance(msg, dict):
            return

        event = msg.get("e")
        try:
            if event == "markPriceUpdate":
                mid = msg["s"]
                price = float(msg["p"])
                ts = int(msg["E"])
                for symbol, handler in list(self._ticker_handlers.get(mid, ())):
                    await self._call(handler, Ticker(symbol=symbol, price=price, timestamp=ts))

            elif event == "kline":
                k = msg["k"]
                for symbol, handler in list(self._candle_handlers.get((msg["s"], k["i"]), ())):
                    await self._call(handler, candle_from_kline(symbol, k))

        except (KeyError, TypeError, ValueError) as e:
            logger.error("Malformed %s message: %s", event, e)

    async def _call(self, handler: Handler, item) -> None:
        try:
            result = handler(item)
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Stream handler %r failed", handler)


def candle_from_kline(symbol: str, k: dict) -> Candle:
    return Candle(
        symbol=symbol,
        interval=k["i"],
        open=float(k["o"]),
        high=float(k["h"]),
        low=float(k["l"]),
        close=float(k["c"]),
        volume=float(k["v"]),
        timestamp=int(k["t"]),
        is_final=bool(k["x"]),
    )
