# execution/broker.py

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

import ccxt.async_support as ccxt_async
from ccxt.base.errors import BaseError

from config.live import LIVE_UNLOCK_TOKEN
from execution.orders import (
    Balance,
    Fill,
    Order,
    OrderSide,
    OrderStatus,
    OrderType,
    PositionSnapshot,
)

logger = logging.getLogger(__name__)


class ExchangeClient(ABC):
    """
    Order-routing boundary shared by the paper and the live exchange.
    """

    @abstractmethod
    async def create_order(
        self,
        symbol: str,
        side: OrderSide,
        order_type: OrderType,
        quantity: float,
        price: Optional[float] = None,
    ) -> Order:
        ...

    @abstractmethod
    async def cancel_order(self, order_id: str, symbol: str) -> None:
        ...

    @abstractmethod
    async def get_positions(self) -> List[PositionSnapshot]:
        ...

    @abstractmethod
    async def get_balance(self) -> List[Balance]:
        ...

    @abstractmethod
    async def get_trade_history(self, symbol: str) -> List[Fill]:
        ...

    async def close(self) -> None:
        return None


_CCXT_STATUS = {
    "open": OrderStatus.NEW,
    "closed": OrderStatus.FILLED,
    "canceled": OrderStatus.CANCELED,
    "cancelled": OrderStatus.CANCELED,
    "expired": OrderStatus.REJECTED,
    "rejected": OrderStatus.REJECTED,
}


class LiveExchange(ExchangeClient):
    """
    Binance USD-M futures through ccxt (async).
    Refuses to start unless ALLOW_LIVE_TRADING was set to the unlock token.
    """

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        testnet: bool = True,
        allow_live_trading: bool = False,
        exchange=None,
    ):
        if not allow_live_trading:
            raise ValueError(
                f"Live trading is locked. Set ALLOW_LIVE_TRADING={LIVE_UNLOCK_TOKEN} to unlock."
            )

        if exchange is None:
            exchange = ccxt_async.binanceusdm({
                "apiKey": api_key,
                "secret": api_secret,
                "enableRateLimit": True,
            })
            if testnet and hasattr(exchange, "set_sandbox_mode"):
                exchange.set_sandbox_mode(True)

        self.exchange = exchange
        self._markets_loaded = False

    async def _ensure_markets(self) -> None:
        if not self._markets_loaded:
            await self.exchange.load_markets()
            self._markets_loaded = True

    def _normalize_qty(self, symbol: str, qty: float) -> float:
        market = self.exchange.market(symbol)
        normalized = float(self.exchange.amount_to_precision(symbol, qty))

        min_amount = market.get("limits", {}).get("amount", {}).get("min")
        if min_amount is not None and normalized < float(min_amount):
            raise ValueError(
                f"Order qty too small for {symbol}: {normalized} < min {min_amount}"
            )

        return normalized

    async def create_order(
        self,
        symbol: str,
        side: OrderSide,
        order_type: OrderType,
        quantity: float,
        price: Optional[float] = None,
    ) -> Order:
        side = OrderSide(side)
        order_type = OrderType(order_type)

        if order_type is OrderType.LIMIT and price is None:
            raise ValueError("LIMIT order requires a price")

        await self._ensure_markets()
        qty = self._normalize_qty(symbol, quantity)

        try:
            raw = await self.exchange.create_order(
                symbol,
                order_type.value.lower(),
                side.value.lower(),
                qty,
                price if order_type is OrderType.LIMIT else None,
            )
        except BaseError as e:
            logger.error("Failed to create order %s %s %s: %s", side.value, qty, symbol, e)
            raise

        order = self._map_order(raw, symbol, side, order_type, qty, price)
        logger.info("Order placed: %s %s %s qty=%s status=%s", order.id, side.value, symbol, qty, order.status.value)
        return order

    async def cancel_order(self, order_id: str, symbol: str) -> None:
        try:
            await self.exchange.cancel_order(order_id, symbol)
        except BaseError as e:
            logger.error("Failed to cancel order %s: %s", order_id, e)
            raise

    async def get_positions(self) -> List[PositionSnapshot]:
        await self._ensure_markets()
        raw_positions = await self.exchange.fetch_positions()

        out: List[PositionSnapshot] = []
        for p in raw_positions:
            contracts = float(p.get("contracts") or 0.0)
            if contracts == 0:
                continue

            size = -contracts if p.get("side") == "short" else contracts
            out.append(PositionSnapshot(
                symbol=p["symbol"],
                size=size,
                entry_price=float(p.get("entryPrice") or 0.0),
                mark_price=float(p.get("markPrice") or 0.0),
                unrealized_pnl=float(p.get("unrealizedPnl") or 0.0),
                leverage=float(p.get("leverage") or 0.0),
                margin_type=p.get("marginMode") or "cross",
                liquidation_price=float(p.get("liquidationPrice") or 0.0),
            ))
        return out

    async def get_balance(self) -> List[Balance]:
        raw = await self.exchange.fetch_balance()
        free = raw.get("free", {})
        used = raw.get("used", {})
        total = raw.get("total", {})

        out: List[Balance] = []
        for asset, amount in total.items():
            if amount is None or float(amount) == 0:
                continue
            out.append(Balance(
                asset=asset,
                free=float(free.get(asset) or 0.0),
                locked=float(used.get(asset) or 0.0),
                total=float(amount),
            ))
        return out

    async def get_trade_history(self, symbol: str) -> List[Fill]:
        await self._ensure_markets()
        raw_trades = await self.exchange.fetch_my_trades(symbol)

        out: List[Fill] = []
        for t in raw_trades:
            fee = t.get("fee") or {}
            info = t.get("info") or {}
            out.append(Fill(
                id=str(t["id"]),
                order_id=str(t.get("order") or ""),
                symbol=t["symbol"],
                side=OrderSide(str(t["side"]).upper()),
                price=float(t["price"]),
                quantity=float(t["amount"]),
                commission=float(fee.get("cost") or 0.0),
                commission_asset=fee.get("currency") or "",
                realized_pnl=float(info.get("realizedPnl") or 0.0),
                timestamp=int(t.get("timestamp") or 0),
            ))
        return out

    async def close(self) -> None:
        await self.exchange.close()

    @staticmethod
    def _map_order(raw: dict, symbol, side, order_type, qty, price) -> Order:
        status = _CCXT_STATUS.get(str(raw.get("status") or "").lower(), OrderStatus.NEW)
        average = raw.get("average")
        return Order(
            id=str(raw.get("id")),
            symbol=raw.get("symbol") or symbol,
            side=side,
            type=order_type,
            quantity=float(raw.get("amount") or qty),
            price=float(raw["price"]) if raw.get("price") is not None else price,
            status=status,
            timestamp=int(raw.get("timestamp") or 0),
            filled_quantity=float(raw.get("filled") or 0.0),
            average_price=float(average) if average is not None else None,
        )
