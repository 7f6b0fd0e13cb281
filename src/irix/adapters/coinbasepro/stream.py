"""
Coinbase websocket streaming.

Wraps the Coinbase Advanced Trade WSClient. Messages on the ticker, level2
and market_trades channels feed the shared ticker cache, the shared order
book cache and the exchange trade buffer. The client reconnects with
exponential backoff and resubscribes after every reconnect.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable

from coinbase.websocket import WSClient
from websockets.exceptions import WebSocketException

from irix.adapters.coinbasepro.data import (
    Level2Message,
    MarketTradesMessage,
    TickerMessage,
)
from irix.currency import Pair
from irix.enums import Asset
from irix.errors import IrixError, WebsocketError
from irix.model import orderbook, ticker, trade
from irix.model.order import string_to_order_side

logger = logging.getLogger(__name__)

CHANNEL_TICKER = "ticker"
CHANNEL_LEVEL2 = "level2"
CHANNEL_MARKET_TRADES = "market_trades"

DEFAULT_CHANNELS = (CHANNEL_TICKER, CHANNEL_LEVEL2, CHANNEL_MARKET_TRADES)


def product_to_pair(product_id: str) -> Pair:
    return Pair.from_delimited(product_id, "-")


class CoinbaseStreamHandler:
    """
    Routes websocket messages into the irix caches.

    Level2 state lives in one MutableOrderBook per product. Snapshots
    replace it, updates are applied level by level, and every message
    publishes a fresh Book.
    """

    def __init__(
        self,
        exchange: str,
        on_trades: Callable[..., None],
        verify_orderbook: bool = True,
    ) -> None:
        """
        Args:
            exchange: Exchange name the caches are keyed by
            on_trades: Receives parsed trades, typically the trade buffer
            verify_orderbook: Whether published books are verified
        """
        self.exchange = exchange
        self.on_trades = on_trades
        self.verify_orderbook = verify_orderbook
        self.books: dict[str, orderbook.MutableOrderBook] = {}

    def handle_message(self, msg: str) -> None:
        """
        Entry point called by the websocket client.

        Raises:
            WebsocketError: On an error message from the venue
        """
        try:
            payload = json.loads(msg)
        except json.JSONDecodeError as e:
            logger.error(f"{self.exchange} websocket: invalid JSON: {e}")
            return

        channel = payload.get("channel", "")
        match channel:
            case "ticker" | "ticker_batch":
                self._handle_ticker(TickerMessage.model_validate(payload))
            case "level2" | "l2_data":
                self._handle_level2(Level2Message.model_validate(payload))
            case "market_trades":
                self._handle_trades(MarketTradesMessage.model_validate(payload))
            case "subscriptions" | "heartbeats":
                pass
            case _:
                if payload.get("type") == "error":
                    raise WebsocketError(
                        f"{self.exchange} websocket error: {payload.get('message', msg)}"
                    )
                logger.warning(f"{self.exchange} websocket: unknown channel {channel}")

    def _handle_ticker(self, message: TickerMessage) -> None:
        for item in message.tickers:
            ticker.process_ticker(
                ticker.Price(
                    pair=product_to_pair(item.product_id),
                    last=item.price,
                    bid=item.best_bid,
                    ask=item.best_ask,
                    high=item.high_24h,
                    low=item.low_24h,
                    volume=item.volume_24h,
                    exchange=self.exchange,
                    asset=Asset.SPOT,
                    last_updated=message.timestamp,
                )
            )

    def _handle_level2(self, message: Level2Message) -> None:
        for event in message.events:
            book = self.books.get(event.product_id)
            if book is None or event.is_snapshot:
                book = orderbook.MutableOrderBook(event.product_id)
                bids = [
                    orderbook.Item(price=u.price_level, amount=u.new_quantity)
                    for u in event.updates
                    if u.is_bid
                ]
                asks = [
                    orderbook.Item(price=u.price_level, amount=u.new_quantity)
                    for u in event.updates
                    if not u.is_bid
                ]
                book.apply_snapshot(bids, asks, message.sequence_num)
                self.books[event.product_id] = book
            else:
                for update in event.updates:
                    book.apply_update(
                        "bid" if update.is_bid else "ask",
                        update.price_level,
                        update.new_quantity,
                    )
                book.sequence = message.sequence_num

            snapshot = book.to_book(self.exchange, product_to_pair(event.product_id), Asset.SPOT)
            snapshot.verification_bypass = not self.verify_orderbook
            snapshot.process()

    def _handle_trades(self, message: MarketTradesMessage) -> None:
        trades = [
            trade.Data(
                tid=item.trade_id,
                exchange=self.exchange,
                pair=product_to_pair(item.product_id),
                asset=Asset.SPOT,
                side=string_to_order_side(item.side),
                price=item.price,
                amount=item.size,
                timestamp=item.time,
            )
            for item in message.trades
        ]
        if trades:
            self.on_trades(*trades)


class ResilientWSClient:
    """
    WSClient wrapper with automatic reconnection.

    WSClient runs its socket on a background thread; message and close
    callbacks hop back onto the event loop that called start() so the
    handler and the shared caches are only touched from that loop.
    """

    def __init__(
        self,
        handler: CoinbaseStreamHandler,
        api_key: str | None = None,
        api_secret: str | None = None,
        initial_backoff: float = 1.0,
        max_backoff: float = 60.0,
        backoff_factor: float = 2.0,
    ) -> None:
        self.handler = handler
        self.api_key = api_key
        self.api_secret = api_secret

        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        self.backoff_factor = backoff_factor
        self.current_backoff = initial_backoff

        # product id -> channels
        self.subscriptions: dict[str, set[str]] = {}

        self.client: WSClient | None = None
        self.is_running = False
        self.reconnect_task: asyncio.Task[None] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    async def start(self) -> None:
        """
        Open the connection.

        Raises:
            WebsocketError: If the first connection attempt fails
        """
        if self.is_running:
            logger.warning("Client already running")
            return
        self._loop = asyncio.get_running_loop()
        self.is_running = True
        try:
            await self._connect()
        except (OSError, WebSocketException) as e:
            self.is_running = False
            raise WebsocketError(f"Connection failed: {e}") from e

    async def stop(self) -> None:
        """Close the connection and cancel pending reconnects."""
        self.is_running = False
        if self.reconnect_task:
            self.reconnect_task.cancel()
            self.reconnect_task = None
        await self._close_client()

    async def subscribe(self, product_ids: list[str], channels: list[str]) -> None:
        for product_id in product_ids:
            self.subscriptions.setdefault(product_id, set()).update(channels)
        if self.client is not None:
            await asyncio.to_thread(self.client.subscribe, product_ids, channels)

    async def unsubscribe(self, product_ids: list[str], channels: list[str]) -> None:
        for product_id in product_ids:
            remaining = self.subscriptions.get(product_id, set()) - set(channels)
            if remaining:
                self.subscriptions[product_id] = remaining
            else:
                self.subscriptions.pop(product_id, None)
        if self.client is not None:
            await asyncio.to_thread(self.client.unsubscribe, product_ids, channels)

    async def _connect(self) -> None:
        logger.info("Connecting to Coinbase WebSocket...")
        self.client = WSClient(
            api_key=self.api_key,
            api_secret=self.api_secret,
            on_message=self._on_message,
            on_open=self._on_open,
            on_close=self._on_close,
            retry=False,
            verbose=False,
        )
        await asyncio.to_thread(self.client.open)
        await self._resubscribe()
        self.current_backoff = self.initial_backoff
        logger.info("Successfully connected and subscribed")

    async def _resubscribe(self) -> None:
        by_channel: dict[str, list[str]] = {}
        for product_id, channels in self.subscriptions.items():
            for channel in channels:
                by_channel.setdefault(channel, []).append(product_id)
        for channel, product_ids in by_channel.items():
            logger.info(f"Subscribing to {channel} for {product_ids}")
            await asyncio.to_thread(self.client.subscribe, product_ids, [channel])

    async def _close_client(self) -> None:
        if self.client is None:
            return
        client, self.client = self.client, None
        try:
            await asyncio.to_thread(client.close)
        except (OSError, WebSocketException) as e:
            logger.error(f"Error closing client: {e}")

    def _on_message(self, msg: str) -> None:
        if self._loop is None:
            self._dispatch(msg)
            return
        self._loop.call_soon_threadsafe(self._dispatch, msg)

    def _dispatch(self, msg: str) -> None:
        try:
            self.handler.handle_message(msg)
        except (IrixError, ValueError) as e:
            logger.error(f"Message handling error: {e}")

    def _on_open(self) -> None:
        logger.info("WebSocket connection opened")

    def _on_close(self) -> None:
        logger.warning("WebSocket connection closed")
        if self.is_running and self._loop is not None:
            self._loop.call_soon_threadsafe(self._schedule_reconnect)

    def _schedule_reconnect(self) -> None:
        if not self.is_running:
            return
        logger.info(f"Scheduling reconnection in {self.current_backoff} seconds...")
        if self.reconnect_task:
            self.reconnect_task.cancel()
        self.reconnect_task = asyncio.create_task(self._reconnect())

    async def _reconnect(self) -> None:
        await self._close_client()
        await asyncio.sleep(self.current_backoff)
        self.current_backoff = min(self.current_backoff * self.backoff_factor, self.max_backoff)
        if not self.is_running:
            return
        logger.info("Attempting reconnection...")
        try:
            await self._connect()
        except (OSError, WebSocketException) as e:
            logger.error(f"Connection failed: {e}")
            self._schedule_reconnect()
