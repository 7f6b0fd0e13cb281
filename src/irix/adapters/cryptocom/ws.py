"""
Crypto.com websocket client.

Two connections are held open: the market endpoint for public channels and
the user endpoint for private channels and order actions. Each has its own
reader task; replies and pushes land on a single queue. Heartbeats are
answered on the connection they arrived on. A failed read redials the
endpoint, then re-authenticates and resubscribes.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Protocol

import websockets
from pydantic import ValidationError as PydanticValidationError
from websockets.exceptions import WebSocketException

from irix.adapters.cryptocom import data
from irix.adapters.cryptocom import requests as req
from irix.adapters.cryptocom.params import (
    CreateOrderParams,
    OpenOrderParams,
    TradeParams,
    WithdrawHistoryParams,
    WithdrawParams,
    valid_markets,
)
from irix.errors import ValidationError, WebsocketError

logger = logging.getLogger(__name__)

USER_PATH = f"/{data.API_VERSION}/{data.USER_ENDPOINT}"
MARKET_PATH = f"/{data.API_VERSION}/{data.MARKET_ENDPOINT}"

MIN_BOOK_SUBSCRIPTION_DEPTH = 10

# The venue drops requests sent right after the socket opens
AUTH_DELAY = 3.0
RETRY_DELAY = 1.0


class Transport(Protocol):
    async def send(self, message: str) -> None: ...

    async def recv(self) -> str | bytes: ...

    async def close(self) -> None: ...


Dialer = Callable[[str], Awaitable[Transport]]


async def dial(endpoint: str) -> Transport:
    return await websockets.connect(endpoint)


@dataclass
class Connection:
    endpoint: str
    is_private: bool
    transport: Transport
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def kind(self) -> str:
        return "private" if self.is_private else "public"

    async def send(self, message: str) -> None:
        async with self.lock:
            await self.transport.send(message)


class Client:
    """
    Two-connection websocket client.

    Subscriptions are recorded only once the subscribe request has been
    written, so a reconnect replays exactly what went out.
    """

    def __init__(
        self,
        ws_root_url: str,
        api_key: str = "",
        secret: bytes = b"",
        dialer: Dialer | None = None,
        auth_delay: float = AUTH_DELAY,
        retry_delay: float = RETRY_DELAY,
    ) -> None:
        """
        Args:
            ws_root_url: Scheme and host, e.g. wss://stream.crypto.com
            api_key: Key used for the user connection
            secret: HMAC key used to sign the auth request
            dialer: Opens a transport for an endpoint; defaults to websockets
            auth_delay: Seconds to wait after dialing before authenticating
            retry_delay: Seconds between failed redial attempts
        """
        self.ws_root_url = ws_root_url.rstrip("/")
        self.api_key = api_key
        self.secret = secret
        self.dialer = dialer or dial
        self.auth_delay = auth_delay
        self.retry_delay = retry_delay

        self.public_conn: Connection | None = None
        self.private_conn: Connection | None = None
        self.public_subs: list[str] = []
        self.private_subs: list[str] = []
        self.outbox: asyncio.Queue[data.Response] = asyncio.Queue()
        self.is_terminating = False
        self._readers: list[asyncio.Task[None]] = []

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def connect(self, private: bool = True) -> None:
        """
        Dial the market endpoint and, when private, the user endpoint.

        Raises:
            WebsocketError: If an endpoint cannot be dialed
        """
        self.is_terminating = False
        self.public_conn = await self._dial(self.ws_root_url + MARKET_PATH, False)
        if not private:
            return
        self.private_conn = await self._dial(self.ws_root_url + USER_PATH, True)
        await asyncio.sleep(self.auth_delay)
        await self.authenticate()

    def listen(self) -> asyncio.Queue[data.Response]:
        """Start a reader per open connection and return the shared queue."""
        for conn in (self.public_conn, self.private_conn):
            if conn is not None:
                self._readers.append(asyncio.create_task(self._read(conn)))
        return self.outbox

    async def shutdown(self) -> None:
        self.is_terminating = True
        closed = True
        for conn in (self.private_conn, self.public_conn):
            if conn is not None:
                closed = await self._close(conn) and closed
        readers, self._readers = self._readers, []
        if not closed:
            # a reader blocked on an unclosed socket never wakes up
            for reader in readers:
                reader.cancel()
        for result in await asyncio.gather(*readers, return_exceptions=True):
            if isinstance(result, Exception):
                logger.error(f"reader stopped with error: {result!r}")

    async def _dial(self, endpoint: str, is_private: bool) -> Connection:
        try:
            transport = await self.dialer(endpoint)
        except (OSError, WebSocketException) as e:
            raise WebsocketError(f"unable to dial {endpoint}: {e}") from e
        return Connection(endpoint=endpoint, is_private=is_private, transport=transport)

    async def _close(self, cnx: Connection) -> bool:
        try:
            await cnx.transport.close()
        except (OSError, WebSocketException) as e:
            logger.warning(f"error closing {cnx.kind} cnx: {e}")
            return False
        return True

    async def _read(self, cnx: Connection) -> None:
        logger.info(f"Start listening connection ... {cnx.endpoint}")
        while True:
            try:
                message = await cnx.transport.recv()
            except (OSError, WebSocketException) as e:
                logger.warning(f"error on read message in {cnx.kind} cnx: {e}")
                replacement = await self._recover(cnx)
                if replacement is None:
                    return
                cnx = replacement
                continue

            logger.debug(f"Received [{cnx.kind}]: {message!r}")
            try:
                response = data.Response.model_validate_json(message)
            except PydanticValidationError as e:
                logger.error(f"error decoding {cnx.kind} message: {e}")
                continue

            if response.method != data.PUBLIC_HEARTBEAT:
                await self.outbox.put(response)
                continue
            try:
                await self.respond_heartbeat(cnx.is_private, response.id)
            except (OSError, WebSocketException) as e:
                logger.warning(f"error on heartbeat reply in {cnx.kind} cnx: {e}")
                replacement = await self._recover(cnx)
                if replacement is None:
                    return
                cnx = replacement

    async def _recover(self, cnx: Connection) -> Connection | None:
        if self.is_terminating:
            logger.info(f"Stop reading from {cnx.kind} cnx. Connection closed")
            return None
        return await self._reconnect(cnx)

    async def _reconnect(self, cnx: Connection) -> Connection | None:
        while True:
            if self.is_terminating:
                return None
            try:
                transport = await self.dialer(cnx.endpoint)
            except (OSError, WebSocketException) as e:
                logger.warning(f"Reconnection error in {cnx.kind} cnx: {e}")
                await asyncio.sleep(self.retry_delay)
                continue

            await asyncio.sleep(self.auth_delay)
            fresh = Connection(endpoint=cnx.endpoint, is_private=cnx.is_private, transport=transport)
            try:
                await self._restore(fresh)
            except (OSError, WebSocketException) as e:
                logger.warning(f"Resubscribe error in {fresh.kind} cnx: {e}")
                await self._close(fresh)
                await asyncio.sleep(self.retry_delay)
                continue
            break

        await self._close(cnx)
        return fresh

    async def _restore(self, fresh: Connection) -> None:
        if fresh.is_private:
            self.private_conn = fresh
            await self.authenticate()
            if self.private_subs:
                await self._subscribe(True, list(self.private_subs), record=False)
            return
        self.public_conn = fresh
        if self.public_subs:
            await self._subscribe(False, list(self.public_subs), record=False)

    # =========================================================================
    # TRANSPORT
    # =========================================================================

    def _connection(self, is_private: bool) -> Connection:
        conn = self.private_conn if is_private else self.public_conn
        if conn is None:
            kind = "private" if is_private else "public"
            raise WebsocketError(f"{kind} connection not established")
        return conn

    async def send_private_request(self, request: req.Request) -> None:
        """
        Raises:
            WebsocketError: If the user connection is not open
        """
        conn = self._connection(True)
        payload = request.encode()
        logger.debug(f"Sending private: {payload}")
        await conn.send(payload)

    async def send_public_request(self, request: req.Request) -> None:
        conn = self._connection(False)
        payload = request.encode()
        logger.debug(f"Sending public: {payload}")
        await conn.send(payload)

    async def _send_action(self, request: req.Request) -> None:
        # The user connection is authenticated once; actions go unsigned
        request.type = req.RequestType.ORDER
        await self.send_private_request(request)

    async def authenticate(self) -> None:
        await self.send_private_request(req.auth_request(self.api_key, self.secret))

    async def respond_heartbeat(self, is_private: bool, req_id: int) -> None:
        request = req.heartbeat_request(req_id)
        if is_private:
            await self.send_private_request(request)
        else:
            await self.send_public_request(request)

    # =========================================================================
    # SUBSCRIPTIONS
    # =========================================================================

    async def _subscribe(self, is_private: bool, channels: list[str], record: bool = True) -> None:
        request = req.subscribe_request(channels)
        if is_private:
            await self.send_private_request(request)
        else:
            await self.send_public_request(request)
        if record:
            (self.private_subs if is_private else self.public_subs).extend(channels)

    async def _unsubscribe(self, is_private: bool, channels: list[str]) -> None:
        request = req.subscribe_request(channels, unsubscribe=True)
        if is_private:
            await self.send_private_request(request)
        else:
            await self.send_public_request(request)
        subs = self.private_subs if is_private else self.public_subs
        subs[:] = [channel for channel in subs if channel not in channels]

    async def subscribe_public_channels(self, channels: list[str]) -> None:
        await self._subscribe(False, channels)

    async def subscribe_private_channels(self, channels: list[str]) -> None:
        await self._subscribe(True, channels)

    async def unsubscribe_public_channels(self, channels: list[str]) -> None:
        await self._unsubscribe(False, channels)

    async def unsubscribe_private_channels(self, channels: list[str]) -> None:
        await self._unsubscribe(True, channels)

    async def subscribe_public_trades(self, *markets: str) -> None:
        """Example: subscribe_public_trades("ETH_BTC", "ETH_CRO")"""
        valid_markets(*markets)
        await self._subscribe(False, [f"trade.{m}" for m in markets])

    async def subscribe_public_orderbook(self, depth: int, *markets: str) -> None:
        """
        Args:
            depth: Levels per side, between 10 and 150
            markets: Instrument names
        """
        valid_markets(*markets)
        if depth < MIN_BOOK_SUBSCRIPTION_DEPTH or depth > data.MAX_BOOK_DEPTH:
            raise ValidationError(
                "depth value is out of range. Allowed values are between 10 and/or 150"
            )
        await self._subscribe(False, [f"book.{m}.{depth}" for m in markets])

    async def subscribe_public_tickers(self, *markets: str) -> None:
        valid_markets(*markets)
        await self._subscribe(False, [f"ticker.{m}" for m in markets])

    async def subscribe_candlestick(self, interval: data.Interval | int, *markets: str) -> None:
        valid_markets(*markets)
        if interval not in data.Interval._value2member_map_:
            raise ValidationError("invalid interval value")
        code = data.Interval(interval).encode()
        await self._subscribe(False, [f"candlestick.{code}.{m}" for m in markets])

    async def subscribe_private_orders(self, *markets: str) -> None:
        valid_markets(*markets)
        await self._subscribe(True, [f"user.order.{m}" for m in markets])

    async def subscribe_private_trades(self, *markets: str) -> None:
        valid_markets(*markets)
        await self._subscribe(True, [f"user.trade.{m}" for m in markets])

    async def subscribe_private_margin_orders(self, *markets: str) -> None:
        valid_markets(*markets)
        await self._subscribe(True, [f"user.margin.order.{m}" for m in markets])

    async def subscribe_private_margin_trades(self, *markets: str) -> None:
        valid_markets(*markets)
        await self._subscribe(True, [f"user.margin.trade.{m}" for m in markets])

    async def subscribe_private_balance_updates(self) -> None:
        await self._subscribe(True, ["user.balance"])

    async def subscribe_private_margin_balance_updates(self) -> None:
        await self._subscribe(True, ["user.margin.balance"])

    # =========================================================================
    # ORDER AND ACCOUNT ACTIONS
    # =========================================================================

    async def create_limit_order(
        self,
        req_id: int,
        base: str,
        quote: str,
        side: str,
        price: Decimal,
        amount: Decimal,
        client_oid: str,
    ) -> None:
        await self.send_private_request(
            req.limit_order_request(req_id, base, quote, side, price, amount, client_oid)
        )

    async def create_market_order(
        self,
        req_id: int,
        base: str,
        quote: str,
        side: str,
        amount: Decimal,
        client_oid: str,
    ) -> None:
        """For market buys the amount is the notional to spend."""
        await self.send_private_request(
            req.market_order_request(req_id, base, quote, side, amount, client_oid)
        )

    async def create_order(self, req_id: int, params: CreateOrderParams) -> None:
        await self._send_action(req.create_order_request(params, req_id))

    async def cancel_order(self, req_id: int, order_id: str, market: str) -> None:
        await self._send_action(req.cancel_order_request(order_id, market, req_id))

    async def cancel_all_orders(self, req_id: int, market: str) -> None:
        await self._send_action(req.cancel_all_orders_request(market, req_id))

    async def get_order_history(self, req_id: int, params: TradeParams | None = None) -> None:
        await self._send_action(req.order_history_request(params, req_id))

    async def get_open_orders(self, req_id: int, params: OpenOrderParams | None = None) -> None:
        await self._send_action(req.open_orders_request(params, req_id))

    async def get_order_details(self, req_id: int, order_id: str) -> None:
        await self._send_action(req.order_detail_request(order_id, req_id))

    async def get_trades(self, req_id: int, params: TradeParams | None = None) -> None:
        await self._send_action(req.trades_request(params, req_id))

    async def get_instruments(self) -> None:
        await self._send_action(req.instruments_request())

    async def set_cancel_on_disconnect(self, scope: str) -> None:
        await self._send_action(req.set_cancel_on_disconnect_request(scope))

    async def get_cancel_on_disconnect(self) -> None:
        await self._send_action(req.get_cancel_on_disconnect_request())

    async def create_withdrawal(self, req_id: int, params: WithdrawParams) -> None:
        await self._send_action(req.create_withdrawal_request(params, req_id))

    async def get_withdrawal_history(
        self, req_id: int, params: WithdrawHistoryParams | None = None
    ) -> None:
        await self._send_action(req.withdrawal_history_request(params, req_id))

    async def get_account_summary(self, currency: str = "") -> None:
        await self._send_action(req.account_summary_request(currency))
