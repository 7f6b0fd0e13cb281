"""Tests for Crypto.com request building, parameter checks and the websocket client."""

import asyncio
import hashlib
import hmac
import json
import logging
from decimal import Decimal

import pytest

from irix.adapters.cryptocom import CryptoCom, data
from irix.adapters.cryptocom import requests as req
from irix.adapters.cryptocom.params import (
    CreateOrderParams,
    OpenOrderParams,
    TradeParams,
    WithdrawHistoryParams,
    WithdrawParams,
    valid_channel,
    valid_order_id,
    valid_pagination,
)
from irix.adapters.cryptocom.ws import Client
from irix.currency import Pair
from irix.enums import Asset, OrderSide
from irix.errors import ValidationError, WebsocketError
from irix.stream import ChannelSubscription
from tests.unit.helpers import MockVenue, build_exchange

DAY_MS = 24 * 60 * 60 * 1000


def _sig(message: str, secret: bytes = b"secret") -> str:
    return hmac.new(secret, message.encode(), hashlib.sha256).hexdigest()


class FakeTransport:
    """In-memory socket; closing it makes the pending read fail."""

    def __init__(self, endpoint: str) -> None:
        self.endpoint = endpoint
        self.sent: list[dict] = []
        self.inbox: asyncio.Queue = asyncio.Queue()
        self.closed = False
        self.send_error: Exception | None = None

    async def send(self, message: str) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(json.loads(message))

    async def recv(self) -> str:
        item = await self.inbox.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True
        self.inbox.put_nowait(OSError("closed"))

    def push(self, message: dict | str) -> None:
        self.inbox.put_nowait(message if isinstance(message, str) else json.dumps(message))


class FakeDialer:
    """
    Records every dial; the first `failures` attempts raise.

    Transports whose index is in `broken` fail every send.
    """

    def __init__(self, failures: int = 0, broken: tuple[int, ...] = ()) -> None:
        self.failures = failures
        self.broken = broken
        self.transports: list[FakeTransport] = []
        self.attempts = 0

    async def __call__(self, endpoint: str) -> FakeTransport:
        self.attempts += 1
        if self.attempts <= self.failures:
            raise OSError("connection refused")
        transport = FakeTransport(endpoint)
        if len(self.transports) in self.broken:
            transport.send_error = OSError("broken pipe")
        self.transports.append(transport)
        return transport


async def _until(condition, timeout: float = 1.0) -> None:
    async def poll() -> None:
        while not condition():
            await asyncio.sleep(0)

    await asyncio.wait_for(poll(), timeout)


def _client(dialer: FakeDialer) -> Client:
    return Client(
        "wss://stream.example/",
        "key",
        b"secret",
        dialer=dialer,
        auth_delay=0,
        retry_delay=0,
    )


class TestParams:
    """Test parameter validation and encoding."""

    def test_trade_params_encode(self):
        """Test only set values are encoded."""
        params = TradeParams(market="BTC_USDT", start_ts=1, end_ts=DAY_MS, page_size=50)
        assert params.encode() == {
            "instrument_name": "BTC_USDT",
            "start_ts": 1,
            "end_ts": DAY_MS,
            "page_size": 50,
        }
        assert TradeParams().encode() == {}

    @pytest.mark.parametrize(
        ("params", "message"),
        [
            (TradeParams(market="BTCUSDT"), "invalid instrument name"),
            (TradeParams(start_ts=10, end_ts=5), "ahead of end"),
            (TradeParams(start_ts=1, end_ts=DAY_MS + 2), "max date range is 24 hours"),
            (TradeParams(page_size=201), "max page size is 200"),
            (TradeParams(page=-1), "page should be at least 0"),
        ],
    )
    def test_trade_params_rejected(self, params, message):
        """Test bad trade filters are refused."""
        with pytest.raises(ValidationError, match=message):
            params.encode()

    def test_withdraw_params(self):
        """Test withdrawal encoding and checks."""
        params = WithdrawParams(
            currency="BTC", amount=Decimal("0.50"), address="addr", address_tag="memo", withdraw_id="w1"
        )
        assert params.encode() == {
            "currency": "BTC",
            "amount": "0.5",
            "address": "addr",
            "address_tag": "memo",
            "client_wid": "w1",
        }

        with pytest.raises(ValidationError, match="invalid code"):
            WithdrawParams(currency="BT", amount=Decimal("1"), address="a").encode()
        with pytest.raises(ValidationError, match="invalid withdraw amount"):
            WithdrawParams(currency="BTC", amount=Decimal("0"), address="a").encode()
        with pytest.raises(ValidationError, match="address"):
            WithdrawParams(currency="BTC", amount=Decimal("1"), address="").encode()

    def test_history_status_encoded_as_number(self):
        """Test withdrawal status filters use the venue's numeric code."""
        params = WithdrawHistoryParams(currency="BTC", status=data.WithdrawStatus.COMPLETED)
        assert params.encode() == {"currency": "BTC", "status": "5"}

    def test_open_order_params(self):
        """Test open order filters."""
        assert OpenOrderParams(market="ETH_BTC", page=2).encode() == {
            "instrument_name": "ETH_BTC",
            "page": 2,
        }

    def test_limit_order_encode(self):
        """Test limit orders carry time in force and post only."""
        params = CreateOrderParams(
            market="BTC_USDT",
            side=OrderSide.BUY,
            order_type=data.ORDER_LIMIT,
            price=Decimal("40000.0"),
            quantity=Decimal("0.10"),
            exec_inst=data.POST_ONLY,
            time_in_force=data.GOOD_TILL_CANCEL,
            client_order_id="c1",
        )
        assert params.encode() == {
            "instrument_name": "BTC_USDT",
            "side": "BUY",
            "type": "LIMIT",
            "price": "40000",
            "quantity": "0.1",
            "exec_inst": "POST_ONLY",
            "time_in_force": "GOOD_TILL_CANCEL",
            "client_oid": "c1",
        }

    @pytest.mark.parametrize(
        ("kwargs", "message"),
        [
            ({"side": OrderSide.ANY, "order_type": "LIMIT"}, "invalid order side"),
            ({"side": OrderSide.BUY, "order_type": "ICEBERG"}, "invalid order type"),
            ({"side": OrderSide.BUY, "order_type": "LIMIT", "quantity": Decimal("1")}, "price required"),
            (
                {
                    "side": OrderSide.BUY,
                    "order_type": "LIMIT",
                    "quantity": Decimal("1"),
                    "price": Decimal("1"),
                    "exec_inst": "HIDDEN",
                },
                "exec_inst value not allowed",
            ),
            (
                {
                    "side": OrderSide.BUY,
                    "order_type": "LIMIT",
                    "quantity": Decimal("1"),
                    "price": Decimal("1"),
                    "time_in_force": "DAY",
                },
                "time_in_force value not allowed",
            ),
            ({"side": OrderSide.BUY, "order_type": "MARKET", "quantity": Decimal("1")}, "notional required"),
            ({"side": OrderSide.SELL, "order_type": "MARKET", "notional": Decimal("1")}, "quantity required"),
            (
                {
                    "side": OrderSide.SELL,
                    "order_type": "STOP_LIMIT",
                    "quantity": Decimal("1"),
                    "price": Decimal("1"),
                },
                "trigger_price required",
            ),
            ({"side": OrderSide.SELL, "order_type": "STOP_LOSS", "quantity": Decimal("1")}, "trigger_price required"),
        ],
    )
    def test_order_params_rejected(self, kwargs, message):
        """Test order combinations the venue refuses."""
        with pytest.raises(ValidationError, match=message):
            CreateOrderParams(market="BTC_USDT", **kwargs).encode()

    def test_market_buy_uses_notional(self):
        """Test a market buy is sized in quote currency."""
        params = CreateOrderParams(
            market="BTC_USDT", side=OrderSide.BUY, order_type="MARKET", notional=Decimal("100")
        )
        assert params.encode() == {
            "instrument_name": "BTC_USDT",
            "side": "BUY",
            "type": "MARKET",
            "notional": "100",
        }

    def test_validators(self):
        """Test channel, order id and pagination checks."""
        valid_channel("book.BTC_USDT.150")
        valid_channel("user.balance")
        with pytest.raises(ValidationError):
            valid_channel("depth.BTC_USDT")

        valid_order_id("1138210129647637539")
        with pytest.raises(ValidationError):
            valid_order_id("")
        with pytest.raises(ValidationError):
            valid_order_id("a")

        with pytest.raises(ValidationError):
            valid_pagination(-1, 0)


class TestRequests:
    """Test request envelopes and signing."""

    def test_params_to_string(self):
        """Test keys are sorted and lists are flattened."""
        params = {"b": "2", "a": ["x", {"d": 1, "c": None}]}
        assert req.params_to_string(params) == "axcnulld1b2"

    def test_sign_request(self):
        """Test the signature covers method, id, key, params and nonce."""
        request = req.Request(
            id=11,
            method="private/get-order-detail",
            nonce="1587846358253",
            params={"order_id": "337843775021233500"},
            type=req.RequestType.REST_ORDER,
        )

        req.sign_request(request, "token", b"secret")

        expected = _sig("private/get-order-detail11tokenorder_id3378437750212335001587846358253")
        assert request.signature == expected
        assert json.loads(request.encode()) == {
            "id": 11,
            "method": "private/get-order-detail",
            "params": {"order_id": "337843775021233500"},
            "api_key": "token",
            "sig": expected,
            "nonce": "1587846358253",
        }

    def test_auth_request(self):
        """Test the auth envelope carries no params."""
        request = req.auth_request("token", b"secret")
        payload = json.loads(request.encode())

        assert set(payload) == {"id", "method", "api_key", "sig", "nonce"}
        assert payload["method"] == "public/auth"
        assert payload["sig"] == _sig(f"public/auth{request.id}token{request.nonce}")

    def test_heartbeat(self):
        """Test heartbeat replies echo the id."""
        assert json.loads(req.heartbeat_request(42).encode()) == {
            "id": 42,
            "method": "public/respond-heartbeat",
        }
        with pytest.raises(ValidationError, match="invalid id"):
            req.heartbeat_request(0)

    def test_subscribe_request(self):
        """Test subscribe and unsubscribe envelopes."""
        request = req.subscribe_request(["ticker.BTC_USDT"], unsubscribe=True)
        payload = json.loads(request.encode())

        assert payload["method"] == "unsubscribe"
        assert payload["params"] == {"channels": ["ticker.BTC_USDT"]}
        assert "sig" not in payload
        with pytest.raises(ValidationError):
            req.subscribe_request(["kline.BTC_USDT"])

    def test_market_data_requests(self):
        """Test depth defaults and interval codes."""
        book = req.orderbook_request("BTC_USDT")
        assert book.params == {"instrument_name": "BTC_USDT", "depth": "150"}
        with pytest.raises(ValidationError, match="depth"):
            req.orderbook_request("BTC_USDT", 151)

        candles = req.candlestick_request("BTC_USDT", data.Interval.HOUR_1, 10)
        assert candles.params == {"instrument_name": "BTC_USDT", "interval": "1h", "depth": 10}
        with pytest.raises(ValidationError, match="interval"):
            req.candlestick_request("BTC_USDT", 13)

        assert req.ticker_request().params == {}
        with pytest.raises(ValidationError):
            req.public_trades_request("BTC")

    def test_order_requests(self):
        """Test order builders."""
        limit = req.limit_order_request(1, "btc", "usdt", "buy", Decimal("1.50"), Decimal("2"), "c")
        assert limit.params == {
            "instrument_name": "BTC_USDT",
            "side": "BUY",
            "type": "LIMIT",
            "price": "1.5",
            "quantity": "2",
            "client_oid": "c",
        }

        market_buy = req.market_order_request(1, "btc", "usdt", "buy", Decimal("10"), "c")
        assert market_buy.params["notional"] == "10"
        market_sell = req.market_order_request(1, "btc", "usdt", "sell", Decimal("10"), "c")
        assert market_sell.params["quantity"] == "10"

        with pytest.raises(ValidationError, match="order id required"):
            req.cancel_order_request("", "BTC_USDT")
        assert req.open_orders_request().params == {"page_size": 20}
        with pytest.raises(ValidationError, match="scope"):
            req.set_cancel_on_disconnect_request("SESSION")

    def test_account_summary_uppercases(self):
        """Test the currency filter is upper cased."""
        assert req.account_summary_request("cro").params == {"currency": "CRO"}


class TestClient:
    """Test the two-connection websocket client."""

    async def test_connect_and_authenticate(self):
        """Test both endpoints are dialed and the user side authenticates."""
        dialer = FakeDialer()
        client = _client(dialer)

        await client.connect()

        public, private = dialer.transports
        assert public.endpoint == "wss://stream.example/v2/market"
        assert private.endpoint == "wss://stream.example/v2/user"
        auth = private.sent[0]
        assert auth["method"] == "public/auth"
        assert auth["api_key"] == "key"
        assert auth["sig"] == _sig(f"public/auth{auth['id']}key{auth['nonce']}")
        assert public.sent == []

    async def test_public_only(self):
        """Test private requests need the user connection."""
        dialer = FakeDialer()
        client = _client(dialer)

        await client.connect(private=False)

        assert len(dialer.transports) == 1
        with pytest.raises(WebsocketError, match="private connection not established"):
            await client.subscribe_private_balance_updates()

    async def test_dial_failure(self):
        """Test an unreachable endpoint raises."""
        client = _client(FakeDialer(failures=1))

        with pytest.raises(WebsocketError, match="unable to dial"):
            await client.connect(private=False)

    async def test_subscriptions(self):
        """Test channels are sent and recorded per connection."""
        dialer = FakeDialer()
        client = _client(dialer)
        await client.connect()

        await client.subscribe_public_orderbook(150, "BTC_USDT")
        await client.subscribe_candlestick(data.Interval.MINUTE_5, "ETH_BTC")
        await client.subscribe_private_orders("BTC_USDT")

        public, private = dialer.transports
        assert public.sent[0]["params"] == {"channels": ["book.BTC_USDT.150"]}
        assert public.sent[1]["params"] == {"channels": ["candlestick.5m.ETH_BTC"]}
        assert private.sent[-1]["params"] == {"channels": ["user.order.BTC_USDT"]}
        assert client.public_subs == ["book.BTC_USDT.150", "candlestick.5m.ETH_BTC"]
        assert client.private_subs == ["user.order.BTC_USDT"]

        await client.unsubscribe_public_channels(["book.BTC_USDT.150"])
        assert public.sent[-1]["method"] == "unsubscribe"
        assert client.public_subs == ["candlestick.5m.ETH_BTC"]

    async def test_subscription_checks(self):
        """Test bad depths and markets are refused before sending."""
        dialer = FakeDialer()
        client = _client(dialer)
        await client.connect(private=False)

        with pytest.raises(ValidationError, match="depth value is out of range"):
            await client.subscribe_public_orderbook(5, "BTC_USDT")
        with pytest.raises(ValidationError):
            await client.subscribe_public_trades()
        assert dialer.transports[0].sent == []
        assert client.public_subs == []

    async def test_order_actions_are_unsigned(self):
        """Test actions on the authenticated connection carry no signature."""
        dialer = FakeDialer()
        client = _client(dialer)
        await client.connect()

        await client.cancel_order(7, "1138210129647637539", "BTC_USDT")

        sent = dialer.transports[1].sent[-1]
        assert sent["id"] == 7
        assert sent["method"] == "private/cancel-order"
        assert sent["params"] == {"instrument_name": "BTC_USDT", "order_id": "1138210129647637539"}
        assert "sig" not in sent

    async def test_heartbeats_answered_and_messages_queued(self, caplog: pytest.LogCaptureFixture):
        """Test heartbeats are answered on their connection and the rest is queued."""
        dialer = FakeDialer()
        client = _client(dialer)
        await client.connect(private=False)
        public = dialer.transports[0]
        queue = client.listen()

        public.push({"id": 42, "method": "public/heartbeat", "code": 0})
        with caplog.at_level(logging.ERROR):
            public.push("not json")
            public.push({"id": 1, "method": "subscribe", "code": 0, "result": {"channel": "ticker"}})
            response = await asyncio.wait_for(queue.get(), 1)

        assert response.method == "subscribe"
        assert response.result == {"channel": "ticker"}
        assert public.sent == [{"id": 42, "method": "public/respond-heartbeat"}]
        assert "error decoding public message" in caplog.text
        await client.shutdown()

    async def test_reconnect_resubscribes(self):
        """Test a failed read redials and replays the subscriptions."""
        dialer = FakeDialer()
        client = _client(dialer)
        await client.connect(private=False)
        await client.subscribe_public_tickers("BTC_USDT")
        old = dialer.transports[0]
        client.listen()

        old.inbox.put_nowait(OSError("reset by peer"))
        await _until(lambda: old.closed)

        fresh = dialer.transports[1]
        assert client.public_conn.transport is fresh
        assert fresh.sent == [
            {
                "id": fresh.sent[0]["id"],
                "method": "subscribe",
                "params": {"channels": ["ticker.BTC_USDT"]},
                "nonce": fresh.sent[0]["nonce"],
            }
        ]
        assert client.public_subs == ["ticker.BTC_USDT"]
        await client.shutdown()

    async def test_heartbeat_send_failure_reconnects(self):
        """Test a failed heartbeat reply redials and reading carries on."""
        dialer = FakeDialer()
        client = _client(dialer)
        await client.connect(private=False)
        old = dialer.transports[0]
        queue = client.listen()

        old.send_error = OSError("broken pipe")
        old.push({"id": 42, "method": "public/heartbeat", "code": 0})
        await _until(lambda: old.closed)

        fresh = dialer.transports[1]
        assert client.public_conn.transport is fresh
        fresh.push({"id": 1, "method": "subscribe", "code": 0, "result": {"channel": "ticker"}})
        response = await asyncio.wait_for(queue.get(), 1)
        assert response.method == "subscribe"
        assert dialer.attempts == 2
        await client.shutdown()

    async def test_resubscribe_failure_redials(self):
        """Test a connection that fails while resubscribing is replaced again."""
        dialer = FakeDialer(broken=(1,))
        client = _client(dialer)
        await client.connect(private=False)
        await client.subscribe_public_tickers("BTC_USDT")
        old = dialer.transports[0]
        client.listen()

        old.inbox.put_nowait(OSError("reset by peer"))
        await _until(lambda: old.closed)

        assert dialer.attempts == 3
        assert dialer.transports[1].closed
        assert client.public_conn.transport is dialer.transports[2]
        assert [m["params"] for m in dialer.transports[2].sent] == [
            {"channels": ["ticker.BTC_USDT"]}
        ]
        await client.shutdown()

    async def test_shutdown_logs_close_errors(self, caplog: pytest.LogCaptureFixture):
        """Test a failing close does not stop shutdown."""
        dialer = FakeDialer()
        client = _client(dialer)
        await client.connect(private=False)
        public = dialer.transports[0]
        client.listen()

        async def refuse_close() -> None:
            raise OSError("already gone")

        public.close = refuse_close
        with caplog.at_level(logging.WARNING):
            await client.shutdown()

        assert "error closing public cnx" in caplog.text

    async def test_shutdown_stops_readers(self):
        """Test shutdown closes both connections and waits for the readers."""
        dialer = FakeDialer()
        client = _client(dialer)
        await client.connect()
        client.listen()

        await client.shutdown()

        assert all(transport.closed for transport in dialer.transports)
        assert client._readers == []
        assert len(dialer.transports) == 2


class TestExchangeStreaming:
    """Test the exchange drives the market connection."""

    async def test_subscribe_and_unsubscribe(self):
        """Test default channels map onto venue channel names."""
        exchange = build_exchange(CryptoCom, MockVenue(), pairs=["BTC-USDT"])
        dialer = FakeDialer()
        exchange.stream = _client(dialer)
        await exchange.stream.connect(private=False)

        await exchange.subscribe(exchange.generate_default_subscriptions())

        sent = [message["params"]["channels"] for message in dialer.transports[0].sent]
        assert sent == [["ticker.BTC_USDT"], ["book.BTC_USDT.150"], ["trade.BTC_USDT"]]

        await exchange.unsubscribe(
            [ChannelSubscription(channel="book", pair=Pair("BTC", "USDT"), asset=Asset.SPOT)]
        )
        assert dialer.transports[0].sent[-1]["params"] == {"channels": ["book.BTC_USDT.150"]}
        assert exchange.stream.public_subs == ["ticker.BTC_USDT", "trade.BTC_USDT"]

        await exchange.ws_disconnect()
        assert exchange.stream is None

    async def test_unknown_channel(self):
        """Test channels outside ticker, book and trade are refused."""
        exchange = build_exchange(CryptoCom, MockVenue(), pairs=["BTC-USDT"])
        exchange.stream = _client(FakeDialer())
        await exchange.stream.connect(private=False)

        with pytest.raises(WebsocketError, match="unsupported channel"):
            await exchange.subscribe(
                [ChannelSubscription(channel="candles", pair=Pair("BTC", "USDT"), asset=Asset.SPOT)]
            )

    async def test_not_connected(self):
        """Test subscribing without a client raises."""
        exchange = build_exchange(CryptoCom, MockVenue(), pairs=["BTC-USDT"])

        with pytest.raises(WebsocketError, match="not connected"):
            await exchange.authenticate_websocket()
