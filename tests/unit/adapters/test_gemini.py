"""Tests for the Gemini adapter against a mock REST venue."""

import base64
import hashlib
import hmac
import json
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from irix.adapters.gemini import Gemini
from irix.adapters.gemini.client import SANDBOX_API_URL
from irix.adapters.gemini.exchange import split_symbol
from irix.currency import Code, Pair
from irix.enums import URL, Asset, FeeType, OrderSide, OrderStatus, OrderType
from irix.errors import ExchangeAPIError, KlineError, OrderValidationError, PairError
from irix.exchange import FeeBuilder
from irix.model import kline, order, withdraw
from tests.unit.helpers import MockVenue, build_exchange

BTC_USD = Pair("BTC", "USD")
T0 = datetime(2024, 1, 1, tzinfo=UTC)
T0_MS = int(T0.timestamp() * 1000)


def _payload(request) -> dict:
    return json.loads(base64.b64decode(request.headers["X-GEMINI-PAYLOAD"]))


def _gemini(routes: dict | None = None) -> tuple[Gemini, MockVenue]:
    venue = MockVenue(routes)
    exchange = build_exchange(Gemini, venue, pairs=["BTC_USD"])
    return exchange, venue


class TestSymbols:
    """Test symbol splitting."""

    def test_split_symbol(self):
        """Test the longest matching quote currency wins."""
        assert split_symbol("btcusd") == Pair("BTC", "USD")
        assert split_symbol("ethusdt") == Pair("ETH", "USDT")
        assert split_symbol("ethbtc") == Pair("ETH", "BTC")

    def test_split_symbol_unknown(self):
        """Test symbols without a known quote are rejected."""
        with pytest.raises(PairError):
            split_symbol("usd")

    async def test_fetch_tradable_pairs_skips_unknown(self):
        """Test unrecognised symbols are skipped."""
        exchange, _ = _gemini({"/v1/symbols": ["btcusd", "ethbtc", "zzzzz"]})

        assert await exchange.fetch_tradable_pairs(Asset.SPOT) == ["BTC_USD", "ETH_BTC"]


class TestMarketData:
    """Test public market data."""

    async def test_update_ticker(self):
        """Test ticker volumes are read per currency."""
        exchange, venue = _gemini(
            {
                "/v1/pubticker/btcusd": {
                    "bid": "42000",
                    "ask": "42001",
                    "last": "42000.5",
                    "volume": {"BTC": "12.5", "USD": "525000", "timestamp": T0_MS},
                }
            }
        )

        price = await exchange.update_ticker(BTC_USD, Asset.SPOT)

        assert venue.last.url.path == "/v1/pubticker/btcusd"
        assert price.last == Decimal("42000.5")
        assert price.volume == Decimal("12.5")
        assert price.quote_volume == Decimal("525000")
        assert price.last_updated == T0

    async def test_update_orderbook(self):
        """Test book levels are mapped and verified."""
        exchange, _ = _gemini(
            {
                "/v1/book/btcusd": {
                    "bids": [{"price": "100", "amount": "1"}, {"price": "99", "amount": "2"}],
                    "asks": [{"price": "101", "amount": "1"}],
                }
            }
        )

        book = await exchange.update_orderbook(BTC_USD, Asset.SPOT)

        assert book.best_bid == Decimal("100")
        assert book.best_ask == Decimal("101")
        assert len(book.bids) == 2

    async def test_recent_trades_skip_broken(self):
        """Test broken trades are dropped and the rest sorted by time."""
        exchange, venue = _gemini(
            {
                "/v1/trades/btcusd": [
                    {"tid": 2, "timestampms": T0_MS + 1000, "price": "101", "amount": "1", "type": "sell"},
                    {"tid": 1, "timestampms": T0_MS, "price": "100", "amount": "2", "type": "buy"},
                    {"tid": 3, "timestampms": T0_MS, "price": "100", "amount": "2", "type": "buy", "broken": True},
                ]
            }
        )  # fmt: skip

        trades = await exchange.get_recent_trades(BTC_USD, Asset.SPOT)

        assert [t.tid for t in trades] == ["1", "2"]
        assert trades[0].side is OrderSide.BUY
        assert trades[1].side is OrderSide.SELL
        assert venue.last.url.params["limit_trades"] == "500"

    async def test_historic_candles_filtered_to_range(self):
        """Test the fixed candle window is cut to the requested range."""
        hour = 3_600_000
        exchange, venue = _gemini(
            {
                "/v2/candles/btcusd/1hr": [
                    [T0_MS + 2 * hour, 3, 3, 3, 3, 1],
                    [T0_MS + hour, 2, 2, 2, 2, 1],
                    [T0_MS, 1, 1, 1, 1, 1],
                    [T0_MS - hour, 0.5, 0.5, 0.5, 0.5, 1],
                ]
            }
        )

        item = await exchange.get_historic_candles(
            BTC_USD, Asset.SPOT, T0, T0 + timedelta(hours=2), kline.Interval.ONE_HOUR
        )

        assert [c.time for c in item.candles] == [T0, T0 + timedelta(hours=1)]
        assert item.candles[1].close == Decimal("2")

    async def test_historic_candles_unsupported_interval(self):
        """Test intervals Gemini does not serve are rejected."""
        exchange, _ = _gemini()

        with pytest.raises(KlineError, match="interval not supported"):
            await exchange.get_historic_candles(
                BTC_USD, Asset.SPOT, T0, T0 + timedelta(hours=1), kline.Interval.FOUR_HOUR
            )


class TestSigning:
    """Test the payload and signature headers."""

    def test_encode_payload(self):
        """Test the payload carries path and nonce and is HMAC-SHA384 signed."""
        exchange, _ = _gemini()

        payload, signature = exchange.encode_payload("/v1/balances", {"account": "primary"})
        decoded = json.loads(base64.b64decode(payload))
        expected = hmac.new(b"secret", payload.encode(), hashlib.sha384).hexdigest()

        assert decoded["request"] == "/v1/balances"
        assert decoded["account"] == "primary"
        assert signature == expected

    def test_nonce_is_monotonic(self):
        """Test nonces strictly increase within a millisecond."""
        exchange, _ = _gemini()
        first = exchange.generate_nonce()
        assert exchange.generate_nonce() > first

    async def test_authenticated_headers(self):
        """Test private calls send key, payload and signature headers."""
        exchange, venue = _gemini(
            {"POST /v1/balances": [{"currency": "BTC", "amount": "2", "available": "1.5"}]}
        )

        holdings = await exchange.update_account_info(Asset.SPOT)

        request = venue.last
        assert request.method == "POST"
        assert request.headers["X-GEMINI-APIKEY"] == "key"
        assert "X-GEMINI-SIGNATURE" in request.headers
        assert _payload(request)["request"] == "/v1/balances"
        balance = holdings.accounts[0].currencies[0]
        assert balance.currency == Code("BTC")
        assert balance.hold == Decimal("0.5")

    async def test_error_result_raises(self):
        """Test an error result is raised with its reason as code."""
        exchange, _ = _gemini(
            {"/v1/balances": {"result": "error", "reason": "InvalidSignature", "message": "bad"}}
        )

        with pytest.raises(ExchangeAPIError) as excinfo:
            await exchange.get_balances()
        assert excinfo.value.code == "InvalidSignature"


class TestOrders:
    """Test order management."""

    def _live_order(self, **overrides):
        raw = {
            "order_id": "106817811",
            "symbol": "btcusd",
            "side": "buy",
            "type": "exchange limit",
            "price": "3633.00",
            "is_live": True,
            "is_cancelled": False,
            "executed_amount": "0",
            "remaining_amount": "1",
            "original_amount": "1",
            "options": ["maker-or-cancel"],
            "timestampms": T0_MS,
        }
        raw.update(overrides)
        return raw

    async def test_submit_limit_post_only(self):
        """Test post-only orders use the maker-or-cancel option."""
        exchange, venue = _gemini({"/v1/order/new": self._live_order()})

        response = await exchange.submit_order(
            order.Submit(
                pair=BTC_USD,
                asset=Asset.SPOT,
                side=OrderSide.BUY,
                type=OrderType.LIMIT,
                price=Decimal("3633.00"),
                amount=Decimal("1"),
                post_only=True,
            )
        )

        payload = _payload(venue.last)
        assert payload["symbol"] == "btcusd"
        assert payload["side"] == "buy"
        assert payload["price"] == "3633"
        assert payload["options"] == ["maker-or-cancel"]
        assert response.order_id == "106817811"
        assert response.is_order_placed
        assert not response.fully_matched

    async def test_submit_market_rejected(self):
        """Test market orders are rejected before any request."""
        exchange, venue = _gemini()

        with pytest.raises(OrderValidationError):
            await exchange.submit_order(
                order.Submit(
                    pair=BTC_USD,
                    asset=Asset.SPOT,
                    side=OrderSide.SELL,
                    type=OrderType.MARKET,
                    amount=Decimal("1"),
                )
            )
        assert venue.requests == []

    async def test_cancel_requires_numeric_id(self):
        """Test non-numeric order ids are rejected."""
        exchange, _ = _gemini()

        with pytest.raises(OrderValidationError):
            await exchange.cancel_order(order.Cancel(id="abc", pair=BTC_USD, asset=Asset.SPOT))

    async def test_cancel_all(self):
        """Test cancelled and rejected ids are reported."""
        exchange, venue = _gemini(
            {
                "/v1/order/cancel/all": {
                    "result": "ok",
                    "details": {"cancelledOrders": [1, 2], "cancelRejects": [3]},
                }
            }
        )

        response = await exchange.cancel_all_orders(order.Cancel(pair=BTC_USD, asset=Asset.SPOT))

        assert response.count == 2
        assert response.status == {"1": "Cancelled", "2": "Cancelled", "3": "Rejected"}

    async def test_get_order_info_status(self):
        """Test order status mapping for a partially filled cancelled order."""
        exchange, venue = _gemini(
            {
                "/v1/order/status": self._live_order(
                    is_live=False, is_cancelled=True, executed_amount="0.4", remaining_amount="0.6"
                )
            }
        )

        detail = await exchange.get_order_info("106817811", BTC_USD, Asset.SPOT)

        assert _payload(venue.last)["order_id"] == 106817811
        assert detail.status is OrderStatus.PARTIALLY_CANCELLED
        assert detail.pair == BTC_USD
        assert detail.post_only

    async def test_active_orders_filtered_by_pair(self):
        """Test open orders on other pairs are dropped."""
        exchange, _ = _gemini(
            {"/v1/orders": [self._live_order(), self._live_order(order_id="2", symbol="ethusd")]}
        )

        details = await exchange.get_active_orders(
            order.GetOrdersRequest(asset=Asset.SPOT, pairs=[BTC_USD])
        )

        assert [d.id for d in details] == ["106817811"]
        assert details[0].status is OrderStatus.ACTIVE

    async def test_order_history_requires_pairs(self):
        """Test order history needs at least one pair."""
        exchange, _ = _gemini()

        with pytest.raises(OrderValidationError):
            await exchange.get_order_history(order.GetOrdersRequest(asset=Asset.SPOT))

    async def test_order_history_from_fills(self):
        """Test each fill becomes a filled order detail."""
        exchange, _ = _gemini(
            {
                "/v1/mytrades": [
                    {
                        "tid": 7,
                        "order_id": "55",
                        "price": "100",
                        "amount": "0.5",
                        "fee_amount": "0.1",
                        "type": "Sell",
                        "aggressor": False,
                        "timestampms": T0_MS,
                    }
                ]
            }
        )

        details = await exchange.get_order_history(
            order.GetOrdersRequest(asset=Asset.SPOT, pairs=[BTC_USD])
        )

        assert len(details) == 1
        assert details[0].side is OrderSide.SELL
        assert details[0].status is OrderStatus.FILLED
        assert details[0].trades[0].is_maker


class TestFundsAndFees:
    """Test transfers, withdrawals and fees."""

    async def test_withdrawals_history_filters_currency(self):
        """Test only withdrawals of the requested currency are returned."""
        exchange, _ = _gemini(
            {
                "/v1/transfers": [
                    {"type": "Withdrawal", "status": "Complete", "eid": 1, "currency": "BTC", "amount": "1"},
                    {"type": "Deposit", "status": "Complete", "eid": 2, "currency": "BTC", "amount": "1"},
                    {"type": "Withdrawal", "status": "Complete", "eid": 3, "currency": "ETH", "amount": "1"},
                ]
            }
        )  # fmt: skip

        history = await exchange.get_withdrawals_history(Code("btc"))

        assert [item.transfer_id for item in history] == ["1"]

    async def test_withdraw(self):
        """Test crypto withdrawals post address and amount."""
        exchange, venue = _gemini(
            {"/v1/withdraw/btc": {"address": "bc1q", "amount": "1", "withdrawalId": "w-1"}}
        )

        response = await exchange.withdraw_cryptocurrency_funds(
            withdraw.Request(
                currency=Code("BTC"),
                amount=Decimal("1"),
                crypto=withdraw.CryptoRequest(address="bc1q"),
            )
        )

        assert _payload(venue.last)["address"] == "bc1q"
        assert response.id == "w-1"

    async def test_trade_fee_from_notional_volume(self):
        """Test trade fees use the account's taker basis points."""
        exchange, _ = _gemini({"/v1/notionalvolume": {"api_taker_fee_bps": 35}})

        fee = await exchange.get_fee_by_type(
            FeeBuilder(pair=BTC_USD, purchase_price=Decimal("100"), amount=Decimal("2"))
        )

        assert fee == Decimal("0.7")

    async def test_offline_fee(self):
        """Test offline maker fees."""
        exchange, venue = _gemini()

        fee = await exchange.get_fee(
            FeeBuilder(
                fee_type=FeeType.OFFLINE_TRADE_FEE,
                is_maker=True,
                purchase_price=Decimal("100"),
                amount=Decimal("2"),
            )
        )

        assert fee == Decimal("0.2")
        assert venue.requests == []

    def test_use_sandbox(self):
        """Test the sandbox switch changes the spot endpoint."""
        exchange, _ = _gemini()
        exchange.use_sandbox()
        assert exchange.get_endpoint(URL.REST_SPOT) == SANDBOX_API_URL
