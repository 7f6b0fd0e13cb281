"""Tests for the Crypto.com REST adapter against a mock venue."""

import hashlib
import hmac
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from irix.adapters.cryptocom import CryptoCom
from irix.adapters.cryptocom import data
from irix.adapters.cryptocom.requests import params_to_string
from irix.currency import Code, Pair
from irix.enums import Asset, OrderSide, OrderStatus, OrderType
from irix.errors import ExchangeAPIError, NotFoundError, WebsocketError
from irix.exchange import FeeBuilder
from irix.model import kline, order, orderbook, ticker, withdraw
from tests.unit.helpers import MockVenue, body, build_exchange, query

BTC_USDT = Pair("BTC", "USDT")
T0 = datetime(2024, 1, 1, tzinfo=UTC)
T0_MS = int(T0.timestamp() * 1000)

PRIVATE = "POST /v2/private/"


def _ok(result: dict) -> dict:
    return {"id": 1, "method": "", "code": 0, "result": result}


def _cdc(routes: dict | None = None) -> tuple[CryptoCom, MockVenue]:
    venue = MockVenue(routes)
    exchange = build_exchange(CryptoCom, venue, pairs=["BTC-USDT"])
    return exchange, venue


def _order_info(**overrides) -> dict:
    raw = {
        "order_id": "1138210129647637539",
        "client_oid": "mine",
        "status": "ACTIVE",
        "side": "BUY",
        "price": 40000,
        "quantity": 2,
        "type": "LIMIT",
        "exec_inst": "POST_ONLY",
        "instrument_name": "BTC_USDT",
        "cumulative_quantity": 0.5,
        "cumulative_value": 20000,
        "create_time": T0_MS,
        "update_time": T0_MS + 60_000,
    }
    raw.update(overrides)
    return raw


class TestMarketData:
    """Test public market data."""

    async def test_fetch_tradable_pairs(self):
        """Test instrument names are listed."""
        exchange, venue = _cdc(
            {
                "/v2/public/get-instruments": _ok(
                    {
                        "instruments": [
                            {"instrument_name": "BTC_USDT", "base_currency": "BTC", "quote_currency": "USDT"},
                            {"instrument_name": "CRO_BTC"},
                        ]
                    }
                )
            }
        )

        assert await exchange.fetch_tradable_pairs(Asset.SPOT) == ["BTC_USDT", "CRO_BTC"]
        assert venue.last.url.host == "api.crypto.com"
        assert query(venue.last)["id"] == "1"

    async def test_update_ticker_keeps_enabled_pairs(self):
        """Test one ticker call refreshes every enabled pair."""
        exchange, venue = _cdc(
            {
                "/v2/public/get-ticker": _ok(
                    {
                        "data": [
                            {"i": "BTC_USDT", "b": 40000, "k": 40001, "a": 40000.5, "t": T0_MS, "v": 12, "h": 41000, "l": 39000},
                            {"i": "DOGE_USDT", "b": None, "k": None, "a": 0.1, "t": T0_MS},
                        ]
                    }
                )
            }
        )

        price = await exchange.update_ticker(BTC_USDT, Asset.SPOT)

        assert query(venue.last) == {}
        assert price.last == Decimal("40000.5")
        assert price.ask == Decimal("40001")
        assert price.last_updated == T0
        with pytest.raises(NotFoundError):
            ticker.get_ticker("CryptoCom", Pair("DOGE", "USDT"), Asset.SPOT)

    async def test_venue_error_code(self):
        """Test a non-zero code is raised with the reason."""
        exchange, _ = _cdc(
            {"/v2/public/get-ticker": {"id": 0, "method": "public/get-ticker", "code": 10004, "message": "BAD_REQUEST"}}
        )

        with pytest.raises(ExchangeAPIError, match="code: 10004. reason: BAD_REQUEST") as e:
            await exchange.get_tickers()
        assert e.value.code == 10004

    async def test_update_orderbook(self):
        """Test levels carry order counts and the book time."""
        exchange, venue = _cdc(
            {
                "/v2/public/get-book": _ok(
                    {
                        "instrument_name": "BTC_USDT",
                        "depth": 150,
                        "data": [
                            {
                                "bids": [[40000, 1.5, 3], [39999, 0.5, 1]],
                                "asks": [[40001, 2, 2]],
                                "t": T0_MS,
                            }
                        ],
                    }
                )
            }
        )

        book = await exchange.update_orderbook(BTC_USDT, Asset.SPOT)

        params = query(venue.last)
        assert params["instrument_name"] == "BTC_USDT"
        assert params["depth"] == "150"
        assert book.best_bid == Decimal("40000")
        assert book.bids[0].order_count == 3
        assert book.last_update_id == T0_MS
        assert orderbook.get_orderbook("CryptoCom", BTC_USDT, Asset.SPOT) is book

    async def test_empty_orderbook(self):
        """Test an empty book raises."""
        exchange, _ = _cdc({"/v2/public/get-book": _ok({"data": []})})

        with pytest.raises(NotFoundError):
            await exchange.update_orderbook(BTC_USDT, Asset.SPOT)

    async def test_recent_trades(self):
        """Test trades are sorted oldest first."""
        exchange, _ = _cdc(
            {
                "/v2/public/get-trades": _ok(
                    {
                        "data": [
                            {"i": "BTC_USDT", "s": "SELL", "p": 40001, "q": 0.1, "t": T0_MS + 1000, "d": 2},
                            {"i": "BTC_USDT", "s": "BUY", "p": 40000, "q": 0.2, "t": T0_MS, "d": 1},
                        ]
                    }
                )
            }
        )

        trades = await exchange.get_recent_trades(BTC_USDT, Asset.SPOT)

        assert [t.tid for t in trades] == ["1", "2"]
        assert trades[0].side is OrderSide.BUY
        assert trades[1].price == Decimal("40001")

    async def test_historic_candles_clipped_to_range(self):
        """Test only candles inside the window are kept."""
        hour = 3_600_000
        exchange, venue = _cdc(
            {
                "/v2/public/get-candlestick": _ok(
                    {
                        "interval": "1h",
                        "data": [
                            {"t": T0_MS + hour * i, "o": 1, "h": 2, "l": 0.5, "c": 1.5, "v": 10}
                            for i in (2, 0, 1, 5)
                        ],
                    }
                )
            }
        )

        item = await exchange.get_historic_candles(
            BTC_USDT, Asset.SPOT, T0, T0 + timedelta(hours=3), kline.Interval.ONE_HOUR
        )

        params = query(venue.last)
        assert params["interval"] == "1h"
        assert params["depth"] == "1000"
        assert [c.time for c in item.candles] == [T0 + timedelta(hours=i) for i in range(3)]
        assert item.candles[0].low == Decimal("0.5")

    def test_kline_interval_codes(self):
        """Test the venue interval codes."""
        exchange, _ = _cdc()
        assert exchange.format_exchange_kline_interval(kline.Interval.ONE_DAY) == "1D"
        assert exchange.format_exchange_kline_interval(kline.Interval.TWO_WEEK) == "14D"
        assert exchange.format_exchange_kline_interval(kline.Interval.ONE_MONTH) == "1M"


class TestSigning:
    """Test the signed private envelope."""

    async def test_account_summary_signed(self):
        """Test the HMAC-SHA256 hex signature and balance holds."""
        exchange, venue = _cdc(
            {
                PRIVATE + "get-account-summary": _ok(
                    {
                        "accounts": [
                            {"currency": "CRO", "balance": 100, "available": 60, "order": 30, "stake": 10},
                            {"currency": "USDT", "balance": 5, "available": 5, "order": 0, "stake": 0},
                        ]
                    }
                )
            }
        )

        holdings = await exchange.update_account_info(Asset.SPOT)

        sent = body(venue.last)
        message = (
            sent["method"]
            + str(sent["id"])
            + sent["api_key"]
            + params_to_string(sent["params"])
            + sent["nonce"]
        )
        assert sent["api_key"] == "key"
        assert sent["sig"] == hmac.new(b"secret", message.encode(), hashlib.sha256).hexdigest()
        assert venue.last.url.path == "/v2/private/get-account-summary"
        cro = holdings.accounts[0].currencies[0]
        assert cro.currency == Code("CRO")
        assert cro.total_value == Decimal("100")
        assert cro.hold == Decimal("40")


class TestOrders:
    """Test order management."""

    async def test_submit_limit_post_only(self):
        """Test post only limit orders."""
        exchange, venue = _cdc({PRIVATE + "create-order": _ok({"order_id": "337843775021233500", "client_oid": "c1"})})

        response = await exchange.submit_order(
            order.Submit(
                pair=BTC_USDT,
                asset=Asset.SPOT,
                side=OrderSide.BUY,
                type=OrderType.LIMIT,
                price=Decimal("40000"),
                amount=Decimal("0.5"),
                post_only=True,
                immediate_or_cancel=True,
                client_order_id="c1",
            )
        )

        assert body(venue.last)["params"] == {
            "instrument_name": "BTC_USDT",
            "side": "BUY",
            "type": "LIMIT",
            "price": "40000",
            "quantity": "0.5",
            "exec_inst": "POST_ONLY",
            "time_in_force": "IMMEDIATE_OR_CANCEL",
            "client_oid": "c1",
        }
        assert response.is_order_placed is True
        assert response.order_id == "337843775021233500"

    async def test_submit_market_buy_notional(self):
        """Test market buys spend the amount as notional."""
        exchange, venue = _cdc({PRIVATE + "create-order": _ok({"order_id": "1"})})

        await exchange.submit_order(
            order.Submit(
                pair=BTC_USDT,
                asset=Asset.SPOT,
                side=OrderSide.BUY,
                type=OrderType.MARKET,
                amount=Decimal("100"),
            )
        )

        params = body(venue.last)["params"]
        assert params["notional"] == "100"
        assert "quantity" not in params

    async def test_cancel_order(self):
        """Test the cancel names the instrument and order."""
        exchange, venue = _cdc({PRIVATE + "cancel-order": _ok({})})

        await exchange.cancel_order(order.Cancel(id="42", pair=BTC_USDT, asset=Asset.SPOT))

        assert body(venue.last)["params"] == {"instrument_name": "BTC_USDT", "order_id": "42"}

    async def test_cancel_batch_reports_failures(self):
        """Test each cancel is reported on its own."""

        def cancel(request):
            if body(request)["params"]["order_id"] == "2":
                return {"id": 1, "code": 316, "message": "ORDER_NOT_FOUND"}
            return _ok({})

        exchange, venue = _cdc({PRIVATE + "cancel-order": cancel})

        response = await exchange.cancel_batch_orders(
            [
                order.Cancel(id="1", pair=BTC_USDT, asset=Asset.SPOT),
                order.Cancel(id="2", pair=BTC_USDT, asset=Asset.SPOT),
            ]
        )

        assert response.status["1"] == "CANCELLED"
        assert "ORDER_NOT_FOUND" in response.status["2"]
        assert len(venue.requests) == 2

    async def test_cancel_all_lists_open_orders(self):
        """Test the orders open before the cancel are reported."""
        exchange, venue = _cdc(
            {
                PRIVATE + "get-open-orders": _ok(
                    {"count": 2, "order_list": [_order_info(order_id="a1"), _order_info(order_id="b2")]}
                ),
                PRIVATE + "cancel-all-orders": _ok({}),
            }
        )

        response = await exchange.cancel_all_orders(order.Cancel(pair=BTC_USDT, asset=Asset.SPOT))

        assert venue.paths() == ["/v2/private/get-open-orders", "/v2/private/cancel-all-orders"]
        assert body(venue.last)["params"] == {"instrument_name": "BTC_USDT"}
        assert response.status == {"a1": "CANCELLED", "b2": "CANCELLED"}
        assert response.count == 2

    async def test_get_order_info(self):
        """Test order fields, fills and summed fees."""
        exchange, venue = _cdc(
            {
                PRIVATE + "get-order-detail": _ok(
                    {
                        "order_info": _order_info(),
                        "trade_list": [
                            {
                                "trade_id": "t1",
                                "side": "BUY",
                                "fee": 0.01,
                                "traded_price": 40000,
                                "traded_quantity": 0.25,
                                "create_time": T0_MS,
                            },
                            {
                                "trade_id": "t2",
                                "side": "BUY",
                                "fee": 0.02,
                                "traded_price": 40000,
                                "traded_quantity": 0.25,
                                "create_time": T0_MS,
                            },
                        ],
                    }
                )
            }
        )

        detail = await exchange.get_order_info("1138210129647637539", BTC_USDT, Asset.SPOT)

        assert body(venue.last)["params"] == {"order_id": "1138210129647637539"}
        assert detail.pair == BTC_USDT
        assert detail.status is OrderStatus.ACTIVE
        assert detail.type is OrderType.LIMIT
        assert detail.post_only is True
        assert detail.remaining_amount == Decimal("1.5")
        assert detail.cost == Decimal("20000")
        assert detail.fee == Decimal("0.03")
        assert detail.date == T0
        assert [t.tid for t in detail.trades] == ["t1", "t2"]

    async def test_active_orders_filtered(self):
        """Test open orders per pair with a side filter."""
        exchange, venue = _cdc(
            {
                PRIVATE + "get-open-orders": _ok(
                    {"order_list": [_order_info(order_id="1"), _order_info(order_id="2", side="SELL")]}
                )
            }
        )

        details = await exchange.get_active_orders(
            order.GetOrdersRequest(asset=Asset.SPOT, pairs=[BTC_USDT], side=OrderSide.SELL)
        )

        assert body(venue.last)["params"] == {"instrument_name": "BTC_USDT", "page_size": 20}
        assert [d.id for d in details] == ["2"]

    async def test_order_history_window(self):
        """Test the history window is sent in milliseconds."""
        exchange, venue = _cdc(
            {
                PRIVATE + "get-order-history": _ok(
                    {
                        "order_list": [
                            _order_info(order_id="1", status="FILLED"),
                            _order_info(order_id="2", status="CANCELED", type="MARKET"),
                        ]
                    }
                )
            }
        )

        details = await exchange.get_order_history(
            order.GetOrdersRequest(
                asset=Asset.SPOT,
                start=T0 - timedelta(hours=1),
                end=T0 + timedelta(hours=1),
                type=OrderType.LIMIT,
            )
        )

        params = body(venue.last)["params"]
        assert params["start_ts"] == T0_MS - 3_600_000
        assert params["end_ts"] == T0_MS + 3_600_000
        assert "instrument_name" not in params
        assert [(d.id, d.status) for d in details] == [("1", OrderStatus.FILLED)]


class TestFundsAndFees:
    """Test deposits, withdrawals and fees."""

    async def test_deposit_address(self):
        """Test the first active address on the requested network."""
        exchange, venue = _cdc(
            {
                PRIVATE + "get-deposit-address": _ok(
                    {
                        "deposit_address_list": [
                            {"currency": "CRO", "network": "ETH", "address": "0xabc", "status": "1"},
                            {"currency": "CRO", "network": "CRO", "address": "cro1", "status": "1"},
                        ]
                    }
                )
            }
        )

        assert await exchange.get_deposit_address(Code("cro"), "CRO") == "cro1"
        assert body(venue.last)["params"] == {"currency": "CRO"}
        assert await exchange.get_deposit_address(Code("CRO")) == "0xabc"

    async def test_deposit_address_missing(self):
        """Test no matching address raises."""
        exchange, _ = _cdc(
            {
                PRIVATE + "get-deposit-address": _ok(
                    {"deposit_address_list": [{"currency": "CRO", "network": "ETH", "address": "0x", "status": "0"}]}
                )
            }
        )

        with pytest.raises(NotFoundError):
            await exchange.get_deposit_address(Code("CRO"))

    async def test_withdraw(self):
        """Test the withdrawal params and the named status."""
        exchange, venue = _cdc(
            {PRIVATE + "create-withdrawal": _ok({"id": 2220, "amount": 1, "fee": 0.0004, "status": "0"})}
        )

        response = await exchange.withdraw_cryptocurrency_funds(
            withdraw.Request(
                currency=Code("btc"),
                amount=Decimal("1"),
                crypto=withdraw.CryptoRequest(address="2NBqqD5GRJ8wHy1PYyCXTe9ke5226FhavBz", address_tag="tag"),
            )
        )

        assert body(venue.last)["params"] == {
            "currency": "BTC",
            "amount": "1",
            "address": "2NBqqD5GRJ8wHy1PYyCXTe9ke5226FhavBz",
            "address_tag": "tag",
        }
        assert response.id == "2220"
        assert response.status == "PENDING"

    async def test_funding_history(self):
        """Test deposits and withdrawals are merged with named statuses."""
        exchange, _ = _cdc(
            {
                PRIVATE + "get-deposit-history": _ok(
                    {"deposit_list": [{"id": "d1", "currency": "BTC", "amount": 2, "status": "1", "create_time": T0_MS}]}
                ),
                PRIVATE + "get-withdrawal-history": _ok(
                    {
                        "withdrawal_list": [
                            {"id": "w1", "currency": "BTC", "amount": 1, "fee": 0.0004, "status": "5", "txid": "0xh"}
                        ]
                    }
                ),
            }
        )

        history = await exchange.get_funding_history()

        assert [(h.transfer_id, h.transfer_type, h.status) for h in history] == [
            ("d1", "deposit", "ARRIVED"),
            ("w1", "withdrawal", "COMPLETED"),
        ]
        assert history[0].timestamp == T0
        assert history[1].crypto_tx_id == "0xh"

    async def test_withdrawals_history_by_currency(self):
        """Test the currency filter is sent."""
        exchange, venue = _cdc(
            {PRIVATE + "get-withdrawal-history": _ok({"withdrawal_list": [{"id": "w1", "status": "6"}]})}
        )

        history = await exchange.get_withdrawals_history(Code("eth"))

        assert body(venue.last)["params"] == {"currency": "ETH"}
        assert history[0].status == "CANCELLED"

    async def test_trade_fee(self):
        """Test the base tier rate."""
        exchange, venue = _cdc()

        fee = await exchange.get_fee(
            FeeBuilder(pair=BTC_USDT, purchase_price=Decimal("1000"), amount=Decimal("2"))
        )

        assert fee == Decimal("8")
        assert venue.requests == []


class TestStreamResponses:
    """Test pushed channel data lands in the caches."""

    def test_ticker_push(self):
        """Test ticker pushes update the ticker cache."""
        exchange, _ = _cdc()

        exchange.handle_stream_response(
            data.Response(
                method="subscribe",
                result={
                    "channel": "ticker",
                    "instrument_name": "ETH_USDT",
                    "data": [{"i": "ETH_USDT", "b": "2000", "k": "2001", "a": "2000.5", "t": T0_MS}],
                },
            )
        )

        price = ticker.get_ticker("CryptoCom", Pair("ETH", "USDT"), Asset.SPOT)
        assert price.bid == Decimal("2000")
        assert price.last == Decimal("2000.5")

    def test_book_push(self):
        """Test book pushes replace the stored book."""
        exchange, _ = _cdc()
        cro_usdt = Pair("CRO", "USDT")

        exchange.handle_stream_response(
            data.Response(
                method="subscribe",
                result={
                    "channel": "book",
                    "instrument_name": "CRO_USDT",
                    "data": [{"bids": [["0.1", "100", "1"]], "asks": [["0.11", "50", "2"]], "t": T0_MS}],
                },
            )
        )

        book = orderbook.get_orderbook("CryptoCom", cro_usdt, Asset.SPOT)
        assert book.best_ask == Decimal("0.11")
        assert book.asks[0].order_count == 2

    def test_error_push(self):
        """Test an error code raises."""
        exchange, _ = _cdc()

        with pytest.raises(WebsocketError, match="code: 10003"):
            exchange.handle_stream_response(
                data.Response(method="subscribe", code=10003, message="UNAUTHORIZED")
            )
