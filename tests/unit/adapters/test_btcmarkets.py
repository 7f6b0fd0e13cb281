"""Tests for the BTC Markets adapter against a mock REST venue."""

import base64
import hashlib
import hmac
from datetime import UTC, datetime
from decimal import Decimal

import pytest

from irix.adapters.btcmarkets import BTCMarkets
from irix.currency import Code, Pair
from irix.enums import Asset, FeeType, OrderSide, OrderStatus, OrderType
from irix.errors import ExchangeAPIError, KlineError, ValidationError, WithdrawValidationError
from irix.exchange import FeeBuilder
from irix.model import kline, order, withdraw
from tests.unit.helpers import MockVenue, body, build_exchange, query

BTC_AUD = Pair("BTC", "AUD")
T0 = datetime(2024, 1, 1, tzinfo=UTC)


def _btcm(routes: dict | None = None) -> tuple[BTCMarkets, MockVenue]:
    venue = MockVenue(routes)
    # the venue hands out base64 encoded secrets
    exchange = build_exchange(
        BTCMarkets, venue, pairs=["BTC-AUD", "ETH-AUD"], secret="c2VjcmV0"
    )
    return exchange, venue


def _order(**overrides):
    raw = {
        "orderId": "7524",
        "marketId": "BTC-AUD",
        "side": "Bid",
        "type": "Limit",
        "creationTime": "2024-01-01T00:00:00Z",
        "price": "60000.00",
        "amount": "1.5",
        "openAmount": "1.0",
        "status": "Partially Matched",
    }
    raw.update(overrides)
    return raw


class TestMarketData:
    """Test public market data."""

    async def test_fetch_tradable_pairs(self):
        """Test market ids are returned as listed."""
        exchange, venue = _btcm(
            {"/v3/markets": [{"marketId": "BTC-AUD"}, {"marketId": "ETH-AUD"}]}
        )

        assert await exchange.fetch_tradable_pairs(Asset.SPOT) == ["BTC-AUD", "ETH-AUD"]
        assert venue.last.url.host == "api.btcmarkets.net"

    async def test_update_ticker_batches_enabled_pairs(self):
        """Test every enabled pair is refreshed by one request."""

        def tickers(request):
            return [
                {
                    "marketId": market_id,
                    "bestBid": "100",
                    "bestAsk": "101",
                    "lastPrice": "100.5",
                    "volume24h": "12",
                    "volumeQte24h": "1200",
                    "low24h": "90",
                    "high24h": "110",
                }
                for market_id in request.url.params.get_list("marketId")
            ]

        exchange, venue = _btcm({"/v3/markets/tickers": tickers})

        price = await exchange.update_ticker(BTC_AUD, Asset.SPOT)

        assert venue.last.url.params.get_list("marketId") == ["BTC-AUD", "ETH-AUD"]
        assert len(venue.requests) == 1
        assert price.last == Decimal("100.5")
        assert price.quote_volume == Decimal("1200")
        assert price.high == Decimal("110")

    async def test_update_ticker_missing_rows(self):
        """Test a short ticker reply raises."""
        exchange, _ = _btcm({"/v3/markets/tickers": [{"marketId": "BTC-AUD", "lastPrice": "1"}]})

        with pytest.raises(ExchangeAPIError, match="differ"):
            await exchange.update_ticker(BTC_AUD, Asset.SPOT)

    async def test_update_orderbook(self):
        """Test level two books with the snapshot id."""
        exchange, venue = _btcm(
            {
                "/v3/markets/BTC-AUD/orderbook": {
                    "marketId": "BTC-AUD",
                    "snapshotId": 1567334110144000,
                    "bids": [["60000", "0.5"], ["59990", "1.2"]],
                    "asks": [["60010", "0.3"]],
                }
            }
        )

        book = await exchange.update_orderbook(BTC_AUD, Asset.SPOT)

        assert query(venue.last) == {"level": "2"}
        assert book.best_bid == Decimal("60000")
        assert book.best_ask == Decimal("60010")
        assert book.last_update_id == 1567334110144000

    async def test_orderbook_level_checked(self):
        """Test unsupported book levels are refused."""
        exchange, venue = _btcm()

        with pytest.raises(ValidationError):
            await exchange.get_orderbook("BTC-AUD", 4)
        assert venue.requests == []

    async def test_recent_trades(self):
        """Test trades keep their sides and come back oldest first."""
        exchange, venue = _btcm(
            {
                "/v3/markets/BTC-AUD/trades": [
                    {
                        "id": "2",
                        "price": "60010",
                        "amount": "0.1",
                        "timestamp": "2024-01-01T00:00:05Z",
                        "side": "Ask",
                    },
                    {
                        "id": "1",
                        "price": "60000",
                        "amount": "0.2",
                        "timestamp": "2024-01-01T00:00:00Z",
                        "side": "Bid",
                    },
                ]
            }
        )

        trades = await exchange.get_recent_trades(BTC_AUD, Asset.SPOT)

        assert query(venue.last) == {"limit": "200"}
        assert [t.tid for t in trades] == ["1", "2"]
        assert trades[0].side is OrderSide.BID
        assert trades[1].side is OrderSide.ASK
        assert trades[0].timestamp == T0

    async def test_trades_before_and_after(self):
        """Test paging in both directions at once is refused."""
        exchange, _ = _btcm()

        with pytest.raises(ValidationError):
            await exchange.get_trades("BTC-AUD", before=10, after=5)

    async def test_historic_candles(self):
        """Test candle rows are parsed from string arrays."""
        exchange, venue = _btcm(
            {
                "/v3/markets/BTC-AUD/candles": [
                    ["2024-01-01T01:00:00Z", "2", "3", "1", "2.5", "10"],
                    ["2024-01-01T00:00:00Z", "1", "2", "0.5", "1.5", "20"],
                ]
            }
        )

        item = await exchange.get_historic_candles(
            BTC_AUD,
            Asset.SPOT,
            T0,
            datetime(2024, 1, 1, 2, tzinfo=UTC),
            kline.Interval.ONE_HOUR,
        )

        params = query(venue.last)
        assert params["timeWindow"] == "1h"
        assert params["from"] == "2024-01-01T00:00:00Z"
        assert params["to"] == "2024-01-01T02:00:00Z"
        assert item.candles[0].time == T0
        assert item.candles[0].close == Decimal("1.5")
        assert item.candles[1].volume == Decimal("10")

    async def test_historic_candles_over_limit(self):
        """Test ranges beyond one request must use the extended call."""
        exchange, venue = _btcm()

        with pytest.raises(KlineError):
            await exchange.get_historic_candles(
                BTC_AUD,
                Asset.SPOT,
                T0,
                datetime(2024, 3, 1, tzinfo=UTC),
                kline.Interval.ONE_MIN,
            )
        assert venue.requests == []

    def test_kline_interval_names(self):
        """Test the daily interval uses a lower case d."""
        exchange, _ = _btcm()
        assert exchange.format_exchange_kline_interval(kline.Interval.ONE_DAY) == "1d"
        assert exchange.format_exchange_kline_interval(kline.Interval.ONE_MIN) == "1m"


class TestSigning:
    """Test authenticated request signing."""

    async def test_signature_headers(self):
        """Test HMAC-SHA512 over method, path, timestamp and body."""
        exchange, venue = _btcm(
            {
                "/v3/accounts/me/balances": [
                    {"assetName": "AUD", "balance": "100", "available": "80", "locked": "20"},
                    {"assetName": "BTC", "balance": "1.5", "available": "1.5", "locked": "0"},
                ]
            }
        )

        holdings = await exchange.update_account_info(Asset.SPOT)

        request = venue.last
        timestamp = request.headers["BM-AUTH-TIMESTAMP"]
        expected = base64.b64encode(
            hmac.new(
                b"secret", f"GET/v3/accounts/me/balances{timestamp}".encode(), hashlib.sha512
            ).digest()
        ).decode()
        assert request.headers["BM-AUTH-APIKEY"] == "key"
        assert request.headers["BM-AUTH-SIGNATURE"] == expected
        aud = holdings.accounts[0].currencies[0]
        assert aud.currency == Code("AUD")
        assert aud.total_value == Decimal("100")
        assert aud.hold == Decimal("20")

    def test_sign_includes_body(self):
        """Test the body is appended after the timestamp."""
        exchange, _ = _btcm()
        expected = base64.b64encode(
            hmac.new(b"secret", b'POST/v3/orders1{"a": 1}', hashlib.sha512).digest()
        ).decode()
        assert exchange.sign("POST", "/orders", "1", '{"a": 1}') == expected


class TestOrders:
    """Test order management."""

    async def test_submit_limit(self):
        """Test limit orders send price, side and client id."""
        exchange, venue = _btcm({"POST /v3/orders": _order(status="Accepted")})

        response = await exchange.submit_order(
            order.Submit(
                pair=BTC_AUD,
                asset=Asset.SPOT,
                side=OrderSide.BUY,
                type=OrderType.LIMIT,
                price=Decimal("60000"),
                amount=Decimal("1.5"),
                post_only=True,
                client_order_id="abc",
            )
        )

        sent = body(venue.last)
        assert sent == {
            "marketId": "BTC-AUD",
            "amount": "1.5",
            "type": "Limit",
            "side": "Bid",
            "price": "60000",
            "postOnly": True,
            "clientOrderId": "abc",
        }
        assert response.order_id == "7524"

    async def test_submit_market_omits_price(self):
        """Test market orders carry no price."""
        exchange, venue = _btcm({"POST /v3/orders": _order(type="Market")})

        await exchange.submit_order(
            order.Submit(
                pair=BTC_AUD,
                asset=Asset.SPOT,
                side=OrderSide.SELL,
                type=OrderType.MARKET,
                amount=Decimal("1"),
            )
        )

        sent = body(venue.last)
        assert "price" not in sent
        assert sent["side"] == "Ask"
        assert sent["type"] == "Market"

    async def test_cancel_order(self):
        """Test single cancels use DELETE on the order path."""
        exchange, venue = _btcm({"DELETE /v3/orders/7524": {"orderId": "7524"}})

        await exchange.cancel_order(order.Cancel(id="7524", pair=BTC_AUD, asset=Asset.SPOT))

        assert venue.last.method == "DELETE"

    async def test_cancel_batch_reports_unprocessed(self):
        """Test unprocessed requests are marked as failed."""
        exchange, _ = _btcm(
            {
                "DELETE /v3/batchorders/1,2": {
                    "cancelOrders": [{"orderId": "1"}],
                    "unprocessedRequests": [
                        {"code": "OrderAlreadyCancelled", "message": "", "requestId": "2"}
                    ],
                }
            }
        )

        response = await exchange.cancel_batch_orders(
            [
                order.Cancel(id="1", pair=BTC_AUD, asset=Asset.SPOT),
                order.Cancel(id="2", pair=BTC_AUD, asset=Asset.SPOT),
            ]
        )

        assert response.status == {"1": "Success", "2": "Cancellation Failed"}

    async def test_cancel_all_chunks_by_twenty(self):
        """Test open orders are cancelled twenty at a time."""
        ids = [str(i) for i in range(25)]

        def cancel(request):
            chunk = request.url.path.rsplit("/", 1)[-1].split(",")
            return {"cancelOrders": [{"orderId": i} for i in chunk], "unprocessedRequests": []}

        routes = {"GET /v3/orders": [_order(orderId=i) for i in ids]}
        exchange, venue = _btcm(routes)
        venue.route("DELETE /v3/batchorders/" + ",".join(ids[:20]), cancel)
        venue.route("DELETE /v3/batchorders/" + ",".join(ids[20:]), cancel)

        response = await exchange.cancel_all_orders(order.Cancel(pair=BTC_AUD, asset=Asset.SPOT))

        assert query(venue.find("/v3/orders")[0]) == {"status": "open"}
        assert response.count == 25
        assert len([r for r in venue.requests if r.method == "DELETE"]) == 2

    async def test_get_order_info(self):
        """Test a partially matched order."""
        exchange, _ = _btcm({"/v3/orders/7524": _order()})

        detail = await exchange.get_order_info("7524", BTC_AUD, Asset.SPOT)

        assert detail.pair == BTC_AUD
        assert detail.side is OrderSide.BID
        assert detail.type is OrderType.LIMIT
        assert detail.status is OrderStatus.PARTIALLY_FILLED
        assert detail.executed_amount == Decimal("0.5")
        assert detail.remaining_amount == Decimal("1.0")
        assert detail.date == T0

    async def test_active_orders_per_pair(self):
        """Test each requested pair is fetched and side filtered."""
        exchange, venue = _btcm(
            {"GET /v3/orders": [_order(orderId="1"), _order(orderId="2", side="Ask")]}
        )

        details = await exchange.get_active_orders(
            order.GetOrdersRequest(asset=Asset.SPOT, pairs=[BTC_AUD], side=OrderSide.ASK)
        )

        assert query(venue.last) == {"marketId": "BTC-AUD", "status": "open"}
        assert [d.id for d in details] == ["2"]

    async def test_order_history_skips_open(self):
        """Test batch fetched orders that are still open are dropped."""
        exchange, _ = _btcm(
            {
                "GET /v3/orders": [_order(orderId="1"), _order(orderId="2")],
                "GET /v3/batchorders/1,2": {
                    "orders": [
                        _order(orderId="1", status="Fully Matched", openAmount="0"),
                        _order(orderId="2", status="Placed"),
                    ],
                    "unprocessedRequests": [],
                },
            }
        )

        details = await exchange.get_order_history(
            order.GetOrdersRequest(asset=Asset.SPOT, pairs=[BTC_AUD])
        )

        assert [d.id for d in details] == ["1"]
        assert details[0].status is OrderStatus.FILLED
        assert details[0].executed_amount == Decimal("1.5")


class TestFundsAndFees:
    """Test deposits, withdrawals and fees."""

    async def test_deposit_address(self):
        """Test the asset name is upper cased."""
        exchange, venue = _btcm({"/v3/addresses": {"address": "3abc", "assetName": "BTC"}})

        assert await exchange.get_deposit_address(Code("btc")) == "3abc"
        assert query(venue.last) == {"assetName": "BTC"}

    async def test_withdraw_crypto(self):
        """Test crypto withdrawals carry the address."""
        exchange, venue = _btcm(
            {"POST /v3/withdrawals": {"id": "4126", "assetName": "BTC", "status": "Pending Authorization"}}
        )

        response = await exchange.withdraw_cryptocurrency_funds(
            withdraw.Request(
                currency=Code("BTC"),
                amount=Decimal("0.5"),
                crypto=withdraw.CryptoRequest(address="3abc"),
            )
        )

        assert body(venue.last) == {"assetName": "BTC", "amount": "0.5", "toAddress": "3abc"}
        assert response.id == "4126"
        assert response.status == "Pending Authorization"

    async def test_withdraw_fiat_requires_aud(self):
        """Test fiat withdrawals other than AUD are refused."""
        exchange, venue = _btcm()

        with pytest.raises(WithdrawValidationError):
            await exchange.withdraw_fiat_funds(
                withdraw.Request(
                    currency=Code("USD"),
                    amount=Decimal("10"),
                    type=withdraw.RequestType.FIAT,
                    fiat=withdraw.FiatRequest(
                        bank=withdraw.Bank(
                            account_name="a", account_number="1", bsb="062000", bank_name="b"
                        )
                    ),
                )
            )
        assert venue.requests == []

    async def test_withdrawals_history(self):
        """Test withdrawals are filtered by currency."""
        exchange, _ = _btcm(
            {
                "/v3/withdrawals": [
                    {
                        "id": "1",
                        "assetName": "BTC",
                        "amount": "0.5",
                        "type": "Withdraw",
                        "creationTime": "2024-01-01T00:00:00Z",
                        "status": "Complete",
                        "fee": "0.0001",
                    },
                    {"id": "2", "assetName": "AUD", "amount": "10", "type": "Withdraw"},
                ]
            }
        )

        history = await exchange.get_withdrawals_history(Code("BTC"))

        assert [h.transfer_id for h in history] == ["1"]
        assert history[0].timestamp == T0
        assert history[0].fee == Decimal("0.0001")

    async def test_trade_fee_by_market(self):
        """Test the maker rate for the market is applied."""
        exchange, _ = _btcm(
            {
                "/v3/accounts/me/trading-fees": {
                    "monthlyVolume": "10",
                    "feeByMarkets": [
                        {"makerFeeRate": "0.0085", "takerFeeRate": "0.0085", "marketId": "ETH-AUD"},
                        {"makerFeeRate": "0.002", "takerFeeRate": "0.004", "marketId": "BTC-AUD"},
                    ],
                }
            }
        )

        fee = await exchange.get_fee(
            FeeBuilder(
                pair=BTC_AUD, is_maker=True, purchase_price=Decimal("1000"), amount=Decimal("2")
            )
        )

        assert fee == Decimal("4")

    async def test_withdrawal_fee(self):
        """Test the withdrawal fee table is matched by asset name."""
        exchange, _ = _btcm(
            {
                "/v3/withdrawal-fees": [
                    {"assetName": "AUD", "fee": "0"},
                    {"assetName": "BTC", "fee": "0.0001"},
                ]
            }
        )

        fee = await exchange.get_fee(
            FeeBuilder(fee_type=FeeType.CRYPTOCURRENCY_WITHDRAWAL_FEE, pair=BTC_AUD)
        )

        assert fee == Decimal("0.0001")

    async def test_offline_fee(self):
        """Test the offline rate needs no request."""
        exchange, venue = _btcm()

        fee = await exchange.get_fee(
            FeeBuilder(
                fee_type=FeeType.OFFLINE_TRADE_FEE,
                pair=BTC_AUD,
                purchase_price=Decimal("100"),
                amount=Decimal("1"),
            )
        )

        assert fee == Decimal("0.85")
        assert venue.requests == []

    async def test_execution_limits(self):
        """Test amount bounds and steps from the market listing."""
        exchange, _ = _btcm(
            {
                "/v3/markets": [
                    {
                        "marketId": "BTC-AUD",
                        "minOrderAmount": "0.0001",
                        "maxOrderAmount": "1000000",
                        "amountDecimals": 8,
                        "priceDecimals": 2,
                    }
                ]
            }
        )

        await exchange.update_order_execution_limits(Asset.SPOT)

        limits = exchange.get_order_execution_limits(Asset.SPOT, BTC_AUD)
        assert limits.min_amount == Decimal("0.0001")
        assert limits.step_price == Decimal("0.01")
        assert limits.step_amount == Decimal("0.00000001")
