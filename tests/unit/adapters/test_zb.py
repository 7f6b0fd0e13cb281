"""Tests for the ZB adapter against a mock REST venue."""

import hashlib
import hmac
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from irix.adapters.zb import ZB
from irix.adapters.zb.exchange import KLINE_INTERVALS
from irix.currency import Code, Pair
from irix.enums import Asset, FeeType, OrderSide, OrderStatus, OrderType
from irix.errors import ExchangeAPIError, KlineError, OrderValidationError
from irix.exchange import FeeBuilder
from irix.model import kline, order, withdraw
from tests.unit.helpers import MockVenue, build_exchange, query

BTC_USDT = Pair("BTC", "USDT")
T0 = datetime(2024, 1, 1, tzinfo=UTC)
T0_MS = int(T0.timestamp() * 1000)


def _zb(routes: dict | None = None) -> tuple[ZB, MockVenue]:
    venue = MockVenue(routes)
    exchange = build_exchange(ZB, venue, pairs=["BTC_USDT", "ETH_USDT"])
    return exchange, venue


def _order(**overrides):
    raw = {
        "id": 20180522105585216,
        "currency": "btc_usdt",
        "type": 1,
        "status": 0,
        "price": "8000",
        "total_amount": "0.5",
        "trade_amount": "0.2",
        "trade_money": "1600",
        "trade_price": "8000",
        "fees": "0.001",
        "trade_date": T0_MS,
    }
    raw.update(overrides)
    return raw


class TestMarketData:
    """Test public market data."""

    async def test_fetch_tradable_pairs(self):
        """Test market keys are upper-cased."""
        exchange, venue = _zb(
            {"/data/v1/markets": {"btc_usdt": {"amountScale": 4, "priceScale": 2}}}
        )

        assert await exchange.fetch_tradable_pairs(Asset.SPOT) == ["BTC_USDT"]
        assert venue.last.url.host == "api.zb.com"

    async def test_update_ticker_matches_undelimited_keys(self):
        """Test allTicker keys without delimiter map back onto enabled pairs."""
        exchange, _ = _zb(
            {
                "/data/v1/allTicker": {
                    "btcusdt": {"buy": "8000", "sell": "8001", "last": "8000.5", "vol": "12"},
                    "ethusdt": {"buy": "300", "sell": "301", "last": "300.5", "vol": "40"},
                    "zbqc": {"buy": "1", "sell": "2", "last": "1.5", "vol": "1"},
                }
            }
        )

        price = await exchange.update_ticker(BTC_USDT, Asset.SPOT)

        assert price.last == Decimal("8000.5")
        assert price.bid == Decimal("8000")
        assert price.ask == Decimal("8001")
        assert price.volume == Decimal("12")
        eth = await exchange.fetch_ticker(Pair("ETH", "USDT"), Asset.SPOT)
        assert eth.last == Decimal("300.5")

    async def test_update_orderbook_reverses_asks(self):
        """Test asks arriving highest first are flipped to ascending."""
        exchange, venue = _zb(
            {
                "/data/v1/depth": {
                    "asks": [["8003", "1"], ["8002", "1"], ["8001", "2"]],
                    "bids": [["8000", "1"], ["7999", "3"]],
                    "timestamp": 1,
                }
            }
        )

        book = await exchange.update_orderbook(BTC_USDT, Asset.SPOT)

        assert query(venue.last)["market"] == "btc_usdt"
        assert [item.price for item in book.asks] == [
            Decimal("8001"),
            Decimal("8002"),
            Decimal("8003"),
        ]
        assert book.best_bid == Decimal("8000")

    async def test_recent_trades(self):
        """Test trade dates in seconds are parsed."""
        seconds = int(T0.timestamp())
        exchange, _ = _zb(
            {
                "/data/v1/trades": [
                    {"tid": 2, "date": seconds + 5, "price": "1", "amount": "1", "type": "sell"},
                    {"tid": 1, "date": seconds, "price": "1", "amount": "1", "type": "buy"},
                ]
            }
        )

        trades = await exchange.get_recent_trades(BTC_USDT, Asset.SPOT)

        assert [t.tid for t in trades] == ["1", "2"]
        assert trades[0].timestamp == T0
        assert trades[0].side is OrderSide.BUY

    async def test_historic_candles(self):
        """Test candles are requested from start and filtered."""
        minute = 60_000
        exchange, venue = _zb(
            {
                "/data/v1/kline": {
                    "symbol": "btc",
                    "moneyType": "usdt",
                    "data": [
                        [T0_MS + minute, 2, 2, 2, 2, 1],
                        [T0_MS, 1, 1, 1, 1, 1],
                        [T0_MS + 5 * minute, 9, 9, 9, 9, 1],
                    ],
                }
            }
        )

        item = await exchange.get_historic_candles(
            BTC_USDT, Asset.SPOT, T0, T0 + timedelta(minutes=2), kline.Interval.ONE_MIN
        )

        params = query(venue.last)
        assert params["type"] == "1min"
        assert params["since"] == str(T0_MS)
        assert params["size"] == "1000"
        assert [c.close for c in item.candles] == [Decimal("1"), Decimal("2")]

    async def test_historic_candles_invalid_range(self):
        """Test an inverted range is rejected."""
        exchange, _ = _zb()

        with pytest.raises(KlineError, match="invalid time range"):
            await exchange.get_historic_candles(
                BTC_USDT, Asset.SPOT, T0, T0 - timedelta(minutes=1), kline.Interval.ONE_MIN
            )

    def test_kline_interval_mapping(self):
        """Test supported and unsupported intervals."""
        exchange, _ = _zb()

        assert exchange.format_exchange_kline_interval(kline.Interval.THREE_DAY) == "3day"
        assert exchange.format_exchange_kline_interval(kline.Interval.FIFTEEN_DAY) == ""
        assert kline.Interval.ONE_WEEK in KLINE_INTERVALS


class TestSigning:
    """Test trade API signing."""

    def test_sign(self):
        """Test HMAC-MD5 keyed by the hex SHA1 of the secret."""
        exchange, _ = _zb()

        key = hashlib.sha1(b"secret").hexdigest().encode()
        expected = hmac.new(key, b"accesskey=key&method=getAccountInfo", hashlib.md5).hexdigest()

        assert exchange.sign("accesskey=key&method=getAccountInfo") == expected

    async def test_authenticated_query(self):
        """Test signed calls go to the trade API with sign and reqTime last."""
        exchange, venue = _zb(
            {
                "/api/getAccountInfo": {
                    "result": {
                        "coins": [
                            {"key": "btc", "enName": "BTC", "available": "1.5", "freez": "0.5"}
                        ]
                    }
                }
            }
        )

        holdings = await exchange.update_account_info(Asset.SPOT)

        request = venue.last
        raw_query = request.url.query.decode()
        signed_part, _, tail = raw_query.partition("&sign=")
        params = query(request)
        assert request.url.host == "trade.zb.com"
        assert signed_part == "accesskey=key&method=getAccountInfo"
        assert params["sign"] == exchange.sign(signed_part)
        assert "reqTime=" in tail
        balance = holdings.accounts[0].currencies[0]
        assert balance.total_value == Decimal("2.0")
        assert balance.hold == Decimal("0.5")

    async def test_error_code_raises(self):
        """Test a code other than 1000 is raised with its message."""
        exchange, _ = _zb({"/api/getAccountInfo": {"code": 1003, "message": "Fail to verify"}})

        with pytest.raises(ExchangeAPIError) as excinfo:
            await exchange.get_account_information()
        assert excinfo.value.code == 1003


class TestOrders:
    """Test order management."""

    async def test_submit_limit(self):
        """Test limit orders carry the trade type."""
        exchange, venue = _zb({"/api/order": {"code": 1000, "message": "ok", "id": 123456}})

        response = await exchange.submit_order(
            order.Submit(
                pair=BTC_USDT,
                asset=Asset.SPOT,
                side=OrderSide.SELL,
                type=OrderType.LIMIT,
                price=Decimal("8000"),
                amount=Decimal("0.5"),
            )
        )

        params = query(venue.last)
        assert params["currency"] == "btc_usdt"
        assert params["tradeType"] == "0"
        assert params["amount"] == "0.5"
        assert response.order_id == "123456"

    async def test_submit_market_rejected(self):
        """Test market orders are not supported."""
        exchange, _ = _zb()

        with pytest.raises(OrderValidationError):
            await exchange.submit_order(
                order.Submit(
                    pair=BTC_USDT,
                    asset=Asset.SPOT,
                    side=OrderSide.BUY,
                    type=OrderType.MARKET,
                    amount=Decimal("1"),
                )
            )

    async def test_cancel_all_cancels_unfinished(self):
        """Test every unfinished order of the pair is cancelled."""
        exchange, venue = _zb(
            {
                "/api/getUnfinishedOrdersIgnoreTradeType": [_order(id=1), _order(id=2)],
                "/api/cancelOrder": {"code": 1000, "message": "ok"},
            }
        )

        response = await exchange.cancel_all_orders(
            order.Cancel(pair=BTC_USDT, asset=Asset.SPOT)
        )

        assert response.count == 2
        assert response.status == {"1": "Cancelled", "2": "Cancelled"}
        cancelled = [query(r)["id"] for r in venue.find("/api/cancelOrder")]
        assert cancelled == ["1", "2"]

    async def test_no_orders_code_is_empty(self):
        """Test code 3001 on order lists means no orders."""
        exchange, _ = _zb(
            {"/api/getUnfinishedOrdersIgnoreTradeType": {"code": 3001, "message": "none"}}
        )

        details = await exchange.get_active_orders(
            order.GetOrdersRequest(asset=Asset.SPOT, pairs=[BTC_USDT])
        )

        assert details == []

    async def test_get_order_info(self):
        """Test order fields and status mapping."""
        exchange, _ = _zb({"/api/getOrder": _order(status=3)})

        detail = await exchange.get_order_info("20180522105585216", BTC_USDT, Asset.SPOT)

        assert detail.id == "20180522105585216"
        assert detail.status is OrderStatus.PARTIALLY_FILLED
        assert detail.side is OrderSide.BUY
        assert detail.remaining_amount == Decimal("0.3")
        assert detail.date == T0

    async def test_order_history_per_side(self):
        """Test a sell-only request pages only sell orders."""
        exchange, venue = _zb({"/api/getOrders": [_order(type=0, status=2)]})

        details = await exchange.get_order_history(
            order.GetOrdersRequest(asset=Asset.SPOT, side=OrderSide.SELL, pairs=[BTC_USDT])
        )

        assert [query(r)["tradeType"] for r in venue.requests] == ["0"]
        assert details[0].status is OrderStatus.FILLED
        assert details[0].side is OrderSide.SELL

    async def test_order_history_requires_pairs(self):
        """Test order history needs a pair."""
        exchange, _ = _zb()

        with pytest.raises(OrderValidationError):
            await exchange.get_order_history(order.GetOrdersRequest(asset=Asset.SPOT))


class TestFundsAndFees:
    """Test withdrawals, limits and fees."""

    async def test_withdraw_uses_trade_password(self):
        """Test the safe password is sent with the withdrawal."""
        exchange, venue = _zb({"/api/withdraw": {"code": 1000, "message": "ok", "id": "w1"}})

        response = await exchange.withdraw_cryptocurrency_funds(
            withdraw.Request(
                currency=Code("BTC"),
                amount=Decimal("1"),
                trade_password="hunter2",
                crypto=withdraw.CryptoRequest(address="1abc", fee_amount=Decimal("0.001")),
            )
        )

        params = query(venue.last)
        assert params["safePwd"] == "hunter2"
        assert params["receiveAddr"] == "1abc"
        assert params["fees"] == "0.001"
        assert response.id == "w1"

    async def test_update_order_execution_limits(self):
        """Test scales become price and amount steps."""
        exchange, _ = _zb(
            {
                "/data/v1/markets": {
                    "btc_usdt": {"amountScale": 4, "priceScale": 2, "minAmount": "0.0001"}
                }
            }
        )

        await exchange.update_order_execution_limits(Asset.SPOT)

        limits = exchange.get_order_execution_limits(Asset.SPOT, BTC_USDT)
        assert limits.step_price == Decimal("0.01")
        assert limits.step_amount == Decimal("0.0001")
        assert limits.min_amount == Decimal("0.0001")

    async def test_fees(self):
        """Test trade and withdrawal fees."""
        exchange, _ = _zb()

        trade_fee = await exchange.get_fee(
            FeeBuilder(
                fee_type=FeeType.OFFLINE_TRADE_FEE,
                purchase_price=Decimal("100"),
                amount=Decimal("2"),
            )
        )
        withdraw_fee = await exchange.get_fee(
            FeeBuilder(fee_type=FeeType.CRYPTOCURRENCY_WITHDRAWAL_FEE, pair=Pair("LTC", "USDT"))
        )
        unknown_fee = await exchange.get_fee(
            FeeBuilder(fee_type=FeeType.CRYPTOCURRENCY_WITHDRAWAL_FEE, pair=Pair("XYZ", "USDT"))
        )

        assert trade_fee == Decimal("0.4")
        assert withdraw_fee == Decimal("0.005")
        assert unknown_fee == Decimal("0")

    def test_withdraw_permissions_text(self):
        """Test withdraw permissions are rendered as text."""
        exchange, _ = _zb()
        assert exchange.format_withdraw_permissions() == (
            "AUTO WITHDRAW CRYPTO & NO FIAT WITHDRAWAL"
        )
