"""Tests for the BTSE adapter against a mock REST venue."""

import hashlib
import hmac
from datetime import UTC, datetime
from decimal import Decimal

import pytest

from irix.adapters.btse import BTSE
from irix.adapters.btse.client import (
    international_bank_deposit_fee,
    international_bank_withdrawal_fee,
)
from irix.adapters.btse.exchange import match_type, order_int_to_type
from irix.currency import Code, Pair
from irix.enums import Asset, FeeType, OrderSide, OrderStatus, OrderType
from irix.errors import (
    KlineError,
    NotFoundError,
    NotYetImplementedError,
    OrderValidationError,
    ValidationError,
)
from irix.exchange import FeeBuilder
from irix.model import kline, order, withdraw
from tests.unit.helpers import MockVenue, body, build_exchange, query

BTC_USD = Pair("BTC", "USD")
T0 = datetime(2024, 1, 1, tzinfo=UTC)
T0_MS = int(T0.timestamp() * 1000)
SPOT = "/spot/api/v3.2/"


def _btse(routes: dict | None = None) -> tuple[BTSE, MockVenue]:
    venue = MockVenue(routes)
    exchange = build_exchange(BTSE, venue, pairs=["BTC-USD"])
    return exchange, venue


def _summary(symbol: str, **overrides):
    base, quote = symbol.split("-")
    raw = {
        "symbol": symbol,
        "last": 40000,
        "lowestAsk": 40001,
        "highestBid": 40000,
        "volume": 12.5,
        "high24Hr": 41000,
        "low24Hr": 39000,
        "base": base,
        "quote": quote,
        "active": True,
        "minValidPrice": 0.5,
        "minPriceIncrement": 0.5,
        "minOrderSize": 0.001,
        "maxOrderSize": 2000,
        "minSizeIncrement": 0.001,
    }
    raw.update(overrides)
    return raw


def _open_order(**overrides):
    raw = {
        "orderID": "abc-1",
        "symbol": "BTC-USD",
        "side": "BUY",
        "price": 40000,
        "size": 2,
        "filledSize": 0.5,
        "orderType": 76,
        "orderState": "ORDER_PARTIALLY_TRANSACTED",
        "timestamp": T0_MS,
    }
    raw.update(overrides)
    return raw


class TestHelpers:
    """Test module level helpers."""

    def test_order_int_to_type(self):
        """Test the numeric order type codes."""
        assert order_int_to_type(76) is OrderType.LIMIT
        assert order_int_to_type(77) is OrderType.MARKET
        assert order_int_to_type(80) is OrderType.UNKNOWN

    def test_match_type(self):
        """Test ANY matches every code."""
        assert match_type(77, OrderType.ANY)
        assert match_type(76, OrderType.LIMIT)
        assert not match_type(76, OrderType.MARKET)

    def test_bank_fees(self):
        """Test deposit and withdrawal floors."""
        assert international_bank_deposit_fee(Decimal("100")) == Decimal("3")
        assert international_bank_deposit_fee(Decimal("1000")) == Decimal("0")
        assert international_bank_withdrawal_fee(Decimal("1000")) == Decimal("25")
        assert international_bank_withdrawal_fee(Decimal("100000")) == Decimal("100")

    def test_kline_interval_minutes(self):
        """Test intervals are rendered in whole minutes."""
        exchange, _ = _btse()
        assert exchange.format_exchange_kline_interval(kline.Interval.ONE_HOUR) == "60"
        assert exchange.format_exchange_kline_interval(kline.Interval.ONE_DAY) == "1440"


class TestMarketData:
    """Test public market data."""

    async def test_fetch_tradable_pairs_active_only(self):
        """Test inactive markets are dropped."""
        exchange, venue = _btse(
            {
                SPOT + "market_summary": [
                    _summary("BTC-USD"),
                    _summary("ETH-USD", active=False),
                ]
            }
        )

        assert await exchange.fetch_tradable_pairs(Asset.SPOT) == ["BTC-USD"]
        assert venue.last.url.path == "/spot/api/v3.2/market_summary"

    async def test_update_ticker(self):
        """Test the summary feeds the ticker cache."""
        exchange, _ = _btse({SPOT + "market_summary": [_summary("BTC-USD")]})

        price = await exchange.update_ticker(BTC_USD, Asset.SPOT)

        assert price.last == Decimal("40000")
        assert price.ask == Decimal("40001")
        assert price.bid == Decimal("40000")
        assert price.volume == Decimal("12.5")

    async def test_update_orderbook(self):
        """Test empty levels are dropped and asks reversed."""
        exchange, venue = _btse(
            {
                SPOT + "orderbook": {
                    "buyQuote": [{"price": 40000, "size": 1}, {"price": 0, "size": 0}],
                    "sellQuote": [{"price": 40002, "size": 2}, {"price": 40001, "size": 3}],
                    "symbol": "BTC-USD",
                }
            }
        )

        book = await exchange.update_orderbook(BTC_USD, Asset.SPOT)

        assert query(venue.last) == {"symbol": "BTC-USD"}
        assert len(book.bids) == 1
        assert [item.price for item in book.asks] == [Decimal("40001"), Decimal("40002")]

    async def test_recent_trades(self):
        """Test serial ids and sides."""
        exchange, venue = _btse(
            {
                SPOT + "trades": [
                    {"serialId": 2, "price": 40001, "size": 0.1, "side": "SELL", "timestamp": T0_MS + 1000},
                    {"serialId": 1, "price": 40000, "size": 0.2, "side": "BUY", "timestamp": T0_MS},
                ]
            }
        )

        trades = await exchange.get_recent_trades(BTC_USD, Asset.SPOT)

        assert query(venue.last) == {"symbol": "BTC-USD", "count": "500"}
        assert [t.tid for t in trades] == ["1", "2"]
        assert trades[0].timestamp == T0
        assert trades[1].side is OrderSide.SELL

    async def test_trades_inverted_range(self):
        """Test an inverted time range is refused."""
        exchange, venue = _btse()

        with pytest.raises(ValidationError):
            await exchange.get_trades("BTC-USD", start=T0, end=datetime(2023, 1, 1, tzinfo=UTC))
        assert venue.requests == []

    async def test_historic_candles(self):
        """Test candles use second timestamps and minute resolution."""
        exchange, venue = _btse(
            {
                SPOT + "ohlcv": [
                    [int(T0.timestamp()) + 3600, 2, 3, 1, 2.5, 10],
                    [int(T0.timestamp()), 1, 2, 0.5, 1.5, 20],
                ]
            }
        )

        item = await exchange.get_historic_candles(
            BTC_USD,
            Asset.SPOT,
            T0,
            datetime(2024, 1, 1, 2, tzinfo=UTC),
            kline.Interval.ONE_HOUR,
        )

        params = query(venue.last)
        assert params["resolution"] == "60"
        assert params["start"] == str(int(T0.timestamp()))
        assert item.candles[0].time == T0
        assert item.candles[0].open == Decimal("1")
        assert item.candles[1].close == Decimal("2.5")

    async def test_extended_candles_over_limit(self):
        """Test ranges beyond one request are refused."""
        exchange, venue = _btse()

        with pytest.raises(KlineError):
            await exchange.get_historic_candles_extended(
                BTC_USD,
                Asset.SPOT,
                T0,
                datetime(2024, 1, 2, tzinfo=UTC),
                kline.Interval.ONE_MIN,
            )
        assert venue.requests == []


class TestSigning:
    """Test authenticated request signing."""

    async def test_signed_wallet_request(self):
        """Test HMAC-SHA384 over the versioned path and nonce."""
        exchange, venue = _btse(
            {
                SPOT + "user/wallet": [
                    {"currency": "BTC", "total": 2, "available": 1.5},
                    {"currency": "USD", "total": 100, "available": 100},
                ]
            }
        )

        holdings = await exchange.update_account_info(Asset.SPOT)

        request = venue.last
        nonce = request.headers["request-nonce"]
        expected = hmac.new(
            b"secret", f"/api/v3.2/user/wallet{nonce}".encode(), hashlib.sha384
        ).hexdigest()
        assert request.headers["request-api"] == "key"
        assert request.headers["request-sign"] == expected
        btc = holdings.accounts[0].currencies[0]
        assert btc.currency == Code("BTC")
        assert btc.hold == Decimal("0.5")

    def test_sign_includes_body(self):
        """Test the body follows the nonce."""
        exchange, _ = _btse()
        expected = hmac.new(b"secret", b"/api/v3.2/order1{}", hashlib.sha384).hexdigest()
        assert exchange.sign("/api/v3.2/order", "1", "{}") == expected


class TestOrders:
    """Test order management."""

    async def test_submit_limit(self):
        """Test the order body."""
        exchange, venue = _btse(
            {"POST " + SPOT + "order": [{"status": 2, "orderID": "abc-1", "symbol": "BTC-USD"}]}
        )

        response = await exchange.submit_order(
            order.Submit(
                pair=BTC_USD,
                asset=Asset.SPOT,
                side=OrderSide.BID,
                type=OrderType.LIMIT,
                price=Decimal("40000"),
                amount=Decimal("0.5"),
                client_order_id="mine",
            )
        )

        sent = body(venue.last)
        assert sent["symbol"] == "BTC-USD"
        assert sent["side"] == "BUY"
        assert sent["type"] == "LIMIT"
        assert sent["size"] == 0.5
        assert sent["price"] == 40000
        assert sent["time_in_force"] == "GTC"
        assert sent["clOrderID"] == "mine"
        assert response.order_id == "abc-1"
        assert response.fully_matched is False

    async def test_submit_checks_limits(self):
        """Test loaded size limits reject small orders before sending."""
        exchange, venue = _btse({SPOT + "market_summary": [_summary("BTC-USD")]})
        await exchange.update_order_execution_limits(Asset.SPOT)

        with pytest.raises(OrderValidationError, match="below minimum"):
            await exchange.submit_order(
                order.Submit(
                    pair=BTC_USD,
                    asset=Asset.SPOT,
                    side=OrderSide.BUY,
                    type=OrderType.LIMIT,
                    price=Decimal("40000"),
                    amount=Decimal("0.0001"),
                )
            )
        assert venue.paths() == ["/spot/api/v3.2/market_summary"]

    async def test_cancel_order(self):
        """Test cancels send order id and symbol as query values."""
        exchange, venue = _btse({"DELETE " + SPOT + "order": [{"status": 6, "orderID": "abc-1"}]})

        await exchange.cancel_order(order.Cancel(id="abc-1", pair=BTC_USD, asset=Asset.SPOT))

        assert query(venue.last) == {"orderID": "abc-1", "symbol": "BTC-USD"}

    async def test_cancel_batch_not_implemented(self):
        """Test batch cancels are not offered."""
        exchange, _ = _btse()

        with pytest.raises(NotYetImplementedError):
            await exchange.cancel_batch_orders([])

    async def test_cancel_all_counts_cancelled(self):
        """Test only cancelled results are counted."""
        exchange, venue = _btse(
            {
                "DELETE " + SPOT + "order": [
                    {"status": 6, "orderID": "1"},
                    {"status": 6, "orderID": "2"},
                    {"status": 8, "orderID": "3"},
                ]
            }
        )

        response = await exchange.cancel_all_orders(order.Cancel(pair=BTC_USD, asset=Asset.SPOT))

        assert query(venue.last) == {"symbol": "BTC-USD"}
        assert response.count == 2
        assert response.status == {"1": "CANCELLED", "2": "CANCELLED"}

    async def test_get_order_info_with_fills(self):
        """Test the order is matched by id and its fills attached."""
        exchange, _ = _btse(
            {
                SPOT + "user/open_orders": [_open_order()],
                SPOT + "user/trade_history": [
                    {
                        "tradeId": "t1",
                        "orderId": "abc-1",
                        "side": "BUY",
                        "price": 40000,
                        "size": 0.5,
                        "feeAmount": 0.02,
                        "timestamp": T0_MS,
                    }
                ],
            }
        )

        detail = await exchange.get_order_info("abc-1", BTC_USD, Asset.SPOT)

        assert detail.pair == BTC_USD
        assert detail.status is OrderStatus.PARTIALLY_FILLED
        assert detail.type is OrderType.LIMIT
        assert detail.remaining_amount == Decimal("1.5")
        assert detail.date == T0
        assert [t.tid for t in detail.trades] == ["t1"]
        assert detail.trades[0].fee == Decimal("0.02")

    async def test_get_order_info_missing(self):
        """Test an unknown order raises."""
        exchange, _ = _btse({SPOT + "user/open_orders": [_open_order(orderID="other")]})

        with pytest.raises(NotFoundError):
            await exchange.get_order_info("abc-1", BTC_USD, Asset.SPOT)

    async def test_active_orders_require_pairs(self):
        """Test active orders need at least one pair."""
        exchange, _ = _btse()

        with pytest.raises(OrderValidationError):
            await exchange.get_active_orders(order.GetOrdersRequest(asset=Asset.SPOT))

    async def test_active_orders_filtered(self):
        """Test side filtering across fetched orders."""
        exchange, _ = _btse(
            {
                SPOT + "user/open_orders": [
                    _open_order(),
                    _open_order(orderID="abc-2", side="SELL"),
                ],
                SPOT + "user/trade_history": [],
            }
        )

        details = await exchange.get_active_orders(
            order.GetOrdersRequest(asset=Asset.SPOT, pairs=[BTC_USD], side=OrderSide.SELL)
        )

        assert [d.id for d in details] == ["abc-2"]

    async def test_order_history_by_type(self):
        """Test history keeps orders of the requested type."""
        exchange, _ = _btse(
            {
                SPOT + "user/open_orders": [
                    _open_order(),
                    _open_order(orderID="abc-2", orderType=77),
                ]
            }
        )

        details = await exchange.get_order_history(
            order.GetOrdersRequest(asset=Asset.SPOT, type=OrderType.MARKET)
        )

        assert [d.id for d in details] == ["abc-2"]


class TestFundsAndFees:
    """Test deposits, withdrawals and fees."""

    async def test_deposit_address_existing(self):
        """Test an existing address is returned without creating one."""
        exchange, venue = _btse({SPOT + "user/wallet/address": [{"address": "1abc", "created": 1}]})

        assert await exchange.get_deposit_address(Code("btc")) == "1abc"
        assert query(venue.last) == {"currency": "BTC"}
        assert len(venue.requests) == 1

    async def test_deposit_address_created(self):
        """Test an address is created when none exists."""
        exchange, venue = _btse(
            {
                "GET " + SPOT + "user/wallet/address": [],
                "POST " + SPOT + "user/wallet/address": {"address": "1new", "created": 2},
            }
        )

        assert await exchange.get_deposit_address(Code("BTC")) == "1new"
        assert body(venue.last) == {"currency": "BTC"}

    async def test_withdraw(self):
        """Test the amount is sent with eight decimals."""
        exchange, venue = _btse({"POST " + SPOT + "user/wallet/withdraw": {"withdraw_id": "w1"}})

        response = await exchange.withdraw_cryptocurrency_funds(
            withdraw.Request(
                currency=Code("XRP"),
                amount=Decimal("10"),
                crypto=withdraw.CryptoRequest(address="rabc", address_tag="123"),
            )
        )

        assert body(venue.last) == {
            "currency": "XRP",
            "address": "rabc",
            "tag": "123",
            "amount": "10.00000000",
        }
        assert response.id == "w1"

    async def test_withdrawals_history_not_implemented(self):
        """Test withdrawal history is not offered."""
        exchange, _ = _btse()

        with pytest.raises(NotYetImplementedError):
            await exchange.get_withdrawals_history(Code("BTC"))

    async def test_execution_limits(self):
        """Test bounds are loaded from the market summary."""
        exchange, _ = _btse({SPOT + "market_summary": [_summary("BTC-USD")]})

        await exchange.update_order_execution_limits(Asset.SPOT)

        limits = exchange.get_order_execution_limits(Asset.SPOT, BTC_USD)
        assert limits.min_amount == Decimal("0.001")
        assert limits.max_amount == Decimal("2000")
        assert limits.step_price == Decimal("0.5")

    async def test_trade_fee_from_account(self):
        """Test the account rate for the symbol replaces the default."""
        exchange, venue = _btse(
            {SPOT + "user/fees": [{"symbol": "BTC-USD", "makerFee": 0.0002, "takerFee": 0.0006}]}
        )

        fee = await exchange.get_fee(
            FeeBuilder(pair=BTC_USD, purchase_price=Decimal("1000"), amount=Decimal("1"))
        )

        assert query(venue.last) == {"symbol": "BTC-USD"}
        assert fee == Decimal("0.6")

    async def test_trade_fee_default_rate(self):
        """Test the default maker rate applies without a match."""
        exchange, _ = _btse({SPOT + "user/fees": []})

        fee = await exchange.get_fee(
            FeeBuilder(
                pair=BTC_USD, is_maker=True, purchase_price=Decimal("1000"), amount=Decimal("1")
            )
        )

        assert fee == Decimal("0.5")

    async def test_withdrawal_fee_table(self):
        """Test the static withdrawal fee table."""
        exchange, venue = _btse()

        fee = await exchange.get_fee(
            FeeBuilder(fee_type=FeeType.CRYPTOCURRENCY_WITHDRAWAL_FEE, pair=BTC_USD)
        )

        assert fee == Decimal("0.0005")
        assert venue.requests == []
