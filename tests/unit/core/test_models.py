"""
Tests for the shared order, order book, kline, ticker and withdraw models.

These are the types every adapter returns, so their validation rules and
helpers are exercised here once rather than per venue.
"""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from irix.currency import Code, Pair
from irix.enums import Asset, OrderSide, OrderStatus, OrderType
from irix.errors import (
    KlineError,
    NotFoundError,
    OrderValidationError,
    ValidationError,
    WithdrawValidationError,
)
from irix.model import kline, order, orderbook, ticker, trade, withdraw

BTC_USD = Pair("BTC", "USD", "-")
T0 = datetime(2024, 1, 1, tzinfo=UTC)


class TestOrderRequests:
    """Test order request validation."""

    def _submit(self, **overrides):
        values = {
            "pair": BTC_USD,
            "asset": Asset.SPOT,
            "side": OrderSide.BUY,
            "type": OrderType.LIMIT,
            "price": Decimal("100"),
            "amount": Decimal("1"),
        }
        values.update(overrides)
        return order.Submit(**values)

    def test_valid_submit(self):
        """Test a complete limit order passes."""
        self._submit().validate_order()

    @pytest.mark.parametrize(
        "overrides",
        [
            {"pair": Pair()},
            {"asset": None},
            {"side": OrderSide.ANY},
            {"type": OrderType.STOP},
            {"amount": Decimal("0")},
            {"price": Decimal("0")},
        ],
    )
    def test_invalid_submit(self, overrides):
        """Test each missing requirement is rejected."""
        with pytest.raises(OrderValidationError):
            self._submit(**overrides).validate_order()

    def test_market_order_needs_no_price(self):
        """Test market orders skip the price check."""
        self._submit(type=OrderType.MARKET, price=Decimal("0")).validate_order()

    def test_extra_checks_run(self):
        """Test adapter supplied checks are applied."""

        def reject():
            raise OrderValidationError("venue says no")

        with pytest.raises(OrderValidationError, match="venue says no"):
            self._submit().validate_order(reject)

    def test_cancel_collects_check_errors(self):
        """Test cancel checks are reported together."""
        cancel = order.Cancel(pair=BTC_USD, asset=Asset.SPOT)

        with pytest.raises(OrderValidationError, match="ID not set"):
            cancel.validate_order(cancel.standard_cancel())

    def test_get_orders_request_requires_asset(self):
        """Test an order query without an asset is rejected."""
        with pytest.raises(OrderValidationError):
            order.GetOrdersRequest().validate_request()


class TestOrderFilters:
    """Test order filters and sorts."""

    def _orders(self):
        return [
            order.Detail(id="1", pair=BTC_USD, side=OrderSide.BUY, type=OrderType.LIMIT,
                         price=Decimal("3"), date=T0),
            order.Detail(id="2", pair=Pair("ETH", "USD"), side=OrderSide.SELL,
                         type=OrderType.MARKET, price=Decimal("1"), date=T0 + timedelta(days=2)),
            order.Detail(id="3", pair=Pair("USD", "BTC"), side=OrderSide.SELL,
                         type=OrderType.LIMIT, price=Decimal("2")),
        ]  # fmt: skip

    def test_filter_by_side_and_type(self):
        """Test side and type filters, with ANY keeping everything."""
        orders = self._orders()
        assert [o.id for o in order.filter_orders_by_side(orders, OrderSide.SELL)] == ["2", "3"]
        assert [o.id for o in order.filter_orders_by_type(orders, OrderType.LIMIT)] == ["1", "3"]
        assert len(order.filter_orders_by_side(orders, OrderSide.ANY)) == 3

    def test_filter_by_time_keeps_undated(self):
        """Test undated orders survive the time filter."""
        kept = order.filter_orders_by_time_range(self._orders(), T0, T0 + timedelta(days=1))
        assert [o.id for o in kept] == ["1", "3"]

    def test_filter_by_currencies_matches_reciprocal(self):
        """Test the currency filter accepts reciprocal pairs."""
        kept = order.filter_orders_by_currencies(self._orders(), [BTC_USD])
        assert [o.id for o in kept] == ["1", "3"]

    def test_sort_by_price(self):
        """Test sorting by price."""
        ordered = order.sort_orders_by_price(self._orders(), reverse=True)
        assert [o.id for o in ordered] == ["1", "3", "2"]

    def test_update_from_detail(self):
        """Test newer venue data merges into an existing detail."""
        detail = order.Detail(id="1", status=OrderStatus.NEW)
        newer = order.Detail(id="1", status=OrderStatus.FILLED, executed_amount=Decimal("1"))

        assert detail.update_from_detail(newer)
        assert detail.status is OrderStatus.FILLED
        assert detail.executed_amount == Decimal("1")
        assert detail.last_updated is not None
        assert not detail.update_from_detail(newer)


class TestExecutionLimits:
    """Test min/max execution limits."""

    def test_conforms(self):
        """Test limits reject out of bounds orders."""
        level = order.MinMaxLevel(
            pair=BTC_USD, min_amount=Decimal("0.1"), step_price=Decimal("0.5")
        )
        level.conforms(Decimal("10.5"), Decimal("1"), OrderType.LIMIT)
        with pytest.raises(OrderValidationError):
            level.conforms(Decimal("10.3"), Decimal("1"), OrderType.LIMIT)
        with pytest.raises(OrderValidationError):
            level.conforms(Decimal("10"), Decimal("0.01"), OrderType.LIMIT)

    def test_loaded_limits(self):
        """Test limits are looked up per asset and pair."""
        limits = order.ExecutionLimits()
        limits.load([order.MinMaxLevel(pair=BTC_USD, min_amount=Decimal("1"))])

        assert limits.get_limits(Asset.SPOT, BTC_USD).min_amount == Decimal("1")
        with pytest.raises(OrderValidationError):
            limits.check_limit(Asset.SPOT, BTC_USD, Decimal("1"), Decimal("0.5"), OrderType.LIMIT)


class TestOrderbook:
    """Test order book verification and storage."""

    def _book(self, **overrides):
        values = {
            "exchange": "Test",
            "pair": BTC_USD,
            "asset": Asset.SPOT,
            "bids": [orderbook.Item(price=Decimal("99"), amount=Decimal("1")),
                     orderbook.Item(price=Decimal("98"), amount=Decimal("2"))],
            "asks": [orderbook.Item(price=Decimal("101"), amount=Decimal("1")),
                     orderbook.Item(price=Decimal("102"), amount=Decimal("3"))],
        }  # fmt: skip
        values.update(overrides)
        return orderbook.Book(**values)

    def test_process_stores_book(self):
        """Test a valid book is stored and can be fetched."""
        book = self._book()
        book.process()

        stored = orderbook.get_orderbook("test", BTC_USD, Asset.SPOT)
        assert stored.best_bid == Decimal("99")
        assert stored.best_ask == Decimal("101")
        assert stored.total_asks_amount() == (Decimal("4"), Decimal("407"))

    def test_out_of_order_bids(self):
        """Test ascending bids are rejected."""
        book = self._book(bids=list(reversed(self._book().bids)))
        with pytest.raises(ValidationError, match="out of order"):
            book.verify()

    def test_crossed_book(self):
        """Test a bid above the best ask is rejected."""
        book = self._book(
            bids=[orderbook.Item(price=Decimal("105"), amount=Decimal("1"))]
        )
        with pytest.raises(ValidationError, match="crossed"):
            book.verify()

    def test_verification_bypass(self):
        """Test bypassed books are not verified."""
        book = self._book(bids=list(reversed(self._book().bids)), verification_bypass=True)
        book.verify()

    def test_missing_book(self):
        """Test fetching an unknown book raises NotFoundError."""
        with pytest.raises(NotFoundError):
            orderbook.get_orderbook("nobody", BTC_USD, Asset.SPOT)

    def test_mutable_book(self):
        """Test snapshot plus deltas renders a sorted book."""
        book = orderbook.MutableOrderBook("BTC-USD")
        book.apply_snapshot(
            [orderbook.Item(price=Decimal("99"), amount=Decimal("1"))],
            [orderbook.Item(price=Decimal("101"), amount=Decimal("1"))],
            sequence=5,
        )
        book.apply_update("bid", Decimal("100"), Decimal("2"))
        book.apply_update("ask", Decimal("101"), Decimal("0"))
        book.apply_update("ask", Decimal("103"), Decimal("1"))

        snapshot = book.to_book("Test", BTC_USD, Asset.SPOT)

        assert [item.price for item in snapshot.bids] == [Decimal("100"), Decimal("99")]
        assert [item.price for item in snapshot.asks] == [Decimal("103")]
        assert snapshot.last_update_id == 5


class TestTicker:
    """Test ticker storage."""

    def test_process_and_get(self):
        """Test a processed ticker is returned by get_ticker."""
        price = ticker.Price(
            exchange="Test", pair=BTC_USD, asset=Asset.SPOT,
            bid=Decimal("99"), ask=Decimal("101"), last=Decimal("100"),
        )  # fmt: skip
        ticker.process_ticker(price)

        stored = ticker.get_ticker("TEST", BTC_USD, Asset.SPOT)
        assert stored.mid_price == Decimal("100")
        assert stored.spread == Decimal("2")
        assert stored.last_updated is not None

    def test_process_requires_identity(self):
        """Test tickers without exchange or pair are rejected."""
        with pytest.raises(ValidationError):
            ticker.process_ticker(ticker.Price(pair=BTC_USD, asset=Asset.SPOT))
        with pytest.raises(ValidationError):
            ticker.process_ticker(ticker.Price(exchange="Test", asset=Asset.SPOT))


class TestKline:
    """Test kline intervals and candle helpers."""

    def test_interval_words(self):
        """Test interval names and short forms."""
        assert kline.Interval.ONE_MIN.word() == "onemin"
        assert kline.Interval.FOUR_HOUR.short() == "4h"
        assert kline.Interval.FIFTEEN_SECOND.short() == "15s"
        assert kline.Interval.ONE_HOUR.duration == timedelta(hours=1)

    def test_date_ranges_split_by_limit(self):
        """Test ranges hold at most `limit` candles each."""
        ranges = kline.calculate_candle_date_ranges(
            T0, T0 + timedelta(minutes=10), kline.Interval.ONE_MIN, 4
        )

        assert [len(r.intervals) for r in ranges] == [4, 4, 2]
        assert ranges[0].start == T0
        assert ranges[-1].end == T0 + timedelta(minutes=10)

    def test_date_ranges_without_limit(self):
        """Test a zero limit yields one range."""
        ranges = kline.calculate_candle_date_ranges(
            T0, T0 + timedelta(hours=2), kline.Interval.ONE_HOUR, 0
        )
        assert len(ranges) == 1

    def test_item_cleanup(self):
        """Test duplicates and out of range candles are dropped and sorted."""
        item = kline.Item(
            candles=[
                kline.Candle(time=T0 + timedelta(minutes=2)),
                kline.Candle(time=T0),
                kline.Candle(time=T0),
                kline.Candle(time=T0 + timedelta(minutes=5)),
            ]
        )
        item.remove_duplicates()
        item.remove_outside_range(T0, T0 + timedelta(minutes=5))
        item.sort_candles_by_timestamp()

        assert [c.time for c in item.candles] == [T0, T0 + timedelta(minutes=2)]

    def test_capabilities(self):
        """Test enabled intervals are looked up by word."""
        caps = kline.ExchangeCapabilities.with_intervals(kline.Interval.ONE_DAY, result_limit=10)
        assert caps.interval_enabled(kline.Interval.ONE_DAY)
        assert not caps.interval_enabled(kline.Interval.ONE_MIN)

    def test_create_kline_from_trades(self):
        """Test trades are bucketed into candles with gaps carried forward."""
        trades = [
            order.TradeHistory(price=Decimal("10"), amount=Decimal("1"), timestamp=T0),
            order.TradeHistory(price=Decimal("12"), amount=Decimal("2"),
                               timestamp=T0 + timedelta(seconds=30)),
            order.TradeHistory(price=Decimal("11"), amount=Decimal("1"),
                               timestamp=T0 + timedelta(minutes=2)),
        ]  # fmt: skip

        item = kline.create_kline(trades, kline.Interval.ONE_MIN, BTC_USD, Asset.SPOT, "Test")

        assert len(item.candles) == 3
        first = item.candles[0]
        assert (first.open, first.high, first.low, first.close) == (
            Decimal("10"), Decimal("12"), Decimal("10"), Decimal("12"),
        )  # fmt: skip
        assert first.volume == Decimal("3")
        assert item.candles[1].close == Decimal("12")

    def test_create_kline_rejects_sub_minute(self):
        """Test intervals under a minute are rejected."""
        with pytest.raises(KlineError):
            kline.create_kline([], kline.Interval.FIFTEEN_SECOND, BTC_USD, Asset.SPOT, "Test")


class TestTradesAndWithdrawals:
    """Test trade filtering and withdraw request validation."""

    def test_filter_trades_by_time(self):
        """Test trades outside the window are dropped."""
        trades = [
            trade.Data(price=Decimal("1"), amount=Decimal("1"), timestamp=T0),
            trade.Data(price=Decimal("1"), amount=Decimal("1"), timestamp=T0 + timedelta(days=2)),
        ]
        kept = trade.filter_trades_by_time(trades, T0, T0 + timedelta(days=1))
        assert len(kept) == 1

    def test_trade_buffer(self):
        """Test buffered trades are stamped and flushed."""
        buffer = trade.TradeBuffer()
        buffer.add("Test", trade.Data(price=Decimal("1"), amount=Decimal("1"), timestamp=T0))

        assert len(buffer) == 1
        flushed = buffer.flush()
        assert flushed[0].exchange == "Test"
        assert len(buffer) == 0

    def test_crypto_withdraw_validation(self):
        """Test all withdraw problems are reported together."""
        request = withdraw.Request(currency=Code("USD"), amount=Decimal("0"))

        with pytest.raises(WithdrawValidationError) as excinfo:
            request.validate_request()

        message = str(excinfo.value)
        assert "amount" in message
        assert "not a cryptocurrency" in message
        assert "address" in message

    def test_valid_crypto_withdraw(self):
        """Test a complete crypto withdrawal passes."""
        withdraw.Request(
            currency=Code("BTC"),
            amount=Decimal("1"),
            crypto=withdraw.CryptoRequest(address="bc1qaddress"),
        ).validate_request()
