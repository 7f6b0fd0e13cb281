"""ZB exchange adapter."""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from irix.adapters.zb import data
from irix.adapters.zb.client import MARKET_URL, TRADE_URL, ZBAPI
from irix.currency import Code, Pair, PairFormat
from irix.enums import URL, Asset, OrderSide, OrderStatus, OrderType, WithdrawPermission
from irix.errors import AssetError, KlineError, OrderValidationError
from irix.exchange import (
    Features,
    FeaturesEnabled,
    FeaturesSupported,
    ProtocolFeatures,
    WithdrawalHistory,
)
from irix.model import account, kline, order, orderbook, ticker, trade, withdraw

logger = logging.getLogger(__name__)

UNFINISHED_PAGE_SIZE = 10
ORDERS_PAGE_SIZE = 10

TICKER_FORMAT = PairFormat(uppercase=False, delimiter="")

KLINE_INTERVALS: dict[kline.Interval, str] = {
    kline.Interval.ONE_MIN: "1min",
    kline.Interval.THREE_MIN: "3min",
    kline.Interval.FIVE_MIN: "5min",
    kline.Interval.FIFTEEN_MIN: "15min",
    kline.Interval.THIRTY_MIN: "30min",
    kline.Interval.ONE_HOUR: "1hour",
    kline.Interval.TWO_HOUR: "2hour",
    kline.Interval.FOUR_HOUR: "4hour",
    kline.Interval.SIX_HOUR: "6hour",
    kline.Interval.TWELVE_HOUR: "12hour",
    kline.Interval.ONE_DAY: "1day",
    kline.Interval.THREE_DAY: "3day",
    kline.Interval.ONE_WEEK: "1week",
}

ORDER_STATUSES: dict[int, OrderStatus] = {
    data.STATUS_PENDING: OrderStatus.ACTIVE,
    data.STATUS_CANCELLED: OrderStatus.CANCELLED,
    data.STATUS_COMPLETED: OrderStatus.FILLED,
    data.STATUS_PARTIAL: OrderStatus.PARTIALLY_FILLED,
}


class ZB(ZBAPI):
    """ZB spot trading over REST."""

    def set_defaults(self) -> None:
        self.name = data.EXCHANGE
        self.enabled = True
        self.verbose = True
        self.api.credentials_validator.requires_key = True
        self.api.credentials_validator.requires_secret = True

        request_fmt = PairFormat(uppercase=False, delimiter="_")
        config_fmt = PairFormat(uppercase=True, delimiter="_")
        self.set_global_pair_format(request_fmt, config_fmt, Asset.SPOT)

        intervals = tuple(KLINE_INTERVALS)
        self.features = Features(
            supports=FeaturesSupported(
                rest=True,
                rest_capabilities=ProtocolFeatures(
                    ticker_batching=True,
                    ticker_fetching=True,
                    kline_fetching=True,
                    trade_fetching=True,
                    orderbook_fetching=True,
                    auto_pair_updates=True,
                    account_info=True,
                    get_order=True,
                    get_orders=True,
                    cancel_order=True,
                    cancel_orders=True,
                    submit_order=True,
                    crypto_deposit=True,
                    crypto_withdrawal=True,
                    withdrawal_history=True,
                    trade_fee=True,
                    crypto_withdrawal_fee=True,
                ),
                withdraw_permissions=WithdrawPermission.AUTO_WITHDRAW_CRYPTO
                | WithdrawPermission.NO_FIAT_WITHDRAWALS,
                kline=kline.ExchangeCapabilities.with_intervals(*intervals),
            ),
            enabled=FeaturesEnabled(
                auto_pair_updates=True,
                kline=kline.ExchangeCapabilities.with_intervals(*intervals, result_limit=1000),
            ),
        )
        self.requester = self.new_requester(self.rate_limiter())
        self.set_default_endpoints(
            {URL.REST_SPOT: MARKET_URL, URL.REST_SPOT_SUPPLEMENTARY: TRADE_URL}
        )

    # =========================================================================
    # MARKET DATA
    # =========================================================================

    async def fetch_tradable_pairs(self, asset: Asset) -> list[str]:
        if asset is not Asset.SPOT:
            raise AssetError(f"asset type of {asset.value} is not supported by {self.name}")
        return [symbol.upper() for symbol in await self.get_markets()]

    async def update_ticker(self, pair: Pair, asset: Asset) -> ticker.Price:
        """allTicker keys drop the delimiter, so pairs are matched on btcusdt style keys."""
        wanted = {TICKER_FORMAT.format(p): p for p in self.get_enabled_pairs(asset)}
        wanted.setdefault(TICKER_FORMAT.format(pair), pair)
        for symbol, item in (await self.get_tickers()).items():
            matched = wanted.get(symbol)
            if matched is None:
                continue
            ticker.process_ticker(
                ticker.Price(
                    pair=matched,
                    last=item.last,
                    high=item.high,
                    low=item.low,
                    bid=item.buy,
                    ask=item.sell,
                    volume=item.volume,
                    exchange=self.name,
                    asset=asset,
                )
            )
        return ticker.get_ticker(self.name, pair, asset)

    async def update_orderbook(self, pair: Pair, asset: Asset) -> orderbook.Book:
        raw = await self.get_orderbook(self.format_symbol(pair, asset))
        book = orderbook.Book(
            bids=[orderbook.Item(price=level[0], amount=level[1]) for level in raw.bids],
            asks=[orderbook.Item(price=level[0], amount=level[1]) for level in raw.asks],
            pair=pair,
            asset=asset,
            exchange=self.name,
            verification_bypass=not self.can_verify_orderbook,
        )
        book.process()
        return orderbook.get_orderbook(self.name, pair, asset)

    async def get_recent_trades(self, pair: Pair, asset: Asset) -> list[trade.Data]:
        result = [
            trade.Data(
                tid=str(item.tid),
                exchange=self.name,
                pair=pair,
                asset=asset,
                side=OrderSide.BUY if item.type == "buy" else OrderSide.SELL,
                price=item.price,
                amount=item.amount,
                timestamp=item.date,
            )
            for item in await self.get_trades(self.format_symbol(pair, asset))
        ]
        self.add_trades_to_buffer(*result)
        return sorted(result, key=lambda t: t.timestamp)

    def format_exchange_kline_interval(self, interval: kline.Interval) -> str:
        return KLINE_INTERVALS.get(interval, "")

    def validate_candles_request(
        self, pair: Pair, asset: Asset, start: datetime, end: datetime, interval: kline.Interval
    ) -> kline.Item:
        """
        Check the range, pair and interval and return an empty item to fill.

        Raises:
            KlineError: On an inverted range or an unserviceable request
        """
        if end <= start:
            raise KlineError(f"invalid time range supplied. Start: {start} End {end}")
        self.validate_kline(pair, asset, interval)
        return kline.Item(exchange=self.name, pair=pair, asset=asset, interval=interval)

    async def get_historic_candles(
        self, pair: Pair, asset: Asset, start: datetime, end: datetime, interval: kline.Interval
    ) -> kline.Item:
        item = self.validate_candles_request(pair, asset, start, end, interval)
        response = await self.get_spot_kline(
            self.format_symbol(pair, asset),
            self.format_exchange_kline_interval(interval),
            self.features.enabled.kline.result_limit,
            int(start.timestamp() * 1000),
        )
        item.candles = [
            kline.Candle(
                time=row.time,
                open=row.open,
                high=row.high,
                low=row.low,
                close=row.close,
                volume=row.volume,
            )
            for row in response.data
        ]
        item.remove_outside_range(start, end)
        item.sort_candles_by_timestamp()
        return item

    async def get_historic_candles_extended(
        self, pair: Pair, asset: Asset, start: datetime, end: datetime, interval: kline.Interval
    ) -> kline.Item:
        item = self.validate_candles_request(pair, asset, start, end, interval)
        ranges = kline.calculate_candle_date_ranges(
            start, end, interval, self.features.enabled.kline.result_limit
        )
        for window in ranges:
            partial = await self.get_historic_candles(pair, asset, window.start, window.end, interval)
            item.candles.extend(partial.candles)
        item.remove_duplicates()
        item.remove_outside_range(start, end)
        item.sort_candles_by_timestamp()
        return item

    # =========================================================================
    # ACCOUNT
    # =========================================================================

    async def update_account_info(self, asset: Asset) -> account.Holdings:
        info = await self.get_account_information()
        balances = [
            account.Balance(
                currency=Code(coin.en_name or coin.key.upper()),
                total_value=coin.available + coin.freez,
                hold=coin.freez,
            )
            for coin in info.coins
        ]
        sub = account.SubAccount(asset=asset, currencies=balances)
        holdings = account.Holdings(exchange=self.name, accounts=[sub])
        account.process_holdings(holdings, asset)
        return holdings

    async def get_deposit_address(self, code: Code, account_id: str = "") -> str:
        return (await self.get_crypto_address(str(code.lower()))).key

    async def get_withdrawals_history(self, code: Code) -> list[WithdrawalHistory]:
        return [
            WithdrawalHistory(
                status=str(item.status),
                transfer_id=item.id,
                timestamp=item.submit_time,
                currency=str(code.upper()),
                amount=item.amount,
                fee=item.fees,
                transfer_type="withdrawal",
                crypto_to_address=item.to_address,
            )
            for item in await self.get_withdraw_records(str(code.lower()))
        ]

    # =========================================================================
    # ORDERS
    # =========================================================================

    async def submit_order(self, submit: order.Submit) -> order.SubmitResponse:
        """
        Raises:
            OrderValidationError: For anything but a limit order
        """
        submit.validate_order()
        if submit.type is not OrderType.LIMIT:
            raise OrderValidationError(f"{self.name} only supports limit orders")
        trade_type = data.TRADE_BUY if submit.side.is_long else data.TRADE_SELL
        order_id = await self.spot_new_order(
            self.format_symbol(submit.pair, Asset.SPOT), trade_type, submit.amount, submit.price
        )
        return order.SubmitResponse(is_order_placed=True, order_id=order_id)

    async def cancel_order(self, cancel: order.Cancel) -> None:
        cancel.validate_order(cancel.standard_cancel())
        await self.cancel_existing_order(cancel.id, self.format_symbol(cancel.pair, cancel.asset))

    async def cancel_all_orders(self, cancel: order.Cancel) -> order.CancelAllResponse:
        """Cancel the unfinished orders of cancel.pair one by one."""
        cancel.validate_order()
        symbol = self.format_symbol(cancel.pair, Asset.SPOT)
        response = order.CancelAllResponse()
        for item in await self._unfinished_orders(symbol):
            await self.cancel_existing_order(item.id, symbol)
            response.status[item.id] = "Cancelled"
        response.count = len(response.status)
        return response

    async def _unfinished_orders(self, symbol: str) -> list[data.Order]:
        orders: list[data.Order] = []
        page = 1
        while True:
            batch = await self.get_unfinished_orders(symbol, page, UNFINISHED_PAGE_SIZE)
            orders.extend(batch)
            if len(batch) < UNFINISHED_PAGE_SIZE:
                return orders
            page += 1

    def _to_detail(self, raw: data.Order, pair: Pair) -> order.Detail:
        status = ORDER_STATUSES.get(raw.status, OrderStatus.UNKNOWN)
        if status is OrderStatus.UNKNOWN:
            logger.error(f"{self.name} unexpected status {raw.status} on order {raw.id}")
        return order.Detail(
            exchange=self.name,
            id=raw.id,
            pair=pair,
            side=OrderSide.BUY if raw.type == data.TRADE_BUY else OrderSide.SELL,
            type=OrderType.LIMIT,
            status=status,
            price=raw.price,
            amount=raw.total_amount,
            executed_amount=raw.trade_amount,
            remaining_amount=max(raw.total_amount - raw.trade_amount, Decimal("0")),
            average_executed_price=raw.trade_price,
            fee=raw.fees,
            cost=raw.trade_money,
            date=raw.trade_date,
        )

    async def get_order_info(self, order_id: str, pair: Pair, asset: Asset) -> order.Detail:
        return self._to_detail(await self.get_order(order_id, self.format_symbol(pair, asset)), pair)

    async def get_active_orders(self, request: order.GetOrdersRequest) -> list[order.Detail]:
        request.validate_request()
        pairs = request.pairs or list(self.get_enabled_pairs(Asset.SPOT))
        details: list[order.Detail] = []
        for pair in pairs:
            for item in await self._unfinished_orders(self.format_symbol(pair, Asset.SPOT)):
                details.append(self._to_detail(item, pair))
        return self._filter(details, request)

    async def get_order_history(self, request: order.GetOrdersRequest) -> list[order.Detail]:
        """
        Orders of every side requested, paged per pair.

        Raises:
            OrderValidationError: Without at least one pair
        """
        request.validate_request()
        if not request.pairs:
            raise OrderValidationError(f"{self.name} order history requires at least one pair")
        if request.side is OrderSide.BUY:
            trade_types = [data.TRADE_BUY]
        elif request.side is OrderSide.SELL:
            trade_types = [data.TRADE_SELL]
        else:
            trade_types = [data.TRADE_BUY, data.TRADE_SELL]
        details: list[order.Detail] = []
        for pair in request.pairs:
            symbol = self.format_symbol(pair, Asset.SPOT)
            for trade_type in trade_types:
                page = 1
                while True:
                    batch = await self.get_orders(symbol, page, trade_type)
                    details.extend(self._to_detail(item, pair) for item in batch)
                    if len(batch) < ORDERS_PAGE_SIZE:
                        break
                    page += 1
        return self._filter(details, request)

    @staticmethod
    def _filter(details: list[order.Detail], request: order.GetOrdersRequest) -> list[order.Detail]:
        details = order.filter_orders_by_type(details, request.type)
        details = order.filter_orders_by_time_range(details, request.start, request.end)
        return order.filter_orders_by_side(details, request.side)

    # =========================================================================
    # WITHDRAWALS
    # =========================================================================

    async def withdraw_cryptocurrency_funds(
        self, request: withdraw.Request
    ) -> withdraw.ExchangeResponse:
        """The safe password travels in request.trade_password."""
        request.validate_request()
        withdraw_id = await self.withdraw(
            str(request.currency.lower()),
            request.crypto.address,
            request.trade_password,
            request.amount,
            request.crypto.fee_amount,
        )
        return withdraw.ExchangeResponse(name=self.name, id=withdraw_id)

    async def update_order_execution_limits(self, asset: Asset) -> None:
        if asset is not Asset.SPOT:
            raise AssetError(f"asset type of {asset.value} is not supported by {self.name}")
        levels = [
            order.MinMaxLevel(
                pair=Pair.from_delimited(symbol.upper(), "_"),
                asset=asset,
                min_amount=market.min_amount,
                min_notional=market.min_size,
                step_price=Decimal(1).scaleb(-market.price_scale),
                step_amount=Decimal(1).scaleb(-market.amount_scale),
            )
            for symbol, market in (await self.get_markets()).items()
        ]
        self.execution_limits.load(levels)
