"""LBank exchange adapter."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from decimal import Decimal

from irix.adapters.lbank import data
from irix.adapters.lbank.client import API_URL, MAX_CANCEL_IDS, LbankAPI
from irix.currency import Code, Pair, PairFormat
from irix.enums import URL, Asset, FeeType, OrderSide, OrderStatus, OrderType, WithdrawPermission
from irix.errors import AssetError, IrixError, NotFoundError, NotYetImplementedError, OrderValidationError
from irix.exchange import (
    FeeBuilder,
    Features,
    FeaturesEnabled,
    FeaturesSupported,
    ProtocolFeatures,
    WithdrawalHistory,
)
from irix.model import account, kline, order, orderbook, ticker, trade, withdraw

logger = logging.getLogger(__name__)

HISTORIC_TRADES_LIMIT = 600
DEPTH_SIZE = 60

KLINE_INTERVALS: dict[kline.Interval, str] = {
    kline.Interval.ONE_MIN: "minute1",
    kline.Interval.FIVE_MIN: "minute5",
    kline.Interval.FIFTEEN_MIN: "minute15",
    kline.Interval.THIRTY_MIN: "minute30",
    kline.Interval.ONE_HOUR: "hour1",
    kline.Interval.FOUR_HOUR: "hour4",
    kline.Interval.EIGHT_HOUR: "hour8",
    kline.Interval.TWELVE_HOUR: "hour12",
    kline.Interval.ONE_DAY: "day1",
    kline.Interval.ONE_WEEK: "week1",
}

ORDER_STATUSES: dict[int, OrderStatus] = {
    data.STATUS_CANCELLED: OrderStatus.CANCELLED,
    data.STATUS_ON_TRADING: OrderStatus.ACTIVE,
    data.STATUS_FILLED_PARTIALLY: OrderStatus.PARTIALLY_FILLED,
    data.STATUS_FILLED_TOTALLY: OrderStatus.FILLED,
    data.STATUS_CANCELLING: OrderStatus.PENDING_CANCEL,
}


def parse_order_type(raw: str) -> tuple[OrderSide, OrderType]:
    """Split "buy", "sell_market" and friends into side and type."""
    side, _, kind = raw.lower().partition("_")
    order_side = OrderSide.BUY if side == data.BUY else OrderSide.SELL
    return order_side, OrderType.MARKET if kind == "market" else OrderType.LIMIT


class Lbank(LbankAPI):
    """LBank spot trading over REST."""

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
                    submit_order=True,
                    withdrawal_history=True,
                    user_trade_history=True,
                    crypto_withdrawal=True,
                    trade_fee=True,
                    crypto_withdrawal_fee=True,
                ),
                withdraw_permissions=WithdrawPermission.AUTO_WITHDRAW_CRYPTO_WITH_API_PERMISSION
                | WithdrawPermission.NO_FIAT_WITHDRAWALS,
                kline=kline.ExchangeCapabilities.with_intervals(*intervals),
            ),
            enabled=FeaturesEnabled(
                auto_pair_updates=True,
                kline=kline.ExchangeCapabilities.with_intervals(*intervals, result_limit=2000),
            ),
        )
        self.requester = self.new_requester(self.rate_limiter())
        self.set_default_endpoints({URL.REST_SPOT: API_URL})

    # =========================================================================
    # MARKET DATA
    # =========================================================================

    async def fetch_tradable_pairs(self, asset: Asset) -> list[str]:
        if asset is not Asset.SPOT:
            raise AssetError(f"asset type of {asset.value} is not supported by {self.name}")
        return [symbol.upper() for symbol in await self.get_currency_pairs()]

    async def update_ticker(self, pair: Pair, asset: Asset) -> ticker.Price:
        """Refresh every enabled pair from one symbol=all request."""
        wanted = {self.format_symbol(p, asset): p for p in self.get_enabled_pairs(asset)}
        wanted.setdefault(self.format_symbol(pair, asset), pair)
        for item in await self.get_tickers():
            matched = wanted.get(item.symbol)
            if matched is None:
                continue
            ticker.process_ticker(
                ticker.Price(
                    pair=matched,
                    last=item.ticker.latest,
                    high=item.ticker.high,
                    low=item.ticker.low,
                    volume=item.ticker.volume,
                    quote_volume=item.ticker.turnover,
                    last_updated=item.timestamp,
                    exchange=self.name,
                    asset=asset,
                )
            )
        return ticker.get_ticker(self.name, pair, asset)

    async def update_orderbook(self, pair: Pair, asset: Asset) -> orderbook.Book:
        raw = await self.get_market_depths(self.format_symbol(pair, asset), DEPTH_SIZE, 1)
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
        now = datetime.now(UTC)
        return await self.get_historic_trades(pair, asset, now - timedelta(hours=1), now)

    async def get_historic_trades(
        self, pair: Pair, asset: Asset, start: datetime, end: datetime
    ) -> list[trade.Data]:
        """
        Walk forward from start in pages until a short page or end.

        Raises:
            IrixError: On an inverted range or an end in the future
        """
        if end > datetime.now(UTC) or end < start:
            raise IrixError(f"invalid time range supplied. Start: {start} End {end}")
        symbol = self.format_symbol(pair, asset)
        result: list[trade.Data] = []
        since = start
        while True:
            batch = await self.get_trades(
                symbol, HISTORIC_TRADES_LIMIT, int(since.timestamp() * 1000)
            )
            done = len(batch) != HISTORIC_TRADES_LIMIT
            for item in batch:
                if item.date_ms < start or item.date_ms > end:
                    done = True
                    break
                result.append(
                    trade.Data(
                        tid=item.tid,
                        exchange=self.name,
                        pair=pair,
                        asset=asset,
                        side=OrderSide.SELL if "sell" in item.type else OrderSide.BUY,
                        price=item.price,
                        amount=item.amount,
                        timestamp=item.date_ms,
                    )
                )
            if done or not batch:
                break
            if batch[-1].date_ms == since:
                break
            since = batch[-1].date_ms
        self.add_trades_to_buffer(*result)
        result.sort(key=lambda t: t.timestamp)
        return trade.filter_trades_by_time(result, start, end)

    def format_exchange_kline_interval(self, interval: kline.Interval) -> str:
        return KLINE_INTERVALS.get(interval, "")

    async def get_historic_candles(
        self, pair: Pair, asset: Asset, start: datetime, end: datetime, interval: kline.Interval
    ) -> kline.Item:
        self.validate_kline(pair, asset, interval)
        rows = await self.get_klines(
            self.format_symbol(pair, asset),
            self.features.enabled.kline.result_limit,
            self.format_exchange_kline_interval(interval),
            int(start.timestamp()),
        )
        item = kline.Item(
            exchange=self.name,
            pair=pair,
            asset=asset,
            interval=interval,
            candles=[
                kline.Candle(
                    time=row.time,
                    open=row.open,
                    high=row.high,
                    low=row.low,
                    close=row.close,
                    volume=row.volume,
                )
                for row in rows
            ],
        )
        item.sort_candles_by_timestamp()
        return item

    async def get_historic_candles_extended(
        self, pair: Pair, asset: Asset, start: datetime, end: datetime, interval: kline.Interval
    ) -> kline.Item:
        self.validate_kline(pair, asset, interval)
        item = kline.Item(exchange=self.name, pair=pair, asset=asset, interval=interval)
        ranges = kline.calculate_candle_date_ranges(
            start, end, interval, self.features.enabled.kline.result_limit
        )
        for window in ranges:
            partial = await self.get_historic_candles(pair, asset, window.start, window.end, interval)
            item.candles.extend(
                candle for candle in partial.candles if window.start <= candle.time <= window.end
            )
        item.remove_duplicates()
        item.remove_outside_range(start, end)
        item.sort_candles_by_timestamp()
        return item

    # =========================================================================
    # ACCOUNT
    # =========================================================================

    async def update_account_info(self, asset: Asset) -> account.Holdings:
        """
        Raises:
            NotFoundError: If an asset has no matching freeze entry
        """
        info = await self.get_user_info()
        balances: list[account.Balance] = []
        for code, total in info.asset.items():
            if code not in info.freeze:
                raise NotFoundError(f"hold data not found with {code}")
            balances.append(
                account.Balance(currency=Code(code.upper()), total_value=total, hold=info.freeze[code])
            )
        sub = account.SubAccount(asset=asset, currencies=balances)
        holdings = account.Holdings(exchange=self.name, accounts=[sub])
        account.process_holdings(holdings, asset)
        return holdings

    async def get_withdrawals_history(self, code: Code) -> list[WithdrawalHistory]:
        asset_code = "" if code.is_empty() else str(code.lower())
        records = await self.get_withdrawal_records(asset_code)
        return [
            WithdrawalHistory(
                status=item.status,
                transfer_id=item.id,
                timestamp=item.time,
                currency=item.asset_code.upper(),
                amount=item.amount,
                fee=item.fee,
                transfer_type="withdrawal",
                crypto_to_address=item.address,
                crypto_tx_id=item.tx_hash,
            )
            for item in records.records
        ]

    # =========================================================================
    # ORDERS
    # =========================================================================

    async def submit_order(self, submit: order.Submit) -> order.SubmitResponse:
        """
        Market orders are reported as fully matched.

        Raises:
            OrderValidationError: On a side other than buy or sell
        """
        submit.validate_order()
        if submit.side not in (OrderSide.BUY, OrderSide.SELL):
            raise OrderValidationError(
                f"{submit.side.value} order side is not supported by the exchange"
            )
        side = data.BUY if submit.side is OrderSide.BUY else data.SELL
        if submit.type is OrderType.MARKET:
            side = f"{side}_market"
        response = await self.create_order(
            self.format_symbol(submit.pair, Asset.SPOT), side, submit.amount, submit.price
        )
        return order.SubmitResponse(
            is_order_placed=True,
            fully_matched=submit.type is OrderType.MARKET,
            order_id=response.order_id,
        )

    async def cancel_order(self, cancel: order.Cancel) -> None:
        cancel.validate_order(cancel.standard_cancel())
        await self.remove_order(self.format_symbol(cancel.pair, cancel.asset), cancel.id)

    async def cancel_batch_orders(self, cancels: list[order.Cancel]) -> order.CancelBatchResponse:
        raise NotYetImplementedError()

    async def cancel_all_orders(self, cancel: order.Cancel) -> order.CancelAllResponse:
        """Cancel open orders on cancel.pair three ids at a time."""
        cancel.validate_order()
        wanted = self.format_symbol(cancel.pair, Asset.SPOT)
        response = order.CancelAllResponse()
        for symbol, ids in (await self.get_all_open_order_ids()).items():
            if symbol != wanted:
                continue
            for offset in range(0, len(ids), MAX_CANCEL_IDS):
                chunk = ",".join(ids[offset : offset + MAX_CANCEL_IDS])
                result = await self.remove_order(symbol, chunk)
                for order_id in result.succeeded:
                    response.status[order_id] = "Cancelled"
                for order_id in result.failed:
                    response.status[order_id] = "Failed"
        response.count = sum(1 for value in response.status.values() if value == "Cancelled")
        return response

    async def get_all_open_order_ids(self) -> dict[str, list[str]]:
        """Open order ids keyed by request-format symbol across enabled pairs."""
        result: dict[str, list[str]] = {}
        for pair in self.get_enabled_pairs(Asset.SPOT):
            symbol = self.format_symbol(pair, Asset.SPOT)
            for item in await self._open_orders(symbol):
                result.setdefault(symbol, []).append(item.order_id)
        return result

    async def _open_orders(self, symbol: str) -> list[data.OrderInfo]:
        orders: list[data.OrderInfo] = []
        page = 1
        while True:
            batch = await self.get_open_orders(symbol, page)
            orders.extend(batch.orders)
            if len(batch.orders) < data.PAGE_LENGTH:
                return orders
            page += 1

    async def _to_detail(self, raw: data.OrderInfo, pair: Pair) -> order.Detail:
        side, order_type = parse_order_type(raw.type)
        status = ORDER_STATUSES.get(raw.status, OrderStatus.UNKNOWN)
        if status is OrderStatus.UNKNOWN:
            logger.error(f"{self.name} unexpected status {raw.status} on order {raw.order_id}")
        fee = await self.get_fee_by_type(
            FeeBuilder(
                fee_type=FeeType.CRYPTOCURRENCY_TRADE_FEE,
                pair=pair,
                amount=raw.amount,
                purchase_price=raw.price,
            )
        )
        return order.Detail(
            exchange=self.name,
            id=raw.order_id,
            pair=pair,
            side=side,
            type=order_type,
            status=status,
            price=raw.price,
            amount=raw.amount,
            executed_amount=raw.deal_amount,
            remaining_amount=max(raw.amount - raw.deal_amount, Decimal("0")),
            average_executed_price=raw.avg_price,
            fee=fee,
            date=raw.create_time,
        )

    async def get_order_info(self, order_id: str, pair: Pair, asset: Asset) -> order.Detail:
        """
        Raises:
            NotFoundError: If the venue returns no such order
        """
        rows = await self.query_order(self.format_symbol(pair, asset), order_id)
        if not rows:
            raise NotFoundError(f"{self.name} order {order_id} not found")
        return await self._to_detail(rows[0], pair)

    async def get_active_orders(self, request: order.GetOrdersRequest) -> list[order.Detail]:
        request.validate_request()
        pairs = request.pairs or list(self.get_enabled_pairs(Asset.SPOT))
        details: list[order.Detail] = []
        for pair in pairs:
            for item in await self._open_orders(self.format_symbol(pair, Asset.SPOT)):
                details.append(await self._to_detail(item, pair))
        return self._filter(details, request)

    async def get_order_history(self, request: order.GetOrdersRequest) -> list[order.Detail]:
        request.validate_request()
        pairs = request.pairs or list(self.get_enabled_pairs(Asset.SPOT))
        details: list[order.Detail] = []
        for pair in pairs:
            symbol = self.format_symbol(pair, Asset.SPOT)
            page = 1
            while True:
                batch = await self.query_order_history(symbol, page)
                for item in batch.orders:
                    details.append(await self._to_detail(item, pair))
                if len(batch.orders) < data.PAGE_LENGTH:
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
        request.validate_request()
        response = await self.withdraw(
            request.crypto.address,
            str(request.currency.lower()),
            request.amount,
            memo=request.crypto.address_tag,
            mark=request.description,
            fee=request.crypto.fee_amount or None,
        )
        return withdraw.ExchangeResponse(name=self.name, id=response.withdraw_id)

    async def update_order_execution_limits(self, asset: Asset) -> None:
        """Load minimum size and precision from the accuracy listing."""
        if asset is not Asset.SPOT:
            raise AssetError(f"asset type of {asset.value} is not supported by {self.name}")
        levels = [
            order.MinMaxLevel(
                pair=Pair.from_delimited(item.symbol.upper(), "_"),
                asset=asset,
                min_amount=item.min_tran_qua,
                step_price=Decimal(1).scaleb(-item.price_accuracy),
                step_amount=Decimal(1).scaleb(-item.quantity_accuracy),
            )
            for item in await self.get_pair_info()
        ]
        self.execution_limits.load(levels)
