"""BTSE exchange adapter."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from decimal import Decimal

from irix.adapters.btse import data
from irix.adapters.btse.client import API_URL, BTSEAPI
from irix.currency import Code, Pair, PairFormat, PairStore
from irix.enums import URL, Asset, OrderSide, OrderStatus, OrderType, WithdrawPermission
from irix.errors import (
    AssetError,
    IrixError,
    KlineError,
    NotFoundError,
    NotYetImplementedError,
    OrderValidationError,
)
from irix.exchange import (
    Features,
    FeaturesEnabled,
    FeaturesSupported,
    ProtocolFeatures,
    WithdrawalHistory,
)
from irix.model import account, kline, order, orderbook, ticker, trade, withdraw

logger = logging.getLogger(__name__)

WEBSOCKET_URL = "wss://ws.btse.com/spotWS"

RECENT_TRADES_LIMIT = 500

ORDER_STATES: dict[str, OrderStatus] = {
    "STATUS_ACTIVE": OrderStatus.ACTIVE,
    "ORDER_CANCELLED": OrderStatus.CANCELLED,
    "ORDER_FULLY_TRANSACTED": OrderStatus.FILLED,
    "ORDER_PARTIALLY_TRANSACTED": OrderStatus.PARTIALLY_FILLED,
}

KLINE_INTERVALS = (
    kline.Interval.ONE_MIN,
    kline.Interval.THREE_MIN,
    kline.Interval.FIVE_MIN,
    kline.Interval.FIFTEEN_MIN,
    kline.Interval.THIRTY_MIN,
    kline.Interval.ONE_HOUR,
    kline.Interval.TWO_HOUR,
    kline.Interval.FOUR_HOUR,
    kline.Interval.SIX_HOUR,
    kline.Interval.TWELVE_HOUR,
    kline.Interval.ONE_DAY,
    kline.Interval.THREE_DAY,
    kline.Interval.ONE_WEEK,
    kline.Interval.ONE_MONTH,
)


def order_int_to_type(value: int) -> OrderType:
    if value == data.ORDER_TYPE_MARKET:
        return OrderType.MARKET
    if value == data.ORDER_TYPE_LIMIT:
        return OrderType.LIMIT
    return OrderType.UNKNOWN


def match_type(value: int, required: OrderType | None) -> bool:
    if required in (None, OrderType.ANY):
        return True
    return order_int_to_type(value) is required


class BTSE(BTSEAPI):
    """BTSE spot and futures."""

    def set_defaults(self) -> None:
        self.name = data.EXCHANGE
        self.enabled = True
        self.verbose = True
        self.api.credentials_validator.requires_key = True
        self.api.credentials_validator.requires_secret = True

        spot = PairFormat(uppercase=True, delimiter="-")
        self.store_asset_pair_format(
            Asset.SPOT, PairStore(request_format=spot, config_format=spot.model_copy())
        )
        futures = PairFormat(uppercase=True)
        self.store_asset_pair_format(
            Asset.FUTURES, PairStore(request_format=futures, config_format=futures.model_copy())
        )

        self.features = Features(
            supports=FeaturesSupported(
                rest=True,
                rest_capabilities=ProtocolFeatures(
                    ticker_fetching=True,
                    ticker_batching=True,
                    kline_fetching=True,
                    trade_fetching=True,
                    orderbook_fetching=True,
                    auto_pair_updates=True,
                    account_info=True,
                    get_order=True,
                    get_orders=True,
                    cancel_orders=True,
                    cancel_order=True,
                    submit_order=True,
                    trade_fee=True,
                    fiat_deposit_fee=True,
                    fiat_withdrawal_fee=True,
                    crypto_withdrawal_fee=True,
                ),
                withdraw_permissions=WithdrawPermission.NONE,
                kline=kline.ExchangeCapabilities.with_intervals(*KLINE_INTERVALS),
            ),
            enabled=FeaturesEnabled(
                auto_pair_updates=True,
                kline=kline.ExchangeCapabilities.with_intervals(*KLINE_INTERVALS, result_limit=300),
            ),
        )
        self.requester = self.new_requester(self.rate_limiter())
        self.set_default_endpoints(
            {URL.REST_SPOT: API_URL, URL.REST_FUTURES: API_URL, URL.WEBSOCKET_SPOT: WEBSOCKET_URL}
        )

    async def start(self) -> None:
        """Refresh tradable pairs, then seed order size limits."""
        await super().start()
        for asset in (Asset.SPOT, Asset.FUTURES):
            try:
                await self.update_order_execution_limits(asset)
            except IrixError as e:
                logger.error(f"{self.name} failed to load {asset.value} order size limits. Err: {e}")

    # =========================================================================
    # MARKET DATA
    # =========================================================================

    async def fetch_tradable_pairs(self, asset: Asset) -> list[str]:
        if asset not in (Asset.SPOT, Asset.FUTURES):
            raise AssetError(f"asset type of {asset.value} is not supported by {self.name}")
        markets = await self.get_market_summary("", asset is Asset.SPOT)
        return [market.symbol for market in markets if market.active]

    async def update_ticker(self, pair: Pair, asset: Asset) -> ticker.Price:
        """Every market comes back in one summary; all of them are cached."""
        for item in await self.get_market_summary("", asset is Asset.SPOT):
            ticker.process_ticker(
                ticker.Price(
                    pair=Pair.from_string(item.symbol),
                    ask=item.lowest_ask,
                    bid=item.highest_bid,
                    low=item.low_24h,
                    high=item.high_24h,
                    last=item.last,
                    volume=item.volume,
                    exchange=self.name,
                    asset=asset,
                )
            )
        return ticker.get_ticker(self.name, pair, asset)

    async def update_orderbook(self, pair: Pair, asset: Asset) -> orderbook.Book:
        raw = await self.fetch_order_book(self.format_symbol(pair, asset), spot=asset is Asset.SPOT)
        bids = [
            orderbook.Item(price=level.price, amount=level.size)
            for level in raw.buy_quote
            if not self._orderbook_filter(level.price, level.size)
        ]
        asks = [
            orderbook.Item(price=level.price, amount=level.size)
            for level in raw.sell_quote
            if not self._orderbook_filter(level.price, level.size)
        ]
        # Asks arrive highest first
        asks.reverse()
        book = orderbook.Book(
            bids=bids,
            asks=asks,
            pair=pair,
            asset=asset,
            exchange=self.name,
            verification_bypass=not self.can_verify_orderbook,
        )
        book.process()
        return orderbook.get_orderbook(self.name, pair, asset)

    @staticmethod
    def _orderbook_filter(price: Decimal, amount: Decimal) -> bool:
        """Empty levels are padding and are dropped."""
        return price == 0 or amount == 0

    async def get_recent_trades(self, pair: Pair, asset: Asset) -> list[trade.Data]:
        formatted = self.format_exchange_currency(pair, asset)
        raw = await self.get_trades(
            str(formatted), count=RECENT_TRADES_LIMIT, spot=asset is Asset.SPOT
        )
        result = [
            trade.Data(
                tid=str(item.serial_id),
                exchange=self.name,
                pair=formatted,
                asset=asset,
                side=order.string_to_order_side(item.side),
                price=item.price,
                amount=item.amount,
                timestamp=item.timestamp,
            )
            for item in raw
        ]
        self.add_trades_to_buffer(*result)
        return sorted(result, key=lambda t: t.timestamp)

    def format_exchange_kline_interval(self, interval: kline.Interval) -> str:
        """Interval in whole minutes."""
        return str(interval.value // 60)

    async def _candles(
        self, pair: Pair, asset: Asset, start: datetime, end: datetime, interval: kline.Interval
    ) -> kline.Item:
        formatted = self.format_exchange_currency(pair, asset)
        item = kline.Item(exchange=self.name, pair=formatted, asset=asset, interval=interval)
        match asset:
            case Asset.SPOT:
                rows = await self.ohlcv(
                    str(formatted), start, end, int(self.format_exchange_kline_interval(interval))
                )
            case Asset.FUTURES:
                raise NotYetImplementedError()
            case _:
                raise AssetError(f"asset {asset.value} not supported")
        item.candles = [
            kline.Candle(
                time=datetime.fromtimestamp(int(row[0]), tz=UTC),
                open=Decimal(row[1]),
                high=Decimal(row[2]),
                low=Decimal(row[3]),
                close=Decimal(row[4]),
                volume=Decimal(row[5]),
            )
            for row in rows
        ]
        item.sort_candles_by_timestamp()
        return item

    async def get_historic_candles(
        self, pair: Pair, asset: Asset, start: datetime, end: datetime, interval: kline.Interval
    ) -> kline.Item:
        self.validate_kline(pair, asset, interval)
        return await self._candles(pair, asset, start, end, interval)

    async def get_historic_candles_extended(
        self, pair: Pair, asset: Asset, start: datetime, end: datetime, interval: kline.Interval
    ) -> kline.Item:
        """
        Raises:
            KlineError: If the range needs more candles than the venue returns
        """
        self.validate_kline(pair, asset, interval)
        limit = self.features.enabled.kline.result_limit
        if kline.total_candles_per_interval(start, end, interval) > limit:
            raise KlineError("requested data would exceed exchange limits please lower range")
        return await self._candles(pair, asset, start, end, interval)

    # =========================================================================
    # ACCOUNT
    # =========================================================================

    async def update_account_info(self, asset: Asset) -> account.Holdings:
        balances = await self.get_wallet_information()
        sub = account.SubAccount(
            asset=asset,
            currencies=[
                account.Balance(
                    currency=Code(item.currency),
                    total_value=item.total,
                    hold=item.total - item.available,
                )
                for item in balances
            ],
        )
        holdings = account.Holdings(exchange=self.name, accounts=[sub])
        account.process_holdings(holdings, asset)
        return holdings

    async def get_deposit_address(self, code: Code, account_id: str = "") -> str:
        """
        Existing address for the currency, creating one when there is none.

        Raises:
            NotFoundError: If creation returns no address either
        """
        currency = str(code).upper()
        addresses = await self.get_wallet_address(currency)
        if addresses:
            return addresses[0].address
        created = await self.create_wallet_address(currency)
        if not created:
            raise NotFoundError("address not found")
        return created[0].address

    # =========================================================================
    # ORDERS
    # =========================================================================

    async def submit_order(self, submit: order.Submit) -> order.SubmitResponse:
        submit.validate_order()
        formatted = self.format_exchange_currency(submit.pair, submit.asset)
        self.check_order_execution_limits(
            submit.asset, submit.pair, submit.price, submit.amount, submit.type
        )
        side = OrderSide.BUY if submit.side.is_long else OrderSide.SELL
        placed = await self.create_order(
            str(formatted),
            side.value,
            submit.type.value,
            submit.amount,
            price=submit.price,
            trigger_price=submit.trigger_price,
            client_order_id=submit.client_order_id or submit.client_id,
            post_only=submit.post_only,
        )
        return order.SubmitResponse(
            is_order_placed=True,
            order_id=placed[0].order_id if placed else "",
            fully_matched=submit.type is OrderType.MARKET,
        )

    async def cancel_order(self, cancel: order.Cancel) -> None:
        cancel.validate_order(cancel.standard_cancel())
        formatted = self.format_exchange_currency(cancel.pair, cancel.asset)
        await self.cancel_existing_order(cancel.id, str(formatted), cancel.client_order_id)

    async def cancel_batch_orders(self, cancels: list[order.Cancel]) -> order.CancelBatchResponse:
        raise NotYetImplementedError()

    async def cancel_all_orders(self, cancel: order.Cancel) -> order.CancelAllResponse:
        """Cancel every order on the cancel's pair."""
        cancel.validate_order()
        formatted = self.format_exchange_currency(cancel.pair, cancel.asset)
        cancelled = await self.cancel_existing_order("", str(formatted))
        status = {
            item.order_id: OrderStatus.CANCELLED.value
            for item in cancelled
            if item.status == data.ORDER_CANCELLED
        }
        return order.CancelAllResponse(status=status, count=len(status))

    def _to_detail(self, raw: data.OpenOrder, pair: Pair) -> order.Detail:
        status = ORDER_STATES.get(raw.order_state, OrderStatus.UNKNOWN)
        return order.Detail(
            exchange=self.name,
            id=raw.order_id,
            client_order_id=raw.client_order_id,
            pair=pair,
            side=OrderSide.SELL if raw.side.upper() in ("SELL", "ASK") else OrderSide.BUY,
            type=order_int_to_type(raw.order_type),
            status=status,
            price=raw.price,
            amount=raw.size,
            executed_amount=raw.filled_size,
            remaining_amount=raw.size - raw.filled_size,
            trigger_price=raw.trigger_price,
            date=raw.timestamp,
        )

    async def _fills(self, order_id: str) -> list[order.TradeHistory]:
        return [
            order.TradeHistory(
                timestamp=fill.timestamp,
                tid=fill.trade_id,
                price=fill.price,
                amount=fill.size,
                exchange=self.name,
                side=order.string_to_order_side(fill.side),
                fee=fill.fee_amount,
            )
            for fill in await self.trade_history(order_id=order_id)
        ]

    async def get_order_info(self, order_id: str, pair: Pair, asset: Asset) -> order.Detail:
        """
        Raises:
            NotFoundError: If the venue does not list the order
        """
        fmt = self.get_pair_format(Asset.SPOT, False)
        for raw in await self.get_orders(order_id=order_id):
            if raw.order_id != order_id:
                continue
            detail = self._to_detail(raw, Pair.from_delimited(raw.symbol, fmt.delimiter))
            detail.trades = await self._fills(order_id)
            return detail
        raise NotFoundError("no orders found")

    async def get_active_orders(self, request: order.GetOrdersRequest) -> list[order.Detail]:
        """
        Open orders with their fills, one request per pair.

        Raises:
            OrderValidationError: If no pairs are given
        """
        request.validate_request()
        if not request.pairs:
            raise OrderValidationError("no pair provided")
        details: list[order.Detail] = []
        for pair in request.pairs:
            for raw in await self.get_orders(self.format_symbol(pair, Asset.SPOT)):
                detail = self._to_detail(raw, pair)
                try:
                    detail.trades = await self._fills(raw.order_id)
                except IrixError as e:
                    logger.error(f"{self.name}: Unable to get order fills for orderID {raw.order_id}: {e}")
                    continue
                details.append(detail)
        details = order.filter_orders_by_type(details, request.type)
        details = order.filter_orders_by_time_range(details, request.start, request.end)
        return order.filter_orders_by_side(details, request.side)

    async def get_order_history(self, request: order.GetOrdersRequest) -> list[order.Detail]:
        request.validate_request()
        pairs = request.pairs or list(self.get_enabled_pairs(Asset.SPOT))
        details: list[order.Detail] = []
        for pair in pairs:
            for raw in await self.get_orders(self.format_symbol(pair, Asset.SPOT)):
                if not match_type(raw.order_type, request.type):
                    continue
                details.append(self._to_detail(raw, pair))
        return details

    # =========================================================================
    # WITHDRAWALS
    # =========================================================================

    async def withdraw_cryptocurrency_funds(
        self, request: withdraw.Request
    ) -> withdraw.ExchangeResponse:
        request.validate_request()
        result = await self.wallet_withdrawal(
            str(request.currency),
            request.crypto.address,
            request.crypto.address_tag,
            f"{request.amount:.8f}",
        )
        return withdraw.ExchangeResponse(name=self.name, id=result.withdraw_id)

    async def get_withdrawals_history(self, code: Code) -> list[WithdrawalHistory]:
        raise NotYetImplementedError()

    async def update_order_execution_limits(self, asset: Asset) -> None:
        """Load order size bounds from the market summary."""
        if asset not in (Asset.SPOT, Asset.FUTURES):
            raise AssetError(f"asset type of {asset.value} is not supported by {self.name}")
        fmt = self.get_pair_format(asset, True)
        levels: list[order.MinMaxLevel] = []
        for market in await self.get_market_summary("", asset is Asset.SPOT):
            pair = (
                Pair.from_delimited(market.symbol, fmt.delimiter)
                if fmt.delimiter
                else Pair(market.base, market.quote)
            )
            levels.append(
                order.MinMaxLevel(
                    pair=pair,
                    asset=asset,
                    min_amount=market.min_order_size,
                    max_amount=market.max_order_size,
                    step_amount=market.min_size_increment,
                    min_price=market.min_valid_price,
                    step_price=market.min_price_increment,
                )
            )
        self.execution_limits.load(levels)
