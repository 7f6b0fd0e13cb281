"""
Bitfinex exchange adapter.

Maps the Bitfinex REST client onto the BotExchange contract. Spot orders
and deposits use the "exchange" wallet.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from irix.adapters.bitfinex.client import API_URL, BitfinexAPI
from irix.adapters.bitfinex.data import EXCHANGE, Order, Trade
from irix.currency import Code, Pair, PairFormat, PairStore
from irix.enums import URL, Asset, OrderSide, OrderStatus, OrderType, WithdrawPermission
from irix.errors import AssetError, ValidationError
from irix.exchange import (
    Features,
    FeaturesEnabled,
    FeaturesSupported,
    ProtocolFeatures,
    WithdrawalHistory,
)
from irix.model import account, kline, order, orderbook, ticker, trade, withdraw

logger = logging.getLogger(__name__)

WALLET_EXCHANGE = "exchange"

TRADE_LIMIT = 1000
ORDERBOOK_DEPTH = 100

KLINE_INTERVALS: dict[kline.Interval, str] = {
    kline.Interval.ONE_MIN: "1m",
    kline.Interval.FIVE_MIN: "5m",
    kline.Interval.FIFTEEN_MIN: "15m",
    kline.Interval.THIRTY_MIN: "30m",
    kline.Interval.ONE_HOUR: "1h",
    kline.Interval.SIX_HOUR: "6h",
    kline.Interval.TWELVE_HOUR: "12h",
    kline.Interval.ONE_DAY: "1D",
    kline.Interval.ONE_WEEK: "7D",
    kline.Interval.TWO_WEEK: "14D",
    kline.Interval.ONE_MONTH: "1M",
}


def _to_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


class Bitfinex(BitfinexAPI):
    """Bitfinex spot and margin trading."""

    def set_defaults(self) -> None:
        self.name = EXCHANGE
        self.enabled = True
        self.verbose = True
        self.api.credentials_validator.requires_key = True
        self.api.credentials_validator.requires_secret = True

        request_format = PairFormat(uppercase=True)
        config_format = PairFormat(uppercase=True, delimiter=":")
        for asset in (Asset.SPOT, Asset.MARGIN):
            self.store_asset_pair_format(
                asset, PairStore(request_format=request_format, config_format=config_format)
            )

        self.features = Features(
            supports=FeaturesSupported(
                rest=True,
                rest_capabilities=ProtocolFeatures(
                    ticker_batching=True,
                    auto_pair_updates=True,
                    ticker_fetching=True,
                    orderbook_fetching=True,
                    trade_fetching=True,
                    kline_fetching=True,
                    account_balance=True,
                    account_info=True,
                    crypto_deposit=True,
                    crypto_withdrawal=True,
                    fiat_withdraw=True,
                    get_order=True,
                    get_orders=True,
                    cancel_order=True,
                    cancel_orders=True,
                    submit_order=True,
                    modify_order=True,
                    withdrawal_history=True,
                    trade_fee=True,
                    crypto_withdrawal_fee=True,
                ),
                withdraw_permissions=WithdrawPermission.AUTO_WITHDRAW_CRYPTO_WITH_API_PERMISSION
                | WithdrawPermission.AUTO_WITHDRAW_FIAT_WITH_API_PERMISSION,
                kline=kline.ExchangeCapabilities.with_intervals(*KLINE_INTERVALS),
            ),
            enabled=FeaturesEnabled(
                auto_pair_updates=True,
                kline=kline.ExchangeCapabilities.with_intervals(
                    *KLINE_INTERVALS, result_limit=10000
                ),
            ),
        )
        self.requester = self.new_requester(self.rate_limiter())
        self.set_default_endpoints({URL.REST_SPOT: API_URL})

    # =========================================================================
    # SYMBOLS
    # =========================================================================

    def trading_symbol(self, pair: Pair, asset: Asset) -> str:
        """
        v2 symbol for a pair, e.g. tBTCUSD or tTESTBTC:TESTUSD.

        Codes longer than three characters are separated with a colon.
        """
        fmt = self.get_pair_format(asset, True)
        delimiter = ":" if len(pair.base.symbol) > 3 or len(pair.quote.symbol) > 3 else fmt.delimiter
        return "t" + str(pair.format(delimiter, True))

    @staticmethod
    def v1_symbol(pair: Pair) -> str:
        """Lower-case v1 symbol, e.g. btcusd."""
        delimiter = ":" if len(pair.base.symbol) > 3 or len(pair.quote.symbol) > 3 else ""
        return str(pair.format(delimiter, False))

    def _pair_from_v1(self, symbol: str) -> Pair:
        return Pair.from_string(symbol).upper()

    # =========================================================================
    # MARKET DATA
    # =========================================================================

    async def fetch_tradable_pairs(self, asset: Asset) -> list[str]:
        """
        Raises:
            AssetError: For assets other than spot and margin
        """
        match asset:
            case Asset.SPOT:
                return await self.get_pairs(margin=False)
            case Asset.MARGIN:
                return await self.get_pairs(margin=True)
        raise AssetError(f"{self.name} asset type {asset.value} not supported")

    async def update_ticker(self, pair: Pair, asset: Asset) -> ticker.Price:
        raw = await self.get_ticker(self.trading_symbol(pair, asset))
        ticker.process_ticker(
            ticker.Price(
                last=raw.last,
                high=raw.high,
                low=raw.low,
                bid=raw.bid,
                ask=raw.ask,
                volume=raw.volume,
                pair=pair,
                exchange=self.name,
                asset=asset,
            )
        )
        return ticker.get_ticker(self.name, pair, asset)

    async def update_orderbook(self, pair: Pair, asset: Asset) -> orderbook.Book:
        raw = await self.get_orderbook(self.trading_symbol(pair, asset), "P0", ORDERBOOK_DEPTH)
        book = orderbook.Book(
            bids=[
                orderbook.Item(amount=level.amount, price=level.price, order_count=level.count)
                for level in raw.bids
            ],
            asks=[
                orderbook.Item(amount=level.amount, price=level.price, order_count=level.count)
                for level in raw.asks
            ],
            pair=pair,
            asset=asset,
            exchange=self.name,
            verification_bypass=not self.can_verify_orderbook,
        )
        book.process()
        return orderbook.get_orderbook(self.name, pair, asset)

    def _convert_trades(self, raw: list[Trade], pair: Pair, asset: Asset) -> list[trade.Data]:
        return [
            trade.Data(
                tid=str(item.tid),
                exchange=self.name,
                pair=pair,
                asset=asset,
                side=OrderSide.from_exchange(item.side),
                price=item.price,
                amount=item.amount,
                timestamp=item.timestamp,
            )
            for item in raw
        ]

    async def get_recent_trades(self, pair: Pair, asset: Asset) -> list[trade.Data]:
        raw = await self.get_trades(self.trading_symbol(pair, asset), limit=TRADE_LIMIT)
        trades = self._convert_trades(raw, pair, asset)
        self.add_trades_to_buffer(*trades)
        return sorted(trades, key=lambda t: t.timestamp)

    async def get_historic_trades(
        self, pair: Pair, asset: Asset, start: datetime, end: datetime
    ) -> list[trade.Data]:
        """
        Page backwards from end until start is reached.

        Raises:
            ValidationError: If end is not after start
        """
        if end <= start:
            raise ValidationError("start date must be before end date")
        symbol = self.trading_symbol(pair, asset)
        result: list[trade.Data] = []
        cursor = end
        while cursor > start:
            raw = await self.get_trades(
                symbol, limit=TRADE_LIMIT, start_ms=_to_ms(start), end_ms=_to_ms(cursor)
            )
            if not raw:
                break
            result.extend(self._convert_trades(raw, pair, asset))
            oldest = min(item.timestamp for item in raw)
            if oldest >= cursor or len(raw) < TRADE_LIMIT:
                break
            cursor = oldest
        unique = {t.tid: t for t in result}
        trades = trade.filter_trades_by_time(list(unique.values()), start, end)
        self.add_trades_to_buffer(*trades)
        return sorted(trades, key=lambda t: t.timestamp)

    def format_exchange_kline_interval(self, interval: kline.Interval) -> str:
        return KLINE_INTERVALS.get(interval, "")

    async def get_historic_candles(
        self, pair: Pair, asset: Asset, start: datetime, end: datetime, interval: kline.Interval
    ) -> kline.Item:
        self.validate_kline(pair, asset, interval)
        raw = await self.get_candles(
            self.trading_symbol(pair, asset),
            self.format_exchange_kline_interval(interval),
            _to_ms(start),
            _to_ms(end),
            self.features.enabled.kline.result_limit,
        )
        item = kline.Item(exchange=self.name, pair=pair, asset=asset, interval=interval)
        item.candles = [
            kline.Candle(
                time=c.timestamp, open=c.open, high=c.high, low=c.low, close=c.close, volume=c.volume
            )
            for c in raw
        ]
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
            item.candles.extend(partial.candles)
        item.remove_duplicates()
        item.remove_outside_range(start, end)
        item.sort_candles_by_timestamp()
        return item

    # =========================================================================
    # ACCOUNT
    # =========================================================================

    async def update_account_info(self, asset: Asset) -> account.Holdings:
        """Balances grouped by Bitfinex wallet."""
        balances = await self.get_account_balance()
        wallets: dict[str, account.SubAccount] = {}
        for balance in balances:
            sub = wallets.setdefault(
                balance.type, account.SubAccount(id=balance.type, asset=asset)
            )
            sub.currencies.append(
                account.Balance(
                    currency=Code(balance.currency.upper()),
                    total_value=balance.amount,
                    hold=balance.amount - balance.available,
                )
            )
        holdings = account.Holdings(exchange=self.name, accounts=list(wallets.values()))
        account.process_holdings(holdings, asset)
        return holdings

    async def get_deposit_address(self, code: Code, account_id: str = "") -> str:
        method = await self.convert_symbol_to_deposit_method(code)
        response = await self.new_deposit(method, account_id or WALLET_EXCHANGE)
        return response.address

    async def get_withdrawals_history(self, code: Code) -> list[WithdrawalHistory]:
        movements = await self.get_movement_history(str(code).upper())
        return [
            WithdrawalHistory(
                status=item.status,
                transfer_id=str(item.id),
                description=item.description,
                timestamp=datetime.fromtimestamp(float(item.timestamp), tz=UTC),
                currency=item.currency,
                amount=item.amount,
                fee=item.fee,
                transfer_type=item.type,
                crypto_to_address=item.address,
                crypto_tx_id=str(item.txid or ""),
            )
            for item in movements
            if item.type.upper() == "WITHDRAWAL"
        ]

    # =========================================================================
    # ORDERS
    # =========================================================================

    @staticmethod
    def _order_type(order_type: OrderType, asset: Asset) -> str:
        name = order_type.value.lower()
        if asset is Asset.SPOT:
            return f"{WALLET_EXCHANGE} {name}"
        return name

    async def submit_order(self, submit: order.Submit) -> order.SubmitResponse:
        submit.validate_order()
        assert submit.asset is not None
        placed = await self.new_order(
            self.v1_symbol(submit.pair),
            self._order_type(submit.type, submit.asset),
            submit.amount,
            submit.price,
            submit.side.is_long,
            submit.hidden_order,
        )
        response = order.SubmitResponse(is_order_placed=True)
        if placed.identifier > 0:
            response.order_id = str(placed.identifier)
        if placed.remaining_amount == 0 and placed.original_amount > 0:
            response.fully_matched = True
        return response

    async def modify_order(self, modify: order.Modify) -> str:
        """Replace an order; Bitfinex issues a new order id."""
        modify.validate_order()
        assert modify.asset is not None
        replaced = await self.replace_order(
            int(modify.id),
            self.v1_symbol(modify.pair),
            modify.amount,
            modify.price,
            modify.side.is_long,
            self._order_type(modify.type, modify.asset),
        )
        return str(replaced.identifier)

    async def cancel_order(self, cancel: order.Cancel) -> None:
        cancel.validate_order(cancel.standard_cancel())
        await self.cancel_existing_order(int(cancel.id))

    async def cancel_batch_orders(self, cancels: list[order.Cancel]) -> order.CancelBatchResponse:
        ids: list[int] = []
        for cancel in cancels:
            cancel.validate_order(cancel.standard_cancel())
            ids.append(int(cancel.id))
        result = await self.cancel_multiple_orders(ids)
        return order.CancelBatchResponse(status={str(i): result for i in ids})

    async def cancel_all_orders(self, cancel: order.Cancel) -> order.CancelAllResponse:
        result = await self.cancel_all_existing_orders()
        logger.info(f"{self.name} cancel all orders: {result}")
        return order.CancelAllResponse()

    def _to_detail(self, raw: Order, asset: Asset = Asset.SPOT) -> order.Detail:
        try:
            side = order.string_to_order_side(raw.side)
        except ValueError as e:
            logger.error(str(order.ClassificationError(self.name, str(raw.identifier), e)))
            side = OrderSide.UNKNOWN
        try:
            order_type = order.string_to_order_type(raw.type)
        except ValueError as e:
            logger.error(str(order.ClassificationError(self.name, str(raw.identifier), e)))
            order_type = OrderType.UNKNOWN
        if raw.is_live:
            status = OrderStatus.ACTIVE
        elif raw.is_cancelled:
            status = OrderStatus.CANCELLED
        elif raw.remaining_amount == 0:
            status = OrderStatus.FILLED
        elif raw.executed_amount > 0:
            status = OrderStatus.PARTIALLY_FILLED
        else:
            status = OrderStatus.UNKNOWN
        return order.Detail(
            exchange=self.name,
            id=str(raw.identifier),
            pair=self._pair_from_v1(raw.symbol),
            asset=asset,
            side=side,
            type=order_type,
            status=status,
            price=raw.price,
            amount=raw.original_amount,
            executed_amount=raw.executed_amount,
            remaining_amount=raw.remaining_amount,
            average_executed_price=raw.avg_execution_price,
            date=raw.created,
        )

    async def get_order_info(self, order_id: str, pair: Pair, asset: Asset) -> order.Detail:
        return self._to_detail(await self.get_order_status(int(order_id)), asset)

    def _filter(self, details: list[order.Detail], request: order.GetOrdersRequest) -> list[order.Detail]:
        details = order.filter_orders_by_type(details, request.type)
        details = order.filter_orders_by_side(details, request.side)
        details = order.filter_orders_by_time_range(details, request.start, request.end)
        return order.filter_orders_by_currencies(details, request.pairs)

    async def get_active_orders(self, request: order.GetOrdersRequest) -> list[order.Detail]:
        request.validate_request()
        assert request.asset is not None
        raw = await self.get_open_orders()
        return self._filter([self._to_detail(item, request.asset) for item in raw], request)

    async def get_order_history(self, request: order.GetOrdersRequest) -> list[order.Detail]:
        request.validate_request()
        assert request.asset is not None
        raw = await self.get_inactive_orders()
        return self._filter([self._to_detail(item, request.asset) for item in raw], request)

    # =========================================================================
    # WITHDRAWALS
    # =========================================================================

    async def withdraw_cryptocurrency_funds(
        self, request: withdraw.Request
    ) -> withdraw.ExchangeResponse:
        request.validate_request()
        result = await self.withdraw_cryptocurrency(
            WALLET_EXCHANGE,
            request.crypto.address,
            request.crypto.address_tag,
            request.amount,
            request.currency,
        )
        return withdraw.ExchangeResponse(name=self.name, id=str(result.withdrawal_id), status=result.status)

    async def withdraw_fiat_funds(self, request: withdraw.Request) -> withdraw.ExchangeResponse:
        request.validate_request()
        result = await self.withdraw_fiat("wire", WALLET_EXCHANGE, request)
        return withdraw.ExchangeResponse(name=self.name, id=str(result.withdrawal_id), status=result.status)

    async def withdraw_fiat_funds_to_international_bank(
        self, request: withdraw.Request
    ) -> withdraw.ExchangeResponse:
        return await self.withdraw_fiat_funds(request)
