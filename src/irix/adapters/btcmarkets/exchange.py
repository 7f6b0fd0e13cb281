"""BTC Markets exchange adapter."""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from irix.adapters.btcmarkets import data
from irix.adapters.btcmarkets.client import API_URL, BTCMarketsAPI
from irix.currency import Code, Pair, PairFormat, Pairs
from irix.enums import URL, Asset, OrderSide, OrderStatus, OrderType, WithdrawPermission
from irix.errors import (
    AssetError,
    ExchangeAPIError,
    IrixError,
    KlineError,
    WithdrawValidationError,
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

WEBSOCKET_URL = "wss://socket.btcmarkets.net/v2"

CANCEL_BATCH_SIZE = 20
ORDER_BATCH_SIZE = 50
RECENT_TRADES_LIMIT = 200

AUTH_ERRORS = (
    "InvalidAPIKey",
    "InvalidAuthTimestamp",
    "InvalidAuthSignature",
    "InsufficientAPIPermission",
)

ORDER_TYPES: dict[str, OrderType] = {
    data.LIMIT: OrderType.LIMIT,
    data.MARKET: OrderType.MARKET,
    data.STOP_LIMIT: OrderType.STOP_LIMIT,
    data.STOP: OrderType.STOP,
    data.TAKE_PROFIT: OrderType.TAKE_PROFIT,
}

ORDER_STATUSES: dict[str, OrderStatus] = {
    data.ORDER_ACCEPTED: OrderStatus.ACTIVE,
    data.ORDER_PLACED: OrderStatus.ACTIVE,
    data.ORDER_PARTIALLY_MATCHED: OrderStatus.PARTIALLY_FILLED,
    data.ORDER_FULLY_MATCHED: OrderStatus.FILLED,
    data.ORDER_CANCELLED: OrderStatus.CANCELLED,
    data.ORDER_PARTIALLY_CANCELLED: OrderStatus.PARTIALLY_CANCELLED,
    data.ORDER_FAILED: OrderStatus.REJECTED,
}

OPEN_STATUSES = (data.ORDER_ACCEPTED, data.ORDER_PLACED, data.ORDER_PARTIALLY_MATCHED)


def _chunks(items: list[str], size: int) -> list[list[str]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


class BTCMarkets(BTCMarketsAPI):
    """BTC Markets spot trading."""

    def set_defaults(self) -> None:
        self.name = data.EXCHANGE
        self.enabled = True
        self.verbose = True
        self.api.credentials_validator.requires_key = True
        self.api.credentials_validator.requires_secret = True
        self.api.credentials_validator.requires_base64_decode_secret = True

        fmt = PairFormat(uppercase=True, delimiter="-")
        self.set_global_pair_format(fmt, fmt.model_copy(), Asset.SPOT)

        intervals = (kline.Interval.ONE_MIN, kline.Interval.ONE_HOUR, kline.Interval.ONE_DAY)
        self.features = Features(
            supports=FeaturesSupported(
                rest=True,
                rest_capabilities=ProtocolFeatures(
                    ticker_batching=True,
                    ticker_fetching=True,
                    trade_fetching=True,
                    orderbook_fetching=True,
                    auto_pair_updates=True,
                    account_info=True,
                    get_order=True,
                    get_orders=True,
                    cancel_order=True,
                    submit_order=True,
                    user_trade_history=True,
                    crypto_withdrawal=True,
                    fiat_withdraw=True,
                    trade_fee=True,
                    fiat_withdrawal_fee=True,
                    crypto_withdrawal_fee=True,
                    kline_fetching=True,
                ),
                withdraw_permissions=WithdrawPermission.AUTO_WITHDRAW_CRYPTO
                | WithdrawPermission.AUTO_WITHDRAW_FIAT,
                kline=kline.ExchangeCapabilities.with_intervals(*intervals),
            ),
            enabled=FeaturesEnabled(
                auto_pair_updates=True,
                kline=kline.ExchangeCapabilities.with_intervals(*intervals, result_limit=1000),
            ),
        )
        self.requester = self.new_requester(self.rate_limiter())
        self.set_default_endpoints({URL.REST_SPOT: API_URL, URL.WEBSOCKET_SPOT: WEBSOCKET_URL})

    async def start(self) -> None:
        """
        Refresh tradable pairs.

        Stored pairs without the dash delimiter predate the v3 market ids;
        they are reset to BTC-AUD and a forced update follows.
        """
        fmt = self.get_pair_format(Asset.SPOT, False)
        enabled = self.get_enabled_pairs(Asset.SPOT)
        available = self.get_available_pairs(Asset.SPOT)
        force = not any(fmt.delimiter in s for s in enabled.strings()) or not any(
            fmt.delimiter in s for s in available.strings()
        )
        if force:
            logger.warning(
                f"Available pairs for {self.name} reset due to config upgrade, "
                "please enable the pairs you would like again."
            )
            self.update_pairs(
                Pairs([Pair("BTC", "AUD", fmt.delimiter)]), Asset.SPOT, True, True
            )
        if not self.features.enabled.auto_pair_updates and not force:
            return
        try:
            await self.update_tradable_pairs(force)
        except IrixError as e:
            logger.error(f"{self.name} failed to update tradable pairs. Err: {e}")

    # =========================================================================
    # MARKET DATA
    # =========================================================================

    async def fetch_tradable_pairs(self, asset: Asset) -> list[str]:
        if asset is not Asset.SPOT:
            raise AssetError(f"asset type of {asset.value} is not supported by {self.name}")
        return [market.market_id for market in await self.get_markets()]

    async def update_ticker(self, pair: Pair, asset: Asset) -> ticker.Price:
        """
        Refresh every enabled pair in one batched request.

        Raises:
            ExchangeAPIError: If fewer tickers come back than were asked for
        """
        enabled = self.get_enabled_pairs(asset)
        tickers = await self.get_tickers([self.format_symbol(p, asset) for p in enabled])
        if len(tickers) != len(enabled):
            raise ExchangeAPIError(self.name, "enabled pairs differ from returned tickers")
        for item in tickers:
            ticker.process_ticker(
                ticker.Price(
                    pair=Pair.from_string(item.market_id),
                    last=item.last_price,
                    high=item.high_24h,
                    low=item.low_24h,
                    bid=item.best_bid,
                    ask=item.best_ask,
                    volume=item.volume,
                    quote_volume=item.volume_quote,
                    exchange=self.name,
                    asset=asset,
                )
            )
        return ticker.get_ticker(self.name, pair, asset)

    async def update_orderbook(self, pair: Pair, asset: Asset) -> orderbook.Book:
        raw = await self.get_orderbook(self.format_symbol(pair, asset), 2)
        book = orderbook.Book(
            bids=[orderbook.Item(price=price, amount=amount) for price, amount in raw.bids],
            asks=[orderbook.Item(price=price, amount=amount) for price, amount in raw.asks],
            pair=pair,
            asset=asset,
            exchange=self.name,
            price_duplication=True,
            last_update_id=raw.snapshot_id,
            verification_bypass=not self.can_verify_orderbook,
        )
        book.process()
        return orderbook.get_orderbook(self.name, pair, asset)

    async def get_recent_trades(self, pair: Pair, asset: Asset) -> list[trade.Data]:
        market_id = self.format_symbol(pair, asset)
        result: list[trade.Data] = []
        for item in await self.get_trades(market_id, limit=RECENT_TRADES_LIMIT):
            side = OrderSide.UNKNOWN
            if item.side:
                side = order.string_to_order_side(item.side)
            result.append(
                trade.Data(
                    tid=item.trade_id,
                    exchange=self.name,
                    pair=self.format_exchange_currency(pair, asset),
                    asset=asset,
                    side=side,
                    price=item.price,
                    amount=item.amount,
                    timestamp=item.timestamp,
                )
            )
        self.add_trades_to_buffer(*result)
        return sorted(result, key=lambda t: t.timestamp)

    def format_exchange_kline_interval(self, interval: kline.Interval) -> str:
        if interval is kline.Interval.ONE_DAY:
            return "1d"
        return interval.short()

    @staticmethod
    def _parse_candles(rows: list[list[str]]) -> list[kline.Candle]:
        return [
            kline.Candle(
                time=datetime.fromisoformat(row[0].replace("Z", "+00:00")),
                open=Decimal(row[1]),
                high=Decimal(row[2]),
                low=Decimal(row[3]),
                close=Decimal(row[4]),
                volume=Decimal(row[5]),
            )
            for row in rows
        ]

    async def get_historic_candles(
        self, pair: Pair, asset: Asset, start: datetime, end: datetime, interval: kline.Interval
    ) -> kline.Item:
        """
        Raises:
            KlineError: If the range needs more candles than one request returns
        """
        self.validate_kline(pair, asset, interval)
        limit = self.features.enabled.kline.result_limit
        if kline.total_candles_per_interval(start, end, interval) > limit:
            raise KlineError(
                "requested data would exceed exchange limits please lower range "
                "or use get_historic_candles_extended"
            )
        formatted = self.format_exchange_currency(pair, asset)
        rows = await self.get_market_candles(
            str(formatted), self.format_exchange_kline_interval(interval), start, end
        )
        item = kline.Item(
            exchange=self.name,
            pair=formatted,
            asset=Asset.SPOT,
            interval=interval,
            candles=self._parse_candles(rows),
        )
        item.sort_candles_by_timestamp()
        return item

    async def get_historic_candles_extended(
        self, pair: Pair, asset: Asset, start: datetime, end: datetime, interval: kline.Interval
    ) -> kline.Item:
        self.validate_kline(pair, asset, interval)
        formatted = self.format_exchange_currency(pair, asset)
        item = kline.Item(exchange=self.name, pair=formatted, asset=asset, interval=interval)
        ranges = kline.calculate_candle_date_ranges(
            start, end, interval, self.features.enabled.kline.result_limit
        )
        for window in ranges:
            rows = await self.get_market_candles(
                str(formatted),
                self.format_exchange_kline_interval(interval),
                window.start,
                window.end,
            )
            item.candles.extend(self._parse_candles(rows))
        if not item.candles:
            logger.warning(f"{self.name} - no candle data returned for {formatted}")
        item.remove_duplicates()
        item.remove_outside_range(start, end)
        item.sort_candles_by_timestamp()
        return item

    # =========================================================================
    # ACCOUNT
    # =========================================================================

    async def update_account_info(self, asset: Asset) -> account.Holdings:
        balances = await self.get_account_balance()
        sub = account.SubAccount(
            asset=asset,
            currencies=[
                account.Balance(
                    currency=Code(item.asset_name), total_value=item.balance, hold=item.locked
                )
                for item in balances
            ],
        )
        holdings = account.Holdings(exchange=self.name, accounts=[sub])
        account.process_holdings(holdings, asset)
        return holdings

    async def validate_credentials(self, asset: Asset) -> None:
        """
        Only authentication failures are raised; other venue errors do not
        affect authenticated requests and are logged.
        """
        try:
            await self.update_account_info(asset)
        except IrixError as e:
            if self.check_transient_error(e) is None:
                return
            if any(code in str(e) for code in AUTH_ERRORS):
                raise
            logger.warning(f"{self.name} credential check error disregarded: {e}")

    async def get_deposit_address(self, code: Code, account_id: str = "") -> str:
        response = await self.fetch_deposit_address(str(code).upper())
        return response.address

    async def get_withdrawals_history(self, code: Code) -> list[WithdrawalHistory]:
        return [
            WithdrawalHistory(
                status=item.status,
                transfer_id=item.id,
                description=item.description,
                timestamp=item.creation_time,
                currency=item.asset_name,
                amount=item.amount,
                fee=item.fee,
                transfer_type=item.type,
            )
            for item in await self.get_withdrawals()
            if code.is_empty() or Code(item.asset_name) == code
        ]

    # =========================================================================
    # ORDERS
    # =========================================================================

    async def submit_order(self, submit: order.Submit) -> order.SubmitResponse:
        submit.validate_order()
        side = data.BID if submit.side.is_long else data.ASK
        order_type = data.MARKET if submit.type is OrderType.MARKET else data.LIMIT
        placed = await self.new_order(
            self.format_symbol(submit.pair, Asset.SPOT),
            submit.price,
            submit.amount,
            order_type,
            side,
            submit.trigger_price,
            post_only=submit.post_only,
            client_order_id=submit.client_order_id or submit.client_id,
        )
        return order.SubmitResponse(is_order_placed=True, order_id=placed.order_id)

    async def cancel_order(self, cancel: order.Cancel) -> None:
        cancel.validate_order(cancel.standard_cancel())
        await self.remove_order(cancel.id)

    async def cancel_batch_orders(self, cancels: list[order.Cancel]) -> order.CancelBatchResponse:
        ids: list[str] = []
        for cancel in cancels:
            cancel.validate_order(cancel.standard_cancel())
            ids.append(cancel.id)
        status: dict[str, str] = {}
        for chunk in _chunks(ids, CANCEL_BATCH_SIZE):
            status.update(await self._cancel_chunk(chunk))
        return order.CancelBatchResponse(status=status)

    async def cancel_all_orders(self, cancel: order.Cancel) -> order.CancelAllResponse:
        """Cancel every open order, in batches of twenty."""
        ids = [item.order_id for item in await self.get_orders(open_only=True)]
        status: dict[str, str] = {}
        for chunk in _chunks(ids, CANCEL_BATCH_SIZE):
            status.update(await self._cancel_chunk(chunk))
        return order.CancelAllResponse(status=status, count=len(status))

    async def _cancel_chunk(self, ids: list[str]) -> dict[str, str]:
        response = await self.cancel_batch(ids)
        status = {item.order_id: "Success" for item in response.cancel_orders}
        for item in response.unprocessed_requests:
            status[item.request_id] = "Cancellation Failed"
        return status

    def _to_detail(self, raw: data.Order) -> order.Detail:
        order_type = ORDER_TYPES.get(raw.type, OrderType.UNKNOWN)
        if order_type is OrderType.UNKNOWN:
            logger.error(f"{self.name} unknown order type {raw.type} getting order")
        order_status = ORDER_STATUSES.get(raw.status, OrderStatus.UNKNOWN)
        if order_status is OrderStatus.UNKNOWN:
            logger.error(f"{self.name} unexpected status {raw.status} on order {raw.order_id}")
        return order.Detail(
            exchange=self.name,
            id=raw.order_id,
            client_order_id=raw.client_order_id,
            pair=Pair.from_string(raw.market_id),
            side=OrderSide.ASK if raw.side == data.ASK else OrderSide.BID,
            type=order_type,
            status=order_status,
            price=raw.price,
            amount=raw.amount,
            executed_amount=raw.amount - raw.open_amount,
            remaining_amount=raw.open_amount,
            trigger_price=raw.trigger_price,
            date=raw.creation_time,
        )

    async def get_order_info(self, order_id: str, pair: Pair, asset: Asset) -> order.Detail:
        return self._to_detail(await self.fetch_order(order_id))

    async def get_active_orders(self, request: order.GetOrdersRequest) -> list[order.Detail]:
        request.validate_request()
        pairs = request.pairs or list(self.get_enabled_pairs(Asset.SPOT))
        details: list[order.Detail] = []
        for pair in pairs:
            raw = await self.get_orders(self.format_symbol(pair, Asset.SPOT), open_only=True)
            for item in raw:
                detail = self._to_detail(item)
                detail.pair = pair
                details.append(detail)
        details = order.filter_orders_by_type(details, request.type)
        details = order.filter_orders_by_time_range(details, request.start, request.end)
        return order.filter_orders_by_side(details, request.side)

    async def get_order_history(self, request: order.GetOrdersRequest) -> list[order.Detail]:
        """Closed orders; open ones are skipped."""
        request.validate_request()
        ids: list[str] = []
        if not request.pairs:
            ids.extend(item.order_id for item in await self.get_orders())
        for pair in request.pairs:
            raw = await self.get_orders(self.format_symbol(pair, Asset.SPOT))
            ids.extend(item.order_id for item in raw)
        details: list[order.Detail] = []
        for chunk in _chunks(ids, ORDER_BATCH_SIZE):
            response = await self.get_batch_trades(chunk)
            for item in response.orders:
                if item.status in OPEN_STATUSES:
                    continue
                detail = self._to_detail(item)
                detail.executed_amount = item.amount
                details.append(detail)
        return details

    # =========================================================================
    # WITHDRAWALS
    # =========================================================================

    async def withdraw_cryptocurrency_funds(
        self, request: withdraw.Request
    ) -> withdraw.ExchangeResponse:
        request.validate_request()
        result = await self.request_withdraw(
            str(request.currency), request.amount, to_address=request.crypto.address
        )
        return withdraw.ExchangeResponse(name=self.name, id=result.id, status=result.status)

    async def withdraw_fiat_funds(self, request: withdraw.Request) -> withdraw.ExchangeResponse:
        """
        Raises:
            WithdrawValidationError: For any currency other than AUD
        """
        request.validate_request()
        if request.currency != Code("AUD"):
            raise WithdrawValidationError("only aud is supported for withdrawals")
        bank = request.fiat.bank
        result = await self.request_withdraw(
            str(request.currency),
            request.amount,
            account_name=bank.account_name,
            account_number=bank.account_number,
            bsb_number=bank.bsb,
            bank_name=bank.bank_name,
        )
        return withdraw.ExchangeResponse(name=self.name, id=result.id, status=result.status)

    async def update_order_execution_limits(self, asset: Asset) -> None:
        """Load amount bounds from the market listing."""
        if asset is not Asset.SPOT:
            raise AssetError(f"asset type of {asset.value} is not supported by {self.name}")
        levels = [
            order.MinMaxLevel(
                pair=Pair.from_string(market.market_id),
                asset=asset,
                min_amount=market.min_order_amount,
                max_amount=market.max_order_amount,
                step_price=Decimal(1).scaleb(-market.price_decimals),
                step_amount=Decimal(1).scaleb(-market.amount_decimals),
            )
            for market in await self.get_markets()
        ]
        self.execution_limits.load(levels)
