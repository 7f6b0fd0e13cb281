"""Crypto.com exchange adapter."""

from __future__ import annotations

import asyncio
import enum
import logging
from datetime import datetime
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from irix.adapters.cryptocom import data
from irix.adapters.cryptocom.client import API_URL, SANDBOX_API_URL, CryptoComAPI
from irix.adapters.cryptocom.params import (
    CreateOrderParams,
    OpenOrderParams,
    TradeParams,
    WithdrawHistoryParams,
    WithdrawParams,
)
from irix.adapters.cryptocom.ws import Client
from irix.config import ExchangeConfig
from irix.currency import Code, Pair, PairFormat
from irix.enums import URL, Asset, OrderSide, OrderStatus, OrderType, WithdrawPermission
from irix.errors import AssetError, IrixError, NotFoundError, WebsocketError
from irix.exchange import (
    Features,
    FeaturesEnabled,
    FeaturesSupported,
    FundHistory,
    ProtocolFeatures,
    WithdrawalHistory,
)
from irix.model import account, kline, order, orderbook, ticker, trade, withdraw
from irix.stream import ChannelSubscription, Websocket

logger = logging.getLogger(__name__)

WEBSOCKET_URL = f"wss://{data.STREAM_HOST}"
SANDBOX_WEBSOCKET_URL = f"wss://{data.SANDBOX_STREAM_HOST}"

CHANNEL_TICKER = "ticker"
CHANNEL_BOOK = "book"
CHANNEL_TRADE = "trade"

DEFAULT_CHANNELS = (CHANNEL_TICKER, CHANNEL_BOOK, CHANNEL_TRADE)

STREAM_BOOK_DEPTH = 150

KLINE_INTERVALS: dict[kline.Interval, data.Interval] = {
    kline.Interval.ONE_MIN: data.Interval.MINUTE_1,
    kline.Interval.FIVE_MIN: data.Interval.MINUTE_5,
    kline.Interval.FIFTEEN_MIN: data.Interval.MINUTE_15,
    kline.Interval.THIRTY_MIN: data.Interval.MINUTE_30,
    kline.Interval.ONE_HOUR: data.Interval.HOUR_1,
    kline.Interval.FOUR_HOUR: data.Interval.HOUR_4,
    kline.Interval.SIX_HOUR: data.Interval.HOUR_6,
    kline.Interval.TWELVE_HOUR: data.Interval.HOUR_12,
    kline.Interval.ONE_DAY: data.Interval.DAY,
    kline.Interval.ONE_WEEK: data.Interval.WEEK,
    kline.Interval.TWO_WEEK: data.Interval.WEEK_2,
    kline.Interval.ONE_MONTH: data.Interval.MONTH,
}

ORDER_STATUSES = {
    "ACTIVE": OrderStatus.ACTIVE,
    "PENDING": OrderStatus.NEW,
    "FILLED": OrderStatus.FILLED,
    "CANCELED": OrderStatus.CANCELLED,
    "REJECTED": OrderStatus.REJECTED,
    "EXPIRED": OrderStatus.EXPIRED,
}

ORDER_TYPES = {
    data.ORDER_LIMIT: OrderType.LIMIT,
    data.ORDER_MARKET: OrderType.MARKET,
    data.ORDER_STOP_LOSS: OrderType.STOP,
    data.ORDER_STOP_LIMIT: OrderType.STOP_LIMIT,
    data.ORDER_TAKE_PROFIT: OrderType.TAKE_PROFIT,
    data.ORDER_TAKE_PROFIT_LIMIT: OrderType.TAKE_PROFIT,
}


def instrument_to_pair(instrument: str) -> Pair:
    return Pair.from_delimited(instrument, "_")


class CryptoCom(CryptoComAPI):
    """Crypto.com spot with market data streaming over the market endpoint."""

    stream: Client | None = None
    consumer: asyncio.Task[None] | None = None

    def set_defaults(self) -> None:
        self.name = data.EXCHANGE
        self.enabled = True
        self.verbose = True
        self.api.credentials_validator.requires_key = True
        self.api.credentials_validator.requires_secret = True

        request_fmt = PairFormat(uppercase=True, delimiter="_")
        config_fmt = PairFormat(uppercase=True, delimiter="-")
        self.set_global_pair_format(request_fmt, config_fmt, Asset.SPOT)

        intervals = tuple(KLINE_INTERVALS)
        self.features = Features(
            supports=FeaturesSupported(
                rest=True,
                websocket=True,
                rest_capabilities=ProtocolFeatures(
                    ticker_fetching=True,
                    ticker_batching=True,
                    trade_fetching=True,
                    orderbook_fetching=True,
                    kline_fetching=True,
                    auto_pair_updates=True,
                    account_info=True,
                    get_order=True,
                    get_orders=True,
                    cancel_orders=True,
                    cancel_order=True,
                    submit_order=True,
                    user_trade_history=True,
                    crypto_withdrawal=True,
                    crypto_deposit=True,
                    deposit_history=True,
                    withdrawal_history=True,
                    trade_fee=True,
                ),
                websocket_capabilities=ProtocolFeatures(
                    ticker_fetching=True,
                    trade_fetching=True,
                    orderbook_fetching=True,
                    kline_fetching=True,
                    account_balance=True,
                    get_orders=True,
                    cancel_orders=True,
                    cancel_order=True,
                    submit_order=True,
                    user_trade_history=True,
                    subscribe=True,
                    unsubscribe=True,
                    authenticated_endpoints=True,
                    message_correlation=True,
                ),
                withdraw_permissions=(
                    WithdrawPermission.AUTO_WITHDRAW_CRYPTO_WITH_API_PERMISSION
                    | WithdrawPermission.NO_FIAT_WITHDRAWALS
                ),
                kline=kline.ExchangeCapabilities.with_intervals(*intervals),
            ),
            enabled=FeaturesEnabled(
                auto_pair_updates=True,
                kline=kline.ExchangeCapabilities.with_intervals(
                    *intervals, result_limit=data.MAX_CANDLE_DEPTH
                ),
            ),
        )
        self.requester = self.new_requester(self.rate_limiter())
        self.set_default_endpoints(
            {
                URL.REST_SPOT: API_URL,
                URL.REST_SANDBOX: SANDBOX_API_URL,
                URL.WEBSOCKET_SPOT: WEBSOCKET_URL,
            }
        )

    def setup(self, cfg: ExchangeConfig) -> None:
        super().setup(cfg)
        if not cfg.enabled:
            return
        if cfg.use_sandbox:
            self.api.endpoints.set_running(URL.REST_SPOT, SANDBOX_API_URL)
            self.api.endpoints.set_running(URL.WEBSOCKET_SPOT, SANDBOX_WEBSOCKET_URL)
        ws_enabled = cfg.features is not None and cfg.features.enabled.websocket_api
        self.websocket = Websocket(
            self.name,
            enabled=ws_enabled,
            connector=self.ws_connect,
            subscriber=self.subscribe,
            unsubscriber=self.unsubscribe,
            generate_subscriptions=self.generate_default_subscriptions,
            disconnector=self.ws_disconnect,
        )

    # =========================================================================
    # MARKET DATA
    # =========================================================================

    async def fetch_tradable_pairs(self, asset: Asset) -> list[str]:
        if asset is not Asset.SPOT:
            raise AssetError(f"asset type of {asset.value} is not supported by {self.name}")
        return [item.instrument_name for item in await self.get_instruments()]

    def _process_ticker(self, item: data.Ticker, asset: Asset) -> None:
        ticker.process_ticker(
            ticker.Price(
                pair=instrument_to_pair(item.instrument_name),
                last=item.last,
                high=item.high,
                low=item.low,
                bid=item.bid,
                ask=item.ask,
                volume=item.volume,
                exchange=self.name,
                asset=asset,
                last_updated=item.timestamp,
            )
        )

    async def update_ticker(self, pair: Pair, asset: Asset) -> ticker.Price:
        """Refreshes every ticker in one call, then returns the requested one."""
        enabled = {str(p.format("_", True)) for p in self.get_enabled_pairs(asset)}
        enabled.add(self.format_symbol(pair, asset))
        for item in await self.get_tickers():
            if item.instrument_name in enabled:
                self._process_ticker(item, asset)
        return ticker.get_ticker(self.name, pair, asset)

    async def update_orderbook(self, pair: Pair, asset: Asset) -> orderbook.Book:
        result = await self.get_book(self.format_symbol(pair, asset))
        if not result.data:
            raise NotFoundError(f"{self.name} returned no book for {pair}")
        snapshot = result.data[0]
        book = orderbook.Book(
            bids=[_level(row) for row in snapshot.bids],
            asks=[_level(row) for row in snapshot.asks],
            pair=pair,
            asset=asset,
            exchange=self.name,
            last_update_id=snapshot.t,
            verification_bypass=not self.can_verify_orderbook,
        )
        book.process()
        return orderbook.get_orderbook(self.name, pair, asset)

    async def get_recent_trades(self, pair: Pair, asset: Asset) -> list[trade.Data]:
        formatted = self.format_exchange_currency(pair, asset)
        result = [
            trade.Data(
                tid=str(item.trade_id),
                exchange=self.name,
                pair=formatted,
                asset=asset,
                side=order.string_to_order_side(item.side),
                price=item.price,
                amount=item.quantity,
                timestamp=item.timestamp,
            )
            for item in await self.get_public_trades(str(formatted))
        ]
        self.add_trades_to_buffer(*result)
        return sorted(result, key=lambda t: t.timestamp)

    def format_exchange_kline_interval(self, interval: kline.Interval) -> str:
        return KLINE_INTERVALS[interval].encode()

    async def get_historic_candles(
        self, pair: Pair, asset: Asset, start: datetime, end: datetime, interval: kline.Interval
    ) -> kline.Item:
        """
        The venue serves only the most recent candles; older ones in the range
        are missing from the result.
        """
        self.validate_kline(pair, asset, interval)
        formatted = self.format_exchange_currency(pair, asset)
        result = await self.get_candlestick(
            str(formatted), KLINE_INTERVALS[interval], data.MAX_CANDLE_DEPTH
        )
        item = kline.Item(exchange=self.name, pair=formatted, asset=asset, interval=interval)
        item.candles = [
            kline.Candle(
                time=row.timestamp,
                open=row.open,
                high=row.high,
                low=row.low,
                close=row.close,
                volume=row.volume,
            )
            for row in result.data
        ]
        item.remove_outside_range(start, end)
        item.sort_candles_by_timestamp()
        return item

    async def get_historic_candles_extended(
        self, pair: Pair, asset: Asset, start: datetime, end: datetime, interval: kline.Interval
    ) -> kline.Item:
        return await self.get_historic_candles(pair, asset, start, end, interval)

    # =========================================================================
    # ACCOUNT
    # =========================================================================

    async def update_account_info(self, asset: Asset) -> account.Holdings:
        sub = account.SubAccount(
            asset=asset,
            currencies=[
                account.Balance(
                    currency=Code(item.currency),
                    total_value=item.balance,
                    hold=item.order + item.stake,
                )
                for item in await self.get_account_summary()
            ],
        )
        holdings = account.Holdings(exchange=self.name, accounts=[sub])
        account.process_holdings(holdings, asset)
        return holdings

    async def get_deposit_address(self, code: Code, account_id: str = "") -> str:
        """
        First active address for the currency; account_id selects a network.

        Raises:
            NotFoundError: If the venue has no address for the currency
        """
        addresses = await self.get_deposit_addresses(str(code).upper())
        for item in addresses:
            if account_id and item.network != account_id:
                continue
            if item.status.lower() in ("1", "active", ""):
                return item.address
        raise NotFoundError(f"{self.name} has no deposit address for {code}")

    async def get_funding_history(self) -> list[FundHistory]:
        history = [
            FundHistory(
                exchange_name=self.name,
                status=_status(data.DepositStatus, item.status),
                transfer_id=item.id,
                timestamp=item.create_time,
                currency=item.currency,
                amount=item.amount,
                fee=item.fee,
                transfer_type="deposit",
                crypto_to_address=item.address,
                crypto_tx_id=item.txid,
            )
            for item in await self.get_deposit_history()
        ]
        history.extend(
            FundHistory(
                exchange_name=self.name,
                status=_status(data.WithdrawStatus, item.status),
                transfer_id=item.id,
                timestamp=item.create_time,
                currency=item.currency,
                amount=item.amount,
                fee=item.fee,
                transfer_type="withdrawal",
                crypto_to_address=item.address,
                crypto_tx_id=item.txid,
            )
            for item in await self.get_withdrawal_history()
        )
        return history

    async def get_withdrawals_history(self, code: Code) -> list[WithdrawalHistory]:
        params = WithdrawHistoryParams(currency=str(code).upper()) if not code.is_empty() else None
        return [
            WithdrawalHistory(
                status=_status(data.WithdrawStatus, item.status),
                transfer_id=item.id,
                timestamp=item.create_time,
                currency=item.currency,
                amount=item.amount,
                fee=item.fee,
                transfer_type="withdrawal",
                crypto_to_address=item.address,
                crypto_tx_id=item.txid,
            )
            for item in await self.get_withdrawal_history(params)
        ]

    # =========================================================================
    # ORDERS
    # =========================================================================

    async def submit_order(self, submit: order.Submit) -> order.SubmitResponse:
        """
        Limit orders honour post-only and immediate-or-cancel; market buys
        spend amount as notional.
        """
        submit.validate_order()
        side = OrderSide.BUY if submit.side.is_long else OrderSide.SELL
        params = CreateOrderParams(
            market=self.format_symbol(submit.pair, submit.asset),
            side=side,
            order_type=data.ORDER_MARKET if submit.type is OrderType.MARKET else data.ORDER_LIMIT,
            client_order_id=submit.client_order_id,
        )
        if submit.type is OrderType.MARKET:
            if side is OrderSide.BUY:
                params.notional = submit.amount
            else:
                params.quantity = submit.amount
        else:
            params.price = submit.price
            params.quantity = submit.amount
            if submit.post_only:
                params.exec_inst = data.POST_ONLY
            if submit.immediate_or_cancel:
                params.time_in_force = data.IMMEDIATE_OR_CANCEL
            elif submit.fill_or_kill:
                params.time_in_force = data.FILL_OR_KILL
        result = await self.create_order(params)
        return order.SubmitResponse(is_order_placed=bool(result.order_id), order_id=result.order_id)

    async def cancel_order(self, cancel: order.Cancel) -> None:
        cancel.validate_order(cancel.standard_cancel())
        await self.cancel_existing_order(cancel.id, self.format_symbol(cancel.pair, Asset.SPOT))

    async def cancel_batch_orders(self, cancels: list[order.Cancel]) -> order.CancelBatchResponse:
        """Cancels one at a time; failures are reported per order id."""
        response = order.CancelBatchResponse()
        for cancel in cancels:
            try:
                await self.cancel_order(cancel)
            except IrixError as e:
                response.status[cancel.id] = str(e)
                continue
            response.status[cancel.id] = OrderStatus.CANCELLED.value
        return response

    async def cancel_all_orders(self, cancel: order.Cancel) -> order.CancelAllResponse:
        """
        Cancel all open orders of the cancel's pair. Returns the orders that
        were open just before.
        """
        symbol = self.format_symbol(cancel.pair, Asset.SPOT)
        open_orders = await self.get_open_orders(OpenOrderParams(market=symbol))
        await self.cancel_all_instrument_orders(symbol)
        status = {item.order_id: OrderStatus.CANCELLED.value for item in open_orders.order_list}
        return order.CancelAllResponse(status=status, count=len(status))

    def _to_detail(self, raw: data.OrderInfo) -> order.Detail:
        return order.Detail(
            exchange=self.name,
            id=raw.order_id,
            client_order_id=raw.client_oid,
            pair=instrument_to_pair(raw.instrument_name),
            asset=Asset.SPOT,
            side=order.string_to_order_side(raw.side),
            type=ORDER_TYPES.get(raw.type, OrderType.UNKNOWN),
            status=ORDER_STATUSES.get(raw.status, OrderStatus.UNKNOWN),
            price=raw.price,
            amount=raw.quantity,
            executed_amount=raw.cumulative_quantity,
            remaining_amount=raw.quantity - raw.cumulative_quantity,
            cost=raw.cumulative_value,
            post_only=raw.exec_inst == data.POST_ONLY,
            date=raw.create_time,
            last_updated=raw.update_time,
        )

    async def get_order_info(self, order_id: str, pair: Pair, asset: Asset) -> order.Detail:
        result = await self.get_order_detail(order_id)
        detail = self._to_detail(result.order_info)
        detail.trades = [
            order.TradeHistory(
                timestamp=item.create_time,
                tid=item.trade_id,
                price=item.traded_price,
                amount=item.traded_quantity,
                exchange=self.name,
                side=order.string_to_order_side(item.side),
                fee=item.fee,
            )
            for item in result.trade_list
        ]
        detail.fee = sum((item.fee for item in result.trade_list), detail.fee)
        return detail

    async def get_active_orders(self, request: order.GetOrdersRequest) -> list[order.Detail]:
        request.validate_request()
        raw: list[data.OrderInfo] = []
        if request.pairs:
            for pair in request.pairs:
                result = await self.get_open_orders(
                    OpenOrderParams(market=self.format_symbol(pair, Asset.SPOT))
                )
                raw.extend(result.order_list)
        else:
            raw = (await self.get_open_orders()).order_list
        return self._filter([self._to_detail(item) for item in raw], request)

    async def get_order_history(self, request: order.GetOrdersRequest) -> list[order.Detail]:
        request.validate_request()
        raw: list[data.OrderInfo] = []
        markets = [self.format_symbol(pair, Asset.SPOT) for pair in request.pairs] or [""]
        for market in markets:
            params = TradeParams(
                market=market,
                start_ts=_ms(request.start),
                end_ts=_ms(request.end),
            )
            raw.extend((await self.get_orders_history(params)).order_list)
        return self._filter([self._to_detail(item) for item in raw], request)

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
        """Only addresses whitelisted on the website are accepted."""
        request.validate_request()
        result = await self.create_withdrawal(
            WithdrawParams(
                currency=str(request.currency).upper(),
                amount=request.amount,
                address=request.crypto.address,
                address_tag=request.crypto.address_tag,
            )
        )
        return withdraw.ExchangeResponse(
            name=self.name, id=result.id, status=_status(data.WithdrawStatus, result.status)
        )

    # =========================================================================
    # WEBSOCKET
    # =========================================================================

    def generate_default_subscriptions(self) -> list[ChannelSubscription]:
        """Ticker, book and trades for every enabled spot pair."""
        return [
            ChannelSubscription(channel=channel, pair=pair, asset=Asset.SPOT)
            for channel in DEFAULT_CHANNELS
            for pair in self.get_enabled_pairs(Asset.SPOT)
        ]

    async def ws_connect(self) -> None:
        """Open the market connection, plus the user connection when credentialed."""
        self.stream = Client(
            self.get_endpoint(URL.WEBSOCKET_SPOT),
            self.api.credentials.key,
            self.secret_bytes(),
        )
        await self.stream.connect(private=self.allow_authenticated_request())
        queue = self.stream.listen()
        self.consumer = asyncio.create_task(self._consume(queue))

    async def ws_disconnect(self) -> None:
        if self.stream is not None:
            await self.stream.shutdown()
            self.stream = None
        if self.consumer is not None:
            self.consumer.cancel()
            self.consumer = None

    async def authenticate_websocket(self) -> None:
        await self._client().authenticate()

    async def subscribe(self, channels: list[ChannelSubscription]) -> None:
        client = self._client()
        for channel, markets in self._group(channels).items():
            match channel:
                case "ticker":
                    await client.subscribe_public_tickers(*markets)
                case "book":
                    await client.subscribe_public_orderbook(STREAM_BOOK_DEPTH, *markets)
                case "trade":
                    await client.subscribe_public_trades(*markets)
                case _:
                    raise WebsocketError(f"{self.name} unsupported channel {channel}")

    async def unsubscribe(self, channels: list[ChannelSubscription]) -> None:
        names = [self._channel_name(sub) for sub in channels]
        await self._client().unsubscribe_public_channels(names)

    def _channel_name(self, sub: ChannelSubscription) -> str:
        market = self.format_symbol(sub.pair, sub.asset)
        if sub.channel == CHANNEL_BOOK:
            return f"{CHANNEL_BOOK}.{market}.{STREAM_BOOK_DEPTH}"
        return f"{sub.channel}.{market}"

    def _group(self, channels: list[ChannelSubscription]) -> dict[str, list[str]]:
        grouped: dict[str, list[str]] = {}
        for sub in channels:
            grouped.setdefault(sub.channel, []).append(self.format_symbol(sub.pair, sub.asset))
        return grouped

    def _client(self) -> Client:
        if self.stream is None:
            raise WebsocketError(f"{self.name} websocket client not connected")
        return self.stream

    async def _consume(self, queue: asyncio.Queue[data.Response]) -> None:
        while True:
            response = await queue.get()
            try:
                self.handle_stream_response(response)
            except (IrixError, PydanticValidationError, ValueError) as e:
                logger.error(f"{self.name} websocket: {e}")

    def handle_stream_response(self, response: data.Response) -> None:
        """
        Route a channel push into the ticker, order book and trade caches.

        Raises:
            WebsocketError: On a non-zero response code
        """
        if response.code != 0:
            raise WebsocketError(
                f"{self.name} websocket error on {response.method} "
                f"code: {response.code}. reason: {response.message}"
            )
        result = response.result
        channel = result.get("channel", "")
        rows: list[dict[str, Any]] = result.get("data") or []
        match channel:
            case "ticker":
                for row in rows:
                    self._process_ticker(data.Ticker.model_validate(row), Asset.SPOT)
            case "book":
                pair = instrument_to_pair(result["instrument_name"])
                for row in rows:
                    snapshot = data.OrderbookData.model_validate(row)
                    book = orderbook.Book(
                        bids=[_level(level) for level in snapshot.bids],
                        asks=[_level(level) for level in snapshot.asks],
                        pair=pair,
                        asset=Asset.SPOT,
                        exchange=self.name,
                        last_update_id=snapshot.t,
                        verification_bypass=not self.can_verify_orderbook,
                    )
                    book.process()
            case "trade":
                trades = []
                for row in rows:
                    item = data.PublicTrade.model_validate(row)
                    trades.append(
                        trade.Data(
                            tid=str(item.trade_id),
                            exchange=self.name,
                            pair=instrument_to_pair(item.instrument_name),
                            asset=Asset.SPOT,
                            side=order.string_to_order_side(item.side),
                            price=item.price,
                            amount=item.quantity,
                            timestamp=item.timestamp,
                        )
                    )
                if trades:
                    self.add_trades_to_buffer(*trades)
            case _:
                logger.debug(f"{self.name} websocket: unhandled {response.method} {channel}")


def _level(row: list[Any]) -> orderbook.Item:
    # [price, quantity, number of orders]
    return orderbook.Item(
        price=row[0],
        amount=row[1],
        order_count=int(row[2]) if len(row) > 2 else 0,
    )


def _status(kind: type[enum.IntEnum], raw: str) -> str:
    if raw.isdigit() and int(raw) in kind._value2member_map_:
        return kind(int(raw)).name
    return raw


def _ms(moment: datetime | None) -> int:
    return int(moment.timestamp() * 1000) if moment is not None else 0
