"""Coinbase Pro exchange adapter."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from decimal import Decimal

from irix.adapters.coinbasepro import data
from irix.adapters.coinbasepro.client import API_URL, SANDBOX_API_URL, CoinbaseProAPI
from irix.adapters.coinbasepro.stream import (
    DEFAULT_CHANNELS,
    CoinbaseStreamHandler,
    ResilientWSClient,
)
from irix.config import ExchangeConfig
from irix.currency import Code, Pair, PairFormat
from irix.enums import URL, Asset, OrderSide, OrderStatus, OrderType, WithdrawPermission
from irix.errors import AssetError, NotFoundError, NotYetImplementedError, WebsocketError
from irix.exchange import (
    Features,
    FeaturesEnabled,
    FeaturesSupported,
    ProtocolFeatures,
    WithdrawalHistory,
)
from irix.model import account, kline, order, orderbook, ticker, trade, withdraw
from irix.stream import ChannelSubscription, Websocket

logger = logging.getLogger(__name__)

WEBSOCKET_URL = "wss://advanced-trade-ws.coinbase.com"

KLINE_INTERVALS = (
    kline.Interval.ONE_MIN,
    kline.Interval.FIVE_MIN,
    kline.Interval.FIFTEEN_MIN,
    kline.Interval.ONE_HOUR,
    kline.Interval.SIX_HOUR,
    kline.Interval.ONE_DAY,
)


def order_status(raw: data.Order) -> OrderStatus:
    match raw.status:
        case data.STATUS_OPEN | data.STATUS_PENDING | data.STATUS_ACTIVE:
            return OrderStatus.ACTIVE
        case data.STATUS_DONE:
            if raw.done_reason == data.DONE_REASON_CANCELED:
                return OrderStatus.CANCELLED
            return OrderStatus.FILLED
        case data.STATUS_REJECTED:
            return OrderStatus.REJECTED
    return OrderStatus.UNKNOWN


class CoinbasePro(CoinbaseProAPI):
    """Coinbase Pro spot with level2 streaming."""

    stream: ResilientWSClient | None = None

    def set_defaults(self) -> None:
        self.name = data.EXCHANGE
        self.enabled = True
        self.verbose = True
        self.api.credentials_validator.requires_key = True
        self.api.credentials_validator.requires_secret = True
        self.api.credentials_validator.requires_client_id = True
        self.api.credentials_validator.requires_base64_decode_secret = True

        fmt = PairFormat(uppercase=True, delimiter="-")
        self.set_global_pair_format(fmt, fmt.model_copy(), Asset.SPOT)

        self.features = Features(
            supports=FeaturesSupported(
                rest=True,
                websocket=True,
                rest_capabilities=ProtocolFeatures(
                    ticker_fetching=True,
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
                    user_trade_history=True,
                    crypto_withdrawal=True,
                    fiat_withdraw=True,
                    trade_fee=True,
                    fiat_withdrawal_fee=True,
                    fiat_deposit_fee=True,
                ),
                websocket_capabilities=ProtocolFeatures(
                    ticker_fetching=True,
                    orderbook_fetching=True,
                    trade_fetching=True,
                    subscribe=True,
                    unsubscribe=True,
                ),
                withdraw_permissions=(
                    WithdrawPermission.AUTO_WITHDRAW_CRYPTO_WITH_API_PERMISSION
                    | WithdrawPermission.AUTO_WITHDRAW_FIAT_WITH_API_PERMISSION
                ),
                kline=kline.ExchangeCapabilities.with_intervals(*KLINE_INTERVALS),
            ),
            enabled=FeaturesEnabled(
                auto_pair_updates=True,
                kline=kline.ExchangeCapabilities.with_intervals(*KLINE_INTERVALS, result_limit=300),
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
        """Apply the config, then point at the sandbox and build the websocket."""
        super().setup(cfg)
        if not cfg.enabled:
            return
        if cfg.use_sandbox:
            self.api.endpoints.set_running(URL.REST_SPOT, SANDBOX_API_URL)
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
        return [product.id for product in await self.get_products()]

    async def update_ticker(self, pair: Pair, asset: Asset) -> ticker.Price:
        """Ticker and 24h stats are separate calls and are merged."""
        symbol = self.format_symbol(pair, asset)
        tick = await self.get_ticker(symbol)
        stats = await self.get_stats(symbol)
        ticker.process_ticker(
            ticker.Price(
                pair=pair,
                last=tick.price,
                high=stats.high,
                low=stats.low,
                bid=tick.bid,
                ask=tick.ask,
                volume=tick.volume,
                open=stats.open,
                exchange=self.name,
                asset=asset,
                last_updated=tick.time,
            )
        )
        return ticker.get_ticker(self.name, pair, asset)

    async def update_orderbook(self, pair: Pair, asset: Asset) -> orderbook.Book:
        raw = await self.get_orderbook(self.format_symbol(pair, asset), level=2)
        book = orderbook.Book(
            bids=[
                orderbook.Item(price=level.price, amount=level.amount, order_count=level.num_orders)
                for level in raw.bids
            ],
            asks=[
                orderbook.Item(price=level.price, amount=level.amount, order_count=level.num_orders)
                for level in raw.asks
            ],
            pair=pair,
            asset=asset,
            exchange=self.name,
            last_update_id=raw.sequence,
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
                amount=item.size,
                timestamp=item.time,
            )
            for item in await self.get_trades(str(formatted))
        ]
        self.add_trades_to_buffer(*result)
        return sorted(result, key=lambda t: t.timestamp)

    def format_exchange_kline_interval(self, interval: kline.Interval) -> str:
        """Granularity in seconds."""
        return str(interval.value)

    async def get_historic_candles(
        self, pair: Pair, asset: Asset, start: datetime, end: datetime, interval: kline.Interval
    ) -> kline.Item:
        self.validate_kline(pair, asset, interval)
        formatted = self.format_exchange_currency(pair, asset)
        rows = await self.get_historic_rates(
            str(formatted),
            start.isoformat(),
            end.isoformat(),
            int(self.format_exchange_kline_interval(interval)),
        )
        item = kline.Item(exchange=self.name, pair=formatted, asset=asset, interval=interval)
        # [time, low, high, open, close, volume]
        item.candles = [
            kline.Candle(
                time=datetime.fromtimestamp(int(row[0]), tz=UTC),
                low=Decimal(row[1]),
                high=Decimal(row[2]),
                open=Decimal(row[3]),
                close=Decimal(row[4]),
                volume=Decimal(row[5]),
            )
            for row in rows
        ]
        item.sort_candles_by_timestamp()
        return item

    async def get_historic_candles_extended(
        self, pair: Pair, asset: Asset, start: datetime, end: datetime, interval: kline.Interval
    ) -> kline.Item:
        self.validate_kline(pair, asset, interval)
        item = kline.Item(exchange=self.name, pair=pair, asset=asset, interval=interval)
        for window in kline.calculate_candle_date_ranges(
            start, end, interval, self.features.enabled.kline.result_limit
        ):
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
        sub = account.SubAccount(
            asset=asset,
            currencies=[
                account.Balance(
                    currency=Code(item.currency),
                    total_value=item.balance,
                    hold=item.hold,
                )
                for item in await self.get_accounts()
            ],
        )
        holdings = account.Holdings(exchange=self.name, accounts=[sub])
        account.process_holdings(holdings, asset)
        return holdings

    async def get_withdrawals_history(self, code: Code) -> list[WithdrawalHistory]:
        """Withdraw transfers; the venue does not tag them with a currency."""
        return [
            WithdrawalHistory(
                status="canceled" if item.canceled_at else ("completed" if item.completed_at else "pending"),
                transfer_id=item.id,
                timestamp=item.created_at,
                currency=str(code).upper(),
                amount=item.amount,
                transfer_type=item.type,
                crypto_to_address=str(item.details.get("sent_to_address", "")),
                crypto_tx_id=str(item.details.get("crypto_transaction_hash", "")),
            )
            for item in await self.get_transfers("withdraw")
        ]

    # =========================================================================
    # ORDERS
    # =========================================================================

    async def submit_order(self, submit: order.Submit) -> order.SubmitResponse:
        submit.validate_order()
        symbol = self.format_symbol(submit.pair, submit.asset)
        side = "buy" if submit.side.is_long else "sell"
        if submit.type is OrderType.MARKET:
            order_id = await self.place_market_order(
                submit.client_id, submit.amount, Decimal("0"), side, symbol
            )
        else:
            order_id = await self.place_limit_order(
                submit.client_id,
                submit.price,
                submit.amount,
                side,
                "IOC" if submit.immediate_or_cancel else "",
                "",
                symbol,
                post_only=submit.post_only,
            )
        return order.SubmitResponse(
            is_order_placed=bool(order_id),
            order_id=order_id,
            fully_matched=submit.type is OrderType.MARKET,
        )

    async def cancel_order(self, cancel: order.Cancel) -> None:
        cancel.validate_order(cancel.standard_cancel())
        await self.cancel_existing_order(cancel.id)

    async def cancel_batch_orders(self, cancels: list[order.Cancel]) -> order.CancelBatchResponse:
        raise NotYetImplementedError()

    async def cancel_all_orders(self, cancel: order.Cancel) -> order.CancelAllResponse:
        """Cancel every open order, scoped to the cancel's pair when one is set."""
        symbol = "" if cancel.pair.is_empty() else self.format_symbol(cancel.pair, Asset.SPOT)
        cancelled = await self.cancel_all_existing_orders(symbol)
        status = {order_id: OrderStatus.CANCELLED.value for order_id in cancelled}
        return order.CancelAllResponse(status=status, count=len(status))

    def _to_detail(self, raw: data.Order) -> order.Detail:
        fmt = self.get_pair_format(Asset.SPOT, False)
        return order.Detail(
            exchange=self.name,
            id=raw.id,
            pair=Pair.from_delimited(raw.product_id, fmt.delimiter),
            asset=Asset.SPOT,
            side=OrderSide.SELL if raw.side == "sell" else OrderSide.BUY,
            type=OrderType.MARKET if raw.type == "market" else OrderType.LIMIT,
            status=order_status(raw),
            price=raw.price,
            amount=raw.size,
            executed_amount=raw.filled_size,
            remaining_amount=raw.size - raw.filled_size,
            fee=raw.fill_fees,
            cost=raw.executed_value,
            post_only=raw.post_only,
            date=raw.created_at,
            last_updated=raw.done_at,
        )

    async def get_order_info(self, order_id: str, pair: Pair, asset: Asset) -> order.Detail:
        detail = self._to_detail(await self.get_order(order_id))
        detail.trades = [
            order.TradeHistory(
                timestamp=fill.created_at,
                tid=str(fill.trade_id),
                price=fill.price,
                amount=fill.size,
                exchange=self.name,
                side=order.string_to_order_side(fill.side),
                fee=fill.fee,
            )
            for fill in await self.get_fills(order_id=order_id)
        ]
        return detail

    async def _orders(self, request: order.GetOrdersRequest, statuses: list[str]) -> list[order.Detail]:
        request.validate_request()
        raw: list[data.Order] = []
        if request.pairs:
            for pair in request.pairs:
                raw.extend(await self.get_orders(statuses, self.format_symbol(pair, Asset.SPOT)))
        else:
            raw = await self.get_orders(statuses)
        details = [self._to_detail(item) for item in raw]
        details = order.filter_orders_by_type(details, request.type)
        details = order.filter_orders_by_time_range(details, request.start, request.end)
        return order.filter_orders_by_side(details, request.side)

    async def get_active_orders(self, request: order.GetOrdersRequest) -> list[order.Detail]:
        return await self._orders(request, data.OPEN_STATUSES)

    async def get_order_history(self, request: order.GetOrdersRequest) -> list[order.Detail]:
        return await self._orders(request, [data.STATUS_DONE])

    # =========================================================================
    # WITHDRAWALS
    # =========================================================================

    async def withdraw_cryptocurrency_funds(
        self, request: withdraw.Request
    ) -> withdraw.ExchangeResponse:
        request.validate_request()
        result = await self.withdraw_crypto(
            request.amount, str(request.currency), request.crypto.address
        )
        return withdraw.ExchangeResponse(name=self.name, id=result.id)

    async def withdraw_fiat_funds(self, request: withdraw.Request) -> withdraw.ExchangeResponse:
        """
        Withdraw to the payment method whose name matches the bank name.

        Raises:
            NotFoundError: If no payment method carries that name
        """
        request.validate_request()
        bank_name = request.fiat.bank.bank_name
        methods = await self.get_pay_methods()
        selected = next((m for m in methods if m.name == bank_name), None)
        if selected is None:
            raise NotFoundError(f"could not find payment method '{bank_name}'")
        result = await self.withdraw_via_payment_method(
            request.amount, str(request.currency), selected.id
        )
        return withdraw.ExchangeResponse(name=self.name, id=result.id)

    async def withdraw_fiat_funds_to_international_bank(
        self, request: withdraw.Request
    ) -> withdraw.ExchangeResponse:
        return await self.withdraw_fiat_funds(request)

    # =========================================================================
    # WEBSOCKET
    # =========================================================================

    def generate_default_subscriptions(self) -> list[ChannelSubscription]:
        """Ticker, level2 and trades for every enabled spot pair."""
        return [
            ChannelSubscription(channel=channel, pair=pair, asset=Asset.SPOT)
            for channel in DEFAULT_CHANNELS
            for pair in self.get_enabled_pairs(Asset.SPOT)
        ]

    async def ws_connect(self) -> None:
        handler = CoinbaseStreamHandler(
            self.name,
            on_trades=self.add_trades_to_buffer,
            verify_orderbook=self.can_verify_orderbook,
        )
        # Market data channels are public
        self.stream = ResilientWSClient(handler)
        await self.stream.start()

    async def ws_disconnect(self) -> None:
        if self.stream is not None:
            await self.stream.stop()
            self.stream = None

    async def subscribe(self, channels: list[ChannelSubscription]) -> None:
        for channel, product_ids in self._group(channels).items():
            await self._client().subscribe(product_ids, [channel])

    async def unsubscribe(self, channels: list[ChannelSubscription]) -> None:
        for channel, product_ids in self._group(channels).items():
            await self._client().unsubscribe(product_ids, [channel])

    def _group(self, channels: list[ChannelSubscription]) -> dict[str, list[str]]:
        grouped: dict[str, list[str]] = {}
        for sub in channels:
            grouped.setdefault(sub.channel, []).append(self.format_symbol(sub.pair, sub.asset))
        return grouped

    def _client(self) -> ResilientWSClient:
        if self.stream is None:
            raise WebsocketError(f"{self.name} websocket client not connected")
        return self.stream
