"""Gemini exchange adapter."""

from __future__ import annotations

import logging
from datetime import datetime

from irix.adapters.gemini import data
from irix.adapters.gemini.client import API_URL, SANDBOX_API_URL, GeminiAPI
from irix.currency import Code, Pair, PairFormat
from irix.enums import URL, Asset, OrderSide, OrderStatus, OrderType, WithdrawPermission
from irix.errors import AssetError, OrderValidationError, PairError
from irix.exchange import (
    Features,
    FeaturesEnabled,
    FeaturesSupported,
    FundHistory,
    ProtocolFeatures,
    WithdrawalHistory,
)
from irix.model import account, kline, order, orderbook, ticker, trade, withdraw

logger = logging.getLogger(__name__)

RECENT_TRADES_LIMIT = 500

KLINE_INTERVALS: dict[kline.Interval, str] = {
    kline.Interval.ONE_MIN: "1m",
    kline.Interval.FIVE_MIN: "5m",
    kline.Interval.FIFTEEN_MIN: "15m",
    kline.Interval.THIRTY_MIN: "30m",
    kline.Interval.ONE_HOUR: "1hr",
    kline.Interval.SIX_HOUR: "6hr",
    kline.Interval.ONE_DAY: "1day",
}


def split_symbol(symbol: str) -> Pair:
    """
    Split an undelimited symbol on its quote currency.

    Raises:
        PairError: If no known quote currency ends the symbol
    """
    upper = symbol.upper()
    for quote in data.QUOTE_CURRENCIES:
        if upper.endswith(quote) and len(upper) > len(quote):
            return Pair(upper[: -len(quote)], quote)
    raise PairError(f"cannot split symbol {symbol}")


def order_status(raw: data.Order) -> OrderStatus:
    if raw.is_cancelled:
        if raw.executed_amount > 0:
            return OrderStatus.PARTIALLY_CANCELLED
        return OrderStatus.CANCELLED
    if raw.is_live:
        if raw.executed_amount > 0:
            return OrderStatus.PARTIALLY_FILLED
        return OrderStatus.ACTIVE
    if raw.remaining_amount == 0 and raw.executed_amount > 0:
        return OrderStatus.FILLED
    return OrderStatus.CLOSED


class Gemini(GeminiAPI):
    """Gemini spot trading over REST."""

    def set_defaults(self) -> None:
        self.name = data.EXCHANGE
        self.enabled = True
        self.verbose = True
        self.api.credentials_validator.requires_key = True
        self.api.credentials_validator.requires_secret = True

        request_fmt = PairFormat(uppercase=False, delimiter="")
        config_fmt = PairFormat(uppercase=True, delimiter="_")
        self.set_global_pair_format(request_fmt, config_fmt, Asset.SPOT)

        intervals = tuple(KLINE_INTERVALS)
        self.features = Features(
            supports=FeaturesSupported(
                rest=True,
                rest_capabilities=ProtocolFeatures(
                    ticker_fetching=True,
                    trade_fetching=True,
                    kline_fetching=True,
                    orderbook_fetching=True,
                    auto_pair_updates=True,
                    account_info=True,
                    get_order=True,
                    get_orders=True,
                    cancel_order=True,
                    cancel_orders=True,
                    submit_order=True,
                    user_trade_history=True,
                    crypto_deposit=True,
                    crypto_withdrawal=True,
                    withdrawal_history=True,
                    deposit_history=True,
                    trade_fee=True,
                ),
                withdraw_permissions=WithdrawPermission.AUTO_WITHDRAW_CRYPTO_WITH_API_PERMISSION
                | WithdrawPermission.AUTO_WITHDRAW_CRYPTO_WITH_SETUP
                | WithdrawPermission.WITHDRAW_FIAT_VIA_WEBSITE_ONLY,
                kline=kline.ExchangeCapabilities.with_intervals(*intervals),
            ),
            enabled=FeaturesEnabled(
                auto_pair_updates=True,
                kline=kline.ExchangeCapabilities.with_intervals(*intervals),
            ),
        )
        self.requester = self.new_requester(self.rate_limiter())
        self.set_default_endpoints({URL.REST_SPOT: API_URL, URL.REST_SANDBOX: SANDBOX_API_URL})

    def use_sandbox(self) -> None:
        """Point spot requests at the sandbox."""
        self.api.endpoints.set_running(URL.REST_SPOT, SANDBOX_API_URL)

    # =========================================================================
    # MARKET DATA
    # =========================================================================

    async def fetch_tradable_pairs(self, asset: Asset) -> list[str]:
        if asset is not Asset.SPOT:
            raise AssetError(f"asset type of {asset.value} is not supported by {self.name}")
        pairs: list[str] = []
        for symbol in await self.get_symbols():
            try:
                pair = split_symbol(symbol)
            except PairError:
                logger.warning(f"{self.name} skipping unrecognised symbol {symbol}")
                continue
            pairs.append(f"{pair.base}_{pair.quote}")
        return pairs

    async def update_ticker(self, pair: Pair, asset: Asset) -> ticker.Price:
        raw = await self.get_ticker(self.format_symbol(pair, asset))
        ticker.process_ticker(
            ticker.Price(
                pair=pair,
                last=raw.last,
                bid=raw.bid,
                ask=raw.ask,
                volume=raw.volume_of(str(pair.base)),
                quote_volume=raw.volume_of(str(pair.quote)),
                last_updated=raw.timestamp,
                exchange=self.name,
                asset=asset,
            )
        )
        return ticker.get_ticker(self.name, pair, asset)

    async def update_orderbook(self, pair: Pair, asset: Asset) -> orderbook.Book:
        raw = await self.get_orderbook(self.format_symbol(pair, asset))
        book = orderbook.Book(
            bids=[orderbook.Item(price=level.price, amount=level.amount) for level in raw.bids],
            asks=[orderbook.Item(price=level.price, amount=level.amount) for level in raw.asks],
            pair=pair,
            asset=asset,
            exchange=self.name,
            verification_bypass=not self.can_verify_orderbook,
        )
        book.process()
        return orderbook.get_orderbook(self.name, pair, asset)

    def _to_trades(self, rows: list[data.Trade], pair: Pair, asset: Asset) -> list[trade.Data]:
        return [
            trade.Data(
                tid=str(item.tid),
                exchange=self.name,
                pair=pair,
                asset=asset,
                side=OrderSide.BUY if item.type == "buy" else OrderSide.SELL,
                price=item.price,
                amount=item.amount,
                timestamp=item.timestamp,
            )
            for item in rows
            if not item.broken
        ]

    async def get_recent_trades(self, pair: Pair, asset: Asset) -> list[trade.Data]:
        rows = await self.get_trades(self.format_symbol(pair, asset), limit=RECENT_TRADES_LIMIT)
        result = self._to_trades(rows, pair, asset)
        self.add_trades_to_buffer(*result)
        return sorted(result, key=lambda t: t.timestamp)

    async def get_historic_trades(
        self, pair: Pair, asset: Asset, start: datetime, end: datetime
    ) -> list[trade.Data]:
        """Page forward from start; each page begins at the newest trade seen."""
        symbol = self.format_symbol(pair, asset)
        seen: dict[str, trade.Data] = {}
        since = start
        while since < end:
            rows = await self.get_trades(
                symbol, int(since.timestamp() * 1000), RECENT_TRADES_LIMIT
            )
            batch = self._to_trades(rows, pair, asset)
            fresh = [item for item in batch if item.tid not in seen]
            if not fresh:
                break
            seen.update((item.tid, item) for item in fresh)
            newest = max(item.timestamp for item in batch)
            if newest <= since or len(rows) < RECENT_TRADES_LIMIT:
                break
            since = newest
        result = sorted(seen.values(), key=lambda t: t.timestamp)
        self.add_trades_to_buffer(*result)
        return trade.filter_trades_by_time(result, start, end)

    def format_exchange_kline_interval(self, interval: kline.Interval) -> str:
        return KLINE_INTERVALS[interval]

    async def get_historic_candles(
        self, pair: Pair, asset: Asset, start: datetime, end: datetime, interval: kline.Interval
    ) -> kline.Item:
        """The candle endpoint serves a fixed recent window, cut down to [start, end]."""
        self.validate_kline(pair, asset, interval)
        rows = await self.get_candles(
            self.format_symbol(pair, asset), self.format_exchange_kline_interval(interval)
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
        balances = [
            account.Balance(
                currency=Code(item.currency.upper()),
                total_value=item.amount,
                hold=item.amount - item.available,
            )
            for item in await self.get_balances()
        ]
        sub = account.SubAccount(asset=asset, currencies=balances)
        holdings = account.Holdings(exchange=self.name, accounts=[sub])
        account.process_holdings(holdings, asset)
        return holdings

    async def get_deposit_address(self, code: Code, account_id: str = "") -> str:
        """account_id is used as the address label."""
        return (await self.get_crypto_deposit_address(str(code.lower()), account_id)).address

    async def get_funding_history(self) -> list[FundHistory]:
        return [
            FundHistory(
                exchange_name=self.name,
                status=item.status,
                transfer_id=str(item.eid),
                timestamp=item.timestamp,
                currency=item.currency.upper(),
                amount=item.amount,
                transfer_type=item.type,
                crypto_to_address=item.destination,
                crypto_tx_id=item.tx_hash,
            )
            for item in await self.get_transfers()
        ]

    async def get_withdrawals_history(self, code: Code) -> list[WithdrawalHistory]:
        return [
            WithdrawalHistory(
                status=item.status,
                transfer_id=str(item.eid),
                timestamp=item.timestamp,
                currency=item.currency.upper(),
                amount=item.amount,
                transfer_type=item.type,
                crypto_to_address=item.destination,
                crypto_tx_id=item.tx_hash,
            )
            for item in await self.get_transfers()
            if item.type.lower() == "withdrawal"
            and (code.is_empty() or item.currency.upper() == str(code.upper()))
        ]

    # =========================================================================
    # ORDERS
    # =========================================================================

    async def submit_order(self, submit: order.Submit) -> order.SubmitResponse:
        """
        Only limit orders are accepted; post-only and IOC map to order options.

        Raises:
            OrderValidationError: For anything but a limit order
        """
        submit.validate_order()
        if submit.type is not OrderType.LIMIT:
            raise OrderValidationError(f"{self.name} only supports limit orders")
        options: list[str] = []
        if submit.post_only:
            options.append(data.OPTION_MAKER_OR_CANCEL)
        elif submit.immediate_or_cancel:
            options.append(data.OPTION_IMMEDIATE_OR_CANCEL)
        raw = await self.new_order(
            self.format_symbol(submit.pair, Asset.SPOT),
            "buy" if submit.side.is_long else "sell",
            submit.amount,
            submit.price,
            options=options,
            client_order_id=submit.client_order_id,
        )
        return order.SubmitResponse(
            is_order_placed=True,
            fully_matched=not raw.is_live and raw.remaining_amount == 0,
            order_id=raw.order_id,
        )

    async def cancel_order(self, cancel: order.Cancel) -> None:
        cancel.validate_order(cancel.standard_cancel())
        if not cancel.id.isdigit():
            raise OrderValidationError(f"{self.name} order id {cancel.id} is not numeric")
        await self.cancel_existing_order(int(cancel.id))

    async def cancel_all_orders(self, cancel: order.Cancel) -> order.CancelAllResponse:
        """Cancels every open order on the account, not just cancel.pair."""
        result = await self.cancel_existing_orders()
        status = {str(order_id): "Cancelled" for order_id in result.details.cancelled_orders}
        for order_id in result.details.cancel_rejects:
            status[str(order_id)] = "Rejected"
        return order.CancelAllResponse(status=status, count=len(result.details.cancelled_orders))

    def _to_detail(self, raw: data.Order) -> order.Detail:
        try:
            pair = split_symbol(raw.symbol)
        except PairError:
            pair = Pair()
        options = set(raw.options)
        return order.Detail(
            exchange=self.name,
            id=raw.order_id,
            client_order_id=raw.client_order_id,
            pair=pair,
            side=OrderSide.BUY if raw.side == "buy" else OrderSide.SELL,
            type=OrderType.LIMIT,
            status=order_status(raw),
            price=raw.price,
            amount=raw.original_amount,
            executed_amount=raw.executed_amount,
            remaining_amount=raw.remaining_amount,
            average_executed_price=raw.avg_execution_price,
            post_only=data.OPTION_MAKER_OR_CANCEL in options,
            date=raw.timestamp,
        )

    async def get_order_info(self, order_id: str, pair: Pair, asset: Asset) -> order.Detail:
        return self._to_detail(await self.get_order_status(int(order_id)))

    async def get_active_orders(self, request: order.GetOrdersRequest) -> list[order.Detail]:
        request.validate_request()
        details = [self._to_detail(item) for item in await self.get_orders()]
        details = order.filter_orders_by_currencies(details, request.pairs)
        return self._filter(details, request)

    async def get_order_history(self, request: order.GetOrdersRequest) -> list[order.Detail]:
        """
        Filled trades of the requested pairs, one detail per fill.

        Raises:
            OrderValidationError: Without at least one pair
        """
        request.validate_request()
        if not request.pairs:
            raise OrderValidationError(f"{self.name} order history requires at least one pair")
        since = int(request.start.timestamp()) if request.start else 0
        details: list[order.Detail] = []
        for pair in request.pairs:
            for fill in await self.get_trade_history(self.format_symbol(pair, Asset.SPOT), since):
                side = OrderSide.BUY if fill.type.lower() == "buy" else OrderSide.SELL
                details.append(
                    order.Detail(
                        exchange=self.name,
                        id=fill.order_id,
                        pair=pair,
                        side=side,
                        type=OrderType.LIMIT,
                        status=OrderStatus.FILLED,
                        price=fill.price,
                        amount=fill.amount,
                        executed_amount=fill.amount,
                        fee=fill.fee_amount,
                        date=fill.timestamp,
                        trades=[
                            order.TradeHistory(
                                price=fill.price,
                                amount=fill.amount,
                                fee=fill.fee_amount,
                                exchange=self.name,
                                tid=str(fill.tid),
                                side=side,
                                timestamp=fill.timestamp,
                                is_maker=not fill.aggressor,
                            )
                        ],
                    )
                )
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
        response = await self.withdraw_crypto(
            str(request.currency.lower()), request.crypto.address, request.amount
        )
        return withdraw.ExchangeResponse(
            name=self.name, id=response.withdrawal_id or response.tx_hash, status=response.message
        )
