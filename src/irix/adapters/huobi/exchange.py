"""Huobi Pro exchange adapter."""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from irix.adapters.huobi import data
from irix.adapters.huobi.client import API_URL, HuobiAPI
from irix.currency import Code, Pair, PairFormat
from irix.enums import URL, Asset, OrderSide, OrderStatus, OrderType, WithdrawPermission
from irix.errors import AssetError, IrixError, NotFoundError, OrderValidationError
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

RECENT_TRADES_LIMIT = 2000
OPEN_ORDERS_LIMIT = 500
HISTORY_STATES = ",".join(
    (data.STATE_FILLED, data.STATE_PARTIAL_CANCELED, data.STATE_CANCELED)
)

KLINE_INTERVALS: dict[kline.Interval, str] = {
    kline.Interval.ONE_MIN: "1min",
    kline.Interval.FIVE_MIN: "5min",
    kline.Interval.FIFTEEN_MIN: "15min",
    kline.Interval.THIRTY_MIN: "30min",
    kline.Interval.ONE_HOUR: "60min",
    kline.Interval.FOUR_HOUR: "4hour",
    kline.Interval.ONE_DAY: "1day",
    kline.Interval.ONE_WEEK: "1week",
    kline.Interval.ONE_MONTH: "1mon",
    kline.Interval.ONE_YEAR: "1year",
}

ORDER_STATUSES: dict[str, OrderStatus] = {
    data.STATE_CREATED: OrderStatus.NEW,
    data.STATE_SUBMITTED: OrderStatus.ACTIVE,
    data.STATE_PARTIAL_FILLED: OrderStatus.PARTIALLY_FILLED,
    data.STATE_PARTIAL_CANCELED: OrderStatus.PARTIALLY_CANCELLED,
    data.STATE_FILLED: OrderStatus.FILLED,
    data.STATE_CANCELED: OrderStatus.CANCELLED,
    data.STATE_CANCELLING: OrderStatus.PENDING_CANCEL,
}

ORDER_TYPES: dict[str, OrderType] = {
    "limit": OrderType.LIMIT,
    "market": OrderType.MARKET,
    "ioc": OrderType.IMMEDIATE_OR_CANCEL,
    "limit-maker": OrderType.POST_ONLY,
    "stop-limit": OrderType.STOP_LIMIT,
}


def parse_order_type(raw: str) -> tuple[OrderSide, OrderType]:
    """Split a venue type such as "buy-limit-maker" into side and type."""
    side, _, kind = raw.partition("-")
    order_side = OrderSide.BUY if side == "buy" else OrderSide.SELL
    return order_side, ORDER_TYPES.get(kind, OrderType.UNKNOWN)


class Huobi(HuobiAPI):
    """Huobi Pro spot trading over REST."""

    def __init__(self) -> None:
        super().__init__()
        self.account_id = ""

    def set_defaults(self) -> None:
        self.name = data.EXCHANGE
        self.enabled = True
        self.verbose = True
        self.api.credentials_validator.requires_key = True
        self.api.credentials_validator.requires_secret = True

        request_fmt = PairFormat(uppercase=False, delimiter="")
        config_fmt = PairFormat(uppercase=True, delimiter="-")
        self.set_global_pair_format(request_fmt, config_fmt, Asset.SPOT)

        intervals = tuple(KLINE_INTERVALS)
        self.features = Features(
            supports=FeaturesSupported(
                rest=True,
                rest_capabilities=ProtocolFeatures(
                    ticker_batching=True,
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
                    trade_fee=True,
                ),
                withdraw_permissions=WithdrawPermission.AUTO_WITHDRAW_CRYPTO_WITH_SETUP
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

    async def get_spot_account_id(self) -> str:
        """
        Look up the spot account id once and cache it.

        Raises:
            NotFoundError: If the key has no spot account
        """
        if self.account_id:
            return self.account_id
        for item in await self.get_accounts():
            if item.type == data.SPOT_ACCOUNT:
                self.account_id = str(item.id)
                return self.account_id
        raise NotFoundError(f"{self.name} no spot account found")

    # =========================================================================
    # MARKET DATA
    # =========================================================================

    async def fetch_tradable_pairs(self, asset: Asset) -> list[str]:
        if asset is not Asset.SPOT:
            raise AssetError(f"asset type of {asset.value} is not supported by {self.name}")
        return [
            f"{item.base_currency.upper()}-{item.quote_currency.upper()}"
            for item in await self.get_symbols()
            if item.state == data.SYMBOL_ONLINE
        ]

    async def update_ticker(self, pair: Pair, asset: Asset) -> ticker.Price:
        """Refresh every enabled pair from one market/tickers request."""
        wanted = {self.format_symbol(p, asset): p for p in self.get_enabled_pairs(asset)}
        wanted.setdefault(self.format_symbol(pair, asset), pair)
        for item in await self.get_tickers():
            matched = wanted.get(item.symbol)
            if matched is None:
                continue
            ticker.process_ticker(
                ticker.Price(
                    pair=matched,
                    last=item.close,
                    open=item.open,
                    close=item.close,
                    high=item.high,
                    low=item.low,
                    bid=item.bid,
                    ask=item.ask,
                    volume=item.amount,
                    quote_volume=item.vol,
                    exchange=self.name,
                    asset=asset,
                )
            )
        return ticker.get_ticker(self.name, pair, asset)

    async def update_orderbook(self, pair: Pair, asset: Asset) -> orderbook.Book:
        raw = await self.get_depth(self.format_symbol(pair, asset))
        book = orderbook.Book(
            bids=[orderbook.Item(price=price, amount=amount) for price, amount in raw.bids],
            asks=[orderbook.Item(price=price, amount=amount) for price, amount in raw.asks],
            pair=pair,
            asset=asset,
            exchange=self.name,
            last_update_id=raw.version,
            verification_bypass=not self.can_verify_orderbook,
        )
        book.process()
        return orderbook.get_orderbook(self.name, pair, asset)

    async def get_recent_trades(self, pair: Pair, asset: Asset) -> list[trade.Data]:
        result = [
            trade.Data(
                tid=str(item.trade_id or item.id),
                exchange=self.name,
                pair=pair,
                asset=asset,
                side=OrderSide.BUY if item.direction == "buy" else OrderSide.SELL,
                price=item.price,
                amount=item.amount,
                timestamp=item.ts,
            )
            for item in await self.get_trade_history(
                self.format_symbol(pair, asset), RECENT_TRADES_LIMIT
            )
        ]
        self.add_trades_to_buffer(*result)
        return sorted(result, key=lambda t: t.timestamp)

    def format_exchange_kline_interval(self, interval: kline.Interval) -> str:
        return KLINE_INTERVALS[interval]

    async def get_historic_candles(
        self, pair: Pair, asset: Asset, start: datetime, end: datetime, interval: kline.Interval
    ) -> kline.Item:
        """
        The kline endpoint takes no time range; the most recent candles are
        fetched and cut down to [start, end].
        """
        self.validate_kline(pair, asset, interval)
        formatted = self.format_exchange_currency(pair, asset)
        rows = await self.get_spot_kline(
            self.format_symbol(pair, asset),
            self.format_exchange_kline_interval(interval),
            self.features.enabled.kline.result_limit,
        )
        item = kline.Item(
            exchange=self.name,
            pair=formatted,
            asset=asset,
            interval=interval,
            candles=[
                kline.Candle(
                    time=row.time,
                    open=row.open,
                    high=row.high,
                    low=row.low,
                    close=row.close,
                    volume=row.amount,
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
        """Trade and frozen balances summed per currency; frozen counts as hold."""
        totals: dict[str, account.Balance] = {}
        for acct in await self.get_accounts():
            if acct.type != data.SPOT_ACCOUNT:
                continue
            balance = await self.get_account_balance(str(acct.id))
            for row in balance.balances:
                code = row.currency.upper()
                entry = totals.setdefault(code, account.Balance(currency=Code(code)))
                entry.total_value += row.balance
                if row.type == data.BALANCE_FROZEN:
                    entry.hold += row.balance
        sub = account.SubAccount(asset=asset, currencies=list(totals.values()))
        holdings = account.Holdings(exchange=self.name, accounts=[sub])
        account.process_holdings(holdings, asset)
        return holdings

    async def get_deposit_address(self, code: Code, account_id: str = "") -> str:
        """
        account_id selects a chain when the currency lives on several.

        Raises:
            NotFoundError: If no address matches
        """
        for item in await self.query_deposit_address(str(code)):
            if account_id and item.chain != account_id:
                continue
            return item.address
        raise NotFoundError(f"{self.name} has no deposit address for {code}")

    async def get_funding_history(self) -> list[FundHistory]:
        history: list[FundHistory] = []
        for transfer_type in ("deposit", "withdraw"):
            for item in await self.search_deposit_withdraw(transfer_type):
                history.append(
                    FundHistory(
                        exchange_name=self.name,
                        status=item.state,
                        transfer_id=str(item.id),
                        timestamp=item.created_at,
                        currency=item.currency.upper(),
                        amount=item.amount,
                        fee=item.fee,
                        transfer_type=item.type,
                        crypto_to_address=item.address if transfer_type == "withdraw" else "",
                        crypto_tx_id=item.tx_hash,
                    )
                )
        return history

    async def get_withdrawals_history(self, code: Code) -> list[WithdrawalHistory]:
        currency = "" if code.is_empty() else str(code)
        return [
            WithdrawalHistory(
                status=item.state,
                transfer_id=str(item.id),
                timestamp=item.created_at,
                currency=item.currency.upper(),
                amount=item.amount,
                fee=item.fee,
                transfer_type=item.type,
                crypto_to_address=item.address,
                crypto_tx_id=item.tx_hash,
            )
            for item in await self.search_deposit_withdraw("withdraw", currency)
        ]

    # =========================================================================
    # ORDERS
    # =========================================================================

    async def submit_order(self, submit: order.Submit) -> order.SubmitResponse:
        """
        Market buys spend submit.amount of the quote currency.

        Raises:
            OrderValidationError: If the order breaks loaded size limits
        """
        submit.validate_order()
        self.check_order_execution_limits(
            submit.asset, submit.pair, submit.price, submit.amount, submit.type
        )
        side = "buy" if submit.side.is_long else "sell"
        if submit.type is OrderType.MARKET:
            kind = "market"
        elif submit.post_only:
            kind = "limit-maker"
        elif submit.immediate_or_cancel:
            kind = "ioc"
        else:
            kind = "limit"
        order_id = await self.spot_new_order(
            await self.get_spot_account_id(),
            self.format_symbol(submit.pair, submit.asset),
            f"{side}-{kind}",
            submit.amount,
            submit.price,
            submit.client_order_id or submit.client_id,
        )
        return order.SubmitResponse(is_order_placed=True, order_id=order_id)

    async def cancel_order(self, cancel: order.Cancel) -> None:
        cancel.validate_order(cancel.standard_cancel())
        if not cancel.id.isdigit():
            raise OrderValidationError(f"{self.name} order id {cancel.id} is not numeric")
        await self.cancel_existing_order(cancel.id)

    async def cancel_batch_orders(self, cancels: list[order.Cancel]) -> order.CancelBatchResponse:
        ids: list[str] = []
        for cancel in cancels:
            cancel.validate_order(cancel.standard_cancel())
            ids.append(cancel.id)
        response = await self.cancel_order_batch(ids)
        status = {order_id: "Success" for order_id in response.success}
        for failed in response.failed:
            status[failed.order_id] = failed.err_msg or failed.err_code
        return order.CancelBatchResponse(status=status)

    async def cancel_all_orders(self, cancel: order.Cancel) -> order.CancelAllResponse:
        """The venue reports counts only, so status stays empty."""
        symbol = "" if cancel.pair.is_empty() else self.format_symbol(cancel.pair, Asset.SPOT)
        response = await self.cancel_open_orders_batch(await self.get_spot_account_id(), symbol)
        if response.failed_count:
            logger.warning(f"{self.name} failed to cancel {response.failed_count} orders")
        return order.CancelAllResponse(count=response.success_count)

    def _to_detail(self, raw: data.OrderInfo, pair: Pair | None = None) -> order.Detail:
        side, order_type = parse_order_type(raw.type)
        status = ORDER_STATUSES.get(raw.state, OrderStatus.UNKNOWN)
        if status is OrderStatus.UNKNOWN:
            logger.error(f"{self.name} unexpected status {raw.state} on order {raw.id}")
        amount = raw.amount
        remaining = max(amount - raw.filled_amount, Decimal("0"))
        average = raw.filled_cash_amount / raw.filled_amount if raw.filled_amount else Decimal("0")
        return order.Detail(
            exchange=self.name,
            id=str(raw.id),
            client_order_id=raw.client_order_id,
            account_id=str(raw.account_id),
            pair=pair if pair is not None else Pair(),
            side=side,
            type=order_type,
            status=status,
            price=raw.price,
            amount=amount,
            executed_amount=raw.filled_amount,
            remaining_amount=remaining,
            average_executed_price=average,
            fee=raw.filled_fees,
            cost=raw.filled_cash_amount,
            post_only=order_type is OrderType.POST_ONLY,
            date=raw.created_at,
            last_updated=raw.finished_at or raw.canceled_at,
        )

    async def get_order_info(self, order_id: str, pair: Pair, asset: Asset) -> order.Detail:
        """Order state plus its fills."""
        detail = self._to_detail(await self.get_order(order_id), pair)
        for fill in await self.get_order_match_results(order_id):
            fill_side, fill_type = parse_order_type(fill.type)
            detail.trades.append(
                order.TradeHistory(
                    price=fill.price,
                    amount=fill.filled_amount,
                    fee=fill.filled_fees,
                    exchange=self.name,
                    tid=str(fill.trade_id or fill.id),
                    type=fill_type,
                    side=fill_side,
                    timestamp=fill.created_at,
                    is_maker=fill.role == "maker",
                )
            )
        return detail

    async def get_active_orders(self, request: order.GetOrdersRequest) -> list[order.Detail]:
        request.validate_request()
        account_id = await self.get_spot_account_id()
        pairs = request.pairs or list(self.get_enabled_pairs(Asset.SPOT))
        details: list[order.Detail] = []
        for pair in pairs:
            raw = await self.get_open_orders(
                account_id, self.format_symbol(pair, Asset.SPOT), size=OPEN_ORDERS_LIMIT
            )
            details.extend(self._to_detail(item, pair) for item in raw)
        return self._filter(details, request)

    async def get_order_history(self, request: order.GetOrdersRequest) -> list[order.Detail]:
        """Finished orders for each requested pair."""
        request.validate_request()
        if not request.pairs:
            raise OrderValidationError(f"{self.name} order history requires at least one pair")
        details: list[order.Detail] = []
        for pair in request.pairs:
            raw = await self.get_orders(
                self.format_symbol(pair, Asset.SPOT), HISTORY_STATES, start=request.start, end=request.end
            )
            details.extend(self._to_detail(item, pair) for item in raw)
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
        withdraw_id = await self.withdraw(
            str(request.currency),
            request.crypto.address,
            request.crypto.address_tag,
            request.amount,
            request.crypto.fee_amount,
        )
        return withdraw.ExchangeResponse(name=self.name, id=withdraw_id)

    async def update_order_execution_limits(self, asset: Asset) -> None:
        """Load size and precision bounds from the symbol listing."""
        if asset is not Asset.SPOT:
            raise AssetError(f"asset type of {asset.value} is not supported by {self.name}")
        levels = [
            order.MinMaxLevel(
                pair=Pair(item.base_currency.upper(), item.quote_currency.upper()),
                asset=asset,
                min_amount=item.min_order_amt,
                max_amount=item.max_order_amt,
                min_notional=item.min_order_value,
                step_price=Decimal(1).scaleb(-item.price_precision),
                step_amount=Decimal(1).scaleb(-item.amount_precision),
            )
            for item in await self.get_symbols()
        ]
        self.execution_limits.load(levels)
