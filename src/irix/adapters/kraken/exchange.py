"""Kraken exchange adapter."""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from irix.adapters.kraken import data
from irix.adapters.kraken.client import API_URL, KrakenAPI
from irix.currency import Code, Pair, PairFormat
from irix.enums import URL, Asset, OrderSide, OrderStatus, OrderType, WithdrawPermission
from irix.errors import AssetError, IrixError, NotFoundError
from irix.exchange import (
    Features,
    FeaturesEnabled,
    FeaturesSupported,
    ProtocolFeatures,
    WithdrawalHistory,
)
from irix.model import account, kline, order, orderbook, ticker, trade, withdraw

logger = logging.getLogger(__name__)

KLINE_INTERVALS = (
    kline.Interval.ONE_MIN,
    kline.Interval.FIVE_MIN,
    kline.Interval.FIFTEEN_MIN,
    kline.Interval.THIRTY_MIN,
    kline.Interval.ONE_HOUR,
    kline.Interval.FOUR_HOUR,
    kline.Interval.ONE_DAY,
    kline.Interval.ONE_WEEK,
    kline.Interval.FIFTEEN_DAY,
)

ORDER_STATUSES: dict[str, OrderStatus] = {
    data.STATUS_PENDING: OrderStatus.NEW,
    data.STATUS_OPEN: OrderStatus.ACTIVE,
    data.STATUS_CLOSED: OrderStatus.FILLED,
    data.STATUS_CANCELED: OrderStatus.CANCELLED,
    data.STATUS_EXPIRED: OrderStatus.EXPIRED,
}

ORDER_TYPES: dict[str, OrderType] = {
    "limit": OrderType.LIMIT,
    "market": OrderType.MARKET,
    "stop-loss": OrderType.STOP,
    "stop-loss-limit": OrderType.STOP_LIMIT,
    "take-profit": OrderType.TAKE_PROFIT,
    "take-profit-limit": OrderType.TAKE_PROFIT,
    "trailing-stop": OrderType.TRAILING_STOP,
}


def compatible_order_side(side: str) -> OrderSide:
    """
    Raises:
        ValueError: For anything but buy or sell
    """
    match side.lower():
        case "buy":
            return OrderSide.BUY
        case "sell":
            return OrderSide.SELL
    raise ValueError("invalid side received")


def compatible_order_type(order_type: str) -> OrderType:
    """Map derivatives order codes (lmt, stp, take_profit)."""
    match order_type:
        case "lmt":
            return OrderType.LIMIT
        case "stp":
            return OrderType.STOP
        case "take_profit":
            return OrderType.TAKE_PROFIT
    raise ValueError("invalid order type")


def compatible_fill_order_type(fill_type: str) -> OrderType:
    """Maker fills rest as limits; taker fills cross as market orders."""
    match fill_type:
        case "maker":
            return OrderType.LIMIT
        case "taker":
            return OrderType.MARKET
        case "liquidation":
            return OrderType.LIQUIDATION
    raise ValueError("invalid order price type")


class Kraken(KrakenAPI):
    """Kraken spot trading over REST."""

    def __init__(self) -> None:
        super().__init__()
        # Kraken asset and pair names to their altnames, XXBT -> XBT
        self.altnames: dict[str, str] = {}

    def set_defaults(self) -> None:
        self.name = data.EXCHANGE
        self.enabled = True
        self.verbose = True
        self.api.credentials_validator.requires_key = True
        self.api.credentials_validator.requires_secret = True
        self.api.credentials_validator.requires_base64_decode_secret = True

        request_fmt = PairFormat(uppercase=True, delimiter="", separator=",")
        config_fmt = PairFormat(uppercase=True, delimiter="_", separator=",")
        self.set_global_pair_format(request_fmt, config_fmt, Asset.SPOT)

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
                    user_trade_history=True,
                    crypto_deposit=True,
                    crypto_withdrawal=True,
                    fiat_withdraw=True,
                    withdrawal_history=True,
                    trade_fee=True,
                    crypto_deposit_fee=True,
                ),
                withdraw_permissions=WithdrawPermission.AUTO_WITHDRAW_CRYPTO_WITH_SETUP
                | WithdrawPermission.WITHDRAW_CRYPTO_WITH_2FA
                | WithdrawPermission.AUTO_WITHDRAW_FIAT_WITH_SETUP
                | WithdrawPermission.WITHDRAW_FIAT_WITH_2FA,
                kline=kline.ExchangeCapabilities.with_intervals(*KLINE_INTERVALS),
            ),
            enabled=FeaturesEnabled(
                auto_pair_updates=True,
                kline=kline.ExchangeCapabilities.with_intervals(*KLINE_INTERVALS, result_limit=720),
            ),
        )
        self.requester = self.new_requester(self.rate_limiter())
        self.set_default_endpoints({URL.REST_SPOT: API_URL})

    async def seed_assets(self) -> None:
        """Load the asset and pair name translations."""
        for name, item in (await self.get_assets()).items():
            self.altnames[name] = item.altname
        for name, pair in (await self.get_asset_pairs()).items():
            self.altnames[name] = pair.altname

    async def _ensure_seeded(self) -> None:
        if not self.altnames:
            await self.seed_assets()

    def lookup_altname(self, name: str) -> str:
        return self.altnames.get(name, "")

    def _pair_from_symbol(self, symbol: str) -> Pair:
        for pair in self.get_available_pairs(Asset.SPOT):
            if self.format_symbol(pair, Asset.SPOT) == symbol.upper():
                return pair
        logger.warning(f"{self.name} unable to match pair {symbol}")
        return Pair()

    # =========================================================================
    # MARKET DATA
    # =========================================================================

    async def fetch_tradable_pairs(self, asset: Asset) -> list[str]:
        """Spot pairs by altname, dark pool books skipped."""
        if asset is not Asset.SPOT:
            raise AssetError(f"asset type of {asset.value} is not supported by {self.name}")
        await self._ensure_seeded()
        delimiter = self.get_pair_format(asset, False).delimiter
        products: list[str] = []
        for pair in (await self.get_asset_pairs()).values():
            if data.DARK_POOL_SUFFIX in pair.altname:
                continue
            base = self.lookup_altname(pair.base)
            if not base:
                logger.warning(f"{self.name} unable to lookup altname for base currency {pair.base}")
                continue
            quote = self.lookup_altname(pair.quote)
            if not quote:
                logger.warning(f"{self.name} unable to lookup altname for quote currency {pair.quote}")
                continue
            products.append(base + delimiter + quote)
        return products

    async def update_ticker(self, pair: Pair, asset: Asset) -> ticker.Price:
        """
        Refresh every enabled pair in one request. Replies are keyed by the
        Kraken pair name, matched back to the altname we asked with.
        """
        if asset is not Asset.SPOT:
            raise AssetError(f"asset type of {asset.value} is not supported by {self.name}")
        await self._ensure_seeded()
        pairs = list(self.get_enabled_pairs(asset)) or [pair]
        tickers = await self.get_tickers(self.format_exchange_currencies(pairs, asset))
        for p in pairs:
            symbol = self.format_symbol(p, asset)
            for key, item in tickers.items():
                if key.upper() != symbol and self.lookup_altname(key).upper() != symbol:
                    continue
                ticker.process_ticker(
                    ticker.Price(
                        pair=p,
                        last=item.last[0],
                        high=item.high[1],
                        low=item.low[1],
                        bid=item.bid[0],
                        ask=item.ask[0],
                        volume=item.volume[1],
                        open=item.open,
                        exchange=self.name,
                        asset=asset,
                    )
                )
        return ticker.get_ticker(self.name, pair, asset)

    async def update_orderbook(self, pair: Pair, asset: Asset) -> orderbook.Book:
        if asset is not Asset.SPOT:
            raise AssetError(f"asset type of {asset.value} is not supported by {self.name}")
        raw = await self.get_depth(self.format_symbol(pair, asset))
        book = orderbook.Book(
            bids=[orderbook.Item(price=row[0], amount=row[1]) for row in raw.bids],
            asks=[orderbook.Item(price=row[0], amount=row[1]) for row in raw.asks],
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
                tid=str(item.trade_id) if item.trade_id else "",
                exchange=self.name,
                pair=pair,
                asset=asset,
                side=OrderSide.SELL if item.side == "s" else OrderSide.BUY,
                price=item.price,
                amount=item.volume,
                timestamp=item.time,
            )
            for item in await self.get_trades(self.format_symbol(pair, asset))
        ]
        self.add_trades_to_buffer(*result)
        return sorted(result, key=lambda t: t.timestamp)

    def format_exchange_kline_interval(self, interval: kline.Interval) -> str:
        """Interval in whole minutes."""
        return str(int(interval.duration.total_seconds() // 60))

    async def get_historic_candles(
        self, pair: Pair, asset: Asset, start: datetime, end: datetime, interval: kline.Interval
    ) -> kline.Item:
        """OHLC serves the latest 720 candles; those inside [start, end] are kept."""
        self.validate_kline(pair, asset, interval)
        rows = await self.get_ohlc(
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
                if start <= row.time <= end
            ],
        )
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
        if asset is not Asset.SPOT:
            raise AssetError(f"asset type of {asset.value} is not supported by {self.name}")
        await self._ensure_seeded()
        balances: list[account.Balance] = []
        for name, amount in (await self.get_balance()).items():
            code = self.lookup_altname(name)
            if not code:
                logger.warning(f"{self.name} unable to translate currency: {name}")
                continue
            balances.append(account.Balance(currency=Code(code), total_value=amount))
        holdings = account.Holdings(
            exchange=self.name, accounts=[account.SubAccount(asset=asset, currencies=balances)]
        )
        account.process_holdings(holdings, asset)
        return holdings

    async def get_withdrawals_history(self, code: Code) -> list[WithdrawalHistory]:
        return [
            WithdrawalHistory(
                status=item.status,
                transfer_id=item.refid,
                timestamp=item.time,
                amount=item.amount,
                fee=item.fee,
                crypto_to_address=item.info,
                crypto_tx_id=item.txid,
                currency=str(code),
            )
            for item in await self.withdraw_status(str(code))
        ]

    async def get_deposit_address(self, code: Code, account_id: str = "") -> str:
        """
        Address for the last listed deposit method; one is generated when
        none exists yet.

        Raises:
            NotFoundError: If the currency has no deposit method
        """
        methods = await self.get_deposit_methods(str(code))
        if not methods:
            raise NotFoundError(f"{self.name} deposit method not found for {code}")
        method = methods[-1].method
        addresses = await self.get_crypto_deposit_address(method, str(code))
        if not addresses:
            addresses = await self.get_crypto_deposit_address(method, str(code), new=True)
        if not addresses:
            raise NotFoundError(f"{self.name} has no deposit address for {code}")
        return addresses[0].address

    # =========================================================================
    # ORDERS
    # =========================================================================

    async def submit_order(self, submit: order.Submit) -> order.SubmitResponse:
        submit.validate_order()
        if submit.asset is not Asset.SPOT:
            raise AssetError(f"asset type of {submit.asset.value} is not supported by {self.name}")
        self.check_order_execution_limits(
            submit.asset, submit.pair, submit.price, submit.amount, submit.type
        )
        is_market = submit.type is OrderType.MARKET
        response = await self.add_order(
            self.format_symbol(submit.pair, submit.asset),
            "buy" if submit.side.is_long else "sell",
            "market" if is_market else "limit",
            submit.amount,
            Decimal("0") if is_market else submit.price,
            oflags="post" if submit.post_only else "",
        )
        return order.SubmitResponse(
            is_order_placed=True,
            fully_matched=is_market,
            order_id=", ".join(response.transaction_ids),
        )

    async def cancel_order(self, cancel: order.Cancel) -> None:
        cancel.validate_order(cancel.standard_cancel())
        await self.cancel_existing_order(cancel.id)

    async def cancel_batch_orders(self, cancels: list[order.Cancel]) -> order.CancelBatchResponse:
        """One cancel per order; failures are recorded, not raised."""
        for cancel in cancels:
            cancel.validate_order(cancel.standard_cancel())
        status: dict[str, str] = {}
        for cancel in cancels:
            try:
                await self.cancel_existing_order(cancel.id)
            except IrixError as e:
                status[cancel.id] = str(e)
            else:
                status[cancel.id] = "cancelled"
        return order.CancelBatchResponse(status=status)

    async def cancel_all_orders(self, cancel: order.Cancel) -> order.CancelAllResponse:
        return order.CancelAllResponse(count=await self.cancel_all_existing_orders())

    def _to_detail(self, order_id: str, raw: data.OrderInfo) -> order.Detail:
        status = ORDER_STATUSES.get(raw.status, OrderStatus.UNKNOWN)
        price = raw.description.price if raw.status == data.STATUS_OPEN else raw.price
        return order.Detail(
            exchange=self.name,
            id=order_id,
            pair=self._pair_from_symbol(raw.description.pair),
            side=compatible_order_side(raw.description.type),
            type=ORDER_TYPES.get(raw.description.order_type, OrderType.UNKNOWN),
            status=status,
            price=price,
            amount=raw.volume,
            executed_amount=raw.volume_executed,
            remaining_amount=raw.volume - raw.volume_executed,
            average_executed_price=raw.price,
            fee=raw.fee,
            cost=raw.cost,
            post_only="post" in raw.oflags.split(","),
            date=raw.open_time,
            last_updated=raw.close_time,
        )

    async def get_order_info(self, order_id: str, pair: Pair, asset: Asset) -> order.Detail:
        """
        Raises:
            NotFoundError: If the order is missing from the reply
        """
        orders = await self.query_orders_info(order_id, trades=True)
        raw = orders.get(order_id)
        if raw is None:
            raise NotFoundError(f"order {order_id} not found in response")
        detail = self._to_detail(order_id, raw)
        detail.trades = [order.TradeHistory(tid=tid, exchange=self.name) for tid in raw.trades]
        return detail

    async def get_active_orders(self, request: order.GetOrdersRequest) -> list[order.Detail]:
        request.validate_request()
        response = await self.get_open_orders()
        details = [self._to_detail(txid, raw) for txid, raw in response.open.items()]
        return self._filter(details, request)

    async def get_order_history(self, request: order.GetOrdersRequest) -> list[order.Detail]:
        request.validate_request()
        response = await self.get_closed_orders(
            start=int(request.start.timestamp()) if request.start else 0,
            end=int(request.end.timestamp()) if request.end else 0,
        )
        details = [self._to_detail(txid, raw) for txid, raw in response.closed.items()]
        return self._filter(details, request)

    @staticmethod
    def _filter(details: list[order.Detail], request: order.GetOrdersRequest) -> list[order.Detail]:
        details = order.filter_orders_by_time_range(details, request.start, request.end)
        details = order.filter_orders_by_side(details, request.side)
        return order.filter_orders_by_currencies(details, request.pairs)

    # =========================================================================
    # WITHDRAWALS
    # =========================================================================

    async def withdraw_cryptocurrency_funds(
        self, request: withdraw.Request
    ) -> withdraw.ExchangeResponse:
        """The withdrawal key name set up on the account goes in trade_password."""
        request.validate_request()
        refid = await self.withdraw(str(request.currency), request.trade_password, request.amount)
        return withdraw.ExchangeResponse(name=self.name, id=refid)

    async def withdraw_fiat_funds(self, request: withdraw.Request) -> withdraw.ExchangeResponse:
        request.validate_request()
        refid = await self.withdraw(str(request.currency), request.trade_password, request.amount)
        return withdraw.ExchangeResponse(name=self.name, id=refid)

    async def withdraw_fiat_funds_to_international_bank(
        self, request: withdraw.Request
    ) -> withdraw.ExchangeResponse:
        return await self.withdraw_fiat_funds(request)

    async def update_order_execution_limits(self, asset: Asset) -> None:
        if asset is not Asset.SPOT:
            raise AssetError(f"asset type of {asset.value} is not supported by {self.name}")
        await self._ensure_seeded()
        levels: list[order.MinMaxLevel] = []
        for pair in (await self.get_asset_pairs()).values():
            base, quote = self.lookup_altname(pair.base), self.lookup_altname(pair.quote)
            if not base or not quote or data.DARK_POOL_SUFFIX in pair.altname:
                continue
            levels.append(
                order.MinMaxLevel(
                    pair=Pair(base, quote),
                    asset=asset,
                    min_amount=pair.ordermin,
                    min_notional=pair.costmin,
                    step_price=pair.tick_size,
                    step_amount=Decimal(1).scaleb(-pair.lot_decimals),
                )
            )
        self.execution_limits.load(levels)
