"""
Kraken spot REST client.

Private calls are form-encoded POSTs carrying a strictly increasing nonce.
They are signed as

    API-Sign = base64(HMAC-SHA512(base64decode(secret),
                                  path + SHA256(nonce + body)))

A non-empty "error" list in any reply is raised as ExchangeAPIError.
"""

from __future__ import annotations

import logging
import time
from decimal import Decimal
from typing import Any
from urllib.parse import urlencode

from irix import crypto
from irix.adapters.kraken import data
from irix.enums import URL, Asset, FeeType
from irix.errors import ExchangeAPIError, ValidationError
from irix.exchange import Base, FeeBuilder
from irix.request import AsyncTokenBucket, RateLimiter

logger = logging.getLogger(__name__)

API_URL = "https://api.kraken.com"
API_VERSION = "0"

# Public
ASSETS = "Assets"
ASSET_PAIRS = "AssetPairs"
TICKER = "Ticker"
DEPTH = "Depth"
TRADES = "Trades"
OHLC = "OHLC"
SERVER_TIME = "Time"

# Private
BALANCE = "Balance"
TRADE_VOLUME = "TradeVolume"
OPEN_ORDERS = "OpenOrders"
CLOSED_ORDERS = "ClosedOrders"
QUERY_ORDERS = "QueryOrders"
ADD_ORDER = "AddOrder"
CANCEL_ORDER = "CancelOrder"
CANCEL_ALL = "CancelAll"
DEPOSIT_METHODS = "DepositMethods"
DEPOSIT_ADDRESSES = "DepositAddresses"
WITHDRAW = "Withdraw"
WITHDRAW_STATUS = "WithdrawStatus"
WITHDRAW_CANCEL = "WithdrawCancel"

# OHLC intervals in minutes
OHLC_INTERVALS = ("1", "5", "15", "30", "60", "240", "1440", "10080", "21600")

# Starter tier
OFFLINE_MAKER_FEE_RATE = Decimal("0.0016")
OFFLINE_TAKER_FEE_RATE = Decimal("0.0026")

LIMIT_PUBLIC = "public"
LIMIT_PRIVATE = "private"


def _dec(value: Decimal) -> str:
    return format(value.normalize(), "f")


class KrakenAPI(Base):
    """Kraken spot REST endpoints."""

    def __init__(self) -> None:
        super().__init__()
        self._last_nonce = 0

    @staticmethod
    def rate_limiter() -> RateLimiter:
        return RateLimiter(
            {
                RateLimiter.DEFAULT: AsyncTokenBucket(1, 1),
                LIMIT_PUBLIC: AsyncTokenBucket(1, 1),
                LIMIT_PRIVATE: AsyncTokenBucket(0.33, 15),
            }
        )

    # =========================================================================
    # TRANSPORT
    # =========================================================================

    def _check(self, response: Any) -> Any:
        errors = response.get("error") or []
        if errors:
            raise ExchangeAPIError(self.name, ", ".join(errors), code=errors[0])
        return response.get("result")

    async def send_public(self, method: str, params: dict[str, Any] | None = None) -> Any:
        endpoint = self.get_endpoint(URL.REST_SPOT)
        response = await self.send_http_request(
            "GET",
            f"{endpoint}/{API_VERSION}/public/{method}",
            params=params,
            limit=LIMIT_PUBLIC,
        )
        return self._check(response)

    def generate_nonce(self) -> str:
        """Microseconds since the epoch, never repeating within a client."""
        self._last_nonce = max(time.time_ns() // 1000, self._last_nonce + 1)
        return str(self._last_nonce)

    def sign(self, path: str, nonce: str, body: str) -> str:
        digest = crypto.get_hash(crypto.SHA256, nonce + body)
        message = path.encode() + digest
        return crypto.base64_encode(crypto.get_hmac(crypto.SHA512, message, self.secret_bytes()))

    async def send_authenticated(self, method: str, values: dict[str, Any] | None = None) -> Any:
        """
        POST a signed private request and return its result.

        Raises:
            CredentialsError: Without usable credentials
            ExchangeAPIError: On a venue or HTTP error

        """
        self.check_authenticated_request()
        path = f"/{API_VERSION}/private/{method}"
        nonce = self.generate_nonce()
        body = urlencode({"nonce": nonce, **(values or {})})
        headers = {
            "API-Key": self.api.credentials.key,
            "API-Sign": self.sign(path, nonce, body),
            "Content-Type": "application/x-www-form-urlencoded",
        }
        endpoint = self.get_endpoint(URL.REST_SPOT)
        response = await self.send_http_request(
            "POST", endpoint + path, headers=headers, body=body, limit=LIMIT_PRIVATE, auth=True
        )
        return self._check(response)

    # =========================================================================
    # MARKET DATA
    # =========================================================================

    async def get_server_time(self) -> int:
        response = await self.send_public(SERVER_TIME)
        return int(response["unixtime"])

    async def get_assets(self) -> dict[str, data.Asset]:
        response = await self.send_public(ASSETS)
        return {name: data.Asset.model_validate(item) for name, item in response.items()}

    async def get_asset_pairs(self, pairs: list[str] | None = None, info: str = "") -> dict[str, data.AssetPair]:
        """
        Raises:
            ValidationError: On an unknown info level
        """
        if info and info not in ("info", "leverage", "fees", "margin"):
            raise ValidationError(f"invalid asset pair info {info}")
        params: dict[str, Any] = {}
        if pairs:
            params["pair"] = ",".join(pairs)
        if info:
            params["info"] = info
        response = await self.send_public(ASSET_PAIRS, params or None)
        return {name: data.AssetPair.model_validate(item) for name, item in response.items()}

    async def get_tickers(self, pairs: str) -> dict[str, data.Ticker]:
        """Tickers for a comma separated list of pair altnames."""
        response = await self.send_public(TICKER, {"pair": pairs})
        return {name: data.Ticker.model_validate(item) for name, item in response.items()}

    async def get_depth(self, pair: str, count: int = 0) -> data.Orderbook:
        params: dict[str, Any] = {"pair": pair}
        if count:
            params["count"] = count
        response = await self.send_public(DEPTH, params)
        for book in response.values():
            return data.Orderbook.model_validate(book)
        return data.Orderbook()

    async def get_trades(self, pair: str, since: str = "") -> list[data.RecentTrade]:
        params: dict[str, Any] = {"pair": pair}
        if since:
            params["since"] = since
        response = await self.send_public(TRADES, params)
        for key, rows in response.items():
            if key == "last":
                continue
            return [data.RecentTrade.from_row(row) for row in rows]
        return []

    async def get_ohlc(self, pair: str, interval: str, since: int = 0) -> list[data.OHLC]:
        """
        Raises:
            ValidationError: On an interval the venue does not serve
        """
        if interval not in OHLC_INTERVALS:
            raise ValidationError(f"invalid ohlc interval {interval}")
        params: dict[str, Any] = {"pair": pair, "interval": interval}
        if since:
            params["since"] = since
        response = await self.send_public(OHLC, params)
        for key, rows in response.items():
            if key == "last":
                continue
            return [data.OHLC.from_row(row) for row in rows]
        return []

    # =========================================================================
    # ACCOUNT
    # =========================================================================

    async def get_balance(self) -> dict[str, Decimal]:
        response = await self.send_authenticated(BALANCE)
        return {name: Decimal(value) for name, value in response.items()}

    async def get_trade_volume(self, pairs: list[str]) -> data.TradeVolume:
        values = {"pair": ",".join(pairs), "fee-info": "true"} if pairs else None
        return data.TradeVolume.model_validate(await self.send_authenticated(TRADE_VOLUME, values))

    async def get_deposit_methods(self, currency: str) -> list[data.DepositMethod]:
        response = await self.send_authenticated(DEPOSIT_METHODS, {"asset": currency})
        return [data.DepositMethod.model_validate(item) for item in response or []]

    async def get_crypto_deposit_address(
        self, method: str, currency: str, new: bool = False
    ) -> list[data.DepositAddress]:
        values: dict[str, Any] = {"asset": currency, "method": method}
        if new:
            values["new"] = "true"
        response = await self.send_authenticated(DEPOSIT_ADDRESSES, values)
        return [data.DepositAddress.model_validate(item) for item in response or []]

    async def withdraw(self, currency: str, key: str, amount: Decimal) -> str:
        """Withdraw to a named withdrawal key; returns the reference id."""
        response = await self.send_authenticated(
            WITHDRAW, {"asset": currency, "key": key, "amount": _dec(amount)}
        )
        return str(response["refid"])

    async def withdraw_status(self, currency: str, method: str = "") -> list[data.WithdrawStatus]:
        values: dict[str, Any] = {"asset": currency}
        if method:
            values["method"] = method
        response = await self.send_authenticated(WITHDRAW_STATUS, values)
        return [data.WithdrawStatus.model_validate(item) for item in response or []]

    async def withdraw_cancel(self, currency: str, refid: str) -> bool:
        return bool(await self.send_authenticated(WITHDRAW_CANCEL, {"asset": currency, "refid": refid}))

    # =========================================================================
    # ORDERS
    # =========================================================================

    async def add_order(
        self,
        pair: str,
        side: str,
        order_type: str,
        volume: Decimal,
        price: Decimal = Decimal("0"),
        price2: Decimal = Decimal("0"),
        leverage: Decimal = Decimal("0"),
        oflags: str = "",
        userref: int = 0,
        validate: bool = False,
    ) -> data.AddOrderResponse:
        values: dict[str, Any] = {
            "pair": pair,
            "type": side,
            "ordertype": order_type,
            "volume": _dec(volume),
        }
        if price > 0:
            values["price"] = _dec(price)
        if price2 > 0:
            values["price2"] = _dec(price2)
        if leverage > 0:
            values["leverage"] = _dec(leverage)
        if oflags:
            values["oflags"] = oflags
        if userref:
            values["userref"] = userref
        if validate:
            values["validate"] = "true"
        return data.AddOrderResponse.model_validate(await self.send_authenticated(ADD_ORDER, values))

    async def cancel_existing_order(self, txid: str) -> data.CancelOrderResponse:
        response = await self.send_authenticated(CANCEL_ORDER, {"txid": txid})
        return data.CancelOrderResponse.model_validate(response)

    async def cancel_all_existing_orders(self) -> int:
        response = await self.send_authenticated(CANCEL_ALL)
        return int(response.get("count", 0))

    async def get_open_orders(self, trades: bool = False, userref: int = 0) -> data.OpenOrders:
        values: dict[str, Any] = {}
        if trades:
            values["trades"] = "true"
        if userref:
            values["userref"] = userref
        return data.OpenOrders.model_validate(await self.send_authenticated(OPEN_ORDERS, values))

    async def get_closed_orders(
        self, start: int = 0, end: int = 0, offset: int = 0, trades: bool = False
    ) -> data.ClosedOrders:
        """Start and end are unix seconds; zero leaves them unset."""
        values: dict[str, Any] = {}
        if trades:
            values["trades"] = "true"
        if start:
            values["start"] = start
        if end:
            values["end"] = end
        if offset:
            values["ofs"] = offset
        return data.ClosedOrders.model_validate(await self.send_authenticated(CLOSED_ORDERS, values))

    async def query_orders_info(self, *txids: str, trades: bool = False) -> dict[str, data.OrderInfo]:
        """
        Raises:
            ValidationError: Without ids or with more than fifty
        """
        if not txids or len(txids) > 50:
            raise ValidationError("between 1 and 50 transaction ids are required")
        values: dict[str, Any] = {"txid": ",".join(txids)}
        if trades:
            values["trades"] = "true"
        response = await self.send_authenticated(QUERY_ORDERS, values)
        return {txid: data.OrderInfo.model_validate(item) for txid, item in response.items()}

    # =========================================================================
    # FEES
    # =========================================================================

    async def get_fee(self, builder: FeeBuilder) -> Decimal:
        fee = Decimal("0")
        match builder.fee_type:
            case FeeType.CRYPTOCURRENCY_TRADE_FEE:
                symbol = self.format_symbol(builder.pair, Asset.SPOT)
                volume = await self.get_trade_volume([symbol])
                table = volume.fees_maker if builder.is_maker else volume.fees
                for tier in table.values():
                    # Percentages
                    fee = tier.fee / 100 * builder.purchase_price * builder.amount
                    break
            case FeeType.CRYPTOCURRENCY_DEPOSIT_FEE:
                for method in await self.get_deposit_methods(str(builder.pair.base)):
                    fee = method.fee
                    break
            case FeeType.OFFLINE_TRADE_FEE:
                rate = OFFLINE_MAKER_FEE_RATE if builder.is_maker else OFFLINE_TAKER_FEE_RATE
                fee = rate * builder.purchase_price * builder.amount
        return max(fee, Decimal("0"))
