"""
ZB REST client.

Market data lives under the data API; trading calls go to the trade API as
GET requests named by their method. Signed queries carry accesskey and
method, are url-encoded in sorted order and signed with hex HMAC-MD5 keyed
by the hex SHA1 of the secret. sign and reqTime are appended afterwards.
"""

from __future__ import annotations

import logging
import time
from decimal import Decimal
from typing import Any
from urllib.parse import urlencode

from irix import crypto
from irix.adapters.zb import data
from irix.enums import URL, FeeType
from irix.errors import ExchangeAPIError
from irix.exchange import Base, FeeBuilder
from irix.request import AsyncTokenBucket, RateLimiter

logger = logging.getLogger(__name__)

MARKET_URL = "https://api.zb.com/data"
TRADE_URL = "https://trade.zb.com/api"
API_VERSION = "v1"

# Market data
MARKETS = "markets"
TICKER = "ticker"
ALL_TICKER = "allTicker"
DEPTH = "depth"
KLINE = "kline"
TRADES = "trades"

# Trade API methods
ORDER = "order"
CANCEL_ORDER = "cancelOrder"
GET_ORDER = "getOrder"
GET_ORDERS = "getOrders"
GET_UNFINISHED_ORDERS = "getUnfinishedOrdersIgnoreTradeType"
GET_ACCOUNT_INFO = "getAccountInfo"
GET_USER_ADDRESS = "getUserAddress"
WITHDRAW = "withdraw"
GET_WITHDRAW_RECORD = "getWithdrawRecord"
GET_CHARGE_RECORD = "getChargeRecord"

TRADE_FEE_RATE = Decimal("0.002")

LIMIT_PUBLIC = "public"
LIMIT_PRIVATE = "private"


def _dec(value: Decimal) -> str:
    return format(value.normalize(), "f")


class ZBAPI(Base):
    """ZB market data and trade API."""

    @staticmethod
    def rate_limiter() -> RateLimiter:
        return RateLimiter(
            {
                RateLimiter.DEFAULT: AsyncTokenBucket(10, 10),
                LIMIT_PUBLIC: AsyncTokenBucket(10, 10),
                LIMIT_PRIVATE: AsyncTokenBucket(10, 10),
            }
        )

    # =========================================================================
    # TRANSPORT
    # =========================================================================

    def _check(self, response: Any) -> Any:
        """
        Raises:
            ExchangeAPIError: On a code other than 1000 or an "error" member
        """
        if not isinstance(response, dict):
            return response
        if "error" in response:
            raise ExchangeAPIError(self.name, str(response["error"]))
        code = response.get("code")
        if code is not None and int(code) != data.CODE_SUCCESS:
            code = int(code)
            message = response.get("message") or data.ERROR_CODES.get(code, "")
            raise ExchangeAPIError(self.name, str(message), code=code)
        return response

    async def send_public(self, path: str, params: dict[str, Any] | None = None) -> Any:
        endpoint = self.get_endpoint(URL.REST_SPOT)
        response = await self.send_http_request(
            "GET", f"{endpoint}/{API_VERSION}/{path}", params=params, limit=LIMIT_PUBLIC
        )
        return self._check(response)

    def sign(self, query: str) -> str:
        """Hex HMAC-MD5 keyed by the hex SHA1 of the secret."""
        key = crypto.hex_encode(crypto.get_hash(crypto.SHA1, self.secret_bytes()))
        return crypto.hex_encode(crypto.get_hmac(crypto.MD5, query, key))

    async def send_authenticated(self, method: str, values: dict[str, Any] | None = None) -> Any:
        """
        Raises:
            CredentialsError: Without usable credentials
            ExchangeAPIError: On a venue or HTTP error
        """
        self.check_authenticated_request()
        endpoint = self.get_endpoint(URL.REST_SPOT_SUPPLEMENTARY)
        params = {key: str(value) for key, value in (values or {}).items()}
        params.update(accesskey=self.api.credentials.key, method=method)
        query = urlencode(sorted(params.items()))
        signed = f"{query}&sign={self.sign(query)}&reqTime={int(time.time() * 1000)}"
        response = await self.send_http_request(
            "GET", f"{endpoint}/{method}?{signed}", limit=LIMIT_PRIVATE, auth=True
        )
        return self._check(response)

    # =========================================================================
    # MARKET DATA
    # =========================================================================

    async def get_markets(self) -> dict[str, data.Market]:
        response = await self.send_public(MARKETS)
        return {symbol: data.Market.model_validate(item) for symbol, item in response.items()}

    async def get_ticker(self, symbol: str) -> data.Ticker:
        return data.Ticker.model_validate(await self.send_public(TICKER, {"market": symbol}))

    async def get_tickers(self) -> dict[str, data.TickerValues]:
        """Tickers keyed by symbol without delimiter (btcusdt)."""
        response = await self.send_public(ALL_TICKER)
        return {symbol: data.TickerValues.model_validate(item) for symbol, item in response.items()}

    async def get_latest_spot_price(self, symbol: str) -> Decimal:
        return (await self.get_ticker(symbol)).ticker.last

    async def get_orderbook(self, symbol: str, size: int = 0) -> data.Orderbook:
        params: dict[str, Any] = {"market": symbol}
        if size:
            params["size"] = size
        book = data.Orderbook.model_validate(await self.send_public(DEPTH, params))
        book.asks.reverse()
        return book

    async def get_trades(self, symbol: str) -> list[data.Trade]:
        response = await self.send_public(TRADES, {"market": symbol})
        return [data.Trade.model_validate(item) for item in response or []]

    async def get_spot_kline(
        self, symbol: str, kline_type: str, size: int = 0, since_ms: int = 0
    ) -> data.Klines:
        params: dict[str, Any] = {"market": symbol, "type": kline_type}
        if size:
            params["size"] = size
        if since_ms:
            params["since"] = since_ms
        return data.Klines.model_validate(await self.send_public(KLINE, params))

    # =========================================================================
    # ACCOUNT
    # =========================================================================

    async def get_account_information(self) -> data.AccountInfo:
        response = await self.send_authenticated(GET_ACCOUNT_INFO)
        return data.AccountInfo.model_validate(response.get("result", {}))

    async def get_crypto_address(self, currency: str) -> data.DepositAddress:
        response = await self.send_authenticated(GET_USER_ADDRESS, {"currency": currency})
        return data.DepositAddress.model_validate(response["message"]["datas"])

    async def withdraw(
        self, currency: str, address: str, safe_password: str, amount: Decimal, fees: Decimal
    ) -> str:
        response = await self.send_authenticated(
            WITHDRAW,
            {
                "amount": _dec(amount),
                "currency": currency,
                "fees": _dec(fees),
                "itransfer": "false",
                "receiveAddr": address,
                "safePwd": safe_password,
            },
        )
        return str(response.get("id", ""))

    async def get_withdraw_records(
        self, currency: str, page_index: int = 1, page_size: int = 100
    ) -> list[data.WithdrawRecord]:
        response = await self.send_authenticated(
            GET_WITHDRAW_RECORD,
            {"currency": currency, "pageIndex": page_index, "pageSize": page_size},
        )
        rows = response["message"]["datas"].get("list") or []
        return [data.WithdrawRecord.model_validate(item) for item in rows]

    async def get_charge_records(
        self, currency: str, page_index: int = 1, page_size: int = 100
    ) -> list[data.ChargeRecord]:
        response = await self.send_authenticated(
            GET_CHARGE_RECORD,
            {"currency": currency, "pageIndex": page_index, "pageSize": page_size},
        )
        rows = response["message"]["datas"].get("list") or []
        return [data.ChargeRecord.model_validate(item) for item in rows]

    # =========================================================================
    # ORDERS
    # =========================================================================

    async def spot_new_order(
        self, symbol: str, trade_type: int, amount: Decimal, price: Decimal
    ) -> str:
        response = await self.send_authenticated(
            ORDER,
            {
                "amount": _dec(amount),
                "currency": symbol,
                "price": _dec(price),
                "tradeType": trade_type,
            },
        )
        return data.OrderResponse.model_validate(response).id

    async def cancel_existing_order(self, order_id: str, symbol: str) -> None:
        await self.send_authenticated(CANCEL_ORDER, {"currency": symbol, "id": order_id})

    async def get_order(self, order_id: str, symbol: str) -> data.Order:
        response = await self.send_authenticated(GET_ORDER, {"currency": symbol, "id": order_id})
        return data.Order.model_validate(response)

    async def get_orders(self, symbol: str, page_index: int, trade_type: int) -> list[data.Order]:
        """One page of orders of a side, open and finished."""
        return await self._order_list(
            GET_ORDERS, {"currency": symbol, "pageIndex": page_index, "tradeType": trade_type}
        )

    async def get_unfinished_orders(
        self, symbol: str, page_index: int = 1, page_size: int = 10
    ) -> list[data.Order]:
        return await self._order_list(
            GET_UNFINISHED_ORDERS,
            {"currency": symbol, "pageIndex": page_index, "pageSize": page_size},
        )

    async def _order_list(self, method: str, values: dict[str, Any]) -> list[data.Order]:
        try:
            response = await self.send_authenticated(method, values)
        except ExchangeAPIError as e:
            # An empty order list is reported as an error code
            if e.code == data.CODE_NO_ORDERS:
                return []
            raise
        return [data.Order.model_validate(item) for item in response or []]

    # =========================================================================
    # FEES
    # =========================================================================

    async def get_fee(self, builder: FeeBuilder) -> Decimal:
        fee = Decimal("0")
        match builder.fee_type:
            case FeeType.CRYPTOCURRENCY_TRADE_FEE | FeeType.OFFLINE_TRADE_FEE:
                fee = TRADE_FEE_RATE * builder.purchase_price * builder.amount
            case FeeType.CRYPTOCURRENCY_WITHDRAWAL_FEE:
                fee = data.WITHDRAWAL_FEES.get(str(builder.pair.base.upper()), Decimal("0"))
        return max(fee, Decimal("0"))
