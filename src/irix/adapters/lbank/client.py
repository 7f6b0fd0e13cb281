"""
LBank v2 REST client.

Private requests are form POSTs. The sorted query string (api_key, echostr,
signature_method, timestamp and the call's own parameters) is MD5 hashed,
upper-cased, and that digest is signed with HMAC-SHA256 under the secret.
The hex signature travels as the "sign" parameter.
"""

from __future__ import annotations

import logging
import secrets
import string
import time
from decimal import Decimal
from typing import Any
from urllib.parse import urlencode

from irix import crypto
from irix.adapters.lbank import data
from irix.enums import URL, FeeType
from irix.errors import ExchangeAPIError, ValidationError
from irix.exchange import Base, FeeBuilder
from irix.request import AsyncTokenBucket, RateLimiter

logger = logging.getLogger(__name__)

API_URL = "https://api.lbkex.com"

# Market data
TICKERS = "/v2/ticker.do"
CURRENCY_PAIRS = "/v2/currencyPairs.do"
MARKET_DEPTH = "/v2/depth.do"
TRADES = "/v2/trades.do"
KLINES = "/v2/kline.do"
PAIR_INFO = "/v2/accuracy.do"
USD_TO_CNY = "/v2/usdToCny.do"
TIMESTAMP = "/v2/timestamp.do"

# Account
USER_INFO = "/v2/user_info.do"
WITHDRAW_CONFIG = "/v2/withdrawConfigs.do"
WITHDRAW = "/v2/withdraw.do"
WITHDRAW_CANCEL = "/v2/withdrawCancel.do"
WITHDRAW_RECORDS = "/v2/withdraws.do"

# Orders
CREATE_ORDER = "/v2/create_order.do"
CANCEL_ORDER = "/v2/cancel_order.do"
ORDERS_INFO = "/v2/orders_info.do"
ORDERS_HISTORY = "/v2/orders_info_history.do"
OPEN_ORDERS = "/v2/orders_info_no_deal.do"
ORDER_TRANSACTIONS = "/v2/order_transaction_detail.do"

SIGNATURE_METHOD = "HmacSHA256"
ECHOSTR_LENGTH = 35
MAX_CANCEL_IDS = 3

TRADE_FEE_RATE = Decimal("0.002")


def _dec(value: Decimal) -> str:
    return format(value.normalize(), "f")


def _echostr() -> str:
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(ECHOSTR_LENGTH))


class LbankAPI(Base):
    """LBank v2 REST endpoints."""

    @staticmethod
    def rate_limiter() -> RateLimiter:
        return RateLimiter({RateLimiter.DEFAULT: AsyncTokenBucket(10, 20)})

    # =========================================================================
    # TRANSPORT
    # =========================================================================

    def _check(self, response: Any) -> Any:
        """
        Return the data member of a successful reply.

        Raises:
            ExchangeAPIError: If result is false or an error code is set
        """
        if not isinstance(response, dict):
            return response
        code = int(response.get("error_code") or 0)
        if str(response.get("result", "true")).lower() == "false" or code:
            message = data.ERROR_CODES.get(code, f"unknown error code {code}")
            raise ExchangeAPIError(self.name, message, code=code)
        return response.get("data", response)

    async def send_public(self, path: str, params: dict[str, Any] | None = None) -> Any:
        endpoint = self.get_endpoint(URL.REST_SPOT)
        response = await self.send_http_request("GET", endpoint + path, params=params)
        return self._check(response)

    def sign(self, values: dict[str, str]) -> str:
        """Hex HMAC-SHA256 of the upper-cased MD5 of the sorted parameters."""
        digest = crypto.hex_encode(
            crypto.get_hash(crypto.MD5, urlencode(sorted(values.items())))
        ).upper()
        return crypto.hex_encode(crypto.get_hmac(crypto.SHA256, digest, self.secret_bytes()))

    async def send_authenticated(self, path: str, values: dict[str, Any] | None = None) -> Any:
        """
        Raises:
            CredentialsError: Without usable credentials
            ExchangeAPIError: On a venue or HTTP error
        """
        self.check_authenticated_request()
        endpoint = self.get_endpoint(URL.REST_SPOT)
        timestamp = str(int(time.time() * 1000))
        echostr = _echostr()
        form = {key: str(value) for key, value in (values or {}).items()}
        form.update(
            api_key=self.api.credentials.key,
            echostr=echostr,
            signature_method=SIGNATURE_METHOD,
            timestamp=timestamp,
        )
        form["sign"] = self.sign(form)
        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "timestamp": timestamp,
            "signature_method": SIGNATURE_METHOD,
            "echostr": echostr,
        }
        response = await self.send_http_request(
            "POST", endpoint + path, headers=headers, body=urlencode(form), auth=True
        )
        return self._check(response)

    # =========================================================================
    # MARKET DATA
    # =========================================================================

    async def get_tickers(self, symbol: str = "all") -> list[data.Ticker]:
        response = await self.send_public(TICKERS, {"symbol": symbol})
        return [data.Ticker.model_validate(item) for item in response or []]

    async def get_currency_pairs(self) -> list[str]:
        return list(await self.send_public(CURRENCY_PAIRS) or [])

    async def get_market_depths(self, symbol: str, size: int = 60, merge: int = 0) -> data.MarketDepth:
        """
        Raises:
            ValidationError: On a size outside 1-60 or merge other than 0/1
        """
        if not 1 <= size <= 60:
            raise ValidationError("depth size must be between 1 and 60")
        if merge not in (0, 1):
            raise ValidationError("depth merge must be 0 or 1")
        response = await self.send_public(
            MARKET_DEPTH, {"symbol": symbol, "size": size, "merge": merge}
        )
        return data.MarketDepth.model_validate(response)

    async def get_trades(self, symbol: str, limit: int = 0, since_ms: int = 0) -> list[data.Trade]:
        params: dict[str, Any] = {"symbol": symbol}
        if limit:
            params["size"] = limit
        if since_ms:
            params["time"] = since_ms
        response = await self.send_public(TRADES, params)
        return [data.Trade.model_validate(item) for item in response or []]

    async def get_klines(self, symbol: str, size: int, kline_type: str, since: int) -> list[data.Kline]:
        """since is in unix seconds."""
        response = await self.send_public(
            KLINES, {"symbol": symbol, "size": size, "type": kline_type, "time": since}
        )
        return [data.Kline.from_row(row) for row in response or []]

    async def get_pair_info(self) -> list[data.PairInfo]:
        response = await self.send_public(PAIR_INFO)
        return [data.PairInfo.model_validate(item) for item in response or []]

    async def usd_to_cny(self) -> Decimal:
        response = await self.send_public(USD_TO_CNY)
        return Decimal(str(response["USD2CNY"]))

    async def get_timestamp(self) -> int:
        return int(await self.send_public(TIMESTAMP))

    # =========================================================================
    # ACCOUNT
    # =========================================================================

    async def get_user_info(self) -> data.UserInfo:
        response = await self.send_authenticated(USER_INFO)
        return data.UserInfo.model_validate(response.get("info", response))

    async def get_withdraw_config(self, asset_code: str = "") -> list[data.WithdrawConfig]:
        params = {"assetCode": asset_code} if asset_code else None
        response = await self.send_public(WITHDRAW_CONFIG, params)
        return [data.WithdrawConfig.model_validate(item) for item in response or []]

    async def withdraw(
        self,
        address: str,
        asset_code: str,
        amount: Decimal,
        memo: str = "",
        mark: str = "",
        fee: Decimal | None = None,
    ) -> data.WithdrawResponse:
        values: dict[str, Any] = {
            "address": address,
            "assetCode": asset_code,
            "amount": _dec(amount),
        }
        if memo:
            values["memo"] = memo
        if mark:
            values["mark"] = mark
        if fee:
            values["fee"] = _dec(fee)
        response = await self.send_authenticated(WITHDRAW, values)
        return data.WithdrawResponse.model_validate(response)

    async def revoke_withdraw(self, withdraw_id: str) -> None:
        await self.send_authenticated(WITHDRAW_CANCEL, {"withdrawId": withdraw_id})

    async def get_withdrawal_records(
        self, asset_code: str = "", status: str = "", page_no: int = 1, page_size: int = 100
    ) -> data.WithdrawRecords:
        values: dict[str, Any] = {"pageNo": page_no, "pageSize": page_size}
        if asset_code:
            values["assetCode"] = asset_code
        if status:
            values["status"] = status
        response = await self.send_authenticated(WITHDRAW_RECORDS, values)
        return data.WithdrawRecords.model_validate(response)

    # =========================================================================
    # ORDERS
    # =========================================================================

    async def create_order(
        self, symbol: str, side: str, amount: Decimal, price: Decimal
    ) -> data.CreateOrderResponse:
        """
        side is one of buy, sell, buy_market or sell_market.

        Raises:
            ValidationError: On an unknown side or a non-positive amount or price
        """
        if side not in (data.BUY, data.SELL, data.BUY_MARKET, data.SELL_MARKET):
            raise ValidationError(f"invalid order side {side}")
        if amount <= 0:
            raise ValidationError("order amount must be greater than 0")
        values: dict[str, Any] = {"symbol": symbol, "type": side, "amount": _dec(amount)}
        if side in (data.BUY, data.SELL):
            if price <= 0:
                raise ValidationError("order price must be greater than 0")
            values["price"] = _dec(price)
        response = await self.send_authenticated(CREATE_ORDER, values)
        return data.CreateOrderResponse.model_validate(response)

    async def remove_order(self, symbol: str, order_ids: str) -> data.RemoveOrderResponse:
        """order_ids holds up to three comma separated ids."""
        response = await self.send_authenticated(
            CANCEL_ORDER, {"symbol": symbol, "order_id": order_ids}
        )
        if isinstance(response, dict) and "order_id" in response and "success" not in response:
            return data.RemoveOrderResponse(success=str(response["order_id"]))
        return data.RemoveOrderResponse.model_validate(response)

    async def query_order(self, symbol: str, order_id: str) -> list[data.OrderInfo]:
        response = await self.send_authenticated(
            ORDERS_INFO, {"symbol": symbol, "order_id": order_id}
        )
        if isinstance(response, dict):
            response = response.get("orders", [])
        return [data.OrderInfo.model_validate(item) for item in response or []]

    async def query_order_history(
        self, symbol: str, page: int, page_length: int = data.PAGE_LENGTH
    ) -> data.OrderPage:
        response = await self.send_authenticated(
            ORDERS_HISTORY,
            {"symbol": symbol, "current_page": page, "page_length": page_length},
        )
        return data.OrderPage.model_validate(response)

    async def get_open_orders(
        self, symbol: str, page: int, page_length: int = data.PAGE_LENGTH
    ) -> data.OrderPage:
        response = await self.send_authenticated(
            OPEN_ORDERS,
            {"symbol": symbol, "current_page": page, "page_length": page_length},
        )
        return data.OrderPage.model_validate(response)

    async def order_transaction_details(
        self, symbol: str, order_id: str
    ) -> list[data.TransactionDetail]:
        response = await self.send_authenticated(
            ORDER_TRANSACTIONS, {"symbol": symbol, "order_id": order_id}
        )
        return [data.TransactionDetail.model_validate(item) for item in response or []]

    # =========================================================================
    # FEES
    # =========================================================================

    async def get_fee(self, builder: FeeBuilder) -> Decimal:
        fee = Decimal("0")
        match builder.fee_type:
            case FeeType.CRYPTOCURRENCY_TRADE_FEE | FeeType.OFFLINE_TRADE_FEE:
                fee = builder.amount * builder.purchase_price * TRADE_FEE_RATE
            case FeeType.CRYPTOCURRENCY_WITHDRAWAL_FEE:
                base = builder.pair.base
                for item in await self.get_withdraw_config(str(base.lower())):
                    if item.asset_code.upper() != str(base.upper()):
                        continue
                    fee = Decimal(item.fee) if item.fee else Decimal("0")
        return max(fee, Decimal("0"))
