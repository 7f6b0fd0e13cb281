"""
Huobi Pro REST client.

Private requests are signed with Signature Version 2: the query carries
AccessKeyId, SignatureMethod, SignatureVersion and a UTC Timestamp, and the
Signature is the base64 HMAC-SHA256 of

    METHOD\\nhost\\npath\\nsorted url-encoded query

keyed with the secret. Request bodies are not signed.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any
from urllib.parse import urlencode, urlparse

from irix import crypto
from irix.adapters.huobi import data
from irix.enums import URL, FeeType
from irix.errors import ExchangeAPIError, ValidationError
from irix.exchange import Base, FeeBuilder
from irix.request import AsyncTokenBucket, RateLimiter

logger = logging.getLogger(__name__)

API_URL = "https://api.huobi.pro"

# Market data
MARKET_CANDLES = "/market/history/kline"
MARKET_DETAIL = "/market/detail"
MARKET_DETAIL_MERGED = "/market/detail/merged"
MARKET_DEPTH = "/market/depth"
MARKET_TRADE = "/market/trade"
MARKET_TICKERS = "/market/tickers"
MARKET_TRADE_HISTORY = "/market/history/trade"
SYMBOLS = "/v1/common/symbols"
CURRENCIES = "/v1/common/currencys"
TIMESTAMP = "/v1/common/timestamp"

# Account
ACCOUNTS = "/v1/account/accounts"
ACCOUNT_BALANCE = "/v1/account/accounts/{}/balance"
AGGREGATED_BALANCE = "/v1/subuser/aggregate-balance"
DEPOSIT_ADDRESS = "/v2/account/deposit/address"
WITHDRAW_QUOTA = "/v2/account/withdraw/quota"
DEPOSIT_WITHDRAW_HISTORY = "/v1/query/deposit-withdraw"

# Orders
ORDER_PLACE = "/v1/order/orders/place"
ORDER_CANCEL = "/v1/order/orders/{}/submitcancel"
ORDER_CANCEL_BATCH = "/v1/order/orders/batchcancel"
ORDER_CANCEL_OPEN = "/v1/order/orders/batchCancelOpenOrders"
ORDER = "/v1/order/orders/{}"
ORDER_BY_CLIENT_ID = "/v1/order/orders/getClientOrder"
ORDER_MATCH_RESULTS = "/v1/order/orders/{}/matchresults"
ORDERS = "/v1/order/orders"
OPEN_ORDERS = "/v1/order/openOrders"
MATCH_RESULTS = "/v1/order/matchresults"

# Margin
MARGIN_TRANSFER_IN = "/v1/dw/transfer-in/margin"
MARGIN_TRANSFER_OUT = "/v1/dw/transfer-out/margin"
MARGIN_ORDERS = "/v1/margin/orders"
MARGIN_REPAY = "/v1/margin/orders/{}/repay"
MARGIN_LOAN_ORDERS = "/v1/margin/loan-orders"
MARGIN_ACCOUNT_BALANCE = "/v1/margin/accounts/balance"
MARGIN_RATES = "/v1/margin/loan-info"

# Withdrawals
WITHDRAW_CREATE = "/v1/dw/withdraw/api/create"
WITHDRAW_CANCEL = "/v1/dw/withdraw-virtual/{}/cancel"

SIGNATURE_METHOD = "HmacSHA256"
SIGNATURE_VERSION = "2"
ORDER_SOURCE = "api"

CRYPTO_FIAT_FEE_RATE = Decimal("0.001")
CRYPTO_CRYPTO_FEE_RATE = Decimal("0.002")

LIMIT_PUBLIC = "public"
LIMIT_PRIVATE = "private"


def _dec(value: Decimal) -> str:
    return format(value.normalize(), "f")


class HuobiAPI(Base):
    """Huobi Pro REST endpoints."""

    @staticmethod
    def rate_limiter() -> RateLimiter:
        return RateLimiter(
            {
                RateLimiter.DEFAULT: AsyncTokenBucket(10, 100),
                LIMIT_PUBLIC: AsyncTokenBucket(10, 100),
                LIMIT_PRIVATE: AsyncTokenBucket(10, 100),
            }
        )

    # =========================================================================
    # TRANSPORT
    # =========================================================================

    def _check(self, response: Any) -> Any:
        """
        Raise venue errors from either reply generation.

        Raises:
            ExchangeAPIError: On status "error" or a v2 code other than 200
        """
        if not isinstance(response, dict):
            return response
        if response.get("status") == "error":
            raise ExchangeAPIError(
                self.name, response.get("err-msg", ""), code=response.get("err-code")
            )
        code = response.get("code")
        if code is not None and code != 200:
            raise ExchangeAPIError(self.name, response.get("message", ""), code=code)
        return response

    async def send_public(self, path: str, params: dict[str, Any] | None = None) -> Any:
        endpoint = self.get_endpoint(URL.REST_SPOT)
        response = await self.send_http_request(
            "GET", endpoint + path, params=params, limit=LIMIT_PUBLIC
        )
        return self._check(response)

    def sign(self, method: str, host: str, path: str, values: dict[str, str]) -> str:
        """Base64 HMAC-SHA256 over the canonical request."""
        query = urlencode(sorted(values.items()))
        payload = f"{method}\n{host}\n{path}\n{query}"
        return crypto.base64_encode(crypto.get_hmac(crypto.SHA256, payload, self.secret_bytes()))

    async def send_authenticated(
        self,
        method: str,
        path: str,
        *,
        values: dict[str, Any] | None = None,
        data: Any = None,
    ) -> Any:
        """
        Send a signed request and unwrap the reply.

        Raises:
            CredentialsError: Without usable credentials
            ExchangeAPIError: On a venue or HTTP error

        """
        self.check_authenticated_request()
        endpoint = self.get_endpoint(URL.REST_SPOT)
        query = {key: str(value) for key, value in (values or {}).items()}
        query.update(
            AccessKeyId=self.api.credentials.key,
            SignatureMethod=SIGNATURE_METHOD,
            SignatureVersion=SIGNATURE_VERSION,
            Timestamp=datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S"),
        )
        query["Signature"] = self.sign(method, urlparse(endpoint).netloc, path, query)
        content_type = (
            "application/x-www-form-urlencoded" if method == "GET" else "application/json"
        )
        body = json.dumps(data) if data is not None else None
        response = await self.send_http_request(
            method,
            f"{endpoint}{path}?{urlencode(sorted(query.items()))}",
            headers={"Content-Type": content_type},
            body=body,
            limit=LIMIT_PRIVATE,
            auth=True,
        )
        return self._check(response)

    # =========================================================================
    # MARKET DATA
    # =========================================================================

    async def get_spot_kline(self, symbol: str, period: str, size: int = 0) -> list[data.KlineItem]:
        """
        Raises:
            ValidationError: On an unknown period or a size over 2000
        """
        if period not in data.KLINE_PERIODS:
            raise ValidationError(f"invalid kline period {period}")
        if size < 0 or size > 2000:
            raise ValidationError("kline size must be between 1 and 2000")
        params: dict[str, Any] = {"symbol": symbol, "period": period}
        if size:
            params["size"] = size
        response = await self.send_public(MARKET_CANDLES, params)
        return [data.KlineItem.model_validate(item) for item in response.get("data") or []]

    async def get_market_detail_merged(self, symbol: str) -> data.DetailMerged:
        response = await self.send_public(MARKET_DETAIL_MERGED, {"symbol": symbol})
        return data.DetailMerged.model_validate(response["tick"])

    async def get_market_detail(self, symbol: str) -> data.Detail:
        response = await self.send_public(MARKET_DETAIL, {"symbol": symbol})
        return data.Detail.model_validate(response["tick"])

    async def get_tickers(self) -> list[data.Ticker]:
        response = await self.send_public(MARKET_TICKERS)
        return [data.Ticker.model_validate(item) for item in response.get("data") or []]

    async def get_depth(
        self, symbol: str, depth_type: str = data.DEPTH_STEP0, depth: int = 0
    ) -> data.Orderbook:
        params: dict[str, Any] = {"symbol": symbol, "type": depth_type}
        if depth:
            params["depth"] = depth
        response = await self.send_public(MARKET_DEPTH, params)
        return data.Orderbook.model_validate(response["tick"])

    async def get_trades(self, symbol: str) -> list[data.Trade]:
        """Most recent trade batch."""
        response = await self.send_public(MARKET_TRADE, {"symbol": symbol})
        return data.TradeBatch.model_validate(response["tick"]).data

    async def get_trade_history(self, symbol: str, size: int = 0) -> list[data.Trade]:
        """
        Raises:
            ValidationError: On a size over 2000
        """
        if size < 0 or size > 2000:
            raise ValidationError("trade history size must be between 1 and 2000")
        params: dict[str, Any] = {"symbol": symbol}
        if size:
            params["size"] = size
        response = await self.send_public(MARKET_TRADE_HISTORY, params)
        trades: list[data.Trade] = []
        for batch in response.get("data") or []:
            trades.extend(data.TradeBatch.model_validate(batch).data)
        return trades

    async def get_symbols(self) -> list[data.Symbol]:
        response = await self.send_public(SYMBOLS)
        return [data.Symbol.model_validate(item) for item in response.get("data") or []]

    async def get_currencies(self) -> list[str]:
        response = await self.send_public(CURRENCIES)
        return list(response.get("data") or [])

    async def get_timestamp(self) -> datetime:
        response = await self.send_public(TIMESTAMP)
        return datetime.fromtimestamp(int(response["data"]) / 1000, tz=UTC)

    # =========================================================================
    # ACCOUNT
    # =========================================================================

    async def get_accounts(self) -> list[data.Account]:
        response = await self.send_authenticated("GET", ACCOUNTS)
        return [data.Account.model_validate(item) for item in response.get("data") or []]

    async def get_account_balance(self, account_id: str) -> data.AccountBalance:
        response = await self.send_authenticated("GET", ACCOUNT_BALANCE.format(account_id))
        return data.AccountBalance.model_validate(response.get("data") or {})

    async def get_aggregated_balance(self) -> list[data.AggregatedBalance]:
        """Balances summed over every sub user."""
        response = await self.send_authenticated("GET", AGGREGATED_BALANCE)
        return [data.AggregatedBalance.model_validate(item) for item in response.get("data") or []]

    async def query_deposit_address(self, currency: str) -> list[data.DepositAddress]:
        response = await self.send_authenticated(
            "GET", DEPOSIT_ADDRESS, values={"currency": currency.lower()}
        )
        return [data.DepositAddress.model_validate(item) for item in response.get("data") or []]

    async def query_withdraw_quotas(self, currency: str) -> data.WithdrawQuota:
        response = await self.send_authenticated(
            "GET", WITHDRAW_QUOTA, values={"currency": currency.lower()}
        )
        return data.WithdrawQuota.model_validate(response.get("data") or {})

    async def search_deposit_withdraw(
        self, transfer_type: str, currency: str = "", size: int = 0, from_id: int = 0
    ) -> list[data.DepositWithdraw]:
        """
        Raises:
            ValidationError: If transfer_type is not deposit or withdraw
        """
        if transfer_type not in ("deposit", "withdraw"):
            raise ValidationError(f"invalid transfer type {transfer_type}")
        values: dict[str, Any] = {"type": transfer_type}
        if currency:
            values["currency"] = currency.lower()
        if size:
            values["size"] = size
        if from_id:
            values["from"] = from_id
        response = await self.send_authenticated("GET", DEPOSIT_WITHDRAW_HISTORY, values=values)
        return [data.DepositWithdraw.model_validate(item) for item in response.get("data") or []]

    # =========================================================================
    # ORDERS
    # =========================================================================

    async def spot_new_order(
        self,
        account_id: str,
        symbol: str,
        order_type: str,
        amount: Decimal,
        price: Decimal = Decimal("0"),
        client_order_id: str = "",
    ) -> str:
        """
        Place an order and return its id.

        Market buys spend `amount` of the quote currency; the price is not
        sent for market orders.
        """
        body: dict[str, Any] = {
            "account-id": account_id,
            "amount": _dec(amount),
            "source": ORDER_SOURCE,
            "symbol": symbol,
            "type": order_type,
        }
        if order_type not in (data.BUY_MARKET, data.SELL_MARKET):
            body["price"] = _dec(price)
        if client_order_id:
            body["client-order-id"] = client_order_id
        response = await self.send_authenticated("POST", ORDER_PLACE, data=body)
        return str(response["data"])

    async def cancel_existing_order(self, order_id: str) -> str:
        response = await self.send_authenticated("POST", ORDER_CANCEL.format(order_id))
        return str(response["data"])

    async def cancel_order_batch(self, order_ids: list[str]) -> data.CancelOrderBatch:
        response = await self.send_authenticated(
            "POST", ORDER_CANCEL_BATCH, data={"order-ids": order_ids}
        )
        return data.CancelOrderBatch.model_validate(response.get("data") or {})

    async def cancel_open_orders_batch(
        self, account_id: str, symbol: str = ""
    ) -> data.CancelOpenOrdersBatch:
        body: dict[str, Any] = {"account-id": account_id}
        if symbol:
            body["symbol"] = symbol
        response = await self.send_authenticated("POST", ORDER_CANCEL_OPEN, data=body)
        return data.CancelOpenOrdersBatch.model_validate(response.get("data") or {})

    async def get_order(self, order_id: str) -> data.OrderInfo:
        response = await self.send_authenticated("GET", ORDER.format(order_id))
        return data.OrderInfo.model_validate(response["data"])

    async def get_order_by_client_id(self, client_order_id: str) -> data.OrderInfo:
        response = await self.send_authenticated(
            "GET", ORDER_BY_CLIENT_ID, values={"clientOrderId": client_order_id}
        )
        return data.OrderInfo.model_validate(response["data"])

    async def get_order_match_results(self, order_id: str) -> list[data.MatchResult]:
        response = await self.send_authenticated("GET", ORDER_MATCH_RESULTS.format(order_id))
        return [data.MatchResult.model_validate(item) for item in response.get("data") or []]

    async def get_orders(
        self,
        symbol: str,
        states: str,
        types: str = "",
        start: datetime | None = None,
        end: datetime | None = None,
        size: int = 0,
    ) -> list[data.OrderInfo]:
        """Orders in the given comma separated states."""
        values: dict[str, Any] = {"symbol": symbol, "states": states}
        if types:
            values["types"] = types
        if start is not None:
            values["start-time"] = int(start.timestamp() * 1000)
        if end is not None:
            values["end-time"] = int(end.timestamp() * 1000)
        if size:
            values["size"] = size
        response = await self.send_authenticated("GET", ORDERS, values=values)
        return [data.OrderInfo.model_validate(item) for item in response.get("data") or []]

    async def get_open_orders(
        self, account_id: str, symbol: str, side: str = "", size: int = 0
    ) -> list[data.OrderInfo]:
        values: dict[str, Any] = {"account-id": account_id, "symbol": symbol}
        if side:
            values["side"] = side
        if size:
            values["size"] = size
        response = await self.send_authenticated("GET", OPEN_ORDERS, values=values)
        return [data.OrderInfo.model_validate(item) for item in response.get("data") or []]

    async def get_match_results(
        self, symbol: str, start: datetime | None = None, end: datetime | None = None
    ) -> list[data.MatchResult]:
        values: dict[str, Any] = {"symbol": symbol}
        if start is not None:
            values["start-time"] = int(start.timestamp() * 1000)
        if end is not None:
            values["end-time"] = int(end.timestamp() * 1000)
        response = await self.send_authenticated("GET", MATCH_RESULTS, values=values)
        return [data.MatchResult.model_validate(item) for item in response.get("data") or []]

    # =========================================================================
    # MARGIN
    # =========================================================================

    async def margin_transfer(
        self, symbol: str, currency: str, amount: Decimal, into_margin: bool
    ) -> str:
        """Move funds between the spot and margin accounts; returns the transfer id."""
        path = MARGIN_TRANSFER_IN if into_margin else MARGIN_TRANSFER_OUT
        body = {"symbol": symbol, "currency": currency.lower(), "amount": _dec(amount)}
        response = await self.send_authenticated("POST", path, data=body)
        return str(response["data"])

    async def margin_order(self, symbol: str, currency: str, amount: Decimal) -> str:
        """Apply for a loan; returns the loan order id."""
        body = {"symbol": symbol, "currency": currency.lower(), "amount": _dec(amount)}
        response = await self.send_authenticated("POST", MARGIN_ORDERS, data=body)
        return str(response["data"])

    async def margin_repayment(self, loan_id: str, amount: Decimal) -> str:
        response = await self.send_authenticated(
            "POST", MARGIN_REPAY.format(loan_id), data={"amount": _dec(amount)}
        )
        return str(response["data"])

    async def get_margin_loan_orders(
        self,
        symbol: str,
        currency: str = "",
        states: str = "",
        start: datetime | None = None,
        end: datetime | None = None,
        size: int = 0,
    ) -> list[data.MarginOrder]:
        values: dict[str, Any] = {"symbol": symbol}
        if currency:
            values["currency"] = currency.lower()
        if states:
            values["states"] = states
        if start is not None:
            values["start-date"] = start.strftime("%Y-%m-%d")
        if end is not None:
            values["end-date"] = end.strftime("%Y-%m-%d")
        if size:
            values["size"] = size
        response = await self.send_authenticated("GET", MARGIN_LOAN_ORDERS, values=values)
        return [data.MarginOrder.model_validate(item) for item in response.get("data") or []]

    async def get_margin_account_balance(self, symbol: str = "") -> list[data.MarginAccountBalance]:
        values = {"symbol": symbol} if symbol else None
        response = await self.send_authenticated("GET", MARGIN_ACCOUNT_BALANCE, values=values)
        return [
            data.MarginAccountBalance.model_validate(item) for item in response.get("data") or []
        ]

    async def get_margin_rates(self, symbols: list[str] | None = None) -> list[data.MarginRates]:
        values = {"symbols": ",".join(symbols)} if symbols else None
        response = await self.send_authenticated("GET", MARGIN_RATES, values=values)
        return [data.MarginRates.model_validate(item) for item in response.get("data") or []]

    # =========================================================================
    # WITHDRAWALS
    # =========================================================================

    async def withdraw(
        self,
        currency: str,
        address: str,
        address_tag: str,
        amount: Decimal,
        fee: Decimal = Decimal("0"),
        chain: str = "",
    ) -> str:
        """Withdraw to a whitelisted address; returns the withdrawal id."""
        body: dict[str, Any] = {
            "address": address,
            "amount": _dec(amount),
            "currency": currency.lower(),
        }
        if fee > 0:
            body["fee"] = _dec(fee)
        if address_tag:
            body["addr-tag"] = address_tag
        if chain:
            body["chain"] = chain
        response = await self.send_authenticated("POST", WITHDRAW_CREATE, data=body)
        return str(response["data"])

    async def cancel_withdraw(self, withdraw_id: str) -> str:
        response = await self.send_authenticated("POST", WITHDRAW_CANCEL.format(withdraw_id))
        return str(response["data"])

    # =========================================================================
    # FEES
    # =========================================================================

    async def get_fee(self, builder: FeeBuilder) -> Decimal:
        fee = Decimal("0")
        match builder.fee_type:
            case FeeType.CRYPTOCURRENCY_TRADE_FEE | FeeType.OFFLINE_TRADE_FEE:
                rate = (
                    CRYPTO_FIAT_FEE_RATE
                    if builder.pair.is_crypto_fiat_pair()
                    else CRYPTO_CRYPTO_FEE_RATE
                )
                fee = rate * builder.purchase_price * builder.amount
        return max(fee, Decimal("0"))
