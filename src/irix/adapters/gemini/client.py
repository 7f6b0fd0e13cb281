"""
Gemini REST client.

Private calls are empty POSTs. The JSON payload (request path, nonce and the
call's fields) is base64 encoded into X-GEMINI-PAYLOAD and signed with hex
HMAC-SHA384 into X-GEMINI-SIGNATURE.
"""

from __future__ import annotations

import json
import logging
import time
from decimal import Decimal
from typing import Any

from irix import crypto
from irix.adapters.gemini import data
from irix.enums import URL, FeeType
from irix.errors import ExchangeAPIError
from irix.exchange import Base, FeeBuilder
from irix.request import AsyncTokenBucket, RateLimiter

logger = logging.getLogger(__name__)

API_URL = "https://api.gemini.com"
SANDBOX_API_URL = "https://api.sandbox.gemini.com"

# Market data
SYMBOLS = "/v1/symbols"
SYMBOL_DETAILS = "/v1/symbols/details/{}"
TICKER = "/v1/pubticker/{}"
TICKER_V2 = "/v2/ticker/{}"
BOOK = "/v1/book/{}"
TRADES = "/v1/trades/{}"
CANDLES = "/v2/candles/{}/{}"

# Orders
ORDER_NEW = "/v1/order/new"
ORDER_CANCEL = "/v1/order/cancel"
ORDER_CANCEL_SESSION = "/v1/order/cancel/session"
ORDER_CANCEL_ALL = "/v1/order/cancel/all"
ORDER_STATUS = "/v1/order/status"
ORDERS = "/v1/orders"
MY_TRADES = "/v1/mytrades"

# Account
NOTIONAL_VOLUME = "/v1/notionalvolume"
BALANCES = "/v1/balances"
DEPOSIT_ADDRESS = "/v1/deposit/{}/newAddress"
WITHDRAW = "/v1/withdraw/{}"
TRANSFERS = "/v1/transfers"
HEARTBEAT = "/v1/heartbeat"

BASIS_POINT = Decimal("0.0001")

LIMIT_PUBLIC = "public"
LIMIT_PRIVATE = "private"


def _dec(value: Decimal) -> str:
    return format(value.normalize(), "f")


class GeminiAPI(Base):
    """Gemini REST endpoints."""

    def __init__(self) -> None:
        super().__init__()
        self._last_nonce = 0

    @staticmethod
    def rate_limiter() -> RateLimiter:
        return RateLimiter(
            {
                RateLimiter.DEFAULT: AsyncTokenBucket(2, 10),
                LIMIT_PUBLIC: AsyncTokenBucket(2, 10),
                LIMIT_PRIVATE: AsyncTokenBucket(1, 5),
            }
        )

    # =========================================================================
    # TRANSPORT
    # =========================================================================

    def _check(self, response: Any) -> Any:
        """
        Raises:
            ExchangeAPIError: If result is "error"
        """
        if isinstance(response, dict) and response.get("result") == "error":
            raise ExchangeAPIError(
                self.name,
                f"{response.get('reason', '')}: {response.get('message', '')}",
                code=response.get("reason"),
            )
        return response

    async def send_public(self, path: str, params: dict[str, Any] | None = None) -> Any:
        endpoint = self.get_endpoint(URL.REST_SPOT)
        response = await self.send_http_request(
            "GET", endpoint + path, params=params, limit=LIMIT_PUBLIC
        )
        return self._check(response)

    def generate_nonce(self) -> int:
        self._last_nonce = max(time.time_ns() // 1_000_000, self._last_nonce + 1)
        return self._last_nonce

    def encode_payload(self, path: str, values: dict[str, Any] | None = None) -> tuple[str, str]:
        """Base64 payload and its hex HMAC-SHA384 signature."""
        body = {"request": path, "nonce": self.generate_nonce(), **(values or {})}
        payload = crypto.base64_encode(json.dumps(body))
        signature = crypto.hex_encode(
            crypto.get_hmac(crypto.SHA384, payload, self.secret_bytes())
        )
        return payload, signature

    async def send_authenticated(self, path: str, values: dict[str, Any] | None = None) -> Any:
        """
        Raises:
            CredentialsError: Without usable credentials
            ExchangeAPIError: On a venue or HTTP error
        """
        self.check_authenticated_request()
        endpoint = self.get_endpoint(URL.REST_SPOT)
        payload, signature = self.encode_payload(path, values)
        headers = {
            "Content-Type": "text/plain",
            "X-GEMINI-APIKEY": self.api.credentials.key,
            "X-GEMINI-PAYLOAD": payload,
            "X-GEMINI-SIGNATURE": signature,
            "Cache-Control": "no-cache",
        }
        response = await self.send_http_request(
            "POST", endpoint + path, headers=headers, limit=LIMIT_PRIVATE, auth=True
        )
        return self._check(response)

    # =========================================================================
    # MARKET DATA
    # =========================================================================

    async def get_symbols(self) -> list[str]:
        return list(await self.send_public(SYMBOLS))

    async def get_symbol_details(self, symbol: str) -> data.SymbolDetails:
        return data.SymbolDetails.model_validate(
            await self.send_public(SYMBOL_DETAILS.format(symbol))
        )

    async def get_ticker(self, symbol: str) -> data.Ticker:
        return data.Ticker.model_validate(await self.send_public(TICKER.format(symbol)))

    async def get_ticker_v2(self, symbol: str) -> data.TickerV2:
        return data.TickerV2.model_validate(await self.send_public(TICKER_V2.format(symbol)))

    async def get_orderbook(self, symbol: str, limit_bids: int = 0, limit_asks: int = 0) -> data.Orderbook:
        """Zero limits return the full book."""
        response = await self.send_public(
            BOOK.format(symbol), {"limit_bids": limit_bids, "limit_asks": limit_asks}
        )
        return data.Orderbook.model_validate(response)

    async def get_trades(
        self, symbol: str, since_ms: int = 0, limit: int = 0, include_breaks: bool = False
    ) -> list[data.Trade]:
        params: dict[str, Any] = {}
        if since_ms:
            params["timestamp"] = since_ms
        if limit:
            params["limit_trades"] = limit
        if include_breaks:
            params["include_breaks"] = "true"
        response = await self.send_public(TRADES.format(symbol), params)
        return [data.Trade.model_validate(item) for item in response or []]

    async def get_candles(self, symbol: str, time_frame: str) -> list[data.Candle]:
        response = await self.send_public(CANDLES.format(symbol, time_frame))
        return [data.Candle.from_row(row) for row in response or []]

    # =========================================================================
    # ORDERS
    # =========================================================================

    async def new_order(
        self,
        symbol: str,
        side: str,
        amount: Decimal,
        price: Decimal,
        order_type: str = data.ORDER_TYPE_LIMIT,
        options: list[str] | None = None,
        client_order_id: str = "",
    ) -> data.Order:
        values: dict[str, Any] = {
            "symbol": symbol,
            "amount": _dec(amount),
            "price": _dec(price),
            "side": side,
            "type": order_type,
        }
        if options:
            values["options"] = options
        if client_order_id:
            values["client_order_id"] = client_order_id
        return data.Order.model_validate(await self.send_authenticated(ORDER_NEW, values))

    async def cancel_existing_order(self, order_id: int) -> data.Order:
        response = await self.send_authenticated(ORDER_CANCEL, {"order_id": order_id})
        return data.Order.model_validate(response)

    async def cancel_existing_orders(self, session_only: bool = False) -> data.CancelAll:
        path = ORDER_CANCEL_SESSION if session_only else ORDER_CANCEL_ALL
        return data.CancelAll.model_validate(await self.send_authenticated(path))

    async def get_order_status(self, order_id: int) -> data.Order:
        response = await self.send_authenticated(ORDER_STATUS, {"order_id": order_id})
        return data.Order.model_validate(response)

    async def get_orders(self) -> list[data.Order]:
        response = await self.send_authenticated(ORDERS)
        return [data.Order.model_validate(item) for item in response or []]

    async def get_trade_history(
        self, symbol: str, since: int = 0, limit: int = 500
    ) -> list[data.MyTrade]:
        """since is in unix seconds."""
        values: dict[str, Any] = {"symbol": symbol, "limit_trades": limit}
        if since:
            values["timestamp"] = since
        response = await self.send_authenticated(MY_TRADES, values)
        return [data.MyTrade.model_validate(item) for item in response or []]

    # =========================================================================
    # ACCOUNT
    # =========================================================================

    async def get_notional_volume(self) -> data.NotionalVolume:
        return data.NotionalVolume.model_validate(await self.send_authenticated(NOTIONAL_VOLUME))

    async def get_balances(self) -> list[data.Balance]:
        response = await self.send_authenticated(BALANCES)
        return [data.Balance.model_validate(item) for item in response or []]

    async def get_crypto_deposit_address(self, currency: str, label: str = "") -> data.DepositAddress:
        values = {"label": label} if label else None
        response = await self.send_authenticated(DEPOSIT_ADDRESS.format(currency), values)
        return data.DepositAddress.model_validate(response)

    async def withdraw_crypto(self, currency: str, address: str, amount: Decimal) -> data.WithdrawResponse:
        response = await self.send_authenticated(
            WITHDRAW.format(currency), {"address": address, "amount": _dec(amount)}
        )
        return data.WithdrawResponse.model_validate(response)

    async def get_transfers(self, since_ms: int = 0, limit: int = 50) -> list[data.Transfer]:
        values: dict[str, Any] = {"limit_transfers": limit}
        if since_ms:
            values["timestamp"] = since_ms
        response = await self.send_authenticated(TRANSFERS, values)
        return [data.Transfer.model_validate(item) for item in response or []]

    async def post_heartbeat(self) -> str:
        response = await self.send_authenticated(HEARTBEAT)
        return str(response.get("result", ""))

    # =========================================================================
    # FEES
    # =========================================================================

    async def get_fee(self, builder: FeeBuilder) -> Decimal:
        fee = Decimal("0")
        match builder.fee_type:
            case FeeType.CRYPTOCURRENCY_TRADE_FEE:
                volume = await self.get_notional_volume()
                bps = volume.api_maker_fee_bps if builder.is_maker else volume.api_taker_fee_bps
                fee = Decimal(bps) * BASIS_POINT * builder.purchase_price * builder.amount
            case FeeType.OFFLINE_TRADE_FEE:
                rate = Decimal("0.001") if builder.is_maker else Decimal("0.0035")
                fee = rate * builder.purchase_price * builder.amount
        return max(fee, Decimal("0"))
