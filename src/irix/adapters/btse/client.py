"""
BTSE REST client.

Spot and futures live behind separate base URLs with their own API
versions. Authenticated requests carry request-api, request-nonce and
request-sign headers; the signature is the hex HMAC-SHA384 of
path + nonce + body.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any

from irix import crypto
from irix.adapters.btse.data import (
    GOOD_TILL_CANCEL,
    FeeInformation,
    MarketSummary,
    OpenOrder,
    OrderResponse,
    Orderbook,
    Trade,
    TradeHistory,
    WalletAddress,
    WalletBalance,
    WithdrawalResponse,
)
from irix.enums import URL, FeeType
from irix.errors import ValidationError
from irix.exchange import Base, FeeBuilder
from irix.request import AsyncTokenBucket, Nonce, RateLimiter

logger = logging.getLogger(__name__)

API_URL = "https://api.btse.com"
SPOT_PATH = "/spot"
FUTURES_PATH = "/futures"
SPOT_API_VERSION = "/api/v3.2/"
FUTURES_API_VERSION = "/api/v2.1/"

# Public
MARKET_SUMMARY = "market_summary"
ORDERBOOK = "orderbook"
TRADES = "trades"
TIME = "time"
OHLCV = "ohlcv"

# Authenticated
ORDER = "order"
PENDING_ORDERS = "user/open_orders"
USER_TRADES = "user/trade_history"
WALLET = "user/wallet"
FEES = "user/fees"
WALLET_ADDRESS = "user/wallet/address"
WALLET_WITHDRAWAL = "user/wallet/withdraw"

LIMIT_QUERY = "query"
LIMIT_ORDERS = "orders"

WITHDRAWAL_FEES: dict[str, Decimal] = {
    "USDT": Decimal("1.08"),
    "TUSD": Decimal("1.09"),
    "BTC": Decimal("0.0005"),
    "ETH": Decimal("0.01"),
    "LTC": Decimal("0.001"),
}

MAKER_FEE_RATE = Decimal("0.0005")
TAKER_FEE_RATE = Decimal("0.001")
OFFLINE_TRADE_FEE_RATE = Decimal("0.001")


def _params(**kwargs: Any) -> dict[str, Any]:
    return {key: value for key, value in kwargs.items() if value not in (None, "", 0)}


def _ms(moment: datetime | None) -> int | None:
    if moment is None:
        return None
    return int(moment.timestamp() * 1000)


def international_bank_deposit_fee(amount: Decimal) -> Decimal:
    """0.25 % with a floor of 3 on deposits up to 100; larger ones are free."""
    if amount > 100:
        return Decimal("0")
    return max(amount * Decimal("0.0025"), Decimal("3"))


def international_bank_withdrawal_fee(amount: Decimal) -> Decimal:
    """0.1 % with a floor of 25."""
    return max(amount * Decimal("0.001"), Decimal("25"))


class BTSEAPI(Base):
    """BTSE REST endpoints."""

    def __init__(self) -> None:
        super().__init__()
        self.nonce = Nonce()

    @staticmethod
    def rate_limiter() -> RateLimiter:
        return RateLimiter(
            {
                RateLimiter.DEFAULT: AsyncTokenBucket(15, 15),
                LIMIT_QUERY: AsyncTokenBucket(15, 15),
                LIMIT_ORDERS: AsyncTokenBucket(75, 75),
            }
        )

    # =========================================================================
    # TRANSPORT
    # =========================================================================

    def _base(self, spot: bool) -> tuple[str, str]:
        if spot:
            return self.get_endpoint(URL.REST_SPOT) + SPOT_PATH, SPOT_API_VERSION
        return self.get_endpoint(URL.REST_FUTURES) + FUTURES_PATH, FUTURES_API_VERSION

    async def send_public(
        self, path: str, params: dict[str, Any] | None = None, spot: bool = True
    ) -> Any:
        host, version = self._base(spot)
        return await self.send_http_request(
            "GET", host + version + path, params=params, limit=LIMIT_QUERY
        )

    def sign(self, path: str, nonce: str, body: str) -> str:
        """Hex HMAC-SHA384 over the request path, nonce and body."""
        return crypto.hex_encode(
            crypto.get_hmac(crypto.SHA384, path + nonce + body, self.secret_bytes())
        )

    async def send_authenticated(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        spot: bool = True,
        limit: str = LIMIT_QUERY,
    ) -> Any:
        """
        Send a signed request.

        Raises:
            CredentialsError: Without usable credentials
            ExchangeAPIError: On a non-2xx response

        """
        self.check_authenticated_request()
        host, version = self._base(spot)
        body = json.dumps(data) if data is not None else ""
        nonce = str(self.nonce.get())
        headers = {
            "request-api": self.api.credentials.key,
            "request-nonce": nonce,
            "request-sign": self.sign(version + path, nonce, body),
            "Accept": "application/json",
        }
        if body:
            headers["Content-Type"] = "application/json"
        return await self.send_http_request(
            method,
            host + version + path,
            params=params,
            headers=headers,
            body=body or None,
            limit=limit,
            auth=True,
        )

    # =========================================================================
    # MARKET DATA
    # =========================================================================

    async def get_market_summary(self, symbol: str = "", spot: bool = True) -> list[MarketSummary]:
        """Every market, or only the given symbol."""
        response = await self.send_public(MARKET_SUMMARY, _params(symbol=symbol), spot)
        if isinstance(response, dict):
            response = [response]
        return [MarketSummary.model_validate(item) for item in response]

    async def fetch_order_book(
        self,
        symbol: str,
        group: int = 0,
        limit_bids: int = 0,
        limit_asks: int = 0,
        spot: bool = True,
    ) -> Orderbook:
        params = _params(symbol=symbol, group=group, limit_bids=limit_bids, limit_asks=limit_asks)
        return Orderbook.model_validate(await self.send_public(ORDERBOOK, params, spot))

    async def get_trades(
        self,
        symbol: str,
        start: datetime | None = None,
        end: datetime | None = None,
        before_serial_id: int = 0,
        after_serial_id: int = 0,
        count: int = 0,
        include_old: bool = False,
        spot: bool = True,
    ) -> list[Trade]:
        """
        Raises:
            ValidationError: If the time range is inverted
        """
        if start is not None and end is not None and start > end:
            raise ValidationError("start cannot be after end time")
        params = _params(
            symbol=symbol,
            start=_ms(start),
            end=_ms(end),
            beforeSerialId=before_serial_id,
            afterSerialId=after_serial_id,
            count=count,
        )
        if include_old:
            params["includeOld"] = "true"
        response = await self.send_public(TRADES, params, spot)
        return [Trade.model_validate(item) for item in response]

    async def ohlcv(
        self, symbol: str, start: datetime, end: datetime, resolution: int
    ) -> list[list[Decimal]]:
        """
        Candles as [time, open, high, low, close, volume].

        Raises:
            ValidationError: If the time range is inverted
        """
        if start > end:
            raise ValidationError("start cannot be after end time")
        params = _params(
            symbol=symbol,
            start=int(start.timestamp()),
            end=int(end.timestamp()),
            resolution=resolution,
        )
        return await self.send_public(OHLCV, params)

    async def get_server_time(self) -> dict[str, Any]:
        return await self.send_public(TIME)

    # =========================================================================
    # ACCOUNT
    # =========================================================================

    async def get_wallet_information(self) -> list[WalletBalance]:
        response = await self.send_authenticated("GET", WALLET)
        return [WalletBalance.model_validate(item) for item in response]

    async def get_fee_information(self, symbol: str = "") -> list[FeeInformation]:
        response = await self.send_authenticated("GET", FEES, params=_params(symbol=symbol))
        return [FeeInformation.model_validate(item) for item in response]

    async def get_wallet_address(self, currency: str) -> list[WalletAddress]:
        response = await self.send_authenticated(
            "GET", WALLET_ADDRESS, params={"currency": currency}
        )
        return [WalletAddress.model_validate(item) for item in response]

    async def create_wallet_address(self, currency: str) -> list[WalletAddress]:
        response = await self.send_authenticated(
            "POST", WALLET_ADDRESS, data={"currency": currency}
        )
        if isinstance(response, dict):
            response = [response]
        return [WalletAddress.model_validate(item) for item in response]

    async def wallet_withdrawal(
        self, currency: str, address: str, tag: str, amount: str
    ) -> WithdrawalResponse:
        req = {"currency": currency, "address": address, "tag": tag, "amount": amount}
        response = await self.send_authenticated("POST", WALLET_WITHDRAWAL, data=req)
        return WithdrawalResponse.model_validate(response)

    # =========================================================================
    # ORDERS
    # =========================================================================

    async def create_order(
        self,
        symbol: str,
        side: str,
        order_type: str,
        size: Decimal,
        price: Decimal = Decimal("0"),
        trigger_price: Decimal = Decimal("0"),
        time_in_force: str = GOOD_TILL_CANCEL,
        client_order_id: str = "",
        post_only: bool = False,
    ) -> list[OrderResponse]:
        req: dict[str, Any] = {
            "symbol": symbol,
            "side": side,
            "type": order_type,
            "size": float(size),
            "time_in_force": time_in_force,
        }
        if price > 0:
            req["price"] = float(price)
        if trigger_price > 0:
            req["triggerPrice"] = float(trigger_price)
        if client_order_id:
            req["clOrderID"] = client_order_id
        if post_only:
            req["postOnly"] = True
        response = await self.send_authenticated("POST", ORDER, data=req, limit=LIMIT_ORDERS)
        return [OrderResponse.model_validate(item) for item in response]

    async def cancel_existing_order(
        self, order_id: str, symbol: str, client_order_id: str = ""
    ) -> list[OrderResponse]:
        """Cancel one order, or every order on the symbol when no id is given."""
        params = _params(orderID=order_id, symbol=symbol, clOrderID=client_order_id)
        response = await self.send_authenticated(
            "DELETE", ORDER, params=params, limit=LIMIT_ORDERS
        )
        return [OrderResponse.model_validate(item) for item in response]

    async def get_orders(
        self, symbol: str = "", order_id: str = "", client_order_id: str = ""
    ) -> list[OpenOrder]:
        params = _params(symbol=symbol, orderID=order_id, clOrderID=client_order_id)
        response = await self.send_authenticated("GET", PENDING_ORDERS, params=params)
        return [OpenOrder.model_validate(item) for item in response]

    async def trade_history(
        self,
        symbol: str = "",
        start: datetime | None = None,
        end: datetime | None = None,
        before_serial_id: int = 0,
        after_serial_id: int = 0,
        count: int = 0,
        order_id: str = "",
    ) -> list[TradeHistory]:
        """
        Raises:
            ValidationError: If the time range is inverted
        """
        if start is not None and end is not None and start > end:
            raise ValidationError("start cannot be after end time")
        params = _params(
            symbol=symbol,
            startTime=_ms(start),
            endTime=_ms(end),
            beforeSerialId=before_serial_id,
            afterSerialId=after_serial_id,
            count=count,
            orderID=order_id,
        )
        response = await self.send_authenticated("GET", USER_TRADES, params=params)
        return [TradeHistory.model_validate(item) for item in response]

    # =========================================================================
    # FEES
    # =========================================================================

    async def get_fee(self, builder: FeeBuilder) -> Decimal:
        fee = Decimal("0")
        match builder.fee_type:
            case FeeType.CRYPTOCURRENCY_TRADE_FEE:
                rate = MAKER_FEE_RATE if builder.is_maker else TAKER_FEE_RATE
                symbol = str(builder.pair.format("-", True))
                for item in await self.get_fee_information(symbol):
                    if item.symbol == symbol:
                        rate = item.maker_fee if builder.is_maker else item.taker_fee
                        break
                fee = rate * builder.purchase_price * builder.amount
            case FeeType.CRYPTOCURRENCY_WITHDRAWAL_FEE:
                fee = WITHDRAWAL_FEES.get(builder.pair.base.upper().symbol, Decimal("0"))
            case FeeType.INTERNATIONAL_BANK_DEPOSIT_FEE:
                fee = international_bank_deposit_fee(builder.amount)
            case FeeType.INTERNATIONAL_BANK_WITHDRAWAL_FEE:
                fee = international_bank_withdrawal_fee(builder.amount)
            case FeeType.OFFLINE_TRADE_FEE:
                fee = OFFLINE_TRADE_FEE_RATE * builder.purchase_price * builder.amount
        return max(fee, Decimal("0"))
