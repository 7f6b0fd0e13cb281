"""
Crypto.com Exchange v2 REST client.

Public methods are GET requests with id, nonce and params in the query
string. Private methods are POSTed as a signed JSON envelope. Every reply
carries a code; anything other than zero is raised as ExchangeAPIError.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from irix.adapters.cryptocom import data
from irix.adapters.cryptocom import requests as req
from irix.adapters.cryptocom.params import (
    CreateOrderParams,
    DepositHistoryParams,
    OpenOrderParams,
    TradeParams,
    WithdrawHistoryParams,
    WithdrawParams,
)
from irix.enums import URL, FeeType
from irix.errors import ExchangeAPIError
from irix.exchange import Base, FeeBuilder
from irix.request import AsyncTokenBucket, RateLimiter

logger = logging.getLogger(__name__)

API_URL = f"https://{data.HOST}/{data.API_VERSION}/"
SANDBOX_API_URL = f"https://{data.SANDBOX_HOST}/{data.API_VERSION}/"

LIMIT_PUBLIC = "public"
LIMIT_ORDER = "order"
LIMIT_PRIVATE = "private"

# Base tier, thirty day volume under 25k USD
MAKER_FEE_RATE = Decimal("0.004")
TAKER_FEE_RATE = Decimal("0.004")


class CryptoComAPI(Base):
    """Crypto.com REST endpoints."""

    @staticmethod
    def rate_limiter() -> RateLimiter:
        return RateLimiter(
            {
                RateLimiter.DEFAULT: AsyncTokenBucket(100, 100),
                LIMIT_PUBLIC: AsyncTokenBucket(100, 100),
                LIMIT_ORDER: AsyncTokenBucket(15, 15),
                LIMIT_PRIVATE: AsyncTokenBucket(3, 3),
            }
        )

    # =========================================================================
    # TRANSPORT
    # =========================================================================

    def _check(self, request: req.Request, raw: Any) -> data.Response:
        response = data.Response.model_validate(raw)
        if response.code != 0:
            raise ExchangeAPIError(
                self.name,
                f"error call at {request.method} code: {response.code}. reason: {response.message}",
                code=response.code,
            )
        return response

    async def send_public(self, request: req.Request) -> data.Response:
        query: dict[str, Any] = {}
        if request.id > 0:
            query["id"] = request.id
        if request.nonce:
            query["nonce"] = request.nonce
        query.update({key: str(value) for key, value in request.params.items()})
        raw = await self.send_http_request(
            "GET",
            self.get_endpoint(URL.REST_SPOT) + request.method,
            params=query,
            headers={"Content-Type": "application/json"},
            limit=LIMIT_PUBLIC,
        )
        return self._check(request, raw)

    async def send_private(self, request: req.Request, limit: str = LIMIT_PRIVATE) -> data.Response:
        """
        Sign and POST a private request.

        Raises:
            CredentialsError: Without usable credentials
            ExchangeAPIError: On a non-zero response code
        """
        self.check_authenticated_request()
        req.sign_request(request, self.api.credentials.key, self.secret_bytes())
        body = request.encode()
        if self.verbose:
            logger.debug(f"{self.name} request JSON: {body}")
        raw = await self.send_http_request(
            "POST",
            self.get_endpoint(URL.REST_SPOT) + request.method,
            headers={"Content-Type": "application/json"},
            body=body,
            limit=limit,
            auth=True,
        )
        return self._check(request, raw)

    # =========================================================================
    # MARKET DATA
    # =========================================================================

    async def get_instruments(self) -> list[data.Instrument]:
        response = await self.send_public(req.instruments_request())
        return [data.Instrument.model_validate(item) for item in response.result.get("instruments", [])]

    async def get_book(self, instrument: str, depth: int = 0) -> data.OrderbookResult:
        response = await self.send_public(req.orderbook_request(instrument, depth))
        return data.OrderbookResult.model_validate(response.result)

    async def get_candlestick(
        self, instrument: str, interval: data.Interval, depth: int = 0
    ) -> data.CandlestickResult:
        response = await self.send_public(req.candlestick_request(instrument, interval, depth))
        return data.CandlestickResult.model_validate(response.result)

    async def get_tickers(self, instrument: str = "") -> list[data.Ticker]:
        """A single instrument comes back as an object, all of them as a list."""
        response = await self.send_public(req.ticker_request(instrument))
        raw = response.result.get("data", [])
        if isinstance(raw, dict):
            raw = [raw]
        return [data.Ticker.model_validate(item) for item in raw]

    async def get_public_trades(self, instrument: str = "") -> list[data.PublicTrade]:
        response = await self.send_public(req.public_trades_request(instrument))
        return data.PublicTradeResult.model_validate(response.result).data

    # =========================================================================
    # ACCOUNT
    # =========================================================================

    async def get_account_summary(self, currency: str = "") -> list[data.AccountBalance]:
        response = await self.send_private(req.account_summary_request(currency))
        return data.AccountResult.model_validate(response.result).accounts

    async def get_deposit_addresses(self, currency: str) -> list[data.DepositAddress]:
        response = await self.send_private(req.deposit_address_request(currency))
        return data.DepositAddressResult.model_validate(response.result).deposit_address_list

    async def create_withdrawal(self, params: WithdrawParams) -> data.Withdrawal:
        response = await self.send_private(req.create_withdrawal_request(params))
        return data.Withdrawal.model_validate(response.result)

    async def get_withdrawal_history(
        self, params: WithdrawHistoryParams | None = None
    ) -> list[data.Withdrawal]:
        response = await self.send_private(req.withdrawal_history_request(params))
        return data.WithdrawalHistoryResult.model_validate(response.result).withdrawal_list

    async def get_deposit_history(self, params: DepositHistoryParams | None = None) -> list[data.Deposit]:
        response = await self.send_private(req.deposit_history_request(params))
        return data.DepositHistoryResult.model_validate(response.result).deposit_list

    # =========================================================================
    # ORDERS
    # =========================================================================

    async def create_order(self, params: CreateOrderParams) -> data.CreateOrderResult:
        response = await self.send_private(req.create_order_request(params), LIMIT_ORDER)
        return data.CreateOrderResult.model_validate(response.result)

    async def cancel_existing_order(self, order_id: str, instrument: str) -> None:
        await self.send_private(req.cancel_order_request(order_id, instrument), LIMIT_ORDER)

    async def cancel_all_instrument_orders(self, instrument: str) -> None:
        await self.send_private(req.cancel_all_orders_request(instrument), LIMIT_ORDER)

    async def get_order_detail(self, order_id: str) -> data.OrderDetailResult:
        response = await self.send_private(req.order_detail_request(order_id))
        return data.OrderDetailResult.model_validate(response.result)

    async def get_open_orders(self, params: OpenOrderParams | None = None) -> data.OrderListResult:
        response = await self.send_private(req.open_orders_request(params))
        return data.OrderListResult.model_validate(response.result)

    async def get_orders_history(self, params: TradeParams | None = None) -> data.OrderListResult:
        response = await self.send_private(req.order_history_request(params))
        return data.OrderListResult.model_validate(response.result)

    async def get_trades(self, params: TradeParams | None = None) -> list[data.Trade]:
        response = await self.send_private(req.trades_request(params))
        return data.TradeListResult.model_validate(response.result).trade_list

    # =========================================================================
    # FEES
    # =========================================================================

    async def get_fee(self, builder: FeeBuilder) -> Decimal:
        fee = Decimal("0")
        match builder.fee_type:
            case FeeType.CRYPTOCURRENCY_TRADE_FEE | FeeType.OFFLINE_TRADE_FEE:
                rate = MAKER_FEE_RATE if builder.is_maker else TAKER_FEE_RATE
                fee = rate * builder.purchase_price * builder.amount
        return max(fee, Decimal("0"))
