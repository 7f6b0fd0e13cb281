"""
BTC Markets v3 REST client.

Authenticated requests carry BM-AUTH-APIKEY, BM-AUTH-TIMESTAMP and
BM-AUTH-SIGNATURE headers. The signature is the base64 HMAC-SHA512 of
method + path + timestamp + body, keyed with the base64 decoded secret.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime
from decimal import Decimal
from typing import Any

from irix import crypto
from irix.adapters.btcmarkets.data import (
    BatchCancelResponse,
    BatchTradeResponse,
    Balance,
    DepositAddress,
    Market,
    Order,
    Orderbook,
    Ticker,
    Trade,
    TradeHistory,
    TradingFees,
    Transfer,
    WithdrawalFee,
)
from irix.enums import URL, Asset, FeeType
from irix.errors import ValidationError
from irix.exchange import Base, FeeBuilder
from irix.request import AsyncTokenBucket, RateLimiter

logger = logging.getLogger(__name__)

API_URL = "https://api.btcmarkets.net"
API_VERSION = "/v3"

MARKETS = "/markets"
TICKERS = "/markets/tickers"
TRADING_FEES = "/accounts/me/trading-fees"
BALANCES = "/accounts/me/balances"
ORDERS = "/orders"
BATCH_ORDERS = "/batchorders"
TRADES = "/trades"
WITHDRAWALS = "/withdrawals"
TRANSFERS = "/transfers"
ADDRESSES = "/addresses"
WITHDRAWAL_FEES = "/withdrawal-fees"

OFFLINE_TRADE_FEE_RATE = Decimal("0.0085")

LIMIT_AUTH = "auth"
LIMIT_UNAUTH = "unauth"
LIMIT_ORDER_PLACEMENT = "orderPlacement"
LIMIT_BATCH_ORDERS = "batchOrders"
LIMIT_WITHDRAW = "withdraw"


def _params(**kwargs: Any) -> dict[str, Any]:
    """Drop unset (None, empty or negative) query values."""
    result: dict[str, Any] = {}
    for key, value in kwargs.items():
        if value is None or value == "":
            continue
        if isinstance(value, int) and not isinstance(value, bool) and value < 0:
            continue
        result[key] = value
    return result


def _dec(value: Decimal) -> str:
    return format(value.normalize(), "f")


class BTCMarketsAPI(Base):
    """BTC Markets REST endpoints."""

    @staticmethod
    def rate_limiter() -> RateLimiter:
        return RateLimiter(
            {
                RateLimiter.DEFAULT: AsyncTokenBucket(5, 50),
                LIMIT_UNAUTH: AsyncTokenBucket(5, 50),
                LIMIT_AUTH: AsyncTokenBucket(1, 10),
                LIMIT_ORDER_PLACEMENT: AsyncTokenBucket(3, 30),
                LIMIT_BATCH_ORDERS: AsyncTokenBucket(0.5, 5),
                LIMIT_WITHDRAW: AsyncTokenBucket(1, 10),
            }
        )

    # =========================================================================
    # TRANSPORT
    # =========================================================================

    async def send_public(
        self, path: str, params: dict[str, Any] | None = None
    ) -> Any:
        endpoint = self.get_endpoint(URL.REST_SPOT)
        return await self.send_http_request(
            "GET", endpoint + API_VERSION + path, params=params, limit=LIMIT_UNAUTH
        )

    def sign(self, method: str, path: str, timestamp: str, body: str) -> str:
        """Base64 HMAC-SHA512 over method + path + timestamp + body."""
        message = method + API_VERSION + path + timestamp + body
        return crypto.base64_encode(crypto.get_hmac(crypto.SHA512, message, self.secret_bytes()))

    async def send_authenticated(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        limit: str = LIMIT_AUTH,
    ) -> Any:
        """
        Send a signed request. The query string is not part of the signature.

        Raises:
            CredentialsError: Without usable credentials
            ExchangeAPIError: On a non-2xx response

        """
        self.check_authenticated_request()
        body = json.dumps(data) if data is not None else ""
        timestamp = str(int(time.time() * 1000))
        headers = {
            "Accept": "application/json",
            "Accept-Charset": "UTF-8",
            "Content-Type": "application/json",
            "BM-AUTH-APIKEY": self.api.credentials.key,
            "BM-AUTH-TIMESTAMP": timestamp,
            "BM-AUTH-SIGNATURE": self.sign(method, path, timestamp, body),
        }
        endpoint = self.get_endpoint(URL.REST_SPOT)
        return await self.send_http_request(
            method,
            endpoint + API_VERSION + path,
            params=params,
            headers=headers,
            body=body or None,
            limit=limit,
            auth=True,
        )

    # =========================================================================
    # MARKET DATA
    # =========================================================================

    async def get_markets(self) -> list[Market]:
        return [Market.model_validate(item) for item in await self.send_public(MARKETS)]

    async def get_ticker(self, market_id: str) -> Ticker:
        response = await self.send_public(f"{MARKETS}/{market_id}/ticker")
        return Ticker.model_validate(response)

    async def get_tickers(self, market_ids: list[str]) -> list[Ticker]:
        """Tickers for several markets in one request."""
        response = await self.send_public(TICKERS, {"marketId": market_ids})
        return [Ticker.model_validate(item) for item in response]

    async def get_trades(
        self, market_id: str, before: int = -1, after: int = -1, limit: int = -1
    ) -> list[Trade]:
        """
        Raises:
            ValidationError: If both before and after are set
        """
        if before > 0 and after >= 0:
            raise ValidationError("BTCMarkets only supports either before or after, not both")
        params = _params(before=before, after=after, limit=limit)
        response = await self.send_public(f"{MARKETS}/{market_id}/trades", params)
        return [Trade.model_validate(item) for item in response]

    async def get_orderbook(self, market_id: str, level: int = 2) -> Orderbook:
        """
        Raises:
            ValidationError: For levels other than 1, 2 or 3
        """
        if level not in (1, 2, 3):
            raise ValidationError(f"invalid orderbook level {level}")
        response = await self.send_public(f"{MARKETS}/{market_id}/orderbook", {"level": level})
        return Orderbook.from_response(response)

    async def get_market_candles(
        self,
        market_id: str,
        time_window: str,
        start: datetime | None = None,
        end: datetime | None = None,
        before: int = -1,
        after: int = -1,
        limit: int = -1,
    ) -> list[list[str]]:
        """
        Candles as [time, open, high, low, close, volume] string arrays.

        Raises:
            ValidationError: If a time range is combined with before/after
                paging, or the range is inverted

        """
        if (start is not None or end is not None) and (before > 0 or after > 0):
            raise ValidationError("BTCMarkets only supports either before/after or from/to")
        if start is not None and end is not None and start > end:
            raise ValidationError("start time cannot be after end time")
        params = _params(
            timeWindow=time_window,
            before=before,
            after=after,
            limit=limit,
            **{
                "from": start.strftime("%Y-%m-%dT%H:%M:%SZ") if start else None,
                "to": end.strftime("%Y-%m-%dT%H:%M:%SZ") if end else None,
            },
        )
        return await self.send_public(f"{MARKETS}/{market_id}/candles", params)

    # =========================================================================
    # ACCOUNT
    # =========================================================================

    async def get_account_balance(self) -> list[Balance]:
        response = await self.send_authenticated("GET", BALANCES)
        return [Balance.model_validate(item) for item in response]

    async def get_trading_fees(self) -> TradingFees:
        return TradingFees.model_validate(await self.send_authenticated("GET", TRADING_FEES))

    async def get_withdrawal_fees(self) -> list[WithdrawalFee]:
        response = await self.send_public(WITHDRAWAL_FEES)
        return [WithdrawalFee.model_validate(item) for item in response]

    async def fetch_deposit_address(
        self, asset_name: str, before: int = -1, after: int = -1, limit: int = -1
    ) -> DepositAddress:
        params = _params(assetName=asset_name, before=before, after=after, limit=limit)
        response = await self.send_authenticated("GET", ADDRESSES, params=params)
        return DepositAddress.model_validate(response)

    async def get_transfers(self, asset_name: str = "", limit: int = -1) -> list[Transfer]:
        params = _params(assetName=asset_name, limit=limit)
        response = await self.send_authenticated("GET", TRANSFERS, params=params)
        return [Transfer.model_validate(item) for item in response]

    async def get_withdrawals(self, limit: int = -1) -> list[Transfer]:
        response = await self.send_authenticated("GET", WITHDRAWALS, params=_params(limit=limit))
        return [Transfer.model_validate(item) for item in response]

    async def request_withdraw(
        self,
        asset_name: str,
        amount: Decimal,
        to_address: str = "",
        account_name: str = "",
        account_number: str = "",
        bsb_number: str = "",
        bank_name: str = "",
    ) -> Transfer:
        """
        Withdraw crypto to an address, or AUD to a bank account.

        Raises:
            ValidationError: If an AUD withdrawal lacks bank details
        """
        req: dict[str, Any] = {"assetName": asset_name, "amount": _dec(amount)}
        if asset_name.upper() == "AUD":
            if not (account_name and account_number and bsb_number):
                raise ValidationError("account name, number and BSB are required for AUD")
            req.update(
                accountName=account_name,
                accountNumber=account_number,
                bsbNumber=bsb_number,
                bankName=bank_name,
            )
        else:
            req["toAddress"] = to_address
        response = await self.send_authenticated("POST", WITHDRAWALS, data=req, limit=LIMIT_WITHDRAW)
        return Transfer.model_validate(response)

    # =========================================================================
    # ORDERS
    # =========================================================================

    async def new_order(
        self,
        market_id: str,
        price: Decimal,
        amount: Decimal,
        order_type: str,
        side: str,
        trigger_price: Decimal = Decimal("0"),
        target_amount: Decimal = Decimal("0"),
        time_in_force: str = "",
        post_only: bool = False,
        self_trade: str = "",
        client_order_id: str = "",
    ) -> Order:
        req: dict[str, Any] = {
            "marketId": market_id,
            "amount": _dec(amount),
            "type": order_type,
            "side": side,
        }
        if order_type != "Market":
            req["price"] = _dec(price)
        if trigger_price > 0:
            req["triggerPrice"] = _dec(trigger_price)
        if target_amount > 0:
            req["targetAmount"] = _dec(target_amount)
        if time_in_force:
            req["timeInForce"] = time_in_force
        if post_only:
            req["postOnly"] = True
        if self_trade:
            req["selfTrade"] = self_trade
        if client_order_id:
            req["clientOrderId"] = client_order_id
        response = await self.send_authenticated(
            "POST", ORDERS, data=req, limit=LIMIT_ORDER_PLACEMENT
        )
        return Order.model_validate(response)

    async def get_orders(
        self,
        market_id: str = "",
        before: int = -1,
        after: int = -1,
        limit: int = -1,
        open_only: bool = False,
    ) -> list[Order]:
        params = _params(marketId=market_id, before=before, after=after, limit=limit)
        if open_only:
            params["status"] = "open"
        response = await self.send_authenticated("GET", ORDERS, params=params)
        return [Order.model_validate(item) for item in response]

    async def fetch_order(self, order_id: str) -> Order:
        return Order.model_validate(await self.send_authenticated("GET", f"{ORDERS}/{order_id}"))

    async def remove_order(self, order_id: str) -> Order:
        response = await self.send_authenticated("DELETE", f"{ORDERS}/{order_id}")
        return Order.model_validate(response)

    async def cancel_all_open_orders_by_pairs(self, market_ids: list[str]) -> list[Order]:
        params: dict[str, Any] | None = None
        if market_ids:
            params = {"marketId": ",".join(market_ids)}
        response = await self.send_authenticated("DELETE", ORDERS, params=params)
        return [Order.model_validate(item) for item in response]

    async def cancel_batch(self, order_ids: list[str]) -> BatchCancelResponse:
        response = await self.send_authenticated(
            "DELETE", f"{BATCH_ORDERS}/{','.join(order_ids)}", limit=LIMIT_BATCH_ORDERS
        )
        return BatchCancelResponse.model_validate(response)

    async def get_batch_trades(self, order_ids: list[str]) -> BatchTradeResponse:
        """Orders by id, at most 50 per request."""
        response = await self.send_authenticated(
            "GET", f"{BATCH_ORDERS}/{','.join(order_ids)}", limit=LIMIT_BATCH_ORDERS
        )
        return BatchTradeResponse.model_validate(response)

    async def get_trade_history(
        self, market_id: str = "", order_id: str = "", limit: int = -1
    ) -> list[TradeHistory]:
        params = _params(marketId=market_id, orderId=order_id, limit=limit)
        response = await self.send_authenticated("GET", TRADES, params=params)
        return [TradeHistory.model_validate(item) for item in response]

    # =========================================================================
    # FEES
    # =========================================================================

    async def get_fee(self, builder: FeeBuilder) -> Decimal:
        fee = Decimal("0")
        match builder.fee_type:
            case FeeType.CRYPTOCURRENCY_TRADE_FEE:
                fees = await self.get_trading_fees()
                market_id = self.format_symbol(builder.pair, Asset.SPOT)
                for market in fees.fee_by_markets:
                    if market.market_id == market_id:
                        rate = market.maker_fee_rate if builder.is_maker else market.taker_fee_rate
                        fee = rate * builder.purchase_price * builder.amount
                        break
            case FeeType.CRYPTOCURRENCY_WITHDRAWAL_FEE | FeeType.INTERNATIONAL_BANK_WITHDRAWAL_FEE:
                code = (
                    builder.pair.base
                    if builder.fee_type == FeeType.CRYPTOCURRENCY_WITHDRAWAL_FEE
                    else builder.fiat_currency
                )
                for item in await self.get_withdrawal_fees():
                    if item.asset_name.upper() == code.upper().symbol:
                        fee = item.fee
                        break
            case FeeType.OFFLINE_TRADE_FEE:
                fee = OFFLINE_TRADE_FEE_RATE * builder.purchase_price * builder.amount
        return max(fee, Decimal("0"))
