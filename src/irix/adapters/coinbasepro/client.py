"""
Coinbase Pro REST client.

Authenticated requests carry CB-ACCESS-KEY, CB-ACCESS-TIMESTAMP,
CB-ACCESS-PASSPHRASE and CB-ACCESS-SIGN headers. The signature is the
base64 HMAC-SHA256 of timestamp + method + "/" + path + body, keyed with
the base64 decoded secret; the passphrase is stored as the client id.
"""

from __future__ import annotations

import json
import logging
import time
from decimal import Decimal
from typing import Any

from irix import crypto
from irix.adapters.coinbasepro.data import (
    Account,
    CoinbaseAccount,
    Currency,
    DepositWithdrawalInfo,
    Fill,
    Hold,
    LedgerEntry,
    Order,
    Orderbook,
    PaymentMethod,
    Product,
    Report,
    ServerTime,
    Stats,
    Ticker,
    Trade,
    Transfer,
    Volume,
)
from irix.enums import URL, FeeType
from irix.errors import ValidationError
from irix.exchange import Base, FeeBuilder
from irix.request import AsyncTokenBucket, RateLimiter

logger = logging.getLogger(__name__)

API_URL = "https://api.pro.coinbase.com/"
SANDBOX_API_URL = "https://api-public.sandbox.pro.coinbase.com/"

PRODUCTS = "products"
ORDERBOOK = "book"
TICKER = "ticker"
TRADES = "trades"
HISTORY = "candles"
STATS = "stats"
CURRENCIES = "currencies"
ACCOUNTS = "accounts"
LEDGER = "ledger"
HOLDS = "holds"
ORDERS = "orders"
FILLS = "fills"
TRANSFERS = "transfers"
REPORTS = "reports"
TIME = "time"
PAYMENT_METHOD = "payment-methods"
PAYMENT_METHOD_DEPOSIT = "deposits/payment-method"
DEPOSIT_COINBASE = "deposits/coinbase-account"
WITHDRAWAL_PAYMENT_METHOD = "withdrawals/payment-method"
WITHDRAWAL_COINBASE = "withdrawals/coinbase"
WITHDRAWAL_CRYPTO = "withdrawals/crypto"
COINBASE_ACCOUNTS = "coinbase-accounts"
TRAILING_VOLUME = "users/self/trailing-volume"

ALLOWED_GRANULARITIES = (60, 300, 900, 3600, 21600, 86400)

LIMIT_PUBLIC = "public"
LIMIT_AUTH = "auth"

OFFLINE_TRADE_FEE_RATE = Decimal("0.0025")

INTERNATIONAL_BANK_WITHDRAWAL_FEES: dict[str, Decimal] = {
    "USD": Decimal("25"),
    "EUR": Decimal("0.15"),
}
INTERNATIONAL_BANK_DEPOSIT_FEES: dict[str, Decimal] = {
    "USD": Decimal("10"),
    "EUR": Decimal("0.15"),
}


def _dec(value: Decimal) -> str:
    return format(value.normalize(), "f")


def calculate_trading_fee(
    trailing_volume: list[Volume],
    product_id: str,
    purchase_price: Decimal,
    amount: Decimal,
    is_maker: bool,
) -> Decimal:
    """
    Taker fee tiers by thirty day volume: 0.3 % up to 10M, 0.2 % up to
    100M, 0.1 % above. Makers pay nothing.
    """
    rate = Decimal("0")
    for item in trailing_volume:
        if item.product_id.lower() != product_id.lower():
            continue
        if is_maker:
            rate = Decimal("0")
        elif item.volume <= 10_000_000:
            rate = Decimal("0.003")
        elif item.volume <= 100_000_000:
            rate = Decimal("0.002")
        else:
            rate = Decimal("0.001")
        break
    return rate * amount * purchase_price


class CoinbaseProAPI(Base):
    """Coinbase Pro REST endpoints."""

    @staticmethod
    def rate_limiter() -> RateLimiter:
        return RateLimiter(
            {
                RateLimiter.DEFAULT: AsyncTokenBucket(3, 6),
                LIMIT_PUBLIC: AsyncTokenBucket(3, 6),
                LIMIT_AUTH: AsyncTokenBucket(5, 10),
            }
        )

    # =========================================================================
    # TRANSPORT
    # =========================================================================

    async def send_public(self, path: str, params: dict[str, Any] | None = None) -> Any:
        endpoint = self.get_endpoint(URL.REST_SPOT)
        return await self.send_http_request(
            "GET", endpoint + path, params=params, limit=LIMIT_PUBLIC
        )

    def sign(self, timestamp: str, method: str, path: str, body: str) -> str:
        message = timestamp + method + "/" + path + body
        return crypto.base64_encode(crypto.get_hmac(crypto.SHA256, message, self.secret_bytes()))

    async def send_authenticated(
        self,
        method: str,
        path: str,
        data: dict[str, Any] | None = None,
    ) -> Any:
        """
        Send a signed request. Query strings are part of the path and so of
        the signature.

        Raises:
            CredentialsError: Without usable credentials
            ExchangeAPIError: On a non-2xx response

        """
        self.check_authenticated_request()
        body = json.dumps(data) if data is not None else ""
        if body and self.verbose:
            logger.debug(f"{self.name} request JSON: {body}")
        timestamp = str(int(time.time()))
        headers = {
            "CB-ACCESS-SIGN": self.sign(timestamp, method, path, body),
            "CB-ACCESS-TIMESTAMP": timestamp,
            "CB-ACCESS-KEY": self.api.credentials.key,
            "CB-ACCESS-PASSPHRASE": self.api.credentials.client_id,
            "Content-Type": "application/json",
        }
        endpoint = self.get_endpoint(URL.REST_SPOT)
        return await self.send_http_request(
            method,
            endpoint + path,
            headers=headers,
            body=body or None,
            limit=LIMIT_AUTH,
            auth=True,
        )

    # =========================================================================
    # MARKET DATA
    # =========================================================================

    async def get_products(self) -> list[Product]:
        return [Product.model_validate(item) for item in await self.send_public(PRODUCTS)]

    async def get_orderbook(self, symbol: str, level: int = 0) -> Orderbook:
        """Level 1 and 2 levels carry order counts, level 3 carries order ids."""
        params = {"level": level} if level > 0 else None
        response = await self.send_public(f"{PRODUCTS}/{symbol}/{ORDERBOOK}", params)
        return Orderbook.from_response(response, level)

    async def get_ticker(self, symbol: str) -> Ticker:
        return Ticker.model_validate(await self.send_public(f"{PRODUCTS}/{symbol}/{TICKER}"))

    async def get_trades(self, symbol: str) -> list[Trade]:
        response = await self.send_public(f"{PRODUCTS}/{symbol}/{TRADES}")
        return [Trade.model_validate(item) for item in response]

    async def get_historic_rates(
        self, symbol: str, start: str, end: str, granularity: int
    ) -> list[list[Decimal]]:
        """
        Candles as [time, low, high, open, close, volume].

        Raises:
            ValidationError: For a granularity the venue does not offer
        """
        if granularity not in ALLOWED_GRANULARITIES:
            raise ValidationError(
                f"Invalid granularity value: {granularity}. "
                f"Allowed values are {set(ALLOWED_GRANULARITIES)}"
            )
        params = {"start": start, "end": end, "granularity": granularity}
        return await self.send_public(f"{PRODUCTS}/{symbol}/{HISTORY}", params)

    async def get_stats(self, symbol: str) -> Stats:
        return Stats.model_validate(await self.send_public(f"{PRODUCTS}/{symbol}/{STATS}"))

    async def get_currencies(self) -> list[Currency]:
        return [Currency.model_validate(item) for item in await self.send_public(CURRENCIES)]

    async def get_server_time(self) -> ServerTime:
        return ServerTime.model_validate(await self.send_public(TIME))

    # =========================================================================
    # ACCOUNT
    # =========================================================================

    async def get_accounts(self) -> list[Account]:
        return [Account.model_validate(item) for item in await self.send_authenticated("GET", ACCOUNTS)]

    async def get_account(self, account_id: str) -> Account:
        return Account.model_validate(await self.send_authenticated("GET", f"{ACCOUNTS}/{account_id}"))

    async def get_account_history(self, account_id: str) -> list[LedgerEntry]:
        response = await self.send_authenticated("GET", f"{ACCOUNTS}/{account_id}/{LEDGER}")
        return [LedgerEntry.model_validate(item) for item in response]

    async def get_holds(self, account_id: str) -> list[Hold]:
        response = await self.send_authenticated("GET", f"{ACCOUNTS}/{account_id}/{HOLDS}")
        return [Hold.model_validate(item) for item in response]

    async def get_trailing_volume(self) -> list[Volume]:
        response = await self.send_authenticated("GET", TRAILING_VOLUME)
        return [Volume.model_validate(item) for item in response]

    async def get_pay_methods(self) -> list[PaymentMethod]:
        response = await self.send_authenticated("GET", PAYMENT_METHOD)
        return [PaymentMethod.model_validate(item) for item in response]

    async def get_coinbase_accounts(self) -> list[CoinbaseAccount]:
        response = await self.send_authenticated("GET", COINBASE_ACCOUNTS)
        return [CoinbaseAccount.model_validate(item) for item in response]

    async def get_transfers(self, transfer_type: str = "") -> list[Transfer]:
        path = TRANSFERS if not transfer_type else f"{TRANSFERS}?type={transfer_type}"
        return [Transfer.model_validate(item) for item in await self.send_authenticated("GET", path)]

    async def get_report(
        self,
        report_type: str,
        start_date: str,
        end_date: str,
        product_id: str = "",
        account_id: str = "",
        report_format: str = "pdf",
        email: str = "",
    ) -> Report:
        req: dict[str, Any] = {
            "type": report_type,
            "start_date": start_date,
            "end_date": end_date,
            "format": "csv" if report_format == "csv" else "pdf",
        }
        if product_id:
            req["product_id"] = product_id
        if account_id:
            req["account_id"] = account_id
        if email:
            req["email"] = email
        return Report.model_validate(await self.send_authenticated("POST", REPORTS, req))

    async def get_report_status(self, report_id: str) -> Report:
        return Report.model_validate(await self.send_authenticated("GET", f"{REPORTS}/{report_id}"))

    # =========================================================================
    # FUNDING
    # =========================================================================

    async def deposit_via_payment_method(
        self, amount: Decimal, currency: str, payment_id: str
    ) -> DepositWithdrawalInfo:
        req = {"amount": _dec(amount), "currency": currency, "payment_method_id": payment_id}
        response = await self.send_authenticated("POST", PAYMENT_METHOD_DEPOSIT, req)
        return DepositWithdrawalInfo.model_validate(response)

    async def deposit_via_coinbase(
        self, amount: Decimal, currency: str, account_id: str
    ) -> DepositWithdrawalInfo:
        req = {"amount": _dec(amount), "currency": currency, "coinbase_account_id": account_id}
        response = await self.send_authenticated("POST", DEPOSIT_COINBASE, req)
        return DepositWithdrawalInfo.model_validate(response)

    async def withdraw_via_payment_method(
        self, amount: Decimal, currency: str, payment_id: str
    ) -> DepositWithdrawalInfo:
        req = {"amount": _dec(amount), "currency": currency, "payment_method_id": payment_id}
        response = await self.send_authenticated("POST", WITHDRAWAL_PAYMENT_METHOD, req)
        return DepositWithdrawalInfo.model_validate(response)

    async def withdraw_via_coinbase(
        self, amount: Decimal, currency: str, account_id: str
    ) -> DepositWithdrawalInfo:
        req = {"amount": _dec(amount), "currency": currency, "coinbase_account_id": account_id}
        response = await self.send_authenticated("POST", WITHDRAWAL_COINBASE, req)
        return DepositWithdrawalInfo.model_validate(response)

    async def withdraw_crypto(
        self, amount: Decimal, currency: str, address: str
    ) -> DepositWithdrawalInfo:
        req = {"amount": _dec(amount), "currency": currency, "crypto_address": address}
        response = await self.send_authenticated("POST", WITHDRAWAL_CRYPTO, req)
        return DepositWithdrawalInfo.model_validate(response)

    # =========================================================================
    # ORDERS
    # =========================================================================

    async def place_limit_order(
        self,
        client_ref: str,
        price: Decimal,
        amount: Decimal,
        side: str,
        time_in_force: str,
        cancel_after: str,
        product_id: str,
        stp: str = "",
        post_only: bool = False,
    ) -> str:
        req: dict[str, Any] = {
            "type": "limit",
            "price": _dec(price),
            "size": _dec(amount),
            "side": side,
            "product_id": product_id,
        }
        if cancel_after:
            req["cancel_after"] = cancel_after
        if time_in_force:
            req["time_in_force"] = time_in_force
        if client_ref:
            req["client_oid"] = client_ref
        if stp:
            req["stp"] = stp
        if post_only:
            req["post_only"] = True
        return Order.model_validate(await self.send_authenticated("POST", ORDERS, req)).id

    async def place_market_order(
        self,
        client_ref: str,
        size: Decimal,
        funds: Decimal,
        side: str,
        product_id: str,
        stp: str = "",
    ) -> str:
        """Size buys a base amount; funds spends a quote amount."""
        req: dict[str, Any] = {"side": side, "product_id": product_id, "type": "market"}
        if size:
            req["size"] = _dec(size)
        if funds:
            req["funds"] = _dec(funds)
        if client_ref:
            req["client_oid"] = client_ref
        if stp:
            req["stp"] = stp
        return Order.model_validate(await self.send_authenticated("POST", ORDERS, req)).id

    async def cancel_existing_order(self, order_id: str) -> None:
        await self.send_authenticated("DELETE", f"{ORDERS}/{order_id}")

    async def cancel_all_existing_orders(self, product_id: str = "") -> list[str]:
        """Cancel open orders, optionally on one product; returns cancelled ids."""
        req = {"product_id": product_id} if product_id else None
        return await self.send_authenticated("DELETE", ORDERS, req)

    async def get_orders(self, statuses: list[str], product_id: str = "") -> list[Order]:
        query = [f"status={status}" for status in statuses]
        if product_id:
            query.append(f"product_id={product_id}")
        path = ORDERS + ("?" + "&".join(query) if query else "")
        return [Order.model_validate(item) for item in await self.send_authenticated("GET", path)]

    async def get_order(self, order_id: str) -> Order:
        return Order.model_validate(await self.send_authenticated("GET", f"{ORDERS}/{order_id}"))

    async def get_fills(self, order_id: str = "", product_id: str = "") -> list[Fill]:
        """
        Raises:
            ValidationError: If neither an order nor a product is given
        """
        query = []
        if order_id:
            query.append(f"order_id={order_id}")
        if product_id:
            query.append(f"product_id={product_id}")
        if not query:
            raise ValidationError("no parameters set")
        response = await self.send_authenticated("GET", FILLS + "?" + "&".join(query))
        return [Fill.model_validate(item) for item in response]

    # =========================================================================
    # FEES
    # =========================================================================

    async def get_fee(self, builder: FeeBuilder) -> Decimal:
        fee = Decimal("0")
        match builder.fee_type:
            case FeeType.CRYPTOCURRENCY_TRADE_FEE:
                fee = calculate_trading_fee(
                    await self.get_trailing_volume(),
                    str(builder.pair.format("-", True)),
                    builder.purchase_price,
                    builder.amount,
                    builder.is_maker,
                )
            case FeeType.INTERNATIONAL_BANK_WITHDRAWAL_FEE:
                fee = INTERNATIONAL_BANK_WITHDRAWAL_FEES.get(
                    builder.fiat_currency.upper().symbol, Decimal("0")
                )
            case FeeType.INTERNATIONAL_BANK_DEPOSIT_FEE:
                fee = INTERNATIONAL_BANK_DEPOSIT_FEES.get(
                    builder.fiat_currency.upper().symbol, Decimal("0")
                )
            case FeeType.OFFLINE_TRADE_FEE:
                fee = OFFLINE_TRADE_FEE_RATE * builder.purchase_price * builder.amount
        return max(fee, Decimal("0"))
