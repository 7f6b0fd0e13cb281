"""
Bitfinex REST client.

Public market data comes from the v2 API; account, order and funding
operations use the v1 authenticated API (base64 JSON payload signed with
HMAC-SHA384). The v2 authenticated API is used for wallet balances.
"""

from __future__ import annotations

import json
import logging
from decimal import Decimal
from typing import Any
from urllib.parse import urlencode

from irix import crypto
from irix.adapters.bitfinex.data import (
    AccountFees,
    AccountInfo,
    Balance,
    Candle,
    DepositResponse,
    MovementHistory,
    Order,
    Orderbook,
    Ticker,
    Trade,
    Withdrawal,
)
from irix.currency import Code
from irix.enums import URL, FeeType
from irix.errors import ExchangeAPIError, OrderValidationError, ValidationError
from irix.exchange import Base, FeeBuilder
from irix.model import withdraw
from irix.request import AsyncTokenBucket, Nonce, RateLimiter

logger = logging.getLogger(__name__)

API_URL = "https://api.bitfinex.com"

API_VERSION = "/v1/"
API_VERSION_2 = "/v2/"

# v1
ACCOUNT_INFO = "account_infos"
ACCOUNT_FEES = "account_fees"
DEPOSIT = "deposit/new"
BALANCES = "balances"
WITHDRAWAL = "withdraw"
ORDER_NEW = "order/new"
ORDER_CANCEL = "order/cancel"
ORDER_CANCEL_MULTI = "order/cancel/multi"
ORDER_CANCEL_ALL = "order/cancel/all"
ORDER_CANCEL_REPLACE = "order/cancel/replace"
ORDER_STATUS = "order/status"
INACTIVE_ORDERS = "orders/hist"
ORDERS = "orders"
HISTORY_MOVEMENTS = "history/movements"

# v2
PLATFORM_STATUS = "platform/status"
TICKER_BATCH = "tickers"
TICKER = "ticker/"
TRADES = "trades/"
ORDERBOOK = "book/"
CANDLES = "candles/trade"
V2_BALANCES = "auth/r/wallets"
DEPOSIT_METHOD = "conf/pub:map:currency:label"
EXCHANGE_PAIRS = "conf/pub:list:pair:exchange"
MARGIN_PAIRS = "conf/pub:list:pair:margin"

MAINTENANCE_MODE = 0
OPERATIVE_MODE = 1

ACCEPTED_ORDER_TYPES = (
    "market",
    "limit",
    "stop",
    "trailing-stop",
    "fill-or-kill",
    "exchange market",
    "exchange limit",
    "exchange stop",
    "exchange trailing-stop",
    "exchange fill-or-kill",
)
ACCEPTED_WALLET_NAMES = ("trading", "exchange", "deposit", "margin", "funding")

WITHDRAWAL_TYPES = {
    "BTC": "bitcoin",
    "LTC": "litecoin",
    "ETH": "ethereum",
    "ETC": "ethereumc",
    "USDT": "tetheruso",
    "ZEC": "zcash",
    "XMR": "monero",
    "DSH": "dash",
    "XRP": "ripple",
    "SAN": "santiment",
    "OMG": "omisego",
    "BCH": "bcash",
    "ETP": "metaverse",
    "AVT": "aventus",
    "EDO": "eidoo",
    "BTG": "bgold",
    "DATA": "datacoin",
    "GNT": "golem",
    "SNT": "status",
}

# Rate limit buckets
LIMIT_PUBLIC = "public"
LIMIT_TICKER = "ticker"
LIMIT_ORDERBOOK = "orderbook"
LIMIT_AUTH = "auth"


def _amount(value: Decimal) -> str:
    return format(value.normalize(), "f")


class BitfinexAPI(Base):
    """Bitfinex REST endpoints."""

    def __init__(self) -> None:
        super().__init__()
        self.nonce = Nonce()
        self.acceptable_methods: dict[str, str] = {}

    @staticmethod
    def rate_limiter() -> RateLimiter:
        return RateLimiter(
            {
                RateLimiter.DEFAULT: AsyncTokenBucket(1.5, 10),
                LIMIT_PUBLIC: AsyncTokenBucket(1.5, 10),
                LIMIT_TICKER: AsyncTokenBucket(0.5, 30),
                LIMIT_ORDERBOOK: AsyncTokenBucket(0.5, 30),
                LIMIT_AUTH: AsyncTokenBucket(1.5, 90),
            }
        )

    # =========================================================================
    # TRANSPORT
    # =========================================================================

    async def send_public(self, path: str, limit: str = LIMIT_PUBLIC) -> Any:
        """GET a public path relative to the REST base URL."""
        endpoint = self.get_endpoint(URL.REST_SPOT)
        return await self.send_http_request("GET", endpoint + path, limit=limit)

    async def send_authenticated(
        self, method: str, path: str, params: dict[str, Any] | None = None
    ) -> Any:
        """
        Send a v1 authenticated request.

        The request JSON, including path and nonce, is base64 encoded into
        X-BFX-PAYLOAD and signed with HMAC-SHA384.

        Raises:
            CredentialsError: Without usable credentials
            ExchangeAPIError: If the venue reports an error

        """
        self.check_authenticated_request()
        endpoint = self.get_endpoint(URL.REST_SPOT)
        req: dict[str, Any] = {
            "request": API_VERSION + path,
            "nonce": str(self.nonce.get()),
        }
        req.update(params or {})
        payload_json = json.dumps(req)
        if self.verbose:
            logger.debug(f"{self.name} Request JSON: {payload_json}")
        payload = crypto.base64_encode(payload_json)
        signature = crypto.hex_encode(
            crypto.get_hmac(crypto.SHA384, payload, self.secret_bytes())
        )
        headers = {
            "X-BFX-APIKEY": self.api.credentials.key,
            "X-BFX-PAYLOAD": payload,
            "X-BFX-SIGNATURE": signature,
        }
        result = await self.send_http_request(
            method, endpoint + API_VERSION + path, headers=headers, limit=LIMIT_AUTH, auth=True
        )
        if isinstance(result, dict) and result.get("message") and len(result) == 1:
            raise ExchangeAPIError(self.name, str(result["message"]))
        return result

    async def send_authenticated_v2(
        self, method: str, path: str, params: dict[str, Any] | None = None
    ) -> Any:
        """
        Send a v2 authenticated request signed over "/api/v2/" + path + nonce + body.

        Raises:
            CredentialsError: Without usable credentials

        """
        self.check_authenticated_request()
        endpoint = self.get_endpoint(URL.REST_SPOT)
        body = json.dumps(params) if params else ""
        nonce = str(self.nonce.get() * 1000)
        signature = crypto.hex_encode(
            crypto.get_hmac(
                crypto.SHA384,
                "/api" + API_VERSION_2 + path + nonce + body,
                self.secret_bytes(),
            )
        )
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "bfx-apikey": self.api.credentials.key,
            "bfx-nonce": nonce,
            "bfx-signature": signature,
        }
        return await self.send_http_request(
            method,
            endpoint + API_VERSION_2 + path,
            headers=headers,
            body=body or None,
            limit=LIMIT_AUTH,
            auth=True,
        )

    # =========================================================================
    # PUBLIC
    # =========================================================================

    async def get_platform_status(self) -> int:
        """
        Returns:
            1 when operative, 0 in maintenance

        Raises:
            ExchangeAPIError: On an unexpected status value

        """
        response = await self.send_public(API_VERSION_2 + PLATFORM_STATUS)
        status = int(response[0])
        if status not in (OPERATIVE_MODE, MAINTENANCE_MODE):
            raise ExchangeAPIError(self.name, f"unexpected platform status value {status}")
        return status

    async def get_ticker(self, symbol: str) -> Ticker:
        """Ticker for a symbol such as tBTCUSD or fUSD."""
        response = await self.send_public(API_VERSION_2 + TICKER + symbol, LIMIT_TICKER)
        return Ticker.from_array(response)

    async def get_ticker_batch(self) -> dict[str, Ticker]:
        """Every ticker keyed by symbol."""
        response = await self.send_public(API_VERSION_2 + TICKER_BATCH + "?symbols=ALL", LIMIT_TICKER)
        return {row[0]: Ticker.from_array(row[1:]) for row in response}

    async def get_trades(
        self,
        symbol: str,
        limit: int = 0,
        start_ms: int = 0,
        end_ms: int = 0,
        reorder: bool = False,
    ) -> list[Trade]:
        """Public trade history for a symbol; reorder sorts oldest first."""
        params: dict[str, Any] = {}
        if limit > 0:
            params["limit"] = limit
        if start_ms > 0:
            params["start"] = start_ms
        if end_ms > 0:
            params["end"] = end_ms
        params["sort"] = "1" if reorder else "0"
        path = f"{API_VERSION_2}{TRADES}{symbol}/hist?{urlencode(params)}"
        response = await self.send_public(path)
        return [Trade.from_array(row) for row in response]

    async def get_orderbook(self, symbol: str, precision: str = "P0", limit: int = 0) -> Orderbook:
        """
        Order book for a symbol.

        Args:
            symbol: e.g. tBTCUSD
            precision: P0..P3 for aggregated levels, R0 for raw orders
            limit: Levels per side

        """
        query = f"?{urlencode({'len': limit})}" if limit > 0 else ""
        response = await self.send_public(
            f"{API_VERSION_2}{ORDERBOOK}{symbol}/{precision}{query}", LIMIT_ORDERBOOK
        )
        return Orderbook.from_arrays(response, precision == "R0")

    async def get_candles(
        self,
        symbol: str,
        time_frame: str,
        start_ms: int = 0,
        end_ms: int = 0,
        limit: int = 0,
        historic: bool = True,
    ) -> list[Candle]:
        """
        Candles for a symbol.

        Raises:
            ExchangeAPIError: If the last candle is requested and none exists

        """
        funding_period = ":p30" if symbol.startswith("f") else ""
        path = f"{API_VERSION_2}{CANDLES}:{time_frame}:{symbol}{funding_period}"
        if not historic:
            response = await self.send_public(path + "/last")
            if not response:
                raise ExchangeAPIError(self.name, "no data returned")
            return [Candle.from_array(response)]
        params: dict[str, Any] = {}
        if start_ms > 0:
            params["start"] = start_ms
        if end_ms > 0:
            params["end"] = end_ms
        if limit > 0:
            params["limit"] = limit
        path += "/hist"
        if params:
            path += "?" + urlencode(params)
        response = await self.send_public(path)
        return [Candle.from_array(row) for row in response]

    async def get_pairs(self, margin: bool = False) -> list[str]:
        """Symbols listed for exchange (spot) or margin trading."""
        response = await self.send_public(API_VERSION_2 + (MARGIN_PAIRS if margin else EXCHANGE_PAIRS))
        if len(response) != 1:
            raise ExchangeAPIError(self.name, "invalid response")
        return list(response[0])

    async def populate_acceptable_methods(self) -> None:
        """Load the currency to deposit method map once."""
        if self.acceptable_methods:
            return
        response = await self.send_public(API_VERSION_2 + DEPOSIT_METHOD)
        if not response:
            raise ExchangeAPIError(
                self.name, "response contains no data cannot populate acceptable method map"
            )
        for entry in response[0]:
            if len(entry) != 2:
                raise ExchangeAPIError(
                    self.name, "response contains no data cannot populate acceptable method map"
                )
            self.acceptable_methods[entry[0]] = entry[1]

    # =========================================================================
    # ACCOUNT
    # =========================================================================

    async def get_account_fees(self) -> list[AccountInfo]:
        response = await self.send_authenticated("POST", ACCOUNT_INFO)
        return [AccountInfo.model_validate(item) for item in response]

    async def get_withdrawal_fees(self) -> AccountFees:
        response = await self.send_authenticated("POST", ACCOUNT_FEES)
        return AccountFees.model_validate(response)

    async def get_account_balance(self) -> list[Balance]:
        response = await self.send_authenticated("POST", BALANCES)
        return [Balance.model_validate(item) for item in response]

    async def new_deposit(self, method: str, wallet_name: str, renew: int = 0) -> DepositResponse:
        """
        Request a deposit address.

        Raises:
            ValidationError: If the wallet name is not accepted

        """
        if wallet_name not in ACCEPTED_WALLET_NAMES:
            raise ValidationError(
                f"walletname: [{wallet_name}] is not allowed, supported: {list(ACCEPTED_WALLET_NAMES)}"
            )
        response = await self.send_authenticated(
            "POST", DEPOSIT, {"method": method, "wallet_name": wallet_name, "renew": renew}
        )
        return DepositResponse.model_validate(response)

    async def withdraw_cryptocurrency(
        self, wallet: str, address: str, payment_id: str, amount: Decimal, code: Code
    ) -> Withdrawal:
        req: dict[str, Any] = {
            "withdraw_type": self.convert_symbol_to_withdrawal_type(code),
            "walletselected": wallet,
            "amount": _amount(amount),
            "address": address,
        }
        if payment_id:
            req["payment_id"] = payment_id
        return self._first_withdrawal(await self.send_authenticated("POST", WITHDRAWAL, req))

    async def withdraw_fiat(
        self, withdrawal_type: str, wallet_type: str, request: withdraw.Request
    ) -> Withdrawal:
        bank = request.fiat.bank
        req: dict[str, Any] = {
            "withdraw_type": withdrawal_type,
            "walletselected": wallet_type,
            "amount": _amount(request.amount),
            "account_name": bank.account_name,
            "account_number": bank.account_number,
            "bank_name": bank.bank_name,
            "bank_address": bank.bank_address,
            "bank_city": bank.bank_postal_city,
            "bank_country": bank.bank_country,
            "expressWire": request.fiat.is_express_wire,
            "swift": bank.swift_code,
            "detail_payment": request.description,
            "currency": str(request.currency),
            "account_address": bank.bank_address,
        }
        if request.fiat.requires_intermediary_bank:
            req.update(
                intermediary_bank_name=request.fiat.intermediary_bank_name,
                intermediary_bank_address=request.fiat.intermediary_bank_address,
                intermediary_bank_city=request.fiat.intermediary_bank_city,
                intermediary_bank_country=request.fiat.intermediary_bank_country,
                intermediary_bank_account=request.fiat.intermediary_bank_account_number,
                intermediary_bank_swift=request.fiat.intermediary_swift_code,
            )
        return self._first_withdrawal(await self.send_authenticated("POST", WITHDRAWAL, req))

    def _first_withdrawal(self, response: list[dict[str, Any]]) -> Withdrawal:
        result = Withdrawal.model_validate(response[0])
        if result.status == "error":
            raise ExchangeAPIError(self.name, result.message)
        return result

    async def get_movement_history(
        self, symbol: str, method: str = "", since: int = 0, until: int = 0, limit: int = 0
    ) -> list[MovementHistory]:
        """Deposits and withdrawals for a currency."""
        req: dict[str, Any] = {"currency": symbol}
        if method:
            req["method"] = method
        if since:
            req["since"] = str(since)
        if until:
            req["until"] = str(until)
        if limit:
            req["limit"] = limit
        response = await self.send_authenticated("POST", HISTORY_MOVEMENTS, req)
        return [MovementHistory.model_validate(item) for item in response]

    # =========================================================================
    # ORDERS
    # =========================================================================

    async def new_order(
        self,
        symbol: str,
        order_type: str,
        amount: Decimal,
        price: Decimal,
        buy: bool,
        hidden: bool = False,
    ) -> Order:
        """
        Place a v1 order.

        Raises:
            OrderValidationError: If the order type is not accepted

        """
        if order_type not in ACCEPTED_ORDER_TYPES:
            raise OrderValidationError(f"order type {order_type} not accepted")
        req = {
            "symbol": symbol,
            "amount": _amount(amount),
            "price": _amount(price),
            "type": order_type,
            "is_hidden": hidden,
            "side": "buy" if buy else "sell",
        }
        return Order.model_validate(await self.send_authenticated("POST", ORDER_NEW, req))

    async def cancel_existing_order(self, order_id: int) -> Order:
        response = await self.send_authenticated("POST", ORDER_CANCEL, {"order_id": order_id})
        return Order.model_validate(response)

    async def cancel_multiple_orders(self, order_ids: list[int]) -> str:
        response = await self.send_authenticated(
            "POST", ORDER_CANCEL_MULTI, {"order_ids": order_ids}
        )
        return response.get("result", "") if isinstance(response, dict) else ""

    async def cancel_all_existing_orders(self) -> str:
        response = await self.send_authenticated("POST", ORDER_CANCEL_ALL)
        return response.get("result", "") if isinstance(response, dict) else ""

    async def replace_order(
        self,
        order_id: int,
        symbol: str,
        amount: Decimal,
        price: Decimal,
        buy: bool,
        order_type: str,
        hidden: bool = False,
    ) -> Order:
        req = {
            "order_id": order_id,
            "symbol": symbol,
            "amount": _amount(amount),
            "price": _amount(price),
            "exchange": "bitfinex",
            "type": order_type,
            "is_hidden": hidden,
            "side": "buy" if buy else "sell",
        }
        return Order.model_validate(await self.send_authenticated("POST", ORDER_CANCEL_REPLACE, req))

    async def get_order_status(self, order_id: int) -> Order:
        response = await self.send_authenticated("POST", ORDER_STATUS, {"order_id": order_id})
        return Order.model_validate(response)

    async def get_open_orders(self) -> list[Order]:
        response = await self.send_authenticated("POST", ORDERS)
        return [Order.model_validate(item) for item in response]

    async def get_inactive_orders(self) -> list[Order]:
        response = await self.send_authenticated("POST", INACTIVE_ORDERS)
        return [Order.model_validate(item) for item in response]

    # =========================================================================
    # FEES
    # =========================================================================

    async def get_fee(self, builder: FeeBuilder) -> Decimal:
        """Estimate a fee; negative results are clamped to zero."""
        fee = Decimal("0")
        match builder.fee_type:
            case FeeType.CRYPTOCURRENCY_TRADE_FEE:
                infos = await self.get_account_fees()
                fee = self.calculate_trading_fee(
                    infos, builder.purchase_price, builder.amount, builder.pair.base, builder.is_maker
                )
            case FeeType.CRYPTOCURRENCY_WITHDRAWAL_FEE:
                fees = await self.get_withdrawal_fees()
                fee = self.get_cryptocurrency_withdrawal_fee(builder.pair.base, fees)
            case FeeType.INTERNATIONAL_BANK_DEPOSIT_FEE | FeeType.INTERNATIONAL_BANK_WITHDRAWAL_FEE:
                fee = Decimal("0.001") * builder.amount
            case FeeType.OFFLINE_TRADE_FEE:
                fee = offline_trade_fee(builder.purchase_price, builder.amount)
        return max(fee, Decimal("0"))

    @staticmethod
    def calculate_trading_fee(
        infos: list[AccountInfo],
        purchase_price: Decimal,
        amount: Decimal,
        code: Code,
        is_maker: bool,
    ) -> Decimal:
        """Fee from the account's per-currency maker/taker percentages."""
        rate = Decimal("0")
        for info in infos:
            for tier in info.fees:
                if tier.pairs == str(code):
                    rate = tier.maker_fees if is_maker else tier.taker_fees
                    break
            if rate > 0:
                break
        return rate / 100 * purchase_price * amount

    @staticmethod
    def get_cryptocurrency_withdrawal_fee(code: Code, fees: AccountFees) -> Decimal:
        value = fees.withdraw.get(str(code))
        if value is None:
            return Decimal("0")
        return Decimal(str(value))

    @staticmethod
    def convert_symbol_to_withdrawal_type(code: Code) -> str:
        """Bitfinex withdrawal method name for a currency."""
        return WITHDRAWAL_TYPES.get(code.upper().symbol, code.lower().symbol)

    async def convert_symbol_to_deposit_method(self, code: Code) -> str:
        """
        Raises:
            ValidationError: If the currency has no deposit method
        """
        await self.populate_acceptable_methods()
        method = self.acceptable_methods.get(str(code))
        if method is None:
            raise ValidationError(f"currency {code} not supported in method list")
        return method.lower()


def offline_trade_fee(price: Decimal, amount: Decimal) -> Decimal:
    """Worst case trading fee without an API call."""
    return Decimal("0.001") * price * amount
