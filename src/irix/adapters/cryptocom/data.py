"""
Crypto.com Exchange v2 Pydantic Models.

Every response, REST or websocket, shares one envelope: id, method, code,
message and a result object whose shape depends on the method. A non-zero
code is a venue error.
"""

import enum
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

EXCHANGE = "CryptoCom"

HOST = "api.crypto.com"
STREAM_HOST = "stream.crypto.com"
SANDBOX_HOST = "uat-api.3ona.co"
SANDBOX_STREAM_HOST = "uat-stream.3ona.co"
API_VERSION = "v2"

# Methods available over REST and websocket
PUBLIC_GET_INSTRUMENTS = "public/get-instruments"
PRIVATE_CREATE_WITHDRAWAL = "private/create-withdrawal"
PRIVATE_GET_WITHDRAWAL_HISTORY = "private/get-withdrawal-history"
PRIVATE_GET_ACCOUNT_SUMMARY = "private/get-account-summary"
PRIVATE_CREATE_ORDER = "private/create-order"
PRIVATE_CANCEL_ORDER = "private/cancel-order"
PRIVATE_CANCEL_ALL_ORDERS = "private/cancel-all-orders"
PRIVATE_GET_ORDER_HISTORY = "private/get-order-history"
PRIVATE_GET_OPEN_ORDERS = "private/get-open-orders"
PRIVATE_GET_ORDER_DETAIL = "private/get-order-detail"
PRIVATE_GET_TRADES = "private/get-trades"

# REST only
PUBLIC_GET_BOOK = "public/get-book"
PUBLIC_GET_CANDLESTICK = "public/get-candlestick"
PUBLIC_GET_TICKER = "public/get-ticker"
PUBLIC_GET_TRADES = "public/get-trades"
PRIVATE_GET_DEPOSIT_HISTORY = "private/get-deposit-history"
PRIVATE_GET_DEPOSIT_ADDRESS = "private/get-deposit-address"

# Websocket only
PUBLIC_AUTH = "public/auth"
PUBLIC_HEARTBEAT = "public/heartbeat"
PUBLIC_RESPOND_HEARTBEAT = "public/respond-heartbeat"
PRIVATE_SET_CANCEL_ON_DISCONNECT = "private/set-cancel-on-disconnect"
PRIVATE_GET_CANCEL_ON_DISCONNECT = "private/get-cancel-on-disconnect"
SUBSCRIBE = "subscribe"
UNSUBSCRIBE = "unsubscribe"

USER_ENDPOINT = "user"
MARKET_ENDPOINT = "market"

SCOPE_ACCOUNT = "ACCOUNT"
SCOPE_CONNECTION = "CONNECTION"

MAX_BOOK_DEPTH = 150
MAX_CANDLE_DEPTH = 1000
MAX_PAGE_SIZE = 200
DEFAULT_PAGE_SIZE = 20

# Time in force and execution instructions accepted on limit orders
GOOD_TILL_CANCEL = "GOOD_TILL_CANCEL"
FILL_OR_KILL = "FILL_OR_KILL"
IMMEDIATE_OR_CANCEL = "IMMEDIATE_OR_CANCEL"
POST_ONLY = "POST_ONLY"

# Order types
ORDER_LIMIT = "LIMIT"
ORDER_MARKET = "MARKET"
ORDER_STOP_LOSS = "STOP_LOSS"
ORDER_STOP_LIMIT = "STOP_LIMIT"
ORDER_TAKE_PROFIT = "TAKE_PROFIT"
ORDER_TAKE_PROFIT_LIMIT = "TAKE_PROFIT_LIMIT"

ORDER_TYPES = (
    ORDER_LIMIT,
    ORDER_MARKET,
    ORDER_STOP_LOSS,
    ORDER_STOP_LIMIT,
    ORDER_TAKE_PROFIT,
    ORDER_TAKE_PROFIT_LIMIT,
)


class Interval(enum.IntEnum):
    """Candlestick periods in the order the venue lists them."""

    MINUTE_1 = 1
    MINUTE_5 = 2
    MINUTE_15 = 3
    MINUTE_30 = 4
    HOUR_1 = 5
    HOUR_4 = 6
    HOUR_6 = 7
    HOUR_12 = 8
    DAY = 9
    WEEK = 10
    WEEK_2 = 11
    MONTH = 12

    def encode(self) -> str:
        return _INTERVAL_CODES[self]


_INTERVAL_CODES = {
    Interval.MINUTE_1: "1m",
    Interval.MINUTE_5: "5m",
    Interval.MINUTE_15: "15m",
    Interval.MINUTE_30: "30m",
    Interval.HOUR_1: "1h",
    Interval.HOUR_4: "4h",
    Interval.HOUR_6: "6h",
    Interval.HOUR_12: "12h",
    Interval.DAY: "1D",
    Interval.WEEK: "7D",
    Interval.WEEK_2: "14D",
    Interval.MONTH: "1M",
}


class WithdrawStatus(enum.IntEnum):
    PENDING = 0
    PROCESSING = 1
    REJECTED = 2
    PAYMENT_IN_PROGRESS = 3
    PAYMENT_FAILED = 4
    COMPLETED = 5
    CANCELLED = 6


class DepositStatus(enum.IntEnum):
    NOT_ARRIVED = 0
    ARRIVED = 1
    FAILED = 2
    PENDING = 3


class _Model(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


def _from_ms(value: Any) -> Any:
    if isinstance(value, int | float | Decimal):
        return datetime.fromtimestamp(int(value) / 1000, tz=UTC)
    return value


# =============================================================================
# ENVELOPE
# =============================================================================


class Response(_Model):
    """Envelope of every reply and push message."""

    id: int = 0
    method: str = ""
    code: int = 0
    message: str = ""
    result: dict[str, Any] = Field(default_factory=dict)

    @field_validator("result", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return value if value is not None else {}


# =============================================================================
# MARKET DATA
# =============================================================================


class Instrument(_Model):
    instrument_name: str
    quote_currency: str = ""
    base_currency: str = ""
    price_decimals: int = 0
    quantity_decimals: int = 0
    margin_trading_enabled: bool = False


class OrderbookData(_Model):
    """Levels are [price, quantity, number of orders]."""

    bids: list[list[Decimal]] = Field(default_factory=list)
    asks: list[list[Decimal]] = Field(default_factory=list)
    t: int = 0


class OrderbookResult(_Model):
    instrument_name: str = ""
    depth: int = 0
    data: list[OrderbookData] = Field(default_factory=list)


class Candlestick(_Model):
    timestamp: datetime = Field(alias="t")
    open: Decimal = Field(alias="o")
    high: Decimal = Field(alias="h")
    low: Decimal = Field(alias="l")
    close: Decimal = Field(alias="c")
    volume: Decimal = Field(alias="v")

    parse_time = field_validator("timestamp", mode="before")(_from_ms)


class CandlestickResult(_Model):
    instrument_name: str = ""
    interval: str = ""
    depth: int = 0
    data: list[Candlestick] = Field(default_factory=list)


class Ticker(_Model):
    instrument_name: str = Field(alias="i")
    bid: Decimal = Field(default=Decimal("0"), alias="b")
    ask: Decimal = Field(default=Decimal("0"), alias="k")
    last: Decimal = Field(default=Decimal("0"), alias="a")
    timestamp: datetime | None = Field(default=None, alias="t")
    volume: Decimal = Field(default=Decimal("0"), alias="v")
    high: Decimal = Field(default=Decimal("0"), alias="h")
    low: Decimal = Field(default=Decimal("0"), alias="l")
    change: Decimal = Field(default=Decimal("0"), alias="c")

    parse_time = field_validator("timestamp", mode="before")(_from_ms)

    @field_validator("bid", "ask", "last", "high", "low", "volume", "change", mode="before")
    @classmethod
    def _null_price(cls, value: Any) -> Any:
        # Illiquid instruments report null quotes
        return Decimal("0") if value is None else value


class TickerResult(_Model):
    data: list[Ticker] = Field(default_factory=list)


class PublicTrade(_Model):
    instrument_name: str = Field(alias="i")
    side: str = Field(alias="s")
    price: Decimal = Field(alias="p")
    quantity: Decimal = Field(alias="q")
    timestamp: datetime = Field(alias="t")
    trade_id: int = Field(alias="d")

    parse_time = field_validator("timestamp", mode="before")(_from_ms)


class PublicTradeResult(_Model):
    data: list[PublicTrade] = Field(default_factory=list)


# =============================================================================
# ACCOUNT
# =============================================================================


class AccountBalance(_Model):
    currency: str
    balance: Decimal = Decimal("0")
    available: Decimal = Decimal("0")
    order: Decimal = Decimal("0")
    stake: Decimal = Decimal("0")


class AccountResult(_Model):
    accounts: list[AccountBalance] = Field(default_factory=list)


class DepositAddress(_Model):
    id: str = ""
    currency: str = ""
    network: str = ""
    address: str = ""
    status: str = ""
    create_time: datetime | None = None

    parse_time = field_validator("create_time", mode="before")(_from_ms)


class DepositAddressResult(_Model):
    deposit_address_list: list[DepositAddress] = Field(default_factory=list)


class Withdrawal(_Model):
    id: str = ""
    currency: str = ""
    client_wid: str = ""
    fee: Decimal = Decimal("0")
    amount: Decimal = Decimal("0")
    address: str = ""
    status: str = ""
    txid: str = ""
    create_time: datetime | None = None
    update_time: datetime | None = None

    parse_time = field_validator("create_time", "update_time", mode="before")(_from_ms)

    @field_validator("id", "status", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> str:
        return str(value)


class WithdrawalHistoryResult(_Model):
    withdrawal_list: list[Withdrawal] = Field(default_factory=list)


class Deposit(Withdrawal):
    pass


class DepositHistoryResult(_Model):
    deposit_list: list[Deposit] = Field(default_factory=list)


# =============================================================================
# ORDERS
# =============================================================================


class CreateOrderResult(_Model):
    order_id: str = ""
    client_oid: str = ""


class OrderInfo(_Model):
    order_id: str
    client_oid: str = ""
    status: str = ""
    reason: str = ""
    side: str = ""
    price: Decimal = Decimal("0")
    quantity: Decimal = Decimal("0")
    type: str = ""
    time_in_force: str = ""
    exec_inst: str = ""
    instrument_name: str = ""
    cumulative_quantity: Decimal = Decimal("0")
    cumulative_value: Decimal = Decimal("0")
    avg_price: Decimal = Decimal("0")
    fee_currency: str = ""
    trigger_price: Decimal = Decimal("0")
    create_time: datetime | None = None
    update_time: datetime | None = None

    parse_time = field_validator("create_time", "update_time", mode="before")(_from_ms)


class Trade(_Model):
    """A fill on one of the account's orders."""

    trade_id: str
    order_id: str = ""
    side: str = ""
    instrument_name: str = ""
    fee: Decimal = Decimal("0")
    fee_currency: str = ""
    traded_price: Decimal = Decimal("0")
    traded_quantity: Decimal = Decimal("0")
    liquidity_indicator: str = ""
    create_time: datetime | None = None

    parse_time = field_validator("create_time", mode="before")(_from_ms)


class OrderDetailResult(_Model):
    trade_list: list[Trade] = Field(default_factory=list)
    order_info: OrderInfo


class OrderListResult(_Model):
    count: int = 0
    order_list: list[OrderInfo] = Field(default_factory=list)


class TradeListResult(_Model):
    trade_list: list[Trade] = Field(default_factory=list)
