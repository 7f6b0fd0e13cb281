"""
ZB Pydantic Models.

Market data replies are bare JSON. Trade API replies carry a code where 1000
means success; several calls wrap their payload in
{"message": {"isSuc": ..., "datas": ...}}.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

EXCHANGE = "ZB"

CODE_SUCCESS = 1000
CODE_NO_ORDERS = 3001

# Trade types
TRADE_SELL = 0
TRADE_BUY = 1

# Order statuses
STATUS_PENDING = 0
STATUS_CANCELLED = 1
STATUS_COMPLETED = 2
STATUS_PARTIAL = 3

ERROR_CODES: dict[int, str] = {
    1001: "Error",
    1002: "Internal Error",
    1003: "Fail to verify",
    1004: "Transaction password locked",
    1005: "Wrong transaction password, please check it and re-enter",
    1006: "Real-name authentication is pending approval or unapproved",
    1009: "This interface is under maintenance",
    1010: "Not open yet",
    1012: "Permission denied",
    1013: "Unable to transact, please contact customer service",
    1014: "Unable to sell during the pre-sale period",
    2001: "Insufficient CNY account balance",
    2002: "Insufficient BTC account balance",
    2003: "Insufficient LTC account balance",
    2005: "Insufficient ETH account balance",
    2006: "Insufficient ETC account balance",
    2007: "Insufficient BTS account balance",
    2009: "Insufficient account balance",
    3001: "Order not found",
    3002: "Invalid amount",
    3003: "Invalid quantity",
    3004: "User does not exist",
    3005: "Invalid parameter",
    3006: "Invalid IP or not consistent with the bound IP",
    3007: "Invalid request time",
    3008: "Transaction history not found",
    4001: "API interface is locked",
    4002: "Request too frequently",
}

# Withdrawal fees by currency
WITHDRAWAL_FEES: dict[str, Decimal] = {
    "BTC": Decimal("0.001"),
    "BCH": Decimal("0.0005"),
    "LTC": Decimal("0.005"),
    "ETH": Decimal("0.01"),
    "ETC": Decimal("0.01"),
    "BTS": Decimal("3"),
    "EOS": Decimal("0.1"),
    "QTUM": Decimal("0.01"),
    "HC": Decimal("0.001"),
    "XRP": Decimal("0.1"),
    "DASH": Decimal("0.002"),
    "ZB": Decimal("5"),
    "USDT": Decimal("5"),
    "QC": Decimal("5"),
}


class _Model(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


def _from_millis(value: Any) -> Any:
    if isinstance(value, int | float | Decimal | str) and str(value):
        return datetime.fromtimestamp(int(value) / 1000, tz=UTC)
    return value


def _from_seconds(value: Any) -> Any:
    if isinstance(value, int | float | Decimal | str) and str(value):
        return datetime.fromtimestamp(int(value), tz=UTC)
    return value


# =============================================================================
# MARKET DATA
# =============================================================================


class Market(_Model):
    amount_scale: int = Field(default=0, alias="amountScale")
    price_scale: int = Field(default=0, alias="priceScale")
    min_amount: Decimal = Field(default=Decimal("0"), alias="minAmount")
    min_size: Decimal = Field(default=Decimal("0"), alias="minSize")


class TickerValues(_Model):
    buy: Decimal = Decimal("0")
    sell: Decimal = Decimal("0")
    high: Decimal = Decimal("0")
    low: Decimal = Decimal("0")
    last: Decimal = Decimal("0")
    volume: Decimal = Field(default=Decimal("0"), alias="vol")


class Ticker(_Model):
    date: datetime | None = None
    ticker: TickerValues

    parse_time = field_validator("date", mode="before")(_from_millis)


class Orderbook(_Model):
    """Asks arrive highest first; levels are [price, amount]."""

    asks: list[list[Decimal]] = Field(default_factory=list)
    bids: list[list[Decimal]] = Field(default_factory=list)
    timestamp: int = 0


class Trade(_Model):
    tid: int
    date: datetime
    price: Decimal
    amount: Decimal
    type: str = ""
    trade_type: str = ""

    parse_time = field_validator("date", mode="before")(_from_seconds)


class KlineRow(_Model):
    time: datetime
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal

    parse_time = field_validator("time", mode="before")(_from_millis)

    @classmethod
    def from_row(cls, row: list[Any]) -> "KlineRow":
        """Build from [ms, open, high, low, close, volume]."""
        return cls(
            time=row[0], open=row[1], high=row[2], low=row[3], close=row[4], volume=row[5]
        )


class Klines(_Model):
    symbol: str = ""
    money_type: str = Field(default="", alias="moneyType")
    data: list[KlineRow] = Field(default_factory=list)

    @field_validator("data", mode="before")
    @classmethod
    def _rows(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [KlineRow.from_row(row) if isinstance(row, list) else row for row in value]
        return value


# =============================================================================
# ACCOUNT
# =============================================================================


class Coin(_Model):
    key: str
    en_name: str = Field(default="", alias="enName")
    available: Decimal = Decimal("0")
    freez: Decimal = Decimal("0")
    unit_decimal: int = Field(default=0, alias="unitDecimal")


class AccountInfo(_Model):
    coins: list[Coin] = Field(default_factory=list)


class DepositAddress(_Model):
    key: str


class WithdrawRecord(_Model):
    id: str
    amount: Decimal = Decimal("0")
    fees: Decimal = Decimal("0")
    status: int = 0
    submit_time: datetime | None = Field(default=None, alias="submitTime")
    manage_time: datetime | None = Field(default=None, alias="manageTime")
    to_address: str = Field(default="", alias="toAddress")

    @field_validator("id", mode="before")
    @classmethod
    def _str_id(cls, value: Any) -> Any:
        return str(value)

    parse_time = field_validator("submit_time", "manage_time", mode="before")(_from_millis)


class ChargeRecord(_Model):
    id: str
    currency: str = ""
    address: str = ""
    amount: Decimal = Decimal("0")
    hash: str = ""
    status: int = 0
    description: str = ""
    submit_time: datetime | None = Field(default=None, alias="submitTime")

    @field_validator("id", mode="before")
    @classmethod
    def _str_id(cls, value: Any) -> Any:
        return str(value)

    parse_time = field_validator("submit_time", mode="before")(_from_millis)


# =============================================================================
# ORDERS
# =============================================================================


class OrderResponse(_Model):
    id: str

    @field_validator("id", mode="before")
    @classmethod
    def _str_id(cls, value: Any) -> Any:
        return str(value)


class Order(_Model):
    id: str
    currency: str = ""
    type: int = TRADE_BUY
    status: int = STATUS_PENDING
    price: Decimal = Decimal("0")
    total_amount: Decimal = Decimal("0")
    trade_amount: Decimal = Decimal("0")
    trade_money: Decimal = Decimal("0")
    trade_price: Decimal = Decimal("0")
    fees: Decimal = Decimal("0")
    trade_date: datetime | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _str_id(cls, value: Any) -> Any:
        return str(value)

    parse_time = field_validator("trade_date", mode="before")(_from_millis)
