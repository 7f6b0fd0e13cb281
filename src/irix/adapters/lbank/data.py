"""
LBank v2 Pydantic Models.

Replies are {"result": "true", "data": ..., "error_code": 0, "ts": ...}.
Prices and amounts arrive as numbers or numeric strings; symbols are lower
case with an underscore (eth_btc).
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

EXCHANGE = "Lbank"

# Order statuses
STATUS_CANCELLED = -1
STATUS_ON_TRADING = 0
STATUS_FILLED_PARTIALLY = 1
STATUS_FILLED_TOTALLY = 2
STATUS_CANCELLING = 4

# Order types
BUY = "buy"
SELL = "sell"
BUY_MARKET = "buy_market"
SELL_MARKET = "sell_market"

PAGE_LENGTH = 200

ERROR_CODES: dict[int, str] = {
    10000: "Internal error",
    10001: "The required parameters can not be empty",
    10002: "Validation failed",
    10003: "Invalid parameter",
    10004: "Request too frequent",
    10005: "Secret key does not exist",
    10006: "User does not exist",
    10007: "Invalid signature",
    10008: "Invalid Trading Pair",
    10009: "Price and/or Amount are required for limit order",
    10010: "Price and/or Amount must be less than minimum requirement",
    10013: "The amount is too small",
    10014: "Insufficient amount of money in the account",
    10015: "Invalid order type",
    10016: "Insufficient account balance",
    10017: "Server Error",
    10018: "Page size should be between 1 and 50",
    10019: "Cancel NO more than 3 orders in one request",
    10020: "Volume < 0.001",
    10021: "Price < 0.01",
    10022: "Invalid authorization",
    10023: "Market Order is not supported yet",
    10024: "User cannot trade on this pair",
    10025: "Order has been filled",
    10026: "Order has been cancelled",
    10027: "Order is cancelling",
    10028: "Wrong query time",
    10029: "from is not in the query time",
    10030: "from do not match the transaction type of inqury",
    10031: "echostr length must be valid and length must be from 30 to 40",
    10033: "Failed to create order",
    10036: "customID duplicated",
    10100: "Has no privilege to withdraw",
    10101: "Invalid fee rate to withdraw",
    10102: "Too little to withdraw",
    10103: "Exceed daily limitation of withdraw",
    10104: "Cancel was rejected",
    10105: "Request has been cancelled",
    10106: "None trade time",
    10107: "Start price exception",
    10108: "can not create order",
    10109: "wallet address is not mapping",
    10110: "transfer fee is not mapping",
    10111: "mount > 0",
    10112: "fee is too lower",
    10113: "transfer fee is 0",
    10600: "intercepted by replay attacks filter, check timestamp",
    10601: "Interface closed unavailable",
    10701: "invalid asset code",
    10702: "not allowed deposit",
}


class _Model(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


def _from_millis(value: Any) -> Any:
    if isinstance(value, int | float | Decimal | str) and str(value):
        return datetime.fromtimestamp(int(value) / 1000, tz=UTC)
    return value


# =============================================================================
# MARKET DATA
# =============================================================================


class TickerValues(_Model):
    change: Decimal = Decimal("0")
    high: Decimal = Decimal("0")
    latest: Decimal = Decimal("0")
    low: Decimal = Decimal("0")
    turnover: Decimal = Decimal("0")
    volume: Decimal = Field(default=Decimal("0"), alias="vol")


class Ticker(_Model):
    symbol: str
    ticker: TickerValues
    timestamp: datetime

    parse_time = field_validator("timestamp", mode="before")(_from_millis)


class MarketDepth(_Model):
    """Levels are [price, amount]."""

    asks: list[list[Decimal]] = Field(default_factory=list)
    bids: list[list[Decimal]] = Field(default_factory=list)


class Trade(_Model):
    tid: str
    price: Decimal
    amount: Decimal
    type: str
    date_ms: datetime

    parse_time = field_validator("date_ms", mode="before")(_from_millis)


class Kline(_Model):
    time: datetime
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal

    @field_validator("time", mode="before")
    @classmethod
    def _seconds(cls, value: Any) -> Any:
        if isinstance(value, int | float | Decimal | str):
            return datetime.fromtimestamp(int(value), tz=UTC)
        return value

    @classmethod
    def from_row(cls, row: list[Any]) -> "Kline":
        """Build from [time, open, high, low, close, volume]."""
        return cls(
            time=row[0], open=row[1], high=row[2], low=row[3], close=row[4], volume=row[5]
        )


class PairInfo(_Model):
    """Precision and minimum size of a pair."""

    symbol: str
    quantity_accuracy: int = Field(default=0, alias="quantityAccuracy")
    min_tran_qua: Decimal = Field(default=Decimal("0"), alias="minTranQua")
    price_accuracy: int = Field(default=0, alias="priceAccuracy")


# =============================================================================
# ACCOUNT
# =============================================================================


class UserInfo(_Model):
    """Balances keyed by lower case asset code."""

    to_btc: dict[str, Decimal] = Field(default_factory=dict, alias="toBtc")
    freeze: dict[str, Decimal] = Field(default_factory=dict)
    asset: dict[str, Decimal] = Field(default_factory=dict)
    free: dict[str, Decimal] = Field(default_factory=dict)


class WithdrawConfig(_Model):
    asset_code: str = Field(alias="assetCode")
    min: Decimal = Decimal("0")
    can_withdraw: bool = Field(default=False, alias="canWithDraw")
    fee: str = ""


class WithdrawResponse(_Model):
    withdraw_id: str = Field(alias="withdrawId")
    fee: Decimal = Decimal("0")

    @field_validator("withdraw_id", mode="before")
    @classmethod
    def _str_id(cls, value: Any) -> Any:
        return str(value)


class WithdrawRecord(_Model):
    id: str
    asset_code: str = Field(default="", alias="assetCode")
    address: str = ""
    amount: Decimal = Decimal("0")
    fee: Decimal = Decimal("0")
    time: datetime | None = None
    tx_hash: str = Field(default="", alias="txHash")
    status: str = ""

    @field_validator("id", "status", mode="before")
    @classmethod
    def _str_value(cls, value: Any) -> Any:
        return str(value)

    parse_time = field_validator("time", mode="before")(_from_millis)


class WithdrawRecords(_Model):
    total_pages: int = Field(default=0, alias="totalPages")
    page_size: int = Field(default=0, alias="pageSize")
    page_no: int = Field(default=0, alias="pageNo")
    records: list[WithdrawRecord] = Field(default_factory=list, alias="list")


# =============================================================================
# ORDERS
# =============================================================================


class CreateOrderResponse(_Model):
    order_id: str


class RemoveOrderResponse(_Model):
    """Comma separated ids that were and were not cancelled."""

    success: str = ""
    error: str = ""

    @property
    def succeeded(self) -> list[str]:
        return [item for item in self.success.split(",") if item]

    @property
    def failed(self) -> list[str]:
        return [item for item in self.error.split(",") if item]


class OrderInfo(_Model):
    symbol: str = ""
    order_id: str
    type: str = ""
    status: int = STATUS_ON_TRADING
    price: Decimal = Decimal("0")
    amount: Decimal = Decimal("0")
    deal_amount: Decimal = Decimal("0")
    avg_price: Decimal = Decimal("0")
    create_time: datetime | None = None

    parse_time = field_validator("create_time", mode="before")(_from_millis)


class OrderPage(_Model):
    current_page: int = 0
    page_length: int = 0
    total: int = 0
    orders: list[OrderInfo] = Field(default_factory=list)


class TransactionDetail(_Model):
    tx_uuid: str = Field(default="", alias="txUuid")
    order_uuid: str = Field(default="", alias="orderUuid")
    trade_type: str = Field(default="", alias="tradeType")
    deal_time: datetime | None = Field(default=None, alias="dealTime")
    deal_price: Decimal = Field(default=Decimal("0"), alias="dealPrice")
    deal_quantity: Decimal = Field(default=Decimal("0"), alias="dealQuantity")
    deal_volume_price: Decimal = Field(default=Decimal("0"), alias="dealVolumePrice")
    trade_fee: Decimal = Field(default=Decimal("0"), alias="tradeFee")
    trade_fee_rate: Decimal = Field(default=Decimal("0"), alias="tradeFeeRate")

    parse_time = field_validator("deal_time", mode="before")(_from_millis)
