"""
Gemini Pydantic Models.

Symbols are lower case without a delimiter (btcusd). Numbers arrive as
strings; timestamps come in seconds and, where named *ms, milliseconds.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

EXCHANGE = "Gemini"

# Order types and options
ORDER_TYPE_LIMIT = "exchange limit"
ORDER_TYPE_STOP_LIMIT = "exchange stop limit"
OPTION_MAKER_OR_CANCEL = "maker-or-cancel"
OPTION_IMMEDIATE_OR_CANCEL = "immediate-or-cancel"
OPTION_FILL_OR_KILL = "fill-or-kill"

# Quote currencies, longest first so USDT wins over USD
QUOTE_CURRENCIES = ("GUSD", "USDT", "USDC", "USD", "DAI", "BTC", "ETH", "EUR", "GBP", "SGD", "BCH", "LTC", "FIL")


class _Model(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


def _from_millis(value: Any) -> Any:
    if isinstance(value, int | float | Decimal | str) and str(value):
        return datetime.fromtimestamp(int(value) / 1000, tz=UTC)
    return value


# =============================================================================
# MARKET DATA
# =============================================================================


class Ticker(_Model):
    """v1 pubticker; volume maps each currency to its volume plus a timestamp."""

    bid: Decimal = Decimal("0")
    ask: Decimal = Decimal("0")
    last: Decimal = Decimal("0")
    volume: dict[str, Any] = Field(default_factory=dict)

    def volume_of(self, code: str) -> Decimal:
        return Decimal(str(self.volume.get(code.upper(), "0")))

    @property
    def timestamp(self) -> datetime | None:
        value = self.volume.get("timestamp")
        return _from_millis(value) if value is not None else None


class TickerV2(_Model):
    symbol: str = ""
    open: Decimal = Decimal("0")
    high: Decimal = Decimal("0")
    low: Decimal = Decimal("0")
    close: Decimal = Decimal("0")
    changes: list[Decimal] = Field(default_factory=list)
    bid: Decimal = Decimal("0")
    ask: Decimal = Decimal("0")


class BookLevel(_Model):
    price: Decimal
    amount: Decimal


class Orderbook(_Model):
    bids: list[BookLevel] = Field(default_factory=list)
    asks: list[BookLevel] = Field(default_factory=list)


class Trade(_Model):
    tid: int
    timestamp: datetime = Field(alias="timestampms")
    price: Decimal
    amount: Decimal
    exchange: str = ""
    type: str = ""
    broken: bool = False

    parse_time = field_validator("timestamp", mode="before")(_from_millis)


class Candle(_Model):
    time: datetime
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal

    parse_time = field_validator("time", mode="before")(_from_millis)

    @classmethod
    def from_row(cls, row: list[Any]) -> "Candle":
        """Build from [ms, open, high, low, close, volume]."""
        return cls(time=row[0], open=row[1], high=row[2], low=row[3], close=row[4], volume=row[5])


class SymbolDetails(_Model):
    symbol: str
    base_currency: str
    quote_currency: str
    tick_size: Decimal = Decimal("0")
    quote_increment: Decimal = Decimal("0")
    min_order_size: Decimal = Decimal("0")
    status: str = ""


# =============================================================================
# ACCOUNT
# =============================================================================


class Balance(_Model):
    currency: str
    amount: Decimal = Decimal("0")
    available: Decimal = Decimal("0")
    available_for_withdrawal: Decimal = Field(default=Decimal("0"), alias="availableForWithdrawal")
    type: str = ""


class NotionalVolume(_Model):
    """Fee schedule in basis points."""

    api_maker_fee_bps: int = 0
    api_taker_fee_bps: int = 0
    api_auction_fee_bps: int = 0
    web_maker_fee_bps: int = 0
    web_taker_fee_bps: int = 0
    notional_30d_volume: Decimal = Decimal("0")


class DepositAddress(_Model):
    currency: str = ""
    address: str
    label: str = ""


class WithdrawResponse(_Model):
    address: str = ""
    amount: Decimal = Decimal("0")
    tx_hash: str = Field(default="", alias="txHash")
    withdrawal_id: str = Field(default="", alias="withdrawalId")
    message: str = ""


class Transfer(_Model):
    type: str = ""
    status: str = ""
    timestamp: datetime | None = Field(default=None, alias="timestampms")
    eid: int = 0
    currency: str = ""
    amount: Decimal = Decimal("0")
    tx_hash: str = Field(default="", alias="txHash")
    destination: str = ""
    method: str = ""

    parse_time = field_validator("timestamp", mode="before")(_from_millis)


# =============================================================================
# ORDERS
# =============================================================================


class Order(_Model):
    order_id: str
    client_order_id: str = ""
    symbol: str = ""
    exchange: str = ""
    price: Decimal = Decimal("0")
    avg_execution_price: Decimal = Decimal("0")
    side: str = ""
    type: str = ""
    options: list[str] = Field(default_factory=list)
    timestamp: datetime | None = Field(default=None, alias="timestampms")
    is_live: bool = False
    is_cancelled: bool = False
    is_hidden: bool = False
    was_forced: bool = False
    executed_amount: Decimal = Decimal("0")
    remaining_amount: Decimal = Decimal("0")
    original_amount: Decimal = Decimal("0")

    parse_time = field_validator("timestamp", mode="before")(_from_millis)


class MyTrade(_Model):
    tid: int
    order_id: str = ""
    price: Decimal = Decimal("0")
    amount: Decimal = Decimal("0")
    fee_amount: Decimal = Decimal("0")
    fee_currency: str = ""
    type: str = ""
    aggressor: bool = False
    timestamp: datetime | None = Field(default=None, alias="timestampms")

    parse_time = field_validator("timestamp", mode="before")(_from_millis)


class CancelDetails(_Model):
    cancelled_orders: list[int] = Field(default_factory=list, alias="cancelledOrders")
    cancel_rejects: list[int] = Field(default_factory=list, alias="cancelRejects")


class CancelAll(_Model):
    result: str = ""
    details: CancelDetails = Field(default_factory=CancelDetails)
