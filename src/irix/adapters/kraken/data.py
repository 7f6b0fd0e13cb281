"""
Kraken Spot Pydantic Models.

Every reply is {"error": [...], "result": ...}. Result maps are keyed by
Kraken's own asset and pair names (XXBT, XXBTZUSD), which differ from the
altnames (XBT, XBTUSD) used in requests. Numbers arrive as strings.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

EXCHANGE = "Kraken"

# Order statuses
STATUS_PENDING = "pending"
STATUS_OPEN = "open"
STATUS_CLOSED = "closed"
STATUS_CANCELED = "canceled"
STATUS_EXPIRED = "expired"

# Dark pool pairs carry this altname suffix
DARK_POOL_SUFFIX = ".d"


class _Model(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


def _from_seconds(value: Any) -> Any:
    if isinstance(value, int | float | Decimal | str) and str(value):
        return datetime.fromtimestamp(float(value), tz=UTC)
    return value


# =============================================================================
# MARKET DATA
# =============================================================================


class Asset(_Model):
    aclass: str = ""
    altname: str
    decimals: int = 0
    display_decimals: int = 0


class AssetPair(_Model):
    altname: str
    wsname: str = ""
    aclass_base: str = ""
    base: str
    aclass_quote: str = ""
    quote: str
    pair_decimals: int = 0
    lot_decimals: int = 0
    lot_multiplier: int = 1
    fees: list[list[Decimal]] = Field(default_factory=list)
    fees_maker: list[list[Decimal]] = Field(default_factory=list)
    fee_volume_currency: str = ""
    margin_call: int = 0
    margin_stop: int = 0
    ordermin: Decimal = Decimal("0")
    costmin: Decimal = Decimal("0")
    tick_size: Decimal = Decimal("0")


class Ticker(_Model):
    """
    Arrays hold [today, last 24 hours] except a/b ([price, whole lot
    volume, lot volume]) and c ([price, lot volume]).
    """

    ask: list[Decimal] = Field(alias="a")
    bid: list[Decimal] = Field(alias="b")
    last: list[Decimal] = Field(alias="c")
    volume: list[Decimal] = Field(alias="v")
    vwap: list[Decimal] = Field(default_factory=list, alias="p")
    trades: list[int] = Field(default_factory=list, alias="t")
    low: list[Decimal] = Field(alias="l")
    high: list[Decimal] = Field(alias="h")
    open: Decimal = Field(default=Decimal("0"), alias="o")


class Orderbook(_Model):
    """Levels are [price, volume, timestamp]."""

    asks: list[list[Decimal]] = Field(default_factory=list)
    bids: list[list[Decimal]] = Field(default_factory=list)


class RecentTrade(_Model):
    price: Decimal
    volume: Decimal
    time: datetime
    side: str
    order_type: str
    misc: str = ""
    trade_id: int = 0

    parse_time = field_validator("time", mode="before")(_from_seconds)

    @classmethod
    def from_row(cls, row: list[Any]) -> "RecentTrade":
        """Build from [price, volume, time, b/s, m/l, misc, trade id]."""
        return cls(
            price=row[0],
            volume=row[1],
            time=row[2],
            side=row[3],
            order_type=row[4],
            misc=row[5] if len(row) > 5 else "",
            trade_id=row[6] if len(row) > 6 else 0,
        )


class OHLC(_Model):
    time: datetime
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    vwap: Decimal
    volume: Decimal
    count: int = 0

    parse_time = field_validator("time", mode="before")(_from_seconds)

    @classmethod
    def from_row(cls, row: list[Any]) -> "OHLC":
        """Build from [time, open, high, low, close, vwap, volume, count]."""
        return cls(
            time=row[0],
            open=row[1],
            high=row[2],
            low=row[3],
            close=row[4],
            vwap=row[5],
            volume=row[6],
            count=row[7],
        )


# =============================================================================
# ACCOUNT
# =============================================================================


class TradeVolumeFee(_Model):
    """Fee percentages for one pair."""

    fee: Decimal = Decimal("0")
    min_fee: Decimal = Field(default=Decimal("0"), alias="minfee")
    max_fee: Decimal = Field(default=Decimal("0"), alias="maxfee")
    next_fee: Decimal | None = Field(default=None, alias="nextfee")
    next_volume: Decimal | None = Field(default=None, alias="nextvolume")
    tier_volume: Decimal | None = Field(default=None, alias="tiervolume")


class TradeVolume(_Model):
    currency: str = ""
    volume: Decimal = Decimal("0")
    fees: dict[str, TradeVolumeFee] = Field(default_factory=dict)
    fees_maker: dict[str, TradeVolumeFee] = Field(default_factory=dict)


class DepositMethod(_Model):
    method: str
    limit: Decimal | bool = False
    fee: Decimal = Decimal("0")
    address_setup_fee: Decimal = Field(default=Decimal("0"), alias="address-setup-fee")
    gen_address: bool = Field(default=False, alias="gen-address")


class DepositAddress(_Model):
    address: str
    expire_time: int = Field(default=0, alias="expiretm")
    tag: str = ""
    new: bool = False

    @field_validator("expire_time", mode="before")
    @classmethod
    def _int_time(cls, value: Any) -> Any:
        return int(value) if value not in (None, "") else 0


class WithdrawStatus(_Model):
    method: str = ""
    aclass: str = ""
    asset: str = ""
    refid: str = ""
    txid: str = ""
    info: str = ""
    amount: Decimal = Decimal("0")
    fee: Decimal = Decimal("0")
    time: datetime | None = None
    status: str = ""

    parse_time = field_validator("time", mode="before")(_from_seconds)


# =============================================================================
# ORDERS
# =============================================================================


class OrderDescription(_Model):
    pair: str = ""
    type: str = ""
    order_type: str = Field(default="", alias="ordertype")
    price: Decimal = Decimal("0")
    price2: Decimal = Decimal("0")
    leverage: str = ""
    order: str = ""
    close: str = ""


class OrderInfo(_Model):
    refid: str | None = None
    userref: int | None = None
    status: str = ""
    open_time: datetime | None = Field(default=None, alias="opentm")
    close_time: datetime | None = Field(default=None, alias="closetm")
    start_time: datetime | None = Field(default=None, alias="starttm")
    expire_time: datetime | None = Field(default=None, alias="expiretm")
    description: OrderDescription = Field(default_factory=OrderDescription, alias="descr")
    volume: Decimal = Field(default=Decimal("0"), alias="vol")
    volume_executed: Decimal = Field(default=Decimal("0"), alias="vol_exec")
    cost: Decimal = Decimal("0")
    fee: Decimal = Decimal("0")
    price: Decimal = Decimal("0")
    stop_price: Decimal = Field(default=Decimal("0"), alias="stopprice")
    limit_price: Decimal = Field(default=Decimal("0"), alias="limitprice")
    misc: str = ""
    oflags: str = ""
    reason: str | None = None
    trades: list[str] = Field(default_factory=list)

    @field_validator("open_time", "close_time", "start_time", "expire_time", mode="before")
    @classmethod
    def _parse_time(cls, value: Any) -> Any:
        # Unset times are sent as 0
        if value in (0, None, "0"):
            return None
        return _from_seconds(value)


class OpenOrders(_Model):
    open: dict[str, OrderInfo] = Field(default_factory=dict)


class ClosedOrders(_Model):
    closed: dict[str, OrderInfo] = Field(default_factory=dict)
    count: int = 0


class AddOrderDescription(_Model):
    order: str = ""
    close: str = ""


class AddOrderResponse(_Model):
    description: AddOrderDescription = Field(default_factory=AddOrderDescription, alias="descr")
    transaction_ids: list[str] = Field(default_factory=list, alias="txid")


class CancelOrderResponse(_Model):
    count: int = 0
    pending: bool = False
