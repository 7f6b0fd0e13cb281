"""
Coinbase Pro API Pydantic Models.

REST responses quote numbers as strings and pydantic coerces them into
Decimal. Stream messages follow the Advanced Trade websocket layout: a
channel envelope holding a list of typed events.
"""

from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

EXCHANGE = "CoinbasePro"

# Order statuses
STATUS_OPEN = "open"
STATUS_PENDING = "pending"
STATUS_ACTIVE = "active"
STATUS_DONE = "done"
STATUS_REJECTED = "rejected"

OPEN_STATUSES = [STATUS_OPEN, STATUS_PENDING, STATUS_ACTIVE]

DONE_REASON_CANCELED = "canceled"


class _Model(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


# =============================================================================
# REST
# =============================================================================


class Product(_Model):
    id: str
    base_currency: str = ""
    quote_currency: str = ""
    base_min_size: Decimal = Decimal("0")
    base_max_size: Decimal = Decimal("0")
    quote_increment: Decimal = Decimal("0")
    base_increment: Decimal = Decimal("0")
    min_market_funds: Decimal = Decimal("0")
    max_market_funds: Decimal = Decimal("0")
    display_name: str = ""
    status: str = ""
    trading_disabled: bool = False


class Ticker(_Model):
    trade_id: int = 0
    price: Decimal = Decimal("0")
    size: Decimal = Decimal("0")
    bid: Decimal = Decimal("0")
    ask: Decimal = Decimal("0")
    volume: Decimal = Decimal("0")
    time: datetime | None = None


class Stats(_Model):
    """24 hour statistics."""

    open: Decimal = Decimal("0")
    high: Decimal = Decimal("0")
    low: Decimal = Decimal("0")
    volume: Decimal = Decimal("0")
    last: Decimal = Decimal("0")
    volume_30day: Decimal = Decimal("0")


class Trade(_Model):
    trade_id: int
    price: Decimal
    size: Decimal
    side: str = ""
    time: datetime


class OrderbookLevel(BaseModel):
    price: Decimal
    amount: Decimal
    num_orders: int = 0
    order_id: str = ""


class Orderbook(BaseModel):
    """
    Level 1/2 levels are [price, size, num-orders]; level 3 levels are
    [price, size, order-id].
    """

    sequence: int = 0
    bids: list[OrderbookLevel] = Field(default_factory=list)
    asks: list[OrderbookLevel] = Field(default_factory=list)

    @classmethod
    def from_response(cls, raw: dict[str, Any], level: int) -> "Orderbook":
        def parse(rows: list[list[Any]]) -> list[OrderbookLevel]:
            levels = []
            for row in rows:
                item = OrderbookLevel(price=Decimal(str(row[0])), amount=Decimal(str(row[1])))
                if level == 3:
                    item.order_id = str(row[2])
                else:
                    item.num_orders = int(row[2])
                levels.append(item)
            return levels

        return cls(
            sequence=int(raw.get("sequence", 0)),
            bids=parse(raw.get("bids", [])),
            asks=parse(raw.get("asks", [])),
        )


class Currency(_Model):
    id: str
    name: str = ""
    min_size: Decimal = Decimal("0")


class ServerTime(_Model):
    iso: str = ""
    epoch: Decimal = Decimal("0")


class Account(_Model):
    id: str
    currency: str
    balance: Decimal = Decimal("0")
    available: Decimal = Decimal("0")
    hold: Decimal = Decimal("0")
    profile_id: str = ""


class LedgerEntry(_Model):
    id: str
    created_at: datetime | None = None
    amount: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")
    type: str = ""
    details: dict[str, Any] = Field(default_factory=dict)


class Hold(_Model):
    id: str
    account_id: str = ""
    created_at: datetime | None = None
    amount: Decimal = Decimal("0")
    type: str = ""
    ref: str = ""


class Order(_Model):
    """Order state from /orders."""

    id: str
    price: Decimal = Decimal("0")
    size: Decimal = Decimal("0")
    product_id: str = ""
    side: str = ""
    stp: str = ""
    funds: Decimal = Decimal("0")
    specified_funds: Decimal = Decimal("0")
    type: str = ""
    time_in_force: str = ""
    post_only: bool = False
    created_at: datetime | None = None
    done_at: datetime | None = None
    done_reason: str = ""
    fill_fees: Decimal = Decimal("0")
    filled_size: Decimal = Decimal("0")
    executed_value: Decimal = Decimal("0")
    status: str = ""
    settled: bool = False


class Fill(_Model):
    trade_id: int
    product_id: str = ""
    price: Decimal = Decimal("0")
    size: Decimal = Decimal("0")
    order_id: str = ""
    created_at: datetime | None = None
    liquidity: str = ""
    fee: Decimal = Decimal("0")
    settled: bool = False
    side: str = ""


class Volume(_Model):
    """Thirty day trailing volume for one product."""

    product_id: str
    exchange_volume: Decimal = Decimal("0")
    volume: Decimal = Decimal("0")
    recorded_at: str = ""


class PaymentMethod(_Model):
    id: str
    type: str = ""
    name: str = ""
    currency: str = ""
    primary_buy: bool = False
    primary_sell: bool = False
    allow_buy: bool = False
    allow_sell: bool = False
    allow_deposit: bool = False
    allow_withdraw: bool = False


class DepositWithdrawalInfo(_Model):
    id: str = ""
    amount: Decimal = Decimal("0")
    currency: str = ""
    payout_at: str = ""


class CoinbaseAccount(_Model):
    id: str
    name: str = ""
    balance: Decimal = Decimal("0")
    currency: str = ""
    type: str = ""
    primary: bool = False
    active: bool = False


class Transfer(_Model):
    id: str
    type: str = ""
    created_at: datetime | None = None
    completed_at: datetime | None = None
    canceled_at: datetime | None = None
    amount: Decimal = Decimal("0")
    details: dict[str, Any] = Field(default_factory=dict)


class Report(_Model):
    id: str
    type: str = ""
    status: str = ""
    created_at: datetime | None = None
    completed_at: datetime | None = None
    expires_at: datetime | None = None
    file_url: str = ""


# =============================================================================
# STREAM
# =============================================================================


class StreamEvent(BaseModel):
    type: str = ""

    model_config = ConfigDict(extra="ignore")


class StreamMessage(BaseModel):
    """Envelope shared by every channel."""

    channel: str
    client_id: str = ""
    timestamp: datetime | None = None
    sequence_num: int = 0
    events: list[Any] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class TickerData(BaseModel):
    product_id: str
    price: Decimal
    volume_24h: Decimal = Decimal("0")
    low_24h: Decimal = Decimal("0")
    high_24h: Decimal = Decimal("0")
    best_bid: Decimal = Decimal("0")
    best_ask: Decimal = Decimal("0")

    model_config = ConfigDict(extra="ignore")


class TickerEvent(StreamEvent):
    tickers: list[TickerData] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def ensure_array_structure(cls, data: dict[str, Any]) -> dict[str, Any]:
        """Ensure tickers is always a list."""
        tickers = data.get("tickers")
        if tickers is not None and not isinstance(tickers, list):
            data["tickers"] = [tickers]
        return data


class TickerMessage(StreamMessage):
    events: list[TickerEvent]

    @property
    def tickers(self) -> Sequence[TickerData]:
        return [ticker for event in self.events for ticker in event.tickers]


class PriceLevelUpdate(BaseModel):
    """Single price level update; side is "bid" or "offer"."""

    side: str
    event_time: datetime | None = None
    price_level: Decimal
    new_quantity: Decimal

    model_config = ConfigDict(extra="ignore")

    @property
    def is_bid(self) -> bool:
        return self.side.lower() == "bid"


class Level2Event(StreamEvent):
    product_id: str
    updates: list[PriceLevelUpdate] = Field(default_factory=list)

    @property
    def is_snapshot(self) -> bool:
        return self.type.lower() == "snapshot"


class Level2Message(StreamMessage):
    events: list[Level2Event]

    @field_validator("channel")
    @classmethod
    def validate_level2_channel(cls, v: str) -> str:
        """Validate the channel is either level2 or l2_data."""
        if v not in ("level2", "l2_data"):
            raise ValueError(f"Invalid channel for Level2: {v}")
        return v


class TradeData(BaseModel):
    trade_id: str
    product_id: str
    price: Decimal
    size: Decimal
    side: str
    time: datetime

    model_config = ConfigDict(extra="ignore")

    @field_validator("trade_id", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> str:
        return str(value)


class MarketTradesEvent(StreamEvent):
    trades: list[TradeData] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def ensure_array_structure(cls, data: dict[str, Any]) -> dict[str, Any]:
        """Ensure trades is always a list."""
        trades = data.get("trades")
        if trades is not None and not isinstance(trades, list):
            data["trades"] = [trades]
        return data


class MarketTradesMessage(StreamMessage):
    events: list[MarketTradesEvent]

    @property
    def trades(self) -> Sequence[TradeData]:
        return [trade for event in self.events for trade in event.trades]
