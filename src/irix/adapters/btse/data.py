"""
BTSE REST API Pydantic Models.

Spot (v3.2) and futures (v2.1) share most response shapes. Timestamps are
epoch milliseconds.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

EXCHANGE = "BTSE"

# Order types reported on open orders
ORDER_TYPE_LIMIT = 76
ORDER_TYPE_MARKET = 77

# Order status codes
ORDER_INSERTED = 2
ORDER_FULLY_TRANSACTED = 4
ORDER_PARTIALLY_TRANSACTED = 5
ORDER_CANCELLED = 6
ORDER_REFUNDED = 7
ORDER_REJECTED = 8
ORDER_TRIGGERED = 9

GOOD_TILL_CANCEL = "GTC"


class _Model(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class _Timed(_Model):
    """Models whose timestamp arrives in epoch milliseconds."""

    @field_validator("timestamp", mode="before", check_fields=False)
    @classmethod
    def _from_ms(cls, value: Any) -> Any:
        if isinstance(value, int | float | Decimal):
            return datetime.fromtimestamp(int(value) / 1000, tz=UTC)
        return value


class MarketSummary(_Model):
    """One market from market_summary; doubles as ticker and limits source."""

    symbol: str
    last: Decimal = Decimal("0")
    lowest_ask: Decimal = Field(default=Decimal("0"), alias="lowestAsk")
    highest_bid: Decimal = Field(default=Decimal("0"), alias="highestBid")
    percentage_change: Decimal = Field(default=Decimal("0"), alias="percentageChange")
    volume: Decimal = Decimal("0")
    high_24h: Decimal = Field(default=Decimal("0"), alias="high24Hr")
    low_24h: Decimal = Field(default=Decimal("0"), alias="low24Hr")
    base: str = ""
    quote: str = ""
    active: bool = False
    size: Decimal = Decimal("0")
    min_valid_price: Decimal = Field(default=Decimal("0"), alias="minValidPrice")
    min_price_increment: Decimal = Field(default=Decimal("0"), alias="minPriceIncrement")
    min_order_size: Decimal = Field(default=Decimal("0"), alias="minOrderSize")
    max_order_size: Decimal = Field(default=Decimal("0"), alias="maxOrderSize")
    min_size_increment: Decimal = Field(default=Decimal("0"), alias="minSizeIncrement")
    futures: bool = False


class QuoteLevel(_Model):
    price: Decimal
    size: Decimal


class Orderbook(_Model):
    buy_quote: list[QuoteLevel] = Field(default_factory=list, alias="buyQuote")
    sell_quote: list[QuoteLevel] = Field(default_factory=list, alias="sellQuote")
    last_price: Decimal = Field(default=Decimal("0"), alias="lastPrice")
    symbol: str = ""
    timestamp: int = 0


class Trade(_Timed):
    """Public trade."""

    serial_id: int = Field(alias="serialId")
    symbol: str = ""
    price: Decimal
    amount: Decimal = Field(alias="size")
    side: str = ""
    timestamp: datetime


class WalletBalance(_Model):
    currency: str
    total: Decimal = Decimal("0")
    available: Decimal = Decimal("0")


class WalletAddress(_Model):
    address: str
    created: int = 0


class WithdrawalResponse(_Model):
    withdraw_id: str = ""


class OrderResponse(_Model):
    """Result of an order placement or cancellation."""

    status: int = 0
    symbol: str = ""
    order_id: str = Field(default="", alias="orderID")
    client_order_id: str = Field(default="", alias="clOrderID")
    price: Decimal = Decimal("0")
    size: Decimal = Decimal("0")
    average_fill_price: Decimal = Field(default=Decimal("0"), alias="averageFillPrice")
    fill_size: Decimal = Field(default=Decimal("0"), alias="fillSize")
    side: str = ""
    timestamp: int = 0


class OpenOrder(_Timed):
    order_id: str = Field(alias="orderID")
    client_order_id: str = Field(default="", alias="clOrderID")
    symbol: str = ""
    side: str = ""
    price: Decimal = Decimal("0")
    size: Decimal = Decimal("0")
    filled_size: Decimal = Field(default=Decimal("0"), alias="filledSize")
    order_type: int = Field(default=0, alias="orderType")
    order_state: str = Field(default="", alias="orderState")
    trigger_price: Decimal = Field(default=Decimal("0"), alias="triggerPrice")
    timestamp: datetime


class TradeHistory(_Timed):
    """A fill on one of the account's orders."""

    trade_id: str = Field(alias="tradeId")
    order_id: str = Field(default="", alias="orderId")
    symbol: str = ""
    side: str = ""
    price: Decimal = Decimal("0")
    size: Decimal = Decimal("0")
    fee_amount: Decimal = Field(default=Decimal("0"), alias="feeAmount")
    fee_currency: str = Field(default="", alias="feeCurrency")
    timestamp: datetime


class FeeInformation(_Model):
    symbol: str
    maker_fee: Decimal = Field(default=Decimal("0"), alias="makerFee")
    taker_fee: Decimal = Field(default=Decimal("0"), alias="takerFee")
