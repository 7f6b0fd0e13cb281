"""
BTC Markets v3 REST API Pydantic Models.

Responses use camelCase keys and quote every number as a string; the
models alias the keys and let pydantic coerce the decimals.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

EXCHANGE = "BTC Markets"

# Order sides
BID = "Bid"
ASK = "Ask"

# Order types
LIMIT = "Limit"
MARKET = "Market"
STOP_LIMIT = "Stop Limit"
STOP = "Stop"
TAKE_PROFIT = "Take Profit"

# Order statuses
ORDER_ACCEPTED = "Accepted"
ORDER_PLACED = "Placed"
ORDER_PARTIALLY_MATCHED = "Partially Matched"
ORDER_FULLY_MATCHED = "Fully Matched"
ORDER_CANCELLED = "Cancelled"
ORDER_PARTIALLY_CANCELLED = "Partially Cancelled"
ORDER_FAILED = "Failed"


class _Model(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class Market(_Model):
    """A listed market."""

    market_id: str = Field(alias="marketId")
    base_asset: str = Field(default="", alias="baseAssetName")
    quote_asset: str = Field(default="", alias="quoteAssetName")
    min_order_amount: Decimal = Field(default=Decimal("0"), alias="minOrderAmount")
    max_order_amount: Decimal = Field(default=Decimal("0"), alias="maxOrderAmount")
    amount_decimals: int = Field(default=0, alias="amountDecimals")
    price_decimals: int = Field(default=0, alias="priceDecimals")


class Ticker(_Model):
    market_id: str = Field(alias="marketId")
    best_bid: Decimal = Field(default=Decimal("0"), alias="bestBid")
    best_ask: Decimal = Field(default=Decimal("0"), alias="bestAsk")
    last_price: Decimal = Field(default=Decimal("0"), alias="lastPrice")
    volume: Decimal = Field(default=Decimal("0"), alias="volume24h")
    volume_quote: Decimal = Field(default=Decimal("0"), alias="volumeQte24h")
    price_24h: Decimal = Field(default=Decimal("0"), alias="price24h")
    price_pct_24h: Decimal = Field(default=Decimal("0"), alias="pricePct24h")
    low_24h: Decimal = Field(default=Decimal("0"), alias="low24h")
    high_24h: Decimal = Field(default=Decimal("0"), alias="high24h")
    timestamp: datetime | None = None


class Trade(_Model):
    """Public trade; side is Bid or Ask."""

    trade_id: str = Field(alias="id")
    price: Decimal
    amount: Decimal
    timestamp: datetime
    side: str = ""


class Orderbook(BaseModel):
    """
    Level 2 book. Levels arrive as [price, volume] string pairs.
    """

    market_id: str = ""
    snapshot_id: int = 0
    bids: list[tuple[Decimal, Decimal]] = Field(default_factory=list)
    asks: list[tuple[Decimal, Decimal]] = Field(default_factory=list)

    @classmethod
    def from_response(cls, raw: dict[str, Any]) -> "Orderbook":
        return cls(
            market_id=raw.get("marketId", ""),
            snapshot_id=int(raw.get("snapshotId", 0)),
            bids=[(Decimal(str(level[0])), Decimal(str(level[1]))) for level in raw.get("bids", [])],
            asks=[(Decimal(str(level[0])), Decimal(str(level[1]))) for level in raw.get("asks", [])],
        )


class Balance(_Model):
    asset_name: str = Field(alias="assetName")
    balance: Decimal = Decimal("0")
    available: Decimal = Decimal("0")
    locked: Decimal = Decimal("0")


class MarketFee(_Model):
    maker_fee_rate: Decimal = Field(alias="makerFeeRate")
    taker_fee_rate: Decimal = Field(alias="takerFeeRate")
    market_id: str = Field(alias="marketId")


class TradingFees(_Model):
    monthly_volume: Decimal = Field(default=Decimal("0"), alias="monthlyVolume")
    fee_by_markets: list[MarketFee] = Field(default_factory=list, alias="feeByMarkets")


class WithdrawalFee(_Model):
    asset_name: str = Field(alias="assetName")
    fee: Decimal


class Order(_Model):
    """An order as returned by /v3/orders."""

    order_id: str = Field(alias="orderId")
    market_id: str = Field(default="", alias="marketId")
    side: str = ""
    type: str = ""
    creation_time: datetime | None = Field(default=None, alias="creationTime")
    price: Decimal = Decimal("0")
    amount: Decimal = Decimal("0")
    open_amount: Decimal = Field(default=Decimal("0"), alias="openAmount")
    status: str = ""
    trigger_price: Decimal = Field(default=Decimal("0"), alias="triggerPrice")
    target_amount: Decimal = Field(default=Decimal("0"), alias="targetAmount")
    client_order_id: str = Field(default="", alias="clientOrderId")


class CancelledOrder(_Model):
    order_id: str = Field(alias="orderId")
    client_order_id: str = Field(default="", alias="clientOrderId")


class UnprocessedRequest(_Model):
    code: str = ""
    message: str = ""
    request_id: str = Field(default="", alias="requestId")


class BatchCancelResponse(_Model):
    cancel_orders: list[CancelledOrder] = Field(default_factory=list, alias="cancelOrders")
    unprocessed_requests: list[UnprocessedRequest] = Field(
        default_factory=list, alias="unprocessedRequests"
    )


class BatchTradeResponse(_Model):
    orders: list[Order] = Field(default_factory=list)
    unprocessed_requests: list[UnprocessedRequest] = Field(
        default_factory=list, alias="unprocessedRequests"
    )


class TradeHistory(_Model):
    """A fill on one of the account's orders."""

    id: str
    market_id: str = Field(default="", alias="marketId")
    timestamp: datetime
    price: Decimal
    amount: Decimal
    side: str = ""
    fee: Decimal = Decimal("0")
    order_id: str = Field(default="", alias="orderId")
    liquidity_type: str = Field(default="", alias="liquidityType")


class Transfer(_Model):
    """A deposit or withdrawal."""

    id: str
    asset_name: str = Field(default="", alias="assetName")
    amount: Decimal = Decimal("0")
    type: str = ""
    creation_time: datetime | None = Field(default=None, alias="creationTime")
    status: str = ""
    description: str = ""
    fee: Decimal = Decimal("0")
    last_update: datetime | None = Field(default=None, alias="lastUpdate")
    payment_detail: dict[str, Any] | None = Field(default=None, alias="paymentDetail")


class DepositAddress(_Model):
    address: str
    asset_name: str = Field(default="", alias="assetName")


class ErrorResponse(_Model):
    code: str = ""
    message: str = ""
