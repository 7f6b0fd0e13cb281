"""
Bitfinex REST API Pydantic Models.

v2 public endpoints answer with positional arrays; the `from_array`
constructors map them by index. v1 authenticated endpoints answer with
JSON objects and parse directly.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from irix.errors import ExchangeAPIError

EXCHANGE = "Bitfinex"


def _dec(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    return Decimal(str(value))


def _ms(value: Any) -> datetime:
    return datetime.fromtimestamp(int(value) / 1000, tz=UTC)


def _expect_length(raw: list[Any], minimum: int, what: str) -> None:
    if len(raw) < minimum:
        raise ExchangeAPIError(
            EXCHANGE, f"invalid {what} response, array length too small, check api docs for updates"
        )


# =============================================================================
# PUBLIC (v2 arrays)
# =============================================================================


class Ticker(BaseModel):
    """Trading (10 fields) or funding (16 fields) ticker."""

    flash_return_rate: Decimal = Decimal("0")
    bid: Decimal = Decimal("0")
    bid_period: int = 0
    bid_size: Decimal = Decimal("0")
    ask: Decimal = Decimal("0")
    ask_period: int = 0
    ask_size: Decimal = Decimal("0")
    daily_change: Decimal = Decimal("0")
    daily_change_perc: Decimal = Decimal("0")
    last: Decimal = Decimal("0")
    volume: Decimal = Decimal("0")
    high: Decimal = Decimal("0")
    low: Decimal = Decimal("0")
    ffr_amount_available: Decimal = Decimal("0")

    @classmethod
    def from_array(cls, raw: list[Any]) -> Ticker:
        if len(raw) > 10:
            _expect_length(raw, 16, "funding ticker")
            return cls(
                flash_return_rate=_dec(raw[0]),
                bid=_dec(raw[1]),
                bid_period=int(raw[2]),
                bid_size=_dec(raw[3]),
                ask=_dec(raw[4]),
                ask_period=int(raw[5]),
                ask_size=_dec(raw[6]),
                daily_change=_dec(raw[7]),
                daily_change_perc=_dec(raw[8]),
                last=_dec(raw[9]),
                volume=_dec(raw[10]),
                high=_dec(raw[11]),
                low=_dec(raw[12]),
                ffr_amount_available=_dec(raw[15]),
            )
        _expect_length(raw, 10, "ticker")
        return cls(
            bid=_dec(raw[0]),
            bid_size=_dec(raw[1]),
            ask=_dec(raw[2]),
            ask_size=_dec(raw[3]),
            daily_change=_dec(raw[4]),
            daily_change_perc=_dec(raw[5]),
            last=_dec(raw[6]),
            volume=_dec(raw[7]),
            high=_dec(raw[8]),
            low=_dec(raw[9]),
        )


class Trade(BaseModel):
    """Public trade; a negative raw amount marks a sell."""

    tid: int
    timestamp: datetime
    amount: Decimal
    price: Decimal = Decimal("0")
    rate: Decimal = Decimal("0")
    period: int = 0
    side: str = "BUY"

    @classmethod
    def from_array(cls, raw: list[Any]) -> Trade:
        _expect_length(raw, 4, "trade")
        amount = _dec(raw[2])
        side = "BUY"
        if amount < 0:
            side = "SELL"
            amount = -amount
        if len(raw) > 4:
            return cls(
                tid=int(raw[0]),
                timestamp=_ms(raw[1]),
                amount=amount,
                rate=_dec(raw[3]),
                period=int(raw[4]),
                side=side,
            )
        return cls(
            tid=int(raw[0]),
            timestamp=_ms(raw[1]),
            amount=amount,
            price=_dec(raw[3]),
            side=side,
        )


class BookLevel(BaseModel):
    """One order book entry."""

    price: Decimal = Decimal("0")
    rate: Decimal = Decimal("0")
    period: int = 0
    count: int = 0
    amount: Decimal = Decimal("0")
    order_id: int = 0


class Orderbook(BaseModel):
    """Bids and asks with positive amounts."""

    bids: list[BookLevel] = Field(default_factory=list)
    asks: list[BookLevel] = Field(default_factory=list)

    @classmethod
    def from_arrays(cls, rows: list[list[Any]], raw: bool) -> Orderbook:
        """
        Split rows into bids and asks.

        Trading rows carry a positive amount for bids; funding rows (four
        fields) carry a positive amount for asks. Raw books (precision R0)
        lead with an order or offer id instead of a count.
        """
        book = cls()
        for row in rows:
            funding = len(row) > 3
            if funding:
                level = BookLevel(period=int(row[1]), amount=_dec(row[3]))
                if raw:
                    level.order_id = int(row[0])
                    level.rate = _dec(row[2])
                else:
                    level.rate = _dec(row[0])
                    level.count = int(row[2])
                positive_side, negative_side = book.asks, book.bids
            else:
                level = BookLevel(amount=_dec(row[2]))
                if raw:
                    level.order_id = int(row[0])
                    level.price = _dec(row[1])
                else:
                    level.price = _dec(row[0])
                    level.count = int(row[1])
                positive_side, negative_side = book.bids, book.asks
            if level.amount > 0:
                positive_side.append(level)
            else:
                level.amount = -level.amount
                negative_side.append(level)
        return book


class Candle(BaseModel):
    """OHLCV candle; Bitfinex orders fields open, close, high, low."""

    timestamp: datetime
    open: Decimal
    close: Decimal
    high: Decimal
    low: Decimal
    volume: Decimal

    @classmethod
    def from_array(cls, raw: list[Any]) -> Candle:
        _expect_length(raw, 6, "candle")
        return cls(
            timestamp=_ms(raw[0]),
            open=_dec(raw[1]),
            close=_dec(raw[2]),
            high=_dec(raw[3]),
            low=_dec(raw[4]),
            volume=_dec(raw[5]),
        )


# =============================================================================
# AUTHENTICATED (v1 objects)
# =============================================================================


class _V1Model(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class Balance(_V1Model):
    """Wallet balance for one currency."""

    type: str
    currency: str
    amount: Decimal
    available: Decimal


class Order(_V1Model):
    """v1 order status."""

    id: int = Field(default=0, alias="id")
    order_id: int = Field(default=0, alias="order_id")
    symbol: str = ""
    exchange: str | None = None
    price: Decimal = Decimal("0")
    avg_execution_price: Decimal = Decimal("0")
    side: str = ""
    type: str = ""
    timestamp: Decimal = Decimal("0")
    is_live: bool = False
    is_cancelled: bool = False
    is_hidden: bool = False
    was_forced: bool = False
    original_amount: Decimal = Decimal("0")
    remaining_amount: Decimal = Decimal("0")
    executed_amount: Decimal = Decimal("0")

    @property
    def identifier(self) -> int:
        return self.order_id or self.id

    @property
    def created(self) -> datetime:
        return datetime.fromtimestamp(float(self.timestamp), tz=UTC)


class DepositResponse(_V1Model):
    result: str = ""
    method: str = ""
    currency: str = ""
    address: str = ""


class Withdrawal(_V1Model):
    status: str = ""
    message: str = ""
    withdrawal_id: int = 0


class MovementHistory(_V1Model):
    """A deposit or withdrawal."""

    id: int = 0
    txid: str | int | None = None
    currency: str = ""
    method: str = ""
    type: str = ""
    amount: Decimal = Decimal("0")
    description: str = ""
    address: str = ""
    status: str = ""
    timestamp: Decimal = Decimal("0")
    fee: Decimal = Decimal("0")


class FeeTier(_V1Model):
    pairs: str
    maker_fees: Decimal
    taker_fees: Decimal


class AccountInfo(_V1Model):
    maker_fees: Decimal = Decimal("0")
    taker_fees: Decimal = Decimal("0")
    fees: list[FeeTier] = Field(default_factory=list)


class AccountFees(_V1Model):
    withdraw: dict[str, Any] = Field(default_factory=dict)


class GenericResponse(_V1Model):
    result: str = ""
