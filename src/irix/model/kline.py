"""
Candlestick data and interval helpers.

Intervals are measured in seconds. Adapters map them onto venue codes
(e.g. "1m", "1hour", 60) in their own `format_exchange_kline_interval`.
"""

from __future__ import annotations

import enum
from datetime import UTC, datetime, timedelta
from decimal import Decimal

from pydantic import BaseModel, Field

from irix.currency import Pair
from irix.enums import Asset
from irix.errors import KlineError
from irix.model.order import TradeHistory


class Interval(int, enum.Enum):
    """Candle width in seconds."""

    FIFTEEN_SECOND = 15
    ONE_MIN = 60
    THREE_MIN = 3 * 60
    FIVE_MIN = 5 * 60
    TEN_MIN = 10 * 60
    FIFTEEN_MIN = 15 * 60
    THIRTY_MIN = 30 * 60
    ONE_HOUR = 60 * 60
    TWO_HOUR = 2 * 60 * 60
    FOUR_HOUR = 4 * 60 * 60
    SIX_HOUR = 6 * 60 * 60
    EIGHT_HOUR = 8 * 60 * 60
    TWELVE_HOUR = 12 * 60 * 60
    ONE_DAY = 24 * 60 * 60
    THREE_DAY = 3 * 24 * 60 * 60
    ONE_WEEK = 7 * 24 * 60 * 60
    FIFTEEN_DAY = 15 * 24 * 60 * 60
    TWO_WEEK = 14 * 24 * 60 * 60
    ONE_MONTH = 30 * 24 * 60 * 60
    ONE_YEAR = 365 * 24 * 60 * 60

    @property
    def duration(self) -> timedelta:
        """Interval as a timedelta."""
        return timedelta(seconds=self.value)

    def word(self) -> str:
        """Text name such as "onemin" or "fourhour"."""
        return self.name.lower().replace("_", "")

    def short(self) -> str:
        """Compact form such as "15s", "5m", "4h" or "24h"."""
        hours, remainder = divmod(self.value, 3600)
        minutes, seconds = divmod(remainder, 60)
        text = f"{hours}h" if hours else ""
        if minutes or (hours and seconds):
            text += f"{minutes}m"
        if seconds:
            text += f"{seconds}s"
        return text

    def intervals_per_year(self) -> float:
        """How many of this interval fit in a year."""
        return Interval.ONE_YEAR.value / self.value


class Candle(BaseModel):
    """One OHLCV candle."""

    time: datetime
    open: Decimal = Decimal("0")
    high: Decimal = Decimal("0")
    low: Decimal = Decimal("0")
    close: Decimal = Decimal("0")
    volume: Decimal = Decimal("0")


class Item(BaseModel):
    """Candles for one pair at one interval."""

    exchange: str = ""
    pair: Pair = Field(default_factory=Pair)
    asset: Asset = Asset.SPOT
    interval: Interval = Interval.ONE_MIN
    candles: list[Candle] = Field(default_factory=list)

    def remove_duplicates(self) -> None:
        """Drop candles sharing a timestamp, keeping the first."""
        seen: set[datetime] = set()
        unique: list[Candle] = []
        for candle in self.candles:
            if candle.time not in seen:
                seen.add(candle.time)
                unique.append(candle)
        self.candles = unique

    def remove_outside_range(self, start: datetime, end: datetime) -> None:
        """Keep candles with start <= time < end."""
        self.candles = [c for c in self.candles if start <= c.time < end]

    def sort_candles_by_timestamp(self, desc: bool = False) -> None:
        """Sort candles by time."""
        self.candles.sort(key=lambda c: c.time, reverse=desc)


class ExchangeCapabilities(BaseModel):
    """Kline intervals an exchange serves and its per-request candle limit."""

    intervals: dict[str, bool] = Field(default_factory=dict)
    result_limit: int = 0

    @classmethod
    def with_intervals(cls, *intervals: Interval, result_limit: int = 0) -> ExchangeCapabilities:
        """Enable the given intervals."""
        return cls(
            intervals={interval.word(): True for interval in intervals},
            result_limit=result_limit,
        )

    def interval_enabled(self, interval: Interval) -> bool:
        """Whether the exchange serves this interval."""
        return self.intervals.get(interval.word(), False)


class IntervalRange(BaseModel):
    """One request-sized window of candle start times."""

    start: datetime
    end: datetime
    intervals: list[datetime] = Field(default_factory=list)


def total_candles_per_interval(start: datetime, end: datetime, interval: Interval) -> float:
    """Number of candles between start and end."""
    return (end - start).total_seconds() / interval.value


def _round(moment: datetime, interval: Interval) -> datetime:
    epoch = datetime(1970, 1, 1, tzinfo=moment.tzinfo or UTC)
    seconds = (moment - epoch).total_seconds()
    rounded = round(seconds / interval.value) * interval.value
    return epoch + timedelta(seconds=rounded)


def calculate_candle_date_ranges(
    start: datetime, end: datetime, interval: Interval, limit: int
) -> list[IntervalRange]:
    """
    Split [start, end) into windows of at most `limit` candles.

    A zero limit yields a single window.
    """
    start = _round(start, interval)
    end = _round(end, interval)
    starts: list[datetime] = []
    moment = start
    while moment < end:
        starts.append(moment)
        moment += interval.duration
    if limit == 0 or len(starts) < limit:
        return [IntervalRange(start=start, end=end, intervals=starts)]
    ranges: list[IntervalRange] = []
    for offset in range(0, len(starts), limit):
        chunk = starts[offset : offset + limit]
        ranges.append(
            IntervalRange(
                start=chunk[0], end=chunk[-1] + interval.duration, intervals=chunk
            )
        )
    return ranges


def create_kline(
    trades: list[TradeHistory],
    interval: Interval,
    pair: Pair,
    asset: Asset,
    exchange: str,
) -> Item:
    """
    Build candles from trade history.

    Empty buckets repeat the previous close.

    Raises:
        KlineError: If the interval is under a minute or trades are incomplete

    """
    if interval.value < Interval.ONE_MIN.value:
        raise KlineError(f"invalid time interval: [{interval.short()}]")
    if not trades:
        raise KlineError("insufficient data")
    for i, trade in enumerate(trades):
        if trade.timestamp is None:
            raise KlineError(f"timestamp not set for element {i}")
        if trade.amount <= 0:
            raise KlineError(f"amount not set for element {i}")
        if trade.price <= 0:
            raise KlineError(f"price not set for element {i}")
    ordered = sorted(trades, key=lambda t: t.timestamp)  # type: ignore[arg-type,return-value]

    first = ordered[0].timestamp
    last = ordered[-1].timestamp
    assert first is not None and last is not None
    epoch = datetime(1970, 1, 1, tzinfo=first.tzinfo)
    offset = (first - epoch).total_seconds() % interval.value
    bucket = first - timedelta(seconds=offset)

    item = Item(exchange=exchange, pair=pair, asset=asset, interval=interval)
    last_close = Decimal("0")
    index = 0
    while bucket <= last:
        bucket_end = bucket + interval.duration
        zone: list[TradeHistory] = []
        while index < len(ordered) and ordered[index].timestamp < bucket_end:  # type: ignore[operator]
            zone.append(ordered[index])
            index += 1
        if not zone:
            item.candles.append(
                Candle(time=bucket, open=last_close, high=last_close, low=last_close, close=last_close)
            )
        else:
            prices = [t.price for t in zone]
            last_close = prices[-1]
            item.candles.append(
                Candle(
                    time=bucket,
                    open=prices[0],
                    high=max(prices),
                    low=min(prices),
                    close=last_close,
                    volume=sum((t.amount for t in zone), Decimal("0")),
                )
            )
        bucket = bucket_end
    return item
