"""Ticker prices and the per-process ticker cache."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from irix.currency import Pair
from irix.enums import Asset
from irix.errors import NotFoundError, ValidationError


class Price(BaseModel):
    """Latest ticker values for one pair on one exchange."""

    last: Decimal = Decimal("0")
    high: Decimal = Decimal("0")
    low: Decimal = Decimal("0")
    bid: Decimal = Decimal("0")
    ask: Decimal = Decimal("0")
    volume: Decimal = Decimal("0")
    quote_volume: Decimal = Decimal("0")
    price_ath: Decimal = Decimal("0")
    open: Decimal = Decimal("0")
    close: Decimal = Decimal("0")
    pair: Pair = Field(default_factory=Pair)
    exchange: str = ""
    asset: Asset | None = None
    last_updated: datetime | None = None

    @property
    def mid_price(self) -> Decimal | None:
        """Midpoint of bid and ask when both are quoted."""
        if self.bid <= 0 or self.ask <= 0:
            return None
        return (self.bid + self.ask) / 2

    @property
    def spread(self) -> Decimal | None:
        """Ask minus bid when both are quoted."""
        if self.bid <= 0 or self.ask <= 0:
            return None
        return self.ask - self.bid


_tickers: dict[tuple[str, Pair, Asset], Price] = {}


def process_ticker(price: Price) -> None:
    """
    Validate and store a ticker.

    Raises:
        ValidationError: If the exchange, pair or asset is missing

    """
    if not price.exchange:
        raise ValidationError("ticker exchange name not set")
    if price.pair.is_empty():
        raise ValidationError(f"{price.exchange} ticker currency pair not populated")
    if price.asset is None:
        raise ValidationError(f"{price.exchange} ticker asset type not set")
    if price.last_updated is None:
        price.last_updated = datetime.now(UTC)
    _tickers[(price.exchange.lower(), price.pair, price.asset)] = price


def get_ticker(exchange: str, pair: Pair, asset: Asset) -> Price:
    """
    Fetch a stored ticker.

    Raises:
        NotFoundError: If no ticker was stored for that key

    """
    try:
        return _tickers[(exchange.lower(), pair, asset)]
    except KeyError:
        raise NotFoundError(
            f"no tickers for {exchange} exchange, pair {pair}, asset {asset.value}"
        ) from None
