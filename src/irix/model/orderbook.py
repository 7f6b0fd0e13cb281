"""
Order book snapshots and incremental book state.

Book is the immutable-by-convention snapshot every adapter returns from
`update_orderbook`. It is verified before it is stored so downstream code
can rely on sorted, non-crossed levels. MutableOrderBook keeps level-2
state for streams that send a snapshot followed by deltas.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from irix.currency import Pair
from irix.enums import Asset
from irix.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class Item(BaseModel):
    """One price level."""

    amount: Decimal
    price: Decimal
    id: int = 0
    period: int = 0  # funding books quote a period in days
    order_count: int = 0


class Book(BaseModel):
    """Order book snapshot for one pair."""

    bids: list[Item] = Field(default_factory=list)
    asks: list[Item] = Field(default_factory=list)
    pair: Pair = Field(default_factory=Pair)
    asset: Asset | None = None
    exchange: str = ""
    last_updated: datetime | None = None
    last_update_id: int = 0
    price_duplication: bool = False
    is_funding_rate: bool = False
    verification_bypass: bool = False
    has_checksum_validation: bool = False

    @property
    def best_bid(self) -> Decimal | None:
        """Highest bid price."""
        return self.bids[0].price if self.bids else None

    @property
    def best_ask(self) -> Decimal | None:
        """Lowest ask price."""
        return self.asks[0].price if self.asks else None

    def total_bids_amount(self) -> tuple[Decimal, Decimal]:
        """Total bid amount and its value in quote currency."""
        amount = sum((item.amount for item in self.bids), Decimal("0"))
        value = sum((item.amount * item.price for item in self.bids), Decimal("0"))
        return amount, value

    def total_asks_amount(self) -> tuple[Decimal, Decimal]:
        """Total ask amount and its value in quote currency."""
        amount = sum((item.amount for item in self.asks), Decimal("0"))
        value = sum((item.amount * item.price for item in self.asks), Decimal("0"))
        return amount, value

    def verify(self) -> None:
        """
        Check level ordering and values.

        Bids must be strictly descending and asks strictly ascending (equal
        prices are allowed only with price_duplication), every level needs a
        positive price and amount, funding levels need a period and the book
        must not be crossed.

        Raises:
            ValidationError: On the first violation found

        """
        if self.verification_bypass or self.has_checksum_validation:
            logger.debug(
                f"{self.exchange} {self.pair} order book verification bypassed"
            )
            return
        if not self.bids or not self.asks:
            logger.warning(
                f"{self.exchange} {self.pair} {self.asset} order book has no bids or asks"
            )
        self._check_side(self.bids, descending=True, side="bids")
        self._check_side(self.asks, descending=False, side="asks")
        if (
            not self.is_funding_rate
            and self.bids
            and self.asks
            and self.bids[0].price >= self.asks[0].price
        ):
            raise ValidationError(
                f"{self.exchange} {self.pair} order book is crossed: "
                f"bid {self.bids[0].price} >= ask {self.asks[0].price}"
            )

    def _check_side(self, items: list[Item], descending: bool, side: str) -> None:
        prefix = f"{self.exchange} {self.pair} {side}"
        for i, item in enumerate(items):
            if item.price == 0:
                raise ValidationError(f"{prefix} price not set")
            if item.amount <= 0:
                raise ValidationError(f"{prefix} amount invalid: {item.amount}")
            if self.is_funding_rate and item.period == 0:
                raise ValidationError(f"{prefix} funding rate period is unset")
            if i == 0:
                continue
            previous = items[i - 1]
            out_of_order = (
                item.price > previous.price if descending else item.price < previous.price
            )
            if out_of_order:
                raise ValidationError(f"{prefix} out of order at price {item.price}")
            if not self.price_duplication and item.price == previous.price:
                raise ValidationError(f"{prefix} duplicate price {item.price}")
            if item.id != 0 and item.id == previous.id:
                raise ValidationError(f"{prefix} duplicate id {item.id}")

    def process(self) -> None:
        """
        Verify and store the snapshot.

        Raises:
            ValidationError: If identity fields are missing or levels are invalid

        """
        if not self.exchange:
            raise ValidationError("order book exchange name unset")
        if self.pair.is_empty():
            raise ValidationError(f"{self.exchange} order book currency pair not populated")
        if self.asset is None:
            raise ValidationError(f"{self.exchange} order book asset type not set")
        if self.last_updated is None:
            self.last_updated = datetime.now(UTC)
        self.verify()
        _books[(self.exchange.lower(), self.pair, self.asset)] = self


_books: dict[tuple[str, Pair, Asset], Book] = {}


def get_orderbook(exchange: str, pair: Pair, asset: Asset) -> Book:
    """
    Fetch a stored order book.

    Raises:
        NotFoundError: If no book was stored for that key

    """
    try:
        return _books[(exchange.lower(), pair, asset)]
    except KeyError:
        raise NotFoundError(
            f"no orderbooks for {exchange} exchange, pair {pair}, asset {asset.value}"
        ) from None


class MutableOrderBook:
    """
    Mutable level-2 state for streamed order books.

    Keeps bids and asks keyed by price so deltas are constant time, and
    renders sorted Book snapshots on demand.
    """

    def __init__(self, symbol: str) -> None:
        """Initialize an empty book for a venue symbol."""
        self.symbol = symbol
        self.bids: dict[Decimal, Decimal] = {}
        self.asks: dict[Decimal, Decimal] = {}
        self.sequence: int | None = None
        self.last_update = datetime.now(UTC)

    def apply_snapshot(
        self,
        bids: list[Item],
        asks: list[Item],
        sequence: int | None = None,
    ) -> None:
        """Replace the entire book; zero-amount levels are ignored."""
        self.bids = {item.price: item.amount for item in bids if item.amount > 0}
        self.asks = {item.price: item.amount for item in asks if item.amount > 0}
        self.sequence = sequence
        self.last_update = datetime.now(UTC)

    def apply_update(self, side: str, price: Decimal, amount: Decimal) -> None:
        """Set one level; a zero amount removes it."""
        book = self.bids if side == "bid" else self.asks
        if amount == 0:
            book.pop(price, None)
        else:
            book[price] = amount
        self.last_update = datetime.now(UTC)

    def to_book(self, exchange: str, pair: Pair, asset: Asset) -> Book:
        """Render a sorted snapshot."""
        bids = sorted(self.bids.items(), key=lambda x: x[0], reverse=True)
        asks = sorted(self.asks.items(), key=lambda x: x[0])
        return Book(
            bids=[Item(price=p, amount=a) for p, a in bids],
            asks=[Item(price=p, amount=a) for p, a in asks],
            pair=pair,
            asset=asset,
            exchange=exchange,
            last_updated=self.last_update,
            last_update_id=self.sequence or 0,
        )
