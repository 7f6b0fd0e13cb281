"""
Order requests, order details and helpers shared by every adapter.

Requests (Submit, Modify, Cancel, GetOrdersRequest) validate themselves
before an adapter touches the network; adapters may pass extra checks,
callables that raise OrderValidationError, to `validate`.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from irix.currency import Pair
from irix.enums import Asset, OrderSide, OrderStatus, OrderType
from irix.errors import OrderValidationError, ValidationError

Check = Callable[[], None]


# =============================================================================
# PARSERS
# =============================================================================


def string_to_order_side(side: str) -> OrderSide:
    """Parse a venue side string; raises ValueError when unrecognised."""
    return OrderSide.from_exchange(side)


def string_to_order_type(order_type: str) -> OrderType:
    """Parse a venue order type string; raises ValueError when unrecognised."""
    return OrderType.from_exchange(order_type)


def string_to_order_status(status: str) -> OrderStatus:
    """Parse a venue status string; raises ValueError when unrecognised."""
    return OrderStatus.from_exchange(status)


class ClassificationError(ValidationError):
    """A venue order field could not be mapped onto the shared enums."""

    def __init__(self, exchange: str, order_id: str, err: Exception | str) -> None:
        self.exchange = exchange
        self.order_id = order_id
        self.err = err
        if order_id:
            message = f"{exchange} - OrderID: {order_id} classification error: {err}"
        else:
            message = f"{exchange} - classification error: {err}"
        super().__init__(message)


# =============================================================================
# REQUESTS
# =============================================================================


class Submit(BaseModel):
    """A new order."""

    exchange: str = ""
    pair: Pair = Field(default_factory=Pair)
    asset: Asset | None = None
    side: OrderSide = OrderSide.UNKNOWN
    type: OrderType = OrderType.UNKNOWN
    price: Decimal = Decimal("0")
    amount: Decimal = Decimal("0")
    trigger_price: Decimal = Decimal("0")
    leverage: Decimal = Decimal("0")
    immediate_or_cancel: bool = False
    fill_or_kill: bool = False
    post_only: bool = False
    reduce_only: bool = False
    hidden_order: bool = False
    client_id: str = ""
    client_order_id: str = ""
    account_id: str = ""

    def validate_order(self, *checks: Check) -> None:
        """
        Validate the submission.

        Raises:
            OrderValidationError: On the first failed requirement

        """
        if self.pair.is_empty():
            raise OrderValidationError("order pair is empty")
        if self.asset is None:
            raise OrderValidationError("order asset type is not set")
        if self.side not in (OrderSide.BUY, OrderSide.SELL, OrderSide.BID, OrderSide.ASK):
            raise OrderValidationError("order side is invalid")
        if self.type not in (OrderType.MARKET, OrderType.LIMIT):
            raise OrderValidationError("order type is invalid")
        if self.amount <= 0:
            raise OrderValidationError(
                f"submit validation error amount is invalid, suppled: {self.amount:.8f}"
            )
        if self.type is OrderType.LIMIT and self.price <= 0:
            raise OrderValidationError("order price must be set if limit order type")
        for check in checks:
            check()


class SubmitResponse(BaseModel):
    """Outcome of a submitted order."""

    is_order_placed: bool = False
    fully_matched: bool = False
    order_id: str = ""
    rate: Decimal = Decimal("0")
    fee: Decimal = Decimal("0")
    cost: Decimal = Decimal("0")
    trades: list[TradeHistory] = Field(default_factory=list)


class Modify(BaseModel):
    """Changes to an existing order."""

    exchange: str = ""
    id: str = ""
    client_order_id: str = ""
    pair: Pair = Field(default_factory=Pair)
    asset: Asset | None = None
    side: OrderSide = OrderSide.UNKNOWN
    type: OrderType = OrderType.UNKNOWN
    price: Decimal = Decimal("0")
    amount: Decimal = Decimal("0")
    trigger_price: Decimal = Decimal("0")
    post_only: bool = False

    def validate_order(self, *checks: Check) -> None:
        """
        Validate the modification.

        Raises:
            OrderValidationError: If pair, asset or both ids are missing, or a
                check fails

        """
        if self.pair.is_empty():
            raise OrderValidationError("order pair is empty")
        if self.asset is None:
            raise OrderValidationError("order asset type is not set")
        _run_all(checks)
        if not self.id and not self.client_order_id:
            raise OrderValidationError("order id not set")


class Cancel(BaseModel):
    """A cancellation request; also used as the filter for cancel-all."""

    exchange: str = ""
    id: str = ""
    client_order_id: str = ""
    account_id: str = ""
    client_id: str = ""
    wallet_address: str = ""
    pair: Pair = Field(default_factory=Pair)
    asset: Asset | None = None
    side: OrderSide = OrderSide.UNKNOWN
    type: OrderType = OrderType.UNKNOWN
    date: datetime | None = None

    def standard_cancel(self) -> Check:
        """Check that an order id is present."""

        def check() -> None:
            if not self.id:
                raise OrderValidationError("ID not set")

        return check

    def validate_order(self, *checks: Check) -> None:
        """
        Validate the cancellation; check failures are reported together.

        Raises:
            OrderValidationError: If pair or asset is missing or checks fail

        """
        if self.pair.is_empty():
            raise OrderValidationError("order pair is empty")
        if self.asset is None:
            raise OrderValidationError("order asset type is not set")
        _run_all(checks)


class GetOrdersRequest(BaseModel):
    """Filters for active orders and order history."""

    type: OrderType = OrderType.ANY
    side: OrderSide = OrderSide.ANY
    start: datetime | None = None
    end: datetime | None = None
    order_id: str = ""
    pairs: list[Pair] = Field(default_factory=list)
    asset: Asset | None = None

    def validate_request(self, *checks: Check) -> None:
        """
        Validate the request.

        Raises:
            OrderValidationError: If no asset is set or checks fail

        """
        if self.asset is None:
            raise OrderValidationError(f"assetType {self.asset} not supported")
        _run_all(checks)


def _run_all(checks: tuple[Check, ...]) -> None:
    errors: list[str] = []
    for check in checks:
        try:
            check()
        except OrderValidationError as e:
            errors.append(str(e))
    if errors:
        raise OrderValidationError(", ".join(errors))


# =============================================================================
# RESPONSES
# =============================================================================


class TradeHistory(BaseModel):
    """A fill belonging to an order."""

    price: Decimal = Decimal("0")
    amount: Decimal = Decimal("0")
    fee: Decimal = Decimal("0")
    exchange: str = ""
    tid: str = ""
    description: str = ""
    type: OrderType = OrderType.UNKNOWN
    side: OrderSide = OrderSide.UNKNOWN
    timestamp: datetime | None = None
    is_maker: bool = False


class Detail(BaseModel):
    """Full state of an order as reported by a venue."""

    exchange: str = ""
    id: str = ""
    client_order_id: str = ""
    account_id: str = ""
    pair: Pair = Field(default_factory=Pair)
    asset: Asset = Asset.SPOT
    side: OrderSide = OrderSide.UNKNOWN
    type: OrderType = OrderType.UNKNOWN
    status: OrderStatus = OrderStatus.UNKNOWN
    price: Decimal = Decimal("0")
    amount: Decimal = Decimal("0")
    executed_amount: Decimal = Decimal("0")
    remaining_amount: Decimal = Decimal("0")
    trigger_price: Decimal = Decimal("0")
    average_executed_price: Decimal = Decimal("0")
    fee: Decimal = Decimal("0")
    cost: Decimal = Decimal("0")
    post_only: bool = False
    date: datetime | None = None
    last_updated: datetime | None = None
    trades: list[TradeHistory] = Field(default_factory=list)

    def update_from_detail(self, other: Detail) -> bool:
        """
        Merge newer venue data into this detail.

        Only set (non-zero, non-empty) values overwrite. Returns whether
        anything changed.
        """
        updated = False
        for name in (
            "price",
            "amount",
            "executed_amount",
            "remaining_amount",
            "trigger_price",
            "average_executed_price",
            "fee",
            "cost",
        ):
            value = getattr(other, name)
            if value > 0 and value != getattr(self, name):
                setattr(self, name, value)
                updated = True
        for name in ("account_id", "client_order_id"):
            value = getattr(other, name)
            if value and value != getattr(self, name):
                setattr(self, name, value)
                updated = True
        if other.post_only != self.post_only:
            self.post_only = other.post_only
            updated = True
        if not other.pair.is_empty() and other.pair != self.pair:
            self.pair = other.pair
            updated = True
        if other.type is not OrderType.UNKNOWN and other.type != self.type:
            self.type = other.type
            updated = True
        if other.side is not OrderSide.UNKNOWN and other.side != self.side:
            self.side = other.side
            updated = True
        if other.status is not OrderStatus.UNKNOWN and other.status != self.status:
            self.status = other.status
            updated = True
        known = {trade.tid for trade in self.trades}
        for trade in other.trades:
            if trade.tid not in known:
                self.trades.append(trade)
                updated = True
        if updated:
            if other.last_updated is None or other.last_updated == self.last_updated:
                self.last_updated = datetime.now(UTC)
            else:
                self.last_updated = other.last_updated
        return updated

    def update_from_modify(self, modify: Modify) -> bool:
        """Apply an accepted modification. Returns whether anything changed."""
        updated = False
        if modify.price > 0 and modify.price != self.price:
            self.price = modify.price
            updated = True
        if modify.amount > 0 and modify.amount != self.amount:
            self.amount = modify.amount
            updated = True
        if modify.trigger_price > 0 and modify.trigger_price != self.trigger_price:
            self.trigger_price = modify.trigger_price
            updated = True
        if modify.type is not OrderType.UNKNOWN and modify.type != self.type:
            self.type = modify.type
            updated = True
        if updated:
            self.last_updated = datetime.now(UTC)
        return updated


class CancelBatchResponse(BaseModel):
    """Per-order results of a batch cancel, keyed by order id."""

    status: dict[str, str] = Field(default_factory=dict)


class CancelAllResponse(BaseModel):
    """Per-order results of cancel-all, keyed by order id."""

    status: dict[str, str] = Field(default_factory=dict)
    count: int = 0


# =============================================================================
# FILTERS AND SORTS
# =============================================================================


def filter_orders_by_side(orders: list[Detail], side: OrderSide | None) -> list[Detail]:
    """Keep orders on the given side; ANY keeps all."""
    if side is None or side is OrderSide.ANY:
        return orders
    return [order for order in orders if order.side is side]


def filter_orders_by_type(orders: list[Detail], order_type: OrderType | None) -> list[Detail]:
    """Keep orders of the given type; ANY keeps all."""
    if order_type is None or order_type is OrderType.ANY:
        return orders
    return [order for order in orders if order.type is order_type]


def filter_orders_by_time_range(
    orders: list[Detail], start: datetime | None, end: datetime | None
) -> list[Detail]:
    """
    Keep orders dated within [start, end].

    Unset or inverted bounds disable the filter; orders without a date are
    always kept.
    """
    if start is None or end is None or end < start:
        return orders
    return [
        order
        for order in orders
        if order.date is None or start <= order.date <= end
    ]


def filter_orders_by_currencies(orders: list[Detail], pairs: list[Pair]) -> list[Detail]:
    """Keep orders whose pair (or its reciprocal) is listed."""
    if not pairs or (len(pairs) == 1 and pairs[0].is_empty()):
        return orders
    return [
        order
        for order in orders
        if any(order.pair.equal_including_reciprocal(pair) for pair in pairs)
    ]


def sort_orders_by_price(orders: list[Detail], reverse: bool = False) -> list[Detail]:
    """Sort by price."""
    return sorted(orders, key=lambda order: order.price, reverse=reverse)


def sort_orders_by_type(orders: list[Detail], reverse: bool = False) -> list[Detail]:
    """Sort by order type name."""
    return sorted(orders, key=lambda order: order.type.value, reverse=reverse)


def sort_orders_by_currency(orders: list[Detail], reverse: bool = False) -> list[Detail]:
    """Sort by pair string."""
    return sorted(orders, key=lambda order: str(order.pair), reverse=reverse)


def sort_orders_by_date(orders: list[Detail], reverse: bool = False) -> list[Detail]:
    """Sort by date; undated orders sort first."""
    return sorted(
        orders,
        key=lambda order: order.date or datetime.min.replace(tzinfo=UTC),
        reverse=reverse,
    )


def sort_orders_by_side(orders: list[Detail], reverse: bool = False) -> list[Detail]:
    """Sort by side name."""
    return sorted(orders, key=lambda order: order.side.value, reverse=reverse)


# =============================================================================
# EXECUTION LIMITS
# =============================================================================


class MinMaxLevel(BaseModel):
    """Price and amount bounds for one pair."""

    pair: Pair
    asset: Asset = Asset.SPOT
    min_price: Decimal = Decimal("0")
    max_price: Decimal = Decimal("0")
    step_price: Decimal = Decimal("0")
    min_amount: Decimal = Decimal("0")
    max_amount: Decimal = Decimal("0")
    step_amount: Decimal = Decimal("0")
    min_notional: Decimal = Decimal("0")
    market_min_amount: Decimal = Decimal("0")
    market_max_amount: Decimal = Decimal("0")

    def conforms(self, price: Decimal, amount: Decimal, order_type: OrderType) -> None:
        """
        Check price and amount against the bounds; zero bounds are ignored.

        Raises:
            OrderValidationError: On the first bound that is broken

        """
        if order_type is OrderType.MARKET:
            if self.market_min_amount and amount < self.market_min_amount:
                raise OrderValidationError(
                    f"market order amount {amount} below minimum limit {self.market_min_amount}"
                )
            if self.market_max_amount and amount > self.market_max_amount:
                raise OrderValidationError(
                    f"market order amount {amount} exceeds maximum limit {self.market_max_amount}"
                )
        else:
            if self.min_price and price < self.min_price:
                raise OrderValidationError(
                    f"price {price} below minimum limit {self.min_price}"
                )
            if self.max_price and price > self.max_price:
                raise OrderValidationError(
                    f"price {price} exceeds maximum limit {self.max_price}"
                )
            if self.step_price and price % self.step_price != 0:
                raise OrderValidationError(
                    f"price {price} exceeds step limit {self.step_price}"
                )
            if self.min_notional and price * amount < self.min_notional:
                raise OrderValidationError(
                    f"notional {price * amount} below minimum {self.min_notional}"
                )
        if self.min_amount and amount < self.min_amount:
            raise OrderValidationError(
                f"amount {amount} below minimum limit {self.min_amount}"
            )
        if self.max_amount and amount > self.max_amount:
            raise OrderValidationError(
                f"amount {amount} exceeds maximum limit {self.max_amount}"
            )
        if self.step_amount and amount % self.step_amount != 0:
            raise OrderValidationError(
                f"amount {amount} exceeds step limit {self.step_amount}"
            )


class ExecutionLimits:
    """Loaded execution limits per asset and pair."""

    def __init__(self) -> None:
        self._levels: dict[Asset, dict[Pair, MinMaxLevel]] = {}

    def load(self, levels: list[MinMaxLevel]) -> None:
        """Replace limits for every asset mentioned in the levels."""
        fresh: dict[Asset, dict[Pair, MinMaxLevel]] = {}
        for level in levels:
            fresh.setdefault(level.asset, {})[level.pair] = level
        self._levels.update(fresh)

    def get_limits(self, asset: Asset, pair: Pair) -> MinMaxLevel:
        """
        Fetch the limits for a pair.

        Raises:
            OrderValidationError: If no limits are loaded for it

        """
        try:
            return self._levels[asset][pair]
        except KeyError:
            raise OrderValidationError(
                f"exchange limits not found for {pair} {asset.value}"
            ) from None

    def check_limit(
        self,
        asset: Asset,
        pair: Pair,
        price: Decimal,
        amount: Decimal,
        order_type: OrderType,
    ) -> None:
        """
        Check an order against loaded limits.

        Nothing is checked when no limits are loaded for the asset.

        Raises:
            OrderValidationError: If the pair is unknown or a bound is broken

        """
        if asset not in self._levels:
            return
        self.get_limits(asset, pair).conforms(price, amount, order_type)


SubmitResponse.model_rebuild()
