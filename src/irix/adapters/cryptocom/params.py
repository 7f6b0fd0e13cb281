"""
Request parameter validation for Crypto.com.

Each params model validates itself before encoding into the flat mapping
sent as the request's params. Validation failures raise ValidationError
before anything goes over the wire.
"""

import re
from collections.abc import Callable
from decimal import Decimal
from typing import Any

from pydantic import BaseModel

from irix.adapters.cryptocom import data
from irix.enums import OrderSide
from irix.errors import ValidationError

Params = dict[str, Any]

_CURRENCY = re.compile(r"^[a-zA-Z0-9]+$")
_ORDER_ID = re.compile(r"^[a-zA-Z0-9]([a-zA-Z0-9-_]+)$")

MAX_TRADE_RANGE_MS = 24 * 60 * 60 * 1000

CHANNEL_PREFIXES = (
    "user.order.",
    "user.trade.",
    "user.balance",
    "user.margin.balance",
    "user.margin.order.",
    "user.margin.trade.",
    "book.",
    "ticker.",
    "trade.",
    "candlestick.",
)


def try_or_error(*checks: Callable[[], None]) -> None:
    """Run checks in order; the first to raise stops the rest."""
    for check in checks:
        check()


def valid_instrument(instrument: str) -> None:
    parts = instrument.split("_")
    if not instrument or len(parts) != 2 or not parts[0] or not parts[1]:
        raise ValidationError("invalid instrument name value")


def valid_pagination(page_size: int, page: int) -> None:
    if page_size < 0:
        raise ValidationError("page size should be at least 0")
    if page_size > data.MAX_PAGE_SIZE:
        raise ValidationError(f"max page size is {data.MAX_PAGE_SIZE}")
    if page < 0:
        raise ValidationError("page should be at least 0")


def valid_currency(code: str) -> None:
    if len(code) < 3 or not _CURRENCY.match(code):
        raise ValidationError("invalid code")


def valid_channel(channel: str) -> None:
    if not any(prefix in channel for prefix in CHANNEL_PREFIXES):
        raise ValidationError("invalid format")


def valid_order_id(order_id: str) -> None:
    if not order_id or not _ORDER_ID.match(order_id):
        raise ValidationError("invalid order id")


def valid_markets(*markets: str) -> None:
    if not markets:
        raise ValidationError("set at least one market to subscribe")
    for market in markets:
        valid_instrument(market)


def _valid_range(start_ts: int, end_ts: int) -> None:
    if start_ts < 0:
        raise ValidationError("start timestamp should be positive number")
    if end_ts < 0:
        raise ValidationError("end timestamp should be positive number")
    if start_ts > 0 and end_ts > 0 and start_ts > end_ts:
        raise ValidationError("start timestamp is ahead of end timestamp")


def format_decimal(value: Decimal) -> str:
    return format(value.normalize(), "f")


class TradeParams(BaseModel):
    """Filters for trade and order history; timestamps in milliseconds."""

    market: str = ""
    start_ts: int = 0
    end_ts: int = 0
    page_size: int = 0
    page: int = 0

    def validate_params(self) -> None:
        """
        Raises:
            ValidationError: On a bad instrument, range or page
        """

        def range_check() -> None:
            _valid_range(self.start_ts, self.end_ts)
            if self.start_ts > 0 and self.end_ts > 0:
                if self.end_ts - self.start_ts > MAX_TRADE_RANGE_MS:
                    raise ValidationError("max date range is 24 hours")

        try_or_error(
            lambda: valid_instrument(self.market) if self.market else None,
            range_check,
            lambda: valid_pagination(self.page_size, self.page),
        )

    def encode(self) -> Params:
        self.validate_params()
        params: Params = {}
        if self.end_ts > 0:
            params["end_ts"] = self.end_ts
        if self.market:
            params["instrument_name"] = self.market
        if self.start_ts > 0:
            params["start_ts"] = self.start_ts
        if self.page > 0:
            params["page"] = self.page
        if self.page_size > 0:
            params["page_size"] = self.page_size
        return params


class WithdrawParams(BaseModel):
    currency: str
    amount: Decimal
    address: str
    withdraw_id: str = ""
    address_tag: str = ""

    def validate_params(self) -> None:
        """
        Raises:
            ValidationError: On a bad currency, amount or address
        """

        def amount_check() -> None:
            if self.amount <= 0:
                raise ValidationError("invalid withdraw amount")

        def address_check() -> None:
            if not self.address:
                raise ValidationError("invalid withdraw address value")

        try_or_error(lambda: valid_currency(self.currency), amount_check, address_check)

    def encode(self) -> Params:
        self.validate_params()
        params: Params = {
            "currency": self.currency,
            "amount": format_decimal(self.amount),
            "address": self.address,
        }
        if self.withdraw_id:
            params["client_wid"] = self.withdraw_id
        if self.address_tag:
            params["address_tag"] = self.address_tag
        return params


class _HistoryParams(BaseModel):
    currency: str = ""
    start_ts: int = 0
    end_ts: int = 0
    page_size: int = 0
    page: int = 0

    def validate_params(self) -> None:
        """
        Raises:
            ValidationError: On a bad currency, page or range
        """
        try_or_error(
            lambda: valid_currency(self.currency) if self.currency else None,
            lambda: valid_pagination(self.page_size, self.page),
            lambda: _valid_range(self.start_ts, self.end_ts),
        )

    def _encode(self) -> Params:
        self.validate_params()
        params: Params = {}
        if self.currency:
            params["currency"] = self.currency
        if self.start_ts > 0:
            params["start_ts"] = self.start_ts
        if self.end_ts > 0:
            params["end_ts"] = self.end_ts
        if self.page_size > 0:
            params["page_size"] = self.page_size
        if self.page > 0:
            params["page"] = self.page
        return params


class WithdrawHistoryParams(_HistoryParams):
    status: data.WithdrawStatus | None = None

    def encode(self) -> Params:
        params = self._encode()
        if self.status is not None:
            params["status"] = str(self.status.value)
        return params


class DepositHistoryParams(_HistoryParams):
    status: data.DepositStatus | None = None

    def encode(self) -> Params:
        params = self._encode()
        if self.status is not None:
            params["status"] = str(self.status.value)
        return params


class OpenOrderParams(BaseModel):
    market: str = ""
    page_size: int = 0
    page: int = 0

    def validate_params(self) -> None:
        try_or_error(
            lambda: valid_instrument(self.market) if self.market else None,
            lambda: valid_pagination(self.page_size, self.page),
        )

    def encode(self) -> Params:
        self.validate_params()
        params: Params = {}
        if self.market:
            params["instrument_name"] = self.market
        if self.page > 0:
            params["page"] = self.page
        if self.page_size > 0:
            params["page_size"] = self.page_size
        return params


class CreateOrderParams(BaseModel):
    """
    Order placement parameters.

    Market and stop-loss / take-profit buys spend a notional amount of the
    quote currency; sells give a base quantity.
    """

    market: str
    side: OrderSide
    order_type: str
    price: Decimal = Decimal("0")
    quantity: Decimal = Decimal("0")
    notional: Decimal = Decimal("0")
    client_order_id: str = ""
    time_in_force: str = ""
    exec_inst: str = ""
    trigger_price: Decimal = Decimal("0")

    def validate_params(self) -> None:
        """
        Raises:
            ValidationError: On the first missing or disallowed field
        """
        try_or_error(
            lambda: valid_instrument(self.market),
            self._check_side,
            self._check_type,
            self._check_limit,
            self._check_market,
            self._check_trigger_limit,
            self._check_trigger_market,
        )

    def _check_side(self) -> None:
        if self.side not in (OrderSide.BUY, OrderSide.SELL):
            raise ValidationError("invalid order side")

    def _check_type(self) -> None:
        if self.order_type not in data.ORDER_TYPES:
            raise ValidationError("invalid order type")

    def _check_limit(self) -> None:
        if self.order_type != data.ORDER_LIMIT:
            return
        if self.quantity <= 0:
            raise ValidationError("quantity required")
        if self.price <= 0:
            raise ValidationError("price required")
        if self.exec_inst and self.exec_inst != data.POST_ONLY:
            raise ValidationError(
                f"exec_inst value not allowed. either leave it empty or set it to {data.POST_ONLY}"
            )
        allowed = (data.GOOD_TILL_CANCEL, data.FILL_OR_KILL, data.IMMEDIATE_OR_CANCEL)
        if self.time_in_force and self.time_in_force not in allowed:
            raise ValidationError(
                "time_in_force value not allowed. either leave it empty or set it to "
                f"{', '.join(allowed)}"
            )

    def _check_notional_or_quantity(self) -> None:
        if self.side is OrderSide.BUY and self.notional <= 0:
            raise ValidationError("notional required")
        if self.side is OrderSide.SELL and self.quantity <= 0:
            raise ValidationError("quantity required")

    def _check_market(self) -> None:
        if self.order_type == data.ORDER_MARKET:
            self._check_notional_or_quantity()

    def _check_trigger_limit(self) -> None:
        if self.order_type not in (data.ORDER_STOP_LIMIT, data.ORDER_TAKE_PROFIT_LIMIT):
            return
        if self.price <= 0:
            raise ValidationError("price required")
        if self.quantity <= 0:
            raise ValidationError("quantity required")
        if self.trigger_price <= 0:
            raise ValidationError("trigger_price required")

    def _check_trigger_market(self) -> None:
        if self.order_type not in (data.ORDER_STOP_LOSS, data.ORDER_TAKE_PROFIT):
            return
        self._check_notional_or_quantity()
        if self.trigger_price <= 0:
            raise ValidationError("trigger_price required")

    def encode(self) -> Params:
        self.validate_params()
        params: Params = {
            "instrument_name": self.market,
            "side": self.side.value,
            "type": self.order_type,
        }
        if self.price > 0:
            params["price"] = format_decimal(self.price)
        if self.quantity > 0:
            params["quantity"] = format_decimal(self.quantity)
        if self.notional > 0:
            params["notional"] = format_decimal(self.notional)
        if self.trigger_price > 0:
            params["trigger_price"] = format_decimal(self.trigger_price)
        if self.order_type == data.ORDER_LIMIT:
            if self.time_in_force:
                params["time_in_force"] = self.time_in_force
            if self.exec_inst:
                params["exec_inst"] = self.exec_inst
        if self.client_order_id:
            params["client_oid"] = self.client_order_id
        return params
