"""
Request envelopes and builders for Crypto.com.

One Request type covers REST and websocket traffic; its RequestType picks
the JSON keys sent. Builders validate their inputs and return unsigned
requests; private REST requests and the websocket auth request are signed
with sign_request.
"""

from __future__ import annotations

import enum
import json
import time
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from irix import crypto
from irix.adapters.cryptocom import data
from irix.adapters.cryptocom.params import (
    CreateOrderParams,
    DepositHistoryParams,
    OpenOrderParams,
    Params,
    TradeParams,
    WithdrawHistoryParams,
    WithdrawParams,
    format_decimal,
    try_or_error,
    valid_channel,
    valid_currency,
    valid_instrument,
    valid_order_id,
)
from irix.errors import ValidationError


class RequestType(enum.IntEnum):
    AUTH = 1
    SUBSCRIBE = 2
    HEARTBEAT = 3
    ORDER = 4
    REST_ORDER = 5
    REST_BALANCE = 6
    REST_TRADES = 7
    REST_OPEN_ORDERS = 8


_SIGNED_REST = (
    RequestType.REST_ORDER,
    RequestType.REST_BALANCE,
    RequestType.REST_TRADES,
    RequestType.REST_OPEN_ORDERS,
)


def generate_nonce() -> str:
    return str(int(time.time() * 1000))


class Request(BaseModel):
    id: int = 0
    type: RequestType = RequestType.ORDER
    method: str
    api_key: str = ""
    signature: str = ""
    nonce: str = ""
    params: Params = Field(default_factory=dict)

    def encode(self) -> str:
        """JSON body for the request type, keys sorted."""
        match self.type:
            case RequestType.AUTH:
                payload: dict[str, Any] = {
                    "id": self.id,
                    "method": self.method,
                    "api_key": self.api_key,
                    "sig": self.signature,
                    "nonce": self.nonce,
                }
            case t if t in _SIGNED_REST:
                payload = {
                    "id": self.id,
                    "method": self.method,
                    "params": self.params,
                    "api_key": self.api_key,
                    "sig": self.signature,
                    "nonce": self.nonce,
                }
            case RequestType.SUBSCRIBE | RequestType.ORDER:
                payload = {
                    "id": self.id,
                    "method": self.method,
                    "params": self.params,
                    "nonce": self.nonce,
                }
            case RequestType.HEARTBEAT:
                payload = {"id": self.id, "method": self.method}
            case _:
                raise ValidationError("invalid type")
        return json.dumps(payload, sort_keys=True, separators=(",", ":"))


def params_to_string(params: Any) -> str:
    """
    Flatten params for signing: keys sorted, each key followed by its
    value; lists contribute their elements in order.
    """
    if isinstance(params, dict):
        return "".join(key + params_to_string(params[key]) for key in sorted(params))
    if isinstance(params, list):
        return "".join(params_to_string(item) for item in params)
    if params is None:
        return "null"
    return str(params)


def sign_request(request: Request, api_key: str, secret: bytes) -> Request:
    """Set the api key and hex HMAC-SHA256 signature in place."""
    request.api_key = api_key
    if not request.nonce:
        request.nonce = generate_nonce()
    message = (
        request.method
        + str(request.id)
        + request.api_key
        + params_to_string(request.params)
        + request.nonce
    )
    request.signature = crypto.hex_encode(crypto.get_hmac(crypto.SHA256, message, secret))
    return request


def _new(method: str, params: Params | None = None, req_id: int = 0, **kwargs: Any) -> Request:
    nonce = generate_nonce()
    return Request(
        id=req_id or int(nonce),
        method=method,
        nonce=nonce,
        params=params or {},
        **kwargs,
    )


# =============================================================================
# WEBSOCKET
# =============================================================================


def auth_request(api_key: str, secret: bytes) -> Request:
    return sign_request(_new(data.PUBLIC_AUTH, type=RequestType.AUTH), api_key, secret)


def subscribe_request(channels: list[str], unsubscribe: bool = False) -> Request:
    """
    Raises:
        ValidationError: If any channel has an unknown prefix
    """
    for channel in channels:
        valid_channel(channel)
    method = data.UNSUBSCRIBE if unsubscribe else data.SUBSCRIBE
    return _new(method, {"channels": list(channels)}, type=RequestType.SUBSCRIBE)


def heartbeat_request(req_id: int) -> Request:
    """
    Raises:
        ValidationError: On a non-positive id
    """
    if req_id <= 0:
        raise ValidationError("invalid id")
    return Request(id=req_id, method=data.PUBLIC_RESPOND_HEARTBEAT, type=RequestType.HEARTBEAT)


def set_cancel_on_disconnect_request(scope: str) -> Request:
    if scope not in (data.SCOPE_CONNECTION, data.SCOPE_ACCOUNT):
        raise ValidationError("invalid scope value")
    return _new(data.PRIVATE_SET_CANCEL_ON_DISCONNECT, {"scope": scope})


def get_cancel_on_disconnect_request() -> Request:
    return _new(data.PRIVATE_GET_CANCEL_ON_DISCONNECT)


# =============================================================================
# MARKET DATA
# =============================================================================


def instruments_request() -> Request:
    return Request(id=1, method=data.PUBLIC_GET_INSTRUMENTS, nonce=generate_nonce())


def orderbook_request(instrument: str, depth: int = 0, req_id: int = 1) -> Request:
    """
    A depth of 0 asks for the maximum.

    Raises:
        ValidationError: On a bad instrument or depth
    """
    valid_instrument(instrument)
    if depth < 0 or depth > data.MAX_BOOK_DEPTH:
        raise ValidationError("invalid depth value")
    return Request(
        id=req_id,
        method=data.PUBLIC_GET_BOOK,
        nonce=generate_nonce(),
        params={"instrument_name": instrument, "depth": str(depth or data.MAX_BOOK_DEPTH)},
    )


def candlestick_request(instrument: str, period: data.Interval | int, depth: int = 0) -> Request:
    """
    Raises:
        ValidationError: On a bad instrument, interval or depth
    """
    valid_instrument(instrument)
    if period not in data.Interval._value2member_map_:
        raise ValidationError("invalid interval")
    if depth < 0 or depth > data.MAX_CANDLE_DEPTH:
        raise ValidationError("invalid depth")
    params: Params = {
        "instrument_name": instrument,
        "interval": data.Interval(period).encode(),
    }
    if depth > 0:
        params["depth"] = depth
    return Request(method=data.PUBLIC_GET_CANDLESTICK, params=params)


def ticker_request(instrument: str = "") -> Request:
    """An empty instrument asks for every ticker."""
    params: Params = {}
    if instrument:
        valid_instrument(instrument)
        params["instrument_name"] = instrument
    return Request(method=data.PUBLIC_GET_TICKER, params=params)


def public_trades_request(instrument: str = "") -> Request:
    params: Params = {}
    if instrument:
        valid_instrument(instrument)
        params["instrument_name"] = instrument
    return Request(method=data.PUBLIC_GET_TRADES, params=params)


# =============================================================================
# ACCOUNT
# =============================================================================


def account_summary_request(currency: str = "") -> Request:
    params: Params = {}
    if currency:
        code = currency.upper()
        valid_currency(code)
        params["currency"] = code
    return _new(data.PRIVATE_GET_ACCOUNT_SUMMARY, params, type=RequestType.REST_BALANCE)


def deposit_address_request(currency: str) -> Request:
    valid_currency(currency)
    return _new(data.PRIVATE_GET_DEPOSIT_ADDRESS, {"currency": currency}, type=RequestType.REST_BALANCE)


def create_withdrawal_request(params: WithdrawParams, req_id: int = 0) -> Request:
    return _new(data.PRIVATE_CREATE_WITHDRAWAL, params.encode(), req_id, type=RequestType.REST_BALANCE)


def withdrawal_history_request(params: WithdrawHistoryParams | None = None, req_id: int = 0) -> Request:
    encoded = params.encode() if params is not None else {}
    return _new(data.PRIVATE_GET_WITHDRAWAL_HISTORY, encoded, req_id, type=RequestType.REST_BALANCE)


def deposit_history_request(params: DepositHistoryParams | None = None, req_id: int = 0) -> Request:
    encoded = params.encode() if params is not None else {}
    return _new(data.PRIVATE_GET_DEPOSIT_HISTORY, encoded, req_id, type=RequestType.REST_BALANCE)


# =============================================================================
# ORDERS
# =============================================================================


def create_order_request(params: CreateOrderParams, req_id: int = 0) -> Request:
    return _new(data.PRIVATE_CREATE_ORDER, params.encode(), req_id, type=RequestType.REST_ORDER)


def limit_order_request(
    req_id: int,
    base: str,
    quote: str,
    side: str,
    price: Decimal,
    volume: Decimal,
    client_oid: str,
) -> Request:
    return Request(
        id=req_id,
        method=data.PRIVATE_CREATE_ORDER,
        nonce=generate_nonce(),
        params={
            "instrument_name": f"{base.upper()}_{quote.upper()}",
            "side": side.upper(),
            "type": data.ORDER_LIMIT,
            "price": format_decimal(price),
            "quantity": format_decimal(volume),
            "client_oid": client_oid,
        },
    )


def market_order_request(
    req_id: int,
    base: str,
    quote: str,
    side: str,
    volume: Decimal,
    client_oid: str,
) -> Request:
    """Market buys spend a notional amount of the quote currency."""
    volume_key = "notional" if side.upper() == "BUY" else "quantity"
    return Request(
        id=req_id,
        method=data.PRIVATE_CREATE_ORDER,
        nonce=generate_nonce(),
        params={
            "instrument_name": f"{base.upper()}_{quote.upper()}",
            "side": side.upper(),
            "type": data.ORDER_MARKET,
            volume_key: format_decimal(volume),
            "client_oid": client_oid,
        },
    )


def cancel_order_request(order_id: str, market: str, req_id: int = 0) -> Request:
    """
    Raises:
        ValidationError: On a bad instrument or a missing order id
    """

    def order_id_check() -> None:
        if not order_id:
            raise ValidationError("order id required")

    try_or_error(lambda: valid_instrument(market), order_id_check)
    return _new(
        data.PRIVATE_CANCEL_ORDER,
        {"instrument_name": market, "order_id": order_id},
        req_id,
        type=RequestType.REST_ORDER,
    )


def cancel_all_orders_request(market: str, req_id: int = 0) -> Request:
    valid_instrument(market)
    return _new(
        data.PRIVATE_CANCEL_ALL_ORDERS,
        {"instrument_name": market},
        req_id,
        type=RequestType.REST_ORDER,
    )


def order_detail_request(order_id: str, req_id: int = 0) -> Request:
    valid_order_id(order_id)
    return _new(
        data.PRIVATE_GET_ORDER_DETAIL, {"order_id": order_id}, req_id, type=RequestType.REST_ORDER
    )


def open_orders_request(params: OpenOrderParams | None = None, req_id: int = 0) -> Request:
    """Page size defaults to the venue's 20 when unset."""
    encoded = params.encode() if params is not None else {}
    encoded.setdefault("page_size", data.DEFAULT_PAGE_SIZE)
    return _new(data.PRIVATE_GET_OPEN_ORDERS, encoded, req_id, type=RequestType.REST_OPEN_ORDERS)


def order_history_request(params: TradeParams | None = None, req_id: int = 0) -> Request:
    encoded = params.encode() if params is not None else {}
    return _new(data.PRIVATE_GET_ORDER_HISTORY, encoded, req_id, type=RequestType.REST_TRADES)


def trades_request(params: TradeParams | None = None, req_id: int = 0) -> Request:
    encoded = params.encode() if params is not None else {}
    return _new(data.PRIVATE_GET_TRADES, encoded, req_id, type=RequestType.REST_TRADES)
