"""Test helpers for exchange adapter tests."""

import json
from decimal import Decimal
from typing import Any
from urllib.parse import parse_qs

import httpx

from irix.currency import Pair, Pairs
from irix.enums import Asset
from irix.exchange import Base

Route = Any  # JSON payload or Callable[[httpx.Request], Any]


def _default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    raise TypeError(f"cannot encode {type(value)}")


class MockVenue:
    """
    Canned HTTP venue for adapter tests.

    Routes map a URL path (optionally prefixed by "METHOD ") to a JSON
    payload or to a callable taking the request. Every request is recorded
    so tests can assert on signing headers and parameters.

    Example:
        venue = MockVenue({"/v1/symbols": ["btcusd"]})
        exchange.requester.set_transport(venue.transport())
    """

    def __init__(self, routes: dict[str, Route] | None = None) -> None:
        self.routes: dict[str, Route] = dict(routes or {})
        self.requests: list[httpx.Request] = []

    def route(self, path: str, payload: Route) -> "MockVenue":
        """Add or replace a route."""
        self.routes[path] = payload
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        payload = self.routes.get(f"{request.method} {path}", self.routes.get(path))
        if payload is None:
            return httpx.Response(404, text=f"no route for {request.method} {path}")
        if callable(payload):
            payload = payload(request)
        if isinstance(payload, httpx.Response):
            return payload
        return httpx.Response(
            200,
            content=json.dumps(payload, default=_default),
            headers={"Content-Type": "application/json"},
        )

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def last(self) -> httpx.Request:
        """Most recent request."""
        return self.requests[-1]

    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]

    def find(self, path: str) -> list[httpx.Request]:
        """Requests sent to a path."""
        return [request for request in self.requests if request.url.path == path]


def query(request: httpx.Request) -> dict[str, str]:
    """Query string parameters, one value per key."""
    return {key: value[0] for key, value in parse_qs(request.url.query.decode()).items()}


def form(request: httpx.Request) -> dict[str, str]:
    """Form encoded body parameters, one value per key."""
    parsed = parse_qs(request.content.decode(), keep_blank_values=True)
    return {key: value[0] for key, value in parsed.items()}


def body(request: httpx.Request) -> Any:
    """JSON body."""
    return json.loads(request.content)


def build_exchange(
    exchange_cls: type[Base],
    venue: MockVenue,
    *,
    pairs: list[str] | None = None,
    key: str = "key",
    secret: str = "secret",
    client_id: str = "",
    asset: Asset = Asset.SPOT,
) -> Base:
    """
    Create an adapter wired to a mock venue.

    Credentials are set directly and the auth check is skipped so signed
    endpoints can be exercised without a config file. Rate limiting is
    switched off.
    """
    exchange = exchange_cls()
    exchange.set_defaults()
    exchange.set_api_keys(key, secret, client_id)
    exchange.api.authenticated_support = True
    exchange.skip_auth_check = True
    exchange.requester.set_transport(venue.transport())
    exchange.disable_rate_limiter()
    if pairs:
        listed = Pairs(Pair.from_string(value) for value in pairs)
        exchange.set_pairs(listed, asset, False)
        exchange.set_pairs(listed, asset, True)
    return exchange
