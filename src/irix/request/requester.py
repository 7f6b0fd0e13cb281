"""
Rate limited async HTTP requester shared by every adapter.

Each exchange owns one Requester wrapping an httpx.AsyncClient. Requests
wait on the exchange's rate limiter, transient network failures are
retried with a linear backoff, and non-2xx responses surface as
ExchangeAPIError carrying the response body.
"""

from __future__ import annotations

import asyncio
import json
import logging
from decimal import Decimal
from typing import Any

import httpx

from irix.errors import ConfigError, ExchangeAPIError, RequestError
from irix.request.limiter import RateLimiter

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0

_TRANSIENT_ERRORS = (
    httpx.TimeoutException,
    httpx.ConnectError,
    httpx.RemoteProtocolError,
    httpx.ReadError,
)


class Requester:
    """
    HTTP client for one exchange.

    Args:
        name: Exchange name used in logs and errors
        limiter: Rate limiter; unlimited when omitted
        timeout: Request timeout in seconds
        user_agent: User-Agent header value
        max_retries: Retries for transient network errors
        retry_backoff: Seconds to wait per attempt before retrying
        transport: Optional httpx transport (tests use httpx.MockTransport)

    """

    def __init__(
        self,
        name: str,
        limiter: RateLimiter | None = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        user_agent: str = "",
        max_retries: int = 3,
        retry_backoff: float = 0.5,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.name = name
        self.limiter = limiter or RateLimiter()
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.verbose = False
        self.http_debugging = False
        self._timeout = timeout
        self._user_agent = user_agent
        self._proxy: str | None = None
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        # replaced clients that could not be closed without a running loop
        self._stale: list[httpx.AsyncClient] = []
        self._closing: set[asyncio.Task[None]] = set()

    @property
    def client(self) -> httpx.AsyncClient:
        """The httpx client, built on first use."""
        if self._client is None:
            self._client = self._build_client()
        return self._client

    def _build_client(self) -> httpx.AsyncClient:
        headers = {"User-Agent": self._user_agent} if self._user_agent else {}
        if self._transport is not None:
            return httpx.AsyncClient(
                timeout=self._timeout, headers=headers, transport=self._transport
            )
        return httpx.AsyncClient(timeout=self._timeout, headers=headers, proxy=self._proxy)

    # Configuration
    @property
    def timeout(self) -> float:
        """Request timeout in seconds."""
        return self._timeout

    def set_timeout(self, timeout: float) -> None:
        """Change the request timeout."""
        self._timeout = timeout
        if self._client is not None:
            self._client.timeout = httpx.Timeout(timeout)

    @property
    def user_agent(self) -> str:
        """User-Agent header sent with every request."""
        return self._user_agent

    def set_user_agent(self, user_agent: str) -> None:
        """Change the User-Agent header."""
        self._user_agent = user_agent
        if self._client is not None:
            self._client.headers["User-Agent"] = user_agent

    def set_proxy(self, address: str) -> None:
        """
        Route requests through a proxy.

        Raises:
            ConfigError: If the address is not an absolute URL

        """
        url = httpx.URL(address)
        if not url.scheme or not url.host:
            raise ConfigError(f"{self.name} setting proxy address error: invalid URL {address}")
        self._proxy = address
        self._retire_client()

    def set_transport(self, transport: httpx.AsyncBaseTransport) -> None:
        """Replace the transport, rebuilding the client."""
        self._transport = transport
        self._retire_client()

    def _retire_client(self) -> None:
        """Drop the current client so the next request builds a fresh one."""
        old, self._client = self._client, None
        if old is None or old.is_closed:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._stale.append(old)
            return
        task = loop.create_task(old.aclose())
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    def enable_rate_limiter(self) -> None:
        """
        Turn rate limiting back on.

        Raises:
            ConfigError: If already enabled

        """
        if self.limiter.enabled:
            raise ConfigError(f"{self.name} rate limiter already enabled")
        self.limiter.enabled = True

    def disable_rate_limiter(self) -> None:
        """
        Turn rate limiting off.

        Raises:
            ConfigError: If already disabled

        """
        if not self.limiter.enabled:
            raise ConfigError(f"{self.name} rate limiter already disabled")
        self.limiter.enabled = False

    # Dispatch
    async def send_payload(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        body: str | bytes | None = None,
        limit: str | None = None,
        auth: bool = False,
    ) -> Any:
        """
        Send a request and decode its JSON response.

        Args:
            method: HTTP method
            url: Absolute URL
            params: Query parameters
            headers: Extra headers (signatures, content type)
            body: Raw request body
            limit: Rate limit bucket name
            auth: Whether the request is authenticated, for logging only

        Returns:
            Decoded JSON, or the raw text when the body is not JSON

        Raises:
            RequestError: On network failure after retries
            ExchangeAPIError: On a non-2xx response

        """
        attempt = 0
        while True:
            await self.limiter.take(limit)
            if self.verbose:
                logger.debug(
                    f"{self.name} exchange request path: {method} {url} "
                    f"authenticated: {auth}"
                )
            if self.http_debugging:
                logger.debug(f"{self.name} request params: {params} body: {body!r}")
            try:
                response = await self.client.request(
                    method, url, params=params, headers=headers, content=body
                )
                break
            except _TRANSIENT_ERRORS as e:
                attempt += 1
                if attempt > self.max_retries:
                    raise RequestError(
                        f"{self.name} {method} {url} failed: {e}", transient=True
                    ) from e
                logger.warning(
                    f"{self.name} transient error on {method} {url}: {e}, "
                    f"retry {attempt}/{self.max_retries}"
                )
                await asyncio.sleep(self.retry_backoff * attempt)
            except httpx.HTTPError as e:
                raise RequestError(f"{self.name} {method} {url} failed: {e}") from e

        text = response.text
        if self.http_debugging:
            logger.debug(f"{self.name} raw response: {text}")
        if not response.is_success:
            raise ExchangeAPIError(
                self.name,
                f"unsuccessful HTTP status code: {response.status_code} raw response: {text}",
                status_code=response.status_code,
            )
        if self.verbose:
            logger.debug(f"{self.name} exchange raw response: {text}")
        if not text:
            return None
        try:
            return json.loads(text, parse_float=Decimal)
        except json.JSONDecodeError:
            return text

    async def close(self) -> None:
        """Close the current client and any it replaced."""
        stale, self._stale = self._stale, []
        for old in stale:
            await old.aclose()
        if self._closing:
            await asyncio.gather(*self._closing)
        if self._client is not None:
            await self._client.aclose()
            self._client = None
