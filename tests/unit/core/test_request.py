"""Tests for the HTTP requester, rate limiter and nonce helpers."""

import asyncio
from decimal import Decimal

import httpx
import pytest

from irix import crypto
from irix.errors import ConfigError, CredentialsError, ExchangeAPIError, RequestError
from irix.request import AsyncTokenBucket, Nonce, RateLimiter, Requester


def _requester(handler, **kwargs) -> Requester:
    return Requester("Test", transport=httpx.MockTransport(handler), **kwargs)


class TestRequester:
    """Test request dispatch and response decoding."""

    async def test_decodes_floats_as_decimal(self):
        """Test JSON numbers keep full precision."""
        requester = _requester(lambda request: httpx.Response(200, text='{"price": 0.1}'))

        response = await requester.send_payload("GET", "https://venue.test/ticker")

        assert response == {"price": Decimal("0.1")}

    async def test_passes_params_headers_and_body(self):
        """Test query, headers and body reach the transport."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={})

        requester = _requester(handler, user_agent="irix-test")
        await requester.send_payload(
            "POST",
            "https://venue.test/order",
            params={"symbol": "btcusd"},
            headers={"X-Sign": "abc"},
            body='{"a":1}',
        )

        request = seen[0]
        assert request.url.params["symbol"] == "btcusd"
        assert request.headers["X-Sign"] == "abc"
        assert request.headers["User-Agent"] == "irix-test"
        assert request.content == b'{"a":1}'

    async def test_non_json_and_empty_bodies(self):
        """Test plain text is returned as is and an empty body as None."""
        text = _requester(lambda request: httpx.Response(200, text="pong"))
        empty = _requester(lambda request: httpx.Response(204))

        assert await text.send_payload("GET", "https://venue.test/ping") == "pong"
        assert await empty.send_payload("GET", "https://venue.test/ping") is None

    async def test_error_status_raises_api_error(self):
        """Test non-2xx responses carry the status code and body."""
        requester = _requester(lambda request: httpx.Response(429, text="slow down"))

        with pytest.raises(ExchangeAPIError) as excinfo:
            await requester.send_payload("GET", "https://venue.test/ticker")

        assert excinfo.value.status_code == 429
        assert "slow down" in str(excinfo.value)

    async def test_transient_errors_are_retried(self):
        """Test connection errors are retried before succeeding."""
        calls = {"count": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["count"] += 1
            if calls["count"] < 3:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json={"ok": True})

        requester = _requester(handler, retry_backoff=0)

        assert await requester.send_payload("GET", "https://venue.test/x") == {"ok": True}
        assert calls["count"] == 3

    async def test_transient_errors_exhaust_retries(self):
        """Test a persistent network failure raises a transient RequestError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timeout", request=request)

        requester = _requester(handler, max_retries=1, retry_backoff=0)

        with pytest.raises(RequestError) as excinfo:
            await requester.send_payload("GET", "https://venue.test/x")
        assert excinfo.value.transient is True

    def test_invalid_proxy(self):
        """Test a proxy without scheme and host is rejected."""
        requester = _requester(lambda request: httpx.Response(200))
        with pytest.raises(ConfigError):
            requester.set_proxy("/relative/path")

    async def test_set_transport_closes_replaced_client(self):
        """Test swapping the transport closes the client it replaces."""
        requester = _requester(lambda request: httpx.Response(200, text='{"from": "old"}'))
        await requester.send_payload("GET", "https://venue.test/ping")
        old = requester.client

        requester.set_transport(
            httpx.MockTransport(lambda request: httpx.Response(200, text='{"from": "new"}'))
        )
        await asyncio.sleep(0)

        assert old.is_closed
        assert await requester.send_payload("GET", "https://venue.test/ping") == {"from": "new"}
        await requester.close()
        assert requester._closing == set()

    def test_replaced_client_closed_later_without_loop(self):
        """Test a client replaced outside the event loop is closed by close()."""
        requester = _requester(lambda request: httpx.Response(200))
        old = requester.client

        requester.set_proxy("http://proxy.test:8080")

        assert not old.is_closed
        asyncio.run(requester.close())
        assert old.is_closed

    def test_settings_before_first_request_build_no_client(self):
        """Test configuration alone does not open a client."""
        requester = _requester(lambda request: httpx.Response(200))

        requester.set_timeout(5)
        requester.set_user_agent("irix-test")
        requester.set_proxy("http://proxy.test:8080")

        assert requester._client is None
        assert requester.client.headers["User-Agent"] == "irix-test"
        assert requester.client.timeout == httpx.Timeout(5)

    def test_rate_limiter_toggle(self):
        """Test enabling twice or disabling twice raises."""
        requester = _requester(lambda request: httpx.Response(200))
        with pytest.raises(ConfigError):
            requester.enable_rate_limiter()
        requester.disable_rate_limiter()
        with pytest.raises(ConfigError):
            requester.disable_rate_limiter()


class TestRateLimiter:
    """Test token buckets."""

    async def test_take_within_capacity_does_not_wait(self, monkeypatch):
        """Test requests within capacity return immediately."""
        slept: list[float] = []

        async def fake_sleep(seconds: float) -> None:
            slept.append(seconds)

        monkeypatch.setattr("irix.request.limiter.asyncio.sleep", fake_sleep)
        bucket = AsyncTokenBucket(1, 2)

        await bucket.take()
        await bucket.take()
        assert slept == []

        await bucket.take()
        assert len(slept) == 1
        assert slept[0] == pytest.approx(1.0, abs=0.05)

    async def test_unknown_key_uses_default(self, monkeypatch):
        """Test unknown bucket names fall back to the default bucket."""
        taken: list[str] = []

        class Recorder(AsyncTokenBucket):
            async def take(self, tokens: float = 1.0) -> None:
                taken.append("default")

        limiter = RateLimiter({RateLimiter.DEFAULT: Recorder(10)})
        await limiter.take("missing")
        assert taken == ["default"]

        limiter.enabled = False
        await limiter.take()
        assert taken == ["default"]


class TestNonce:
    """Test nonce generation."""

    def test_strictly_increasing(self):
        """Test consecutive nonces never repeat."""
        nonce = Nonce()
        values = [nonce.get() for _ in range(50)]
        assert values == sorted(set(values))

    def test_seeded_value(self):
        """Test a seeded nonce continues above the seed."""
        nonce = Nonce()
        nonce.set(10**15)
        assert nonce.get() == 10**15 + 1


class TestCrypto:
    """Test signing helpers."""

    def test_hmac_sha256(self):
        """Test a known HMAC-SHA256 vector."""
        digest = crypto.get_hmac(crypto.SHA256, "The quick brown fox jumps over the lazy dog", "key")
        assert crypto.hex_encode(digest) == (
            "f7bc83f430538424b13298e6aa6fb143ef4d59a14946175997479dbc2d1a3cd8"
        )

    def test_md5_hash(self):
        """Test a known MD5 vector."""
        assert crypto.hex_encode(crypto.get_hash(crypto.MD5, "")) == (
            "d41d8cd98f00b204e9800998ecf8427e"
        )

    def test_base64(self):
        """Test base64 encoding and strict decoding."""
        assert crypto.base64_encode("secret") == "c2VjcmV0"
        assert crypto.base64_decode("c2VjcmV0") == b"secret"
        with pytest.raises(CredentialsError):
            crypto.base64_decode("not base64!")
