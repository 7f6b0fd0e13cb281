"""HTTP dispatch: requester, rate limiting and nonces."""

from irix.request.limiter import AsyncTokenBucket, RateLimiter
from irix.request.nonce import Nonce
from irix.request.requester import Requester

__all__ = ["AsyncTokenBucket", "Nonce", "RateLimiter", "Requester"]
