"""Hashing and encoding helpers for request signing."""

import base64
import binascii
import hashlib
import hmac
from collections.abc import Callable
from typing import Any

from irix.errors import CredentialsError

HashFunc = Callable[..., Any]

SHA1: HashFunc = hashlib.sha1
SHA256: HashFunc = hashlib.sha256
SHA384: HashFunc = hashlib.sha384
SHA512: HashFunc = hashlib.sha512
MD5: HashFunc = hashlib.md5


def _to_bytes(value: str | bytes) -> bytes:
    return value.encode() if isinstance(value, str) else value


def get_hmac(digest: HashFunc, message: str | bytes, key: str | bytes) -> bytes:
    """
    Compute an HMAC over a message.

    Args:
        digest: hashlib constructor (SHA256, SHA384, ...)
        message: Payload to sign
        key: Secret key

    Returns:
        Raw HMAC digest bytes

    """
    return hmac.new(_to_bytes(key), _to_bytes(message), digest).digest()


def get_hash(digest: HashFunc, message: str | bytes) -> bytes:
    """Compute a plain hash digest."""
    return digest(_to_bytes(message)).digest()


def hex_encode(data: bytes) -> str:
    """Lower-case hex encoding."""
    return data.hex()


def base64_encode(data: str | bytes) -> str:
    """Standard base64 encoding returned as text."""
    return base64.b64encode(_to_bytes(data)).decode()


def base64_decode(data: str) -> bytes:
    """
    Strictly decode standard base64 text.

    Raises:
        CredentialsError: If the input is not valid base64

    """
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise CredentialsError(f"base64 decode failed: {e}") from e
