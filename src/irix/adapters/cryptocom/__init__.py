"""Crypto.com adapter."""

from irix.adapters.cryptocom.client import CryptoComAPI
from irix.adapters.cryptocom.exchange import CryptoCom

__all__ = ["CryptoCom", "CryptoComAPI"]
