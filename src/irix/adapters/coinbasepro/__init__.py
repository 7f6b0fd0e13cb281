"""Coinbase Pro adapter."""

from irix.adapters.coinbasepro.client import CoinbaseProAPI
from irix.adapters.coinbasepro.exchange import CoinbasePro

__all__ = ["CoinbasePro", "CoinbaseProAPI"]
