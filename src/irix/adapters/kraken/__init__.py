"""Kraken adapter."""

from irix.adapters.kraken.client import KrakenAPI
from irix.adapters.kraken.exchange import Kraken

__all__ = ["Kraken", "KrakenAPI"]
