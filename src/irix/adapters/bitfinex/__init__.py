"""Bitfinex adapter."""

from irix.adapters.bitfinex.client import BitfinexAPI
from irix.adapters.bitfinex.exchange import Bitfinex

__all__ = ["Bitfinex", "BitfinexAPI"]
