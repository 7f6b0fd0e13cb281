"""BTC Markets adapter."""

from irix.adapters.btcmarkets.client import BTCMarketsAPI
from irix.adapters.btcmarkets.exchange import BTCMarkets

__all__ = ["BTCMarkets", "BTCMarketsAPI"]
