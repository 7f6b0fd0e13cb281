"""LBank adapter."""

from irix.adapters.lbank.client import LbankAPI
from irix.adapters.lbank.exchange import Lbank

__all__ = ["Lbank", "LbankAPI"]
