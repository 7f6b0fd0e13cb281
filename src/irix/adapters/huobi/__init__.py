"""Huobi adapter."""

from irix.adapters.huobi.client import HuobiAPI
from irix.adapters.huobi.exchange import Huobi

__all__ = ["Huobi", "HuobiAPI"]
