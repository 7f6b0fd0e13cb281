"""BTSE adapter."""

from irix.adapters.btse.client import BTSEAPI
from irix.adapters.btse.exchange import BTSE

__all__ = ["BTSE", "BTSEAPI"]
