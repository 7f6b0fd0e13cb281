"""ZB adapter."""

from irix.adapters.zb.client import ZBAPI
from irix.adapters.zb.exchange import ZB

__all__ = ["ZB", "ZBAPI"]
