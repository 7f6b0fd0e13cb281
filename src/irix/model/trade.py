"""Executed trades and the trade data buffer."""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from irix.currency import Pair
from irix.enums import Asset, OrderSide

logger = logging.getLogger(__name__)


class Data(BaseModel):
    """A single public trade."""

    tid: str = ""
    exchange: str = ""
    pair: Pair = Field(default_factory=Pair)
    asset: Asset = Asset.SPOT
    side: OrderSide = OrderSide.UNKNOWN
    price: Decimal
    amount: Decimal
    timestamp: datetime


def filter_trades_by_time(
    trades: list[Data], start: datetime, end: datetime
) -> list[Data]:
    """Keep trades whose timestamp falls within [start, end]."""
    return [trade for trade in trades if start <= trade.timestamp <= end]


class TradeBuffer:
    """
    In-memory sink for trades an exchange is configured to save.

    Consumers drain it with `flush`.
    """

    def __init__(self) -> None:
        self._trades: list[Data] = []

    def add(self, exchange: str, *trades: Data) -> None:
        """Append trades, stamping the exchange name where missing."""
        for trade in trades:
            if not trade.exchange:
                trade.exchange = exchange
            self._trades.append(trade)
        logger.debug(f"{exchange} buffered {len(trades)} trades")

    def flush(self) -> list[Data]:
        """Return and clear everything buffered."""
        trades, self._trades = self._trades, []
        return trades

    def __len__(self) -> int:
        return len(self._trades)


buffer = TradeBuffer()
