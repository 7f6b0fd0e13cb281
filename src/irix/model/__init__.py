"""Shared exchange data models."""

from irix.model import account, kline, order, orderbook, ticker, trade, withdraw

__all__ = ["account", "kline", "order", "orderbook", "ticker", "trade", "withdraw"]
