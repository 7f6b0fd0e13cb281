"""Websocket subscription management."""

from irix.stream.websocket import ChannelSubscription, Websocket

__all__ = ["ChannelSubscription", "Websocket"]
