"""
Generic websocket subscription bookkeeping.

Adapters plug their own connect, subscribe and unsubscribe coroutines into
a Websocket. The Websocket records which channels are live so they can be
listed, diffed against a freshly generated set, or flushed after the
enabled pairs change.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, Field

from irix.currency import Pair
from irix.enums import Asset
from irix.errors import WebsocketError

logger = logging.getLogger(__name__)


class ChannelSubscription(BaseModel):
    """One websocket channel, optionally scoped to a pair and asset."""

    channel: str
    pair: Pair = Field(default_factory=Pair)
    asset: Asset = Asset.SPOT
    params: dict[str, Any] = Field(default_factory=dict)

    def same_as(self, other: ChannelSubscription) -> bool:
        """Whether both target the same channel, pair and asset."""
        return (
            self.channel.lower() == other.channel.lower()
            and self.pair == other.pair
            and self.asset == other.asset
        )


Subscriber = Callable[[list[ChannelSubscription]], Awaitable[None]]
Connector = Callable[[], Awaitable[None]]
Generator = Callable[[], list[ChannelSubscription]]


class Websocket:
    """
    Subscription state for one exchange's streaming connection.

    Args:
        name: Exchange name for logs and errors
        enabled: Whether streaming is switched on
        connector: Coroutine that dials and starts reading
        subscriber: Coroutine that subscribes to channels
        unsubscriber: Coroutine that unsubscribes from channels
        generate_subscriptions: Builds the default channel set
        disconnector: Coroutine that closes the connection

    """

    def __init__(
        self,
        name: str,
        *,
        enabled: bool = False,
        connector: Connector | None = None,
        subscriber: Subscriber | None = None,
        unsubscriber: Subscriber | None = None,
        generate_subscriptions: Generator | None = None,
        disconnector: Connector | None = None,
    ) -> None:
        self.name = name
        self.enabled = enabled
        self.connected = False
        self.can_use_authenticated_endpoints = False
        self.connector = connector
        self.subscriber = subscriber
        self.unsubscriber = unsubscriber
        self.generate_subscriptions = generate_subscriptions
        self.disconnector = disconnector
        self.unsupported_assets: set[Asset] = set()
        self._subscriptions: list[ChannelSubscription] = []

    def is_enabled(self) -> bool:
        """Whether streaming is switched on."""
        return self.enabled

    def is_connected(self) -> bool:
        """Whether the connection is up."""
        return self.connected

    async def connect(self) -> None:
        """
        Dial and subscribe to the default channels.

        Raises:
            WebsocketError: If disabled or no connector is configured

        """
        if not self.enabled:
            raise WebsocketError(f"{self.name} websocket disabled")
        if self.connector is None:
            raise WebsocketError(f"{self.name} websocket connector not set")
        await self.connector()
        self.connected = True
        logger.info(f"{self.name} websocket connected")
        if self.generate_subscriptions is not None:
            await self.subscribe_to_channels(self.generate_subscriptions())

    async def shutdown(self) -> None:
        """Close the connection and forget subscriptions."""
        if self.disconnector is not None:
            await self.disconnector()
        self.connected = False
        self._subscriptions.clear()
        logger.info(f"{self.name} websocket shut down")

    async def subscribe_to_channels(self, channels: list[ChannelSubscription]) -> None:
        """
        Subscribe and record channels not already live.

        Raises:
            WebsocketError: If no subscriber is configured

        """
        if self.subscriber is None:
            raise WebsocketError(f"{self.name} websocket subscriber not set")
        fresh = [c for c in channels if not self._is_subscribed(c)]
        if not fresh:
            return
        await self.subscriber(fresh)
        self._subscriptions.extend(fresh)

    async def unsubscribe_channels(self, channels: list[ChannelSubscription]) -> None:
        """
        Unsubscribe from live channels.

        Raises:
            WebsocketError: If no unsubscriber is configured or a channel is
                not subscribed

        """
        if self.unsubscriber is None:
            raise WebsocketError(f"{self.name} websocket unsubscriber not set")
        for channel in channels:
            if not self._is_subscribed(channel):
                raise WebsocketError(
                    f"{self.name} websocket: subscription {channel.channel} {channel.pair} not found"
                )
        await self.unsubscriber(channels)
        self._subscriptions = [
            s for s in self._subscriptions if not any(s.same_as(c) for c in channels)
        ]

    def get_subscriptions(self) -> list[ChannelSubscription]:
        """Copy of the live subscriptions."""
        return list(self._subscriptions)

    def channel_difference(
        self, generated: list[ChannelSubscription]
    ) -> tuple[list[ChannelSubscription], list[ChannelSubscription]]:
        """Split into (to subscribe, to unsubscribe) against the live set."""
        subscribe = [c for c in generated if not self._is_subscribed(c)]
        unsubscribe = [
            s for s in self._subscriptions if not any(s.same_as(c) for c in generated)
        ]
        return subscribe, unsubscribe

    async def flush_channels(self) -> None:
        """
        Bring live subscriptions in line with a freshly generated set.

        Raises:
            WebsocketError: If not connected
        """
        if not self.connected:
            raise WebsocketError(f"{self.name} websocket: cannot flush channels, not connected")
        if self.generate_subscriptions is None:
            return
        subscribe, unsubscribe = self.channel_difference(self.generate_subscriptions())
        if unsubscribe:
            await self.unsubscribe_channels(unsubscribe)
        if subscribe:
            await self.subscribe_to_channels(subscribe)

    def _is_subscribed(self, channel: ChannelSubscription) -> bool:
        return any(s.same_as(channel) for s in self._subscriptions)
