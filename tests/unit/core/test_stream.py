"""Tests for websocket subscription bookkeeping."""

from unittest.mock import AsyncMock

import pytest

from irix.currency import Pair
from irix.enums import Asset
from irix.errors import WebsocketError
from irix.stream import ChannelSubscription, Websocket

BTC_USD = Pair("BTC", "USD")
ETH_USD = Pair("ETH", "USD")


def _sub(channel: str, pair: Pair = BTC_USD, asset: Asset = Asset.SPOT) -> ChannelSubscription:
    return ChannelSubscription(channel=channel, pair=pair, asset=asset)


def _websocket(generated=None, **overrides) -> Websocket:
    options = {
        "enabled": True,
        "connector": AsyncMock(),
        "subscriber": AsyncMock(),
        "unsubscriber": AsyncMock(),
        "disconnector": AsyncMock(),
        "generate_subscriptions": (lambda: list(generated)) if generated is not None else None,
    }
    options.update(overrides)
    return Websocket("Stub", **options)


class TestChannelSubscription:
    """Test subscription identity."""

    def test_same_channel_ignores_case(self):
        """Test channel names compare case-insensitively."""
        assert _sub("Ticker").same_as(_sub("ticker"))

    def test_different_pair_is_not_same(self):
        """Test a different pair is a different subscription."""
        assert not _sub("ticker").same_as(_sub("ticker", ETH_USD))

    def test_different_asset_is_not_same(self):
        """Test a different asset is a different subscription."""
        assert not _sub("ticker").same_as(_sub("ticker", asset=Asset.FUTURES))


class TestWebsocketConnect:
    """Test connecting and shutting down."""

    async def test_connect_disabled_raises(self):
        """Test a disabled websocket refuses to connect."""
        ws = _websocket(enabled=False)

        with pytest.raises(WebsocketError, match="disabled"):
            await ws.connect()

        ws.connector.assert_not_awaited()

    async def test_connect_without_connector_raises(self):
        """Test connecting needs a connector."""
        ws = _websocket(connector=None)

        with pytest.raises(WebsocketError, match="connector not set"):
            await ws.connect()

    async def test_connect_subscribes_to_generated_channels(self):
        """Test connect dials then subscribes to the default channel set."""
        generated = [_sub("ticker"), _sub("trades")]
        ws = _websocket(generated)

        await ws.connect()

        ws.connector.assert_awaited_once()
        ws.subscriber.assert_awaited_once_with(generated)
        assert ws.is_connected()
        assert [s.channel for s in ws.get_subscriptions()] == ["ticker", "trades"]

    async def test_shutdown_clears_subscriptions(self):
        """Test shutdown disconnects and forgets every channel."""
        ws = _websocket([_sub("ticker")])
        await ws.connect()

        await ws.shutdown()

        ws.disconnector.assert_awaited_once()
        assert not ws.is_connected()
        assert ws.get_subscriptions() == []


class TestWebsocketSubscriptions:
    """Test subscribing and unsubscribing."""

    async def test_subscribe_skips_live_channels(self):
        """Test channels already live are not sent again."""
        ws = _websocket()
        await ws.subscribe_to_channels([_sub("ticker")])

        await ws.subscribe_to_channels([_sub("TICKER"), _sub("trades")])

        assert ws.subscriber.await_count == 2
        assert [s.channel for s in ws.subscriber.await_args.args[0]] == ["trades"]
        assert len(ws.get_subscriptions()) == 2

    async def test_subscribe_nothing_new_sends_nothing(self):
        """Test a fully duplicate request does not reach the venue."""
        ws = _websocket()
        await ws.subscribe_to_channels([_sub("ticker")])

        await ws.subscribe_to_channels([_sub("ticker")])

        ws.subscriber.assert_awaited_once()

    async def test_subscribe_without_subscriber_raises(self):
        """Test subscribing needs a subscriber."""
        ws = _websocket(subscriber=None)

        with pytest.raises(WebsocketError, match="subscriber not set"):
            await ws.subscribe_to_channels([_sub("ticker")])

    async def test_unsubscribe_removes_channel(self):
        """Test unsubscribing drops the channel from the live set."""
        ws = _websocket()
        await ws.subscribe_to_channels([_sub("ticker"), _sub("trades")])

        await ws.unsubscribe_channels([_sub("ticker")])

        ws.unsubscriber.assert_awaited_once()
        assert [s.channel for s in ws.get_subscriptions()] == ["trades"]

    async def test_unsubscribe_unknown_channel_raises(self):
        """Test unsubscribing from a channel that is not live fails."""
        ws = _websocket()
        await ws.subscribe_to_channels([_sub("ticker")])

        with pytest.raises(WebsocketError, match="not found"):
            await ws.unsubscribe_channels([_sub("orderbook")])

        ws.unsubscriber.assert_not_awaited()
        assert len(ws.get_subscriptions()) == 1

    async def test_get_subscriptions_returns_copy(self):
        """Test callers cannot mutate the live set."""
        ws = _websocket()
        await ws.subscribe_to_channels([_sub("ticker")])

        ws.get_subscriptions().clear()

        assert len(ws.get_subscriptions()) == 1


class TestWebsocketFlush:
    """Test resyncing channels against a generated set."""

    async def test_channel_difference(self):
        """Test the split into channels to add and channels to drop."""
        ws = _websocket()
        await ws.subscribe_to_channels([_sub("ticker"), _sub("trades")])

        subscribe, unsubscribe = ws.channel_difference([_sub("ticker"), _sub("ticker", ETH_USD)])

        assert [(s.channel, s.pair) for s in subscribe] == [("ticker", ETH_USD)]
        assert [s.channel for s in unsubscribe] == ["trades"]

    async def test_flush_not_connected_raises(self):
        """Test flushing needs a live connection."""
        ws = _websocket([_sub("ticker")])

        with pytest.raises(WebsocketError, match="cannot flush channels, not connected"):
            await ws.flush_channels()

    async def test_flush_resyncs_to_generated_set(self):
        """Test flush drops stale channels and adds new ones."""
        generated = [_sub("ticker")]
        ws = _websocket(generated)
        await ws.connect()

        generated[:] = [_sub("ticker", ETH_USD)]
        await ws.flush_channels()

        ws.unsubscriber.assert_awaited_once()
        assert [s.pair for s in ws.get_subscriptions()] == [ETH_USD]

    async def test_flush_unchanged_sends_nothing(self):
        """Test flushing an in-sync websocket is a no-op."""
        ws = _websocket([_sub("ticker")])
        await ws.connect()

        await ws.flush_channels()

        ws.subscriber.assert_awaited_once()
        ws.unsubscriber.assert_not_awaited()
