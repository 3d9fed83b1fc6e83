"""
Tests for the in-memory realtime backend.
"""

import pytest
from unittest.mock import MagicMock

from menuhub.common.config import Config
from menuhub.realtime import create_realtime_client
from menuhub.realtime.channel import ChannelStatus, RealtimeError, SendResult
from menuhub.realtime.memory import InMemoryRealtimeClient


def message(event, **payload):
    return {"type": "broadcast", "event": event, "payload": payload}


class TestChannelStatus:
    """Tests for ChannelStatus enum."""

    def test_terminal_statuses(self):
        """Test only SUBSCRIBED is non-terminal."""
        assert not ChannelStatus.SUBSCRIBED.is_terminal
        assert ChannelStatus.CHANNEL_ERROR.is_terminal
        assert ChannelStatus.TIMED_OUT.is_terminal
        assert ChannelStatus.CLOSED.is_terminal


class TestInMemoryChannel:
    """Tests for InMemoryChannel."""

    def test_subscribe_reports_subscribed(self, broker):
        """Test subscribe() reports SUBSCRIBED synchronously."""
        statuses = []
        broker.client().channel("room").subscribe(statuses.append)
        assert statuses == [ChannelStatus.SUBSCRIBED]
        assert broker.subscriber_count("room") == 1

    def test_broadcast_reaches_other_clients(self, broker):
        """Test a broadcast is delivered to other subscribers of the same name."""
        received = MagicMock()
        receiver = broker.client().channel("room")
        receiver.on("broadcast", {"event": "hello"}, received)
        receiver.subscribe()
        sender = broker.client().channel("room")
        sender.subscribe()

        result = sender.send(message("hello", x=1))

        assert result is SendResult.OK
        received.assert_called_once_with(message("hello", x=1))

    def test_handlers_filter_by_event(self, broker):
        """Test handlers only see their bound event."""
        received = MagicMock()
        receiver = broker.client().channel("room")
        receiver.on("broadcast", {"event": "hello"}, received)
        receiver.subscribe()
        sender = broker.client().channel("room").subscribe()

        sender.send(message("other"))

        received.assert_not_called()

    def test_other_channel_names_isolated(self, broker):
        """Test broadcasts stay within one channel name."""
        received = MagicMock()
        receiver = broker.client().channel("room-a")
        receiver.on("broadcast", {"event": "hello"}, received)
        receiver.subscribe()
        sender = broker.client().channel("room-b").subscribe()

        sender.send(message("hello"))

        received.assert_not_called()

    def test_own_broadcast_suppressed_by_default(self, broker):
        """Test a client does not receive its own broadcasts with self=False."""
        client = broker.client()
        received = MagicMock()
        first = client.channel("room", {"broadcast": {"self": False}})
        first.on("broadcast", {"event": "hello"}, received)
        first.subscribe()

        first.send(message("hello"))

        received.assert_not_called()

    def test_own_broadcast_delivered_with_self_true(self, broker):
        """Test self=True echoes broadcasts back to the sender."""
        received = MagicMock()
        channel = broker.client().channel("room", {"broadcast": {"self": True}})
        channel.on("broadcast", {"event": "hello"}, received)
        channel.subscribe()

        channel.send(message("hello"))

        received.assert_called_once()

    def test_unsupported_binding_type(self, broker):
        """Test non-broadcast bindings are rejected."""
        with pytest.raises(RealtimeError):
            broker.client().channel("room").on("presence", {}, MagicMock())

    def test_send_non_broadcast_returns_error(self, broker):
        """Test sending a message without type=broadcast fails."""
        channel = broker.client().channel("room").subscribe()
        assert channel.send({"type": "presence", "event": "x"}) is SendResult.ERROR

    def test_subscribe_twice_raises(self, broker):
        """Test a channel handle can only be subscribed once."""
        channel = broker.client().channel("room").subscribe()
        with pytest.raises(RealtimeError):
            channel.subscribe()

    def test_remove_channel_reports_closed(self, broker):
        """Test removing a channel detaches it and reports CLOSED."""
        client = broker.client()
        statuses = []
        channel = client.channel("room").subscribe(statuses.append)

        client.remove_channel(channel)

        assert statuses == [ChannelStatus.SUBSCRIBED, ChannelStatus.CLOSED]
        assert broker.subscriber_count("room") == 0
        with pytest.raises(RealtimeError):
            channel.send(message("hello"))

    def test_subscribe_failure(self, broker):
        """Test the broker can force a terminal subscription status."""
        broker.subscribe_failure = ChannelStatus.CHANNEL_ERROR
        statuses = []
        broker.client().channel("room").subscribe(statuses.append)
        assert statuses == [ChannelStatus.CHANNEL_ERROR]
        assert broker.subscriber_count("room") == 0

    def test_handler_error_is_isolated(self, broker):
        """Test a failing handler does not block other handlers."""
        healthy = MagicMock()
        receiver = broker.client().channel("room")
        receiver.on("broadcast", {"event": "hello"}, MagicMock(side_effect=ValueError("bad")))
        receiver.on("broadcast", {"event": "hello"}, healthy)
        receiver.subscribe()

        broker.client().channel("room").subscribe().send(message("hello"))

        healthy.assert_called_once()

    def test_sent_log(self, broker):
        """Test the broker records every published message."""
        broker.client().channel("room").subscribe().send(message("hello", x=1))
        assert broker.sent == [{"channel": "room", **message("hello", x=1)}]


class TestCreateRealtimeClient:
    """Tests for create_realtime_client."""

    def test_memory_backend(self):
        """Test the memory backend yields clients on one shared broker."""
        config = Config()
        config.set("realtime.backend", "memory")
        first = create_realtime_client(config)
        second = create_realtime_client(config)
        assert isinstance(first, InMemoryRealtimeClient)
        assert first.broker is second.broker
        assert first.client_id != second.client_id

    def test_unknown_backend(self):
        """Test an unknown backend name is rejected."""
        config = Config()
        config.set("realtime.backend", "carrier-pigeon")
        with pytest.raises(RealtimeError):
            create_realtime_client(config)

    def test_zmq_backend(self, free_port):
        """Test the zmq backend connects to the configured relay ports."""
        from menuhub.realtime.zmq_relay import ZmqRealtimeClient

        config = Config()
        config.set("realtime.backend", "zmq")
        config.set("realtime.relay_host", "127.0.0.1")
        config.set("realtime.publish_port", free_port())
        config.set("realtime.subscribe_port", free_port())

        client = create_realtime_client(config)
        try:
            assert isinstance(client, ZmqRealtimeClient)
            assert client.host == "127.0.0.1"
            assert client.publish_port == config.get("realtime.publish_port")
            assert client.subscribe_port == config.get("realtime.subscribe_port")
        finally:
            client.close()
