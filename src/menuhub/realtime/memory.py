"""
In-process realtime backend.

All clients created from one InMemoryBroker share its channels.
Delivery is synchronous on the sender's thread.
"""

import itertools
import threading
from typing import Any, Dict, List, Optional

from menuhub.common.logger import setup_logger
from menuhub.realtime.channel import (
    BROADCAST,
    BroadcastChannel,
    ChannelStatus,
    RealtimeClient,
    RealtimeError,
    SendResult,
    StatusCallback,
)

logger = setup_logger(__name__)


class InMemoryChannel(BroadcastChannel):
    """Channel handle bound to an InMemoryBroker."""

    def __init__(self, client: "InMemoryRealtimeClient", name: str, config: Optional[Dict[str, Any]] = None):
        super().__init__(name, config)
        self._client = client
        self._subscribed = False
        self._removed = False

    def subscribe(self, status_callback: Optional[StatusCallback] = None) -> "InMemoryChannel":
        if self._subscribed:
            raise RealtimeError(f"Channel {self.name} already subscribed")
        if self._removed:
            raise RealtimeError(f"Channel {self.name} was removed")
        self._status_callback = status_callback
        self._subscribed = True

        failure = self._client.broker.subscribe_failure
        if failure is not None:
            self._set_status(failure)
            return self

        self._client.broker.attach(self)
        self._set_status(ChannelStatus.SUBSCRIBED)
        return self

    def send(self, message: Dict[str, Any]) -> SendResult:
        if self._removed:
            raise RealtimeError(f"Channel {self.name} was removed")
        if message.get("type") != BROADCAST:
            return SendResult.ERROR
        return self._client.broker.publish(self, message)

    def unsubscribe(self) -> None:
        if self._removed:
            return
        self._removed = True
        self._client.broker.detach(self)
        if self._subscribed:
            self._set_status(ChannelStatus.CLOSED)

    @property
    def sender_id(self) -> str:
        return self._client.client_id


class InMemoryBroker:
    """
    Shared fan-out point standing in for the hosted realtime service.

    Set subscribe_failure to a terminal ChannelStatus to make new
    subscriptions fail with that status.
    """

    def __init__(self):
        self._channels: Dict[str, List[InMemoryChannel]] = {}
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self.subscribe_failure: Optional[ChannelStatus] = None
        self.sent: List[Dict[str, Any]] = []

    def client(self) -> "InMemoryRealtimeClient":
        return InMemoryRealtimeClient(self, f"memory-{next(self._ids)}")

    def attach(self, channel: InMemoryChannel) -> None:
        with self._lock:
            self._channels.setdefault(channel.name, []).append(channel)

    def detach(self, channel: InMemoryChannel) -> None:
        with self._lock:
            members = self._channels.get(channel.name, [])
            if channel in members:
                members.remove(channel)
            if not members:
                self._channels.pop(channel.name, None)

    def subscriber_count(self, name: str) -> int:
        with self._lock:
            return len(self._channels.get(name, ()))

    def publish(self, source: InMemoryChannel, message: Dict[str, Any]) -> SendResult:
        with self._lock:
            targets = list(self._channels.get(source.name, ()))
            self.sent.append({"channel": source.name, **message})

        for channel in targets:
            if channel.sender_id == source.sender_id and not channel.receive_own:
                continue
            channel.dispatch(dict(message))
        return SendResult.OK


class InMemoryRealtimeClient(RealtimeClient):
    """Realtime client backed by an InMemoryBroker."""

    def __init__(self, broker: InMemoryBroker, client_id: str):
        self.broker = broker
        self.client_id = client_id

    def channel(self, name: str, config: Optional[Dict[str, Any]] = None) -> InMemoryChannel:
        return InMemoryChannel(self, name, config)

    def remove_channel(self, channel: BroadcastChannel) -> None:
        channel.unsubscribe()

    def __repr__(self) -> str:
        return f"InMemoryRealtimeClient(id={self.client_id})"
