"""
Broadcast relay over ZeroMQ.

BroadcastRelay is the fan-out process: publishers connect to its XSUB
port, subscribers to its XPUB port. ZmqRealtimeClient speaks to a relay
and exposes the channel interface on top of it.

Wire frame: "<channel-name> <json>" where json carries
{"type", "event", "payload", "sender"}.
"""

import json
import queue
import threading
import time
import uuid
from typing import Any, Dict, List, Optional

import zmq

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

# Time for a new subscription to reach the relay before reporting SUBSCRIBED
SUBSCRIBE_SETTLE_SECONDS = 0.1
POLL_INTERVAL_MS = 100


class RelayFrame:
    """One broadcast as it travels through the relay."""

    def __init__(self, channel: str, event: str, payload: Dict[str, Any], sender: str):
        self.channel = channel
        self.event = event
        self.payload = payload
        self.sender = sender

    def encode(self) -> str:
        """Serialize to a topic-prefixed frame."""
        body = json.dumps({
            "type": BROADCAST,
            "event": self.event,
            "payload": self.payload,
            "sender": self.sender,
        })
        return f"{self.channel} {body}"

    @classmethod
    def decode(cls, raw: str) -> "RelayFrame":
        """Parse a frame produced by encode()."""
        channel, _, body = raw.partition(' ')
        obj = json.loads(body)
        return cls(
            channel=channel,
            event=obj["event"],
            payload=obj.get("payload") or {},
            sender=obj.get("sender", ""),
        )

    def to_message(self) -> Dict[str, Any]:
        return {"type": BROADCAST, "event": self.event, "payload": self.payload}

    def __repr__(self) -> str:
        return f"RelayFrame(channel={self.channel}, event={self.event}, sender={self.sender})"


class BroadcastRelay:
    """XSUB/XPUB forwarder. Run one per site."""

    def __init__(self, publish_port: int = 5560, subscribe_port: int = 5561, bind_host: str = "*"):
        """
        Args:
            publish_port: Port publishers connect to (XSUB side)
            subscribe_port: Port subscribers connect to (XPUB side)
            bind_host: Interface to bind
        """
        self.publish_port = publish_port
        self.subscribe_port = subscribe_port
        self.bind_host = bind_host
        self._context: Optional[zmq.Context] = None
        self._thread: Optional[threading.Thread] = None
        self._running = False

    def start(self) -> None:
        """Start forwarding on a background thread."""
        if self._running:
            return

        self._context = zmq.Context()
        frontend = self._context.socket(zmq.XSUB)
        frontend.bind(f"tcp://{self.bind_host}:{self.publish_port}")
        backend = self._context.socket(zmq.XPUB)
        backend.bind(f"tcp://{self.bind_host}:{self.subscribe_port}")

        self._running = True
        self._thread = threading.Thread(
            target=self._run,
            args=(frontend, backend),
            name="broadcast-relay",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "Broadcast relay started (publish=%d, subscribe=%d)",
            self.publish_port, self.subscribe_port,
        )

    def _run(self, frontend: zmq.Socket, backend: zmq.Socket) -> None:
        try:
            zmq.proxy(frontend, backend)
        except zmq.ContextTerminated:
            pass
        except zmq.ZMQError as e:
            if self._running:
                logger.error("Broadcast relay stopped unexpectedly: %s", e)
        finally:
            frontend.close(linger=0)
            backend.close(linger=0)

    def stop(self) -> None:
        """Stop forwarding and release the ports."""
        if not self._running:
            return
        self._running = False
        if self._context:
            self._context.term()
            self._context = None
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None
        logger.info("Broadcast relay stopped")


class ZmqChannel(BroadcastChannel):
    """Channel handle bound to a ZmqRealtimeClient."""

    def __init__(self, client: "ZmqRealtimeClient", name: str, config: Optional[Dict[str, Any]] = None):
        if ' ' in name:
            raise RealtimeError(f"Channel name may not contain spaces: {name!r}")
        super().__init__(name, config)
        self._client = client
        self._subscribed = False
        self._removed = False

    def subscribe(self, status_callback: Optional[StatusCallback] = None) -> "ZmqChannel":
        if self._subscribed:
            raise RealtimeError(f"Channel {self.name} already subscribed")
        if self._removed:
            raise RealtimeError(f"Channel {self.name} was removed")
        self._status_callback = status_callback
        self._subscribed = True
        self._client.attach(self)
        return self

    def send(self, message: Dict[str, Any]) -> SendResult:
        if self._removed:
            raise RealtimeError(f"Channel {self.name} was removed")
        if message.get("type") != BROADCAST:
            return SendResult.ERROR
        frame = RelayFrame(self.name, message.get("event", ""), message.get("payload") or {}, self._client.client_id)
        return self._client.publish(frame)

    def unsubscribe(self) -> None:
        if self._removed:
            return
        self._removed = True
        if self._subscribed:
            self._client.detach(self)

    def report(self, status: ChannelStatus) -> None:
        self._set_status(status)


class ZmqRealtimeClient(RealtimeClient):
    """
    Realtime client for a BroadcastRelay.

    The SUB socket is owned by a receiver thread; subscription changes
    are queued to it. Sends go through a PUB socket guarded by a lock.
    """

    def __init__(self, host: str = "localhost", publish_port: int = 5560, subscribe_port: int = 5561):
        self.host = host
        self.publish_port = publish_port
        self.subscribe_port = subscribe_port
        self.client_id = f"rt-{uuid.uuid4().hex[:12]}"

        self._context = zmq.Context()
        self._pub = self._context.socket(zmq.PUB)
        self._pub.setsockopt(zmq.LINGER, 0)
        self._pub.connect(f"tcp://{host}:{publish_port}")
        self._pub_lock = threading.Lock()

        self._channels: Dict[str, List[ZmqChannel]] = {}
        self._channels_lock = threading.Lock()
        self._commands: "queue.Queue[tuple]" = queue.Queue()

        self._running = True
        self._thread = threading.Thread(target=self._receive_loop, name="realtime-receiver", daemon=True)
        self._thread.start()

        logger.info("Realtime client %s connected to relay %s:%d/%d", self.client_id, host, publish_port, subscribe_port)

    def channel(self, name: str, config: Optional[Dict[str, Any]] = None) -> ZmqChannel:
        return ZmqChannel(self, name, config)

    def remove_channel(self, channel: BroadcastChannel) -> None:
        channel.unsubscribe()

    def attach(self, channel: ZmqChannel) -> None:
        if not self._running:
            channel.report(ChannelStatus.CHANNEL_ERROR)
            return
        self._commands.put(("subscribe", channel))

    def detach(self, channel: ZmqChannel) -> None:
        if not self._running:
            channel.report(ChannelStatus.CLOSED)
            return
        self._commands.put(("unsubscribe", channel))

    def publish(self, frame: RelayFrame) -> SendResult:
        try:
            with self._pub_lock:
                self._pub.send_string(frame.encode())
            logger.debug("Published: %s", frame)
            return SendResult.OK
        except zmq.ZMQError as e:
            logger.error("Failed to publish on %s: %s", frame.channel, e)
            return SendResult.ERROR

    def _topic(self, name: str) -> str:
        return f"{name} "

    def _apply_commands(self, sub: zmq.Socket) -> None:
        while True:
            try:
                action, channel = self._commands.get_nowait()
            except queue.Empty:
                return

            if action == "subscribe":
                with self._channels_lock:
                    members = self._channels.setdefault(channel.name, [])
                    first = not members
                    members.append(channel)
                if first:
                    sub.setsockopt_string(zmq.SUBSCRIBE, self._topic(channel.name))
                time.sleep(SUBSCRIBE_SETTLE_SECONDS)
                channel.report(ChannelStatus.SUBSCRIBED)
            else:
                with self._channels_lock:
                    members = self._channels.get(channel.name, [])
                    if channel in members:
                        members.remove(channel)
                    last = not members
                    if last:
                        self._channels.pop(channel.name, None)
                if last:
                    sub.setsockopt_string(zmq.UNSUBSCRIBE, self._topic(channel.name))
                channel.report(ChannelStatus.CLOSED)

    def _deliver(self, raw: str) -> None:
        try:
            frame = RelayFrame.decode(raw)
        except (ValueError, KeyError) as e:
            logger.warning("Dropping malformed relay frame: %s", e)
            return

        with self._channels_lock:
            targets = list(self._channels.get(frame.channel, ()))

        for channel in targets:
            if frame.sender == self.client_id and not channel.receive_own:
                continue
            channel.dispatch(frame.to_message())

    def _receive_loop(self) -> None:
        sub = self._context.socket(zmq.SUB)
        sub.setsockopt(zmq.LINGER, 0)
        sub.connect(f"tcp://{self.host}:{self.subscribe_port}")

        try:
            while self._running:
                self._apply_commands(sub)
                if sub.poll(POLL_INTERVAL_MS):
                    self._deliver(sub.recv_string())
        except zmq.ZMQError as e:
            if self._running:
                logger.error("Realtime receiver error: %s", e)
        finally:
            sub.close(linger=0)
            with self._channels_lock:
                orphaned = [c for members in self._channels.values() for c in members]
                self._channels.clear()
            for channel in orphaned:
                channel.report(ChannelStatus.CLOSED)

    def close(self) -> None:
        """Stop the receiver and close sockets."""
        if not self._running:
            return
        self._running = False
        self._thread.join(timeout=5)
        with self._pub_lock:
            self._pub.close(linger=0)
        self._context.term()
        logger.info("Realtime client %s closed", self.client_id)
