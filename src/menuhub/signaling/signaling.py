"""
WebRTC signaling over a broadcast channel.

Exchanges SDP offers/answers and ICE candidates between one hub and
any number of client devices. All traffic goes through one realtime
channel named hub-signaling-{restaurantId}-{hubId}; the adapter never
talks to a peer directly.

One instance holds one channel in one role. A process acting as both
hub and client needs two instances (see create_signaling()).
"""

import itertools
import threading
from typing import Any, Callable, Dict, Optional

from menuhub.common.config import Config
from menuhub.common.events import EventEmitter
from menuhub.common.logger import setup_logger
from menuhub.realtime import create_realtime_client
from menuhub.realtime.channel import BROADCAST, BroadcastChannel, ChannelStatus, RealtimeClient, SendResult
from menuhub.signaling.messages import (
    CLIENT_INBOUND,
    HUB_INBOUND,
    SignalingEvent,
    SignalingNotConnectedError,
    SignalingRoleError,
    SignalingSubscribeError,
    channel_name,
    event_name,
    now_ms,
)

logger = setup_logger(__name__)

CHANNEL_CONFIG = {"broadcast": {"self": False}}


class HubSignaling:
    """
    Signaling channel adapter.

    Usage (hub):
        signaling = create_signaling(realtime_client)
        signaling.join_as_hub("h1", "r1")
        signaling.on(SignalingEvent.CLIENT_OFFER, handle_offer)
        signaling.send_answer(answer, device_id)

    Usage (client):
        signaling.join_as_client("h1", "r1", device_id)
        signaling.on(SignalingEvent.HUB_ANSWER, handle_answer)
        signaling.send_offer(offer, device_id, device_info)
    """

    def __init__(self, realtime_client: RealtimeClient, ready_timeout: Optional[float] = None):
        """
        Args:
            realtime_client: Source of broadcast channels
            ready_timeout: Seconds to wait for the subscription to become
                active before failing. None waits indefinitely.
        """
        self._client = realtime_client
        self.ready_timeout = ready_timeout

        self.channel: Optional[BroadcastChannel] = None
        self.channel_name: Optional[str] = None
        self.hub_id: Optional[str] = None
        self.device_id: Optional[str] = None
        self.is_hub = False
        self.is_ready = False

        self._events = EventEmitter("signaling")
        self._settled = threading.Event()
        self._failure: Optional[ChannelStatus] = None
        # Seeded from the clock so a restarted sender keeps increasing
        self._seq = itertools.count(now_ms())
        self._seq_lock = threading.Lock()

    # -- joining ---------------------------------------------------------

    def join_as_hub(self, hub_id: str, restaurant_id: str) -> BroadcastChannel:
        """
        Join a signaling channel as the hub (host).

        Relays client-offer and client-ice-candidate to local listeners.
        Blocks until the subscription is active.

        Raises:
            SignalingSubscribeError: If the subscription fails or times out
        """
        self._close_channel()

        self.hub_id = hub_id
        self.device_id = None
        self.is_hub = True

        name = channel_name(restaurant_id, hub_id)
        logger.info("[Signaling] Hub joining channel: %s", name)

        channel = self._open_channel(name)
        for event in HUB_INBOUND:
            channel.on(BROADCAST, {"event": event.value}, self._relay_to_hub(event))

        return self._subscribe(channel)

    def join_as_client(self, hub_id: str, restaurant_id: str, device_id: str) -> BroadcastChannel:
        """
        Join a signaling channel as a client device.

        Relays hub-answer and hub-ice-candidate only when they are
        addressed to device_id.

        Raises:
            SignalingSubscribeError: If the subscription fails or times out
        """
        self._close_channel()

        self.hub_id = hub_id
        self.device_id = device_id
        self.is_hub = False

        name = channel_name(restaurant_id, hub_id)
        logger.info("[Signaling] Client joining channel: %s as device: %s", name, device_id)

        channel = self._open_channel(name)
        for event in CLIENT_INBOUND:
            channel.on(BROADCAST, {"event": event.value}, self._relay_to_client(event))

        return self._subscribe(channel)

    def _open_channel(self, name: str) -> BroadcastChannel:
        self.is_ready = False
        self._failure = None
        self._settled.clear()
        self.channel_name = name
        self.channel = self._client.channel(name, CHANNEL_CONFIG)
        return self.channel

    def _subscribe(self, channel: BroadcastChannel) -> BroadcastChannel:
        channel.subscribe(lambda status: self._on_status(channel, status))
        self._wait_ready()
        return channel

    def _relay_to_hub(self, event: SignalingEvent) -> Callable[[Dict[str, Any]], None]:
        def handler(message: Dict[str, Any]) -> None:
            payload = message.get("payload") or {}
            logger.debug("[Signaling] Received %s from: %s", event.value, payload.get("deviceId"))
            self.emit(event, payload)
        return handler

    def _relay_to_client(self, event: SignalingEvent) -> Callable[[Dict[str, Any]], None]:
        def handler(message: Dict[str, Any]) -> None:
            payload = message.get("payload") or {}
            if payload.get("targetDeviceId") != self.device_id:
                return
            logger.debug("[Signaling] Received %s for this device", event.value)
            self.emit(event, payload)
        return handler

    def _on_status(self, channel: BroadcastChannel, status: ChannelStatus) -> None:
        if channel is not self.channel:
            # Late status from a channel we already replaced
            return

        logger.info("[Signaling] %s channel status: %s", "Hub" if self.is_hub else "Client", status.value)

        if status is ChannelStatus.SUBSCRIBED:
            self.is_ready = True
            self._settled.set()
            self.emit(SignalingEvent.READY)
            return

        self.is_ready = False
        self._failure = status
        self._settled.set()
        self.emit(SignalingEvent.ERROR, {"status": status.value, "channel": channel.name})

    def _wait_ready(self) -> None:
        if self.is_ready:
            return
        name = self.channel_name or ""

        if not self._settled.wait(timeout=self.ready_timeout):
            logger.error("[Signaling] Timed out waiting for channel %s", name)
            self._failure = ChannelStatus.TIMED_OUT
            self.emit(SignalingEvent.ERROR, {"status": ChannelStatus.TIMED_OUT.value, "channel": name})
            raise SignalingSubscribeError(name, ChannelStatus.TIMED_OUT.value)

        if not self.is_ready:
            status = self._failure.value if self._failure else "UNKNOWN"
            raise SignalingSubscribeError(name, status)

    # -- sending ---------------------------------------------------------

    def _next_seq(self) -> int:
        with self._seq_lock:
            return next(self._seq)

    def _broadcast(self, event: SignalingEvent, payload: Dict[str, Any]) -> SendResult:
        if self.channel is None:
            raise SignalingNotConnectedError()
        if not self.is_ready:
            logger.debug("[Signaling] Waiting for channel to be ready before sending %s", event.value)
            self._wait_ready()

        payload["timestamp"] = now_ms()
        payload["seq"] = self._next_seq()
        result = self.channel.send({"type": BROADCAST, "event": event.value, "payload": payload})
        logger.debug("[Signaling] %s send result: %s", event.value, result.value)
        return result

    def send_offer(self, offer: Any, device_id: str, device_info: Optional[Dict[str, Any]] = None) -> SendResult:
        """
        Send an SDP offer from a client to the hub.

        The payload is {offer, deviceId, deviceInfo, timestamp, seq}. Every
        outgoing payload gets timestamp (epoch ms) and seq, a per-sender
        counter that only increases, for StaleMessageFilter. Receivers
        comparing exact payloads must allow the seq key.

        Raises:
            SignalingNotConnectedError: If no channel is joined
        """
        if self.channel is None:
            raise SignalingNotConnectedError()
        logger.info("[Signaling] Sending offer from device: %s", device_id)
        return self._broadcast(SignalingEvent.CLIENT_OFFER, {
            "offer": offer,
            "deviceId": device_id,
            "deviceInfo": device_info,
        })

    def send_answer(self, answer: Any, target_device_id: str) -> SendResult:
        """
        Send an SDP answer from the hub to one client.

        Raises:
            SignalingNotConnectedError: If no channel is joined
            SignalingRoleError: If joined as a client
        """
        if self.channel is None:
            raise SignalingNotConnectedError()
        if not self.is_hub:
            raise SignalingRoleError("Only the hub can send answers")
        logger.info("[Signaling] Sending answer to device: %s", target_device_id)
        return self._broadcast(SignalingEvent.HUB_ANSWER, {
            "answer": answer,
            "targetDeviceId": target_device_id,
            "hubId": self.hub_id,
        })

    def send_ice_candidate(self, candidate: Any, target_device_id: Optional[str] = None) -> SendResult:
        """
        Send an ICE candidate. The event name follows the joined role.

        Raises:
            SignalingNotConnectedError: If no channel is joined
        """
        if self.channel is None:
            raise SignalingNotConnectedError()
        event = SignalingEvent.HUB_ICE_CANDIDATE if self.is_hub else SignalingEvent.CLIENT_ICE_CANDIDATE
        return self._broadcast(event, {
            "candidate": candidate,
            "targetDeviceId": target_device_id,
            "deviceId": self.device_id,
            "hubId": self.hub_id,
        })

    # -- teardown --------------------------------------------------------

    def _close_channel(self) -> None:
        channel = self.channel
        self.channel = None
        self.channel_name = None
        self.is_ready = False
        self._settled.clear()
        if channel is None:
            return
        try:
            self._client.remove_channel(channel)
        except Exception as e:
            logger.warning("[Signaling] Error leaving channel: %s", e)

    def leave(self) -> None:
        """Leave the channel and drop all listeners. No-op when not joined."""
        self._close_channel()
        self.hub_id = None
        self.device_id = None
        self.is_hub = False
        self._events.clear()

    # -- events ----------------------------------------------------------

    def on(self, event: Any, callback: Callable[[Any], None]) -> Callable[[], None]:
        """
        Register a local listener.

        Returns:
            Function that removes the listener
        """
        return self._events.on(event_name(event), callback)

    def emit(self, event: Any, data: Optional[Any] = None) -> None:
        """Dispatch to local listeners. Listener errors are logged, not raised."""
        self._events.emit(event_name(event), data)

    def __repr__(self) -> str:
        role = "hub" if self.is_hub else "client"
        return f"HubSignaling(channel={self.channel_name}, role={role}, ready={self.is_ready})"


def create_signaling(realtime_client: RealtimeClient, ready_timeout: Optional[float] = None) -> HubSignaling:
    """Create a signaling adapter. Use one per role per session."""
    return HubSignaling(realtime_client, ready_timeout=ready_timeout)


def create_signaling_from_config(config: Config) -> HubSignaling:
    """
    Create a signaling adapter on the configured realtime backend.

    Args:
        config: Application config (realtime.* and signaling.* sections)

    Raises:
        RealtimeError: If realtime.backend names an unknown backend
    """
    return HubSignaling(create_realtime_client(config), ready_timeout=config.signaling_ready_timeout)
