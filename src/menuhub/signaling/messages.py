"""
Signaling events, payload helpers and errors.

Payload keys are camelCase on the wire so browser clients and the hub
read the same broadcasts.
"""

import threading
import time
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class SignalingEvent(str, Enum):
    """Events carried on the channel and/or emitted to local listeners."""
    READY = "ready"
    ERROR = "error"
    CLIENT_OFFER = "client-offer"
    CLIENT_ICE_CANDIDATE = "client-ice-candidate"
    HUB_ANSWER = "hub-answer"
    HUB_ICE_CANDIDATE = "hub-ice-candidate"


# Events the hub listens for / the client listens for
HUB_INBOUND = (SignalingEvent.CLIENT_OFFER, SignalingEvent.CLIENT_ICE_CANDIDATE)
CLIENT_INBOUND = (SignalingEvent.HUB_ANSWER, SignalingEvent.HUB_ICE_CANDIDATE)


class SignalingError(Exception):
    """Base class for signaling failures."""
    pass


class SignalingNotConnectedError(SignalingError):
    """Raised when sending without a joined channel."""

    def __init__(self, message: str = "Not connected to signaling channel"):
        super().__init__(message)


class SignalingRoleError(SignalingError):
    """Raised when an operation does not match the joined role."""
    pass


class SignalingSubscribeError(SignalingError):
    """Raised when the channel subscription fails or never becomes ready."""

    def __init__(self, channel: str, status: str):
        super().__init__(f"Subscription to {channel} failed: {status}")
        self.channel = channel
        self.status = status


def channel_name(restaurant_id: str, hub_id: str) -> str:
    """Topic shared by one hub and its clients."""
    return f"hub-signaling-{restaurant_id}-{hub_id}"


def now_ms() -> int:
    """Wall-clock epoch milliseconds."""
    return int(time.time() * 1000)


def event_name(event: Any) -> str:
    """Normalize a SignalingEvent or plain string to the wire name."""
    if isinstance(event, SignalingEvent):
        return event.value
    return str(event)


class StaleMessageFilter:
    """
    Drops duplicate and out-of-order signaling payloads.

    Keyed by (event, sender) where sender is deviceId, else hubId.
    Ordering uses seq when present, else timestamp. Payloads carrying
    neither are always accepted.
    """

    def __init__(self):
        self._last: Dict[Tuple[str, str], Tuple[int, float]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _sender(payload: Dict[str, Any]) -> Optional[str]:
        return payload.get("deviceId") or payload.get("hubId")

    @staticmethod
    def _order_key(payload: Dict[str, Any]) -> Optional[Tuple[int, float]]:
        if isinstance(payload.get("seq"), int):
            return (1, payload["seq"])
        if isinstance(payload.get("timestamp"), (int, float)):
            return (0, payload["timestamp"])
        return None

    def accept(self, event: Any, payload: Optional[Dict[str, Any]]) -> bool:
        """
        Args:
            event: Event the payload arrived on
            payload: Signaling payload

        Returns:
            True if the payload is newer than anything seen from its sender
        """
        if not payload:
            return True
        sender = self._sender(payload)
        order = self._order_key(payload)
        if sender is None or order is None:
            return True

        key = (event_name(event), sender)
        with self._lock:
            last = self._last.get(key)
            if last is not None and last[0] == order[0] and order[1] <= last[1]:
                return False
            self._last[key] = order
            return True

    def forget(self, sender: str) -> None:
        """Reset tracking for one sender (e.g. after it reconnects)."""
        with self._lock:
            for key in [k for k in self._last if k[1] == sender]:
                del self._last[key]
