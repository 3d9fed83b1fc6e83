"""
Broadcast channel interface.

A realtime client hands out named channels. Parties subscribed to the
same channel name receive each other's broadcasts; nothing is stored.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from menuhub.common.logger import setup_logger

logger = setup_logger(__name__)

BROADCAST = "broadcast"


class ChannelStatus(Enum):
    """Subscription status reported to subscribe() callbacks."""
    SUBSCRIBED = "SUBSCRIBED"
    CHANNEL_ERROR = "CHANNEL_ERROR"
    TIMED_OUT = "TIMED_OUT"
    CLOSED = "CLOSED"

    @property
    def is_terminal(self) -> bool:
        return self is not ChannelStatus.SUBSCRIBED


class SendResult(Enum):
    OK = "ok"
    ERROR = "error"


class RealtimeError(Exception):
    """Raised on misuse of a realtime channel."""
    pass


MessageCallback = Callable[[Dict[str, Any]], None]
StatusCallback = Callable[[ChannelStatus], None]


class BroadcastChannel(ABC):
    """
    One named channel handle.

    Handlers registered with on() receive the full message dict
    {"type", "event", "payload"}.
    """

    def __init__(self, name: str, config: Optional[Dict[str, Any]] = None):
        self.name = name
        self.config = config or {}
        self._bindings: List[Tuple[str, str, MessageCallback]] = []
        self._status_callback: Optional[StatusCallback] = None
        self.status: Optional[ChannelStatus] = None

    @property
    def receive_own(self) -> bool:
        """Whether this channel should see its own broadcasts."""
        return bool(self.config.get("broadcast", {}).get("self", False))

    def on(self, type_: str, filter_: Dict[str, Any], callback: MessageCallback) -> "BroadcastChannel":
        """
        Bind a handler to one broadcast event.

        Args:
            type_: Binding type (only "broadcast" is supported)
            filter_: {"event": <event name>}
            callback: Called with the message dict

        Returns:
            self, so bindings can be chained
        """
        if type_ != BROADCAST:
            raise RealtimeError(f"Unsupported binding type: {type_}")
        self._bindings.append((type_, filter_.get("event", ""), callback))
        return self

    def dispatch(self, message: Dict[str, Any]) -> None:
        """Deliver an incoming message to matching handlers."""
        if message.get("type") != BROADCAST:
            return
        event = message.get("event")
        for _, bound_event, callback in list(self._bindings):
            if bound_event != event:
                continue
            try:
                callback(message)
            except Exception as e:
                logger.error("Channel %s handler error on %s: %s", self.name, event, e)

    def _set_status(self, status: ChannelStatus) -> None:
        self.status = status
        if self._status_callback:
            try:
                self._status_callback(status)
            except Exception as e:
                logger.error("Channel %s status callback error: %s", self.name, e)

    @abstractmethod
    def subscribe(self, status_callback: Optional[StatusCallback] = None) -> "BroadcastChannel":
        """Start receiving; status_callback reports SUBSCRIBED or a terminal status."""

    @abstractmethod
    def send(self, message: Dict[str, Any]) -> SendResult:
        """Broadcast {"type": "broadcast", "event", "payload"} to the channel."""

    @abstractmethod
    def unsubscribe(self) -> None:
        """Stop receiving. Reports CLOSED."""


class RealtimeClient(ABC):
    """Factory and owner of broadcast channels."""

    @abstractmethod
    def channel(self, name: str, config: Optional[Dict[str, Any]] = None) -> BroadcastChannel:
        """Create a channel handle (not yet subscribed)."""

    @abstractmethod
    def remove_channel(self, channel: BroadcastChannel) -> None:
        """Unsubscribe and forget a channel handle."""

    def close(self) -> None:
        """Release transport resources."""
