"""
Connection Status for staff devices.

Combines the local hub link and cloud reachability into one of three
modes:
- LOCAL_HUB: connected to the Hub Station (instant local sync)
- CLOUD_ONLY: no hub, but the cloud backend is reachable
- OFFLINE: neither; orders queue until connectivity returns

A hub connection wins regardless of cloud reachability. Every input
event reclassifies immediately.
"""

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from menuhub.common.events import EventEmitter
from menuhub.common.logger import setup_logger

logger = setup_logger(__name__)


class ConnectionMode(Enum):
    """Connection mode shown to staff."""
    LOCAL_HUB = "local_hub"
    CLOUD_ONLY = "cloud_only"
    OFFLINE = "offline"


def classify(hub_connected: bool, is_online: bool) -> ConnectionMode:
    """Map the two inputs to a mode. Hub connection takes priority."""
    if hub_connected:
        return ConnectionMode.LOCAL_HUB
    if is_online:
        return ConnectionMode.CLOUD_ONLY
    return ConnectionMode.OFFLINE


@dataclass(frozen=True)
class ConnectionStatus:
    """Snapshot of device connectivity."""
    is_online: bool
    hub_connected: bool
    hub_url: Optional[str] = None

    @property
    def mode(self) -> ConnectionMode:
        return classify(self.hub_connected, self.is_online)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isOnline": self.is_online,
            "hubConnected": self.hub_connected,
            "hubUrl": self.hub_url,
            "mode": self.mode.value,
        }


@dataclass(frozen=True)
class StatusInfo:
    """How a mode is presented."""
    icon: str
    label: str
    description: str
    color: str


STATUS_DISPLAY: Dict[ConnectionMode, StatusInfo] = {
    ConnectionMode.LOCAL_HUB: StatusInfo("🟢", "Local Hub", "Connected to Menu Hub Station", "green"),
    ConnectionMode.CLOUD_ONLY: StatusInfo("🟡", "Cloud Only", "Connected to internet", "yellow"),
    ConnectionMode.OFFLINE: StatusInfo("🔴", "Offline", "Orders will sync when online", "red"),
}


def format_status(status: ConnectionStatus) -> str:
    """Full one-line indicator, e.g. '🟢 Local Hub - Connected to Menu Hub Station'."""
    info = STATUS_DISPLAY[status.mode]
    line = f"{info.icon} {info.label} - {info.description}"
    if status.mode is ConnectionMode.LOCAL_HUB and status.hub_url:
        line += f" ({status.hub_url})"
    return line


def format_badge(status: ConnectionStatus) -> str:
    """Compact badge: icon plus short title."""
    info = STATUS_DISPLAY[status.mode]
    title = "Connected to Local Hub" if status.mode is ConnectionMode.LOCAL_HUB else info.label
    return f"{info.icon} {title}"


class ConnectionStatusMonitor:
    """
    Aggregates hub client and network monitor into a ConnectionStatus.

    Inputs:
    - hub_client: get_status() -> {"isConnected", "hubUrl"}; on("connected"/"disconnected")
    - network_monitor: is_online; on("online"/"offline")

    Emits "changed" with the new ConnectionStatus when the mode changes.
    """

    def __init__(self, hub_client: Any, network_monitor: Any):
        self._hub_client = hub_client
        self._network_monitor = network_monitor
        self._events = EventEmitter("connection-status")
        self._lock = threading.Lock()
        self._status = ConnectionStatus(is_online=True, hub_connected=False)
        self._unsubscribers: List[Callable[[], None]] = []

    def start(self) -> ConnectionStatus:
        """Subscribe to inputs and compute the initial status."""
        if not self._unsubscribers:
            self._unsubscribers = [
                self._hub_client.on("connected", self.update),
                self._hub_client.on("disconnected", self.update),
                self._network_monitor.on("online", self.update),
                self._network_monitor.on("offline", self.update),
            ]
        return self.update()

    def stop(self) -> None:
        """Unsubscribe from all inputs."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def update(self, _data: Any = None) -> ConnectionStatus:
        """Recompute the status from the current inputs."""
        hub_status = self._hub_client.get_status()
        status = ConnectionStatus(
            is_online=bool(self._network_monitor.is_online),
            hub_connected=bool(hub_status.get("isConnected")),
            hub_url=hub_status.get("hubUrl"),
        )

        with self._lock:
            previous = self._status
            self._status = status

        if status.mode is not previous.mode:
            logger.info("Connection mode: %s -> %s", previous.mode.name, status.mode.name)
            self._events.emit("changed", status)
        return status

    def get_status(self) -> ConnectionStatus:
        with self._lock:
            return self._status

    @property
    def mode(self) -> ConnectionMode:
        return self.get_status().mode

    def on(self, event: str, callback: Callable[[Any], None]) -> Callable[[], None]:
        return self._events.on(event, callback)
