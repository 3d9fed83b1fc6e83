"""
Connection status: cloud reachability and local hub / cloud / offline mode.
"""

from menuhub.status.connection_status import (
    STATUS_DISPLAY,
    ConnectionMode,
    ConnectionStatus,
    ConnectionStatusMonitor,
    StatusInfo,
    classify,
    format_badge,
    format_status,
)
from menuhub.status.network_monitor import NetworkMonitor

__all__ = [
    "STATUS_DISPLAY",
    "ConnectionMode",
    "ConnectionStatus",
    "ConnectionStatusMonitor",
    "NetworkMonitor",
    "StatusInfo",
    "classify",
    "format_badge",
    "format_status",
]
