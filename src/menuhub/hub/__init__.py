"""
Local hub: station relay, device client, order store and cloud sync.
"""

from menuhub.hub.client import LocalHubClient
from menuhub.hub.protocol import HubError, HubNotConnectedError, HubSendError, MessageType, ProtocolError
from menuhub.hub.station import HubStation
from menuhub.hub.store import OrderStore
from menuhub.hub.sync_manager import CloudSyncManager, SyncError

__all__ = [
    "CloudSyncManager",
    "HubError",
    "HubNotConnectedError",
    "HubSendError",
    "HubStation",
    "LocalHubClient",
    "MessageType",
    "OrderStore",
    "ProtocolError",
    "SyncError",
]
