"""
Tests for connection status classification and monitoring.
"""

import pytest
from unittest.mock import MagicMock

from menuhub.common.events import EventEmitter
from menuhub.status import (
    ConnectionMode,
    ConnectionStatus,
    ConnectionStatusMonitor,
    NetworkMonitor,
    classify,
    format_badge,
    format_status,
)


class FakeHubClient:
    """Stands in for LocalHubClient: status snapshot plus events."""

    def __init__(self, connected=False, url=None):
        self.is_connected = connected
        self.hub_url = url
        self._events = EventEmitter("fake-hub")

    def get_status(self):
        return {"isConnected": self.is_connected, "hubUrl": self.hub_url}

    def on(self, event, callback):
        return self._events.on(event, callback)

    def set_connected(self, connected, url="tcp://192.168.1.10:3001"):
        self.is_connected = connected
        self.hub_url = url if connected else None
        self._events.emit("connected" if connected else "disconnected")


@pytest.fixture
def hub_client():
    return FakeHubClient()


@pytest.fixture
def network():
    return NetworkMonitor(cloud_url="https://xyz.supabase.co")


@pytest.fixture
def monitor(hub_client, network):
    status_monitor = ConnectionStatusMonitor(hub_client, network)
    yield status_monitor
    status_monitor.stop()


class TestClassify:
    """Tests for classify()."""

    @pytest.mark.parametrize("hub_connected, is_online, expected", [
        (True, True, ConnectionMode.LOCAL_HUB),
        (True, False, ConnectionMode.LOCAL_HUB),
        (False, True, ConnectionMode.CLOUD_ONLY),
        (False, False, ConnectionMode.OFFLINE),
    ])
    def test_table(self, hub_connected, is_online, expected):
        """Test hub connection wins, then cloud, then offline."""
        assert classify(hub_connected, is_online) is expected

    def test_mode_values(self):
        """Test mode string values."""
        assert ConnectionMode.LOCAL_HUB.value == "local_hub"
        assert ConnectionMode.CLOUD_ONLY.value == "cloud_only"
        assert ConnectionMode.OFFLINE.value == "offline"


class TestFormatting:
    """Tests for display helpers."""

    def test_local_hub_with_url(self):
        """Test the local hub line includes the hub URL."""
        status = ConnectionStatus(is_online=False, hub_connected=True, hub_url="tcp://10.0.0.1:3001")
        assert format_status(status) == "🟢 Local Hub - Connected to Menu Hub Station (tcp://10.0.0.1:3001)"
        assert format_badge(status) == "🟢 Connected to Local Hub"

    def test_cloud_only(self):
        """Test the cloud-only line."""
        status = ConnectionStatus(is_online=True, hub_connected=False)
        assert format_status(status) == "🟡 Cloud Only - Connected to internet"
        assert format_badge(status) == "🟡 Cloud Only"

    def test_offline(self):
        """Test the offline line."""
        status = ConnectionStatus(is_online=False, hub_connected=False)
        assert format_status(status) == "🔴 Offline - Orders will sync when online"
        assert format_badge(status) == "🔴 Offline"

    def test_to_dict(self):
        """Test the serializable snapshot."""
        status = ConnectionStatus(is_online=True, hub_connected=True, hub_url="tcp://h:3001")
        assert status.to_dict() == {
            "isOnline": True,
            "hubConnected": True,
            "hubUrl": "tcp://h:3001",
            "mode": "local_hub",
        }


class TestConnectionStatusMonitor:
    """Tests for ConnectionStatusMonitor."""

    def test_initial_status(self, monitor):
        """Test start() computes the status from current inputs."""
        status = monitor.start()
        assert status.mode is ConnectionMode.CLOUD_ONLY
        assert monitor.mode is ConnectionMode.CLOUD_ONLY

    def test_hub_connect_and_disconnect(self, monitor, hub_client):
        """Test hub events reclassify immediately."""
        changes = []
        monitor.on("changed", changes.append)
        monitor.start()

        hub_client.set_connected(True)
        assert monitor.mode is ConnectionMode.LOCAL_HUB
        assert monitor.get_status().hub_url == "tcp://192.168.1.10:3001"

        hub_client.set_connected(False)
        assert monitor.mode is ConnectionMode.CLOUD_ONLY
        assert [c.mode for c in changes] == [ConnectionMode.LOCAL_HUB, ConnectionMode.CLOUD_ONLY]

    def test_network_offline(self, monitor, network):
        """Test losing the cloud without a hub means offline."""
        monitor.start()
        network.set_online(False)
        assert monitor.mode is ConnectionMode.OFFLINE
        network.set_online(True)
        assert monitor.mode is ConnectionMode.CLOUD_ONLY

    def test_hub_wins_while_offline(self, monitor, hub_client, network):
        """Test an offline network does not hide a connected hub."""
        monitor.start()
        hub_client.set_connected(True)
        network.set_online(False)
        assert monitor.mode is ConnectionMode.LOCAL_HUB

    def test_changed_only_on_mode_change(self, monitor, hub_client, network):
        """Test changed is not emitted when the mode stays the same."""
        changes = MagicMock()
        monitor.on("changed", changes)
        monitor.start()
        hub_client.set_connected(True)
        network.set_online(False)
        network.set_online(True)
        changes.assert_called_once()

    def test_stop_unsubscribes(self, monitor, hub_client):
        """Test stop() detaches from the inputs."""
        monitor.start()
        monitor.stop()
        hub_client.set_connected(True)
        assert monitor.mode is ConnectionMode.CLOUD_ONLY

    def test_mock_inputs(self):
        """Test the monitor only needs get_status/is_online/on from its inputs."""
        hub_client = MagicMock()
        hub_client.get_status.return_value = {"isConnected": False, "hubUrl": None}
        network = MagicMock()
        network.is_online = False

        status = ConnectionStatusMonitor(hub_client, network).start()

        assert status.mode is ConnectionMode.OFFLINE
        assert hub_client.on.call_count == 2
        assert network.on.call_count == 2
