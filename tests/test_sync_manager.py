"""
Tests for CloudSyncManager.
"""

import time

import pytest
import requests
from unittest import mock

from menuhub.hub.sync_manager import CloudSyncManager, SyncError

BASE_URL = "https://xyz.supabase.co"


def response(status_code=200, body=None):
    mock_response = mock.Mock()
    mock_response.status_code = status_code
    mock_response.json.return_value = body
    return mock_response


@pytest.fixture
def manager(store):
    return CloudSyncManager(store, BASE_URL, "anon-key", interval=1, timeout=3)


@pytest.fixture
def stored_order(store, sample_order, sample_items):
    client_id = sample_order["client_id"]
    store.insert_order(sample_order)
    store.insert_order_items([{**item, "order_client_id": client_id} for item in sample_items])
    return client_id


class TestConfiguration:
    """Tests for configuration properties."""

    def test_rest_url(self, store):
        """Test the REST root is derived from the base URL."""
        manager = CloudSyncManager(store, BASE_URL + "/", "key")
        assert manager.rest_url == f"{BASE_URL}/rest/v1"

    def test_not_configured_skips(self, store, stored_order):
        """Test sync is skipped without URL or key."""
        manager = CloudSyncManager(store)
        with mock.patch("requests.get") as mock_get:
            result = manager.sync_now()
        assert result == {"skipped": True, "synced": [], "failed": []}
        mock_get.assert_not_called()

    def test_headers(self, manager):
        """Test auth headers carry the API key."""
        headers = manager._headers(prefer="return=representation")
        assert headers["apikey"] == "anon-key"
        assert headers["Authorization"] == "Bearer anon-key"
        assert headers["Prefer"] == "return=representation"


class TestSyncOrder:
    """Tests for pushing a single order."""

    def test_inserts_order_and_items(self, manager, store, stored_order):
        """Test a new order is inserted with its items and marked synced."""
        with mock.patch("requests.get", return_value=response(200, [])) as mock_get, \
                mock.patch("requests.post", side_effect=[response(201, [{"id": 77}]), response(201)]) as mock_post:
            remote_id = manager.sync_order(store.get_order(stored_order))

        assert remote_id == 77
        assert mock_get.call_args.kwargs["params"] == {"client_id": f"eq.{stored_order}", "select": "id"}

        order_call, items_call = mock_post.call_args_list
        assert order_call.args[0] == f"{BASE_URL}/rest/v1/orders"
        assert order_call.kwargs["json"]["client_id"] == stored_order
        assert order_call.kwargs["json"]["paid"] is False
        assert order_call.kwargs["headers"]["Prefer"] == "return=representation"
        assert items_call.args[0] == f"{BASE_URL}/rest/v1/order_items"
        assert [i["order_id"] for i in items_call.kwargs["json"]] == [77, 77]
        assert items_call.kwargs["json"][0]["name"] == "Burger"

        order = store.get_order(stored_order)
        assert order["synced"] == 1
        assert order["supabase_id"] == "77"

    def test_existing_remote_order_not_duplicated(self, manager, store, stored_order):
        """Test an order already in the cloud is only marked synced."""
        with mock.patch("requests.get", return_value=response(200, [{"id": 5}])), \
                mock.patch("requests.post") as mock_post:
            assert manager.sync_order(store.get_order(stored_order)) == 5

        mock_post.assert_not_called()
        assert store.get_order(stored_order)["supabase_id"] == "5"

    def test_lookup_failure_raises(self, manager, store, stored_order):
        """Test a failed lookup raises SyncError."""
        with mock.patch("requests.get", return_value=response(500)):
            with pytest.raises(SyncError):
                manager.sync_order(store.get_order(stored_order))

    def test_resume_pushes_items_after_failed_item_insert(self, manager, store, stored_order):
        """Test a run that inserted the order but not its items is completed next time."""
        with mock.patch("requests.get", return_value=response(200, [])), \
                mock.patch("requests.post", side_effect=[response(201, [{"id": "remote-1"}]), response(500)]):
            result = manager.sync_now()
        assert result["failed"] == [stored_order]
        assert store.get_order(stored_order)["synced"] == 0

        def fake_get(url, params=None, **kwargs):
            if url.endswith("/orders"):
                return response(200, [{"id": "remote-1"}])
            return response(200, [])

        with mock.patch("requests.get", side_effect=fake_get), \
                mock.patch("requests.post", return_value=response(201)) as mock_post:
            result = manager.sync_now()

        assert result["synced"] == [stored_order]
        mock_post.assert_called_once()
        assert mock_post.call_args.args[0] == f"{BASE_URL}/rest/v1/order_items"
        assert [i["order_id"] for i in mock_post.call_args.kwargs["json"]] == ["remote-1", "remote-1"]
        order = store.get_order(stored_order)
        assert order["synced"] == 1
        assert order["supabase_id"] == "remote-1"

    def test_resume_item_failure_keeps_order_pending(self, manager, store, stored_order):
        """Test a failed item push on resume does not mark the order synced."""
        def fake_get(url, params=None, **kwargs):
            if url.endswith("/orders"):
                return response(200, [{"id": "remote-1"}])
            return response(200, [])

        with mock.patch("requests.get", side_effect=fake_get), \
                mock.patch("requests.post", return_value=response(500)):
            with pytest.raises(SyncError):
                manager.sync_order(store.get_order(stored_order))
        assert store.get_order(stored_order)["synced"] == 0

    def test_insert_failure_leaves_order_pending(self, manager, store, stored_order):
        """Test a rejected insert raises and does not mark synced."""
        with mock.patch("requests.get", return_value=response(200, [])), \
                mock.patch("requests.post", return_value=response(400)):
            with pytest.raises(SyncError):
                manager.sync_order(store.get_order(stored_order))
        assert store.get_order(stored_order)["synced"] == 0


class TestSyncNow:
    """Tests for batch sync."""

    def test_reports_synced_and_failed(self, manager, store, stored_order, sample_order):
        """Test one good and one failing order."""
        store.insert_order({**sample_order, "client_id": "bad", "created_at": "2030-01-01T00:00:00+00:00"})

        def fake_get(url, params=None, **kwargs):
            if params.get("client_id") == "eq.bad":
                raise requests.Timeout("slow")
            return response(200, [{"id": 1}])

        callback = mock.Mock()
        manager.on_synced = callback
        with mock.patch("requests.get", side_effect=fake_get):
            result = manager.sync_now()

        assert result == {"skipped": False, "synced": [stored_order], "failed": ["bad"]}
        assert store.get_order("bad")["sync_attempts"] == 1
        assert manager.last_sync is not None
        callback.assert_called_once_with(result)

    def test_callback_error_does_not_propagate(self, manager):
        """Test a failing on_synced callback is logged only."""
        manager.on_synced = mock.Mock(side_effect=RuntimeError("boom"))
        result = manager.sync_now()
        assert result["skipped"] is False

    def test_pending_count(self, manager, stored_order):
        """Test pending_count reflects unsynced orders."""
        assert manager.pending_count() == 1


class TestForceSync:
    """Tests for force_sync."""

    def test_offline(self, manager):
        """Test force_sync refuses while offline."""
        manager._is_online = lambda: False
        assert manager.force_sync() == {"success": False, "error": "Offline"}

    def test_online(self, manager, stored_order):
        """Test force_sync runs a sync when online."""
        with mock.patch("requests.get", return_value=response(200, [{"id": 9}])):
            result = manager.force_sync()
        assert result["success"] is True
        assert result["synced"] == [stored_order]


class TestBackgroundLoop:
    """Tests for start/stop."""

    def test_start_stop(self, manager):
        """Test the loop thread starts and stops."""
        manager.start(is_online=lambda: False)
        assert manager._running is True
        manager.stop()
        assert manager._running is False
        assert manager._thread is None

    def test_connectivity_restored_triggers_sync(self, manager):
        """Test coming online kicks off an immediate sync."""
        manager.start(is_online=lambda: True)
        with mock.patch.object(manager, "sync_now") as mock_sync:
            manager.on_connectivity_changed(True)
            for _ in range(100):
                if mock_sync.called:
                    break
                time.sleep(0.01)
        manager.stop()
        mock_sync.assert_called()

    def test_connectivity_ignored_when_stopped(self, manager):
        """Test nothing runs when the loop is not started."""
        with mock.patch.object(manager, "sync_now") as mock_sync:
            manager.on_connectivity_changed(True)
        mock_sync.assert_not_called()
