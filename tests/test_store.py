"""
Tests for OrderStore.
"""

import sqlite3
import threading

import pytest


class TestOrders:
    """Tests for order rows."""

    def test_insert_and_get(self, store, sample_order):
        """Test an inserted order can be read back with defaults applied."""
        store.insert_order(sample_order)
        order = store.get_order(sample_order["client_id"])

        assert order["restaurant_id"] == "r1"
        assert order["total"] == 24.5
        assert order["paid"] == 0
        assert order["synced"] == 0
        assert order["sync_attempts"] == 0
        assert order["locale"] == "en"
        assert order["created_at"] == sample_order["created_at"]
        assert order["updated_at"]

    def test_get_missing(self, store):
        """Test unknown client_id returns None."""
        assert store.get_order("nope") is None

    def test_duplicate_client_id(self, store, sample_order):
        """Test client_id is unique."""
        store.insert_order(sample_order)
        with pytest.raises(sqlite3.IntegrityError):
            store.insert_order(sample_order)

    def test_update(self, store, sample_order):
        """Test updating columns and bool conversion."""
        store.insert_order(sample_order)
        count = store.update_order(sample_order["client_id"], {"status": "preparing", "paid": True})

        order = store.get_order(sample_order["client_id"])
        assert count == 1
        assert order["status"] == "preparing"
        assert order["paid"] == 1

    def test_update_missing_order(self, store):
        """Test updating a missing order touches nothing."""
        assert store.update_order("nope", {"status": "ready"}) == 0

    def test_update_unknown_column(self, store, sample_order):
        """Test unknown columns are rejected."""
        store.insert_order(sample_order)
        with pytest.raises(ValueError):
            store.update_order(sample_order["client_id"], {"status = 'x'; --": 1})

    def test_update_ignores_client_id(self, store, sample_order):
        """Test the key column cannot be rewritten."""
        store.insert_order(sample_order)
        store.update_order(sample_order["client_id"], {"client_id": "other", "status": "ready"})
        assert store.get_order(sample_order["client_id"])["status"] == "ready"
        assert store.get_order("other") is None

    def test_get_orders_filters(self, store, sample_order):
        """Test filtering by restaurant, status and synced flag."""
        store.insert_order(sample_order)
        store.insert_order({**sample_order, "client_id": "o2", "restaurant_id": "r2"})
        store.insert_order({**sample_order, "client_id": "o3", "status": "ready"})
        store.mark_as_synced("o3", "remote-3")

        assert len(store.get_orders()) == 3
        assert {o["client_id"] for o in store.get_orders(restaurant_id="r1")} == {sample_order["client_id"], "o3"}
        assert [o["client_id"] for o in store.get_orders(status="ready")] == ["o3"]
        assert [o["client_id"] for o in store.get_orders(synced=True)] == ["o3"]
        assert len(store.get_orders(restaurant_id="r1", synced=False)) == 1

    def test_get_orders_newest_first(self, store, sample_order):
        """Test ordering by created_at."""
        store.insert_order({**sample_order, "client_id": "old", "created_at": "2024-01-01T00:00:00+00:00"})
        store.insert_order({**sample_order, "client_id": "new", "created_at": "2024-02-01T00:00:00+00:00"})
        assert [o["client_id"] for o in store.get_orders()] == ["new", "old"]

    def test_delete_cascades_items(self, store, sample_order, sample_items):
        """Test deleting an order removes its items."""
        client_id = sample_order["client_id"]
        store.insert_order(sample_order)
        store.insert_order_items([{**item, "order_client_id": client_id} for item in sample_items])

        assert store.delete_order(client_id) is True
        assert store.get_order_items(client_id) == []
        assert store.delete_order(client_id) is False


class TestOrderItems:
    """Tests for line items."""

    def test_insert_and_get(self, store, sample_order, sample_items):
        """Test items are stored in insertion order."""
        client_id = sample_order["client_id"]
        store.insert_order(sample_order)
        count = store.insert_order_items([{**item, "order_client_id": client_id} for item in sample_items])

        items = store.get_order_items(client_id)
        assert count == 2
        assert [i["name"] for i in items] == ["Burger", "Lemonade"]
        assert items[0]["quantity"] == 2

    def test_insert_empty(self, store):
        """Test inserting no items is a no-op."""
        assert store.insert_order_items([]) == 0

    def test_items_require_order(self, store, sample_items):
        """Test the foreign key is enforced."""
        with pytest.raises(sqlite3.IntegrityError):
            store.insert_order_items([{**sample_items[0], "order_client_id": "missing"}])


class TestSyncBookkeeping:
    """Tests for sync flags."""

    def test_pending_oldest_first(self, store, sample_order):
        """Test pending orders come back oldest first."""
        store.insert_order({**sample_order, "client_id": "new", "created_at": "2024-02-01T00:00:00+00:00"})
        store.insert_order({**sample_order, "client_id": "old", "created_at": "2024-01-01T00:00:00+00:00"})
        assert [o["client_id"] for o in store.get_pending_sync()] == ["old", "new"]

    def test_mark_as_synced(self, store, sample_order):
        """Test marking as synced records the remote id."""
        store.insert_order(sample_order)
        store.mark_as_synced(sample_order["client_id"], 42)

        order = store.get_order(sample_order["client_id"])
        assert order["synced"] == 1
        assert order["supabase_id"] == "42"
        assert order["last_sync_attempt"]
        assert store.get_pending_sync() == []

    def test_record_sync_failure(self, store, sample_order):
        """Test failures increment the attempt counter."""
        store.insert_order(sample_order)
        store.record_sync_failure(sample_order["client_id"])
        store.record_sync_failure(sample_order["client_id"])

        order = store.get_order(sample_order["client_id"])
        assert order["sync_attempts"] == 2
        assert order["synced"] == 0


class TestThreading:
    """Tests for per-thread connections."""

    def test_writes_from_other_thread_visible(self, store, sample_order):
        """Test a worker thread uses its own connection on the same file."""
        errors = []

        def worker():
            try:
                store.insert_order({**sample_order, "client_id": "from-thread"})
            except sqlite3.Error as e:
                errors.append(e)

        thread = threading.Thread(target=worker)
        thread.start()
        thread.join()

        assert errors == []
        assert store.get_order("from-thread") is not None
