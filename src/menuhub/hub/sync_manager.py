"""
Cloud Sync Manager - pushes locally captured orders to the hosted backend.

Talks to the backend's REST interface (PostgREST conventions):
    GET  /rest/v1/orders?client_id=eq.<id>&select=id
    GET  /rest/v1/order_items?order_id=eq.<id>&select=id
    POST /rest/v1/orders          (Prefer: return=representation)
    POST /rest/v1/order_items

Orders are deduplicated remotely by client_id. If a previous run inserted
the order but not its items, the next run pushes the items to the
existing remote order before marking it synced.
"""

import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import requests

from menuhub.common.logger import setup_logger
from menuhub.hub.store import OrderStore

logger = setup_logger(__name__)

DEFAULT_SYNC_INTERVAL = 30  # seconds
DEFAULT_TIMEOUT = 10  # seconds

REMOTE_ORDER_FIELDS = (
    "client_id", "restaurant_id", "table_id", "total", "status", "order_type",
    "customer_name", "customer_email", "customer_phone", "notes", "paid",
    "payment_method", "payment_taken_by_name", "payment_taken_at", "pickup_code",
    "ready_for_pickup", "picked_up_at", "locale", "created_at",
)

REMOTE_ITEM_FIELDS = (
    "menu_item_id", "name", "quantity", "price_at_time", "department",
    "preparing_started_at", "marked_ready_at", "delivered_at",
)


class SyncError(Exception):
    """Raised when one order cannot be pushed to the cloud."""
    pass


class CloudSyncManager:
    """
    Pushes unsynced orders from an OrderStore to the cloud.

    Usage:
        manager = CloudSyncManager(store, "https://xyz.supabase.co", api_key)
        manager.start(is_online=lambda: monitor.is_online)
        ...
        manager.stop()
    """

    def __init__(
        self,
        store: OrderStore,
        base_url: str = "",
        api_key: str = "",
        interval: int = DEFAULT_SYNC_INTERVAL,
        timeout: int = DEFAULT_TIMEOUT,
        on_synced: Optional[Callable[[Dict[str, Any]], None]] = None,
    ):
        """
        Args:
            store: Local order store
            base_url: Backend URL (without /rest/v1)
            api_key: Backend API key
            interval: Seconds between background sync runs
            timeout: HTTP timeout per request
            on_synced: Callback(result) after each completed run
        """
        self.store = store
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.interval = interval
        self.timeout = timeout
        self.on_synced = on_synced

        self.last_sync: Optional[str] = None
        self._sync_lock = threading.Lock()
        self._running = False
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._is_online: Callable[[], bool] = lambda: True

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url and self.api_key)

    @property
    def rest_url(self) -> str:
        return f"{self.base_url}/rest/v1"

    def _headers(self, prefer: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    # ------------------------------------------------------------------
    # Single order
    # ------------------------------------------------------------------

    def _find_remote_order(self, client_id: str) -> Optional[Any]:
        response = requests.get(
            f"{self.rest_url}/orders",
            params={"client_id": f"eq.{client_id}", "select": "id"},
            headers=self._headers(),
            timeout=self.timeout,
        )
        if response.status_code != 200:
            raise SyncError(f"Lookup failed for {client_id}: HTTP {response.status_code}")
        rows = response.json()
        return rows[0]["id"] if rows else None

    def _remote_has_items(self, remote_id: Any) -> bool:
        response = requests.get(
            f"{self.rest_url}/order_items",
            params={"order_id": f"eq.{remote_id}", "select": "id", "limit": "1"},
            headers=self._headers(),
            timeout=self.timeout,
        )
        if response.status_code != 200:
            raise SyncError(f"Item lookup failed for order {remote_id}: HTTP {response.status_code}")
        return bool(response.json())

    def _push_items(self, client_id: str, remote_id: Any, items: List[Dict[str, Any]]) -> None:
        response = requests.post(
            f"{self.rest_url}/order_items",
            json=[
                {"order_id": remote_id, **{f: item.get(f) for f in REMOTE_ITEM_FIELDS}}
                for item in items
            ],
            headers=self._headers(),
            timeout=self.timeout,
        )
        if response.status_code not in (200, 201):
            raise SyncError(f"Failed to insert items for {client_id}: HTTP {response.status_code}")
        logger.info("Inserted %d order items for order %s", len(items), client_id)

    @staticmethod
    def _remote_order(order: Dict[str, Any]) -> Dict[str, Any]:
        body = {field: order.get(field) for field in REMOTE_ORDER_FIELDS}
        body["paid"] = order.get("paid") == 1
        body["ready_for_pickup"] = order.get("ready_for_pickup") == 1
        return body

    def sync_order(self, order: Dict[str, Any]) -> Any:
        """
        Push one order and its items.

        Returns:
            Remote order id

        Raises:
            SyncError: If any request fails
        """
        client_id = order["client_id"]
        items = self.store.get_order_items(client_id)

        existing_id = self._find_remote_order(client_id)
        if existing_id is not None:
            if items and not self._remote_has_items(existing_id):
                logger.info("Order %s exists in cloud without items, resuming", client_id)
                self._push_items(client_id, existing_id, items)
            else:
                logger.info("Order %s already exists in cloud, marking as synced", client_id)
            self.store.mark_as_synced(client_id, existing_id)
            return existing_id

        response = requests.post(
            f"{self.rest_url}/orders",
            json=self._remote_order(order),
            headers=self._headers(prefer="return=representation"),
            timeout=self.timeout,
        )
        if response.status_code not in (200, 201):
            raise SyncError(f"Failed to insert order {client_id}: HTTP {response.status_code}")

        created = response.json()
        if isinstance(created, list):
            created = created[0] if created else {}
        remote_id = created.get("id")
        logger.info("Order %s inserted into cloud with id %s", client_id, remote_id)

        if items:
            self._push_items(client_id, remote_id, items)

        self.store.mark_as_synced(client_id, remote_id)
        return remote_id

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    def sync_now(self) -> Dict[str, Any]:
        """
        Push every pending order once.

        Returns:
            {"skipped": bool, "synced": [...client ids], "failed": [...client ids]}
        """
        result: Dict[str, Any] = {"skipped": False, "synced": [], "failed": []}

        if not self.is_configured:
            logger.info("Skipping sync - cloud backend not configured")
            result["skipped"] = True
            return result

        with self._sync_lock:
            pending = self.store.get_pending_sync()
            if not pending:
                logger.debug("No pending orders to sync")
            else:
                logger.info("Found %d orders to sync", len(pending))

            for order in pending:
                client_id = order["client_id"]
                try:
                    self.sync_order(order)
                    result["synced"].append(client_id)
                except (SyncError, requests.RequestException, ValueError) as e:
                    logger.error("Failed to sync order %s: %s", client_id, e)
                    self.store.record_sync_failure(client_id)
                    result["failed"].append(client_id)

            self.last_sync = datetime.now(timezone.utc).isoformat()

        if self.on_synced:
            try:
                self.on_synced(result)
            except Exception as e:
                logger.error("Sync callback error: %s", e)

        return result

    def force_sync(self) -> Dict[str, Any]:
        """Sync immediately if online."""
        if not self._is_online():
            return {"success": False, "error": "Offline"}
        result = self.sync_now()
        return {"success": not result["skipped"], **result}

    def on_connectivity_changed(self, is_online: bool) -> None:
        """Trigger an immediate sync when coming back online."""
        if is_online and self._running:
            threading.Thread(target=self._safe_sync, name="cloud-sync-now", daemon=True).start()

    # ------------------------------------------------------------------
    # Background loop
    # ------------------------------------------------------------------

    def _safe_sync(self) -> None:
        try:
            self.sync_now()
        except Exception as e:
            logger.error("Sync failed: %s", e)

    def _sync_loop(self) -> None:
        while self._running:
            if self._stop_event.wait(timeout=self.interval):
                break
            if self._running and self._is_online():
                self._safe_sync()

    def start(self, is_online: Optional[Callable[[], bool]] = None) -> None:
        """Start the periodic sync loop."""
        if self._running:
            return
        if is_online is not None:
            self._is_online = is_online

        self._running = True
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._sync_loop, name="cloud-sync", daemon=True)
        self._thread.start()
        logger.info("Cloud sync started (interval=%ds, configured=%s)", self.interval, self.is_configured)

    def stop(self) -> None:
        """Stop the periodic sync loop."""
        if not self._running:
            return
        self._running = False
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=10)
            self._thread = None
        logger.info("Cloud sync stopped")

    def pending_count(self) -> int:
        return len(self.store.get_pending_sync())
