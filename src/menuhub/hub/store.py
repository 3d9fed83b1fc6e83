"""
Local SQLite order store for the hub station.

Orders placed on staff devices land here first and are pushed to the
cloud by the sync manager when connectivity allows.

Tables:
- orders: one row per order, keyed by the device-generated client_id
- order_items: line items, keyed to orders.client_id
"""

import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from menuhub.common.logger import setup_logger

logger = setup_logger(__name__)

ORDER_COLUMNS = (
    "client_id", "supabase_id", "restaurant_id", "table_id", "total", "status",
    "order_type", "customer_name", "customer_email", "customer_phone", "notes",
    "paid", "payment_method", "payment_taken_by_name", "payment_taken_at",
    "pickup_code", "ready_for_pickup", "picked_up_at", "locale", "created_at",
    "updated_at", "synced", "sync_attempts", "last_sync_attempt",
)

ITEM_COLUMNS = (
    "order_client_id", "menu_item_id", "name", "quantity", "price_at_time",
    "department", "special_instructions",
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class OrderStore:
    """
    SQLite-backed order store.

    Thread-safe: uses a connection per thread via thread-local storage.
    """

    def __init__(self, db_file: str):
        self.db_file = Path(db_file).expanduser()
        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._conn_lock = threading.Lock()

        self.db_file.parent.mkdir(parents=True, exist_ok=True)

        self._init_schema()
        logger.info("OrderStore initialized: %s", self.db_file)

    def _get_conn(self) -> sqlite3.Connection:
        """Get a thread-local SQLite connection."""
        if getattr(self._local, "conn", None) is None:
            conn = sqlite3.connect(str(self.db_file), timeout=10, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA foreign_keys=ON")
            self._local.conn = conn
            with self._conn_lock:
                self._connections.append(conn)
        return self._local.conn

    def _init_schema(self) -> None:
        """Create tables if they don't exist."""
        conn = self._get_conn()
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS orders (
                client_id TEXT PRIMARY KEY,
                supabase_id TEXT UNIQUE,
                restaurant_id TEXT NOT NULL,
                table_id TEXT,
                total REAL NOT NULL,
                status TEXT NOT NULL,
                order_type TEXT NOT NULL,
                customer_name TEXT,
                customer_email TEXT,
                customer_phone TEXT,
                notes TEXT,
                paid INTEGER DEFAULT 0,
                payment_method TEXT,
                payment_taken_by_name TEXT,
                payment_taken_at TEXT,
                pickup_code TEXT,
                ready_for_pickup INTEGER DEFAULT 0,
                picked_up_at TEXT,
                locale TEXT DEFAULT 'en',
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                synced INTEGER DEFAULT 0,
                sync_attempts INTEGER DEFAULT 0,
                last_sync_attempt TEXT
            );

            CREATE TABLE IF NOT EXISTS order_items (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                order_client_id TEXT NOT NULL,
                menu_item_id TEXT NOT NULL,
                name TEXT NOT NULL,
                quantity INTEGER NOT NULL,
                price_at_time REAL NOT NULL,
                department TEXT,
                special_instructions TEXT,
                preparing_started_at TEXT,
                marked_ready_at TEXT,
                delivered_at TEXT,
                FOREIGN KEY (order_client_id) REFERENCES orders(client_id) ON DELETE CASCADE
            );

            CREATE INDEX IF NOT EXISTS idx_orders_restaurant ON orders(restaurant_id);
            CREATE INDEX IF NOT EXISTS idx_orders_status ON orders(status);
            CREATE INDEX IF NOT EXISTS idx_orders_synced ON orders(synced);
            CREATE INDEX IF NOT EXISTS idx_orders_created ON orders(created_at);
            CREATE INDEX IF NOT EXISTS idx_order_items_order ON order_items(order_client_id);
        """)
        conn.commit()
        logger.debug("Order schema initialized")

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def insert_order(self, order: Dict[str, Any]) -> None:
        """Insert a new order. Raises sqlite3.IntegrityError on duplicate client_id."""
        now = _now()
        row = {
            "client_id": order["client_id"],
            "restaurant_id": order["restaurant_id"],
            "table_id": order.get("table_id"),
            "total": order.get("total", 0),
            "status": order.get("status", "pending"),
            "order_type": order.get("order_type", "dine_in"),
            "customer_name": order.get("customer_name"),
            "customer_email": order.get("customer_email"),
            "customer_phone": order.get("customer_phone"),
            "notes": order.get("notes"),
            "paid": 1 if order.get("paid") else 0,
            "payment_method": order.get("payment_method"),
            "locale": order.get("locale") or "en",
            "created_at": order.get("created_at") or now,
            "updated_at": now,
        }
        conn = self._get_conn()
        conn.execute(
            f"INSERT INTO orders ({', '.join(row)}) VALUES ({', '.join(':' + k for k in row)})",
            row,
        )
        conn.commit()
        logger.debug("Order inserted: %s", order["client_id"])

    def update_order(self, client_id: str, updates: Dict[str, Any]) -> int:
        """
        Update columns of an order.

        Args:
            client_id: Order to update
            updates: Column -> value. client_id itself is ignored.

        Returns:
            Number of rows updated (0 if the order does not exist)

        Raises:
            ValueError: If updates names an unknown column
        """
        fields = {k: v for k, v in updates.items() if k != "client_id"}
        unknown = set(fields) - set(ORDER_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown order columns: {', '.join(sorted(unknown))}")

        for flag in ("paid", "ready_for_pickup", "synced"):
            if flag in fields and isinstance(fields[flag], bool):
                fields[flag] = 1 if fields[flag] else 0

        fields["updated_at"] = _now()
        assignments = ", ".join(f"{k} = :{k}" for k in fields)

        conn = self._get_conn()
        cursor = conn.execute(
            f"UPDATE orders SET {assignments} WHERE client_id = :_client_id",
            {**fields, "_client_id": client_id},
        )
        conn.commit()
        logger.debug("Order updated: %s", client_id)
        return cursor.rowcount

    def get_orders(
        self,
        restaurant_id: Optional[str] = None,
        status: Optional[str] = None,
        synced: Optional[bool] = None,
    ) -> List[Dict[str, Any]]:
        """Get orders, newest first, optionally filtered."""
        query = "SELECT * FROM orders WHERE 1=1"
        params: Dict[str, Any] = {}

        if restaurant_id:
            query += " AND restaurant_id = :restaurant_id"
            params["restaurant_id"] = restaurant_id
        if status:
            query += " AND status = :status"
            params["status"] = status
        if synced is not None:
            query += " AND synced = :synced"
            params["synced"] = 1 if synced else 0

        query += " ORDER BY created_at DESC"
        rows = self._get_conn().execute(query, params).fetchall()
        return [dict(r) for r in rows]

    def get_order(self, client_id: str) -> Optional[Dict[str, Any]]:
        row = self._get_conn().execute(
            "SELECT * FROM orders WHERE client_id = ?", (client_id,)
        ).fetchone()
        return dict(row) if row else None

    def delete_order(self, client_id: str) -> bool:
        conn = self._get_conn()
        cursor = conn.execute("DELETE FROM orders WHERE client_id = ?", (client_id,))
        conn.commit()
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Order items
    # ------------------------------------------------------------------

    def insert_order_items(self, items: Iterable[Dict[str, Any]]) -> int:
        """Insert line items in one transaction. Returns the count inserted."""
        rows = [
            {
                "order_client_id": item["order_client_id"],
                "menu_item_id": item["menu_item_id"],
                "name": item["name"],
                "quantity": item.get("quantity", 1),
                "price_at_time": item.get("price_at_time", 0),
                "department": item.get("department"),
                "special_instructions": item.get("special_instructions"),
            }
            for item in items
        ]
        if not rows:
            return 0

        conn = self._get_conn()
        with conn:
            conn.executemany(
                f"INSERT INTO order_items ({', '.join(ITEM_COLUMNS)}) "
                f"VALUES ({', '.join(':' + c for c in ITEM_COLUMNS)})",
                rows,
            )
        logger.debug("Inserted %d order items", len(rows))
        return len(rows)

    def get_order_items(self, order_client_id: str) -> List[Dict[str, Any]]:
        rows = self._get_conn().execute(
            "SELECT * FROM order_items WHERE order_client_id = ? ORDER BY id",
            (order_client_id,),
        ).fetchall()
        return [dict(r) for r in rows]

    # ------------------------------------------------------------------
    # Sync bookkeeping
    # ------------------------------------------------------------------

    def mark_as_synced(self, client_id: str, remote_id: Optional[str] = None) -> None:
        conn = self._get_conn()
        conn.execute(
            """
            UPDATE orders
            SET synced = 1,
                supabase_id = COALESCE(?, supabase_id),
                last_sync_attempt = ?
            WHERE client_id = ?
            """,
            (str(remote_id) if remote_id is not None else None, _now(), client_id),
        )
        conn.commit()
        logger.debug("Order marked as synced: %s", client_id)

    def record_sync_failure(self, client_id: str) -> None:
        conn = self._get_conn()
        conn.execute(
            """
            UPDATE orders
            SET sync_attempts = sync_attempts + 1,
                last_sync_attempt = ?
            WHERE client_id = ?
            """,
            (_now(), client_id),
        )
        conn.commit()

    def get_pending_sync(self) -> List[Dict[str, Any]]:
        """Unsynced orders, oldest first."""
        rows = self._get_conn().execute(
            "SELECT * FROM orders WHERE synced = 0 ORDER BY created_at ASC"
        ).fetchall()
        return [dict(r) for r in rows]

    def close(self) -> None:
        """Close every connection opened by this store."""
        with self._conn_lock:
            connections, self._connections = self._connections, []
        for conn in connections:
            conn.close()
        self._local = threading.local()
