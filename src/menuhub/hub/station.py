"""
Hub Station - local relay between staff devices and the cloud.

Devices connect over ZeroMQ (DEALER -> ROUTER), register, and exchange
orders. Every order is written to the local OrderStore, fanned out to
the other devices of the same restaurant, and pushed to the cloud by
the CloudSyncManager when online.

Events (via on()):
- new-order: order dict with items, after it was stored
- order-update: {"clientId", "updates"}
- state-update: get_state() snapshot, on device or sync changes
"""

import queue
import sqlite3
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

import zmq

from menuhub.common.device_id import get_station_id
from menuhub.common.events import EventEmitter
from menuhub.common.logger import setup_logger
from menuhub.hub.protocol import HubError, MessageType, decode, encode, iso_now, make
from menuhub.hub.store import OrderStore
from menuhub.hub.sync_manager import CloudSyncManager

logger = setup_logger(__name__)

DEFAULT_PORT = 3001
DEFAULT_CLIENT_TIMEOUT = 90  # seconds without traffic before a device is dropped
POLL_INTERVAL_MS = 100


class ConnectedDevice:
    """A registered device and the socket identity it talks from."""

    def __init__(self, identity: bytes, metadata: Dict[str, Any]):
        self.identity = identity
        self.metadata = metadata
        self.last_seen = time.time()


class HubStation:
    """
    ROUTER server relaying orders between devices.

    Usage:
        station = HubStation(OrderStore("station.db"), port=3001)
        station.start()
        ...
        station.stop()
    """

    def __init__(
        self,
        store: OrderStore,
        port: int = DEFAULT_PORT,
        bind_host: str = "*",
        station_id: Optional[str] = None,
        client_timeout: float = DEFAULT_CLIENT_TIMEOUT,
        sync_manager: Optional[CloudSyncManager] = None,
        network_monitor: Optional[Any] = None,
    ):
        """
        Args:
            store: Local order store
            port: Port to listen on (0 picks a free port)
            bind_host: Interface to bind
            station_id: Identifier announced to devices
            client_timeout: Seconds of silence before a device is dropped
            sync_manager: Pushes orders to the cloud (optional)
            network_monitor: Provides is_online and online/offline events (optional)
        """
        self.store = store
        self.port = port
        self.bind_host = bind_host
        self.station_id = station_id or get_station_id()
        self.client_timeout = client_timeout
        self.sync_manager = sync_manager
        self.network_monitor = network_monitor

        self._devices: Dict[str, ConnectedDevice] = {}
        self._identities: Dict[bytes, float] = {}
        self._devices_lock = threading.Lock()
        self._outbox: "queue.Queue[Tuple[bytes, Dict[str, Any]]]" = queue.Queue()
        self._events = EventEmitter("station")
        self._unsubscribers: List[Callable[[], None]] = []

        self._context: Optional[zmq.Context] = None
        self._socket: Optional[zmq.Socket] = None
        self._thread: Optional[threading.Thread] = None
        self._running = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_online(self) -> bool:
        if self.network_monitor is None:
            return True
        return self.network_monitor.is_online

    def start(self) -> None:
        """Bind the server socket and start serving on a background thread."""
        if self._running:
            return

        self._context = zmq.Context()
        self._socket = self._context.socket(zmq.ROUTER)
        self._socket.setsockopt(zmq.LINGER, 0)
        if self.port == 0:
            host = "127.0.0.1" if self.bind_host == "*" else self.bind_host
            self.port = self._socket.bind_to_random_port(f"tcp://{host}")
        else:
            self._socket.bind(f"tcp://{self.bind_host}:{self.port}")

        self._running = True
        self._thread = threading.Thread(target=self._serve, name="hub-station", daemon=True)
        self._thread.start()

        if self.network_monitor is not None:
            self._unsubscribers.append(self.network_monitor.on("online", self._on_online))
            self._unsubscribers.append(self.network_monitor.on("offline", self._on_offline))

        if self.sync_manager is not None:
            if self.sync_manager.on_synced is None:
                self.sync_manager.on_synced = lambda _result: self._send_state_update()
            self.sync_manager.start(is_online=lambda: self.is_online)

        logger.info("[Station] Listening on port %d (station %s)", self.port, self.station_id)
        self._send_state_update()

    def stop(self) -> None:
        """Stop serving and close the socket."""
        if not self._running:
            return
        self._running = False

        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

        if self.sync_manager is not None:
            self.sync_manager.stop()

        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None
        if self._context:
            self._context.term()
            self._context = None

        with self._devices_lock:
            self._devices.clear()
            self._identities.clear()
        logger.info("[Station] Stopped")

    def _serve(self) -> None:
        sock = self._socket
        try:
            while self._running:
                if sock.poll(POLL_INTERVAL_MS):
                    frames = sock.recv_multipart()
                    if len(frames) >= 2:
                        self._handle_frames(frames[0], frames[-1])
                self._drain_outbox()
                self._prune_devices()
        except zmq.ZMQError as e:
            if self._running:
                logger.error("[Station] Server error: %s", e)
        finally:
            sock.close(linger=0)
            self._socket = None

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------

    def _send(self, identity: bytes, message: Dict[str, Any]) -> None:
        """Send directly. Only called on the server thread."""
        try:
            self._socket.send_multipart([identity, encode(message)], flags=zmq.NOBLOCK)
        except zmq.ZMQError as e:
            logger.warning("[Station] Could not deliver %s: %s", message.get("type"), e)

    def _drain_outbox(self) -> None:
        while True:
            try:
                identity, message = self._outbox.get_nowait()
            except queue.Empty:
                return
            self._send(identity, message)

    def _handle_frames(self, identity: bytes, raw: bytes) -> None:
        now = time.time()
        with self._devices_lock:
            first_contact = identity not in self._identities
            self._identities[identity] = now
            for device in self._devices.values():
                if device.identity == identity:
                    device.last_seen = now

        if first_contact:
            self._send(identity, make(MessageType.CONNECTED, stationId=self.station_id, timestamp=iso_now()))

        try:
            message = decode(raw)
            self.handle_message(identity, message)
        except (HubError, ValueError, KeyError, TypeError, sqlite3.Error) as e:
            logger.error("[Station] Error handling message: %s", e)
            self._send(identity, make(MessageType.ERROR, error=str(e)))

    def handle_message(self, identity: bytes, message: Dict[str, Any]) -> None:
        """Dispatch one decoded device message."""
        msg_type = message.get("type")
        payload = message.get("payload") or {}

        if msg_type == MessageType.REGISTER.value:
            self._handle_register(identity, payload)
        elif msg_type == MessageType.NEW_ORDER.value:
            self._handle_new_order(payload)
        elif msg_type == MessageType.ORDER_UPDATE.value:
            self._handle_order_update(payload)
        elif msg_type == MessageType.PING.value:
            self._send(identity, make(MessageType.PONG, timestamp=iso_now()))
        else:
            logger.warning("[Station] Unknown message type: %s", msg_type)

    def _handle_register(self, identity: bytes, payload: Dict[str, Any]) -> None:
        device_id = payload["deviceId"]
        restaurant_id = payload.get("restaurantId")
        metadata = {
            "deviceId": device_id,
            "deviceName": payload.get("deviceName") or "Unknown Device",
            "deviceRole": payload.get("deviceRole") or "staff",
            "restaurantId": restaurant_id,
            "connectedAt": iso_now(),
        }
        with self._devices_lock:
            self._devices[device_id] = ConnectedDevice(identity, metadata)

        logger.info("[Station] Device registered: %s (%s)", device_id, metadata["deviceName"])
        self._send(identity, make(MessageType.REGISTERED, deviceId=device_id, stationId=self.station_id))

        pending = self.store.get_orders(restaurant_id=restaurant_id, synced=False) if restaurant_id else []
        if pending:
            orders = [{**order, "items": self.store.get_order_items(order["client_id"])} for order in pending]
            self._send(identity, make(MessageType.PENDING_ORDERS, orders=orders))

        self._send_state_update()

    def _handle_new_order(self, payload: Dict[str, Any]) -> None:
        order = payload["order"]
        items = payload.get("items") or []
        client_id = order["client_id"]
        logger.info("[Station] New order received: %s", client_id)

        if self.store.get_order(client_id):
            logger.info("[Station] Order already exists, skipping: %s", client_id)
            return

        self.store.insert_order(order)
        self.store.insert_order_items(
            [{**item, "order_client_id": item.get("order_client_id") or client_id} for item in items]
        )

        full_order = {**order, "items": items}
        self._broadcast(order.get("restaurant_id"), make(MessageType.NEW_ORDER, order=full_order))
        self._events.emit("new-order", full_order)

        if self.is_online:
            logger.debug("[Station] Order queued for cloud sync")

    def _handle_order_update(self, payload: Dict[str, Any]) -> None:
        client_id = payload["clientId"]
        updates = payload.get("updates") or {}
        logger.info("[Station] Order update received: %s", client_id)

        if not self.store.update_order(client_id, updates):
            logger.error("[Station] Order not found for update: %s", client_id)
            return

        order = self.store.get_order(client_id)
        self._broadcast(order["restaurant_id"], make(MessageType.ORDER_UPDATE, clientId=client_id, updates=updates))
        self._events.emit("order-update", {"clientId": client_id, "updates": updates})

    def _broadcast(self, restaurant_id: Optional[str], message: Dict[str, Any]) -> int:
        with self._devices_lock:
            targets = [d.identity for d in self._devices.values() if d.metadata["restaurantId"] == restaurant_id]
        for identity in targets:
            self._send(identity, message)
        logger.info("[Station] Broadcast to %d devices in restaurant %s", len(targets), restaurant_id)
        return len(targets)

    def broadcast_to_restaurant(self, restaurant_id: str, message: Dict[str, Any]) -> int:
        """
        Queue a message for every device of a restaurant. Thread-safe.

        Returns:
            Number of devices the message was queued for
        """
        with self._devices_lock:
            targets = [d.identity for d in self._devices.values() if d.metadata["restaurantId"] == restaurant_id]
        for identity in targets:
            self._outbox.put((identity, message))
        return len(targets)

    def broadcast_to_all(self, message: Dict[str, Any]) -> int:
        """Queue a message for every registered device. Thread-safe."""
        with self._devices_lock:
            targets = [d.identity for d in self._devices.values()]
        for identity in targets:
            self._outbox.put((identity, message))
        return len(targets)

    def _prune_devices(self) -> None:
        cutoff = time.time() - self.client_timeout
        with self._devices_lock:
            stale = [device_id for device_id, d in self._devices.items() if d.last_seen < cutoff]
            for device_id in stale:
                del self._devices[device_id]
            for identity in [i for i, seen in self._identities.items() if seen < cutoff]:
                del self._identities[identity]

        for device_id in stale:
            logger.info("[Station] Device disconnected: %s", device_id)
        if stale:
            self._send_state_update()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def connected_devices(self) -> List[Dict[str, Any]]:
        with self._devices_lock:
            return [dict(d.metadata) for d in self._devices.values()]

    def get_state(self) -> Dict[str, Any]:
        """Station snapshot for dashboards."""
        return {
            "isOnline": self.is_online,
            "connectedDevices": self.connected_devices,
            "lastSync": self.sync_manager.last_sync if self.sync_manager else None,
            "serverRunning": self._running,
        }

    def get_orders(self) -> List[Dict[str, Any]]:
        return self.store.get_orders()

    def force_sync(self) -> Dict[str, Any]:
        """Run a cloud sync right away."""
        if self.sync_manager is None:
            return {"success": False, "error": "Sync not configured"}
        result = self.sync_manager.force_sync()
        self._send_state_update()
        return result

    def _send_state_update(self) -> None:
        self._events.emit("state-update", self.get_state())

    def _on_online(self, _data: Any = None) -> None:
        logger.info("[Station] Connection status changed: Online")
        self._send_state_update()
        if self.sync_manager is not None:
            self.sync_manager.on_connectivity_changed(True)

    def _on_offline(self, _data: Any = None) -> None:
        logger.info("[Station] Connection status changed: Offline")
        self._send_state_update()

    def on(self, event: str, callback: Callable[[Any], None]) -> Callable[[], None]:
        """Register a station event listener."""
        return self._events.on(event, callback)
