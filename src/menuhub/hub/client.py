"""
Local Hub Client - connects a staff device to the Hub Station.

Features:
- Discovery of the station (cached URL first, then candidate hosts)
- Registration and order traffic over a ZeroMQ DEALER socket
- Keep-alive pings; a silent link is treated as lost
- Automatic reconnect after a lost link
- Event callbacks for connection changes and order updates

Events (via on()):
    discovering, discovered, discovery-failed, discovery-error,
    connected, disconnected, registered, new_order, order_update,
    pending_orders, error
"""

import random
import string
import threading
import time
from typing import Any, Callable, Dict, List, Optional

import zmq

from menuhub.common.device_id import (
    get_device_info,
    get_or_create_device_id,
    load_state,
    save_state,
)
from menuhub.common.events import EventEmitter
from menuhub.common.logger import setup_logger
from menuhub.hub.protocol import (
    HubNotConnectedError,
    HubSendError,
    MessageType,
    ProtocolError,
    decode,
    encode,
    iso_now,
    make,
)

logger = setup_logger(__name__)

DEFAULT_PORT = 3001
DEFAULT_CANDIDATE_HOSTS = ["localhost", "192.168.1.1", "192.168.0.1", "10.0.0.1"]
CONNECT_TIMEOUT = 2.0      # seconds to wait for a station reply
RECONNECT_INTERVAL = 5.0   # seconds between reconnect attempts
PING_INTERVAL = 30.0       # seconds between keep-alive pings
PING_TIMEOUT = 90.0        # seconds of silence before the link is considered lost
POLL_INTERVAL_MS = 100


def generate_order_client_id() -> str:
    suffix = ''.join(random.choice(string.digits + string.ascii_lowercase) for _ in range(9))
    return f"order_{int(time.time() * 1000)}_{suffix}"


class LocalHubClient:
    """
    Device-side connection to a Hub Station.

    Usage:
        client = LocalHubClient("~/.menuhub/hub_client.json")
        client.on("new_order", handle_new_order)
        if client.connect(restaurant_id):
            client.place_order(order, items)
    """

    def __init__(
        self,
        state_file: str,
        port: int = DEFAULT_PORT,
        candidate_hosts: Optional[List[str]] = None,
        connect_timeout: float = CONNECT_TIMEOUT,
        reconnect_interval: float = RECONNECT_INTERVAL,
        ping_interval: float = PING_INTERVAL,
        ping_timeout: float = PING_TIMEOUT,
    ):
        """
        Args:
            state_file: JSON file persisting device id, name, role and station URL
            port: Station port used when probing candidate hosts
            candidate_hosts: Hosts to probe during discovery
            connect_timeout: Seconds to wait for the station to answer
            reconnect_interval: Seconds before a reconnect attempt
            ping_interval: Seconds between keep-alive pings
            ping_timeout: Seconds of silence before the link is dropped
        """
        self.state_file = state_file
        self.port = port
        self.candidate_hosts = list(candidate_hosts if candidate_hosts is not None else DEFAULT_CANDIDATE_HOSTS)
        self.connect_timeout = connect_timeout
        self.reconnect_interval = reconnect_interval
        self.ping_interval = ping_interval
        self.ping_timeout = ping_timeout

        self.hub_url: Optional[str] = None
        self.is_connected = False
        self.is_discovering = False
        self.device_id: Optional[str] = None
        self.device_info: Optional[Dict[str, Any]] = None

        self._events = EventEmitter("local-hub")
        self._context = zmq.Context()
        self._socket: Optional[zmq.Socket] = None
        self._socket_lock = threading.RLock()
        self._io_thread: Optional[threading.Thread] = None
        self._io_running = False
        self._reconnect_timer: Optional[threading.Timer] = None
        self._last_received = 0.0
        self._last_ping = 0.0

    # ------------------------------------------------------------------
    # Device identity
    # ------------------------------------------------------------------

    def get_or_create_device_id(self) -> str:
        """Get the persisted device ID, creating it on first use."""
        if self.device_id:
            return self.device_id
        self.device_id = get_or_create_device_id(self.state_file)
        return self.device_id

    def get_device_info(self) -> Dict[str, Any]:
        """Get device name, role and restaurant."""
        if self.device_info is None:
            self.device_info = get_device_info(self.state_file)
        return self.device_info

    def set_device_info(self, info: Dict[str, Any]) -> None:
        """
        Update device information (call after staff login).

        deviceName and deviceRole are persisted; restaurantId is kept in memory.
        """
        device_info = self.get_device_info()
        persisted: Dict[str, Any] = {}

        if info.get("deviceName"):
            device_info["deviceName"] = info["deviceName"]
            persisted["device_name"] = info["deviceName"]
        if info.get("deviceRole"):
            device_info["deviceRole"] = info["deviceRole"]
            persisted["device_role"] = info["deviceRole"]
        if info.get("restaurantId"):
            device_info["restaurantId"] = info["restaurantId"]

        if persisted:
            save_state(self.state_file, persisted)

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def candidate_urls(self) -> List[str]:
        return [f"tcp://{host}:{self.port}" for host in self.candidate_hosts]

    def test_connection(self, url: str, timeout: Optional[float] = None) -> bool:
        """
        Check whether a station answers at url.

        Sends a ping on a throwaway socket and waits for any reply.
        """
        timeout = self.connect_timeout if timeout is None else timeout
        probe = self._context.socket(zmq.DEALER)
        probe.setsockopt(zmq.LINGER, 0)
        try:
            probe.connect(url)
            probe.send(encode(make(MessageType.PING)), flags=zmq.NOBLOCK)
            return bool(probe.poll(int(timeout * 1000)))
        except zmq.ZMQError as e:
            logger.debug("[LocalHub] Probe of %s failed: %s", url, e)
            return False
        finally:
            probe.close(linger=0)

    def discover(self) -> Optional[str]:
        """
        Find a station on the local network.

        Returns:
            Station URL or None
        """
        if self.is_discovering:
            return self.hub_url

        self.is_discovering = True
        self.emit("discovering")

        try:
            cached_url = load_state(self.state_file).get("station_url")
            if cached_url:
                logger.info("[LocalHub] Trying cached URL: %s", cached_url)
                if self.test_connection(cached_url):
                    self.hub_url = cached_url
                    return cached_url

            urls = self.candidate_urls()
            logger.info("[LocalHub] Scanning candidates: %s", urls)
            for url in urls:
                if url == cached_url:
                    continue
                if self.test_connection(url):
                    self.hub_url = url
                    save_state(self.state_file, {"station_url": url})
                    self.emit("discovered", {"url": url})
                    return url

            logger.info("[LocalHub] No hub discovered")
            self.emit("discovery-failed")
            return None

        except (zmq.ZMQError, OSError) as e:
            logger.error("[LocalHub] Discovery error: %s", e)
            self.emit("discovery-error", {"error": e})
            return None

        finally:
            self.is_discovering = False

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    def connect(self, restaurant_id: str) -> bool:
        """
        Connect and register with the station.

        Returns:
            True once registered, False if no station answered
        """
        if self.is_connected:
            logger.info("[LocalHub] Already connected")
            return True

        self.get_or_create_device_id()
        self.get_device_info()["restaurantId"] = restaurant_id

        if not self.hub_url:
            self.discover()
        if not self.hub_url:
            logger.info("[LocalHub] No hub available")
            return False

        logger.info("[LocalHub] Connecting to: %s", self.hub_url)
        with self._socket_lock:
            self._close_socket()
            self._socket = self._context.socket(zmq.DEALER)
            self._socket.setsockopt(zmq.LINGER, 0)
            self._socket.connect(self.hub_url)
            self._socket.send(encode(self._register_message()))

        if not self._await_registration():
            logger.warning("[LocalHub] Station at %s did not answer", self.hub_url)
            with self._socket_lock:
                self._close_socket()
            self.emit("error", {"error": "Station did not answer"})
            self.schedule_reconnect()
            return False

        logger.info("[LocalHub] Connected")
        self.is_connected = True
        self._last_received = self._last_ping = time.time()
        self.emit("connected")
        self._start_io()
        return True

    def _register_message(self) -> Dict[str, Any]:
        info = self.get_device_info()
        return make(
            MessageType.REGISTER,
            payload={
                "deviceId": self.get_or_create_device_id(),
                "deviceName": info["deviceName"],
                "deviceRole": info["deviceRole"],
                "restaurantId": info["restaurantId"],
            },
        )

    def _await_registration(self) -> bool:
        deadline = time.time() + self.connect_timeout
        while True:
            remaining = deadline - time.time()
            if remaining <= 0:
                return False
            with self._socket_lock:
                if not self._socket.poll(int(remaining * 1000)):
                    return False
                raw = self._socket.recv()
            message = self._decode(raw)
            if message is None:
                continue
            self.handle_message(message)
            if message["type"] == MessageType.REGISTERED.value:
                return True

    def _decode(self, raw: bytes) -> Optional[Dict[str, Any]]:
        try:
            return decode(raw)
        except ProtocolError as e:
            logger.error("[LocalHub] Failed to parse message: %s", e)
            return None

    def _start_io(self) -> None:
        self._io_running = True
        self._io_thread = threading.Thread(target=self._io_loop, name="local-hub-io", daemon=True)
        self._io_thread.start()

    def _io_loop(self) -> None:
        while self._io_running:
            raw = None
            try:
                with self._socket_lock:
                    if self._socket is None:
                        break
                    if self._socket.poll(POLL_INTERVAL_MS):
                        raw = self._socket.recv()
            except zmq.ZMQError as e:
                logger.error("[LocalHub] Socket error: %s", e)
                self._connection_lost()
                return

            now = time.time()
            if raw is not None:
                self._last_received = now
                message = self._decode(raw)
                if message is not None:
                    self.handle_message(message)

            if now - self._last_received > self.ping_timeout:
                logger.warning("[LocalHub] No traffic for %.0fs", now - self._last_received)
                self._connection_lost()
                return

            if now - self._last_ping >= self.ping_interval:
                self._last_ping = now
                self.send(make(MessageType.PING))

    def _connection_lost(self) -> None:
        logger.info("[LocalHub] Disconnected")
        self._io_running = False
        with self._socket_lock:
            self._close_socket()
        was_connected = self.is_connected
        self.is_connected = False
        if was_connected:
            self.emit("disconnected")
        self.schedule_reconnect()

    def _close_socket(self) -> None:
        if self._socket is not None:
            self._socket.close(linger=0)
            self._socket = None

    def disconnect(self) -> None:
        """Disconnect from the station and cancel any pending reconnect."""
        if self._reconnect_timer:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None

        self._io_running = False
        if self._io_thread and self._io_thread is not threading.current_thread():
            self._io_thread.join(timeout=2)
        self._io_thread = None

        with self._socket_lock:
            self._close_socket()

        was_connected = self.is_connected
        self.is_connected = False
        if was_connected:
            self.emit("disconnected")

    def close(self) -> None:
        """Disconnect and release the ZeroMQ context."""
        self.disconnect()
        self._context.term()

    def schedule_reconnect(self) -> None:
        """Try to connect again after reconnect_interval."""
        if self._reconnect_timer:
            return

        self._reconnect_timer = threading.Timer(self.reconnect_interval, self._reconnect)
        self._reconnect_timer.daemon = True
        self._reconnect_timer.start()

    def _reconnect(self) -> None:
        self._reconnect_timer = None
        restaurant_id = (self.device_info or {}).get("restaurantId")
        if not self.is_connected and restaurant_id:
            logger.info("[LocalHub] Attempting to reconnect...")
            try:
                self.connect(restaurant_id)
            except zmq.ZMQError as e:
                logger.error("[LocalHub] Reconnect failed: %s", e)
                self.schedule_reconnect()

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------

    def send(self, message: Dict[str, Any]) -> bool:
        """
        Send a message to the station.

        Returns:
            True if the message was handed to the socket
        """
        if not self.is_connected or self._socket is None:
            logger.warning("[LocalHub] Cannot send, not connected")
            return False

        try:
            with self._socket_lock:
                if self._socket is None:
                    return False
                self._socket.send(encode(message), flags=zmq.NOBLOCK)
            return True
        except (zmq.ZMQError, ProtocolError) as e:
            logger.error("[LocalHub] Failed to send message: %s", e)
            return False

    def handle_message(self, message: Dict[str, Any]) -> None:
        """Dispatch one message from the station."""
        msg_type = message.get("type")
        data = {k: v for k, v in message.items() if k != "type"}

        if msg_type == MessageType.CONNECTED.value:
            logger.info("[LocalHub] Received welcome, station ID: %s", data.get("stationId"))
            if self.is_connected:
                # Station restarted and lost our registration
                self.send(self._register_message())
        elif msg_type == MessageType.REGISTERED.value:
            logger.info("[LocalHub] Device registered")
            self.emit("registered", data)
        elif msg_type == MessageType.NEW_ORDER.value:
            logger.info("[LocalHub] New order received: %s", data.get("order", {}).get("client_id"))
            self.emit("new_order", data)
        elif msg_type == MessageType.ORDER_UPDATE.value:
            logger.info("[LocalHub] Order update received: %s", data.get("clientId"))
            self.emit("order_update", data)
        elif msg_type == MessageType.PENDING_ORDERS.value:
            logger.info("[LocalHub] Pending orders received: %d", len(data.get("orders", [])))
            self.emit("pending_orders", data)
        elif msg_type == MessageType.PONG.value:
            pass
        elif msg_type == MessageType.ERROR.value:
            logger.error("[LocalHub] Server error: %s", data.get("error"))
            self.emit("error", data)
        else:
            logger.warning("[LocalHub] Unknown message type: %s", msg_type)

    def place_order(self, order: Dict[str, Any], items: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Place an order through the station.

        Raises:
            HubNotConnectedError: If not connected
            HubSendError: If the message could not be sent
        """
        if not self.is_connected:
            raise HubNotConnectedError()

        if not order.get("client_id"):
            order["client_id"] = generate_order_client_id()

        sent = self.send(make(
            MessageType.NEW_ORDER,
            payload={
                "order": {**order, "created_at": order.get("created_at") or iso_now()},
                "items": items,
            },
        ))
        if not sent:
            raise HubSendError("Failed to send order to hub")
        return {"success": True, "clientId": order["client_id"]}

    def update_order(self, client_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        """
        Update an order through the station.

        Raises:
            HubNotConnectedError: If not connected
            HubSendError: If the message could not be sent
        """
        if not self.is_connected:
            raise HubNotConnectedError()

        sent = self.send(make(MessageType.ORDER_UPDATE, payload={"clientId": client_id, "updates": updates}))
        if not sent:
            raise HubSendError("Failed to send update to hub")
        return {"success": True}

    # ------------------------------------------------------------------
    # Events and status
    # ------------------------------------------------------------------

    def on(self, event: str, callback: Callable[[Any], None]) -> Callable[[], None]:
        """Register a listener. Returns an unsubscribe function."""
        return self._events.on(event, callback)

    def emit(self, event: str, data: Optional[Any] = None) -> None:
        self._events.emit(event, data)

    def get_status(self) -> Dict[str, Any]:
        """Connection status snapshot."""
        return {
            "isConnected": self.is_connected,
            "hubUrl": self.hub_url,
            "deviceId": self.get_or_create_device_id(),
            "deviceInfo": self.get_device_info(),
        }
