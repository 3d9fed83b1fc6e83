"""
Network Monitor for MenuHub devices and stations.

Tracks whether the cloud backend is reachable and exposes it as an
online/offline state, the same signal a browser gets from its
online/offline events.

Features:
- Periodic connectivity checks (HTTP health endpoint, TCP fallback)
- Faster re-checks while offline
- online/offline events when state changes
- Thread-safe access from any service
"""

import socket
import threading
import time
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlparse

import requests

from menuhub.common.events import EventEmitter
from menuhub.common.logger import setup_logger

logger = setup_logger(__name__)

# How often to check connectivity (seconds)
CHECK_INTERVAL_ONLINE = 30
CHECK_INTERVAL_OFFLINE = 10

HEALTH_CHECK_TIMEOUT = 5  # seconds


class NetworkMonitor:
    """
    Monitors connectivity to the cloud backend.

    Usage:
        monitor = NetworkMonitor(cloud_url="https://xyz.supabase.co")
        monitor.on("offline", lambda _: print("offline"))
        monitor.start()
        if monitor.is_online:
            # safe to make network calls
        monitor.stop()
    """

    def __init__(
        self,
        cloud_url: str = "",
        health_path: str = "/",
        check_interval_online: float = CHECK_INTERVAL_ONLINE,
        check_interval_offline: float = CHECK_INTERVAL_OFFLINE,
        online_threshold: int = 1,
        offline_threshold: int = 1,
        initial_online: bool = True,
        on_state_changed: Optional[Callable[[bool], None]] = None,
    ):
        """
        Args:
            cloud_url: Backend base URL to check
            health_path: Path requested on each check
            check_interval_online: Seconds between checks while online
            check_interval_offline: Seconds between checks while offline
            online_threshold: Consecutive successes needed to go online
            offline_threshold: Consecutive failures needed to go offline
            initial_online: State assumed before the first check
            on_state_changed: Callback(is_online) when state changes
        """
        self._cloud_url = cloud_url.rstrip("/")
        self._health_path = health_path
        self._interval_online = check_interval_online
        self._interval_offline = check_interval_offline
        self._online_threshold = online_threshold
        self._offline_threshold = offline_threshold
        self._on_state_changed = on_state_changed

        # State (thread-safe via lock)
        self._lock = threading.Lock()
        self._online = initial_online
        self._consecutive_failures = 0
        self._consecutive_successes = 0
        self._last_check_time: Optional[float] = None
        self._last_check_result: Optional[bool] = None

        # Background thread
        self._thread: Optional[threading.Thread] = None
        self._running = False
        self._stop_event = threading.Event()

        # Stats
        self._total_checks = 0
        self._total_failures = 0

        self._events = EventEmitter("network")

    @property
    def is_online(self) -> bool:
        """Check if the network is currently online. Thread-safe."""
        with self._lock:
            return self._online

    @property
    def target_url(self) -> str:
        return self._cloud_url

    def get_status(self) -> Dict[str, Any]:
        """Get network status for diagnostics."""
        with self._lock:
            return {
                "online": self._online,
                "target_url": self.target_url,
                "consecutive_failures": self._consecutive_failures,
                "consecutive_successes": self._consecutive_successes,
                "last_check_time": self._last_check_time,
                "last_check_result": self._last_check_result,
                "total_checks": self._total_checks,
                "total_failures": self._total_failures,
            }

    def on(self, event: str, callback: Callable[[Any], None]) -> Callable[[], None]:
        """Register for 'online' / 'offline'. Returns an unsubscribe function."""
        return self._events.on(event, callback)

    def check_now(self) -> bool:
        """
        Run an immediate connectivity check. Thread-safe.

        Returns:
            True if the target is reachable.
        """
        reachable = self._do_health_check()
        self._update_state(reachable)
        return reachable

    def _do_health_check(self) -> bool:
        """
        Perform a single connectivity check.

        Strategy:
        1. HTTP GET to the health path (any status below 500 counts)
        2. If that fails, a raw TCP connect to the target host/port
        """
        url = self.target_url
        if not url:
            return False

        try:
            response = requests.get(f"{url}{self._health_path}", timeout=HEALTH_CHECK_TIMEOUT)
            if response.status_code < 500:
                return True
        except requests.exceptions.RequestException:
            pass

        try:
            parsed = urlparse(url)
            host = parsed.hostname
            port = parsed.port or (443 if parsed.scheme == "https" else 80)
            if host:
                sock = socket.create_connection((host, port), timeout=HEALTH_CHECK_TIMEOUT)
                sock.close()
                return True
        except OSError:
            pass

        return False

    def set_online(self, online: bool) -> None:
        """Force the state, e.g. from an OS network event. Fires events on change."""
        with self._lock:
            changed = self._online != online
            self._online = online
            self._consecutive_failures = 0
            self._consecutive_successes = 0
        if changed:
            logger.info("Network state set: %s", "ONLINE" if online else "OFFLINE")
            self._notify(online)

    def _update_state(self, reachable: bool) -> None:
        """Update online/offline state from one check result."""
        state_changed = False

        with self._lock:
            self._total_checks += 1
            self._last_check_time = time.time()
            self._last_check_result = reachable

            if reachable:
                self._consecutive_successes += 1
                self._consecutive_failures = 0

                if not self._online and self._consecutive_successes >= self._online_threshold:
                    self._online = True
                    state_changed = True
                    logger.info("Network state: ONLINE (target: %s)", self.target_url)
            else:
                self._consecutive_failures += 1
                self._consecutive_successes = 0
                self._total_failures += 1

                if self._online and self._consecutive_failures >= self._offline_threshold:
                    self._online = False
                    state_changed = True
                    logger.warning(
                        "Network state: OFFLINE after %d failures (target: %s)",
                        self._consecutive_failures, self.target_url,
                    )

        # Notify outside lock
        if state_changed:
            self._notify(reachable)

    def _notify(self, online: bool) -> None:
        if self._on_state_changed:
            try:
                self._on_state_changed(online)
            except Exception as e:
                logger.error("Network state callback error: %s", e)
        self._events.emit("online" if online else "offline", {"online": online})

    def _monitor_loop(self) -> None:
        """Background monitoring loop."""
        self._check_and_update()

        while self._running:
            interval = self._interval_online if self.is_online else self._interval_offline
            if self._stop_event.wait(timeout=interval):
                break

            if self._running:
                self._check_and_update()

    def _check_and_update(self) -> None:
        try:
            reachable = self._do_health_check()
        except Exception as e:
            logger.error("Health check error: %s", e)
            reachable = False
        self._update_state(reachable)

    def start(self) -> None:
        """Start the background network monitor."""
        if self._running:
            return

        self._running = True
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._monitor_loop,
            name="network-monitor",
            daemon=True,
        )
        self._thread.start()
        logger.info("NetworkMonitor started (target=%s)", self.target_url)

    def stop(self) -> None:
        """Stop the background network monitor."""
        if not self._running:
            return

        self._running = False
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=10)
            self._thread = None
        logger.info("NetworkMonitor stopped")
