"""
Pytest fixtures shared across the MenuHub test suite.
"""

import socket

import pytest

from menuhub.hub.store import OrderStore
from menuhub.realtime.memory import InMemoryBroker


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def free_port():
    """Callable returning an unused loopback TCP port."""
    return _free_port


@pytest.fixture
def broker():
    """Fresh in-memory realtime broker."""
    return InMemoryBroker()


@pytest.fixture
def state_file(tmp_path):
    """Path to a device state file that does not exist yet."""
    return str(tmp_path / "state" / "hub_client.json")


@pytest.fixture
def store(tmp_path):
    """Order store on a temporary database."""
    order_store = OrderStore(str(tmp_path / "station.db"))
    yield order_store
    order_store.close()


@pytest.fixture
def sample_order():
    """Order dict as a device would send it."""
    return {
        "client_id": "order_1700000000000_abc123xyz",
        "restaurant_id": "r1",
        "table_id": "t5",
        "total": 24.5,
        "status": "pending",
        "order_type": "dine_in",
        "customer_name": "Alex",
        "created_at": "2024-01-15T12:00:00+00:00",
    }


@pytest.fixture
def sample_items():
    """Line items for sample_order."""
    return [
        {"menu_item_id": "m1", "name": "Burger", "quantity": 2, "price_at_time": 9.5, "department": "kitchen"},
        {"menu_item_id": "m2", "name": "Lemonade", "quantity": 1, "price_at_time": 5.5, "department": "bar"},
    ]
