"""
Device ID generation and management.
Each staff device keeps a stable identifier across restarts.
"""

import json
import random
import socket
import string
import time
import uuid
from pathlib import Path
from typing import Any, Dict

_ID_ALPHABET = string.digits + string.ascii_lowercase


def _load_state(state_file: Path) -> Dict[str, Any]:
    if not state_file.exists():
        return {}
    try:
        with open(state_file, 'r') as f:
            data = json.load(f)
    except (OSError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}


def save_state(state_file: str, updates: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge updates into the JSON state file.

    Returns:
        The full state after the update
    """
    path = Path(state_file).expanduser()
    state = _load_state(path)
    state.update(updates)

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        json.dump(state, f, indent=2)
    return state


def load_state(state_file: str) -> Dict[str, Any]:
    """Read the JSON state file (empty dict if missing or unreadable)."""
    return _load_state(Path(state_file).expanduser())


def generate_device_id() -> str:
    """Generate a new device ID like device_1700000000000_k3j9x0a1b."""
    suffix = ''.join(random.choice(_ID_ALPHABET) for _ in range(9))
    return f"device_{int(time.time() * 1000)}_{suffix}"


def get_or_create_device_id(state_file: str) -> str:
    """
    Get existing device ID or create a new one.

    Device ID is stored persistently so it survives restarts.
    """
    state = load_state(state_file)
    device_id = state.get('device_id')
    if device_id:
        return device_id

    device_id = generate_device_id()
    save_state(state_file, {'device_id': device_id})
    return device_id


def get_device_info(state_file: str) -> Dict[str, Any]:
    """
    Get device information: display name, role and restaurant.
    """
    state = load_state(state_file)
    return {
        "deviceName": state.get('device_name') or f"{socket.gethostname()} Device",
        "deviceRole": state.get('device_role') or "staff",
        "restaurantId": None,
    }


def get_station_id() -> str:
    """
    Get a stable identifier for this hub station (hostname + MAC).
    """
    mac = '{:012x}'.format(uuid.getnode())
    return f"station-{socket.gethostname()}-{mac}"
