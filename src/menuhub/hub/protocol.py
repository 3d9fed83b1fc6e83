"""
Station <-> device message protocol.

Every message is a JSON object with a "type" field. Devices talk to the
station over a ZeroMQ DEALER socket; the station answers from a ROUTER.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict


class MessageType(Enum):
    """Message types exchanged with the hub station."""
    # device -> station
    REGISTER = "register"
    NEW_ORDER = "new_order"
    ORDER_UPDATE = "order_update"
    PING = "ping"
    # station -> device
    CONNECTED = "connected"
    REGISTERED = "registered"
    PENDING_ORDERS = "pending_orders"
    PONG = "pong"
    ERROR = "error"


class HubError(Exception):
    """Base class for hub errors."""
    pass


class ProtocolError(HubError):
    """Raised for malformed hub messages."""
    pass


class HubNotConnectedError(HubError):
    def __init__(self, message: str = "Not connected to local hub"):
        super().__init__(message)


class HubSendError(HubError):
    pass


def iso_now() -> str:
    """Current UTC time as ISO-8601."""
    return datetime.now(timezone.utc).isoformat()


def encode(message: Dict[str, Any]) -> bytes:
    """Serialize a message for the wire."""
    if not isinstance(message, dict) or "type" not in message:
        raise ProtocolError("Message must be an object with a 'type'")
    return json.dumps(message).encode("utf-8")


def decode(raw: bytes) -> Dict[str, Any]:
    """
    Parse a wire message.

    Raises:
        ProtocolError: If raw is not a JSON object with a string 'type'
    """
    try:
        message = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise ProtocolError(f"Invalid message: {e}")

    if not isinstance(message, dict) or not isinstance(message.get("type"), str):
        raise ProtocolError("Message must be an object with a 'type'")
    return message


def make(msg_type: MessageType, **fields: Any) -> Dict[str, Any]:
    """Build a message dict of the given type."""
    return {"type": msg_type.value, **fields}
