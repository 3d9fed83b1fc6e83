"""
Hosted broadcast channel primitive.

Backends:
- memory: in-process broker (tests, single-process setups)
- zmq: ZeroMQ broadcast relay shared by every party on the site
"""

from typing import Optional

from menuhub.common.config import Config
from menuhub.realtime.channel import (
    BroadcastChannel,
    ChannelStatus,
    RealtimeClient,
    RealtimeError,
    SendResult,
)
from menuhub.realtime.memory import InMemoryBroker, InMemoryRealtimeClient

__all__ = [
    "BroadcastChannel",
    "ChannelStatus",
    "InMemoryBroker",
    "InMemoryRealtimeClient",
    "RealtimeClient",
    "RealtimeError",
    "SendResult",
    "create_realtime_client",
]

_default_broker: Optional[InMemoryBroker] = None


def create_realtime_client(config: Config) -> RealtimeClient:
    """
    Build a realtime client for the configured backend.

    Args:
        config: Application config (realtime.* section)

    Returns:
        RealtimeClient instance
    """
    global _default_broker

    backend = config.realtime_backend
    if backend == "memory":
        if _default_broker is None:
            _default_broker = InMemoryBroker()
        return _default_broker.client()

    if backend == "zmq":
        from menuhub.realtime.zmq_relay import ZmqRealtimeClient
        return ZmqRealtimeClient(
            host=config.get("realtime.relay_host", "localhost"),
            publish_port=int(config.get("realtime.publish_port", 5560)),
            subscribe_port=int(config.get("realtime.subscribe_port", 5561)),
        )

    raise RealtimeError(f"Unknown realtime backend: {backend}")
