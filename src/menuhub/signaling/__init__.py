"""
WebRTC signaling between a local hub and staff devices.
"""

from menuhub.signaling.messages import (
    SignalingError,
    SignalingEvent,
    SignalingNotConnectedError,
    SignalingRoleError,
    SignalingSubscribeError,
    StaleMessageFilter,
    channel_name,
)
from menuhub.signaling.signaling import HubSignaling, create_signaling, create_signaling_from_config

__all__ = [
    "HubSignaling",
    "SignalingError",
    "SignalingEvent",
    "SignalingNotConnectedError",
    "SignalingRoleError",
    "SignalingSubscribeError",
    "StaleMessageFilter",
    "channel_name",
    "create_signaling",
    "create_signaling_from_config",
]
