"""
MenuHub local hub layer.
Signaling, local hub relay, and connection status tracking for restaurant devices.
"""

__version__ = "0.1.0"
