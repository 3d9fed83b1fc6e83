"""Shared utilities: logging, configuration, device identity, events."""
