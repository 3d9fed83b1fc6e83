"""
Configuration management for MenuHub.
Loads settings from YAML files layered over built-in defaults.
"""

import copy
import os
import yaml
from pathlib import Path
from typing import Any, Dict, Optional


DEFAULTS: Dict[str, Any] = {
    "station": {
        "restaurant_id": None,
        "bind_host": "*",
        "port": 3001,
        "database": "~/.menuhub/station.db",
        "client_timeout": 90,
        "sync_interval": 30,
    },
    "hub_client": {
        "port": 3001,
        "candidate_hosts": ["localhost", "192.168.1.1", "192.168.0.1", "10.0.0.1"],
        "state_file": "~/.menuhub/hub_client.json",
        "connect_timeout": 2.0,
        "reconnect_interval": 5.0,
        "ping_interval": 30.0,
        "ping_timeout": 90.0,
    },
    "realtime": {
        "backend": "zmq",
        "relay_host": "localhost",
        "publish_port": 5560,
        "subscribe_port": 5561,
    },
    "signaling": {
        "ready_timeout": 10.0,
    },
    "cloud": {
        "url": "",
        "api_key": "",
        "health_path": "/rest/v1/",
        "request_timeout": 10,
    },
    "network": {
        "check_interval_online": 30,
        "check_interval_offline": 10,
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into base (base is modified)."""
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


class Config:
    """Manages application configuration from YAML files."""

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize configuration.

        Args:
            config_path: Path to config file. If None, uses config/default_config.yaml
                at the project root when present, otherwise built-in defaults only.
        """
        self._explicit = config_path is not None
        if config_path is None:
            project_root = Path(__file__).parent.parent.parent.parent
            config_path = project_root / "config" / "default_config.yaml"

        self.config_path = Path(config_path)
        self._config: Dict[str, Any] = {}
        self.load()

    def load(self) -> None:
        """Load configuration from YAML file."""
        self._config = copy.deepcopy(DEFAULTS)

        if self.config_path.exists():
            with open(self.config_path, 'r') as f:
                loaded = yaml.safe_load(f) or {}
            _merge(self._config, loaded)
        elif self._explicit:
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        self._apply_env_overrides()

    def _apply_env_overrides(self) -> None:
        """Override config values from environment variables."""
        cloud_url = os.environ.get('MENUHUB_CLOUD_URL') or os.environ.get('SUPABASE_URL')
        if cloud_url:
            self._config['cloud']['url'] = cloud_url

        api_key = os.environ.get('MENUHUB_CLOUD_API_KEY') or os.environ.get('SUPABASE_ANON_KEY')
        if api_key:
            self._config['cloud']['api_key'] = api_key

        if 'MENUHUB_STATION_PORT' in os.environ:
            self._config['station']['port'] = int(os.environ['MENUHUB_STATION_PORT'])

        if 'MENUHUB_RESTAURANT_ID' in os.environ:
            self._config['station']['restaurant_id'] = os.environ['MENUHUB_RESTAURANT_ID']

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key: Configuration key (e.g., 'station.port')
            default: Default value if key not found

        Returns:
            Configuration value or default

        Example:
            >>> config = Config()
            >>> config.get('station.port')
            3001
        """
        keys = key.split('.')
        value = self._config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any) -> None:
        """
        Set configuration value using dot notation.

        Args:
            key: Configuration key (e.g., 'cloud.api_key')
            value: Value to set
        """
        keys = key.split('.')
        config = self._config

        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value

    def save(self, path: Optional[str] = None) -> None:
        """
        Save configuration to YAML file.

        Args:
            path: Path to save to. If None, uses original config_path
        """
        save_path = Path(path) if path else self.config_path

        with open(save_path, 'w') as f:
            yaml.dump(self._config, f, default_flow_style=False, indent=2)

    def section(self, name: str) -> Dict[str, Any]:
        """Get a copy of a whole config section."""
        return dict(self._config.get(name, {}))

    @property
    def station_port(self) -> int:
        """Get hub station port."""
        return int(self.get('station.port', 3001))

    @property
    def restaurant_id(self) -> Optional[str]:
        """Get the restaurant this station serves."""
        return self.get('station.restaurant_id')

    @property
    def cloud_url(self) -> str:
        """Get hosted backend URL."""
        return self.get('cloud.url', '')

    @property
    def cloud_api_key(self) -> str:
        """Get hosted backend API key."""
        return self.get('cloud.api_key', '')

    @property
    def realtime_backend(self) -> str:
        """Get realtime backend name ('zmq' or 'memory')."""
        return self.get('realtime.backend', 'zmq')

    @property
    def signaling_ready_timeout(self) -> Optional[float]:
        """Get seconds to wait for a signaling channel (None waits indefinitely)."""
        value = self.get('signaling.ready_timeout', 10.0)
        return None if value is None else float(value)

    def __repr__(self) -> str:
        """String representation."""
        return f"Config(path={self.config_path})"


# Global config instance (can be imported by other modules)
_global_config: Optional[Config] = None


def get_config(config_path: Optional[str] = None) -> Config:
    """
    Get the global configuration instance.

    Args:
        config_path: Path to config file (only used on first call)

    Returns:
        Config instance
    """
    global _global_config

    if _global_config is None:
        _global_config = Config(config_path)

    return _global_config


def reset_config() -> None:
    """Drop the global configuration instance."""
    global _global_config
    _global_config = None
