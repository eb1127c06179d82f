# src/p2pchat/config.py
"""
Configuration module for p2pchat.

Handles loading and validation of configuration from files and environment.
"""

import copy
import logging
import os
from typing import Any, Tuple

import yaml

from .robustness import ConfigError

logger = logging.getLogger(__name__)

DEFAULTS: dict[str, Any] = {
    "network": {
        "bind_host": "127.0.0.1",
        "listen_port": 6000,
        "rendezvous_host": None,
        "rendezvous_port": None,
        "max_datagram_size": 65535,
    },
    "chat": {
        "quit_token": ":quit",
    },
    "logging": {
        "level": "WARNING",
        "file": None,
    },
}


class Config:
    """Configuration manager for p2pchat."""

    def __init__(self, config_file: str | None = None):
        self.config_file = config_file or self._find_config_file()
        self.data: dict[str, Any] = copy.deepcopy(DEFAULTS)
        self.load()

    def _find_config_file(self) -> str:
        """Find configuration file in standard locations."""
        candidates = [
            "p2pchat.yaml",
            "p2pchat.yml",
            os.path.expanduser("~/.p2pchat/config.yaml"),
            "/etc/p2pchat/config.yaml",
        ]
        for candidate in candidates:
            if os.path.isfile(candidate):
                return candidate
        return "p2pchat.yaml"  # Default

    def load(self):
        """Load configuration from file and environment."""
        if os.path.isfile(self.config_file):
            try:
                with open(self.config_file) as f:
                    file_config = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                raise ConfigError(f"Failed to load config from {self.config_file}: {e}") from e
            if not isinstance(file_config, dict):
                raise ConfigError(f"Config file {self.config_file} must contain a mapping")
            self._merge(self.data, file_config)
            logger.info(f"Loaded config from {self.config_file}")

        self._load_from_env()
        self.validate()

    def _merge(self, base: dict, override: dict):
        for key, value in override.items():
            if isinstance(value, dict) and isinstance(base.get(key), dict):
                self._merge(base[key], value)
            else:
                base[key] = value

    def _load_from_env(self):
        """Load configuration from environment variables."""
        env_mappings = {
            "P2PCHAT_BIND_HOST": ("network", "bind_host"),
            "P2PCHAT_LISTEN_PORT": ("network", "listen_port"),
            "P2PCHAT_RENDEZVOUS_HOST": ("network", "rendezvous_host"),
            "P2PCHAT_RENDEZVOUS_PORT": ("network", "rendezvous_port"),
            "P2PCHAT_QUIT_TOKEN": ("chat", "quit_token"),
            "P2PCHAT_LOGLEVEL": ("logging", "level"),
        }

        for env_var, config_path in env_mappings.items():
            value = os.environ.get(env_var)
            if value is not None:
                self.set_nested(*config_path, value=value)
                logger.debug(f"Set {'.'.join(config_path)} = {value} from {env_var}")

    def set_nested(self, *keys, value):
        """Set a nested configuration value."""
        d = self.data
        for key in keys[:-1]:
            if key not in d:
                d[key] = {}
            d = d[key]
        d[keys[-1]] = value

    def get(self, *keys, default=None):
        """Get a nested configuration value."""
        d = self.data
        for key in keys:
            if isinstance(d, dict) and key in d:
                d = d[key]
            else:
                return default
        return d

    def _port(self, *keys, default=None) -> int:
        value = self.get(*keys, default=default)
        try:
            port = int(value)
        except (TypeError, ValueError):
            raise ConfigError(f"{'.'.join(keys)} must be an integer, got {value!r}") from None
        if not 0 <= port <= 65535:
            raise ConfigError(f"{'.'.join(keys)} out of range: {port}")
        return port

    def bind_address(self) -> Tuple[str, int]:
        return str(self.get("network", "bind_host")), self._port("network", "listen_port")

    def rendezvous_address(self) -> Tuple[str, int]:
        """Where announces go before a peer is known; defaults to the bind address."""
        host, port = self.bind_address()
        rhost = self.get("network", "rendezvous_host") or host
        if self.get("network", "rendezvous_port") is None:
            return str(rhost), port
        return str(rhost), self._port("network", "rendezvous_port")

    def quit_token(self) -> str:
        # both loops compare against stripped input
        return str(self.get("chat", "quit_token")).strip()

    def max_datagram_size(self) -> int:
        return int(self.get("network", "max_datagram_size"))

    def validate(self):
        """Validate configuration values."""
        self.bind_address()
        self.rendezvous_address()
        if not self.quit_token():
            raise ConfigError("chat.quit_token must not be empty")
        try:
            size = self.max_datagram_size()
        except (TypeError, ValueError):
            raise ConfigError("network.max_datagram_size must be an integer") from None
        if not 128 <= size <= 65535:
            raise ConfigError(f"network.max_datagram_size out of range: {size}")
        logger.debug("Configuration validated successfully")

    def save(self):
        """Save configuration to file."""
        directory = os.path.dirname(self.config_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.config_file, "w") as f:
            yaml.safe_dump(self.data, f, default_flow_style=False)
        logger.info(f"Saved config to {self.config_file}")

    def __getitem__(self, key):
        return self.data[key]

    def __setitem__(self, key, value):
        self.data[key] = value

    def __contains__(self, key):
        return key in self.data
