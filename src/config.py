"""
Configuration module for certsync.

Loads configuration from environment variables or a YAML config file.
Plugin-specific settings (Kubernetes, AWS) are passed through to the
plugins as plain mappings; each plugin owns their interpretation.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from validation import validate_config

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "/config.yml"
DEFAULT_SOURCE_PLUGIN = "kubernetes_secrets"
DEFAULT_DESTINATION_PLUGIN = "acm_alb"

# Top-level sections accepted as shorthand for plugin configs
_PLUGIN_SECTION_ALIASES = {
    "kubernetes": DEFAULT_SOURCE_PLUGIN,
    "aws": DEFAULT_DESTINATION_PLUGIN,
}


def _overlay(base: Any, data: Dict[str, Any]) -> Any:
    """Return a copy of dataclass ``base`` with the known keys of ``data`` applied."""
    known = {f.name for f in fields(base)}
    values = asdict(base)
    values.update({k: v for k, v in data.items() if k in known})
    return type(base)(**values)


@dataclass
class ControllerConfig:
    """Controller reconciliation loop configuration."""

    pacing_delay: float = 1.0  # seconds between published bundles
    history_size: int = 100

    # Exponential backoff for re-establishing a failed watch
    backoff_base_delay: float = 1.0  # base delay in seconds
    backoff_max_delay: float = 60.0  # max delay in seconds
    backoff_jitter_factor: float = 0.1  # ±10% jitter

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            pacing_delay=float(os.getenv("PACING_DELAY", "1.0")),
            history_size=int(os.getenv("HISTORY_SIZE", "100")),
            backoff_base_delay=float(os.getenv("BACKOFF_BASE_DELAY", "1.0")),
            backoff_max_delay=float(os.getenv("BACKOFF_MAX_DELAY", "60.0")),
            backoff_jitter_factor=float(os.getenv("BACKOFF_JITTER_FACTOR", "0.1")),
        )


@dataclass
class APIConfig:
    """Status API server configuration."""

    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            enabled=os.getenv("API_ENABLED", "true").lower() == "true",
            host=os.getenv("API_HOST", "0.0.0.0"),
            port=int(os.getenv("API_PORT", "8000")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


@dataclass
class PluginConfig:
    """Plugin selection and plugin-specific configuration."""

    source: str = DEFAULT_SOURCE_PLUGIN
    destination: str = DEFAULT_DESTINATION_PLUGIN

    # Plugin-specific configurations keyed by plugin name
    plugin_configs: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        # Load plugin configs from JSON environment variable
        plugin_configs = {}
        if os.getenv("PLUGIN_CONFIGS"):
            try:
                plugin_configs = json.loads(os.getenv("PLUGIN_CONFIGS"))
            except json.JSONDecodeError as e:
                logger.warning(f"Ignoring invalid PLUGIN_CONFIGS: {e}")

        return cls(
            source=os.getenv("SOURCE_PLUGIN", DEFAULT_SOURCE_PLUGIN),
            destination=os.getenv("DESTINATION_PLUGIN", DEFAULT_DESTINATION_PLUGIN),
            plugin_configs=plugin_configs,
        )

    def get_plugin_config(self, plugin_name: str) -> Dict[str, Any]:
        """Get configuration for a specific plugin."""
        return dict(self.plugin_configs.get(plugin_name, {}))


@dataclass
class Config:
    """Main configuration object."""

    controller: ControllerConfig
    api: APIConfig
    plugins: PluginConfig

    @classmethod
    def from_env(cls):
        """Load all configuration from environment variables."""
        return cls(
            controller=ControllerConfig.from_env(),
            api=APIConfig.from_env(),
            plugins=PluginConfig.from_env(),
        )

    @classmethod
    def default(cls):
        """Return default configuration."""
        return cls(
            controller=ControllerConfig(),
            api=APIConfig(),
            plugins=PluginConfig(),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any], base: Optional["Config"] = None):
        """
        Build configuration from a parsed config file.

        Values from ``data`` override those of ``base`` (defaults when
        not given).

        Raises:
            ValueError: If ``data`` does not match the config schema
        """
        is_valid, error = validate_config(data)
        if not is_valid:
            raise ValueError(f"Invalid configuration: {error}")

        base = base or cls.default()

        plugin_configs = {
            name: dict(values) for name, values in base.plugins.plugin_configs.items()
        }
        for alias, plugin_name in _PLUGIN_SECTION_ALIASES.items():
            if data.get(alias):
                plugin_configs.setdefault(plugin_name, {}).update(data[alias])
        for plugin_name, values in (data.get("plugins") or {}).items():
            plugin_configs.setdefault(plugin_name, {}).update(values)

        return cls(
            controller=_overlay(base.controller, data.get("controller") or {}),
            api=_overlay(base.api, data.get("api") or {}),
            plugins=PluginConfig(
                source=data.get("source", base.plugins.source),
                destination=data.get("destination", base.plugins.destination),
                plugin_configs=plugin_configs,
            ),
        )

    @classmethod
    def from_file(cls, path: str):
        """Load configuration from a YAML file, on top of the environment."""
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        logger.info(f"Config file: {path}")
        return cls.from_dict(data, base=cls.from_env())


# Global config instance
config: Optional[Config] = None


def load_config() -> Config:
    """Load configuration (singleton pattern)."""
    global config
    if config is None:
        path = os.getenv("CONFIG_PATH", DEFAULT_CONFIG_PATH)
        if Path(path).is_file():
            config = Config.from_file(path)
        else:
            config = Config.from_env()
    return config


def get_config() -> Config:
    """Get the current configuration."""
    if config is None:
        return load_config()
    return config


def reset_config() -> None:
    """Reset configuration (mainly for testing)."""
    global config
    config = None
