"""
Plugin Registry - Discovery and registration of plugins.

This module provides the central registry for source and destination
plugins, handling discovery, registration, and instantiation.
"""

from importlib.metadata import entry_points
from typing import Any, Dict, Optional, Type

from plugins.base import logger
from plugins.destinations.base import DestinationPlugin
from plugins.sources.base import SourcePlugin

SOURCE_ENTRY_POINT_GROUP = "certsync.sources"
DESTINATION_ENTRY_POINT_GROUP = "certsync.destinations"


class PluginRegistry:
    """
    Central registry for all plugins.

    Handles discovery, registration, and instantiation of source and
    destination plugins.
    """

    def __init__(self):
        # Registered plugin classes (not instantiated)
        self._source_plugins: Dict[str, Type[SourcePlugin]] = {}
        self._destination_plugins: Dict[str, Type[DestinationPlugin]] = {}

        # Cached plugin metadata (name, version) to avoid repeated instantiation
        self._source_plugin_info: Dict[str, Dict[str, str]] = {}
        self._destination_plugin_info: Dict[str, Dict[str, str]] = {}

        # Instantiated and initialized plugin instances
        self._source_instances: Dict[str, SourcePlugin] = {}
        self._destination_instances: Dict[str, DestinationPlugin] = {}

        # Plugin configurations loaded from environment
        self._source_plugin_configs: Dict[str, Dict[str, Any]] = {}
        self._destination_plugin_configs: Dict[str, Dict[str, Any]] = {}

    # Registration methods

    def register_source_plugin(self, plugin_class: Type[SourcePlugin]) -> None:
        """
        Register a source plugin class.

        Args:
            plugin_class: The SourcePlugin subclass to register
        """
        # Create temporary instance to get name/version (only once at registration)
        temp_instance = plugin_class()
        name = temp_instance.name
        version = temp_instance.version

        if name in self._source_plugins:
            logger.warning(f"Overwriting existing source plugin: {name}")

        self._source_plugins[name] = plugin_class
        self._source_plugin_info[name] = {"name": name, "version": version}
        self._source_plugin_configs[name] = plugin_class.load_config_from_env()
        logger.info(f"Registered source plugin: {name} v{version}")

    def register_destination_plugin(
        self, plugin_class: Type[DestinationPlugin]
    ) -> None:
        """
        Register a destination plugin class.

        Args:
            plugin_class: The DestinationPlugin subclass to register
        """
        temp_instance = plugin_class()
        name = temp_instance.name
        version = temp_instance.version

        if name in self._destination_plugins:
            logger.warning(f"Overwriting existing destination plugin: {name}")

        self._destination_plugins[name] = plugin_class
        self._destination_plugin_info[name] = {"name": name, "version": version}
        self._destination_plugin_configs[name] = plugin_class.load_config_from_env()
        logger.info(f"Registered destination plugin: {name} v{version}")

    # Instantiation methods

    async def get_source_plugin(
        self, name: str, config: Optional[Dict[str, Any]] = None
    ) -> SourcePlugin:
        """
        Get an initialized source plugin instance.

        Args:
            name: The plugin name to retrieve
            config: Optional configuration to pass to initialize()

        Returns:
            An initialized SourcePlugin instance

        Raises:
            ValueError: If the plugin name is not registered
        """
        if name not in self._source_plugins:
            available = ", ".join(self._source_plugins.keys()) or "none"
            raise ValueError(
                f"Unknown source plugin: {name}. Available plugins: {available}"
            )

        if name not in self._source_instances:
            plugin = self._source_plugins[name]()
            await plugin.initialize(config or {})
            self._source_instances[name] = plugin
            logger.info(f"Initialized source plugin: {name}")

        return self._source_instances[name]

    async def get_destination_plugin(
        self, name: str, config: Optional[Dict[str, Any]] = None
    ) -> DestinationPlugin:
        """
        Get an initialized destination plugin instance.

        Args:
            name: The plugin name to retrieve
            config: Optional configuration to pass to initialize()

        Returns:
            An initialized DestinationPlugin instance

        Raises:
            ValueError: If the plugin name is not registered
        """
        if name not in self._destination_plugins:
            available = ", ".join(self._destination_plugins.keys()) or "none"
            raise ValueError(
                f"Unknown destination plugin: {name}. Available plugins: {available}"
            )

        if name not in self._destination_instances:
            plugin = self._destination_plugins[name]()
            await plugin.initialize(config or {})
            self._destination_instances[name] = plugin
            logger.info(f"Initialized destination plugin: {name}")

        return self._destination_instances[name]

    # Discovery methods

    def list_source_plugins(self) -> list[str]:
        """List all registered source plugin names."""
        return list(self._source_plugins.keys())

    def list_destination_plugins(self) -> list[str]:
        """List all registered destination plugin names."""
        return list(self._destination_plugins.keys())

    def has_source_plugin(self, name: str) -> bool:
        """Check if a source plugin is registered."""
        return name in self._source_plugins

    def has_destination_plugin(self, name: str) -> bool:
        """Check if a destination plugin is registered."""
        return name in self._destination_plugins

    def get_source_plugin_info(self, name: str) -> Optional[Dict[str, str]]:
        """
        Get information about a registered source plugin.

        Args:
            name: The plugin name

        Returns:
            Dictionary with 'name' and 'version', or None if not found
        """
        return self._source_plugin_info.get(name)

    def get_destination_plugin_info(self, name: str) -> Optional[Dict[str, str]]:
        """
        Get information about a registered destination plugin.

        Args:
            name: The plugin name

        Returns:
            Dictionary with 'name' and 'version', or None if not found
        """
        return self._destination_plugin_info.get(name)

    def get_source_plugin_config(self, name: str) -> Dict[str, Any]:
        """Get the environment-loaded configuration for a source plugin."""
        return dict(self._source_plugin_configs.get(name, {}))

    def get_destination_plugin_config(self, name: str) -> Dict[str, Any]:
        """Get the environment-loaded configuration for a destination plugin."""
        return dict(self._destination_plugin_configs.get(name, {}))


# Global registry instance
_registry: Optional[PluginRegistry] = None


def get_registry() -> PluginRegistry:
    """Get the global plugin registry singleton."""
    global _registry
    if _registry is None:
        _registry = PluginRegistry()
    return _registry


def reset_registry() -> None:
    """Reset the global registry (mainly for testing)."""
    global _registry
    _registry = None


def register_builtin_plugins() -> None:
    """
    Register all built-in plugins and discover third-party ones via
    entry points.

    This function is called during application startup to register
    the default plugins that ship with the controller and any installed
    source/destination backends.
    """
    registry = get_registry()

    # Import and register built-in source plugins
    try:
        from plugins.sources.kubernetes import KubernetesSecretSource

        registry.register_source_plugin(KubernetesSecretSource)
    except ImportError as e:
        logger.warning(f"Could not load Kubernetes source plugin: {e}")

    # Import and register built-in destination plugins
    try:
        from plugins.destinations.acm import AcmAlbDestination

        registry.register_destination_plugin(AcmAlbDestination)
    except ImportError as e:
        logger.warning(f"Could not load ACM destination plugin: {e}")

    # Discover and register third-party plugins via entry points
    for ep in entry_points(group=SOURCE_ENTRY_POINT_GROUP):
        try:
            registry.register_source_plugin(ep.load())
        except Exception as e:
            logger.warning(f"Could not load source plugin {ep.name}: {e}")

    for ep in entry_points(group=DESTINATION_ENTRY_POINT_GROUP):
        try:
            registry.register_destination_plugin(ep.load())
        except Exception as e:
            logger.warning(f"Could not load destination plugin {ep.name}: {e}")
