"""
Source Plugin Base - Abstract interfaces for certificate sources.

A source turns a stream of raw secret events into parsed certificate
bundles. Two seams are defined here:

- SecretEventStream: the raw event feed from a cluster API
- SourcePlugin: what the controller consumes (a lazy bundle sequence)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Dict, Optional

from certificate import CertificateBundle


class SourceError(Exception):
    """Raised when the event stream itself fails (transport/protocol)."""


class SourceAuthorizationError(SourceError):
    """Raised when the cluster API denies access to the watched resources."""


class SecretEventType(Enum):
    """Kinds of secret change events."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    OTHER = "OTHER"

    @classmethod
    def from_watch_type(cls, value: Optional[str]) -> "SecretEventType":
        """Map a watch API event type string, falling back to OTHER."""
        try:
            return cls(str(value).upper())
        except ValueError:
            return cls.OTHER


@dataclass
class SecretEvent:
    """A change to a secret, as delivered by a SecretEventStream."""

    event_type: SecretEventType
    name: str
    namespace: str
    type_label: str
    data: Optional[Dict[str, bytes]] = field(default=None, repr=False)

    @property
    def qualified_name(self) -> str:
        return f"{self.namespace}:{self.name}"


class SecretEventStream(ABC):
    """
    Raw feed of secret events from the cluster.

    Implementations filter server-side on the secret type label where the
    backend supports it. A stream ends when the underlying watch ends and
    must be re-opened by calling events() again.
    """

    @abstractmethod
    def events(self, type_label: str) -> AsyncIterator[SecretEvent]:
        """
        Open a watch and yield events as they arrive.

        Args:
            type_label: Secret type to filter on (e.g. 'kubernetes.io/tls')

        Raises:
            SourceError: If the watch fails
        """
        pass

    async def close(self) -> None:
        """Interrupt any open watch."""
        pass


class SourcePlugin(ABC):
    """
    Abstract base class for source plugins.

    Source plugins watch an external system for certificates and hand
    them to the controller as parsed bundles.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this plugin (e.g., 'kubernetes_secrets')."""
        pass

    @property
    @abstractmethod
    def version(self) -> str:
        """Plugin version string."""
        pass

    @abstractmethod
    async def initialize(self, config: Dict[str, Any]) -> None:
        """
        Initialize the plugin with configuration.

        Called once when the plugin is loaded. Use this to set up
        connections, validate configuration, etc.

        Args:
            config: Plugin-specific configuration dictionary
        """
        pass

    @abstractmethod
    def watch(self) -> AsyncIterator[CertificateBundle]:
        """
        Watch for certificates.

        Returns a lazy sequence that yields one bundle per valid event and
        ends when the underlying watch ends. Invalid events are reported
        and skipped without ending the sequence.

        Raises:
            SourceError: If the underlying watch fails
        """
        pass

    @abstractmethod
    async def stop(self) -> None:
        """Stop watching and release connections."""
        pass

    @abstractmethod
    async def health_check(self) -> tuple[bool, str]:
        """
        Check if the source is healthy.

        Returns:
            Tuple of (is_healthy, status_message).
        """
        pass

    @classmethod
    def load_config_from_env(cls) -> Dict[str, Any]:
        """
        Load plugin-specific configuration from environment variables.

        Override this method in subclasses to define how the plugin
        loads its configuration from the environment.

        Returns:
            Dictionary of configuration values for this plugin.
        """
        return {}

    def set_event_bus(self, event_bus: Any) -> None:
        """
        Set the event bus for plugins that report rejected events.

        Args:
            event_bus: The EventBus instance
        """
        pass
