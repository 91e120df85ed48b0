"""
Destination Plugin Base - Abstract interfaces for certificate destinations.

- CertificateStore: the narrow API of a managed certificate service
  (paged listing, import, listener attachment)
- DestinationPlugin: what the controller calls for every bundle
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from certificate import CertificateBundle
from plugins.base import CertificatePage, PublishResult, Tag


class CertificateStoreError(Exception):
    """Raised when a certificate store call fails."""


class CertificateStore(ABC):
    """Client for a managed certificate store and its load balancers."""

    @abstractmethod
    async def list_certificates(
        self, next_token: Optional[str] = None
    ) -> CertificatePage:
        """
        Fetch one page of existing certificates.

        Args:
            next_token: Continuation token from the previous page, or None
                for the first page

        Returns:
            The page; ``next_token`` is None on the last page.

        Raises:
            CertificateStoreError: If the call fails
        """
        pass

    @abstractmethod
    async def import_certificate(
        self,
        certificate: bytes,
        private_key: bytes,
        chain: Optional[bytes] = None,
        certificate_id: Optional[str] = None,
        tags: Optional[List[Tag]] = None,
    ) -> Optional[str]:
        """
        Import a certificate, replacing ``certificate_id`` when given.

        Returns:
            The identifier of the imported entry, or None if the store
            did not return one.

        Raises:
            CertificateStoreError: If the call fails
        """
        pass

    @abstractmethod
    async def add_listener_certificate(
        self, listener_id: str, certificate_id: str
    ) -> None:
        """
        Attach a certificate to a load balancer listener.

        Raises:
            CertificateStoreError: If the call fails
        """
        pass


class DestinationPlugin(ABC):
    """
    Abstract base class for destination plugins.

    Destination plugins publish certificate bundles to an external
    certificate manager. Failures are reported through the returned
    PublishResult rather than raised.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this plugin (e.g., 'acm_alb')."""
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

        Args:
            config: Plugin-specific configuration dictionary
        """
        pass

    @abstractmethod
    async def publish(self, bundle: CertificateBundle) -> PublishResult:
        """
        Publish a bundle.

        Args:
            bundle: The parsed certificate bundle

        Returns:
            PublishResult describing the outcome.
        """
        pass

    @abstractmethod
    async def health_check(self) -> tuple[bool, str]:
        """
        Check if the destination is healthy.

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
