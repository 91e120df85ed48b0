"""
Kubernetes Secret Source Plugin - Implements SourcePlugin for TLS secrets.

Watches ``kubernetes.io/tls`` secrets and converts every added or modified
secret into a CertificateBundle. A bad secret is reported and skipped; it
never ends the watch.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Optional

from certificate import (
    CertificateBundle,
    CertificateParseError,
    parse_certificate,
    split_concatenated_pem,
)
from events import EventBus, ReconcileEvent
from plugins.sources.base import (
    SecretEvent,
    SecretEventStream,
    SecretEventType,
    SourcePlugin,
)

logger = logging.getLogger(__name__)

TLS_SECRET_TYPE = "kubernetes.io/tls"
TLS_CERT_KEY = "tls.crt"
TLS_PRIVATE_KEY_KEY = "tls.key"

_ELIGIBLE_EVENT_TYPES = (SecretEventType.ADDED, SecretEventType.MODIFIED)


class SecretPayloadError(ValueError):
    """Raised when a secret's payload cannot be turned into a bundle."""


@dataclass
class KubernetesSourceConfig:
    """Configuration for the Kubernetes secret source."""

    namespace: str = ""  # empty = all namespaces
    secret_type: str = TLS_SECRET_TYPE
    watch_timeout: int = 300  # seconds before the server ends a watch
    kubeconfig: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KubernetesSourceConfig":
        return cls(
            namespace=data.get("namespace") or "",
            secret_type=data.get("secret_type") or TLS_SECRET_TYPE,
            watch_timeout=int(data.get("watch_timeout", 300)),
            kubeconfig=data.get("kubeconfig") or None,
        )


def _decode_text(data: Dict[str, bytes], key: str) -> str:
    if key not in data:
        raise SecretPayloadError(f"Unable to get '{key}' from secret")
    try:
        return data[key].decode("utf-8")
    except UnicodeDecodeError as e:
        raise SecretPayloadError(f"Secret value '{key}' is not valid UTF-8") from e


def bundle_from_secret_data(data: Dict[str, bytes]) -> CertificateBundle:
    """
    Build a CertificateBundle from a TLS secret payload.

    The ``tls.crt`` value may hold the leaf followed by its chain; the first
    PEM block is the leaf, the rest form the chain.

    Raises:
        SecretPayloadError: If a key is missing or not UTF-8 text
        CertificateParseError: If the leaf certificate cannot be parsed
    """
    certificate_text = _decode_text(data, TLS_CERT_KEY)
    private_key = _decode_text(data, TLS_PRIVATE_KEY_KEY)

    blocks = split_concatenated_pem(certificate_text)
    if not blocks:
        raise CertificateParseError(f"No PEM certificate found in '{TLS_CERT_KEY}'")

    return parse_certificate(blocks[0], private_key, blocks[1:])


class KubernetesSecretSource(SourcePlugin):
    """
    Source plugin that watches Kubernetes TLS secrets.

    Holds no state between events apart from the open watch.
    """

    def __init__(self, stream: Optional[SecretEventStream] = None):
        self.stream = stream
        self.config = KubernetesSourceConfig()
        self._event_bus: Optional[EventBus] = None
        self._watching = False

    @property
    def name(self) -> str:
        return "kubernetes_secrets"

    @property
    def version(self) -> str:
        return "1.0.0"

    @classmethod
    def load_config_from_env(cls) -> Dict[str, Any]:
        """Load Kubernetes source configuration from environment variables."""
        return {
            "namespace": os.getenv("WATCH_NAMESPACE", ""),
            "secret_type": os.getenv("SECRET_TYPE", TLS_SECRET_TYPE),
            "watch_timeout": int(os.getenv("WATCH_TIMEOUT", "300")),
            "kubeconfig": os.getenv("KUBECONFIG") or None,
        }

    async def initialize(self, config: Dict[str, Any]) -> None:
        """Initialize the plugin, creating the Kubernetes client if needed."""
        self.config = KubernetesSourceConfig.from_dict(config)

        if self.stream is None:
            from plugins.sources.kubernetes.stream import (
                KubernetesSecretEventStream,
                load_kubernetes_client,
            )

            self.stream = KubernetesSecretEventStream(
                core_api=load_kubernetes_client(self.config.kubeconfig),
                namespace=self.config.namespace,
                timeout_seconds=self.config.watch_timeout,
            )

        logger.debug(
            f"Kubernetes secret source initialized: "
            f"namespace={self.config.namespace or '*'}, "
            f"secret_type={self.config.secret_type}, "
            f"watch_timeout={self.config.watch_timeout}s"
        )

    def set_event_bus(self, event_bus: EventBus) -> None:
        """Set the event bus used to report rejected secrets."""
        self._event_bus = event_bus

    def convert(self, event: SecretEvent) -> Optional[CertificateBundle]:
        """
        Convert one secret event into a bundle.

        Returns:
            The bundle, or None if the event is not eligible.

        Raises:
            SecretPayloadError: If the payload is unusable
            CertificateParseError: If the certificate cannot be parsed
        """
        if event.event_type not in _ELIGIBLE_EVENT_TYPES:
            return None
        if event.type_label != self.config.secret_type:
            return None

        logger.info(f"Pick certificate {event.qualified_name}")
        if event.data is None:
            raise SecretPayloadError("No data found in secret")

        bundle = bundle_from_secret_data(event.data)
        logger.info(f"Received cert from secret {event.qualified_name}")
        return bundle

    async def _reject(self, event: SecretEvent, reason: str) -> None:
        logger.error(f"Error while receiving TLS from {event.qualified_name}: {reason}")
        if self._event_bus:
            await self._event_bus.publish(
                ReconcileEvent.rejected(event.qualified_name, reason)
            )

    async def watch(self) -> AsyncIterator[CertificateBundle]:
        if self.stream is None:
            raise RuntimeError("Source not initialized")

        self._watching = True
        try:
            async for event in self.stream.events(self.config.secret_type):
                try:
                    bundle = self.convert(event)
                except (SecretPayloadError, CertificateParseError) as e:
                    await self._reject(event, str(e))
                    continue

                if bundle is not None:
                    logger.info(
                        f"Will try to synchronize cert with domains "
                        f"{', '.join(bundle.domains)}"
                    )
                    yield bundle
        finally:
            self._watching = False

    async def stop(self) -> None:
        """Stop the watch."""
        logger.info("Stopping Kubernetes secret source")
        if self.stream is not None:
            await self.stream.close()

    async def health_check(self) -> tuple[bool, str]:
        """Check if the source is watching."""
        if self.stream is None:
            return False, "Kubernetes source is not initialized"
        if self._watching:
            return True, "Watching secrets"
        return False, "No active watch"
