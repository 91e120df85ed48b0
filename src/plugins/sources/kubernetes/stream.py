"""
Kubernetes secret event stream.

Wraps the blocking ``kubernetes`` watch API so that each event is awaited
from the asyncio loop without blocking it.
"""

import asyncio
import base64
import binascii
import functools
import logging
import threading
from typing import Any, AsyncIterator, Callable, Dict, Optional

from kubernetes import client, config, watch
from kubernetes.client import ApiException
from kubernetes.config import ConfigException

from plugins.sources.base import (
    SecretEvent,
    SecretEventStream,
    SecretEventType,
    SourceAuthorizationError,
    SourceError,
)

logger = logging.getLogger(__name__)

_END_OF_STREAM = object()


def load_kubernetes_client(kubeconfig: Optional[str] = None) -> client.CoreV1Api:
    """
    Build a CoreV1Api client.

    Uses the in-cluster service account when running in a pod, otherwise
    the kubeconfig file (explicit path, $KUBECONFIG or ~/.kube/config).
    """
    if kubeconfig:
        config.load_kube_config(config_file=kubeconfig)
    else:
        try:
            config.load_incluster_config()
        except ConfigException:
            config.load_kube_config()
    return client.CoreV1Api()


def decode_secret_data(data: Optional[Dict[str, str]]) -> Optional[Dict[str, bytes]]:
    """Decode the base64 values of a Secret's ``data`` field."""
    if data is None:
        return None

    decoded: Dict[str, bytes] = {}
    for key, value in data.items():
        try:
            decoded[key] = base64.b64decode(value or "", validate=True)
        except (binascii.Error, ValueError):
            logger.warning(f"Secret key '{key}' is not valid base64, ignoring it")
    return decoded


def _shutdown_response(response: Any) -> None:
    """Shut down the socket under a streaming urllib3 response."""
    try:
        response.shutdown()
    except (ValueError, RuntimeError) as e:
        # Already released back to the pool: the reader is not blocked on it
        logger.debug(f"Watch response already released: {e}")


class KubernetesSecretEventStream(SecretEventStream):
    """
    SecretEventStream backed by the Kubernetes watch API.

    The last seen resourceVersion is kept across streams so that a watch
    ending on its server-side timeout resumes where it left off instead
    of re-listing every secret.

    The watch reads its HTTP response in a worker thread. ``close()`` shuts
    that response down so the thread returns straight away rather than
    waiting for the next event or the server-side timeout.
    """

    def __init__(
        self,
        core_api: client.CoreV1Api,
        namespace: Optional[str] = None,
        timeout_seconds: int = 300,
    ):
        self.core_api = core_api
        self.namespace = namespace or None
        self.timeout_seconds = timeout_seconds
        self.resource_version: Optional[str] = None
        self._active_watcher: Optional[watch.Watch] = None
        self._active_response: Any = None
        self._closed = False
        self._watcher_lock = threading.Lock()

    def _recording_response(self, list_func: Callable) -> Callable:
        """Wrap a list call so the streaming response it returns is kept."""

        @functools.wraps(list_func)
        def call(*args, **kwargs):
            response = list_func(*args, **kwargs)
            with self._watcher_lock:
                self._active_response = response
                closed = self._closed
            if closed:
                _shutdown_response(response)
            return response

        return call

    def _open_stream(self, type_label: str, watcher: watch.Watch):
        kwargs: Dict[str, Any] = {
            "field_selector": f"type={type_label}",
            "timeout_seconds": self.timeout_seconds,
        }
        if self.resource_version:
            kwargs["resource_version"] = self.resource_version

        if self.namespace:
            return watcher.stream(
                self._recording_response(self.core_api.list_namespaced_secret),
                namespace=self.namespace,
                **kwargs,
            )
        return watcher.stream(
            self._recording_response(self.core_api.list_secret_for_all_namespaces),
            **kwargs,
        )

    def _to_event(self, raw_event: Dict[str, Any]) -> Optional[SecretEvent]:
        secret = raw_event.get("object")
        if secret is None:
            return None

        metadata = getattr(secret, "metadata", None)
        if metadata is not None and metadata.resource_version:
            self.resource_version = metadata.resource_version

        return SecretEvent(
            event_type=SecretEventType.from_watch_type(raw_event.get("type")),
            name=getattr(metadata, "name", None) or "",
            namespace=getattr(metadata, "namespace", None) or "",
            type_label=getattr(secret, "type", None) or "",
            data=decode_secret_data(getattr(secret, "data", None)),
        )

    async def events(self, type_label: str) -> AsyncIterator[SecretEvent]:
        watcher = watch.Watch()
        with self._watcher_lock:
            if self._closed:
                return
            self._active_watcher = watcher

        scope = self.namespace or "all namespaces"
        logger.info(
            f"Watching secrets of type {type_label} in {scope} "
            f"from resourceVersion {self.resource_version}"
        )

        try:
            stream = self._open_stream(type_label, watcher)
            while True:
                raw_event = await asyncio.to_thread(next, stream, _END_OF_STREAM)
                if raw_event is _END_OF_STREAM:
                    break
                event = self._to_event(raw_event)
                if event is not None:
                    yield event
        except ApiException as e:
            if e.status == 410:
                # Compacted past our resourceVersion: the next watch re-lists
                logger.warning("Watch resource version expired, will re-list")
                self.resource_version = None
                return
            if e.status in (401, 403):
                raise SourceAuthorizationError(
                    f"Kubernetes API denied the secret watch (status={e.status}). "
                    "Check RBAC and service account permissions."
                ) from e
            raise SourceError(f"Kubernetes watch failed: {e}") from e
        except Exception as e:
            if self._closed:
                logger.debug(f"Watch interrupted by close: {e}")
                return
            raise SourceError(f"Kubernetes watch failed: {e}") from e
        finally:
            watcher.stop()
            with self._watcher_lock:
                if self._active_watcher is watcher:
                    self._active_watcher = None
                    self._active_response = None

    async def close(self) -> None:
        with self._watcher_lock:
            self._closed = True
            active_watcher = self._active_watcher
            response = self._active_response
        if active_watcher is not None:
            active_watcher.stop()
        if response is not None:
            _shutdown_response(response)
