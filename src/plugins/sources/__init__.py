"""
Source plugins package.

Source plugins watch an external system for TLS material and yield parsed
certificate bundles (Kubernetes secrets, etc.)
"""

from plugins.sources.base import (
    SecretEvent,
    SecretEventStream,
    SecretEventType,
    SourceAuthorizationError,
    SourceError,
    SourcePlugin,
)

__all__ = [
    "SecretEvent",
    "SecretEventStream",
    "SecretEventType",
    "SourceAuthorizationError",
    "SourceError",
    "SourcePlugin",
]
