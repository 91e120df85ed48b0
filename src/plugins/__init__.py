"""
Plugin system for certsync.

This package provides the plugin architecture for certificate sources and
destinations.
"""

from plugins.base import (
    CertificatePage,
    CertificateSummary,
    ListenerResult,
    PublishResult,
    PublishStatus,
    Tag,
)
from plugins.registry import PluginRegistry, get_registry

__all__ = [
    "CertificatePage",
    "CertificateSummary",
    "ListenerResult",
    "PublishResult",
    "PublishStatus",
    "Tag",
    "PluginRegistry",
    "get_registry",
]
