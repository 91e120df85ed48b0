"""
Destination plugins package.

Destination plugins publish certificate bundles to a certificate manager
(AWS ACM with ALB listeners, etc.)
"""

from plugins.destinations.base import (
    CertificateStore,
    CertificateStoreError,
    DestinationPlugin,
)

__all__ = ["CertificateStore", "CertificateStoreError", "DestinationPlugin"]
