"""
Kubernetes Source Plugin.

This plugin watches TLS secrets in a Kubernetes cluster.
"""

from plugins.sources.kubernetes.source import (
    TLS_SECRET_TYPE,
    KubernetesSecretSource,
    KubernetesSourceConfig,
    SecretPayloadError,
    bundle_from_secret_data,
)

__all__ = [
    "TLS_SECRET_TYPE",
    "KubernetesSecretSource",
    "KubernetesSourceConfig",
    "SecretPayloadError",
    "bundle_from_secret_data",
]
