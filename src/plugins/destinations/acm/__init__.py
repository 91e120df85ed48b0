"""
AWS ACM-ALB Destination Plugin.

This plugin imports certificates into ACM and attaches them to ALB listeners.
"""

from plugins.destinations.acm.config import AcmAlbConfig, AwsCredentials, ProxyConfig
from plugins.destinations.acm.destination import (
    MANAGED_BY_TAG,
    AcmAlbDestination,
    select_candidate,
)

__all__ = [
    "AcmAlbConfig",
    "AwsCredentials",
    "ProxyConfig",
    "MANAGED_BY_TAG",
    "AcmAlbDestination",
    "select_candidate",
]
