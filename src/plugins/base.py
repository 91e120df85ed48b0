"""
Core plugin types and dataclasses.

This module contains shared types used across the plugin system.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple
import logging

logger = logging.getLogger(__name__)


class PublishStatus(Enum):
    """Outcome of publishing a bundle to a destination."""

    PUBLISHED = "published"
    DRY_RUN = "dry_run"
    FAILED = "failed"


@dataclass
class ListenerResult:
    """Result of attaching a certificate to one listener."""

    listener_id: str
    success: bool = False
    error_message: Optional[str] = None


@dataclass
class PublishResult:
    """Standard result from destination plugin execution."""

    status: PublishStatus = PublishStatus.FAILED
    domains: List[str] = field(default_factory=list)
    certificate_id: Optional[str] = None
    created: bool = False
    error_message: Optional[str] = None
    listener_results: List[ListenerResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status == PublishStatus.PUBLISHED

    @property
    def primary_domain(self) -> str:
        return self.domains[0] if self.domains else ""


@dataclass(frozen=True)
class Tag:
    """Key/value tag attached to a certificate store entry."""

    key: str
    value: str


@dataclass(frozen=True)
class CertificateSummary:
    """
    An existing certificate store entry, as returned by a listing.

    ``domain_name`` is the entry's primary domain; ``domain_names`` holds
    every domain the store associates with it (primary included).
    """

    certificate_id: str
    domain_name: str
    domain_names: Tuple[str, ...] = ()

    def covers(self, domains: List[str]) -> bool:
        """Check whether this entry covers every domain in ``domains``."""
        known = set(self.domain_names) | {self.domain_name}
        return all(domain in known for domain in domains)


@dataclass
class CertificatePage:
    """One page of a certificate store listing."""

    summaries: List[CertificateSummary] = field(default_factory=list)
    next_token: Optional[str] = None
