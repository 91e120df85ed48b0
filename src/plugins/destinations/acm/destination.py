"""
AWS ACM-ALB Destination Plugin - Implements DestinationPlugin for ACM.

Publishes certificates to AWS Certificate Manager, reusing an existing ACM
entry for the same domains when one exists, and optionally attaches the
result to ALB listeners.
"""

import logging
from typing import Any, Dict, List, Optional

from certificate import CertificateBundle
from plugins.base import (
    CertificateSummary,
    ListenerResult,
    PublishResult,
    PublishStatus,
    Tag,
)
from plugins.destinations.acm.config import AcmAlbConfig
from plugins.destinations.base import (
    CertificateStore,
    CertificateStoreError,
    DestinationPlugin,
)

logger = logging.getLogger(__name__)

MANAGED_BY_TAG = Tag(key="ManagedBy", value="cert-sync")


def select_candidate(
    summaries: List[CertificateSummary], domains: List[str]
) -> Optional[CertificateSummary]:
    """
    Pick the store entry to update from one page of summaries.

    A candidate is an entry whose primary domain is one of ``domains``.
    The first candidate covering every domain wins; otherwise the first
    candidate seen.
    """
    candidates = [summary for summary in summaries if summary.domain_name in domains]
    if not candidates:
        return None
    for candidate in candidates:
        if candidate.covers(domains):
            return candidate
    return candidates[0]


class AcmAlbDestination(DestinationPlugin):
    """
    Destination plugin that imports certificates into AWS ACM.

    One publish call lists ACM page by page until an entry for the
    bundle's domains turns up, then either re-imports into that entry or
    creates a new tagged one.
    """

    def __init__(self, store: Optional[CertificateStore] = None):
        self.store = store
        self.config = AcmAlbConfig()

    @property
    def name(self) -> str:
        return "acm_alb"

    @property
    def version(self) -> str:
        return "1.0.0"

    @classmethod
    def load_config_from_env(cls) -> Dict[str, Any]:
        """Load ACM destination configuration from environment variables."""
        return AcmAlbConfig.env_dict()

    async def initialize(self, config: Dict[str, Any]) -> None:
        """Initialize the plugin, creating the AWS clients if needed."""
        self.config = AcmAlbConfig.from_dict(config)

        if self.store is None:
            from plugins.destinations.acm.store import AcmCertificateStore

            self.store = AcmCertificateStore.from_config(self.config)

        if self.config.dry_run:
            logger.warning("Dry-run enabled, nothing will be sent to ACM or ALB")

        logger.debug(
            f"ACM destination initialized: region={self.config.region}, "
            f"listeners={len(self.config.load_balancers)}, "
            f"dry_run={self.config.dry_run}"
        )

    async def find_existing_certificate(
        self, bundle: CertificateBundle
    ) -> Optional[CertificateSummary]:
        """
        Find an existing store entry for the bundle's domains.

        Pages through the store and stops at the first page holding a
        match.

        Raises:
            CertificateStoreError: If a listing call fails
        """
        domains = list(bundle.domains)
        next_token: Optional[str] = None
        while True:
            page = await self.store.list_certificates(next_token)
            match = select_candidate(page.summaries, domains)
            if match is not None:
                return match
            if not page.next_token:
                return None
            next_token = page.next_token

    def _creation_tags(self, bundle: CertificateBundle) -> List[Tag]:
        return [
            Tag(key="Name", value=bundle.primary_domain),
            Tag(key="Domain", value=bundle.primary_domain),
            MANAGED_BY_TAG,
        ]

    async def _send_to_store(
        self, bundle: CertificateBundle, existing: Optional[CertificateSummary]
    ) -> str:
        if existing is not None:
            logger.info(f"Use existing certificate ARN {existing.certificate_id}")
            certificate_id = existing.certificate_id
            tags = None
        else:
            logger.info(f"Create new certificate for domain {bundle.primary_domain}")
            certificate_id = None
            tags = self._creation_tags(bundle)

        chain = bundle.chain_pem
        new_id = await self.store.import_certificate(
            certificate=bundle.certificate_pem.encode("utf-8"),
            private_key=bundle.private_key_pem.encode("utf-8"),
            chain=chain.encode("utf-8") if chain else None,
            certificate_id=certificate_id,
            tags=tags,
        )
        if not new_id:
            raise CertificateStoreError(
                f"Unable to create ACM certificate for cert with domains "
                f"{', '.join(bundle.domains)}"
            )
        return new_id

    async def _link_to_listeners(self, certificate_id: str) -> List[ListenerResult]:
        results = []
        for listener_id in self.config.load_balancers:
            result = ListenerResult(listener_id=listener_id)
            try:
                await self.store.add_listener_certificate(listener_id, certificate_id)
                result.success = True
                logger.info(f"Attached {certificate_id} to listener {listener_id}")
            except CertificateStoreError as e:
                result.error_message = str(e)
                logger.warning(
                    f"Unable to add certificate to ALB listener {listener_id}: {e}"
                )
            results.append(result)
        return results

    async def publish(self, bundle: CertificateBundle) -> PublishResult:
        """Import the bundle into ACM and attach it to the configured listeners."""
        result = PublishResult(domains=list(bundle.domains))
        logger.debug(f"TLS domains: {result.domains}")

        if self.store is None:
            result.error_message = "Destination not initialized"
            return result

        try:
            existing = await self.find_existing_certificate(bundle)
        except CertificateStoreError as e:
            result.error_message = f"Unable to list ACM certificates: {e}"
            logger.error(result.error_message)
            return result

        result.created = existing is None
        if self.config.dry_run:
            result.status = PublishStatus.DRY_RUN
            result.certificate_id = existing.certificate_id if existing else None
            result.error_message = "Dry-run enabled, not sending request to AWS"
            logger.info(
                f"{result.error_message} (domains: {', '.join(bundle.domains)}, "
                f"target: {result.certificate_id or 'new certificate'})"
            )
            return result

        try:
            result.certificate_id = await self._send_to_store(bundle, existing)
        except CertificateStoreError as e:
            result.error_message = f"Unable to send certificate to ACM: {e}"
            logger.error(result.error_message)
            return result

        logger.debug(f"ACM Cert ARN: {result.certificate_id}")
        result.status = PublishStatus.PUBLISHED
        result.listener_results = await self._link_to_listeners(result.certificate_id)
        return result

    async def health_check(self) -> tuple[bool, str]:
        """Check if the destination is configured."""
        if self.store is None:
            return False, "ACM destination is not initialized"
        if self.config.dry_run:
            return True, "ACM destination ready (dry-run)"
        return True, "ACM destination ready"
