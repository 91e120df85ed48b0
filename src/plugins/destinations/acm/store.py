"""
AWS certificate store - ACM for certificates, ELBv2 for listeners.

boto3 clients are blocking, so every call runs in a worker thread and is
awaited from the event loop.
"""

import asyncio
import functools
import logging
from typing import Any, Callable, Dict, List, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from plugins.base import CertificatePage, CertificateSummary, Tag
from plugins.destinations.acm.config import AcmAlbConfig
from plugins.destinations.base import CertificateStore, CertificateStoreError

logger = logging.getLogger(__name__)


def build_clients(config: AcmAlbConfig) -> tuple[Any, Any]:
    """
    Create the ACM and ELBv2 clients for a configuration.

    Static credentials are handed to the session directly; without them
    boto3's default provider chain applies. Proxies come from the config
    or, failing that, the HTTP(S)_PROXY environment variables.
    """
    session_kwargs: Dict[str, Any] = {}
    if config.region:
        session_kwargs["region_name"] = config.region
    if config.credentials:
        logger.debug(
            f"Using credentials from config, access_key: "
            f"{config.credentials.access_key}"
        )
        session_kwargs["aws_access_key_id"] = config.credentials.access_key
        session_kwargs["aws_secret_access_key"] = config.credentials.secret_key

    session = boto3.session.Session(**session_kwargs)

    config_kwargs: Dict[str, Any] = {
        "connect_timeout": config.connect_timeout,
        "read_timeout": config.read_timeout,
        "retries": {"total_max_attempts": config.max_attempts, "mode": "standard"},
    }
    proxies = config.proxy.resolve()
    if proxies:
        logger.info(f"Using proxies for AWS calls: {', '.join(proxies.values())}")
        config_kwargs["proxies"] = proxies
    client_config = BotoConfig(**config_kwargs)

    client_kwargs: Dict[str, Any] = {"config": client_config}
    if config.endpoint_url:
        client_kwargs["endpoint_url"] = config.endpoint_url

    acm_client = session.client("acm", **client_kwargs)
    elbv2_client = session.client("elbv2", **client_kwargs)
    return acm_client, elbv2_client


class AcmCertificateStore(CertificateStore):
    """CertificateStore backed by AWS Certificate Manager and ELBv2."""

    def __init__(
        self,
        acm_client: Any,
        elbv2_client: Any,
        page_size: Optional[int] = None,
        key_types: Optional[List[str]] = None,
    ):
        self.acm_client = acm_client
        self.elbv2_client = elbv2_client
        self.page_size = page_size
        self.key_types = list(key_types or [])

    @classmethod
    def from_config(cls, config: AcmAlbConfig) -> "AcmCertificateStore":
        acm_client, elbv2_client = build_clients(config)
        return cls(
            acm_client,
            elbv2_client,
            page_size=config.page_size,
            key_types=config.key_types,
        )

    async def _call(
        self, method: Callable[..., Dict[str, Any]], **kwargs
    ) -> Dict[str, Any]:
        try:
            return await asyncio.to_thread(functools.partial(method, **kwargs))
        except (ClientError, BotoCoreError) as e:
            raise CertificateStoreError(str(e)) from e

    async def list_certificates(
        self, next_token: Optional[str] = None
    ) -> CertificatePage:
        kwargs: Dict[str, Any] = {}
        if next_token:
            kwargs["NextToken"] = next_token
        if self.page_size:
            kwargs["MaxItems"] = self.page_size
        if self.key_types:
            kwargs["Includes"] = {"keyTypes": self.key_types}

        response = await self._call(self.acm_client.list_certificates, **kwargs)

        summaries = []
        for item in response.get("CertificateSummaryList", []):
            arn = item.get("CertificateArn")
            domain_name = item.get("DomainName")
            if not arn or not domain_name:
                continue
            summaries.append(
                CertificateSummary(
                    certificate_id=arn,
                    domain_name=domain_name,
                    domain_names=tuple(
                        item.get("SubjectAlternativeNameSummaries") or [domain_name]
                    ),
                )
            )

        return CertificatePage(
            summaries=summaries,
            next_token=response.get("NextToken") or None,
        )

    async def import_certificate(
        self,
        certificate: bytes,
        private_key: bytes,
        chain: Optional[bytes] = None,
        certificate_id: Optional[str] = None,
        tags: Optional[List[Tag]] = None,
    ) -> Optional[str]:
        kwargs: Dict[str, Any] = {
            "Certificate": certificate,
            "PrivateKey": private_key,
        }
        if chain:
            kwargs["CertificateChain"] = chain
        if certificate_id:
            kwargs["CertificateArn"] = certificate_id
        if tags:
            kwargs["Tags"] = [{"Key": tag.key, "Value": tag.value} for tag in tags]

        response = await self._call(self.acm_client.import_certificate, **kwargs)
        return response.get("CertificateArn")

    async def add_listener_certificate(
        self, listener_id: str, certificate_id: str
    ) -> None:
        await self._call(
            self.elbv2_client.add_listener_certificates,
            ListenerArn=listener_id,
            Certificates=[{"CertificateArn": certificate_id}],
        )
