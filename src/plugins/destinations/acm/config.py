"""
Configuration for the AWS ACM / ALB destination.

Accepts the ``aws:`` section of the config file, e.g.::

    aws:
      region: eu-west-3
      credentials:
        access_key: AKIA...
        secret_key: ...
      load_balancers:
        - arn:aws:elasticloadbalancing:...:listener/app/my-alb/...
      dry_run: false
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


@dataclass
class AwsCredentials:
    """Static AWS credentials. Without them the default provider chain is used."""

    access_key: str
    secret_key: str = field(repr=False)  # Never log the secret key


@dataclass
class ProxyConfig:
    """HTTP(S) proxies for AWS API calls."""

    http: Optional[str] = None
    https: Optional[str] = None

    def resolve(self) -> Dict[str, str]:
        """
        Resolve the proxies to use, falling back to the environment.

        The HTTPS proxy defaults to the HTTP proxy when only the latter
        is set.

        Returns:
            A botocore ``proxies`` mapping (possibly empty).
        """
        http_proxy = self.http or os.getenv("HTTP_PROXY") or os.getenv("http_proxy")
        https_proxy = (
            self.https
            or os.getenv("HTTPS_PROXY")
            or os.getenv("https_proxy")
            or http_proxy
        )

        proxies: Dict[str, str] = {}
        if http_proxy:
            proxies["http"] = http_proxy
        if https_proxy:
            proxies["https"] = https_proxy
        return proxies


@dataclass
class AcmAlbConfig:
    """AWS ACM destination configuration."""

    region: Optional[str] = None
    credentials: Optional[AwsCredentials] = None
    load_balancers: List[str] = field(default_factory=list)  # listener ARNs
    dry_run: bool = False
    proxy: ProxyConfig = field(default_factory=ProxyConfig)
    # ACM only lists RSA_2048 certificates unless other key types are requested
    key_types: List[str] = field(default_factory=list)
    page_size: Optional[int] = None
    connect_timeout: int = 10  # seconds
    read_timeout: int = 30  # seconds
    max_attempts: int = 1  # total attempts per call, including the first
    endpoint_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AcmAlbConfig":
        """Build the configuration from a plain (YAML/JSON) mapping."""
        region = data.get("region")
        # Older config files give the region as a one-element list
        if isinstance(region, (list, tuple)):
            region = region[0] if region else None

        credentials = None
        creds = data.get("credentials")
        if creds:
            credentials = AwsCredentials(
                access_key=creds["access_key"],
                secret_key=creds["secret_key"],
            )

        load_balancers = data.get("load_balancers") or []
        if isinstance(load_balancers, str):
            load_balancers = _split_list(load_balancers)

        key_types = data.get("key_types") or []
        if isinstance(key_types, str):
            key_types = _split_list(key_types)

        proxy = data.get("proxy") or {}
        page_size = data.get("page_size")

        return cls(
            region=region or None,
            credentials=credentials,
            load_balancers=list(load_balancers),
            dry_run=_as_bool(data.get("dry_run", False)),
            proxy=ProxyConfig(http=proxy.get("http"), https=proxy.get("https")),
            key_types=list(key_types),
            page_size=int(page_size) if page_size else None,
            connect_timeout=int(data.get("connect_timeout", 10)),
            read_timeout=int(data.get("read_timeout", 30)),
            max_attempts=int(data.get("max_attempts", 1)),
            endpoint_url=data.get("endpoint_url") or None,
        )

    @classmethod
    def env_dict(cls) -> Dict[str, Any]:
        """
        Read the configuration from environment variables.

        AWS_ACCESS_KEY_ID/AWS_SECRET_ACCESS_KEY are left to boto3's default
        provider chain.
        """
        return {
            "region": os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION"),
            "load_balancers": _split_list(os.getenv("ALB_LISTENER_ARNS", "")),
            "dry_run": os.getenv("DRY_RUN", "false").lower() == "true",
            "key_types": _split_list(os.getenv("ACM_KEY_TYPES", "")),
            "page_size": os.getenv("ACM_PAGE_SIZE") or None,
            "connect_timeout": int(os.getenv("AWS_CONNECT_TIMEOUT", "10")),
            "read_timeout": int(os.getenv("AWS_READ_TIMEOUT", "30")),
            "max_attempts": int(os.getenv("AWS_MAX_ATTEMPTS", "1")),
            "endpoint_url": os.getenv("AWS_ENDPOINT_URL") or None,
        }
