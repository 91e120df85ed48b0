"""Unit tests for the boto3-backed ACM certificate store and its config."""

import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from plugins.base import Tag
from plugins.destinations.acm import AcmAlbConfig, ProxyConfig
from plugins.destinations.acm.store import AcmCertificateStore, build_clients
from plugins.destinations.base import CertificateStoreError


def _client_error(code="AccessDeniedException", operation="ListCertificates"):
    return ClientError({"Error": {"Code": code, "Message": "denied"}}, operation)


@pytest.fixture
def failing_endpoint():
    """Local HTTP endpoint answering every request with a retryable 500."""
    requests_seen = []

    class Handler(BaseHTTPRequestHandler):
        def do_POST(self):
            self.rfile.read(int(self.headers.get("Content-Length", 0)))
            requests_seen.append(self.headers.get("X-Amz-Target"))
            body = b'{"__type": "InternalFailure", "message": "boom"}'
            self.send_response(500)
            self.send_header("Content-Type", "application/x-amz-json-1.1")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def log_message(self, format, *args):
            pass

    server = ThreadingHTTPServer(("127.0.0.1", 0), Handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_port}", requests_seen
    server.shutdown()
    server.server_close()


class TestAcmAlbConfig:
    """Tests for AcmAlbConfig."""

    def test_defaults(self):
        config = AcmAlbConfig.from_dict({})
        assert config.region is None
        assert config.credentials is None
        assert config.load_balancers == []
        assert config.dry_run is False
        assert config.max_attempts == 1
        assert config.connect_timeout == 10
        assert config.read_timeout == 30

    def test_region_as_list(self):
        assert AcmAlbConfig.from_dict({"region": ["eu-west-3"]}).region == "eu-west-3"

    def test_full_section(self):
        config = AcmAlbConfig.from_dict(
            {
                "region": "us-east-1",
                "credentials": {"access_key": "AKIATEST", "secret_key": "s3cr3t"},
                "load_balancers": ["arn:listener/1"],
                "dry_run": "true",
                "proxy": {"http": "http://proxy:3128"},
                "key_types": "RSA_2048,EC_prime256v1",
                "page_size": "50",
                "endpoint_url": "http://localhost:4566",
            }
        )
        assert config.credentials.access_key == "AKIATEST"
        assert config.load_balancers == ["arn:listener/1"]
        assert config.dry_run is True
        assert config.proxy.http == "http://proxy:3128"
        assert config.key_types == ["RSA_2048", "EC_prime256v1"]
        assert config.page_size == 50
        assert config.endpoint_url == "http://localhost:4566"

    def test_secret_key_not_in_repr(self):
        config = AcmAlbConfig.from_dict(
            {"credentials": {"access_key": "AKIATEST", "secret_key": "s3cr3t"}}
        )
        assert "s3cr3t" not in repr(config)

    def test_env_dict(self):
        env_vars = {
            "AWS_REGION": "eu-west-1",
            "ALB_LISTENER_ARNS": "arn:a, arn:b",
            "DRY_RUN": "true",
            "ACM_KEY_TYPES": "EC_prime256v1",
            "ACM_PAGE_SIZE": "25",
        }
        with patch.dict("os.environ", env_vars, clear=True):
            config = AcmAlbConfig.from_dict(AcmAlbConfig.env_dict())
        assert config.region == "eu-west-1"
        assert config.load_balancers == ["arn:a", "arn:b"]
        assert config.dry_run is True
        assert config.key_types == ["EC_prime256v1"]
        assert config.page_size == 25


class TestProxyConfig:
    """Tests for proxy resolution."""

    def test_explicit_values_win(self):
        with patch.dict("os.environ", {"HTTP_PROXY": "http://env:1"}, clear=True):
            proxies = ProxyConfig(http="http://a:1", https="http://b:2").resolve()
        assert proxies == {"http": "http://a:1", "https": "http://b:2"}

    def test_environment_fallback(self):
        env_vars = {"http_proxy": "http://env:1", "HTTPS_PROXY": "http://env:2"}
        with patch.dict("os.environ", env_vars, clear=True):
            proxies = ProxyConfig().resolve()
        assert proxies == {"http": "http://env:1", "https": "http://env:2"}

    def test_https_falls_back_to_http(self):
        with patch.dict("os.environ", {}, clear=True):
            proxies = ProxyConfig(http="http://only:1").resolve()
        assert proxies == {"http": "http://only:1", "https": "http://only:1"}

    def test_no_proxy(self):
        with patch.dict("os.environ", {}, clear=True):
            assert ProxyConfig().resolve() == {}


class TestBuildClients:
    """Tests for build_clients."""

    def test_session_and_transport(self):
        config = AcmAlbConfig.from_dict(
            {
                "region": "eu-west-3",
                "credentials": {"access_key": "AKIATEST", "secret_key": "s3cr3t"},
                "proxy": {"https": "http://proxy:3128"},
            }
        )
        with patch("plugins.destinations.acm.store.boto3.session.Session") as session:
            acm, elbv2 = build_clients(config)

        session.assert_called_once_with(
            region_name="eu-west-3",
            aws_access_key_id="AKIATEST",
            aws_secret_access_key="s3cr3t",
        )
        services = [c.args[0] for c in session.return_value.client.call_args_list]
        assert services == ["acm", "elbv2"]

        boto_config = session.return_value.client.call_args.kwargs["config"]
        assert boto_config.proxies["https"] == "http://proxy:3128"
        assert boto_config.retries == {"total_max_attempts": 1, "mode": "standard"}
        assert boto_config.connect_timeout == 10

    def test_default_credential_chain(self):
        with patch.dict("os.environ", {}, clear=True), patch(
            "plugins.destinations.acm.store.boto3.session.Session"
        ) as session:
            build_clients(AcmAlbConfig())
        session.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_server_error_is_not_retried(self, failing_endpoint):
        endpoint_url, requests_seen = failing_endpoint
        config = AcmAlbConfig.from_dict(
            {
                "region": "eu-west-3",
                "credentials": {"access_key": "AKIATEST", "secret_key": "s3cr3t"},
                "endpoint_url": endpoint_url,
            }
        )

        with patch.dict("os.environ", {}, clear=True):
            store = AcmCertificateStore.from_config(config)
            with pytest.raises(CertificateStoreError):
                await store.list_certificates()

        assert requests_seen == ["CertificateManager.ListCertificates"]


class TestAcmCertificateStore:
    """Tests for AcmCertificateStore."""

    @pytest.fixture
    def acm(self):
        return MagicMock()

    @pytest.fixture
    def elbv2(self):
        return MagicMock()

    @pytest.mark.asyncio
    async def test_list_certificates(self, acm, elbv2):
        acm.list_certificates.return_value = {
            "CertificateSummaryList": [
                {
                    "CertificateArn": "arn:1",
                    "DomainName": "example.com",
                    "SubjectAlternativeNameSummaries": [
                        "example.com",
                        "www.example.com",
                    ],
                },
                {"CertificateArn": "arn:2", "DomainName": "other.example.net"},
                {"DomainName": "no-arn.example.net"},
            ],
            "NextToken": "token-2",
        }
        store = AcmCertificateStore(acm, elbv2, page_size=100, key_types=["RSA_2048"])

        page = await store.list_certificates("token-1")

        acm.list_certificates.assert_called_once_with(
            NextToken="token-1", MaxItems=100, Includes={"keyTypes": ["RSA_2048"]}
        )
        assert [s.certificate_id for s in page.summaries] == ["arn:1", "arn:2"]
        assert page.summaries[0].domain_names == ("example.com", "www.example.com")
        assert page.summaries[1].domain_names == ("other.example.net",)
        assert page.next_token == "token-2"

    @pytest.mark.asyncio
    async def test_first_page_without_options(self, acm, elbv2):
        acm.list_certificates.return_value = {"CertificateSummaryList": []}
        store = AcmCertificateStore(acm, elbv2)

        page = await store.list_certificates()

        acm.list_certificates.assert_called_once_with()
        assert page.summaries == []
        assert page.next_token is None

    @pytest.mark.asyncio
    async def test_list_error_is_wrapped(self, acm, elbv2):
        acm.list_certificates.side_effect = _client_error()
        store = AcmCertificateStore(acm, elbv2)

        with pytest.raises(CertificateStoreError, match="AccessDenied"):
            await store.list_certificates()

    @pytest.mark.asyncio
    async def test_import_new_certificate(self, acm, elbv2):
        acm.import_certificate.return_value = {"CertificateArn": "arn:new"}
        store = AcmCertificateStore(acm, elbv2)

        arn = await store.import_certificate(
            b"cert", b"key", chain=b"chain", tags=[Tag("Name", "example.com")]
        )

        assert arn == "arn:new"
        acm.import_certificate.assert_called_once_with(
            Certificate=b"cert",
            PrivateKey=b"key",
            CertificateChain=b"chain",
            Tags=[{"Key": "Name", "Value": "example.com"}],
        )

    @pytest.mark.asyncio
    async def test_reimport_existing_certificate(self, acm, elbv2):
        acm.import_certificate.return_value = {"CertificateArn": "arn:old"}
        store = AcmCertificateStore(acm, elbv2)

        await store.import_certificate(b"cert", b"key", certificate_id="arn:old")

        acm.import_certificate.assert_called_once_with(
            Certificate=b"cert", PrivateKey=b"key", CertificateArn="arn:old"
        )

    @pytest.mark.asyncio
    async def test_import_without_arn_in_response(self, acm, elbv2):
        acm.import_certificate.return_value = {}
        store = AcmCertificateStore(acm, elbv2)

        assert await store.import_certificate(b"cert", b"key") is None

    @pytest.mark.asyncio
    async def test_transport_error_is_wrapped(self, acm, elbv2):
        acm.import_certificate.side_effect = EndpointConnectionError(
            endpoint_url="https://acm.eu-west-3.amazonaws.com"
        )
        store = AcmCertificateStore(acm, elbv2)

        with pytest.raises(CertificateStoreError):
            await store.import_certificate(b"cert", b"key")

    @pytest.mark.asyncio
    async def test_add_listener_certificate(self, acm, elbv2):
        store = AcmCertificateStore(acm, elbv2)

        await store.add_listener_certificate("arn:listener", "arn:cert")

        elbv2.add_listener_certificates.assert_called_once_with(
            ListenerArn="arn:listener",
            Certificates=[{"CertificateArn": "arn:cert"}],
        )

    @pytest.mark.asyncio
    async def test_add_listener_certificate_error(self, acm, elbv2):
        elbv2.add_listener_certificates.side_effect = _client_error(
            operation="AddListenerCertificates"
        )
        store = AcmCertificateStore(acm, elbv2)

        with pytest.raises(CertificateStoreError):
            await store.add_listener_certificate("arn:listener", "arn:cert")
