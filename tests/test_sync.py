"""Tests running a secret through the source, controller and ACM destination."""

import pytest

from controller import Controller, ControllerConfig
from events import EventBus, EventType
from plugins.base import PublishStatus, Tag
from plugins.destinations.acm import AcmAlbDestination
from plugins.sources.kubernetes import KubernetesSecretSource

LISTENER = "L1"


@pytest.fixture
def example_org(cert_factory):
    return cert_factory.leaf("example.org")


async def _wire(stream, store, event_bus):
    source = KubernetesSecretSource(stream=stream)
    await source.initialize({})
    source.set_event_bus(event_bus)

    destination = AcmAlbDestination(store=store)
    await destination.initialize({"load_balancers": [LISTENER]})

    return Controller(
        source,
        destination,
        ControllerConfig(pacing_delay=0),
        event_bus=event_bus,
    )


@pytest.mark.asyncio
class TestSecretToAcm:
    """A TLS secret flows from the watch into ACM and onto the listener."""

    async def test_new_secret_is_imported_and_attached(
        self, cert_factory, example_org, fake_store, stream_factory, make_secret_event
    ):
        cert_pem, key_pem = example_org
        missing_key = make_secret_event(
            data={"tls.crt": cert_pem.encode("utf-8")}, name="half-tls"
        )
        complete = make_secret_event(
            data={
                "tls.crt": (cert_pem + cert_factory.ca_pem).encode("utf-8"),
                "tls.key": key_pem.encode("utf-8"),
            },
            name="web-tls",
        )
        event_bus = EventBus()
        subscription = await event_bus.subscribe()
        controller = await _wire(
            stream_factory([missing_key, complete]), fake_store, event_bus
        )

        processed = await controller.run_once()

        assert processed == 1
        assert len(fake_store.imports) == 1
        imported = fake_store.imports[0]
        assert imported["certificate_id"] is None
        assert imported["certificate"] == cert_pem.encode("utf-8")
        assert imported["private_key"] == key_pem.encode("utf-8")
        assert imported["chain"] == cert_factory.ca_pem.encode("utf-8")
        assert imported["tags"] == [
            Tag("Name", "example.org"),
            Tag("Domain", "example.org"),
            Tag("ManagedBy", "cert-sync"),
        ]

        created_id = fake_store.pages[-1][0].certificate_id
        assert fake_store.attached == [(LISTENER, created_id)]

        history = controller.get_history()
        assert len(history) == 1
        assert history[0]["status"] == PublishStatus.PUBLISHED.value
        assert history[0]["certificate_id"] == created_id
        assert history[0]["created"] is True
        assert history[0]["listeners"] == [
            {"listener_id": LISTENER, "success": True, "error_message": None}
        ]

        await event_bus.unsubscribe(subscription)
        events = [event async for event in subscription]
        assert [e.event_type for e in events] == [
            EventType.REJECTED,
            EventType.PUBLISHED,
        ]
        assert events[0].secret == "default:half-tls"
        assert events[1].certificate_id == created_id

    async def test_second_delivery_reuses_the_entry(
        self, example_org, fake_store, stream_factory, make_secret_event
    ):
        cert_pem, key_pem = example_org
        secret = make_secret_event(
            data={
                "tls.crt": cert_pem.encode("utf-8"),
                "tls.key": key_pem.encode("utf-8"),
            }
        )
        controller = await _wire(
            stream_factory([secret, secret]), fake_store, EventBus()
        )

        await controller.run_once()

        created_id = fake_store.pages[-1][0].certificate_id
        assert [i["certificate_id"] for i in fake_store.imports] == [None, created_id]
        assert fake_store.imports[1]["tags"] is None
        assert fake_store.attached == [(LISTENER, created_id), (LISTENER, created_id)]
        assert controller.counters["published"] == 2
