import pytest
from protean import current_domain
from protean.integrations.pytest import DomainFixture

from messaging.channel import reset_gateway, set_gateway
from messaging.channel.fake_push import FakePushGateway


@pytest.fixture(scope="session")
def messaging_bed():
    from messaging.domain import messaging
    from messaging.utils.db import drop_db, setup_db

    bed = DomainFixture(messaging)
    bed.setup()
    setup_db(messaging)
    yield bed
    drop_db(messaging)
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(messaging_bed):
    with messaging_bed.domain_context():
        yield

        # Clear all databases
        for _, provider in current_domain.providers.items():
            provider._data_reset()

        # Drain event stores
        current_domain.event_store.store._data_reset()


@pytest.fixture(autouse=True)
def push_gateway():
    """A fresh in-memory push gateway installed for every test."""
    gateway = FakePushGateway()
    set_gateway(gateway)
    yield gateway
    reset_gateway()
