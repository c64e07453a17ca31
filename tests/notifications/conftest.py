import pytest
from notifications.bootstrap import build_orchestrator
from notifications.channel import ChannelAdapters
from notifications.config import NotificationSettings
from notifications.realtime.broker import InlineFanoutBroker
from notifications.store import reset_shared_store
from notifications.store.memory_store import MemoryStore
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def notifications_bed():
    from notifications.domain import notifications

    bed = DomainFixture(notifications)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(notifications_bed):
    with notifications_bed.domain_context():
        yield


@pytest.fixture()
def settings():
    return NotificationSettings(redis_url=None, instance_id="instance-a")


@pytest.fixture()
def adapters():
    return ChannelAdapters()


@pytest.fixture()
def store():
    return MemoryStore()


@pytest.fixture()
def broker():
    return InlineFanoutBroker()


@pytest.fixture()
def orchestrator(settings, adapters, store, broker):
    orchestrator = build_orchestrator(settings=settings, adapters=adapters, store=store, broker=broker)
    yield orchestrator
    orchestrator.dispatcher.shutdown()
    reset_shared_store()


@pytest.fixture()
def contactable_user(orchestrator):
    """Factory for users with a verified email, a device token and optionally a verified phone."""

    def _make(user_id="user-1", email="user@example.com", device_token="device-token-1", phone=None):
        patch = {}
        if email:
            patch["primary_email"] = email
        if phone:
            patch["phone_number"] = phone
        if patch:
            orchestrator.update_user_preferences(user_id, patch)
        if email:
            orchestrator.verify_email(user_id)
        if phone:
            orchestrator.verify_phone(user_id)
        if device_token:
            orchestrator.add_device_token(user_id, device_token)
        return user_id

    return _make
