"""
Pytest configuration and shared fixtures for tdev_firebase tests.

Adapters are initialized against in-memory fakes from firebase_fakes.py:
get_firebase_app() and the SDK factory used by each adapter's _connect()
are patched, so no network or credentials are needed.
"""

import asyncio
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

# Ensure src and tests directories are in path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent))

from firebase_fakes import FakeDatabase, FakeFirestore  # noqa: E402

from tdev_firebase.firestore import FirestoreService  # noqa: E402
from tdev_firebase.notification import NotificationService  # noqa: E402
from tdev_firebase.realtime import RealtimeService  # noqa: E402
from tdev_firebase.settings import FirebaseSettings  # noqa: E402

TEST_SETTINGS = FirebaseSettings(
    project_id="demo-test",
    database_url="https://demo-test-default-rtdb.firebaseio.com",
    app_name="tdev-tests",
    registration_token="device-token-1",
)

# Module attribute each adapter uses to build its backend handle
_CONNECT_TARGETS = {
    RealtimeService: ("tdev_firebase.realtime.service.db", "reference"),
    FirestoreService: ("tdev_firebase.firestore.service.firestore", "client"),
}


def make_ready(service_cls, handle, settings=TEST_SETTINGS):
    """Construct and initialize an adapter whose backend handle is `handle`."""
    service = service_cls(settings)
    with patch("tdev_firebase.adapter.get_firebase_app", return_value=MagicMock(name="App")):
        target = _CONNECT_TARGETS.get(service_cls)
        if target is None:
            asyncio.run(service.initialize())
        else:
            module_attr, factory = target
            with patch(module_attr) as sdk:
                getattr(sdk, factory).return_value = handle
                asyncio.run(service.initialize())
    return service


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Yield to the event loop until predicate() is true."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)


@pytest.fixture
def fake_database():
    return FakeDatabase()


@pytest.fixture
def fake_firestore():
    return FakeFirestore()


@pytest.fixture
def realtime_service(fake_database):
    return make_ready(RealtimeService, fake_database.reference())


@pytest.fixture
def firestore_service(fake_firestore):
    return make_ready(FirestoreService, fake_firestore)


@pytest.fixture
def mock_messaging():
    with patch("tdev_firebase.notification.service.messaging") as messaging:
        response = MagicMock()
        response.failure_count = 0
        response.errors = []
        messaging.subscribe_to_topic.return_value = response
        messaging.unsubscribe_from_topic.return_value = response
        messaging.send.return_value = "projects/demo-test/messages/1"
        yield messaging


@pytest.fixture
def notification_service():
    return make_ready(NotificationService, None)
