"""
Pytest configuration.

Adds the project root to the Python path so tests can import domain,
repositories, services, etc., and provides offline fixtures: an in-memory
Supabase client, a scripted supplier session, a fake clock and a recording
notification dispatcher.
"""

import sys
from pathlib import Path

import pytest

# Add the project root to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))
sys.path.insert(0, str(Path(__file__).parent))

from fakes import (  # noqa: E402
    FakeClock,
    FakeSession,
    FakeSupabase,
    RecordingDispatcher,
    make_supplier,
    sandbox_policy,
)
from repositories.client import set_client  # noqa: E402
from services.fulfillment_service import FulfillmentService  # noqa: E402


@pytest.fixture
def db():
    fake = FakeSupabase()
    set_client(fake)
    yield fake
    set_client(None)


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def supplier(session):
    return make_supplier(session)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def service(db, supplier, dispatcher, clock) -> FulfillmentService:
    return FulfillmentService(
        supplier=supplier,
        policy=sandbox_policy(),
        dispatcher=dispatcher,
        sleep=clock.sleep,
        clock=clock,
    )
