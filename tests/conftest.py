"""
Pytest fixtures for the session store tests.

Every test gets its own in-memory durable store, an already-started lifecycle
and a private user identity, so nothing leaks through the process-wide ones.
"""

import uuid

import pytest

from core import tracker
from core.identity import UserIdentity
from core.lifecycle import Lifecycle
from repository.memory_store import MemoryDurableStore
from service.persistent_session import PersistentSession
from tests_support import PREFIX


@pytest.fixture(autouse=True)
def drain_tracker():
    yield
    # Leave no invalidated computation queued for the next test.
    tracker.flush()


@pytest.fixture
def store():
    return MemoryDurableStore(prefix=PREFIX)


@pytest.fixture
def lifecycle():
    return Lifecycle(is_client=True, started=True)


@pytest.fixture
def identity():
    return UserIdentity()


@pytest.fixture
def make_session(store, lifecycle, identity):
    """Factory for sessions wired to the per-test collaborators."""
    created = []

    def _make(namespace=None, **kwargs):
        kwargs.setdefault("store", store)
        kwargs.setdefault("lifecycle", lifecycle)
        kwargs.setdefault("identity", identity)
        session = PersistentSession(namespace or uuid.uuid4().hex, **kwargs)
        created.append(session)
        return session

    yield _make
    for session in created:
        session.stop()
