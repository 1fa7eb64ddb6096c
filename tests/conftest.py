"""Shared pytest fixtures for filejail tests."""

import os
import tempfile

# Keep the module-level app in server.py away from the project tree.
os.environ.setdefault("FILEJAIL_ROOT", tempfile.mkdtemp(prefix="filejail-test-"))

import pytest
from fastapi.testclient import TestClient

from filejail_backend.sessions import SessionStore
from server import create_app


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def root(tmp_path):
    path = tmp_path / "srv" / "data"
    path.mkdir(parents=True)
    return path.resolve()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(root, clock):
    return SessionStore(root, ttl_seconds=300, clock=clock)


@pytest.fixture
def app(store):
    return create_app(store=store, sweep_interval=3600)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def other_client(app):
    with TestClient(app) as c:
        yield c
