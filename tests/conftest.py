from types import SimpleNamespace

import pytest

from app.services.avatar_storage import AvatarStorage
from app.services.local_storage import LocalStorage
from app.services.session_store import SessionStore
from tests.fakes import FakeBackend


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def users(backend):
    return SimpleNamespace(
        alice=backend.add_user("user1@example.com", name="Alice Lee", **{"class": "10", "section": "B", "batch": "2025"}),
        bob=backend.add_user("user2@example.com", name="Bob Stone"),
        admin=backend.add_user("admin@example.com", name="Admin User", is_admin=True),
    )


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(tmp_path / "session.json")


@pytest.fixture
def store(backend, storage):
    return SessionStore(
        backend,
        storage,
        allowlist=["admin@example.com", "user1@example.com", "user2@example.com", "test@example.com"],
    )


@pytest.fixture
def avatars(backend):
    return AvatarStorage(backend, bucket="avatars", max_bytes=5 * 1024 * 1024)
