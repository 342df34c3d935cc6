import pytest

from app.core.exceptions import AuthenticationError, AuthorizationError, PersistenceError
from app.schemas.auth import Session
from app.services.session_store import SessionStore

pytestmark = pytest.mark.anyio


async def test_login_populates_and_persists_session(store, storage, users):
    session = await store.login("user1@example.com", "secret")

    assert session.user_id == users.alice
    assert session.profile.display_name == "Alice Lee"
    assert store.current == session
    stored = Session.model_validate_json(storage.get_item(store.storage_key))
    assert stored.user_id == users.alice
    assert stored.profile.class_name == "10"


async def test_login_with_bad_password_raises_authentication_error(store, storage, users):
    with pytest.raises(AuthenticationError):
        await store.login("user1@example.com", "wrong")

    assert store.current is None
    assert storage.get_item(store.storage_key) is None


async def test_signup_not_on_allowlist_makes_no_network_call(store, backend):
    with pytest.raises(AuthorizationError):
        await store.signup("nobody@example.com", "secret", "Nobody")

    assert store.current is None
    assert backend.calls == []
    assert backend.tables["profiles"] == []


async def test_signup_creates_session_with_trigger_profile(store, backend):
    session = await store.signup("test@example.com", "secret", "Tess Tester")

    assert session.email == "test@example.com"
    assert session.profile.display_name == "Tess Tester"
    assert session.needs_setup
    assert [row["email"] for row in backend.tables["profiles"]] == ["test@example.com"]


async def test_signup_allowlist_is_case_insensitive(store):
    session = await store.signup("Test@Example.com", "secret", "Tess")
    assert session.profile is not None


async def test_signup_without_allowlist_accepts_any_email(backend, storage):
    open_store = SessionStore(backend, storage, allowlist=[])
    session = await open_store.signup("anyone@example.org", "secret", "")

    # Display name falls back to the email, as the trigger does
    assert session.profile.display_name == "anyone@example.org"


async def test_logout_clears_memory_and_storage_even_if_remote_fails(store, storage, backend, users):
    await store.login("user1@example.com", "secret")
    backend.fail.add("sign_out")

    await store.logout()

    assert store.current is None
    assert storage.get_item(store.storage_key) is None


async def test_update_profile_merges_and_persists(store, storage, backend, users):
    await store.login("user2@example.com", "secret")

    session = await store.update_profile({"bio": "Designer", "class": "11"})

    assert session.profile.bio == "Designer"
    assert session.profile.class_name == "11"
    assert session.profile.display_name == "Bob Stone"
    row = next(r for r in backend.tables["profiles"] if r["user_id"] == users.bob)
    assert row["bio"] == "Designer"
    assert Session.model_validate_json(storage.get_item(store.storage_key)).profile.bio == "Designer"


async def test_update_profile_failure_leaves_session_intact(store, storage, backend, users):
    before = await store.login("user2@example.com", "secret")
    backend.fail.add("update")

    with pytest.raises(PersistenceError):
        await store.update_profile({"bio": "never written"})

    assert store.current == before
    assert Session.model_validate_json(storage.get_item(store.storage_key)) == before


async def test_update_profile_requires_session(store):
    with pytest.raises(AuthenticationError):
        await store.update_profile({"bio": "x"})


async def test_restore_rehydrates_previous_session(backend, storage, users):
    first = SessionStore(backend, storage)
    await first.login("user1@example.com", "secret")

    second = SessionStore(backend, storage)
    restored = await second.restore()

    assert restored == first.current
    assert "resume" in backend.calls


async def test_restore_discards_corrupt_value(backend, storage):
    storage.set_item("community.session", "{not json")
    store = SessionStore(backend, storage)

    assert await store.restore() is None
    assert storage.get_item("community.session") is None


async def test_restore_drops_session_that_cannot_be_resumed(backend, storage, users):
    await SessionStore(backend, storage).login("user1@example.com", "secret")
    backend.fail.add("resume")

    store = SessionStore(backend, storage)
    assert await store.restore() is None
    assert store.current is None


async def test_restore_keeps_session_when_backend_is_unreachable(backend, storage, users):
    saved = await SessionStore(backend, storage).login("user1@example.com", "secret")
    backend.offline.add("resume")

    store = SessionStore(backend, storage)
    restored = await store.restore()

    assert restored == saved
    assert store.current == saved
    assert Session.model_validate_json(storage.get_item(store.storage_key)) == saved


async def test_login_with_malformed_profile_row_still_succeeds(store, backend, users):
    row = next(r for r in backend.tables["profiles"] if r["user_id"] == users.bob)
    row["is_admin"] = None

    session = await store.login("user2@example.com", "secret")

    assert session.user_id == users.bob
    assert session.profile is None
