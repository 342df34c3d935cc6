import anyio
import pytest

from app.core.exceptions import AuthorizationError, NotFound, PersistenceError, UploadError, ValidationError
from app.schemas.profile import ProfileUpdate
from app.services.avatar_storage import AvatarUpload
from app.services.profile_repository import SELF, ProfileRepository
from tests.fakes import STORAGE_URL

pytestmark = pytest.mark.anyio

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@pytest.fixture
def repository(backend, store, avatars):
    repository = ProfileRepository(backend, store, avatars)
    repository.mount()
    return repository


async def login_bob(store):
    return await store.login("user2@example.com", "secret")


async def test_fetch_self_resolves_session_identity(repository, store, users):
    await login_bob(store)

    for user_id in (None, SELF):
        profile = await repository.fetch_profile(user_id)
        assert profile.user_id == users.bob
    assert repository.is_own()


async def test_fetch_other_member(repository, store, users):
    await login_bob(store)

    profile = await repository.fetch_profile(users.admin)

    assert profile.is_admin
    assert not repository.is_own(users.admin)


async def test_fetch_missing_profile_raises_not_found(repository, store, users):
    await login_bob(store)

    with pytest.raises(NotFound):
        await repository.fetch_profile("no-such-user")


async def test_fetch_backend_failure_raises_persistence_error(repository, store, backend, users):
    await login_bob(store)
    backend.fail.add("select_one:profiles")

    with pytest.raises(PersistenceError):
        await repository.fetch_profile(SELF)


async def test_save_then_fetch_round_trip(repository, store, users):
    await login_bob(store)
    await repository.fetch_profile(SELF)

    saved = await repository.save_profile({"display_name": "X"})
    fetched = await repository.fetch_profile(SELF)

    assert saved.display_name == "X"
    assert fetched.display_name == "X"
    assert store.current.profile.display_name == "X"


async def test_save_updates_view_model_without_refetch(repository, store, backend, users):
    await login_bob(store)
    await repository.fetch_profile(SELF)
    backend.calls.clear()

    await repository.save_profile(ProfileUpdate(bio="Designer and creative thinker"))

    assert repository.profile.bio == "Designer and creative thinker"
    assert backend.calls == ["update:profiles"]


async def test_save_extended_fields_completes_setup(repository, store, users):
    session = await login_bob(store)
    assert session.needs_setup

    await repository.save_profile(ProfileUpdate(**{"class": "12", "section": "A", "batch": "2024", "hobby": "chess"}))

    assert not store.current.needs_setup
    assert store.current.profile.hobby == "chess"


async def test_save_other_profile_is_refused(repository, store, backend, users):
    await login_bob(store)
    await repository.fetch_profile(users.alice)

    with pytest.raises(AuthorizationError):
        await repository.save_profile({"bio": "hijacked"})
    assert "update:profiles" not in backend.calls


async def test_save_rejects_non_editable_fields(repository, store, users):
    await login_bob(store)

    with pytest.raises(ValidationError):
        await repository.save_profile({"is_admin": True})


async def test_oversized_avatar_fails_before_any_network_call(repository, store, backend, users):
    await login_bob(store)
    profile = await repository.fetch_profile(SELF)
    backend.calls.clear()

    six_mb = b"\x00" * (6 * 1024 * 1024)
    with pytest.raises(ValidationError):
        await repository.save_profile(avatar=AvatarUpload(six_mb, "image/png"))

    assert backend.calls == []
    assert repository.profile.avatar_url == profile.avatar_url


async def test_avatar_with_unsupported_type_is_rejected(repository, store, backend, users):
    await login_bob(store)
    backend.calls.clear()

    with pytest.raises(ValidationError):
        await repository.save_profile(avatar=AvatarUpload(b"%PDF-1.4", "application/pdf"))
    assert backend.calls == []


async def test_avatar_replace_deletes_old_asset_then_uploads(repository, store, backend, users):
    await login_bob(store)
    backend.objects[("avatars", f"{users.bob}/old.png")] = b"old"
    await store.update_profile({"avatar_url": f"{STORAGE_URL}/avatars/{users.bob}/old.png"})
    await repository.fetch_profile(SELF)

    profile = await repository.save_profile(avatar=AvatarUpload(PNG, "image/png"))

    assert ("avatars", f"{users.bob}/old.png") not in backend.objects
    assert profile.avatar_url.startswith(f"{STORAGE_URL}/avatars/{users.bob}/")
    assert profile.avatar_url.endswith(".png")
    assert backend.calls.index("remove:avatars") < backend.calls.index("upload:avatars")


async def test_avatar_delete_failure_does_not_block_upload(repository, store, backend, users):
    await login_bob(store)
    await store.update_profile({"avatar_url": f"{STORAGE_URL}/avatars/{users.bob}/old.png"})
    backend.fail.add("remove")

    profile = await repository.save_profile(avatar=AvatarUpload(PNG, "image/png"))

    assert profile.avatar_url.endswith(".png")
    assert "old.png" not in profile.avatar_url


async def test_upload_failure_leaves_displayed_profile_unchanged(repository, store, backend, users):
    await login_bob(store)
    before = await repository.fetch_profile(SELF)
    backend.fail.add("upload")

    with pytest.raises(UploadError):
        await repository.save_profile({"bio": "new"}, avatar=AvatarUpload(PNG, "image/png"))

    assert repository.profile == before
    assert store.current.profile.bio is None


async def test_external_avatar_url_is_not_deleted(repository, store, backend, users):
    await login_bob(store)
    await store.update_profile({"avatar_url": "https://images.example.com/bob.jpg"})

    await repository.save_profile(avatar=AvatarUpload(PNG, "image/png"))

    assert "remove:avatars" not in backend.calls


async def test_stale_fetch_is_not_displayed(repository, store, backend, users):
    await login_bob(store)
    backend.gate = anyio.Event()
    result = {}

    async def fetch():
        result["profile"] = await repository.fetch_profile(users.alice)

    async with anyio.create_task_group() as tg:
        tg.start_soon(fetch)
        await anyio.sleep(0.01)
        # The view remounts while the lookup is still in flight
        repository.mount()
        backend.gate.set()

    assert result["profile"].user_id == users.alice
    assert repository.profile is None
