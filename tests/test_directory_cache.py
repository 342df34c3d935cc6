import pytest

from app.services.directory_cache import DirectoryCache

pytestmark = pytest.mark.anyio


@pytest.fixture
def directory(backend, store):
    return DirectoryCache(backend, store)


async def test_load_all_keys_profiles_by_user_id(directory, users):
    profiles = await directory.load_all()

    assert list(profiles) == [users.alice, users.bob, users.admin]
    assert directory.get(users.bob).display_name == "Bob Stone"
    assert directory.get("missing") is None


async def test_load_all_twice_yields_same_profiles(directory, users):
    first = dict(await directory.load_all())
    second = dict(await directory.load_all())

    assert first.keys() == second.keys()
    assert all(first[key] == second[key] for key in first)


async def test_load_failure_keeps_previous_contents(directory, backend, users):
    await directory.load_all()
    backend.fail.add("select:profiles")

    profiles = await directory.load_all()

    assert len(profiles) == 3


async def test_empty_search_returns_everyone_but_caller(directory, store, users):
    await store.login("user1@example.com", "secret")
    await directory.load_all()

    assert [p.user_id for p in directory.search("")] == [users.bob, users.admin]


async def test_search_is_case_insensitive_over_name_and_email(directory, store, users):
    await store.login("admin@example.com", "secret")
    await directory.load_all()

    assert [p.user_id for p in directory.search("bOB")] == [users.bob]
    assert [p.user_id for p in directory.search("USER1@")] == [users.alice]
    assert [p.user_id for p in directory.search("example.com")] == [users.alice, users.bob]


async def test_search_matches_identifier(directory, store, users):
    await store.login("admin@example.com", "secret")
    await directory.load_all()

    assert [p.user_id for p in directory.search(users.bob)] == [users.bob]


async def test_search_without_matches_returns_empty_list(directory, users):
    await directory.load_all()

    assert directory.search("zzz") == []


async def test_search_skips_profiles_without_display_name(directory, backend, users):
    nameless = backend.add_user("ghost@example.com", name=None)
    await directory.load_all()

    assert nameless not in [p.user_id for p in directory.search("")]
    assert directory.search("ghost") == []


async def test_malformed_row_is_skipped_not_fatal(directory, backend, users):
    broken = backend.add_user("broken@example.com", name="Broken Row", is_admin=None)

    profiles = await directory.load_all()

    assert list(profiles) == [users.alice, users.bob, users.admin]
    assert directory.get(broken) is None


async def test_search_term_is_not_trimmed(directory, store, backend, users):
    mononym = backend.add_user("plato@example.com", name="Plato")
    await store.login("admin@example.com", "secret")
    await directory.load_all()

    assert mononym not in [p.user_id for p in directory.search(" ")]
    assert [p.user_id for p in directory.search(" lee")] == [users.alice]
