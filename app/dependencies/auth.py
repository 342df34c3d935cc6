from fastapi import Depends, HTTPException, Request
import logging

from app.schemas.auth import Session
from app.services.avatar_storage import AvatarStorage
from app.services.directory_cache import DirectoryCache
from app.services.profile_repository import ProfileRepository
from app.services.session_store import SessionStore
from app.services.supabase import SupabaseBackend

logger = logging.getLogger(__name__)


def get_backend(request: Request) -> SupabaseBackend:
    return request.app.state.backend


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.session_store


def current_session(store: SessionStore = Depends(get_session_store)) -> Session:
    session = store.current
    if session is None:
        logger.warning("Rejected request without an active session")
        raise HTTPException(status_code=401, detail="Not logged in")
    return session


# Each request is one view mount: repositories are built fresh and loaded on demand
def profile_repository(
    backend: SupabaseBackend = Depends(get_backend),
    store: SessionStore = Depends(get_session_store),
    session: Session = Depends(current_session),
) -> ProfileRepository:
    repository = ProfileRepository(backend, store, AvatarStorage(backend))
    repository.mount()
    return repository


async def directory_cache(
    backend: SupabaseBackend = Depends(get_backend),
    store: SessionStore = Depends(get_session_store),
    session: Session = Depends(current_session),
) -> DirectoryCache:
    directory = DirectoryCache(backend, store)
    await directory.load_all()
    return directory
