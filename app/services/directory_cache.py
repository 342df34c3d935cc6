import logging
from typing import Dict, Iterable, List, Optional

import pydantic

from app.core.exceptions import BackendError
from app.schemas.profile import Profile
from app.services.session_store import SessionStore
from app.services.supabase import SupabaseBackend

logger = logging.getLogger(__name__)


def index_profiles(rows: Iterable[dict]) -> Dict[str, Profile]:
    """Keys profile rows by user_id, skipping rows that do not validate."""
    profiles = {}
    for row in rows:
        try:
            profile = Profile.model_validate(row)
        except pydantic.ValidationError as e:
            logger.warning(f"Skipping malformed profile row {row.get('user_id')}: {e}")
            continue
        profiles[profile.user_id] = profile
    return profiles


class DirectoryCache:
    """In-memory member directory, reloaded on every view mount."""

    def __init__(self, backend: SupabaseBackend, session_store: Optional[SessionStore] = None):
        self.backend = backend
        self.session_store = session_store
        self.profiles: Dict[str, Profile] = {}
        self._generation = 0

    async def load_all(self) -> Dict[str, Profile]:
        """
        Replaces the cache with every profile row. On a backend failure the
        previous contents stay in place.
        """
        self._generation += 1
        generation = self._generation
        try:
            rows = await self.backend.select("profiles")
        except BackendError as e:
            logger.warning(f"Directory load failed, keeping {len(self.profiles)} cached profiles: {e.message}")
            return self.profiles

        if generation != self._generation:
            logger.debug("Discarding stale directory load")
            return self.profiles

        self.profiles = index_profiles(rows)
        logger.info(f"Loaded {len(self.profiles)} profiles into directory")
        return self.profiles

    def get(self, user_id: str) -> Optional[Profile]:
        return self.profiles.get(user_id)

    def search(self, term: str = "") -> List[Profile]:
        """Members whose name, email or id contains `term`, minus the caller."""
        # Stable filter: cache order is preserved, nothing is sorted
        needle = (term or "").lower()
        caller = self.session_store.user_id if self.session_store else None
        results = []
        for profile in self.profiles.values():
            if profile.user_id == caller or not profile.display_name:
                continue
            haystack = (profile.display_name, profile.email or "", profile.user_id)
            if any(needle in field.lower() for field in haystack):
                results.append(profile)
        return results
