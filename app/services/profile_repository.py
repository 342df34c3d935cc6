import logging
from typing import Dict, Optional, Union

from app.core.exceptions import AuthorizationError, BackendError, NotFound, PersistenceError, ValidationError
from app.schemas.profile import EDITABLE_FIELDS, Profile, ProfileUpdate
from app.services.avatar_storage import AvatarStorage, AvatarUpload
from app.services.session_store import SessionStore
from app.services.supabase import SupabaseBackend

logger = logging.getLogger(__name__)

SELF = "self"


class ProfileRepository:
    """
    Single-profile view model: loads one profile (the caller's or another
    member's) and saves edits to the caller's own profile.

    Ownership is only checked here to keep the UI honest. The backend must
    enforce it on its own (row-level policy on ``profiles``).
    """

    def __init__(self, backend: SupabaseBackend, session_store: SessionStore, avatars: AvatarStorage):
        self.backend = backend
        self.session_store = session_store
        self.avatars = avatars
        self.profile: Optional[Profile] = None
        self._generation = 0

    def mount(self) -> int:
        """Starts a new view generation; responses for older ones are dropped."""
        self._generation += 1
        self.profile = None
        return self._generation

    def resolve_user_id(self, user_id: Optional[str] = None) -> str:
        if user_id and user_id != SELF:
            return user_id
        return self.session_store.require().user_id

    def is_own(self, user_id: Optional[str] = None) -> bool:
        current = self.session_store.user_id
        return current is not None and self.resolve_user_id(user_id) == current

    async def fetch_profile(self, user_id: Optional[str] = None) -> Profile:
        target = self.resolve_user_id(user_id)
        generation = self._generation

        try:
            row = await self.backend.select_one("profiles", {"user_id": target})
        except BackendError as e:
            logger.error(f"Error fetching profile {target}: {e.message}")
            raise PersistenceError("Failed to load profile", details={"code": e.code}) from e

        if not row:
            raise NotFound(f"User {target} not found")

        profile = Profile.model_validate(row)
        if generation == self._generation:
            self.profile = profile
        else:
            logger.debug(f"Discarding stale profile response for {target}")
        return profile

    async def save_profile(self, fields: Union[ProfileUpdate, Dict, None] = None,
                           avatar: Optional[AvatarUpload] = None,
                           viewing_user_id: Optional[str] = None) -> Profile:
        session = self.session_store.require()
        target = self.resolve_user_id(viewing_user_id or (self.profile.user_id if self.profile else None))
        if target != session.user_id:
            raise AuthorizationError("You can only edit your own profile")

        changes = self._changes(fields)

        if avatar is not None:
            # Type and size are checked before the old asset is touched
            self.avatars.validate(avatar.data, avatar.content_type)
            current = self.profile if self.profile and self.profile.user_id == target else session.profile
            changes["avatar_url"] = await self.avatars.replace(
                session.user_id,
                avatar.data,
                avatar.content_type,
                current_url=current.avatar_url if current else None,
            )

        if not changes:
            return self.profile or session.profile or await self.fetch_profile(target)

        generation = self._generation
        updated = await self.session_store.update_profile(changes)
        if generation == self._generation:
            self.profile = updated.profile
        return updated.profile

    def _changes(self, fields: Union[ProfileUpdate, Dict, None]) -> Dict:
        if fields is None:
            return {}
        if isinstance(fields, ProfileUpdate):
            return fields.changes()
        unknown = set(fields) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")
        return dict(fields)
