import logging
from typing import Dict, Iterable, Optional

import pydantic

from app.core import config
from app.core.exceptions import AuthenticationError, AuthorizationError, BackendError, PersistenceError
from app.schemas.auth import Session
from app.schemas.profile import Profile
from app.services.local_storage import LocalStorage
from app.services.supabase import SupabaseBackend

logger = logging.getLogger(__name__)


class SessionStore:
    """
    Holds the authenticated identity for this client and mirrors it to
    durable local storage.

    One instance is created at startup (``restore()`` rehydrates it) and is
    handed explicitly to the services that need the caller's identity.
    Every mutating operation persists the resulting snapshot, so a restart
    comes back logged in without re-authenticating.
    """

    def __init__(self, backend: SupabaseBackend, storage: LocalStorage,
                 allowlist: Optional[Iterable[str]] = None,
                 storage_key: str = config.SESSION_STORAGE_KEY):
        self.backend = backend
        self.storage = storage
        self.storage_key = storage_key
        self.allowlist = {email.lower() for email in (allowlist or [])}
        self._session: Optional[Session] = None

    @property
    def current(self) -> Optional[Session]:
        return self._session

    @property
    def user_id(self) -> Optional[str]:
        return self._session.user_id if self._session else None

    def require(self) -> Session:
        if self._session is None:
            raise AuthenticationError("Not logged in")
        return self._session

    async def restore(self) -> Optional[Session]:
        """
        Rehydrates the session saved by a previous run and re-attaches its
        tokens to the backend client. A corrupt or rejected session is dropped;
        one that cannot be checked because the backend is unreachable is kept.
        """
        raw = self.storage.get_item(self.storage_key)
        if raw is None:
            return None
        try:
            session = Session.model_validate_json(raw)
        except pydantic.ValidationError as e:
            logger.warning(f"Discarding corrupt stored session: {e}")
            self.storage.remove_item(self.storage_key)
            return None

        if session.access_token and session.refresh_token:
            try:
                res = await self.backend.resume(session.access_token, session.refresh_token)
            except BackendError as e:
                if e.retryable:
                    # Unreachable is not rejected: keep the snapshot instead of logging out
                    logger.warning(f"Could not reach auth service to resume session for {session.user_id}: {e.message}")
                    return self._set(session)
                logger.warning(f"Stored session for {session.user_id} could not be resumed: {e.message}")
                self.storage.remove_item(self.storage_key)
                return None
            if res is not None and getattr(res, "session", None) is not None:
                # Tokens may have been refreshed
                session = session.model_copy(update={
                    "access_token": res.session.access_token,
                    "refresh_token": res.session.refresh_token,
                })

        logger.info(f"Restored session for user {session.user_id}")
        return self._set(session)

    def _set(self, session: Session) -> Session:
        self.storage.set_item(self.storage_key, session.model_dump_json(by_alias=True))
        self._session = session
        return session

    async def _load_profile(self, user_id: str) -> Optional[Profile]:
        try:
            row = await self.backend.select_one("profiles", {"user_id": user_id})
        except BackendError as e:
            logger.warning(f"Could not load profile for {user_id}: {e.message}")
            return None
        if not row:
            return None
        try:
            return Profile.model_validate(row)
        except pydantic.ValidationError as e:
            logger.warning(f"Ignoring malformed profile row for {user_id}: {e}")
            return None

    async def login(self, email: str, password: str) -> Session:
        try:
            res = await self.backend.sign_in(email, password)
        except BackendError as e:
            logger.warning(f"Login rejected for {email}: {e.message}")
            raise AuthenticationError("Invalid credentials") from e

        if not res or not res.user or not res.session:
            raise AuthenticationError("Invalid credentials")

        user_id = str(res.user.id)
        session = Session(
            user_id=user_id,
            email=res.user.email or email,
            access_token=res.session.access_token,
            refresh_token=res.session.refresh_token,
            profile=await self._load_profile(user_id),
        )
        logger.info(f"Logged in user {user_id}")
        return self._set(session)

    async def signup(self, email: str, password: str, name: str) -> Session:
        if self.allowlist and email.strip().lower() not in self.allowlist:
            logger.warning(f"Signup refused for {email}: not on allow-list")
            raise AuthorizationError("Email not authorized for registration")

        try:
            res = await self.backend.sign_up(email, password, {"full_name": name})
        except BackendError as e:
            logger.warning(f"Signup rejected for {email}: {e.message}")
            raise AuthenticationError(f"Signup failed: {e.message}") from e

        if not res or not res.user:
            raise AuthenticationError("Signup failed")
        if not res.session:
            raise AuthenticationError("Check your inbox to confirm your email, then log in")

        user_id = str(res.user.id)
        # The on_auth_user_created trigger creates the row; it may not be visible yet
        profile = await self._load_profile(user_id) or Profile(
            user_id=user_id,
            display_name=name or email,
            email=email,
        )
        session = Session(
            user_id=user_id,
            email=res.user.email or email,
            access_token=res.session.access_token,
            refresh_token=res.session.refresh_token,
            profile=profile,
        )
        logger.info(f"Signed up user {user_id}")
        return self._set(session)

    async def logout(self) -> None:
        session = self._session
        self._session = None
        self.storage.remove_item(self.storage_key)
        if session is None:
            return
        try:
            await self.backend.sign_out()
        except BackendError as e:
            logger.warning(f"Remote sign-out failed for {session.user_id}: {e.message}")
        logger.info(f"Logged out user {session.user_id}")

    async def update_profile(self, fields: Dict) -> Session:
        session = self.require()
        if not fields:
            return session

        try:
            row = await self.backend.update("profiles", {"user_id": session.user_id}, fields)
        except BackendError as e:
            logger.error(f"Profile update failed for {session.user_id}: {e.message}")
            raise PersistenceError("Failed to update profile", details={"code": e.code}) from e

        if self._session is None or self._session.user_id != session.user_id:
            logger.info(f"Dropping profile update for {session.user_id}: session ended mid-flight")
            return session

        session = self._session
        merged = session.profile.to_row() if session.profile else {"user_id": session.user_id, "email": session.email}
        merged.update(fields)
        merged.update(row or {})
        updated = session.model_copy(update={"profile": Profile.model_validate(merged)})
        logger.info(f"Updated profile fields {sorted(fields)} for {session.user_id}")
        return self._set(updated)
