from pydantic import BaseModel
from typing import Optional
from app.schemas.profile import Profile


# --- Session (auth identity mirrored to local storage) ---
class Session(BaseModel):
    user_id: str
    email: str
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    profile: Optional[Profile] = None

    @property
    def is_admin(self) -> bool:
        return bool(self.profile and self.profile.is_admin)

    @property
    def needs_setup(self) -> bool:
        return self.profile is None or not self.profile.is_complete


class LoginRequest(BaseModel):
    email: str
    password: str


class SignupRequest(BaseModel):
    email: str
    password: str
    name: str


class SessionResponse(BaseModel):
    user_id: str
    email: str
    profile: Optional[Profile] = None
    needs_setup: bool

    @classmethod
    def from_session(cls, session: Session) -> "SessionResponse":
        return cls(
            user_id=session.user_id,
            email=session.email,
            profile=session.profile,
            needs_setup=session.needs_setup,
        )
