from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime

UNKNOWN_USER = "Unknown User"

# Fields an owner may edit on their own profile row
EDITABLE_FIELDS = (
    "display_name", "bio", "avatar_url", "about",
    "class", "section", "batch", "hobby", "website", "social",
)


# --- Profiles (auth.users.id -> profiles.user_id) ---
class Profile(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    user_id: str
    display_name: Optional[str] = None
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    bio: Optional[str] = None
    about: Optional[str] = None
    class_name: Optional[str] = Field(default=None, alias="class")
    section: Optional[str] = None
    batch: Optional[str] = None
    hobby: Optional[str] = None
    website: Optional[str] = None
    social: Optional[str] = None
    is_admin: bool = False
    created_at: Optional[datetime] = None

    @property
    def label(self) -> str:
        return self.display_name or UNKNOWN_USER

    @property
    def initial(self) -> str:
        return self.label[:1].upper()

    @property
    def is_complete(self) -> bool:
        # class, section and batch are collected by the setup form
        return all([self.class_name, self.section, self.batch])

    def to_row(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class ProfileUpdate(BaseModel):
    """Partial profile edit. Only fields explicitly set are written."""
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    display_name: Optional[str] = None
    bio: Optional[str] = None
    avatar_url: Optional[str] = None
    about: Optional[str] = None
    class_name: Optional[str] = Field(default=None, alias="class")
    section: Optional[str] = None
    batch: Optional[str] = None
    hobby: Optional[str] = None
    website: Optional[str] = None
    social: Optional[str] = None

    def changes(self) -> dict:
        return self.model_dump(by_alias=True, exclude_unset=True)
