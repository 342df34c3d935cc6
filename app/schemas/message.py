from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from app.schemas.profile import Profile, UNKNOWN_USER


# --- Messages ---
class Message(BaseModel):
    id: str
    user_id: str
    content: str
    created_at: datetime

    @property
    def sort_key(self):
        return (self.created_at, self.id)


class FeedMessage(Message):
    # None is the "author missing" state, never an accidental null
    author: Optional[Profile] = None

    @property
    def author_name(self) -> str:
        return self.author.label if self.author else UNKNOWN_USER


class MessageCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=4000)
