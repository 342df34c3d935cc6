"""
Live chat feed.

A feed instance goes through UNINITIALIZED -> LOADING -> LIVE -> CLOSED:

1. ``load_history()`` reads every message in (created_at, id) order, then
   every profile, and joins the two client-side through an author lookup
   table. A message whose author has no profile keeps ``author=None``.
2. ``subscribe()`` opens the push channel for message inserts. It must run
   after the history snapshot is captured: live events are appended without
   deduplication against history.
3. Each insert notification carries only a hint. The message is re-fetched
   by id, its author looked up separately, and the joined record appended.
   Notifications are processed one at a time in arrival order, which is
   taken to be commit order; the list is never re-sorted.
4. ``close()`` bumps the generation token before anything else, so nothing
   that completes afterwards can touch the feed.

Known gap: there is no reconnect-with-backfill. If the channel drops,
messages committed while disconnected only show up after a remount.
"""
import asyncio
import logging
from enum import Enum
from typing import AsyncIterator, Dict, List, Optional, Set

import pydantic

from app.core.exceptions import BackendError, PersistenceError, SendError, ValidationError
from app.schemas.message import FeedMessage, Message
from app.schemas.profile import Profile
from app.services.directory_cache import index_profiles
from app.services.session_store import SessionStore
from app.services.supabase import SupabaseBackend

logger = logging.getLogger(__name__)

# Marks the end of a listener's stream
_CLOSED = object()


class FeedState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    LIVE = "live"
    CLOSED = "closed"


def join_message(row: dict, authors: Dict[str, Profile]) -> FeedMessage:
    """Attaches the author snapshot; a missing author is kept as None."""
    message = Message.model_validate(row)
    return FeedMessage(**message.model_dump(), author=authors.get(message.user_id))


class MessageFeed:
    def __init__(self, backend: SupabaseBackend, session_store: SessionStore, table: str = "messages"):
        self.backend = backend
        self.session_store = session_store
        self.table = table
        self.messages: List[FeedMessage] = []
        self.state = FeedState.UNINITIALIZED
        self._generation = 0
        self._handle = None
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._pump: Optional[asyncio.Task] = None
        self._listeners: Set[asyncio.Queue] = set()

    @property
    def is_live(self) -> bool:
        return self.state is FeedState.LIVE

    async def mount(self) -> "MessageFeed":
        await self.load_history()
        await self.subscribe()
        return self

    async def __aenter__(self) -> "MessageFeed":
        return await self.mount()

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    # -------- Historical load --------
    async def load_history(self) -> List[FeedMessage]:
        if self.state is FeedState.CLOSED:
            raise RuntimeError("Feed is closed")
        self.state = FeedState.LOADING
        generation = self._generation

        try:
            rows = await self.backend.select(self.table, order=[("created_at", False), ("id", False)])
        except BackendError as e:
            logger.error(f"Error loading message history: {e.message}")
            self.state = FeedState.UNINITIALIZED
            raise PersistenceError("Failed to load messages", details={"code": e.code}) from e

        try:
            authors = index_profiles(await self.backend.select("profiles"))
        except BackendError as e:
            # Degrade to "Unknown User" rather than failing the whole feed
            logger.warning(f"Error loading message authors: {e.message}")
            authors = {}

        joined = []
        for row in rows:
            try:
                joined.append(join_message(row, authors))
            except pydantic.ValidationError as e:
                logger.warning(f"Skipping malformed message row {row.get('id')}: {e}")
        missing = sum(1 for m in joined if m.author is None)
        if missing:
            logger.warning(f"{missing} of {len(joined)} messages have no matching author profile")

        if generation != self._generation:
            logger.debug("Discarding history loaded for a closed feed")
            return joined

        self.messages = joined
        logger.info(f"Loaded {len(joined)} messages")
        return self.messages

    # -------- Live subscription --------
    async def subscribe(self) -> None:
        if self.state is FeedState.CLOSED:
            raise RuntimeError("Feed is closed")
        if self._handle is not None:
            return

        generation = self._generation
        try:
            handle = await self.backend.subscribe(self.table, self._on_insert, event="INSERT")
        except BackendError as e:
            logger.error(f"Error opening message subscription: {e.message}")
            if generation == self._generation:
                self.state = FeedState.UNINITIALIZED
            raise PersistenceError("Failed to open message feed", details={"code": e.code}) from e
        if generation != self._generation:
            # Closed while the channel was opening
            await self._release(handle)
            return

        self._handle = handle
        self._pump = asyncio.get_running_loop().create_task(self._drain(generation))
        self.state = FeedState.LIVE

    def _on_insert(self, record: dict) -> None:
        if self.state is not FeedState.LIVE:
            return
        if not record.get("id"):
            logger.warning(f"Ignoring insert notification without id: {record}")
            return
        self._inbox.put_nowait(record)

    async def _drain(self, generation: int) -> None:
        while generation == self._generation:
            record = await self._inbox.get()
            try:
                message = await self._receive(record)
            except Exception:
                # One bad notification must not stop the feed
                logger.error(f"Dropping notification {record.get('id')} after unexpected error", exc_info=True)
                continue
            if message is None or generation != self._generation:
                continue
            self.messages.append(message)
            for queue in list(self._listeners):
                queue.put_nowait(message)

    async def _receive(self, record: dict) -> Optional[FeedMessage]:
        message_id = record["id"]
        try:
            row = await self.backend.select_one(self.table, {"id": message_id})
        except BackendError as e:
            logger.warning(f"Re-fetch of message {message_id} failed, using notification payload: {e.message}")
            row = record
        if row is None:
            logger.warning(f"Message {message_id} vanished before re-fetch")
            return None

        author = None
        try:
            author_row = await self.backend.select_one("profiles", {"user_id": row.get("user_id")})
            author = Profile.model_validate(author_row) if author_row else None
        except BackendError as e:
            logger.warning(f"Author lookup for message {message_id} failed: {e.message}")
        except pydantic.ValidationError as e:
            logger.warning(f"Malformed author profile for message {message_id}: {e}")

        try:
            return join_message(row, {author.user_id: author} if author else {})
        except pydantic.ValidationError as e:
            logger.warning(f"Dropping malformed message {message_id}: {e}")
            return None

    def events(self) -> AsyncIterator[FeedMessage]:
        """
        Yields every message appended after this call, until the feed closes.
        The listener is registered immediately, not on first iteration.
        """
        queue: asyncio.Queue = asyncio.Queue()
        if self.state is FeedState.CLOSED:
            queue.put_nowait(_CLOSED)
        else:
            self._listeners.add(queue)
        return self._stream(queue)

    async def _stream(self, queue: asyncio.Queue) -> AsyncIterator[FeedMessage]:
        try:
            while True:
                item = await queue.get()
                if item is _CLOSED:
                    return
                yield item
        finally:
            self._listeners.discard(queue)

    # -------- Send --------
    async def send(self, text: str) -> Message:
        """
        Inserts a message. Nothing is appended here: the sender sees their
        own message when the subscription echoes it back.
        """
        session = self.session_store.require()
        content = text.strip() if isinstance(text, str) else ""
        if not content:
            raise ValidationError("Message cannot be empty")

        try:
            row = await self.backend.insert(self.table, {"user_id": session.user_id, "content": content})
        except BackendError as e:
            logger.error(f"Error sending message for {session.user_id}: {e.message}")
            raise SendError(details={"code": e.code}) from e
        return Message.model_validate(row)

    # -------- Teardown --------
    async def close(self) -> None:
        if self.state is FeedState.CLOSED:
            return
        self._generation += 1
        self.state = FeedState.CLOSED
        for queue in list(self._listeners):
            queue.put_nowait(_CLOSED)
        if self._pump is not None:
            self._pump.cancel()
            self._pump = None
        handle, self._handle = self._handle, None
        if handle is not None:
            await self._release(handle)
        logger.info("Message feed closed")

    async def _release(self, handle) -> None:
        try:
            await self.backend.unsubscribe(handle)
        except BackendError as e:
            logger.warning(f"Unsubscribe failed: {e}")
