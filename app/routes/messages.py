from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from typing import List
import asyncio
import json
import logging

from app.core.exceptions import CommunityError
from app.dependencies.auth import current_session, get_backend, get_session_store
from app.schemas.message import FeedMessage, Message, MessageCreate
from app.services.message_feed import MessageFeed
from app.services.session_store import SessionStore
from app.services.supabase import SupabaseBackend

logger = logging.getLogger(__name__)

router = APIRouter()

# Close code sent to a feed socket opened without a session
WS_NOT_LOGGED_IN = 4401


def feed_frame(message: FeedMessage) -> dict:
    return {
        "type": "message",
        "message": message.model_dump(mode="json", by_alias=True),
        "author_name": message.author_name,
    }


# -------- History snapshot --------
@router.get("", response_model=List[FeedMessage], dependencies=[Depends(current_session)])
async def get_messages(
    backend: SupabaseBackend = Depends(get_backend),
    store: SessionStore = Depends(get_session_store),
):
    feed = MessageFeed(backend, store)
    try:
        return await feed.load_history()
    finally:
        await feed.close()


# -------- Send --------
@router.post("", response_model=Message, status_code=201, dependencies=[Depends(current_session)])
async def send_message(
    payload: MessageCreate,
    backend: SupabaseBackend = Depends(get_backend),
    store: SessionStore = Depends(get_session_store),
):
    return await MessageFeed(backend, store).send(payload.content)


# -------- Live feed: one mounted feed per socket --------
@router.websocket("/feed")
async def message_feed(websocket: WebSocket):
    store: SessionStore = websocket.app.state.session_store
    if store.current is None:
        await websocket.close(code=WS_NOT_LOGGED_IN)
        return

    await websocket.accept()
    feed = MessageFeed(websocket.app.state.backend, store)
    try:
        async with feed:
            stream = feed.events()
            await websocket.send_json({
                "type": "history",
                "messages": [feed_frame(m) for m in feed.messages],
            })
            forward = asyncio.create_task(_forward(stream, websocket))
            try:
                while True:
                    data = await _receive_frame(websocket)
                    if data is None or data.get("type") != "send":
                        continue
                    try:
                        await feed.send(data.get("content", ""))
                    except CommunityError as e:
                        await websocket.send_json({"type": "error", "error": e.message, "code": e.code})
            finally:
                forward.cancel()
    except WebSocketDisconnect:
        logger.info("Feed socket disconnected")
    except CommunityError as e:
        logger.error(f"Feed could not be mounted: {e.message}")
        await websocket.close(code=1011)


async def _receive_frame(websocket: WebSocket):
    """Next client frame as a dict, or None after replying to a malformed one."""
    text = await websocket.receive_text()
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        data = None
    if isinstance(data, dict):
        return data
    logger.warning(f"Ignoring malformed feed frame: {text[:100]!r}")
    await websocket.send_json({"type": "error", "error": "Frames must be JSON objects", "code": "VALIDATION_ERROR"})
    return None


async def _forward(stream, websocket: WebSocket):
    async for message in stream:
        await websocket.send_json(feed_frame(message))
