import logging
import time
from uuid import uuid4
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import httpx
from supabase import AsyncClient, AuthError, AuthRetryableError, PostgrestAPIError, StorageException, acreate_client

from app.core import config
from app.core.exceptions import BackendError

logger = logging.getLogger(__name__)

Filters = Dict[str, Any]
# (column, descending) pairs applied in order
Order = List[Tuple[str, bool]]


async def create_backend(url: Optional[str] = None, key: Optional[str] = None) -> "SupabaseBackend":
    supabase_url = url or config.SUPABASE_URL
    supabase_key = key or config.SUPABASE_KEY

    if not supabase_url or not supabase_key:
        logger.error("Supabase URL or Key not found in environment variables")
        raise RuntimeError("Server configuration error: SUPABASE_URL and SUPABASE_KEY are required")

    start_time = time.time()
    logger.info("Creating Supabase client")
    client = await acreate_client(supabase_url, supabase_key)
    logger.info(f"Supabase client ready in {time.time() - start_time:.2f} seconds")
    return SupabaseBackend(client)


def _backend_error(e: Exception) -> BackendError:
    code = getattr(e, "code", None) or getattr(e, "status", None)
    message = getattr(e, "message", None) or str(e)
    # Transport failures reach us directly or wrapped by the auth client
    retryable = isinstance(e, (httpx.HTTPError, AuthRetryableError))
    return BackendError(str(message), str(code) if code is not None else None, retryable=retryable)


class SupabaseBackend:
    """
    The hosted database, auth, storage and realtime service, reduced to the
    handful of operations the community services use. Every failure is
    raised as BackendError.
    """

    _errors = (PostgrestAPIError, AuthError, StorageException, httpx.HTTPError)

    def __init__(self, client: AsyncClient):
        self.client = client

    # -------- Row store --------
    async def select(self, table: str, filters: Optional[Filters] = None, order: Optional[Order] = None,
                     columns: str = "*") -> List[dict]:
        query = self.client.table(table).select(columns)
        for column, value in (filters or {}).items():
            query = query.eq(column, value)
        for column, desc in order or []:
            query = query.order(column, desc=desc)
        try:
            response = await query.execute()
        except self._errors as e:
            raise _backend_error(e) from e
        return response.data or []

    async def select_one(self, table: str, filters: Filters) -> Optional[dict]:
        query = self.client.table(table).select("*")
        for column, value in filters.items():
            query = query.eq(column, value)
        try:
            response = await query.limit(1).execute()
        except self._errors as e:
            raise _backend_error(e) from e
        return response.data[0] if response.data else None

    async def insert(self, table: str, fields: dict) -> dict:
        try:
            response = await self.client.table(table).insert(fields).execute()
        except self._errors as e:
            raise _backend_error(e) from e
        if not response.data:
            raise BackendError(f"Insert into {table} returned no row")
        return response.data[0]

    async def update(self, table: str, filters: Filters, fields: dict) -> dict:
        query = self.client.table(table).update(fields)
        for column, value in filters.items():
            query = query.eq(column, value)
        try:
            response = await query.execute()
        except self._errors as e:
            raise _backend_error(e) from e
        if not response.data:
            # Row-level policy filtered the row out, or it does not exist
            raise BackendError(f"Update on {table} matched no row", code="PGRST116")
        return response.data[0]

    # -------- Auth --------
    async def sign_in(self, email: str, password: str):
        try:
            return await self.client.auth.sign_in_with_password({"email": email, "password": password})
        except self._errors as e:
            raise _backend_error(e) from e

    async def sign_up(self, email: str, password: str, metadata: Optional[dict] = None):
        try:
            return await self.client.auth.sign_up({
                "email": email,
                "password": password,
                "options": {"data": metadata or {}},
            })
        except self._errors as e:
            raise _backend_error(e) from e

    async def sign_out(self):
        try:
            await self.client.auth.sign_out()
        except self._errors as e:
            raise _backend_error(e) from e

    async def resume(self, access_token: str, refresh_token: str):
        """Re-attaches a stored session to the client so requests run as that user."""
        try:
            return await self.client.auth.set_session(access_token, refresh_token)
        except self._errors as e:
            raise _backend_error(e) from e

    # -------- Push channel --------
    async def subscribe(self, table: str, callback: Callable[[dict], None], event: str = "INSERT"):
        """
        Opens a realtime channel for `event` on `table`. The callback gets the
        inserted row as a dict.
        """
        def on_change(payload: dict):
            data = payload.get("data", payload)
            record = data.get("record") or data.get("new") or {}
            callback(record)

        def on_status(status, error=None):
            # No backfill happens on reconnect, so a drop is only logged
            if error is not None:
                logger.warning(f"Realtime channel for {table} reported {status}: {error}")
            else:
                logger.info(f"Realtime channel for {table}: {status}")

        # One topic per subscriber; a shared topic would be joined only once per socket
        channel = self.client.channel(f"public:{table}:{event.lower()}:{uuid4().hex[:8]}")
        channel.on_postgres_changes(event=event, schema="public", table=table, callback=on_change)
        try:
            await channel.subscribe(on_status)
        except Exception as e:
            raise _backend_error(e) from e
        logger.info(f"Subscribed to {event} on {table}")
        return channel

    async def unsubscribe(self, handle) -> None:
        try:
            await self.client.remove_channel(handle)
        except Exception as e:
            raise _backend_error(e) from e

    # -------- Object storage --------
    async def upload(self, bucket: str, path: str, data: bytes, content_type: str) -> str:
        storage = self.client.storage.from_(bucket)
        try:
            await storage.upload(path=path, file=data, file_options={"content-type": content_type})
            return await storage.get_public_url(path)
        except self._errors as e:
            raise _backend_error(e) from e

    async def remove(self, bucket: str, paths: Iterable[str]) -> None:
        try:
            await self.client.storage.from_(bucket).remove(list(paths))
        except self._errors as e:
            raise _backend_error(e) from e
