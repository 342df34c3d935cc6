import logging
from typing import Dict, NamedTuple, Optional
from uuid import uuid4

from app.core import config
from app.core.exceptions import BackendError, UploadError, ValidationError
from app.services.supabase import SupabaseBackend

logger = logging.getLogger(__name__)


class AvatarStorage:
    """Profile images in the object store, one folder per user."""

    def __init__(self, backend: SupabaseBackend, bucket: str = config.AVATAR_BUCKET,
                 max_bytes: int = config.AVATAR_MAX_BYTES,
                 mime_types: Optional[Dict[str, str]] = None):
        self.backend = backend
        self.bucket = bucket
        self.max_bytes = max_bytes
        self.mime_types = mime_types or config.AVATAR_MIME_TYPES

    def validate(self, data: bytes, content_type: Optional[str]) -> str:
        """
        Checks type and size before anything touches the network.
        Returns the file extension for the accepted type.
        """
        if content_type not in self.mime_types:
            allowed = ", ".join(sorted(self.mime_types))
            raise ValidationError(f"Unsupported image type {content_type!r}; expected one of {allowed}")
        if not data:
            raise ValidationError("Image file is empty")
        if len(data) > self.max_bytes:
            raise ValidationError(
                f"Image is {len(data)} bytes; the limit is {self.max_bytes} bytes",
                details={"size": len(data), "max_bytes": self.max_bytes},
            )
        return self.mime_types[content_type]

    def path_from_url(self, url: Optional[str]) -> Optional[str]:
        """Object path of a public URL in our bucket, or None for external URLs."""
        if not url:
            return None
        marker = f"/storage/v1/object/public/{self.bucket}/"
        if marker not in url:
            return None
        return url.split(marker, 1)[1].split("?", 1)[0] or None

    async def replace(self, user_id: str, data: bytes, content_type: Optional[str],
                      current_url: Optional[str] = None) -> str:
        ext = self.validate(data, content_type)

        old_path = self.path_from_url(current_url)
        if old_path:
            try:
                await self.backend.remove(self.bucket, [old_path])
                logger.info(f"Removed previous avatar {old_path}")
            except BackendError as e:
                logger.warning(f"Could not remove previous avatar {old_path}: {e.message}")

        path = f"{user_id}/{uuid4().hex}.{ext}"
        try:
            url = await self.backend.upload(self.bucket, path, data, content_type)
        except BackendError as e:
            logger.error(f"Avatar upload failed for {user_id}: {e.message}")
            raise UploadError("Failed to upload image", details={"code": e.code}) from e

        logger.info(f"Uploaded avatar {path} ({len(data)} bytes)")
        return url


class AvatarUpload(NamedTuple):
    data: bytes
    content_type: Optional[str]
    filename: Optional[str] = None
