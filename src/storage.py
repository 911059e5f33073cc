"""
Object storage for generated binary media.

Nodes never keep raw bytes in the session document: images, videos and
voice-overs are uploaded here and only the returned public URL is stored.

Provides:
    - BlobStore: abstract ``upload(data, mime_type, path) -> url`` interface
    - SupabaseBlobStore: Supabase Storage bucket (public URLs)
    - LocalBlobStore: files under a local directory (``file://`` URLs)
    - media_path(): the ``{kind}/{session_id}/{name}-{ms}.{ext}`` layout

Usage::

    store = LocalBlobStore("data")
    url = await store.upload(payload.data, "image/png",
                             media_path("images", session_id, "hero-image", "png"))
"""

import abc
import logging
from pathlib import Path
from typing import Optional

import aiofiles
from supabase import AsyncClient

from src.exceptions import StorageUploadError
from src.utils import epoch_ms

logger = logging.getLogger(__name__)


def media_path(kind: str, session_id: str, name: str, extension: str) -> str:
    """Object path for one generated file, unique per millisecond."""
    return f"{kind}/{session_id}/{name}-{epoch_ms()}.{extension}"


class BlobStore(abc.ABC):
    """Store bytes, get a URL back."""

    @abc.abstractmethod
    async def upload(self, data: bytes, mime_type: str, path: str) -> str:
        """Upload *data* to *path* and return its public URL.

        Raises:
            StorageUploadError: When the backend rejects the write.
        """


class SupabaseBlobStore(BlobStore):
    """Supabase Storage bucket with public read access.

    Args:
        client: An initialised ``supabase.AsyncClient``.
        supabase_url: Project URL, used to build public object URLs.
        bucket: Bucket name (must already exist and be public).
    """

    def __init__(self, client: AsyncClient, supabase_url: str, bucket: str) -> None:
        self.client = client
        self.supabase_url = supabase_url.rstrip("/")
        self.bucket = bucket

    def public_url(self, path: str) -> str:
        return f"{self.supabase_url}/storage/v1/object/public/{self.bucket}/{path}"

    async def upload(self, data: bytes, mime_type: str, path: str) -> str:
        try:
            await self.client.storage.from_(self.bucket).upload(
                path,
                data,
                {"content-type": mime_type, "upsert": "true"},
            )
        except Exception as exc:
            raise StorageUploadError(path, f"{type(exc).__name__}: {exc}") from exc

        url = self.public_url(path)
        logger.info("Uploaded %d bytes to %s", len(data), url)
        return url


class LocalBlobStore(BlobStore):
    """Write blobs under a local directory; used by the in-memory backend."""

    def __init__(self, root: str = "data") -> None:
        self.root = Path(root).resolve()

    async def upload(self, data: bytes, mime_type: str, path: str) -> str:
        target = self.root / path
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(target, "wb") as f:
                await f.write(data)
        except OSError as exc:
            raise StorageUploadError(path, str(exc)) from exc

        logger.debug("Stored %d bytes (%s) at %s", len(data), mime_type, target)
        return target.as_uri()


def build_blob_store(
    backend: str,
    client: Optional[AsyncClient] = None,
    supabase_url: Optional[str] = None,
    bucket: str = "campaign-assets",
    local_dir: str = "data",
) -> BlobStore:
    """Blob store matching the configured storage backend."""
    if backend == "supabase":
        if client is None or not supabase_url:
            raise StorageUploadError(bucket, "Supabase client and URL are required")
        return SupabaseBlobStore(client, supabase_url, bucket)
    return LocalBlobStore(local_dir)


__all__ = [
    "BlobStore",
    "SupabaseBlobStore",
    "LocalBlobStore",
    "build_blob_store",
    "media_path",
]
