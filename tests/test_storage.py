"""Tests for src.storage: media paths and the blob store backends."""

import re
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.exceptions import StorageUploadError
from src.storage import (
    LocalBlobStore,
    SupabaseBlobStore,
    build_blob_store,
    media_path,
)


def test_media_path_layout():
    path = media_path("images", "s-1", "hero-image", "png")
    assert re.fullmatch(r"images/s-1/hero-image-\d{13}\.png", path)


@pytest.mark.asyncio
async def test_local_store_writes_file_and_returns_uri(tmp_path):
    store = LocalBlobStore(str(tmp_path))

    url = await store.upload(b"bytes", "image/png", "images/s-1/a.png")

    assert url.startswith("file://")
    assert (tmp_path / "images" / "s-1" / "a.png").read_bytes() == b"bytes"


@pytest.mark.asyncio
async def test_local_store_wraps_os_errors(tmp_path):
    blocker = tmp_path / "images"
    blocker.write_text("not a directory")
    store = LocalBlobStore(str(tmp_path))

    with pytest.raises(StorageUploadError, match="images/s-1/a.png"):
        await store.upload(b"x", "image/png", "images/s-1/a.png")


def _supabase_client(upload):
    bucket = MagicMock()
    bucket.upload = upload
    client = MagicMock()
    client.storage.from_.return_value = bucket
    return client


@pytest.mark.asyncio
async def test_supabase_store_uploads_and_builds_public_url():
    upload = AsyncMock()
    client = _supabase_client(upload)
    store = SupabaseBlobStore(client, "https://proj.supabase.co/", "campaign-assets")

    url = await store.upload(b"mp4", "video/mp4", "videos/s-1/v.mp4")

    assert url == (
        "https://proj.supabase.co/storage/v1/object/public/campaign-assets/videos/s-1/v.mp4"
    )
    client.storage.from_.assert_called_once_with("campaign-assets")
    path, data, options = upload.await_args.args
    assert (path, data) == ("videos/s-1/v.mp4", b"mp4")
    assert options["content-type"] == "video/mp4"


@pytest.mark.asyncio
async def test_supabase_store_wraps_backend_errors():
    client = _supabase_client(AsyncMock(side_effect=RuntimeError("Bucket not found")))
    store = SupabaseBlobStore(client, "https://proj.supabase.co", "missing")

    with pytest.raises(StorageUploadError, match="Bucket not found"):
        await store.upload(b"x", "image/png", "images/s-1/a.png")


def test_build_blob_store_selects_backend(tmp_path):
    assert isinstance(build_blob_store("memory", local_dir=str(tmp_path)), LocalBlobStore)
    supabase = build_blob_store(
        "supabase", client=MagicMock(), supabase_url="https://p.supabase.co", bucket="b"
    )
    assert isinstance(supabase, SupabaseBlobStore)
    with pytest.raises(StorageUploadError):
        build_blob_store("supabase")
