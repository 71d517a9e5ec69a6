"""Blob storage for blueprint artifacts and their preview images."""

from __future__ import annotations

import asyncio
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

BLUEPRINT_BUCKET = "blueprints"
IMAGE_BUCKET = "images"

_KEY_SEGMENT = re.compile(r"^[A-Za-z0-9_.\-]+$")

IMAGE_SIGNATURES = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
)


class BlobStoreError(Exception):
    """Raised when a blob cannot be written or read."""


class InvalidBlobKeyError(BlobStoreError):
    """Raised when a user or file id is not a safe path segment."""


class BlobNotFoundError(BlobStoreError):
    """Raised when a requested blob does not exist."""


class BlobStore(Protocol):
    """Byte storage keyed by (user_id, file_id) in two buckets. Saves overwrite."""

    async def save_blueprint(self, user_id: str, file_id: str, data: bytes) -> None: ...

    async def save_image(self, user_id: str, file_id: str, data: bytes) -> None: ...

    async def load_blueprint(self, user_id: str, file_id: str) -> bytes: ...

    async def load_image(self, user_id: str, file_id: str) -> bytes: ...


def guess_image_mime(data: bytes) -> str:
    for signature, mime in IMAGE_SIGNATURES:
        if data.startswith(signature):
            return mime
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return "application/octet-stream"


class LocalBlobStore:
    """Filesystem blob store.

    Layout: {root}/{bucket}/{user_id}/{file_id}
    """

    def __init__(self, root: str | Path):
        self._root = Path(root)

    def _path(self, bucket: str, user_id: str, file_id: str) -> Path:
        for segment in (user_id, file_id):
            if not segment or segment in {".", ".."} or not _KEY_SEGMENT.match(segment):
                raise InvalidBlobKeyError(f"Invalid blob key segment: {segment!r}")
        return self._root / bucket / user_id / file_id

    def _write(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    async def _save(self, bucket: str, user_id: str, file_id: str, data: bytes) -> None:
        path = self._path(bucket, user_id, file_id)
        try:
            await asyncio.to_thread(self._write, path, data)
        except OSError as exc:
            logger.exception("Failed to write %s blob %s/%s", bucket, user_id, file_id)
            raise BlobStoreError(f"Could not store {bucket} blob: {exc}") from exc
        logger.info("Stored %s blob %s/%s (%d bytes)", bucket, user_id, file_id, len(data))

    async def _load(self, bucket: str, user_id: str, file_id: str) -> bytes:
        path = self._path(bucket, user_id, file_id)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as exc:
            raise BlobNotFoundError(f"{bucket} blob not found") from exc
        except OSError as exc:
            logger.exception("Failed to read %s blob %s/%s", bucket, user_id, file_id)
            raise BlobStoreError(f"Could not read {bucket} blob: {exc}") from exc

    async def save_blueprint(self, user_id: str, file_id: str, data: bytes) -> None:
        await self._save(BLUEPRINT_BUCKET, user_id, file_id, data)

    async def save_image(self, user_id: str, file_id: str, data: bytes) -> None:
        await self._save(IMAGE_BUCKET, user_id, file_id, data)

    async def load_blueprint(self, user_id: str, file_id: str) -> bytes:
        return await self._load(BLUEPRINT_BUCKET, user_id, file_id)

    async def load_image(self, user_id: str, file_id: str) -> bytes:
        return await self._load(IMAGE_BUCKET, user_id, file_id)
