"""
Object storage for uploaded files (KYC documents, project images, avatars).

Objects live under ``STORAGE_DIR/<bucket>/<path>`` and are served by the
application under ``STORAGE_PUBLIC_URL``.  Disk I/O runs in a worker thread
so uploads never block the event loop.
"""

import asyncio
import logging
import os
from datetime import datetime, timezone
from typing import Optional, Tuple

from fastapi import Request, UploadFile
from werkzeug.utils import secure_filename

from agrofund.core.config import settings

logger = logging.getLogger(__name__)

KYC_BUCKET = "kyc-documents"
PROJECT_IMAGES_BUCKET = "project-images"
AVATARS_BUCKET = "avatars"

IMAGE_TYPES = ("image/",)
DOCUMENT_TYPES = ("image/", "application/pdf")


class StorageError(OSError):
    """Raised when an object cannot be written, removed or addressed."""


class UploadRejected(StorageError):
    """The uploaded file has the wrong type or is too large."""


def safe_filename(filename: str) -> str:
    """``"my scan (1).pdf"`` → ``"my_scan_1.pdf"``; never empty, never a path."""
    return secure_filename(filename or "") or "upload"


def timestamped_name(prefix: str, filename: str) -> str:
    """``{prefix}-{epoch ms}-{safe filename}``."""
    stamp = int(datetime.now(timezone.utc).timestamp() * 1000)
    return f"{prefix}-{stamp}-{safe_filename(filename)}"


async def read_upload(
    file: UploadFile,
    content_types: Optional[Tuple[str, ...]] = None,
    max_bytes: int = settings.MAX_UPLOAD_BYTES,
) -> bytes:
    """
    Read an upload fully, enforcing type and size limits.

    ``content_types`` entries ending in ``/`` match a whole family
    (``"image/"``).
    """
    content_type = file.content_type or ""
    if content_types and not any(
        content_type.startswith(t) if t.endswith("/") else content_type == t for t in content_types
    ):
        if content_types == IMAGE_TYPES:
            raise UploadRejected("Please upload an image file")
        raise UploadRejected("Unsupported file type")
    data = await file.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise UploadRejected(f"File size must be less than {max_bytes // (1024 * 1024)}MB")
    if not data:
        raise UploadRejected("The uploaded file is empty")
    return data


class LocalObjectStorage:
    """Filesystem-backed buckets with public URLs."""

    def __init__(self, root: str = settings.STORAGE_DIR, public_url: str = settings.STORAGE_PUBLIC_URL):
        self.root = os.path.abspath(root)
        self.public_url = public_url.rstrip("/")

    def _resolve(self, bucket: str, path: str) -> str:
        full = os.path.abspath(os.path.join(self.root, bucket, path))
        if not full.startswith(os.path.join(self.root, bucket) + os.sep):
            raise StorageError(f"Invalid object path: {bucket}/{path}")
        return full

    def public_url_for(self, bucket: str, path: str) -> str:
        return f"{self.public_url}/{bucket}/{path}"

    def _write(self, full_path: str, data: bytes) -> None:
        os.makedirs(os.path.dirname(full_path), exist_ok=True)
        with open(full_path, "wb") as out:
            out.write(data)

    async def upload(self, bucket: str, path: str, data: bytes) -> str:
        """Store ``data`` and return its public URL."""
        full_path = self._resolve(bucket, path)
        try:
            await asyncio.to_thread(self._write, full_path, data)
        except OSError as exc:
            logger.error("Upload to %s/%s failed: %s", bucket, path, exc)
            raise StorageError(f"Could not store {bucket}/{path}") from exc
        logger.info("Stored %s/%s (%d bytes)", bucket, path, len(data))
        return self.public_url_for(bucket, path)

    async def delete(self, bucket: str, path: str) -> bool:
        """Remove an object; returns False when it did not exist."""
        full_path = self._resolve(bucket, path)
        try:
            await asyncio.to_thread(os.remove, full_path)
        except FileNotFoundError:
            return False
        except OSError as exc:
            logger.error("Delete of %s/%s failed: %s", bucket, path, exc)
            raise StorageError(f"Could not delete {bucket}/{path}") from exc
        logger.info("Deleted %s/%s", bucket, path)
        return True


def get_storage(request: Request) -> LocalObjectStorage:
    """FastAPI dependency returning the application's object storage."""
    return request.app.state.storage
