"""
Object storage for uploaded images.

Files live in MongoDB GridFS under a path-like filename and are served back by
the /files/{path} route, so the public URL of an object is simply
PUBLIC_BASE_URL + /files/ + path.
"""
import logging
import os
import re
import secrets
import time
from typing import Optional, Protocol

import gridfs
from gridfs.errors import NoFile
from starlette.concurrency import run_in_threadpool

from errors import UploadError, ValidationError

logger = logging.getLogger(__name__)

MAX_DESIGN_BYTES = 5 * 1024 * 1024
DESIGN_PREFIX = "custom-designs"
PRODUCT_IMAGE_PREFIX = "products"
EXTENSION = re.compile(r"[a-z0-9]{1,5}")


class ObjectStorage(Protocol):
    def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> None: ...

    def public_url(self, path: str) -> str: ...


class GridFSStorage:
    def __init__(self, database, base_url: Optional[str] = None, bucket: str = "product-images"):
        self.fs = gridfs.GridFS(database, collection=bucket)
        self.base_url = (base_url or os.getenv("PUBLIC_BASE_URL", "http://localhost:8000")).rstrip("/")

    def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> None:
        if self.fs.exists({"filename": path}):
            raise FileExistsError(path)
        self.fs.put(data, filename=path, metadata={"contentType": content_type})

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/files/{path}"

    def open(self, path: str):
        """Return the newest GridOut stored under path, or None."""
        try:
            return self.fs.get_last_version(filename=path)
        except NoFile:
            return None


def design_path(filename: str, prefix: str = DESIGN_PREFIX, now_ms: Optional[int] = None) -> str:
    """Build a collision resistant object path: <prefix>/<epoch ms>-<random>.<ext>"""
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if not EXTENSION.fullmatch(ext):
        ext = "bin"
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{prefix}/{stamp}-{secrets.token_hex(6)}.{ext}"


def too_large(max_bytes: int) -> ValidationError:
    return ValidationError(f"File size should be less than {max_bytes // (1024 * 1024)}MB")


async def read_limited(file, max_bytes: int = MAX_DESIGN_BYTES) -> bytes:
    """Read an UploadFile, never buffering more than max_bytes + 1 bytes."""
    size = getattr(file, "size", None)
    if size is not None and size > max_bytes:
        raise too_large(max_bytes)
    data = await file.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise too_large(max_bytes)
    return data


class DesignUploader:
    def __init__(self, storage: ObjectStorage, prefix: str = DESIGN_PREFIX, max_bytes: int = MAX_DESIGN_BYTES):
        self.storage = storage
        self.prefix = prefix
        self.max_bytes = max_bytes

    def check(self, filename: str, content_type: Optional[str], size: int) -> None:
        if size > self.max_bytes:
            raise too_large(self.max_bytes)
        if size == 0:
            raise ValidationError("Uploaded file is empty")
        if content_type and not content_type.startswith("image/"):
            raise ValidationError("Only image files can be uploaded")

    async def upload(self, filename: str, content_type: Optional[str], data: bytes) -> str:
        self.check(filename, content_type, len(data))
        path = design_path(filename, self.prefix)
        try:
            await run_in_threadpool(self.storage.upload, path, data, content_type)
        except Exception as e:
            logger.exception("Upload of %s failed", path)
            raise UploadError("Failed to upload image. Please try again.") from e
        url = self.storage.public_url(path)
        logger.info("Stored %s (%d bytes)", path, len(data))
        return url
