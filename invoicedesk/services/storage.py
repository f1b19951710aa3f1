"""
Blob storage for raw document bytes.

The pipeline only needs key -> bytes with put/get/delete. The local
filesystem store writes to a temporary file and renames it into place so
a failed write never leaves a partial blob behind.
"""
import os
import re
import tempfile
from pathlib import Path
from typing import Dict, Optional

import structlog

from invoicedesk.config import get_settings
from invoicedesk.exceptions import StorageError

logger = structlog.get_logger(__name__)

SAFE_KEY = re.compile(r"^[A-Za-z0-9._-]+$")


class BlobStore:
    """Key to bytes store interface."""

    def put(self, key: str, data: bytes) -> None:
        raise NotImplementedError

    def get(self, key: str) -> bytes:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        raise NotImplementedError


class LocalBlobStore(BlobStore):
    """Blob store backed by a directory on local disk."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        if not SAFE_KEY.match(key):
            raise StorageError(f"Invalid storage key: {key!r}", details={"key": key})
        return self.root / key

    def put(self, key: str, data: bytes) -> None:
        path = self._path(key)
        tmp_name: Optional[str] = None
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.root, prefix=".upload-")
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            logger.error("blob_write_failed", key=key, error=str(e))
            raise StorageError(f"Failed to store {key}", details={"key": key, "reason": str(e)}) from e

    def get(self, key: str) -> bytes:
        path = self._path(key)
        try:
            return path.read_bytes()
        except OSError as e:
            logger.error("blob_read_failed", key=key, error=str(e))
            raise StorageError(f"Failed to read {key}", details={"key": key, "reason": str(e)}) from e

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to delete {key}", details={"key": key, "reason": str(e)}) from e

    def exists(self, key: str) -> bool:
        return self._path(key).exists()


class InMemoryBlobStore(BlobStore):
    """Process-local blob store, used for tests and ephemeral deployments."""

    def __init__(self):
        self._blobs: Dict[str, bytes] = {}

    def put(self, key: str, data: bytes) -> None:
        self._blobs[key] = bytes(data)

    def get(self, key: str) -> bytes:
        try:
            return self._blobs[key]
        except KeyError:
            raise StorageError(f"Blob {key} not found", details={"key": key}) from None

    def delete(self, key: str) -> None:
        self._blobs.pop(key, None)

    def exists(self, key: str) -> bool:
        return key in self._blobs


_store_instance: Optional[BlobStore] = None


def get_blob_store() -> BlobStore:
    """Get the process-wide blob store."""
    global _store_instance
    if _store_instance is None:
        _store_instance = LocalBlobStore(get_settings().upload_dir)
    return _store_instance
