"""
Blob storage for progress-log attachments.

The tracker only ever stores the returned URL on the log record, so any object
store works behind ``put``. ``LocalBlobStore`` writes under UPLOAD_DIR and
serves them from PUBLIC_UPLOAD_URL.
"""

import logging
import uuid
from pathlib import Path, PurePosixPath
from typing import Protocol

import config
from errors import PersistenceError, ValidationError

logger = logging.getLogger(__name__)


class BlobStore(Protocol):
    def put(self, data: bytes, path_hint: str) -> str: ...


def attachment_path(project_id: str, filename: str) -> str:
    """``projects/<project_id>/<uuid>.<ext>``; the original name is not kept."""
    suffix = PurePosixPath(filename).suffix
    return f"projects/{project_id}/{uuid.uuid4()}{suffix}"


class LocalBlobStore:
    def __init__(self, base_path: str = None, public_url: str = None):
        self.base_path = Path(base_path or config.UPLOAD_DIR)
        self.public_url = (public_url or config.PUBLIC_UPLOAD_URL).rstrip("/")

    def _resolve(self, path_hint: str) -> Path:
        safe_path = PurePosixPath(path_hint).as_posix().lstrip("/")
        if ".." in PurePosixPath(safe_path).parts:
            raise ValidationError("Path traversal detected", field="path")
        return self.base_path / safe_path

    def put(self, data: bytes, path_hint: str) -> str:
        full_path = self._resolve(path_hint)
        try:
            full_path.parent.mkdir(parents=True, exist_ok=True)
            full_path.write_bytes(data)
        except OSError as e:
            logger.error("Failed to store blob %s: %s", path_hint, e)
            raise PersistenceError(f"Failed to store {path_hint}", cause=e) from e

        relative = full_path.relative_to(self.base_path).as_posix()
        logger.debug("Stored %d bytes at %s", len(data), relative)
        return f"{self.public_url}/{relative}"
