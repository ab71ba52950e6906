from pathlib import Path

from compliance_worker.logging.logger import Log
from compliance_worker.storage.base import BaseBlobStore
from compliance_worker.storage.exceptions import (
    BlobNotFoundError,
    InvalidBlobRefError,
    StorageError,
)

_MAX_DETAIL_LENGTH = 250


class LocalBlobStore(BaseBlobStore):
    """Blob store backed by a directory on the local filesystem."""

    FILES_ROOT = Path("/app/files")

    def __init__(self, files_root: Path | None = None) -> None:
        self._files_root = files_root if files_root is not None else self.FILES_ROOT

    def fetch_text(self, ref: str) -> str:
        path = self._resolve(ref)
        Log.debug(f"Reading blob {ref} from {path}")
        if not path.is_file():
            raise BlobNotFoundError(f"File not found at path: {ref}")
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise StorageError(
                f"Failed to read blob ({ref}): {str(exc)[:_MAX_DETAIL_LENGTH]}"
            ) from exc

    def store(self, ref: str, content: str, content_type: str) -> None:
        path = self._resolve(ref)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        except OSError as exc:
            raise StorageError(
                f"Failed to write blob ({ref}): {str(exc)[:_MAX_DETAIL_LENGTH]}"
            ) from exc
        Log.debug(f"Stored blob {ref} ({content_type}, {len(content)} chars)")

    def delete(self, ref: str) -> None:
        try:
            path = self._resolve(ref)
        except InvalidBlobRefError as exc:
            Log.warning(f"Skipping blob deletion: {exc}")
            return
        if not path.exists():
            Log.warning(f"Blob not found, nothing to delete: {ref}")
            return
        try:
            path.unlink()
        except OSError as exc:
            Log.error(f"Failed to delete blob {ref}: {exc}")
            return
        Log.info(f"Deleted blob {ref}")

    def _resolve(self, ref: str) -> Path:
        if not ref or not ref.strip():
            raise InvalidBlobRefError("Blob reference is empty")
        root = self._files_root.resolve()
        path = (root / ref.lstrip("/")).resolve()
        if not path.is_relative_to(root):
            raise InvalidBlobRefError(f"Blob reference escapes storage root: {ref}")
        return path
