"""
Blob storage for raw DICOM file bytes.
"""
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Union

from dicom_backend.core.exceptions import NotFoundError, StorageError

logger = logging.getLogger(__name__)

TEMP_PREFIX = ".tmp-"


class LocalBlobStore:
    """Stores blobs as files directly under a single root directory.

    Keys are plain file names. The catalog only ever stores the key, so the
    root can move without rewriting records. Blobs are written once and
    removed, never rewritten in place.
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def _path_for(self, key: str) -> Path:
        if not key or key in (".", "..") or "/" in key or "\\" in key or key.startswith(TEMP_PREFIX):
            raise StorageError(f"Invalid storage key: {key!r}")
        return self.root / key

    def write(self, key: str, data: bytes) -> None:
        """Write the full payload under ``key``.

        The bytes land in a temporary file first and are renamed into place,
        so readers never see a partial blob.
        """
        path = self._path_for(key)
        tmp_name = None
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=TEMP_PREFIX, dir=self.root)
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.remove(tmp_name)
            logger.error(f"Failed to write blob {key}: {e}")
            raise StorageError(f"Failed to write blob {key}: {e}") from e

        logger.info(f"Blob saved: {key} ({len(data)} bytes)")

    def read(self, key: str) -> bytes:
        path = self._path_for(key)
        try:
            with open(path, "rb") as f:
                return f.read()
        except FileNotFoundError as e:
            raise NotFoundError(NotFoundError.BLOB, f"Blob {key} not found", storage_key=key) from e
        except OSError as e:
            logger.error(f"Failed to read blob {key}: {e}")
            raise StorageError(f"Failed to read blob {key}: {e}") from e

    def exists(self, key: str) -> bool:
        return self._path_for(key).is_file()

    def delete(self, key: str) -> bool:
        """Remove a blob. Returns False when there was nothing to remove."""
        path = self._path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            logger.info(f"Blob already absent: {key}")
            return False
        except OSError as e:
            logger.error(f"Failed to delete blob {key}: {e}")
            raise StorageError(f"Failed to delete blob {key}: {e}") from e

        logger.info(f"Blob deleted: {key}")
        return True

    def keys(self) -> List[str]:
        """Keys of every stored blob, in sorted order."""
        if not self.root.exists():
            return []
        try:
            return sorted(
                entry.name for entry in self.root.iterdir()
                if entry.is_file() and not entry.name.startswith(TEMP_PREFIX)
            )
        except OSError as e:
            raise StorageError(f"Failed to list blobs under {self.root}: {e}") from e

    def stats(self) -> Dict[str, Any]:
        """Get storage statistics."""
        stats = {
            "storage_type": "local",
            "storage_path": str(self.root),
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

        total_size = 0
        keys = self.keys()
        for key in keys:
            try:
                total_size += (self.root / key).stat().st_size
            except FileNotFoundError:
                # Deleted between listing and stat
                continue

        stats.update({
            "total_files": len(keys),
            "total_size_bytes": total_size,
            "total_size_mb": round(total_size / (1024 * 1024), 2),
        })
        return stats
