"""
Blob storage for vault files (images, documents).

Files live under ``<root>/<capsule_id>/<unique_name>`` and are addressed
by a URL built from ``base_url``. The vault engine only ever needs
``upload`` and ``remove``.
"""

import logging
import os
from pathlib import Path, PurePosixPath
from typing import Iterable, List, Union

logger = logging.getLogger(__name__)


class BlobStorageError(Exception):
    """Raised when a blob cannot be written or removed."""
    pass


class LocalBlobStore:
    """Filesystem-backed blob store with public URLs."""

    def __init__(self, root: Union[str, Path], base_url: str):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self.base_url = base_url.rstrip("/")

    def _resolve(self, path: str) -> Path:
        """Map a storage path to a file under ``root``, refusing traversal."""
        parts = PurePosixPath(path).parts
        if not parts or any(p in ("..", "/") for p in parts) or PurePosixPath(path).is_absolute():
            raise BlobStorageError(f"Invalid storage path: {path!r}")
        return self.root.joinpath(*parts)

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    def upload(self, path: str, data: bytes, content_type: str) -> str:
        """Store ``data`` at ``path`` and return its public URL.

        Existing files are never overwritten.
        """
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(target, "xb") as f:
                f.write(data)
        except FileExistsError as e:
            raise BlobStorageError(f"Blob already exists: {path}") from e
        logger.debug("Stored blob %s (%d bytes, %s)", path, len(data), content_type)
        return self.public_url(path)

    def exists(self, path: str) -> bool:
        return self._resolve(path).exists()

    def remove(self, paths: Iterable[str]) -> List[str]:
        """Remove blobs. Returns the paths that were actually deleted."""
        removed = []
        for path in paths:
            target = self._resolve(path)
            try:
                os.remove(target)
                removed.append(path)
            except FileNotFoundError:
                logger.debug("Blob %s already gone", path)
        return removed
