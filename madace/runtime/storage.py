"""
storage.py - Durable text storage for execution state and status documents.

Workflow execution state (JSON) and the story status document (Markdown) are
persisted through a StateStore. The store exposes compare-and-swap on a
content ETag so a writer can detect that another process changed the file
since it was read, instead of silently overwriting it.

Implementations:
- FileStateStore: local files, atomic temp-file + os.replace writes
- MemoryStateStore: dictionary-backed, for tests and embedding
"""

from __future__ import annotations

import hashlib
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional, Union

from madace._io import read_text
from madace.errors import ConcurrencyError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def compute_etag(content: Union[str, bytes]) -> str:
    """SHA-256 ETag of content."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()


class StateStore(ABC):
    """Abstract text store keyed by path."""

    @abstractmethod
    def read(self, path: PathLike) -> Optional[str]:
        """Return the stored text, or None if nothing is stored at path."""
        ...

    @abstractmethod
    def write(self, path: PathLike, content: str) -> str:
        """Store content unconditionally. Returns the new ETag."""
        ...

    @abstractmethod
    def delete(self, path: PathLike) -> bool:
        """Remove the entry. Returns True if something was removed."""
        ...

    def etag(self, path: PathLike) -> Optional[str]:
        content = self.read(path)
        return compute_etag(content) if content is not None else None

    def exists(self, path: PathLike) -> bool:
        return self.read(path) is not None

    def compare_and_swap(
        self,
        path: PathLike,
        expected_etag: Optional[str],
        content: str,
    ) -> str:
        """Write content only if the current ETag matches expected_etag.

        `expected_etag=None` means the entry must not exist yet.

        Raises:
            ConcurrencyError: If the stored content changed.
        """
        actual = self.etag(path)
        if actual != expected_etag:
            raise ConcurrencyError(path, expected_etag, actual)
        return self.write(path, content)


class FileStateStore(StateStore):
    """Stores text in local files with atomic replacement.

    Compare-and-swap is check-then-write within one process; it detects a
    concurrent writer that finished first but is not a cross-process lock.
    """

    def read(self, path: PathLike) -> Optional[str]:
        file_path = Path(path)
        if not file_path.exists():
            return None
        return read_text(file_path, newline="")

    def write(self, path: PathLike, content: str) -> str:
        file_path = Path(path)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        # Temp file in the same directory so os.replace stays on one filesystem
        fd, tmp_path = tempfile.mkstemp(
            suffix=".tmp",
            prefix=file_path.name + ".",
            dir=file_path.parent,
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, file_path)
            logger.debug("Atomic write complete: %s", file_path)
        except Exception:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        return compute_etag(content)

    def delete(self, path: PathLike) -> bool:
        file_path = Path(path)
        if not file_path.exists():
            return False
        file_path.unlink()
        return True


class MemoryStateStore(StateStore):
    """Dictionary-backed store with the same semantics as FileStateStore."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    @staticmethod
    def _key(path: PathLike) -> str:
        return os.path.abspath(path)

    def read(self, path: PathLike) -> Optional[str]:
        return self._data.get(self._key(path))

    def write(self, path: PathLike, content: str) -> str:
        self._data[self._key(path)] = content
        return compute_etag(content)

    def delete(self, path: PathLike) -> bool:
        return self._data.pop(self._key(path), None) is not None
