"""
JSON File Store - single-writer persistence for one JSON document

Responsibilities:
- Read a JSON document, degrading to a default when missing or corrupt
- Write atomically (temp file + fsync + rename)
- Serialize writers with a per-file lock
"""
import copy
import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised when a document cannot be written"""
    pass


class JSONFileStore:
    """
    One JSON document on disk.

    Readers never see a half-written file: writes go to a temporary file in
    the same directory and are renamed over the target.
    """

    def __init__(self, path: Path, default: Any, file_mode: Optional[int] = None):
        """
        Args:
            path: Location of the JSON document
            default: Value returned when the document is missing or malformed
            file_mode: Optional permission bits applied to the written file
        """
        self.path = Path(path)
        self.default = default
        self.file_mode = file_mode
        self._lock = threading.RLock()

    def read(self) -> Any:
        """Return the parsed document, or a fresh copy of the default."""
        if not self.path.exists():
            return copy.deepcopy(self.default)
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"[JSONFileStore] {self.path.name} is malformed, starting empty: {e}")
            return copy.deepcopy(self.default)
        if not isinstance(data, type(self.default)):
            logger.warning(f"[JSONFileStore] {self.path.name} has unexpected shape, starting empty")
            return copy.deepcopy(self.default)
        return data

    def write(self, document: Any) -> None:
        """
        Atomically replace the document on disk.

        Raises:
            StoreError: If the document cannot be serialized or written
        """
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            try:
                payload = json.dumps(document, indent=2)
            except (TypeError, ValueError) as e:
                raise StoreError(f"Cannot serialize {self.path.name}: {e}") from e

            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                    f.flush()
                    os.fsync(f.fileno())
                if self.file_mode is not None:
                    os.chmod(tmp_name, self.file_mode)
                os.replace(tmp_name, self.path)
            except OSError as e:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise StoreError(f"Failed to write {self.path}: {e}") from e

    @contextmanager
    def transaction(self) -> Iterator[Any]:
        """
        Hold the writer lock across a read-modify-write cycle.

        The yielded document is written back when the block exits normally.
        """
        with self._lock:
            document = self.read()
            yield document
            self.write(document)


__all__ = ["JSONFileStore", "StoreError"]
