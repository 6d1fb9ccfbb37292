"""
History Store - append-only conversation log

Responsibilities:
- Persist request/response messages to history.json
- Keep created_at non-decreasing in insertion order
- Provide list / recent / clear (no single-entry edits)
"""
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List

from pydantic import BaseModel, Field, ValidationError

from storage.json_store import JSONFileStore

logger = logging.getLogger(__name__)

HISTORY_FILE = "history.json"


class HistoryEntry(BaseModel):
    """A single conversation message"""
    role: str = Field(..., description="user, assistant or system")
    content: str = Field(..., description="Message text")
    created_at: datetime = Field(..., description="When the message was recorded (UTC)")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class HistoryStore:
    """
    Append-only message history for one data directory.
    """

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)
        self._file = JSONFileStore(self.data_dir / HISTORY_FILE, default=[])

    def _load(self) -> List[HistoryEntry]:
        entries = []
        for raw in self._file.read():
            try:
                entries.append(HistoryEntry.model_validate(raw))
            except ValidationError:
                logger.warning("[HistoryStore] Skipping malformed history entry")
        return entries

    def append(self, role: str, content: str) -> HistoryEntry:
        """
        Append a message, stamping it with the current time.

        Args:
            role: Message author role
            content: Message text

        Returns:
            The stored entry
        """
        with self._file.transaction() as document:
            created_at = _now()
            if document:
                try:
                    previous = HistoryEntry.model_validate(document[-1]).created_at
                    if previous.tzinfo is None:
                        previous = previous.replace(tzinfo=timezone.utc)
                    if created_at < previous:
                        created_at = previous
                except ValidationError:
                    pass
            entry = HistoryEntry(role=role, content=content, created_at=created_at)
            document.append(entry.model_dump(mode="json"))
        return entry

    def list(self) -> List[HistoryEntry]:
        """All entries in insertion order"""
        return self._load()

    def recent(self, n: int) -> List[HistoryEntry]:
        """The last n entries, oldest first"""
        if n <= 0:
            return []
        return self._load()[-n:]

    def clear(self) -> None:
        """Remove every entry"""
        self._file.write([])
        logger.info("[HistoryStore] History cleared")


__all__ = ["HistoryEntry", "HistoryStore", "HISTORY_FILE"]
