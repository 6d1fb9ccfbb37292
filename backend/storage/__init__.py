"""
Persistent storage for AppForge

- JSONFileStore: atomic single-writer JSON documents
- HistoryStore: append-only conversation history
- SecretStore: provider credentials kept out of config files
- UsageStore: coding agent spend per session and per day
"""
from .json_store import JSONFileStore, StoreError
from .history import HistoryEntry, HistoryStore
from .secrets import SecretStore
from .usage import DailyUsage, SessionUsage, UsageStore

__all__ = [
    "JSONFileStore",
    "StoreError",
    "HistoryEntry",
    "HistoryStore",
    "SecretStore",
    "UsageStore",
    "SessionUsage",
    "DailyUsage",
]
