"""
Secret Store - credentials kept apart from the integration configs

Responsibilities:
- Persist secrets (provider PATs) to secrets.json with mode 0600
- Build canonical keys: "<provider>/<app>/<field>"
- Mark stored values with "secret:<key>" references
"""
import logging
from pathlib import Path
from typing import Optional

from storage.json_store import JSONFileStore

logger = logging.getLogger(__name__)

SECRETS_FILE = "secrets.json"
SECRET_REF_PREFIX = "secret:"


def secret_key(provider: str, app_name: str, field: str) -> str:
    """supabase, Notes, pat -> supabase/Notes/pat"""
    return f"{provider}/{app_name}/{field}"


def is_secret_ref(value: Optional[str]) -> bool:
    return bool(value) and value.startswith(SECRET_REF_PREFIX)


def secret_ref(key: str) -> str:
    return SECRET_REF_PREFIX + key


def ref_key(value: str) -> str:
    """Key part of a "secret:<key>" reference"""
    return value[len(SECRET_REF_PREFIX):]


class SecretStore:
    """
    File-backed secrets for one data directory.

    The file is owner-only and never holds anything but key -> value strings.
    """

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)
        self._file = JSONFileStore(self.data_dir / SECRETS_FILE, default={}, file_mode=0o600)

    def get(self, key: str) -> Optional[str]:
        """The stored value, or None when the key is unknown"""
        value = self._file.read().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        """Store a value, replacing any previous one. Unchanged values are not rewritten."""
        if self.get(key) == value:
            return
        with self._file.transaction() as document:
            document[key] = value
        logger.info(f"[SecretStore] Stored {key}")

    def delete(self, key: str) -> bool:
        """
        Remove a secret.

        Returns:
            True if the key existed
        """
        if self.get(key) is None:
            return False
        with self._file.transaction() as document:
            document.pop(key, None)
        logger.info(f"[SecretStore] Deleted {key}")
        return True

    def keys(self):
        return sorted(self._file.read())


__all__ = [
    "SecretStore",
    "SECRETS_FILE",
    "SECRET_REF_PREFIX",
    "secret_key",
    "secret_ref",
    "is_secret_ref",
    "ref_key",
]
