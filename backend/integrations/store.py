"""
Integration Store - persisted provider configs, keyed by (provider, app)

File layout (integrations.json):

    {"providers": {"supabase": {"MyApp": {"project_url": "...", ...}}}}

Older files stored a single config per provider; load() migrates those
under the "_default" app key and writes the new layout back.

PATs never stay in this file. They live in the secret store and the
config keeps a "secret:<provider>/<app>/pat" reference, resolved on read.
Plaintext PATs found in older files are moved over on load().
"""
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from integrations.registry import ProviderRegistry
from integrations.types import IntegrationConfig, IntegrationStatus, ProviderID
from storage.json_store import JSONFileStore
from storage.secrets import SecretStore, is_secret_ref, ref_key, secret_key, secret_ref

logger = logging.getLogger(__name__)

INTEGRATIONS_FILE = "integrations.json"
DEFAULT_APP_KEY = "_default"

_LEGACY_KEYS = {"provider", "project_url", "project_ref", "anon_key", "pat"}


class UnknownProviderError(ValueError):
    """Raised when storing a config for a provider that is not registered"""
    pass


def _is_legacy_entry(entry: Any) -> bool:
    if not isinstance(entry, dict) or not entry:
        return False
    return any(key in _LEGACY_KEYS and not isinstance(value, dict) for key, value in entry.items())


class IntegrationStore:
    """
    Integration configs on disk. All mutations go through one lock.
    """

    def __init__(self, data_dir: Path, registry: Optional[ProviderRegistry] = None,
                 secrets: Optional[SecretStore] = None):
        """
        Args:
            data_dir: Directory holding integrations.json
            registry: When given, set_provider() rejects unregistered ids
            secrets: Where PATs are kept; defaults to secrets.json in data_dir
        """
        self.data_dir = Path(data_dir)
        self.registry = registry
        self.secrets = secrets or SecretStore(self.data_dir)
        self._file = JSONFileStore(self.data_dir / INTEGRATIONS_FILE, default={}, file_mode=0o600)

    def load(self) -> Dict[ProviderID, Dict[str, IntegrationConfig]]:
        """
        Read every stored config, migrating the legacy layout if present.

        Returns:
            {provider_id: {app_name: IntegrationConfig}}
        """
        document = self._file.read()
        if self._migrate(document):
            self._file.write(document)
        providers = document["providers"]

        result: Dict[ProviderID, Dict[str, IntegrationConfig]] = {}
        for provider_id, apps in providers.items():
            if not isinstance(apps, dict):
                continue
            for app_name, raw in apps.items():
                config = self._parse(provider_id, raw)
                if config is not None:
                    result.setdefault(provider_id, {})[app_name] = config
        return result

    def _migrate(self, document: Dict[str, Any]) -> bool:
        providers = document.get("providers")
        if not isinstance(providers, dict):
            document["providers"] = {}
            return False
        changed = False
        for provider_id, entry in list(providers.items()):
            if _is_legacy_entry(entry):
                providers[provider_id] = {DEFAULT_APP_KEY: entry}
                changed = True
        if changed:
            logger.info("[IntegrationStore] Migrated legacy integrations.json layout")

        for provider_id, apps in providers.items():
            if not isinstance(apps, dict):
                continue
            for app_name, raw in apps.items():
                if isinstance(raw, dict) and raw.get("pat") and not is_secret_ref(raw["pat"]):
                    raw["pat"] = self._store_pat(provider_id, app_name, raw["pat"])
                    changed = True
                    logger.info(f"[IntegrationStore] Moved {provider_id} PAT for {app_name} to the secret store")
        return changed

    def _store_pat(self, provider_id: str, app_name: str, pat: str) -> str:
        key = secret_key(provider_id, app_name, "pat")
        self.secrets.set(key, pat)
        return secret_ref(key)

    def _parse(self, provider_id: str, raw: Any) -> Optional[IntegrationConfig]:
        if not isinstance(raw, dict):
            return None
        data = dict(raw)
        data["provider"] = provider_id
        if is_secret_ref(data.get("pat")):
            key = ref_key(data["pat"])
            value = self.secrets.get(key)
            if value is None:
                logger.warning(f"[IntegrationStore] Secret {key} is missing; treating the PAT as unset")
            data["pat"] = value or ""
        try:
            return IntegrationConfig.model_validate(data)
        except ValidationError:
            logger.warning(f"[IntegrationStore] Ignoring malformed config for {provider_id}")
            return None

    def get_provider(self, provider_id: ProviderID, app_name: str) -> Optional[IntegrationConfig]:
        """Config for provider+app, or None"""
        return self.load().get(provider_id, {}).get(app_name)

    def set_provider(self, config: IntegrationConfig, app_name: str) -> None:
        """
        Store (or overwrite) the config for config.provider + app_name.

        Writing the same config twice leaves the file unchanged. The PAT is
        written to the secret store and only its reference is kept here.

        Raises:
            UnknownProviderError: If a registry is attached and the provider is not in it
        """
        if self.registry is not None and config.provider not in self.registry:
            raise UnknownProviderError(f"Provider not registered: {config.provider}")
        entry = config.model_dump(exclude={"provider"})
        if entry.get("pat") and not is_secret_ref(entry["pat"]):
            entry["pat"] = self._store_pat(config.provider, app_name, entry["pat"])
        elif not entry.get("pat"):
            self.secrets.delete(secret_key(config.provider, app_name, "pat"))
        with self._file.transaction() as document:
            self._migrate(document)
            apps = document["providers"].setdefault(config.provider, {})
            apps[app_name] = entry
        logger.info(f"[IntegrationStore] Saved {config.provider} config for {app_name}")

    def remove_provider(self, provider_id: ProviderID, app_name: str) -> bool:
        """
        Remove one app's config and its stored PAT; drops the provider key
        once no apps remain.

        Returns:
            True if something was removed
        """
        if self.get_provider(provider_id, app_name) is None:
            return False
        with self._file.transaction() as document:
            self._migrate(document)
            apps = document["providers"].get(provider_id, {})
            removed = apps.pop(app_name, None)
            if not apps:
                document["providers"].pop(provider_id, None)
        if isinstance(removed, dict) and is_secret_ref(removed.get("pat")):
            self.secrets.delete(ref_key(removed["pat"]))
        logger.info(f"[IntegrationStore] Removed {provider_id} config for {app_name}")
        return True

    def all_app_names(self, provider_id: ProviderID) -> List[str]:
        return sorted(self.load().get(provider_id, {}))

    def all_statuses(self) -> List[IntegrationStatus]:
        """One status per stored (provider, app) pair"""
        statuses = []
        for provider_id, apps in self.load().items():
            for app_name in sorted(apps):
                statuses.append(IntegrationStatus.from_config(app_name, apps[app_name], provider_id))
        return statuses


__all__ = [
    "IntegrationStore",
    "UnknownProviderError",
    "INTEGRATIONS_FILE",
    "DEFAULT_APP_KEY",
]
