"""
Provider Registry

Maps ProviderIDs to provider instances. Built once at startup by
providers.register_all() and passed explicitly to whoever needs it.
"""
import logging
from typing import Dict, List, Optional

from integrations.contract import Provider
from integrations.types import ProviderDescriptor, ProviderID

logger = logging.getLogger(__name__)


class RegistrationError(Exception):
    """Raised when a provider id is registered twice"""
    pass


class ProviderNotFoundError(KeyError):
    """Raised when looking up an unregistered provider id"""

    def __init__(self, provider_id: str, available: List[str]):
        self.provider_id = provider_id
        self.available = available
        super().__init__(f"Unknown provider: {provider_id}. Available: {available}")

    def __str__(self) -> str:
        return self.args[0]


class ProviderRegistry:
    """
    Registry of integration providers, in registration order.
    """

    def __init__(self):
        self._providers: Dict[ProviderID, Provider] = {}

    def register(self, provider: Provider) -> None:
        """
        Register a provider.

        Raises:
            RegistrationError: If the id is already registered
        """
        provider_id = provider.id
        if provider_id in self._providers:
            raise RegistrationError(f"Provider already registered: {provider_id}")
        self._providers[provider_id] = provider
        logger.debug(f"[ProviderRegistry] Registered {provider_id}")

    def lookup(self, provider_id: ProviderID) -> Provider:
        """
        Raises:
            ProviderNotFoundError: If no provider has this id
        """
        provider = self._providers.get(provider_id)
        if provider is None:
            raise ProviderNotFoundError(provider_id, list(self._providers))
        return provider

    def get(self, provider_id: ProviderID) -> Optional[Provider]:
        return self._providers.get(provider_id)

    def all(self) -> List[ProviderDescriptor]:
        """Descriptors of every provider, in registration order"""
        return [p.descriptor for p in self._providers.values()]

    def providers(self) -> List[Provider]:
        return list(self._providers.values())

    def ids(self) -> List[ProviderID]:
        return list(self._providers)

    def __contains__(self, provider_id: object) -> bool:
        return provider_id in self._providers

    def __len__(self) -> int:
        return len(self._providers)


__all__ = ["ProviderRegistry", "RegistrationError", "ProviderNotFoundError"]
