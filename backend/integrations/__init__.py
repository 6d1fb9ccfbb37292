"""
Backend integrations for generated apps

- Registry: ProviderID -> Provider, populated by providers.register_all()
- Contract: optional capabilities (setup, prompt, tool server, provisioning)
- Store: per-app provider configs in integrations.json
- Manager: facade used by the pipeline
"""
from .types import (
    ProviderDescriptor,
    IntegrationConfig,
    IntegrationStatus,
    ModelRef,
    PropertyRef,
    MonetizationPlan,
    ProductPlan,
)
from .contract import (
    Provider,
    SetupCapable,
    PromptCapable,
    MCPCapable,
    ProvisionCapable,
    as_capability,
)
from .registry import ProviderRegistry, RegistrationError, ProviderNotFoundError
from .store import IntegrationStore, UnknownProviderError
from .manager import ActiveProvider, IntegrationManager


def build_registry() -> ProviderRegistry:
    """A registry holding every built-in provider"""
    from .providers import register_all
    return register_all(ProviderRegistry())


__all__ = [
    "ProviderDescriptor",
    "IntegrationConfig",
    "IntegrationStatus",
    "ModelRef",
    "PropertyRef",
    "MonetizationPlan",
    "ProductPlan",
    "Provider",
    "SetupCapable",
    "PromptCapable",
    "MCPCapable",
    "ProvisionCapable",
    "as_capability",
    "ProviderRegistry",
    "RegistrationError",
    "ProviderNotFoundError",
    "IntegrationStore",
    "UnknownProviderError",
    "ActiveProvider",
    "IntegrationManager",
    "build_registry",
]
