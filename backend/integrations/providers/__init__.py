"""
Built-in integration providers

register_all() is the only place providers are added to a registry.
"""
from integrations.registry import ProviderRegistry
from integrations.providers.supabase import SupabaseProvider
from integrations.providers.revenuecat import RevenueCatProvider


def register_all(registry: ProviderRegistry) -> ProviderRegistry:
    """Register every built-in provider, in a stable order."""
    registry.register(SupabaseProvider())
    registry.register(RevenueCatProvider())
    return registry


__all__ = ["register_all", "SupabaseProvider", "RevenueCatProvider"]
