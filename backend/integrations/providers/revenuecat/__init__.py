from .provider import RevenueCatProvider, PROVIDER_ID

__all__ = ["RevenueCatProvider", "PROVIDER_ID"]
