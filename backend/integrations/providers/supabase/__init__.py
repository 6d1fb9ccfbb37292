from .provider import SupabaseProvider, PROVIDER_ID

__all__ = ["SupabaseProvider", "PROVIDER_ID"]
