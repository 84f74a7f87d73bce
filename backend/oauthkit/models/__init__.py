from oauthkit.models.token_cache import TokenCacheEntry

__all__ = ["TokenCacheEntry"]
