from .identity import IdentityProvider
from .local_cache import LocalCacheStore

__all__ = ["IdentityProvider", "LocalCacheStore"]
