"""Read-through / write-through cache in front of the stores."""

from chatsync.cache.cache import Cache
from chatsync.cache.stores import CachedChatStore
from chatsync.cache.stores import CachedUserStore

__all__ = ["Cache", "CachedChatStore", "CachedUserStore"]
