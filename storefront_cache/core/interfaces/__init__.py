from .cache import CacheStrategy, KeyValueStore

__all__ = ["CacheStrategy", "KeyValueStore"]
