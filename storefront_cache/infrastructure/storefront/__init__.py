from .client import StorefrontClient

__all__ = ["StorefrontClient"]
