"""Services backing the cache administration routes."""
