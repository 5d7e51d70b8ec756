"""Infrastructure layer: Redis adapter, cache engine and storefront client."""
