"""Schema loading, normalization, context filtering and caching."""
