"""Tag-invalidated caching of month and day results."""
