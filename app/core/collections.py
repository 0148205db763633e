class CollectionNames:
    """MongoDB collection names used by the repositories."""

    CACHED_METADATA = "cached_metadata"
    API_KEYS = "api_keys"
    USAGE_LOGS = "usage_logs"
