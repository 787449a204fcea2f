class RedisServiceError(Exception):
    """Raised when a Redis command fails or the client is not initialized."""
