class RequiredBucketNotFoundException(Exception):
    """Raised when the configured bucket does not exist or is not reachable."""
