"""Store-layer exceptions. Propagated unmodified by the service layer."""


class StoreError(RuntimeError):
    """Raised when the persistence layer fails to read or write."""


class NotFoundError(StoreError):
    """Raised when the requested record does not exist."""
