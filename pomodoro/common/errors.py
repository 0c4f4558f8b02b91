"""
Storage-specific exceptions.

Persistence is best-effort for the timer store, but the database layer
itself raises so callers can decide how to degrade.
"""


class StorageConnectionError(Exception):
    """
    Storage is unreachable.

    Raised when:
    - The schema cannot be created on connect()
    - An operation is attempted before connect()
    """
    pass
