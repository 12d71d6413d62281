"""Repository store exception classes.

Contains:
- StoreError: Base exception for object store failures
- ObjectNotFoundError: Raised when a blob, tree, commit or ref is missing
"""


class StoreError(Exception):
    """Custom exception for object store errors."""

    pass


class ObjectNotFoundError(StoreError):
    """Raised when an object or ref cannot be found in the store."""

    pass
