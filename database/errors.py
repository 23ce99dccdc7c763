class StoreError(Exception):
    """Base class for everything the store raises on purpose."""


class ValidationError(StoreError):
    """A required text field was blank or a field held an invalid value."""


class NotFound(StoreError):
    """A deck or card id does not exist (any more)."""


class TransactionFailure(StoreError):
    """SQLite could not begin or commit; nothing was written."""
