class BonfireError(Exception):
    """Base class for errors raised by the signup service."""


class InvalidRequestError(BonfireError):
    """A request is missing a required field or names a duplicate item."""


class StorageError(BonfireError):
    """The backing store could not be reached or rejected the call."""
