class DaymarkError(Exception):
    """Base class for all errors raised by the core."""


class ConstraintError(DaymarkError):
    """Insert with an id that already exists."""


class InvalidArgument(DaymarkError, ValueError):
    """Malformed input: bad date/time strings, missing time, empty title."""


class StorageUnavailable(DaymarkError):
    """The database could not be opened."""


class StorageCorruption(DaymarkError):
    """A stored row is missing required fields or holds unparsable values."""


class RegistrarError(DaymarkError):
    """Trigger submission or cancellation failed."""
