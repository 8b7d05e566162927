"""
Exception types shared by the check pipeline.

Only these errors abort a check cycle. Everything that affects a single
counter (missing, unreadable, reset) is reported as a diagnostic instead.
"""


class IfstatError(Exception):
    """Base class for fatal check errors."""


class ConfigurationError(IfstatError):
    """Raised for malformed threshold or filter specifications."""


class CollectionError(IfstatError):
    """Raised when the counter source cannot be reached or a worker fails."""


class StorageError(IfstatError):
    """Raised when the persisted sample file cannot be read or written."""
