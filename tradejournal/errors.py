"""Exceptions raised by the journal core."""


class JournalError(Exception):
    """Base class for journal errors."""


class StoreError(JournalError):
    """A read or write against the record store failed."""

    def __init__(self, message: str, path: str = "") -> None:
        self.path = path
        super().__init__(f"{message} ({path})" if path else message)


class JournalWriteError(JournalError):
    """A create, update or delete could not be written to the store."""


class VerificationError(JournalError):
    """Step-up verification was required and did not pass."""
