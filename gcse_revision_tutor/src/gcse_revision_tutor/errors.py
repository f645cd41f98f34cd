"""
Revision engine exceptions.
"""


class RevisionEngineError(Exception):
    """Base class for errors raised by the revision engine."""


class TutoringUnavailableError(RevisionEngineError):
    """The generative tutoring call failed. Nothing was persisted; safe to retry."""

    user_message = "The tutor is unavailable right now. Please try again."


class PersistenceError(RevisionEngineError):
    """A record store read or write failed."""

    def __init__(self, operation: str, table: str, cause: Exception):
        super().__init__(f"{operation} on '{table}' failed: {cause}")
        self.operation = operation
        self.table = table
        self.cause = cause


class SessionOwnershipError(RevisionEngineError):
    """The session exists but belongs to another student."""
