class ConversationsError(Exception):
    """Base exception for conversations domain errors."""

    pass


class NotFound(ConversationsError):
    """Raised when a message, session, or channel cannot be found."""

    pass


class Duplicate(ConversationsError):
    """Raised when creating something whose name is already taken."""

    pass


class InvalidArgument(ConversationsError, ValueError):
    """Raised for empty required fields, bad priorities, or unusable metadata."""

    pass


class Busy(ConversationsError):
    """Raised when the database lock could not be acquired in time.

    Transient: the same call may succeed if retried.
    """

    retryable = True


class StorageUnavailable(ConversationsError):
    """Raised when the database file cannot be opened or created."""

    pass


class MigrationError(ConversationsError):
    """Raised when a database migration fails."""

    pass
