"""Exception taxonomy for the monitoring engine."""


class FleetwatchError(Exception):
    """Base class for all engine errors."""


class ValidationError(FleetwatchError, ValueError):
    """Malformed input, rejected before any side effect."""


class NotFoundError(FleetwatchError, LookupError):
    """The referenced alert, service or channel does not exist."""


class InvalidStateError(FleetwatchError):
    """The requested lifecycle transition is not allowed from the current state."""


class TransientIOError(FleetwatchError):
    """A recoverable I/O failure (storage, probe or notification)."""


class RepositoryError(TransientIOError):
    """A repository read or write failed."""


class DuplicateAlertError(RepositoryError):
    """An ACTIVE alert already exists for the same (service, alert type) pair."""


class ProbeTimeoutError(TransientIOError):
    """A health probe exceeded its timeout."""


class ProbeTransportError(TransientIOError):
    """A health probe failed below the HTTP layer (DNS, connect, reset)."""


class NotificationError(TransientIOError):
    """A notification channel rejected or failed to deliver a message."""
