"""
Error taxonomy for the Flight Training Tracker.

None of these are meant to be fatal to an application:

- ValidationError: a request that makes no sense against current state
  (re-assigning an assigned template, toggling an unknown item, a malformed
  wire record). Services recover locally; callers rarely see it.
- PersistenceError: the local database write failed and was rolled back.
  Surfaced to the caller as a transient failure that may be retried.
- TransportError: the shared store could not be reached or the share is not
  active. Never blocks a local operation; the change stays queued.
- DataIntegrityError: an unresolvable template reference or an orphaned /
  parentless progress record. Logged as a warning and repaired when possible.
"""


class TrackerError(Exception):
    """Base class for all tracker errors."""

    pass


class ValidationError(TrackerError):
    """Raised when an operation is invalid for the current state."""

    pass


class PersistenceError(TrackerError):
    """Raised when a local durable write fails."""

    pass


class TransportError(TrackerError):
    """Raised when the shared store rejects or cannot receive a request."""

    def __init__(self, message: str, key: str | None = None):
        super().__init__(message)
        self.key = key


class DataIntegrityError(TrackerError):
    """Raised when stored references cannot be resolved."""

    pass
