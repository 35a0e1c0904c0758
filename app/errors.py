"""
ERRORS MODULE
=============

Exceptions raised by the services and mapped to HTTP status codes in app.main.
Every exception carries a single user-facing message (str(exc)).

  ImageTooLargeError   - 413, upload above MAX_IMAGE_BYTES (session untouched).
  InvalidImageError    - 400, empty upload, not an image, or malformed data URI.
  StepFailure          - a model call failed (network, quota, bad schema).
  PhaseConflictError   - 409, event not allowed in the current phase.
  ChatBusyError        - 409, a follow-up question is already in flight.
  SessionNotFoundError - 404, unknown session id.
  PersistenceError     - 503, Firestore could not save or list plants.
"""


class AgridetectError(Exception):
    """Base class for all errors raised by the Agridetect services."""


class ImageTooLargeError(AgridetectError):
    pass


class InvalidImageError(AgridetectError):
    pass


class StepFailure(AgridetectError):
    """
    A pipeline step could not produce a valid result.

    step is the step name ("identify", "diagnose", "remedies", "assistant").
    The original exception (if any) is chained as __cause__.
    """

    def __init__(self, step: str, message: str):
        super().__init__(message)
        self.step = step


class PhaseConflictError(AgridetectError):
    pass


class ChatBusyError(AgridetectError):
    pass


class SessionNotFoundError(AgridetectError):
    pass


class PersistenceError(AgridetectError):
    pass
