"""
Exception types for the recording and transcription pipeline.

All pipeline exceptions inherit from SegscribeError. Transcription failures
carry an ErrorKind and a retryable flag; the retry loop reads nothing else.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    MALFORMED_INPUT = "malformed-input"
    MALFORMED_RESPONSE = "malformed-response"
    AUTH_FAILURE = "auth-failure"
    PAYLOAD_TOO_LARGE = "payload-too-large"
    RATE_LIMITED = "rate-limited"
    SERVER_ERROR = "server-error"
    OFFLINE = "offline"
    UNKNOWN_HTTP = "unknown-http"
    LOAD_FAILURE = "load-failure"
    AUTHORIZATION_DENIED = "authorization-denied"
    RECOGNIZER_UNAVAILABLE = "recognizer-unavailable"
    CONVERSION_FAILURE = "conversion-failure"
    LOCAL_FAILURE = "local-failure"
    EXHAUSTED_RETRIES = "exhausted-retries"


RETRYABLE_KINDS = frozenset(
    {ErrorKind.RATE_LIMITED, ErrorKind.SERVER_ERROR, ErrorKind.UNKNOWN_HTTP}
)


class SegscribeError(Exception):
    """Base exception for all pipeline errors."""

    pass


class CaptureError(SegscribeError):
    """Capture tap or artifact could not be opened; fatal to the session."""

    pass


class InsufficientStorageError(SegscribeError):
    """Not enough free space on the data volume to start recording."""

    pass


class InvalidTransitionError(SegscribeError):
    """A transcription record status edge that the state machine forbids."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"cannot move transcription from {current} to {target}")


class TranscriptionError(SegscribeError):
    """A classified transcription failure."""

    def __init__(self, kind: ErrorKind, message: str, retryable: bool | None = None):
        self.kind = kind
        self.message = message
        self.retryable = kind in RETRYABLE_KINDS if retryable is None else retryable
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.kind.value!r}, {self.message!r})"


class OfflineError(TranscriptionError):
    """No network reachability; the job is deferred rather than retried."""

    def __init__(self, message: str = "Network connection unavailable"):
        super().__init__(ErrorKind.OFFLINE, message, retryable=False)


class LocalTranscriptionError(TranscriptionError):
    """On-device recognition failed."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.LOCAL_FAILURE):
        super().__init__(kind, message, retryable=False)


class AuthorizationDeniedError(LocalTranscriptionError):
    """Speech recognition permission is not granted."""

    def __init__(self, message: str = "Speech recognition not authorized"):
        super().__init__(message, kind=ErrorKind.AUTHORIZATION_DENIED)


class ConversionError(LocalTranscriptionError):
    """Re-encoding an artifact for the local recognizer failed."""

    def __init__(self, message: str):
        super().__init__(message, kind=ErrorKind.CONVERSION_FAILURE)


__all__ = [
    "AuthorizationDeniedError",
    "CaptureError",
    "ConversionError",
    "ErrorKind",
    "InsufficientStorageError",
    "InvalidTransitionError",
    "LocalTranscriptionError",
    "OfflineError",
    "RETRYABLE_KINDS",
    "SegscribeError",
    "TranscriptionError",
]
