"""Custom exceptions for the unlock and anomaly lifecycle."""


class ChainwatchError(Exception):
    """Base exception for all chainwatch errors."""


class ConfigError(ChainwatchError, ValueError):
    """Raised when environment configuration is invalid or missing."""


class DuplicateConfirmation(ChainwatchError):
    """Raised when an event is confirmed twice or a tx hash is reused."""


class InvalidTransition(ChainwatchError):
    """Raised when a write would break the unlock lifecycle rules."""


class UnknownEvent(ChainwatchError):
    """Raised when an event id is not present in the store."""


class DetectorFailure(ChainwatchError):
    """Raised when a single anomaly detector fails during a tick."""

    def __init__(self, detector_id: str, cause: BaseException) -> None:
        super().__init__(f"{detector_id}: {type(cause).__name__}: {cause}")
        self.detector_id = detector_id
        self.cause = cause


class StoreUnavailable(ChainwatchError):
    """Raised when the storage backend cannot be reached."""
