"""
coordinator/errors.py

Error taxonomy for glucose prediction requests.
MissingDataError and StaleDataError are raised and abort the request.
PartialComputationError is never raised; it is attached to a forecast as an advisory.
"""


class PredictionError(Exception):
    """Base class for all prediction errors."""


class MissingDataError(PredictionError):
    """A required primary input (glucose or pump status) is absent."""


class StaleDataError(PredictionError):
    """A primary input is present but older than the recency window."""


class PartialComputationError(PredictionError):
    """One or more effect subsystems failed; the forecast is degraded."""

    def __init__(self, source: str, cause: BaseException) -> None:
        super().__init__(f"{source} effect unavailable: {cause}")
        self.source = source
        self.cause = cause


class PeripheralNotConfiguredError(Exception):
    """An event was delivered for a peripheral slot that is not ready."""
