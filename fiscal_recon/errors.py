"""Exception taxonomy shared by every layer of the toolkit."""
from __future__ import annotations


class FiscalReconError(Exception):
    """Base class for errors surfaced to the user."""


class InputDecodingError(FiscalReconError):
    """A single uploaded file could not be read at all."""

    def __init__(self, file_name: str, reason: str) -> None:
        super().__init__(f"{file_name}: {reason}")
        self.file_name = file_name
        self.reason = reason


class StorageQuotaExceededError(FiscalReconError):
    """The serialized store would not fit in the configured storage quota."""

    def __init__(self, key: str, required_bytes: int, quota_bytes: int) -> None:
        super().__init__(
            f"Saving '{key}' needs {required_bytes} bytes but the storage quota is {quota_bytes} bytes. "
            "Reduce the period scope (fewer competences per session) and try again."
        )
        self.key = key
        self.required_bytes = required_bytes
        self.quota_bytes = quota_bytes


class ComputationError(FiscalReconError):
    """Unexpected failure while reconciling or extracting; the run is discarded."""


class InvalidRangeError(FiscalReconError, ValueError):
    """A numbering range given by the user is empty or out of bounds."""
