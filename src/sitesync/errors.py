"""Exception hierarchy for sync operations.

Path and configuration problems are raised and abort the whole operation.
Per-file and per-document problems inside a batch are collected into the
batch summary instead; only when a caller must see them as a failure is a
``PartialBatchFailure`` raised, carrying that summary.

Every error has a short machine-readable ``code`` which the CLI prints and
which scheduled runs log.
"""

from __future__ import annotations

from typing import Any


class SyncError(Exception):
    """Base class for all sitesync errors."""

    code = "sync_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.message} ({self.code})"


class ConfigurationMissing(SyncError):
    """No storage location is configured for the site."""

    code = "configuration_missing"


class StoragePathNotConfigured(ConfigurationMissing):
    code = "storage_path_not_configured"


class PathUnavailable(SyncError):
    """The storage directory is missing, unreadable or unwritable."""

    code = "path_unavailable"

    def __init__(self, message: str, status: str | None = None) -> None:
        super().__init__(message)
        self.status = status


class StorageNotFound(PathUnavailable):
    code = "storage_not_found"


class FileNotFound(SyncError):
    """A source file does not exist or cannot be read."""

    code = "file_not_found"

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class InvalidJson(SyncError):
    """A file is not well-formed JSON, or its root is not an object."""

    code = "invalid_json"


class SerializationFailure(SyncError):
    code = "serialization_failure"


class JsonEncodeFailed(SerializationFailure):
    code = "json_encode_failed"


class WriteFailure(SyncError):
    code = "write_failure"


class WriteFailed(WriteFailure):
    code = "write_failed"


class NoSettingsFound(SyncError):
    """The host has no settings in the synchronized namespace."""

    code = "no_settings"


class PartialBatchFailure(SyncError):
    """Some items of a batch failed; ``summary`` holds the partial result."""

    code = "partial_batch_failure"

    def __init__(self, message: str, summary: Any) -> None:
        super().__init__(message)
        self.summary = summary


class PartialImportFailure(PartialBatchFailure):
    code = "import_partial"
