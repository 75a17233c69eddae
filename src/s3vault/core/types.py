"""Shared types for s3vault.

This module defines the error hierarchy used by the transfer core,
the storage backends and the CLI.
"""

from __future__ import annotations

from enum import Enum


class TransferError(Exception):
    """Base exception for transfer errors."""


class ConfigurationError(TransferError):
    """Invalid configuration (unknown profile or target, too many parts, bad key)."""


class PreconditionError(TransferError):
    """The session is not in a state that allows the requested operation."""


class IntegrityError(TransferError):
    """Transferred data failed verification.

    Attributes:
        index: Part index the failure belongs to (None for whole-object checks).
        field: Name of the mismatched field (e.g. "processed_sha256").
        expected: Value recorded in the session.
        actual: Value observed on the data.
    """

    def __init__(
        self,
        message: str,
        *,
        index: int | None = None,
        field: str | None = None,
        expected: object = None,
        actual: object = None,
    ) -> None:
        self.index = index
        self.field = field
        self.expected = expected
        self.actual = actual
        if expected is not None or actual is not None:
            message = f"{message}, expected={expected}, got={actual}"
        if index is not None:
            message = f"chunk {index}: {message}"
        super().__init__(message)


class BackendError(TransferError):
    """A storage backend operation failed."""

    def __init__(self, message: str, operation: str | None = None) -> None:
        super().__init__(message)
        self.operation = operation


class UploadState(str, Enum):
    """Phase of an upload run."""

    INIT = "init"
    NEW = "new"
    RESUMED = "resumed"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    DONE = "done"
