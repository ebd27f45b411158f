"""Error taxonomy for the diff/patch pipeline.

Every failure surfaced by the pipeline is a ``DidiffError`` subclass.  The
orchestrator attaches the name of the failing step to ``stage`` so the CLI
can report where the workflow stopped; it never re-wraps these errors.
"""

from __future__ import annotations


class DidiffError(RuntimeError):
    """Base class for all pipeline failures."""

    def __init__(self, message: str, *, stage: str | None = None) -> None:
        super().__init__(message)
        self.stage = stage


class InvalidInputError(DidiffError):
    """Raised for rejected input: identical images, malformed references, bad tags."""


class NotFoundError(DidiffError):
    """Raised when a reference does not resolve to any image in the store."""


class StagingIOError(DidiffError):
    """Raised when temporary storage cannot be allocated, written, or flushed."""


class StoreIOError(DidiffError):
    """Raised when the image store fails a list, export, import, or tag call."""


class DeltaComputeError(DidiffError):
    """Raised when the delta algorithm cannot produce or apply a patch."""


class VerificationFailedError(DidiffError):
    """Raised when the imported image cannot be confirmed under the target reference."""
