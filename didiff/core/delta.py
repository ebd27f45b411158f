"""Delta compute step — bsdiff over sequential byte streams.

The patch format is the classic ``BSDIFF40`` layout (bzip2-compressed
control, diff and extra blocks) produced by ``bsdiff4``.  The pipeline
never inspects it.  Streams are consumed front to back exactly once;
``bsdiff4`` needs both inputs in memory, so each is read fully before the
algorithm runs.
"""

from __future__ import annotations

import logging
import struct
from typing import BinaryIO, Protocol, runtime_checkable

import bsdiff4

from didiff.errors import DeltaComputeError, StagingIOError

logger = logging.getLogger(__name__)

# A corrupt patch surfaces as a header, bzip2 or control-block failure.
_PATCH_ERRORS = (ValueError, OSError, EOFError, MemoryError, struct.error)


@runtime_checkable
class DeltaEngine(Protocol):
    """Contract for the external delta algorithm."""

    def diff(self, old: BinaryIO, new: BinaryIO, patch_sink: BinaryIO) -> None:
        """Write a patch turning ``old`` into ``new`` to ``patch_sink``."""
        ...

    def patch(self, source: BinaryIO, patch_source: BinaryIO, output_sink: BinaryIO) -> None:
        """Reconstruct the target from ``source`` and ``patch_source`` into ``output_sink``."""
        ...


def _read_all(stream: BinaryIO, what: str) -> bytes:
    try:
        return stream.read()
    except OSError as exc:
        raise StagingIOError(f"unable to read {what}: {exc}") from exc


def _write_all(stream: BinaryIO, data: bytes, what: str) -> None:
    try:
        stream.write(data)
        stream.flush()
    except OSError as exc:
        raise StagingIOError(f"unable to write {what}: {exc}") from exc


class BsdiffEngine:
    """``DeltaEngine`` implemented with the ``bsdiff4`` extension module."""

    def diff(self, old: BinaryIO, new: BinaryIO, patch_sink: BinaryIO) -> None:
        old_bytes = _read_all(old, "source archive")
        new_bytes = _read_all(new, "target archive")
        logger.debug(
            "Computing delta: %d -> %d bytes", len(old_bytes), len(new_bytes)
        )
        try:
            patch_bytes = bsdiff4.diff(old_bytes, new_bytes)
        except (ValueError, MemoryError) as exc:
            raise DeltaComputeError(f"bsdiff failed: {exc}") from exc
        _write_all(patch_sink, patch_bytes, "patch")
        logger.debug("Delta is %d bytes", len(patch_bytes))

    def patch(self, source: BinaryIO, patch_source: BinaryIO, output_sink: BinaryIO) -> None:
        source_bytes = _read_all(source, "source archive")
        patch_bytes = _read_all(patch_source, "patch")
        try:
            output = bsdiff4.patch(source_bytes, patch_bytes)
        except _PATCH_ERRORS as exc:
            raise DeltaComputeError(f"unable to apply patch: {exc}") from exc
        _write_all(output_sink, output, "reconstructed archive")
        logger.debug("Reconstructed %d bytes", len(output))

