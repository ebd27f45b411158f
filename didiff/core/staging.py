"""Scoped temporary staging for image archives.

Every staged file lives exactly as long as the ``with`` block that acquired
it.  On exit, normal or exceptional, the file is closed and unlinked.  A
cleanup failure is logged as a warning and never replaces the error that
is already propagating.
"""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO

from didiff.errors import StagingIOError
from didiff.models.images import ImageIdentity
from didiff.store import ImageStore

logger = logging.getLogger(__name__)

_PREFIX = "didiff-"


class StagingArea:
    """Allocates and reclaims temporary archive files.

    Parameters
    ----------
    store:
        Image store used to export staged images.
    temp_dir:
        Directory for temporary files.  ``None`` uses the system default.
    """

    def __init__(self, store: ImageStore, temp_dir: Path | None = None) -> None:
        self._store = store
        self._dir = Path(temp_dir) if temp_dir is not None else None
        if self._dir is not None:
            try:
                self._dir.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise StagingIOError(f"unable to create temp directory {self._dir}: {exc}") from exc

    @property
    def directory(self) -> Path:
        return self._dir if self._dir is not None else Path(tempfile.gettempdir())

    # ------------------------------------------------------------------
    # Scoped acquisitions
    # ------------------------------------------------------------------

    @contextmanager
    def scratch_file(self, label: str = "scratch") -> Iterator[BinaryIO]:
        """Yield an empty read/write temp file, deleted when the block exits."""
        try:
            handle = tempfile.NamedTemporaryFile(
                mode="w+b",
                prefix=f"{_PREFIX}{label}-",
                suffix=".tar",
                dir=self._dir,
                delete=False,
            )
        except OSError as exc:
            raise StagingIOError(f"unable to allocate temporary file: {exc}") from exc

        logger.debug("%s temp file: %s", label, handle.name)
        try:
            yield handle
        finally:
            _discard(handle)

    @contextmanager
    def staged_export(self, identity: ImageIdentity) -> Iterator[BinaryIO]:
        """Export ``identity`` into a temp file and yield it rewound to offset 0."""
        with self.scratch_file(label=identity.short_id or "image") as handle:
            try:
                size = self._store.export_image(identity.image_id, handle)
            except OSError as exc:
                raise StagingIOError(
                    f"unable to stage image {identity.image_id}: {exc}"
                ) from exc
            settle(handle)
            logger.debug("Staged %s (%d bytes) at %s", identity.image_id, size, handle.name)
            yield handle


def settle(handle: BinaryIO) -> None:
    """Flush ``handle`` to stable storage and rewind it to the start."""
    try:
        handle.flush()
        os.fsync(handle.fileno())
        handle.seek(0)
    except OSError as exc:
        raise StagingIOError(f"unable to flush {getattr(handle, 'name', 'stream')}: {exc}") from exc


def _discard(handle: BinaryIO) -> None:
    name = handle.name
    try:
        handle.close()
    except OSError as exc:
        logger.warning("unable to close temporary file %s: %s", name, exc)
    try:
        Path(name).unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("unable to cleanup temporary file %s: %s", name, exc)
