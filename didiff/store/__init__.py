"""Image store protocol.

The pipeline talks to the image store only through ``ImageStore``.  The
Docker Engine implementation lives in ``didiff.store.docker_store``; tests
substitute an in-memory store.
"""

from __future__ import annotations

from typing import Any, BinaryIO, Protocol, runtime_checkable

from didiff.models.images import ImageIdentity


@runtime_checkable
class ImageStore(Protocol):
    """Operations the pipeline needs from a content-addressed image store."""

    def list_images(self) -> list[ImageIdentity]:
        """Enumerate every image identity, in the store's own order."""
        ...

    def export_image(self, image_id: str, sink: BinaryIO) -> int:
        """Write the full saved archive of ``image_id`` to ``sink``.

        Returns the number of bytes written.
        """
        ...

    def import_image(self, source: BinaryIO) -> list[dict[str, Any]]:
        """Load an image archive read sequentially from ``source``.

        Returns the store's acknowledgement messages, for logging only.
        """
        ...

    def tag_image(self, image_id: str, label: str) -> None:
        """Attach a ``repository[:tag]`` label to ``image_id``."""
        ...

    def close(self) -> None:
        """Release any connection held by the store."""
        ...


__all__ = ["ImageStore"]
