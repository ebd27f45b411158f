"""SHA-256 helpers for image archives and digests."""

from __future__ import annotations

import hashlib
from typing import BinaryIO

_CHUNK_SIZE = 1024 * 1024


def stream_sha256(stream: BinaryIO, chunk_size: int = _CHUNK_SIZE) -> str:
    """Return the SHA-256 hex digest of ``stream`` from its current position to EOF."""
    sha = hashlib.sha256()
    for chunk in iter(lambda: stream.read(chunk_size), b""):
        sha.update(chunk)
    return sha.hexdigest()


def normalize_digest(digest: str) -> str:
    """Strip a ``sha256:`` prefix and lowercase, so digests compare by value."""
    return digest.strip().removeprefix("sha256:").lower()
