"""Shared test fixtures for didiff."""

from __future__ import annotations

import hashlib
import random
from collections.abc import Callable
from pathlib import Path
from typing import Any, BinaryIO

import pytest

from didiff.config import DidiffSettings
from didiff.core.orchestrator import PatchOrchestrator
from didiff.core.staging import StagingArea
from didiff.errors import StoreIOError
from didiff.models.images import ImageIdentity


def content_id(data: bytes) -> str:
    """Content-derived image ID, the way the fake store assigns them."""
    return f"sha256:{hashlib.sha256(data).hexdigest()}"


class FakeImageStore:
    """In-memory ``ImageStore`` with call recording and failure injection.

    Image IDs are the SHA-256 of the archive bytes, so importing a
    reconstructed archive yields the original image's ID.

    Attributes
    ----------
    calls:
        ``(operation, argument)`` tuples in call order.
    fail_on:
        Operation names that raise ``StoreIOError``.  ``"export:<id>"``
        fails the export of one image only.
    register_imports:
        When False, imports are acknowledged but nothing becomes resolvable.
    """

    def __init__(self) -> None:
        self._images: dict[str, bytes] = {}
        self._identities: dict[str, ImageIdentity] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_on: set[str] = set()
        self.register_imports = True
        self.imported: list[bytes] = []
        self.closed = False

    # -- setup helpers ---------------------------------------------------

    def add(
        self, data: bytes, tags: tuple[str, ...] = (), image_id: str | None = None
    ) -> ImageIdentity:
        identity = ImageIdentity(
            image_id=image_id or content_id(data),
            repo_tags=tags,
            size=len(data),
        )
        self._images[identity.image_id] = data
        self._identities[identity.image_id] = identity
        return identity

    def remove(self, image_id: str) -> None:
        del self._images[image_id]
        del self._identities[image_id]

    def data(self, image_id: str) -> bytes:
        return self._images[image_id]

    def calls_of(self, operation: str) -> list[str]:
        return [arg for op, arg in self.calls if op == operation]

    def _check(self, operation: str, argument: str = "") -> None:
        self.calls.append((operation, argument))
        if operation in self.fail_on or f"{operation}:{argument}" in self.fail_on:
            raise StoreIOError(f"injected {operation} failure")

    # -- ImageStore ------------------------------------------------------

    def list_images(self) -> list[ImageIdentity]:
        self._check("list")
        return list(self._identities.values())

    def export_image(self, image_id: str, sink: BinaryIO) -> int:
        self._check("export", image_id)
        if image_id not in self._images:
            raise StoreIOError(f"No such image: {image_id}")
        data = self._images[image_id]
        for offset in range(0, len(data), 64 * 1024):
            sink.write(data[offset:offset + 64 * 1024])
        return len(data)

    def import_image(self, source: BinaryIO) -> list[dict[str, Any]]:
        self._check("import")
        data = source.read()
        self.imported.append(data)
        image_id = content_id(data)
        if self.register_imports and image_id not in self._identities:
            self.add(data)
        return [{"stream": f"Loaded image ID: {image_id}\n"}]

    def tag_image(self, image_id: str, label: str) -> None:
        self._check("tag", image_id)
        identity = self._identities[image_id]
        self._identities[image_id] = identity.model_copy(
            update={"repo_tags": (*identity.repo_tags, label)}
        )

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def staging_dir(tmp_path: Path) -> Path:
    """Provide an isolated staging directory for temp archives."""
    path = tmp_path / "staging"
    path.mkdir()
    return path


@pytest.fixture
def settings(staging_dir: Path) -> DidiffSettings:
    """Provide settings that stage into the test's own directory."""
    return DidiffSettings(temp_dir=staging_dir)


@pytest.fixture
def store() -> FakeImageStore:
    """Provide an empty in-memory image store."""
    return FakeImageStore()


@pytest.fixture
def staging(store: FakeImageStore, staging_dir: Path) -> StagingArea:
    return StagingArea(store, staging_dir)


@pytest.fixture
def orchestrator(store: FakeImageStore, settings: DidiffSettings) -> PatchOrchestrator:
    """Provide a PatchOrchestrator wired to the fake store and bsdiff."""
    return PatchOrchestrator(store, settings)


@pytest.fixture
def make_archive() -> Callable[..., bytes]:
    """Factory fixture: deterministic pseudo-random archive bytes."""

    def _factory(size: int = 64 * 1024, seed: int = 0) -> bytes:
        return random.Random(seed).randbytes(size)

    return _factory
