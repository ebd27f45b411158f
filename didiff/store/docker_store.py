"""Docker Engine image store — wraps the docker SDK's low-level API client.

Bridge boundary
---------------
Only this module imports ``docker``.  Every SDK or transport failure is
translated into ``StoreIOError`` so the orchestrator sees a single error
type for store round-trips.  Nothing here retries: each call is attempted
exactly once.
"""

from __future__ import annotations

import logging
from typing import Any, BinaryIO

import docker
from docker.errors import DockerException
from docker.utils import parse_repository_tag
from requests.exceptions import RequestException

from didiff.config import DEFAULT_EXPORT_CHUNK_SIZE, DidiffSettings
from didiff.errors import StoreIOError
from didiff.models.images import ImageIdentity

logger = logging.getLogger(__name__)

_STORE_ERRORS = (DockerException, RequestException)


class DockerImageStore:
    """``ImageStore`` backed by a Docker daemon.

    Parameters
    ----------
    client:
        A ``docker.DockerClient``.  Only its ``api`` attribute is used.
    chunk_size:
        Read size when streaming ``docker save`` output.
    """

    def __init__(
        self,
        client: docker.DockerClient,
        *,
        chunk_size: int = DEFAULT_EXPORT_CHUNK_SIZE,
    ) -> None:
        self._client = client
        self._api = client.api
        self._chunk_size = chunk_size

    @classmethod
    def from_settings(cls, settings: DidiffSettings) -> DockerImageStore:
        """Connect to the daemon named by ``settings`` (or the environment)."""
        try:
            if settings.docker_host:
                client = docker.DockerClient(
                    base_url=settings.docker_host,
                    version=settings.docker_api_version,
                    timeout=settings.docker_timeout,
                )
            else:
                client = docker.from_env(
                    version=settings.docker_api_version,
                    timeout=settings.docker_timeout,
                )
        except _STORE_ERRORS as exc:
            raise StoreIOError(f"unable to connect to the Docker daemon: {exc}") from exc
        logger.debug("Connected to Docker daemon at %s", client.api.base_url)
        return cls(client, chunk_size=settings.export_chunk_size)

    # ------------------------------------------------------------------
    # ImageStore
    # ------------------------------------------------------------------

    def list_images(self) -> list[ImageIdentity]:
        try:
            summaries = self._api.images(all=True)
        except _STORE_ERRORS as exc:
            raise StoreIOError(f"unable to list images: {exc}") from exc
        images = [ImageIdentity.from_summary(summary) for summary in summaries]
        logger.debug("Docker reported %d images", len(images))
        return images

    def export_image(self, image_id: str, sink: BinaryIO) -> int:
        written = 0
        try:
            for chunk in self._api.get_image(image_id, chunk_size=self._chunk_size):
                sink.write(chunk)
                written += len(chunk)
        except _STORE_ERRORS as exc:
            raise StoreIOError(f"unable to save image {image_id}: {exc}") from exc
        logger.debug("Saved image %s (%d bytes)", image_id, written)
        return written

    def import_image(self, source: BinaryIO) -> list[dict[str, Any]]:
        try:
            messages = list(self._api.load_image(source))
        except _STORE_ERRORS as exc:
            raise StoreIOError(f"unable to load image: {exc}") from exc

        for message in messages:
            logger.debug("load-image response: %s", message)
            if "error" in message:
                raise StoreIOError(f"daemon rejected image archive: {message['error']}")
        return messages

    def tag_image(self, image_id: str, label: str) -> None:
        repository, tag = parse_repository_tag(label)
        try:
            tagged = self._api.tag(image_id, repository, tag=tag)
        except _STORE_ERRORS as exc:
            raise StoreIOError(f"unable to tag {image_id} as {label}: {exc}") from exc
        if not tagged:
            raise StoreIOError(f"daemon refused to tag {image_id} as {label}")
        logger.debug("Tagged %s as %s", image_id, label)

    def close(self) -> None:
        """Close the underlying client and its connection pool."""
        try:
            self._client.close()
        except _STORE_ERRORS as exc:
            logger.warning("unable to close Docker client: %s", exc)
