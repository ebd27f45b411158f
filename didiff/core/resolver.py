"""Image reference resolution with Docker CLI precedence.

Given::

    $ docker images
    awesome     c0ffeea1
    coff33      deadb33f

``docker run coff33`` runs the second image: repo:tag labels are matched
before partial image IDs.  ``ImageResolver`` follows the same order so
operator intuition carries over.
"""

from __future__ import annotations

import logging
import re

from didiff.errors import InvalidInputError, NotFoundError
from didiff.models.images import ImageIdentity
from didiff.store import ImageStore

logger = logging.getLogger(__name__)

_ID_ALGORITHM_PREFIX = "sha256:"
_HEX_RE = re.compile(r"[0-9a-fA-F]*")


class ImageResolver:
    """Resolves references against a single listing of the image store.

    Parameters
    ----------
    store:
        The image store to enumerate.
    min_prefix_length:
        Shortest hex prefix accepted for ID matching.  Tag matches are
        exact and not subject to this limit.
    """

    def __init__(self, store: ImageStore, *, min_prefix_length: int = 1) -> None:
        self._store = store
        self._min_prefix_length = min_prefix_length

    def resolve(self, query: str) -> ImageIdentity:
        """Return the identity ``query`` denotes.

        Tie-break: the first identity in store enumeration order wins.
        """
        if not query:
            raise InvalidInputError("image reference must not be empty")

        logger.debug("lookup image: %s", query)
        images = self._store.list_images()

        # Look for an image with a matching tag first
        for image in images:
            if query in image.repo_tags:
                logger.debug("lookup image tag match: %s -> %s", query, image.image_id)
                return image

        # Otherwise, attempt to match an image by ID.  The length limit only
        # applies to hex prefixes; other strings fall through to NotFoundError.
        candidate = query.removeprefix(_ID_ALGORITHM_PREFIX)
        if _HEX_RE.fullmatch(candidate) and len(candidate) < self._min_prefix_length:
            raise InvalidInputError(
                f"'{query}' matches no tag and is shorter than the minimum "
                f"image ID prefix ({self._min_prefix_length} characters)"
            )

        for image in images:
            if _id_matches(image.image_id, query):
                logger.debug("lookup image ID match: %s -> %s", query, image.image_id)
                return image

        raise NotFoundError(f"unable to find an image matching '{query}'")


def _id_matches(image_id: str, query: str) -> bool:
    if ":" in image_id:
        without_prefix = image_id.split(":", 1)[1]
        return image_id.startswith(query) or without_prefix.startswith(query)
    # IDs without an algorithm prefix are compared whole.
    return image_id.startswith(query)
