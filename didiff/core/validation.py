"""Input validation for repo:tag labels and archive digests."""

from __future__ import annotations

import logging
import re

from didiff.errors import InvalidInputError

logger = logging.getLogger(__name__)

MAX_TAG_LENGTH = 128

_PATH_COMPONENT = r"[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*"
_LABEL_RE = re.compile(
    r"(?:[a-zA-Z0-9.-]+(?::[0-9]+)?/)?"  # optional registry host[:port]/
    rf"{_PATH_COMPONENT}(?:/{_PATH_COMPONENT})*"
    rf"(?::[A-Za-z0-9_][A-Za-z0-9_.-]{{0,{MAX_TAG_LENGTH - 1}}})?"
)
_SHA256_RE = re.compile(r"(?:sha256:)?[a-fA-F0-9]{64}")


def validate_label(label: str) -> None:
    """Validate a ``repository[:tag]`` label before it is sent to the store.

    Examples
    --------
    >>> validate_label("nginx:1.15.12")
    >>> validate_label("example.com/cool_thing:1.2.3")
    >>> validate_label("Bad Name")  # raises InvalidInputError
    """
    if not label or not _LABEL_RE.fullmatch(label):
        logger.debug("Invalid repo:tag label: %r", label)
        raise InvalidInputError(
            f"invalid repo:tag '{label}' (expected e.g. nginx:1.15.12 or "
            "example.com/cool_thing:1.2.3)"
        )


def validate_sha256(digest: str) -> None:
    """Validate a SHA-256 digest, with or without the ``sha256:`` prefix."""
    if not _SHA256_RE.fullmatch(digest.strip()):
        raise InvalidInputError(f"invalid sha256 digest '{digest}': expected 64 hex characters")
