"""Image identity model — the resolved, canonical handle for one stored image."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

# Label Docker reports for images that carry no repository or tag.
UNTAGGED_PLACEHOLDER = "<none>:<none>"

SHORT_ID_LENGTH = 12


class ImageIdentity(BaseModel):
    """One image as known by the store.

    ``image_id`` is the canonical content-hash identity, usually of the
    form ``sha256:<hex>``.  Instances are values: they are produced by the
    store listing and never mutated afterwards.
    """

    model_config = ConfigDict(frozen=True)

    image_id: str
    repo_tags: tuple[str, ...] = ()
    size: int = 0
    created: datetime | None = None

    @field_validator("repo_tags", mode="before")
    @classmethod
    def _drop_placeholder_tags(cls, value: Any) -> Any:
        if value is None:
            return ()
        return tuple(tag for tag in value if tag != UNTAGGED_PLACEHOLDER)

    @property
    def digest(self) -> str:
        """The ID with any ``algorithm:`` prefix stripped."""
        _, sep, digest = self.image_id.partition(":")
        return digest if sep else self.image_id

    @property
    def short_id(self) -> str:
        """The first 12 hex characters, as shown by ``docker images``."""
        return self.digest[:SHORT_ID_LENGTH]

    @classmethod
    def from_summary(cls, summary: dict[str, Any]) -> ImageIdentity:
        """Build an identity from a Docker Engine ``/images/json`` entry."""
        created = summary.get("Created")
        return cls(
            image_id=summary["Id"],
            repo_tags=summary.get("RepoTags"),
            size=summary.get("Size") or 0,
            created=(
                datetime.fromtimestamp(created, tz=timezone.utc)
                if isinstance(created, (int, float))
                else None
            ),
        )
