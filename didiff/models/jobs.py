"""Patch job and workflow report models."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from didiff.models.images import ImageIdentity


class Workflow(str, Enum):
    """The two pipeline workflows."""

    CREATE = "create"
    APPLY = "apply"


class Step(str, Enum):
    """Ordered steps of the create and apply workflows."""

    RESOLVE_SOURCE = "resolve_source"
    RESOLVE_TARGET = "resolve_target"
    STAGE_SOURCE = "stage_source"
    STAGE_TARGET = "stage_target"
    COMPUTE_DELTA = "compute_delta"
    APPLY_DELTA = "apply_delta"
    CHECK_DIGEST = "check_digest"
    IMPORT_OUTPUT = "import_output"
    VERIFY_TARGET = "verify_target"
    TAG_TARGET = "tag_target"


class StepState(str, Enum):
    """Outcome of a completed step."""

    PASSED = "passed"
    FAILED = "failed"


class PatchJob(BaseModel):
    """Inputs to one CLI invocation.

    ``new_tag`` and ``expected_sha256`` only apply to the apply workflow.
    """

    model_config = ConfigDict(frozen=True)

    source_ref: str
    target_ref: str
    patch_path: Path
    new_tag: str | None = None
    expected_sha256: str | None = None


class StepRecord(BaseModel):
    """Outcome of a single workflow step."""

    model_config = ConfigDict(frozen=True)

    step: Step
    state: StepState
    elapsed_seconds: float = 0.0
    detail: str = ""


class PatchReport(BaseModel):
    """Summary of a successful workflow run."""

    model_config = ConfigDict(frozen=True)

    workflow: Workflow
    source: ImageIdentity
    target: ImageIdentity | None = None
    steps: tuple[StepRecord, ...] = ()
    patch_size: int | None = None
    output_sha256: str | None = None
    applied_tag: str | None = None
    tag_error: str | None = None

    @property
    def tag_failed(self) -> bool:
        return self.tag_error is not None
