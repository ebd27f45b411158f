"""didiff data models — all Pydantic v2, all frozen (immutable)."""

from didiff.models.images import ImageIdentity
from didiff.models.jobs import (
    PatchJob,
    PatchReport,
    Step,
    StepRecord,
    StepState,
    Workflow,
)

__all__ = [
    # images
    "ImageIdentity",
    # jobs
    "PatchJob",
    "PatchReport",
    "Step",
    "StepRecord",
    "StepState",
    "Workflow",
]
