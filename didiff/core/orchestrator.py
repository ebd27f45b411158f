"""Patch pipeline orchestrator — the create and apply workflows.

The Orchestrator wires together the ImageResolver, StagingArea, DeltaEngine
and the injected ImageStore.  Each workflow is a plain ordered sequence of
fallible steps:

    create:  resolve_source -> resolve_target -> stage_source
                 -> stage_target -> compute_delta
    apply:   resolve_source -> stage_source -> apply_delta
                 -> [check_digest] -> import_output -> verify_target
                 -> [tag_target]

Any failing step aborts the workflow.  Staged files are released by their
``with`` scopes on every exit path, and the error propagates unchanged with
the failing step recorded on ``DidiffError.stage``.
"""

from __future__ import annotations

import logging
import os
import tempfile
import time
from collections.abc import Iterator
from contextlib import ExitStack, contextmanager
from pathlib import Path
from types import SimpleNamespace
from typing import BinaryIO

from didiff.config import DidiffSettings
from didiff.core.delta import BsdiffEngine, DeltaEngine
from didiff.core.hasher import normalize_digest, stream_sha256
from didiff.core.resolver import ImageResolver
from didiff.core.staging import StagingArea, settle
from didiff.core.validation import validate_label, validate_sha256
from didiff.errors import (
    DidiffError,
    InvalidInputError,
    NotFoundError,
    StagingIOError,
    StoreIOError,
    VerificationFailedError,
)
from didiff.models.jobs import (
    PatchJob,
    PatchReport,
    Step,
    StepRecord,
    StepState,
    Workflow,
)
from didiff.store import ImageStore

logger = logging.getLogger(__name__)


class _RunLog:
    """Step records collected during one workflow run."""

    def __init__(self, workflow: Workflow) -> None:
        self.workflow = workflow
        self.steps: list[StepRecord] = []

    def record(self, step: Step, state: StepState, elapsed: float, detail: str = "") -> None:
        self.steps.append(
            StepRecord(step=step, state=state, elapsed_seconds=round(elapsed, 3), detail=detail)
        )


class PatchOrchestrator:
    """Runs the create-patch and apply-patch workflows against one store.

    Parameters
    ----------
    store:
        The image store to read from (and, for apply, import into).
    settings:
        Runtime settings.  Uses defaults if not provided.
    engine:
        Delta algorithm.  Defaults to ``BsdiffEngine``.
    staging:
        Staging area for temporary archives.  Built from ``settings`` if
        not provided.
    """

    def __init__(
        self,
        store: ImageStore,
        settings: DidiffSettings | None = None,
        *,
        engine: DeltaEngine | None = None,
        staging: StagingArea | None = None,
    ) -> None:
        self.settings = settings or DidiffSettings()
        self.store = store
        self.resolver = ImageResolver(
            store, min_prefix_length=self.settings.min_prefix_length
        )
        self.staging = staging or StagingArea(store, self.settings.temp_dir)
        self.engine = engine or BsdiffEngine()

    # ------------------------------------------------------------------
    # Step bookkeeping
    # ------------------------------------------------------------------

    @contextmanager
    def _step(self, run: _RunLog, step: Step) -> Iterator[SimpleNamespace]:
        """Time one step and record it as PASSED or FAILED.

        The body may set ``note.detail`` to annotate the record.
        """
        note = SimpleNamespace(detail="")
        started = time.monotonic()
        try:
            yield note
        except Exception as exc:
            if isinstance(exc, DidiffError) and exc.stage is None:
                exc.stage = step.value
            run.record(step, StepState.FAILED, time.monotonic() - started, str(exc))
            logger.debug("%s: %s failed: %s", run.workflow.value, step.value, exc)
            raise
        elapsed = time.monotonic() - started
        run.record(step, StepState.PASSED, elapsed, note.detail)
        logger.info("%s: %s done (%.2fs)", run.workflow.value, step.value, elapsed)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_patch(
        self, source_ref: str, target_ref: str, patch_sink: BinaryIO
    ) -> PatchReport:
        """Write the patch turning ``source_ref`` into ``target_ref`` to ``patch_sink``.

        Never mutates the image store.  Raises ``InvalidInputError`` before
        any export when both references name the same image.
        """
        run = _RunLog(Workflow.CREATE)

        with self._step(run, Step.RESOLVE_SOURCE) as note:
            source = self.resolver.resolve(source_ref)
            note.detail = source.image_id

        with self._step(run, Step.RESOLVE_TARGET) as note:
            target = self.resolver.resolve(target_ref)
            note.detail = target.image_id
            if target.image_id == source.image_id:
                raise InvalidInputError(
                    f"'{source_ref}' and '{target_ref}' both resolve to {source.image_id}"
                )

        with ExitStack() as staged:
            with self._step(run, Step.STAGE_SOURCE) as note:
                old = staged.enter_context(self.staging.staged_export(source))
                note.detail = old.name
            with self._step(run, Step.STAGE_TARGET) as note:
                new = staged.enter_context(self.staging.staged_export(target))
                note.detail = new.name
            with self._step(run, Step.COMPUTE_DELTA):
                self.engine.diff(old, new, patch_sink)

        logger.info("Patch created: %s -> %s", source.short_id, target.short_id)
        return PatchReport(
            workflow=Workflow.CREATE,
            source=source,
            target=target,
            steps=tuple(run.steps),
        )

    # ------------------------------------------------------------------
    # Apply
    # ------------------------------------------------------------------

    def apply_patch(
        self,
        source_ref: str,
        patch_source: BinaryIO,
        target_ref: str,
        *,
        new_tag: str | None = None,
        expected_sha256: str | None = None,
    ) -> PatchReport:
        """Rebuild the target image from ``source_ref`` and a patch, then load it.

        ``patch_source`` is read sequentially and closed when the workflow
        concludes.  The import is followed by a mandatory re-resolution of
        ``target_ref``; an import that does not make the target resolvable
        raises ``VerificationFailedError``.  A failure to apply ``new_tag``
        is reported on the returned report, not raised.
        """
        try:
            return self._apply(
                source_ref, patch_source, target_ref, new_tag, expected_sha256
            )
        finally:
            try:
                patch_source.close()
            except OSError as exc:
                logger.warning("unable to close patch source: %s", exc)

    def _apply(
        self,
        source_ref: str,
        patch_source: BinaryIO,
        target_ref: str,
        new_tag: str | None,
        expected_sha256: str | None,
    ) -> PatchReport:
        if not target_ref:
            raise InvalidInputError("target image reference must not be empty")
        if new_tag is not None:
            validate_label(new_tag)
        if expected_sha256 is not None:
            validate_sha256(expected_sha256)

        run = _RunLog(Workflow.APPLY)

        with self._step(run, Step.RESOLVE_SOURCE) as note:
            source = self.resolver.resolve(source_ref)
            note.detail = source.image_id

        with ExitStack() as output_scope:
            # The staged source is released as soon as the delta is applied.
            with ExitStack() as source_scope:
                with self._step(run, Step.STAGE_SOURCE) as note:
                    staged = source_scope.enter_context(self.staging.staged_export(source))
                    note.detail = staged.name
                with self._step(run, Step.APPLY_DELTA) as note:
                    output = output_scope.enter_context(self.staging.scratch_file("output"))
                    self.engine.patch(staged, patch_source, output)
                    settle(output)
                    output_sha256 = _digest_and_rewind(output)
                    note.detail = output_sha256
            logger.debug("New image SHA sum: %s", output_sha256)

            if expected_sha256 is not None:
                with self._step(run, Step.CHECK_DIGEST):
                    if normalize_digest(expected_sha256) != output_sha256:
                        raise VerificationFailedError(
                            f"reconstructed archive sha256 {output_sha256} does not "
                            f"match expected {normalize_digest(expected_sha256)}"
                        )

            with self._step(run, Step.IMPORT_OUTPUT):
                self.store.import_image(output)

        with self._step(run, Step.VERIFY_TARGET) as note:
            try:
                target = self.resolver.resolve(target_ref)
            except (NotFoundError, InvalidInputError) as exc:
                raise VerificationFailedError(
                    f"image loaded but '{target_ref}' is not available: {exc}"
                ) from exc
            note.detail = target.image_id
        logger.info("Patch was successful. %s is now available.", target_ref)

        applied_tag = None
        tag_error = None
        if new_tag:
            try:
                with self._step(run, Step.TAG_TARGET) as note:
                    self.store.tag_image(target.image_id, new_tag)
                    note.detail = new_tag
                applied_tag = new_tag
            except StoreIOError as exc:
                tag_error = str(exc)
                logger.warning("patch applied but tag %s was not set: %s", new_tag, exc)

        return PatchReport(
            workflow=Workflow.APPLY,
            source=source,
            target=target,
            steps=tuple(run.steps),
            output_sha256=output_sha256,
            applied_tag=applied_tag,
            tag_error=tag_error,
        )

    # ------------------------------------------------------------------
    # Job-level entry points
    # ------------------------------------------------------------------

    def run_create(self, job: PatchJob) -> PatchReport:
        """Run the create workflow, writing the patch to ``job.patch_path``.

        The patch is written to a sibling ``.partial`` file and moved onto
        ``job.patch_path`` only once the workflow succeeds, so an existing
        file at that path is left alone on failure.  The partial file is
        removed unless ``settings.remove_partial_output`` is disabled.
        """
        path = Path(job.patch_path)
        try:
            partial = tempfile.NamedTemporaryFile(
                mode="wb",
                prefix=f".{path.name}.",
                suffix=".partial",
                dir=path.parent,
                delete=False,
            )
        except OSError as exc:
            raise StagingIOError(f"unable to open patch file {path}: {exc}") from exc

        partial_path = Path(partial.name)
        try:
            with partial:
                report = self.create_patch(job.source_ref, job.target_ref, partial)
            try:
                os.replace(partial_path, path)
            except OSError as exc:
                raise StagingIOError(f"unable to write patch file {path}: {exc}") from exc
        except BaseException:
            if self.settings.remove_partial_output:
                _remove_partial(partial_path)
            raise

        return report.model_copy(update={"patch_size": path.stat().st_size})

    def run_apply(self, job: PatchJob) -> PatchReport:
        """Run the apply workflow, reading the patch from ``job.patch_path``."""
        path = Path(job.patch_path)
        try:
            patch_file = path.open("rb")
        except FileNotFoundError as exc:
            raise InvalidInputError(f"patch file {path} does not exist") from exc
        except OSError as exc:
            raise StagingIOError(f"unable to open patch file {path}: {exc}") from exc

        report = self.apply_patch(
            job.source_ref,
            patch_file,
            job.target_ref,
            new_tag=job.new_tag,
            expected_sha256=job.expected_sha256,
        )
        return report.model_copy(update={"patch_size": path.stat().st_size})


def _digest_and_rewind(handle: BinaryIO) -> str:
    try:
        digest = stream_sha256(handle)
        handle.seek(0)
    except OSError as exc:
        raise StagingIOError(f"unable to read reconstructed archive: {exc}") from exc
    return digest


def _remove_partial(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
        logger.info("Removed partial patch file %s", path)
    except OSError as exc:
        logger.warning("unable to remove partial patch file %s: %s", path, exc)
