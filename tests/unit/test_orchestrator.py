"""Tests for PatchOrchestrator — create/apply workflows and failure semantics."""

from __future__ import annotations

import hashlib
import io
from pathlib import Path

import pytest

from didiff.core.delta import BsdiffEngine
from didiff.errors import (
    DeltaComputeError,
    InvalidInputError,
    NotFoundError,
    StoreIOError,
    VerificationFailedError,
)
from didiff.models.jobs import PatchJob, Step, StepState, Workflow


@pytest.fixture
def image_pair(store, make_archive):
    """Two related archives: B is A with a changed region and a tail."""
    old = make_archive(48 * 1024, seed=7)
    new = old[:5000] + b"\x00" * 512 + old[5512:] + b"new layer"
    source = store.add(old, tags=("app:1",))
    target = store.add(new, tags=("app:2",))
    return source, target, old, new


def _create(orchestrator, source_ref="app:1", target_ref="app:2") -> bytes:
    sink = io.BytesIO()
    orchestrator.create_patch(source_ref, target_ref, sink)
    return sink.getvalue()


class _ExplodingEngine(BsdiffEngine):
    def diff(self, old, new, patch_sink):
        raise DeltaComputeError("diff exploded")


class TestCreatePatch:
    def test_records_steps_in_order(self, orchestrator, image_pair):
        source, target, _, _ = image_pair
        report = orchestrator.create_patch("app:1", "app:2", io.BytesIO())

        assert report.workflow is Workflow.CREATE
        assert report.source == source
        assert report.target == target
        assert [r.step for r in report.steps] == [
            Step.RESOLVE_SOURCE,
            Step.RESOLVE_TARGET,
            Step.STAGE_SOURCE,
            Step.STAGE_TARGET,
            Step.COMPUTE_DELTA,
        ]
        assert all(r.state is StepState.PASSED for r in report.steps)

    def test_does_not_mutate_store(self, orchestrator, store, image_pair):
        _create(orchestrator)
        assert store.calls_of("import") == []
        assert store.calls_of("tag") == []

    def test_same_image_rejected_before_export(self, orchestrator, store, image_pair):
        source, _, _, _ = image_pair
        with pytest.raises(InvalidInputError) as excinfo:
            orchestrator.create_patch("app:1", source.short_id, io.BytesIO())
        assert excinfo.value.stage == Step.RESOLVE_TARGET.value
        assert store.calls_of("export") == []

    def test_unknown_source(self, orchestrator, store, image_pair):
        with pytest.raises(NotFoundError) as excinfo:
            orchestrator.create_patch("missing:1", "app:2", io.BytesIO())
        assert excinfo.value.stage == Step.RESOLVE_SOURCE.value
        assert store.calls_of("export") == []

    def test_target_export_failure_cleans_staging(
        self, orchestrator, store, staging_dir: Path, image_pair
    ):
        _, target, _, _ = image_pair
        store.fail_on.add(f"export:{target.image_id}")

        with pytest.raises(StoreIOError) as excinfo:
            _create(orchestrator)

        assert excinfo.value.stage == Step.STAGE_TARGET.value
        assert list(staging_dir.iterdir()) == []

    def test_delta_failure_cleans_staging(
        self, store, settings, staging_dir: Path, image_pair
    ):
        from didiff.core.orchestrator import PatchOrchestrator

        orchestrator = PatchOrchestrator(store, settings, engine=_ExplodingEngine())
        with pytest.raises(DeltaComputeError) as excinfo:
            _create(orchestrator)
        assert excinfo.value.stage == Step.COMPUTE_DELTA.value
        assert list(staging_dir.iterdir()) == []


class TestApplyPatch:
    def test_reconstructs_target(self, orchestrator, store, image_pair, staging_dir: Path):
        source, target, _, new = image_pair
        patch = _create(orchestrator)
        store.remove(target.image_id)

        report = orchestrator.apply_patch("app:1", io.BytesIO(patch), target.image_id)

        assert store.imported == [new]
        assert report.target.image_id == target.image_id
        assert report.output_sha256 == hashlib.sha256(new).hexdigest()
        assert report.applied_tag is None
        assert [r.step for r in report.steps] == [
            Step.RESOLVE_SOURCE,
            Step.STAGE_SOURCE,
            Step.APPLY_DELTA,
            Step.IMPORT_OUTPUT,
            Step.VERIFY_TARGET,
        ]
        assert list(staging_dir.iterdir()) == []

    def test_applies_new_tag(self, orchestrator, store, image_pair):
        _, target, _, _ = image_pair
        patch = _create(orchestrator)
        store.remove(target.image_id)

        report = orchestrator.apply_patch(
            "app:1", io.BytesIO(patch), target.short_id, new_tag="app:rebuilt"
        )

        assert report.applied_tag == "app:rebuilt"
        assert not report.tag_failed
        assert store.calls_of("tag") == [target.image_id]
        assert orchestrator.resolver.resolve("app:rebuilt").image_id == target.image_id

    def test_tag_failure_is_reported_not_raised(self, orchestrator, store, image_pair):
        _, target, _, new = image_pair
        patch = _create(orchestrator)
        store.remove(target.image_id)
        store.fail_on.add("tag")

        report = orchestrator.apply_patch(
            "app:1", io.BytesIO(patch), target.image_id, new_tag="app:rebuilt"
        )

        assert report.tag_failed
        assert "injected tag failure" in report.tag_error
        assert report.applied_tag is None
        assert store.imported == [new]
        assert report.steps[-1].step is Step.TAG_TARGET
        assert report.steps[-1].state is StepState.FAILED

    def test_invalid_new_tag_rejected_up_front(self, orchestrator, store, image_pair):
        patch = _create(orchestrator)
        with pytest.raises(InvalidInputError):
            orchestrator.apply_patch("app:1", io.BytesIO(patch), "app:2", new_tag="Not Valid")
        assert store.calls_of("import") == []

    def test_empty_target_reference(self, orchestrator, image_pair):
        with pytest.raises(InvalidInputError):
            orchestrator.apply_patch("app:1", io.BytesIO(b""), "")

    def test_unverifiable_import(self, orchestrator, store, image_pair, staging_dir: Path):
        _, target, _, _ = image_pair
        patch = _create(orchestrator)
        store.remove(target.image_id)
        store.register_imports = False

        with pytest.raises(VerificationFailedError) as excinfo:
            orchestrator.apply_patch("app:1", io.BytesIO(patch), target.image_id)

        assert excinfo.value.stage == Step.VERIFY_TARGET.value
        assert len(store.imported) == 1
        assert list(staging_dir.iterdir()) == []

    def test_corrupt_patch(self, orchestrator, store, image_pair, staging_dir: Path):
        with pytest.raises(DeltaComputeError) as excinfo:
            orchestrator.apply_patch("app:1", io.BytesIO(b"garbage"), "app:2")
        assert excinfo.value.stage == Step.APPLY_DELTA.value
        assert store.calls_of("import") == []
        assert list(staging_dir.iterdir()) == []

    def test_source_export_failure_cleans_staging(
        self, orchestrator, store, image_pair, staging_dir: Path
    ):
        patch = _create(orchestrator)
        store.fail_on.add("export")

        with pytest.raises(StoreIOError) as excinfo:
            orchestrator.apply_patch("app:1", io.BytesIO(patch), "app:2")

        assert excinfo.value.stage == Step.STAGE_SOURCE.value
        assert store.calls_of("import") == []
        assert list(staging_dir.iterdir()) == []

    def test_import_failure_cleans_staging(
        self, orchestrator, store, image_pair, staging_dir: Path
    ):
        patch = _create(orchestrator)
        store.fail_on.add("import")
        with pytest.raises(StoreIOError) as excinfo:
            orchestrator.apply_patch("app:1", io.BytesIO(patch), "app:2")
        assert excinfo.value.stage == Step.IMPORT_OUTPUT.value
        assert list(staging_dir.iterdir()) == []

    def test_expected_digest_match(self, orchestrator, store, image_pair):
        _, target, _, new = image_pair
        patch = _create(orchestrator)
        store.remove(target.image_id)

        report = orchestrator.apply_patch(
            "app:1",
            io.BytesIO(patch),
            target.image_id,
            expected_sha256="sha256:" + hashlib.sha256(new).hexdigest().upper(),
        )
        assert Step.CHECK_DIGEST in [r.step for r in report.steps]

    def test_expected_digest_mismatch_skips_import(self, orchestrator, store, image_pair):
        patch = _create(orchestrator)
        with pytest.raises(VerificationFailedError) as excinfo:
            orchestrator.apply_patch(
                "app:1", io.BytesIO(patch), "app:2", expected_sha256="0" * 64
            )
        assert excinfo.value.stage == Step.CHECK_DIGEST.value
        assert store.calls_of("import") == []

    def test_patch_source_closed_on_success_and_failure(self, orchestrator, image_pair):
        patch = _create(orchestrator)

        ok = io.BytesIO(patch)
        orchestrator.apply_patch("app:1", ok, "app:2")
        assert ok.closed

        bad = io.BytesIO(patch)
        with pytest.raises(NotFoundError):
            orchestrator.apply_patch("missing:1", bad, "app:2")
        assert bad.closed


class TestJobs:
    def test_run_create_reports_patch_size(self, orchestrator, image_pair, tmp_path: Path):
        patch_path = tmp_path / "app.patch"
        report = orchestrator.run_create(
            PatchJob(source_ref="app:1", target_ref="app:2", patch_path=patch_path)
        )
        assert report.patch_size == patch_path.stat().st_size > 0

    def test_run_create_removes_partial_patch(
        self, orchestrator, store, image_pair, tmp_path: Path
    ):
        _, target, _, _ = image_pair
        store.fail_on.add(f"export:{target.image_id}")
        patch_path = tmp_path / "app.patch"

        with pytest.raises(StoreIOError):
            orchestrator.run_create(
                PatchJob(source_ref="app:1", target_ref="app:2", patch_path=patch_path)
            )
        assert not patch_path.exists()

    def test_run_create_keeps_partial_when_configured(
        self, store, settings, image_pair, tmp_path: Path
    ):
        from didiff.core.orchestrator import PatchOrchestrator

        _, target, _, _ = image_pair
        store.fail_on.add(f"export:{target.image_id}")
        orchestrator = PatchOrchestrator(
            store, settings.with_overrides(remove_partial_output=False)
        )
        patch_path = tmp_path / "app.patch"

        with pytest.raises(StoreIOError):
            orchestrator.run_create(
                PatchJob(source_ref="app:1", target_ref="app:2", patch_path=patch_path)
            )
        assert not patch_path.exists()
        assert len(list(tmp_path.glob(".app.patch.*.partial"))) == 1

    def test_run_create_leaves_existing_file_on_failure(
        self, orchestrator, image_pair, tmp_path: Path
    ):
        patch_path = tmp_path / "keep.bin"
        patch_path.write_bytes(b"precious")

        with pytest.raises(NotFoundError) as excinfo:
            orchestrator.run_create(
                PatchJob(source_ref="typo:1", target_ref="app:2", patch_path=patch_path)
            )

        assert excinfo.value.stage == Step.RESOLVE_SOURCE.value
        assert patch_path.read_bytes() == b"precious"
        assert sorted(p.name for p in tmp_path.iterdir()) == ["keep.bin", "staging"]

    def test_run_create_replaces_existing_file_on_success(
        self, orchestrator, image_pair, tmp_path: Path
    ):
        patch_path = tmp_path / "app.patch"
        patch_path.write_bytes(b"stale")

        orchestrator.run_create(
            PatchJob(source_ref="app:1", target_ref="app:2", patch_path=patch_path)
        )

        assert patch_path.read_bytes().startswith(b"BSDIFF40")
        assert list(tmp_path.glob("*.partial")) == []

    def test_run_apply_round_trip(self, orchestrator, store, image_pair, tmp_path: Path):
        _, target, _, new = image_pair
        patch_path = tmp_path / "app.patch"
        orchestrator.run_create(
            PatchJob(source_ref="app:1", target_ref="app:2", patch_path=patch_path)
        )
        store.remove(target.image_id)

        report = orchestrator.run_apply(
            PatchJob(
                source_ref="app:1",
                target_ref=target.image_id,
                patch_path=patch_path,
                new_tag="app:2",
            )
        )
        assert report.patch_size == patch_path.stat().st_size
        assert report.applied_tag == "app:2"
        assert store.imported == [new]

    def test_run_apply_missing_patch(self, orchestrator, image_pair, tmp_path: Path):
        with pytest.raises(InvalidInputError, match="does not exist"):
            orchestrator.run_apply(
                PatchJob(
                    source_ref="app:1",
                    target_ref="app:2",
                    patch_path=tmp_path / "absent.patch",
                )
            )
