"""Tests for aumai_provsign.planner — output planning decision table."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from aumai_provsign.errors import PlanError
from aumai_provsign.models import AssetInput
from aumai_provsign.planner import (
    normalize_extension,
    plan_output,
    sidecar_path,
    validate_inputs,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _inputs(count: int) -> list[AssetInput]:
    return [AssetInput(path=Path(f"in/asset{i}.jpg")) for i in range(count)]


def _output(tmp_path: Path, state: str) -> Path:
    output = tmp_path / "out.jpg"
    if state == "file":
        output.write_bytes(b"existing")
    elif state == "dir":
        output.mkdir()
    return output


# (input count, output state, sidecar, force) -> "file" | "dir" | error text.
# Every existing directory here is empty.
DECISION_TABLE = {
    # No inputs: always rejected.
    (0, "missing", False, False): "No input path found",
    (0, "missing", False, True): "No input path found",
    (0, "missing", True, False): "No input path found",
    (0, "missing", True, True): "No input path found",
    (0, "file", False, False): "No input path found",
    (0, "file", False, True): "No input path found",
    (0, "file", True, False): "No input path found",
    (0, "file", True, True): "No input path found",
    (0, "dir", False, False): "No input path found",
    (0, "dir", False, True): "No input path found",
    (0, "dir", True, False): "No input path found",
    (0, "dir", True, True): "No input path found",
    # One input, one output.
    (1, "missing", False, False): "file",
    (1, "missing", False, True): "file",
    (1, "file", False, False): "Output path already exists, use --force to overwrite",
    (1, "file", False, True): "file",
    (1, "dir", False, False): "dir",
    (1, "dir", False, True): "dir",
    # One input plus its sidecar: two outputs.
    (1, "missing", True, False): "dir",
    (1, "missing", True, True): "dir",
    (1, "file", True, False): "Output path must be a folder",
    (1, "file", True, True): "Output path must be a folder",
    (1, "dir", True, False): "dir",
    (1, "dir", True, True): "dir",
    # Several inputs.
    (2, "missing", False, False): "dir",
    (2, "missing", False, True): "dir",
    (2, "missing", True, False): "dir",
    (2, "missing", True, True): "dir",
    (2, "file", False, False): "Output path must be a folder",
    (2, "file", False, True): "Output path must be a folder",
    (2, "file", True, False): "Output path must be a folder",
    (2, "file", True, True): "Output path must be a folder",
    (2, "dir", False, False): "dir",
    (2, "dir", False, True): "dir",
    (2, "dir", True, False): "dir",
    (2, "dir", True, True): "dir",
}


# ===========================================================================
# Decision table
# ===========================================================================


class TestDecisionTable:
    @pytest.mark.parametrize(
        ("count", "state", "sidecar", "force", "expected"),
        [(*key, value) for key, value in DECISION_TABLE.items()],
    )
    def test_outcome(
        self,
        tmp_path: Path,
        count: int,
        state: str,
        sidecar: bool,
        force: bool,
        expected: str,
    ) -> None:
        output = _output(tmp_path, state)
        inputs = _inputs(count)

        if expected in ("file", "dir"):
            layout = plan_output(inputs, output, sidecar=sidecar, force=force)
            assert layout.is_dir is (expected == "dir")
            assert layout.output == output
        else:
            with pytest.raises(PlanError, match=expected):
                plan_output(inputs, output, sidecar=sidecar, force=force)

    def test_table_covers_every_combination(self) -> None:
        assert len(DECISION_TABLE) == 3 * 3 * 2 * 2

    def test_missing_output_with_several_outputs_creates_directory(
        self, tmp_path: Path
    ) -> None:
        output = tmp_path / "nested" / "deeper" / "out"
        plan_output(_inputs(2), output, sidecar=False, force=False)
        assert output.is_dir()

    def test_single_output_to_missing_path_creates_nothing(self, tmp_path: Path) -> None:
        output = tmp_path / "out.jpg"
        plan_output(_inputs(1), output, sidecar=False, force=False)
        assert not output.exists()

    def test_output_directory_that_does_not_exist_is_invariant_violation(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(Path, "exists", lambda self: False)
        monkeypatch.setattr(Path, "is_dir", lambda self: True)
        with pytest.raises(AssertionError):
            plan_output(_inputs(1), tmp_path / "out", sidecar=False, force=False)


# ===========================================================================
# Existing destinations inside an output directory
# ===========================================================================


class TestExistingDestinations:
    def test_existing_destination_is_counted(self, tmp_path: Path) -> None:
        (tmp_path / "asset0.jpg").write_bytes(b"x")
        with pytest.raises(PlanError, match="1/2 paths already exist"):
            plan_output(_inputs(2), tmp_path, sidecar=False, force=False)

    def test_existing_sidecars_are_counted(self, tmp_path: Path) -> None:
        (tmp_path / "asset0.jpg").write_bytes(b"x")
        (tmp_path / "asset0.c2pa").write_bytes(b"x")
        (tmp_path / "asset1.c2pa").write_bytes(b"x")
        with pytest.raises(PlanError, match="3/4 paths already exist"):
            plan_output(_inputs(2), tmp_path, sidecar=True, force=False)

    def test_single_input_with_sidecar_counts_two_outputs(self, tmp_path: Path) -> None:
        (tmp_path / "asset0.c2pa").write_bytes(b"x")
        with pytest.raises(PlanError, match="1/2 paths already exist"):
            plan_output(_inputs(1), tmp_path, sidecar=True, force=False)

    def test_existing_destinations_are_logged(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        (tmp_path / "asset1.jpg").write_bytes(b"x")
        with caplog.at_level(logging.WARNING), pytest.raises(PlanError):
            plan_output(_inputs(2), tmp_path, sidecar=False, force=False)
        assert "asset1.jpg" in caplog.text

    def test_force_skips_existence_check(self, tmp_path: Path) -> None:
        (tmp_path / "asset0.jpg").write_bytes(b"x")
        (tmp_path / "asset1.jpg").write_bytes(b"x")
        layout = plan_output(_inputs(2), tmp_path, sidecar=False, force=True)
        assert layout.is_dir

    def test_single_input_existing_in_directory_fails(self, tmp_path: Path) -> None:
        (tmp_path / "asset0.jpg").write_bytes(b"x")
        with pytest.raises(PlanError, match="asset0.jpg.*already exists"):
            plan_output(_inputs(1), tmp_path, sidecar=False, force=False)

    def test_single_input_existing_in_directory_forced(self, tmp_path: Path) -> None:
        (tmp_path / "asset0.jpg").write_bytes(b"x")
        layout = plan_output(_inputs(1), tmp_path, sidecar=False, force=True)
        assert layout.is_dir


# ===========================================================================
# Extension matching
# ===========================================================================


class TestExtensions:
    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("A.JPEG", "jpg"),
            ("a.jpg", "jpg"),
            ("x.TIFF", "tif"),
            ("x.tif", "tif"),
            ("clip.MP4", "mp4"),
            ("noext", ""),
        ],
    )
    def test_normalize(self, path: str, expected: str) -> None:
        assert normalize_extension(path) == expected

    def test_normalize_is_idempotent(self) -> None:
        once = normalize_extension("A.JPEG")
        assert normalize_extension(f"x.{once}") == once

    def test_mismatch_names_both_extensions(self, tmp_path: Path) -> None:
        inputs = [AssetInput(path=Path("photo.png"))]
        with pytest.raises(PlanError) as excinfo:
            plan_output(inputs, tmp_path / "out.jpg", sidecar=False, force=False)
        message = str(excinfo.value)
        assert "png" in message
        assert "jpg" in message
        assert "--sidecar" in message

    def test_aliases_match(self, tmp_path: Path) -> None:
        inputs = [AssetInput(path=Path("photo.JPEG"))]
        layout = plan_output(inputs, tmp_path / "out.jpg", sidecar=False, force=False)
        assert not layout.is_dir


# ===========================================================================
# Input validation and destinations
# ===========================================================================


class TestInputs:
    def test_validate_inputs_keeps_order(self) -> None:
        inputs = validate_inputs(["b.jpg", Path("dir/a.jpg")])
        assert [i.file_name for i in inputs] == ["b.jpg", "a.jpg"]

    @pytest.mark.parametrize("bad", ["/", ".", "photos/.."])
    def test_validate_inputs_rejects_paths_without_file_name(self, bad: str) -> None:
        with pytest.raises(PlanError, match="no file name"):
            validate_inputs(["ok.jpg", bad])

    def test_destination_in_directory(self, tmp_path: Path) -> None:
        layout = plan_output(_inputs(2), tmp_path, sidecar=False, force=False)
        asset = AssetInput(path=Path("in/asset1.jpg"))
        assert layout.destination(asset) == tmp_path / "asset1.jpg"

    def test_destination_is_output_file(self, tmp_path: Path) -> None:
        output = tmp_path / "signed.jpg"
        layout = plan_output(_inputs(1), output, sidecar=False, force=False)
        assert layout.destination(_inputs(1)[0]) == output

    def test_sidecar_path(self) -> None:
        assert sidecar_path(Path("out/photo.jpg")) == Path("out/photo.c2pa")
