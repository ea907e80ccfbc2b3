"""测试两阶段写入：复制、临时文件缩放、原子替换与失败清理。"""

from __future__ import annotations

import os
from pathlib import Path

from PIL import Image

from image_redim.core.config import ResizeBound
from image_redim.core.exceptions import CodecError
from image_redim.core.models import FailureRecord, StagedFile
from image_redim.core.output_manager import FileStager, iter_staging_residue
from image_redim.processing.transcoder import TranscodeResult

BOUND = ResizeBound(max_width=100, max_height=100)


def _make_image(path: Path, size: tuple[int, int] = (400, 200)) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", size, "orange").save(path)
    return path


def test_stage_creates_parents_and_resizes(tmp_path: Path) -> None:
    source = _make_image(tmp_path / "src" / "photo.jpg")
    dest = tmp_path / "dst" / "a" / "b" / "photo.jpg"

    outcome = FileStager(BOUND).stage(source, dest)

    assert isinstance(outcome, StagedFile)
    assert outcome.output_path == dest
    assert outcome.output_size == (100, 50)
    with Image.open(dest) as img:
        assert img.size == (100, 50)
    assert list(iter_staging_residue(tmp_path / "dst")) == []
    assert sorted(p.name for p in dest.parent.iterdir()) == ["photo.jpg"]


def test_stage_overwrites_existing_destination(tmp_path: Path) -> None:
    source = _make_image(tmp_path / "src" / "photo.png")
    dest = tmp_path / "dst" / "photo.png"
    dest.parent.mkdir()
    dest.write_bytes(b"stale")

    outcome = FileStager(BOUND).stage(source, dest)

    assert outcome.ok
    with Image.open(dest) as img:
        assert img.size == (100, 50)


def test_transcode_failure_keeps_unresized_copy(tmp_path: Path) -> None:
    source = tmp_path / "src" / "broken.png"
    source.parent.mkdir()
    source.write_text("definitely not a png")
    dest = tmp_path / "dst" / "broken.png"

    outcome = FileStager(BOUND).stage(source, dest)

    assert isinstance(outcome, FailureRecord)
    assert outcome.stage == "transcode"
    assert outcome.error_type == "CodecError"
    assert outcome.output_path == dest
    assert dest.read_bytes() == source.read_bytes()
    assert list(iter_staging_residue(tmp_path / "dst")) == []


def test_partial_staging_output_is_removed(tmp_path: Path) -> None:
    source = _make_image(tmp_path / "src" / "photo.png")
    dest = tmp_path / "dst" / "photo.png"

    def half_written(input_path: Path, output_path: Path, bound: ResizeBound, **_: object) -> TranscodeResult:
        output_path.write_bytes(b"\x89PNG partial")
        raise CodecError("编码中断", path=input_path)

    outcome = FileStager(BOUND, transcode=half_written).stage(source, dest)

    assert not outcome.ok
    assert dest.read_bytes() == source.read_bytes()
    assert list(iter_staging_residue(tmp_path / "dst")) == []


def test_transcode_oserror_is_recorded_as_codec_failure(tmp_path: Path) -> None:
    source = _make_image(tmp_path / "src" / "photo.png")
    dest = tmp_path / "dst" / "photo.png"

    def disk_full(input_path: Path, output_path: Path, bound: ResizeBound, **_: object) -> TranscodeResult:
        raise OSError(28, "No space left on device")

    outcome = FileStager(BOUND, transcode=disk_full).stage(source, dest)

    assert isinstance(outcome, FailureRecord)
    assert outcome.stage == "transcode"


def test_copy_failure_leaves_no_file(tmp_path: Path) -> None:
    dest = tmp_path / "dst" / "missing.png"

    outcome = FileStager(BOUND).stage(tmp_path / "src" / "missing.png", dest)

    assert isinstance(outcome, FailureRecord)
    assert outcome.stage == "copy"
    assert not dest.exists()


def test_prepare_failure_when_parent_is_a_file(tmp_path: Path) -> None:
    source = _make_image(tmp_path / "src" / "photo.png")
    blocker = tmp_path / "dst"
    blocker.write_text("not a directory")

    outcome = FileStager(BOUND).stage(source, blocker / "photo.png")

    assert isinstance(outcome, FailureRecord)
    assert outcome.stage == "prepare"


def test_promote_failure_keeps_copy_and_cleans_staging(tmp_path: Path, monkeypatch) -> None:
    source = _make_image(tmp_path / "src" / "photo.png")
    dest = tmp_path / "dst" / "photo.png"

    def refuse_replace(src: os.PathLike, dst: os.PathLike) -> None:
        raise PermissionError(13, "Permission denied")

    monkeypatch.setattr("image_redim.core.output_manager.os.replace", refuse_replace)

    outcome = FileStager(BOUND).stage(source, dest)

    assert isinstance(outcome, FailureRecord)
    assert outcome.stage == "promote"
    assert dest.read_bytes() == source.read_bytes()
    assert list(iter_staging_residue(tmp_path / "dst")) == []


def test_staging_name_uses_prefix_and_token(tmp_path: Path) -> None:
    stager = FileStager(BOUND, staging_prefix=".tmp-", token="42-beef")

    staging = stager.staging_path(tmp_path / "x" / "photo.webp")

    assert staging == tmp_path / "x" / ".tmp-42-beef-photo.webp"


def test_two_stagers_never_share_staging_names(tmp_path: Path) -> None:
    dest = tmp_path / "photo.png"

    assert FileStager(BOUND).staging_path(dest) != FileStager(BOUND).staging_path(dest)
