"""测试命令行入口：退出码、确认提示、测试模式与运行日志。"""

from __future__ import annotations

from pathlib import Path

from PIL import Image
from typer.testing import CliRunner

from image_redim.cli.main import app

runner = CliRunner()


def _make_tree(source: Path, count: int, size: tuple[int, int] = (200, 100)) -> None:
    source.mkdir(parents=True, exist_ok=True)
    for idx in range(count):
        Image.new("RGB", size, "navy").save(source / f"img_{idx:02d}.jpg")


def _args(source: Path, dest: Path, log_file: Path, *extra: str) -> list[str]:
    return [
        "--fromRootDir",
        str(source),
        "--toRootDir",
        str(dest),
        "--log-file",
        str(log_file),
        "--max-width",
        "50",
        "--max-height",
        "50",
        *extra,
    ]


def test_missing_source_exits_with_error(tmp_path: Path) -> None:
    dest = tmp_path / "output"
    dest.mkdir()

    result = runner.invoke(app, _args(tmp_path / "missing", dest, tmp_path / "run.log", "--yes"))

    assert result.exit_code == 1
    assert "源目录不存在" in result.output
    assert list(dest.iterdir()) == []


def test_missing_destination_exits_with_error(tmp_path: Path) -> None:
    source = tmp_path / "input"
    _make_tree(source, 1)

    result = runner.invoke(app, _args(source, tmp_path / "missing", tmp_path / "run.log", "--yes"))

    assert result.exit_code == 1
    assert not (tmp_path / "missing").exists()


def test_declining_prompt_exits_zero_without_changes(tmp_path: Path) -> None:
    source = tmp_path / "input"
    dest = tmp_path / "output"
    _make_tree(source, 3)
    dest.mkdir()

    result = runner.invoke(app, _args(source, dest, tmp_path / "run.log"), input="n\n")

    assert result.exit_code == 0
    assert "发现 3 张图片待处理" in result.output
    assert "已取消" in result.output
    assert list(dest.iterdir()) == []


def test_pressing_enter_accepts_prompt_by_default(tmp_path: Path) -> None:
    source = tmp_path / "input"
    dest = tmp_path / "output"
    _make_tree(source, 2)
    dest.mkdir()

    result = runner.invoke(app, _args(source, dest, tmp_path / "run.log"), input="\n")

    assert result.exit_code == 0
    assert "已取消" not in result.output
    assert "[Y/n]" in result.output
    assert sorted(p.name for p in dest.iterdir()) == ["img_00.jpg", "img_01.jpg"]


def test_confirmed_run_resizes_and_logs(tmp_path: Path) -> None:
    source = tmp_path / "input"
    dest = tmp_path / "output"
    log_file = tmp_path / "logs" / "run.log"
    _make_tree(source, 2)
    (source / "broken.png").write_text("oops")
    dest.mkdir()

    result = runner.invoke(app, _args(source, dest, log_file), input="y\n")

    assert result.exit_code == 0
    assert "成功 2 张" in result.output
    assert "失败 1 张" in result.output
    with Image.open(dest / "img_00.jpg") as img:
        assert img.size == (50, 25)

    log_text = log_file.read_text(encoding="utf-8")
    assert "复制" in log_text
    assert "缩放" in log_text
    assert "替换" in log_text
    assert "broken.png" in log_text


def test_test_mode_caps_processing(tmp_path: Path) -> None:
    source = tmp_path / "input"
    dest = tmp_path / "output"
    _make_tree(source, 15, size=(20, 20))
    dest.mkdir()

    result = runner.invoke(app, _args(source, dest, tmp_path / "run.log", "--test", "--yes"))

    assert result.exit_code == 0
    assert "尝试 10 张" in result.output
    assert len(list(dest.iterdir())) == 10


def test_log_file_is_appended_across_runs(tmp_path: Path) -> None:
    source = tmp_path / "input"
    dest = tmp_path / "output"
    log_file = tmp_path / "run.log"
    _make_tree(source, 1)
    dest.mkdir()

    runner.invoke(app, _args(source, dest, log_file, "--yes"))
    first_size = log_file.stat().st_size
    runner.invoke(app, _args(source, dest, log_file, "--yes"))

    assert log_file.stat().st_size > first_size


def test_invalid_case_mode_is_rejected(tmp_path: Path) -> None:
    source = tmp_path / "input"
    dest = tmp_path / "output"
    _make_tree(source, 1)
    dest.mkdir()

    result = runner.invoke(app, _args(source, dest, tmp_path / "run.log", "--case", "sometimes", "--yes"))

    assert result.exit_code != 0
    assert list(dest.iterdir()) == []
