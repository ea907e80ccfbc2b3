"""命令行入口。"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import typer
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)

from image_redim.core.config import (
    DEFAULT_JPEG_QUALITY,
    DEFAULT_MAX_HEIGHT,
    DEFAULT_MAX_WIDTH,
    TEST_MODE_LIMIT,
    JobConfig,
    ResizeBound,
)
from image_redim.core.exceptions import (
    DiscoveryError,
    InvalidConfigurationError,
    PreconditionError,
    ProcessingAborted,
)
from image_redim.core.models import RunResult
from image_redim.core.progress import ProgressUpdate
from image_redim.processing.pipeline import ConfirmCallback, run_job
from image_redim.utils.logging import flush_logging, setup_logging

app = typer.Typer(help="批量等比缩放图片，并按原目录结构输出到目标目录。")

LOGGER = logging.getLogger(__name__)

CASE_MODES = {"auto": None, "sensitive": True, "insensitive": False}


def _parse_case_mode(value: str) -> Optional[bool]:
    try:
        return CASE_MODES[value.lower()]
    except KeyError as exc:
        raise typer.BadParameter("只能是 auto、sensitive 或 insensitive") from exc


def _build_progress_callback(progress: Progress):
    task_id: Optional[int] = None

    def callback(update: ProgressUpdate) -> None:
        nonlocal task_id
        if update.total == 0:
            return
        if task_id is None:
            progress.start()
            task_id = progress.add_task("缩放图片", total=update.total)
        progress.update(task_id, completed=update.completed)
        if update.ok is False and update.path is not None:
            progress.log(f"失败: {update.path}")

    return callback


def _build_confirm(assume_yes: bool) -> ConfirmCallback:
    def confirm(count: int) -> bool:
        typer.echo(f"发现 {count} 张图片待处理。")
        if assume_yes:
            return True
        return typer.confirm("是否继续？", default=True)

    return confirm


@contextmanager
def _error_boundary() -> Iterator[None]:
    """顶层错误边界：把异常转换为确定的退出码，退出前刷新日志。"""

    try:
        yield
    except (typer.Exit, typer.Abort):
        flush_logging()
        raise
    except ProcessingAborted:
        flush_logging()
        typer.echo("已取消，未做任何修改。")
        raise typer.Exit(code=0)
    except (PreconditionError, DiscoveryError, InvalidConfigurationError) as exc:
        LOGGER.error("%s", exc)
        flush_logging()
        typer.echo(f"错误：{exc}", err=True)
        raise typer.Exit(code=1) from exc
    except Exception as exc:
        LOGGER.critical("致命错误，终止运行: %s", exc, exc_info=exc)
        flush_logging()
        typer.echo(f"致命错误：{exc}", err=True)
        raise typer.Exit(code=1) from exc


def _print_summary(result: RunResult) -> None:
    typer.echo(
        f"处理完成：尝试 {result.attempted} 张，成功 {result.success_count} 张，失败 {result.failure_count} 张。"
    )
    for record in result.failed:
        typer.echo(f"  [{record.stage}] {record.source_path}: {record.message}")


@app.command("run")
def run_cli(  # noqa: PLR0913
    from_root_dir: Path = typer.Option(..., "--fromRootDir", "--from-root-dir", help="读取图片的源目录"),
    to_root_dir: Path = typer.Option(..., "--toRootDir", "--to-root-dir", help="写入结果的目标目录"),
    test: bool = typer.Option(False, "--test", help=f"测试模式，只处理前 {TEST_MODE_LIMIT} 个文件"),
    limit: Optional[int] = typer.Option(None, "--limit", min=0, help="最多处理的文件数量"),
    max_width: int = typer.Option(DEFAULT_MAX_WIDTH, "--max-width", help="输出最大宽度"),
    max_height: int = typer.Option(DEFAULT_MAX_HEIGHT, "--max-height", help="输出最大高度"),
    quality: int = typer.Option(DEFAULT_JPEG_QUALITY, "--quality", help="JPEG/WEBP 输出质量 1~100"),
    max_workers: int = typer.Option(1, "--workers", "-w", help="并发进程数量，1 表示顺序处理"),
    case_mode: str = typer.Option("auto", "--case", help="扩展名大小写匹配：auto/sensitive/insensitive"),
    log_file: Path = typer.Option(Path("redim.log"), "--log-file", help="运行日志文件（追加写入）"),
    assume_yes: bool = typer.Option(False, "--yes", "-y", help="跳过确认提示"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出调试日志"),
) -> None:
    """复制并缩放源目录下的所有图片。"""

    setup_logging(logging.DEBUG if verbose else logging.INFO, log_file=log_file)
    LOGGER.debug("CLI 参数解析完成")

    if limit is None and test:
        limit = TEST_MODE_LIMIT

    job = JobConfig(
        source_root=from_root_dir,
        dest_root=to_root_dir,
        bound=ResizeBound(max_width=max_width, max_height=max_height),
        limit=limit,
        case_sensitive=_parse_case_mode(case_mode),
        max_workers=max_workers,
        jpeg_quality=quality,
        log_file=log_file,
    )

    progress = Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        TimeRemainingColumn(),
    )

    with _error_boundary():
        try:
            result = run_job(
                job,
                confirm=_build_confirm(assume_yes),
                progress_callback=_build_progress_callback(progress),
            )
        finally:
            progress.stop()

    _print_summary(result)
    flush_logging()


if __name__ == "__main__":
    app()
