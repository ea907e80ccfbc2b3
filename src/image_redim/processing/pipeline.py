"""处理流水线：校验、扫描、确认，然后逐个文件复制并缩放。"""

from __future__ import annotations

import logging
from concurrent.futures import ProcessPoolExecutor, as_completed
from concurrent.futures.process import BrokenProcessPool
from multiprocessing.context import BaseContext
from pathlib import Path
from typing import Callable, Iterable, Optional, Sequence, Union

from image_redim.core.config import JobConfig, ResizeBound
from image_redim.core.exceptions import (
    FatalError,
    InvalidConfigurationError,
    InvalidPathError,
    PerFileError,
    PreconditionError,
    ProcessingAborted,
)
from image_redim.core.models import FailureRecord, FileOutcome, ImageFile, RunResult
from image_redim.core.output_manager import FileStager, iter_staging_residue
from image_redim.core.paths import map_destination
from image_redim.core.progress import STATUS_FINISHED, STATUS_RUNNING, STATUS_STARTED, ProgressUpdate
from image_redim.core.scanner import discover_images
from image_redim.processing.worker import ProcessingTask, init_worker_logging, run_task
from image_redim.utils.logging import active_log_files

LOGGER = logging.getLogger(__name__)


ProgressCallback = Optional[Callable[[ProgressUpdate], None]]
ConfirmCallback = Optional[Callable[[int], bool]]
ImageInput = Union[ImageFile, Path]


def validate_roots(source_root: Path, dest_root: Path) -> tuple[Path, Path]:
    """在任何文件操作之前确认源目录与目标目录都存在。"""

    source = Path(source_root).expanduser().resolve()
    if not source.is_dir():
        raise PreconditionError(f"源目录不存在: {source}")

    dest = Path(dest_root).expanduser().resolve()
    if not dest.is_dir():
        raise PreconditionError(f"目标目录不存在: {dest}")

    if source == dest:
        raise PreconditionError(f"源目录与目标目录不能相同: {source}")
    return source, dest


def run_job(
    config: JobConfig,
    *,
    confirm: ConfirmCallback = None,
    progress_callback: ProgressCallback = None,
    stager: Optional[FileStager] = None,
    mp_context: Optional[BaseContext] = None,
) -> RunResult:
    """完整任务入口：校验目录、扫描图片、请求确认并执行批处理。

    ``confirm`` 收到图片数量，返回 False 时抛出 ``ProcessingAborted``，此时目标目录不会有任何改动。
    """

    config.validate()
    source, dest = validate_roots(config.source_root, config.dest_root)

    LOGGER.info("开始扫描: %s", source)
    exclude = [dest] if dest.is_relative_to(source) else []
    images = discover_images(
        source,
        extensions=config.extensions,
        case_sensitive=config.case_sensitive,
        exclude=exclude,
        staging_prefix=config.staging_prefix,
    )
    LOGGER.info("发现 %d 个图片文件", len(images))

    if confirm is not None and not confirm(len(images)):
        LOGGER.info("用户取消处理，未做任何修改")
        raise ProcessingAborted("用户取消了处理")

    if stager is None:
        stager = FileStager(
            config.bound,
            staging_prefix=config.staging_prefix,
            quality=config.jpeg_quality,
            max_image_pixels=config.max_image_pixels,
        )

    result = run_batch(
        images,
        source,
        dest,
        config.bound,
        config.limit,
        stager=stager,
        max_workers=config.max_workers,
        progress_callback=progress_callback,
        mp_context=mp_context,
    )

    LOGGER.info(
        "处理完成：尝试 %d 张，成功 %d 张，失败 %d 张",
        result.attempted,
        result.success_count,
        result.failure_count,
    )
    for residue in iter_staging_residue(dest, config.staging_prefix):
        LOGGER.warning("目标目录中存在残留临时文件: %s", residue)
    return result


def run_batch(
    images: Iterable[ImageInput],
    source_root: Path,
    dest_root: Path,
    bound: ResizeBound,
    limit: Optional[int] = None,
    *,
    stager: Optional[FileStager] = None,
    max_workers: int = 1,
    progress_callback: ProgressCallback = None,
    mp_context: Optional[BaseContext] = None,
) -> RunResult:
    """按扫描顺序处理图片，单个文件失败不影响其他文件。

    ``limit`` 按尝试次数计数。单文件错误之外的任何异常都包装为 ``FatalError`` 并中止批处理。
    并发模式下自定义转码函数无法传递到工作进程，此组合会被拒绝。
    """

    paths = [_source_path(item) for item in images]
    if limit is not None:
        paths = paths[:limit]

    total = len(paths)
    result = RunResult(total=total)
    if stager is None:
        stager = FileStager(bound)
    if max_workers > 1 and not stager.uses_default_transcode:
        raise InvalidConfigurationError("并发模式不支持自定义转码函数，请将 max_workers 设为 1")

    _emit_progress(progress_callback, 0, total, "开始处理", status=STATUS_STARTED)

    try:
        if max_workers <= 1 or total <= 1:
            for path in paths:
                outcome = _process_one(path, source_root, dest_root, stager)
                _record_outcome(result, outcome, progress_callback)
        else:
            _run_parallel(
                paths, source_root, dest_root, stager, max_workers, result, progress_callback, mp_context
            )
    except FatalError:
        raise
    except Exception as exc:
        LOGGER.critical("批处理意外中止（已处理 %d/%d）：%s", result.attempted, total, exc)
        raise FatalError(f"批处理意外中止: {exc}") from exc

    _emit_progress(progress_callback, result.attempted, total, "处理完成", status=STATUS_FINISHED)
    return result


def _process_one(path: Path, source_root: Path, dest_root: Path, stager: FileStager) -> FileOutcome:
    LOGGER.info("处理: %s", path)
    try:
        dest = map_destination(source_root, dest_root, path)
    except InvalidPathError as exc:
        return _map_failure(path, exc)
    return stager.stage(path, dest)


def _run_parallel(
    paths: Sequence[Path],
    source_root: Path,
    dest_root: Path,
    stager: FileStager,
    max_workers: int,
    result: RunResult,
    progress_callback: ProgressCallback,
    mp_context: Optional[BaseContext] = None,
) -> None:
    tasks: list[ProcessingTask] = []
    for path in paths:
        try:
            dest = map_destination(source_root, dest_root, path)
        except InvalidPathError as exc:
            _record_outcome(result, _map_failure(path, exc), progress_callback)
            continue
        tasks.append(
            ProcessingTask(
                source_path=path,
                dest_path=dest,
                bound=stager.bound,
                staging_prefix=stager.staging_prefix,
                quality=stager.quality,
                max_image_pixels=stager.max_image_pixels,
            )
        )

    # 只有主进程写入 result，子进程只返回单个结果。
    executor = ProcessPoolExecutor(
        max_workers=max_workers,
        mp_context=mp_context,
        initializer=init_worker_logging,
        initargs=(logging.getLogger().getEffectiveLevel(), active_log_files()),
    )
    try:
        _collect_parallel(executor, tasks, result, progress_callback)
    except BaseException:
        # 致命错误：取消尚未开始的任务，不等待队列排空。
        executor.shutdown(wait=False, cancel_futures=True)
        raise
    executor.shutdown(wait=True)


def _collect_parallel(
    executor: ProcessPoolExecutor,
    tasks: Sequence[ProcessingTask],
    result: RunResult,
    progress_callback: ProgressCallback,
) -> None:
    future_map = {executor.submit(run_task, task): task for task in tasks}
    for future in as_completed(future_map):
        task = future_map[future]
        LOGGER.info("处理: %s", task.source_path)
        try:
            outcome = future.result()
        except (PerFileError, BrokenProcessPool) as exc:
            LOGGER.error("工作进程执行失败: %s -> %s", task.source_path, exc)
            outcome = FailureRecord(
                source_path=task.source_path,
                stage=getattr(exc, "stage", "worker"),
                error_type=type(exc).__name__,
                message=str(exc),
                output_path=task.dest_path,
            )
        _record_outcome(result, outcome, progress_callback)


def _map_failure(path: Path, exc: InvalidPathError) -> FailureRecord:
    LOGGER.error("路径映射失败: %s -> %s", path, exc)
    return FailureRecord(
        source_path=path,
        stage=exc.stage,
        error_type=type(exc).__name__,
        message=str(exc),
    )


def _record_outcome(result: RunResult, outcome: FileOutcome, callback: ProgressCallback) -> None:
    result.record(outcome)
    name = outcome.source_path.name
    message = f"完成 {name}" if outcome.ok else f"失败 {name}"
    _emit_progress(callback, result.attempted, result.total, message, path=outcome.source_path, ok=outcome.ok)


def _emit_progress(
    callback: ProgressCallback,
    completed: int,
    total: int,
    message: Optional[str] = None,
    *,
    status: str = STATUS_RUNNING,
    path: Optional[Path] = None,
    ok: Optional[bool] = None,
) -> None:
    if not callback:
        return
    callback(ProgressUpdate(total=total, completed=completed, message=message, status=status, path=path, ok=ok))


def _source_path(item: ImageInput) -> Path:
    if isinstance(item, ImageFile):
        return item.source_path
    return Path(item)
