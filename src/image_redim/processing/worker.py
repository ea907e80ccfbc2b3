"""并发处理的工作单元。"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from image_redim.core.config import ResizeBound
from image_redim.core.models import FileOutcome
from image_redim.core.output_manager import FileStager
from image_redim.utils.logging import setup_logging


@dataclass(slots=True)
class ProcessingTask:
    """描述单个图片处理任务，需可被 pickle 传递到子进程。"""

    source_path: Path
    dest_path: Path
    bound: ResizeBound
    staging_prefix: str
    quality: int
    max_image_pixels: Optional[int]
    token: Optional[str] = None


_STAGERS: dict[tuple, FileStager] = {}


def run_task(task: ProcessingTask) -> FileOutcome:
    """在工作进程中执行复制、缩放与替换。"""

    return _stager_for(task).stage(task.source_path, task.dest_path)


def _stager_for(task: ProcessingTask) -> FileStager:
    # 每个工作进程复用同一个 stager，临时文件标记按进程区分。
    key = (task.bound, task.staging_prefix, task.quality, task.max_image_pixels, task.token)
    stager = _STAGERS.get(key)
    if stager is None:
        stager = FileStager(
            task.bound,
            staging_prefix=task.staging_prefix,
            quality=task.quality,
            max_image_pixels=task.max_image_pixels,
            token=task.token,
        )
        _STAGERS[key] = stager
    return stager


def init_worker_logging(level: int, log_files: Sequence[str]) -> None:
    """工作进程初始化：按主进程的配置重建运行日志处理器。

    spawn / forkserver 启动的子进程不会继承主进程的日志处理器。
    """

    if not log_files:
        setup_logging(level)
        return
    for log_file in log_files:
        setup_logging(level, log_file=Path(log_file))
