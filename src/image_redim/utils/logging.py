"""日志配置：控制台输出与追加写入的运行日志。"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(processName)s] %(levelname)s %(name)s: %(message)s"


def setup_logging(level: int = logging.INFO, log_file: Optional[Path] = None) -> None:
    """初始化项目日志配置。

    ``log_file`` 以追加模式打开，同一路径重复调用不会叠加处理器。
    """

    logging.basicConfig(level=level, format=LOG_FORMAT)
    root = logging.getLogger()
    root.setLevel(level)

    if log_file is None:
        return

    log_path = Path(log_file).expanduser().resolve()
    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler) and Path(handler.baseFilename) == log_path:
            return

    log_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(file_handler)


def flush_logging() -> None:
    """刷新所有根日志处理器，进程退出前调用。"""

    for handler in logging.getLogger().handlers:
        handler.flush()


def active_log_files() -> list[str]:
    """返回根日志器上已配置的日志文件路径，供工作进程重建处理器。"""

    return [
        handler.baseFilename
        for handler in logging.getLogger().handlers
        if isinstance(handler, logging.FileHandler)
    ]
