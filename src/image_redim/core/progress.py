"""进度事件。每尝试处理一个文件发送一次，不论成功与否。"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

STATUS_STARTED = "started"
STATUS_RUNNING = "running"
STATUS_FINISHED = "finished"


@dataclass(slots=True)
class ProgressUpdate:
    """批处理过程中的进度信息。"""

    total: int
    completed: int
    message: Optional[str] = None
    status: str = STATUS_RUNNING
    path: Optional[Path] = None
    ok: Optional[bool] = None
