"""核心数据模型定义。"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union


@dataclass(slots=True)
class ImageFile:
    """扫描阶段得到的源图片信息。"""

    source_path: Path
    root: Path
    relative_path: Path


@dataclass(slots=True)
class StagedFile:
    """单个文件成功写入目标位置后的结果。"""

    source_path: Path
    output_path: Path
    original_size: Optional[tuple[int, int]] = None
    output_size: Optional[tuple[int, int]] = None
    passthrough: bool = False

    @property
    def ok(self) -> bool:
        return True


@dataclass(slots=True)
class FailureRecord:
    """记录单个文件的失败原因（用于日志与汇总）。"""

    source_path: Path
    stage: str
    error_type: str
    message: str
    output_path: Optional[Path] = None

    @property
    def ok(self) -> bool:
        return False


FileOutcome = Union[StagedFile, FailureRecord]


@dataclass(slots=True)
class RunResult:
    """批处理的汇总结果，由主循环逐条写入。"""

    total: int = 0
    succeeded: list[StagedFile] = field(default_factory=list)
    failed: list[FailureRecord] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.succeeded) + len(self.failed)

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def failure_count(self) -> int:
        return len(self.failed)

    def record(self, outcome: FileOutcome) -> None:
        """追加一条处理结果。"""

        if outcome.ok:
            self.succeeded.append(outcome)
        else:
            self.failed.append(outcome)

    def all_outcomes(self) -> list[FileOutcome]:
        """返回所有结果记录，方便输出汇总。"""

        return [*self.succeeded, *self.failed]
