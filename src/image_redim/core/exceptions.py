"""项目内使用的自定义异常定义。"""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class ImageRedimError(Exception):
    """基础异常类型。"""


class InvalidConfigurationError(ImageRedimError):
    """配置不合法时抛出。"""


class ProcessingAborted(ImageRedimError):
    """任务被用户中断时抛出。"""


class PreconditionError(ImageRedimError):
    """源目录或目标目录不存在。"""


class DiscoveryError(ImageRedimError):
    """扫描源目录失败。"""


class FatalError(ImageRedimError):
    """单文件边界之外的意外错误，终止整个批处理。"""


class PerFileError(ImageRedimError):
    """单个文件处理失败，可记录后继续处理其他文件。"""

    stage = "file"

    def __init__(self, message: str, path: Optional[Path] = None, stage: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path
        if stage:
            self.stage = stage


class InvalidPathError(PerFileError):
    """输入路径不在源根目录之下。"""

    stage = "map"


class CopyError(PerFileError):
    """复制原图到目标位置失败。"""

    stage = "copy"


class CodecError(PerFileError):
    """图片解码、缩放或编码失败。"""

    stage = "transcode"


class PromoteError(PerFileError):
    """临时文件替换目标文件失败。"""

    stage = "promote"
