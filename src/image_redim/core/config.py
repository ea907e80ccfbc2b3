"""批量缩放任务的配置模型。"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

from image_redim.core.exceptions import InvalidConfigurationError

DEFAULT_EXTENSIONS = ("jpg", "jpeg", "png", "gif", "webp", "svg")
DEFAULT_MAX_WIDTH = 1200
DEFAULT_MAX_HEIGHT = 1200
DEFAULT_STAGING_PREFIX = ".redim-"
DEFAULT_JPEG_QUALITY = 90
# 约 1.28 亿像素，超过即视为解压炸弹，避免单个文件长时间阻塞批处理。
DEFAULT_MAX_IMAGE_PIXELS = 128_000_000
TEST_MODE_LIMIT = 10

FIT_INSIDE = "inside"


@dataclass(frozen=True)
class ResizeBound:
    """单次运行固定的尺寸上限（fit inside）。"""

    max_width: int = DEFAULT_MAX_WIDTH
    max_height: int = DEFAULT_MAX_HEIGHT
    fit_mode: str = FIT_INSIDE

    def validate(self) -> None:
        """校验尺寸上限是否合法。"""

        if self.max_width <= 0 or self.max_height <= 0:
            raise InvalidConfigurationError(
                f"尺寸上限必须大于 0: {self.max_width}x{self.max_height}"
            )
        if self.fit_mode != FIT_INSIDE:
            raise InvalidConfigurationError(f"未知的适配模式: {self.fit_mode}")


@dataclass(slots=True)
class JobConfig:
    """单次批处理任务的配置集合。"""

    source_root: Path
    dest_root: Path
    bound: ResizeBound = field(default_factory=ResizeBound)
    limit: Optional[int] = None
    extensions: Sequence[str] = DEFAULT_EXTENSIONS
    case_sensitive: Optional[bool] = None  # None 表示跟随平台文件系统
    staging_prefix: str = DEFAULT_STAGING_PREFIX
    max_workers: int = 1
    max_image_pixels: Optional[int] = DEFAULT_MAX_IMAGE_PIXELS
    jpeg_quality: int = DEFAULT_JPEG_QUALITY
    log_file: Optional[Path] = None

    def validate(self) -> None:
        """检查与文件系统无关的配置项。"""

        self.bound.validate()
        if self.limit is not None and self.limit < 0:
            raise InvalidConfigurationError(f"处理数量上限不能为负数: {self.limit}")
        if self.max_workers < 1:
            raise InvalidConfigurationError(f"并发数量至少为 1: {self.max_workers}")
        if not 1 <= self.jpeg_quality <= 100:
            raise InvalidConfigurationError(f"JPEG 质量必须在 1~100 之间: {self.jpeg_quality}")
        if not self.staging_prefix or "/" in self.staging_prefix or "\\" in self.staging_prefix:
            raise InvalidConfigurationError(f"临时文件前缀不合法: {self.staging_prefix!r}")
        if not self.extensions:
            raise InvalidConfigurationError("扩展名白名单不能为空")
