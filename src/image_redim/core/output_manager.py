"""目标文件写入：先复制原图，再经临时文件缩放，最后原子替换。"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Callable, Iterator, Optional

from image_redim.core.config import (
    DEFAULT_JPEG_QUALITY,
    DEFAULT_MAX_IMAGE_PIXELS,
    DEFAULT_STAGING_PREFIX,
    ResizeBound,
)
from image_redim.core.exceptions import CodecError, CopyError, PerFileError, PromoteError
from image_redim.core.models import FailureRecord, FileOutcome, StagedFile
from image_redim.core.paths import is_staging_name, new_staging_token, staging_path_for
from image_redim.processing.transcoder import TranscodeResult, resize_image

LOGGER = logging.getLogger(__name__)

TranscodeFn = Callable[..., TranscodeResult]


class FileStager:
    """负责单个文件的两阶段写入。

    转码或替换失败时，目标位置保留未缩放的原图副本；复制失败时不留下任何文件。
    无论成功与否，临时文件都不会残留。
    """

    def __init__(
        self,
        bound: ResizeBound,
        *,
        staging_prefix: str = DEFAULT_STAGING_PREFIX,
        quality: int = DEFAULT_JPEG_QUALITY,
        max_image_pixels: Optional[int] = DEFAULT_MAX_IMAGE_PIXELS,
        token: Optional[str] = None,
        transcode: Optional[TranscodeFn] = None,
    ) -> None:
        self.bound = bound
        self.staging_prefix = staging_prefix
        self.quality = quality
        self.max_image_pixels = max_image_pixels
        self.token = token or new_staging_token()
        self._transcode = transcode or resize_image

    @property
    def uses_default_transcode(self) -> bool:
        """是否使用内置转码函数；自定义函数无法传递到工作进程。"""

        return self._transcode is resize_image

    def staging_path(self, dest_path: Path) -> Path:
        return staging_path_for(dest_path, self.staging_prefix, self.token)

    def stage(self, input_path: Path, dest_path: Path) -> FileOutcome:
        """处理单个文件，失败时返回 ``FailureRecord`` 而不是抛出异常。"""

        staging = self.staging_path(dest_path)
        try:
            self._prepare(dest_path)
            self._copy(input_path, dest_path)
            result = self._run_transcode(input_path, staging)
            self._promote(staging, dest_path)
        except PerFileError as exc:
            self._discard_staging(staging)
            LOGGER.error("处理失败 [%s] %s -> %s: %s", exc.stage, input_path, dest_path, exc)
            return FailureRecord(
                source_path=input_path,
                stage=exc.stage,
                error_type=type(exc).__name__,
                message=str(exc),
                output_path=dest_path,
            )

        return StagedFile(
            source_path=input_path,
            output_path=dest_path,
            original_size=result.original_size,
            output_size=result.output_size,
            passthrough=result.passthrough,
        )

    def _prepare(self, dest_path: Path) -> None:
        try:
            dest_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CopyError(
                f"无法创建目标目录: {dest_path.parent} ({exc})", path=dest_path, stage="prepare"
            ) from exc

    def _copy(self, input_path: Path, dest_path: Path) -> None:
        try:
            shutil.copyfile(input_path, dest_path)
        except OSError as exc:
            try:
                dest_path.unlink(missing_ok=True)
            except OSError as cleanup_exc:
                LOGGER.warning("无法删除不完整的副本 %s: %s", dest_path, cleanup_exc)
            raise CopyError(f"复制失败: {input_path} -> {dest_path} ({exc})", path=dest_path) from exc
        LOGGER.info("复制: %s -> %s", input_path, dest_path)

    def _run_transcode(self, input_path: Path, staging: Path) -> TranscodeResult:
        try:
            result = self._transcode(
                input_path,
                staging,
                self.bound,
                quality=self.quality,
                max_image_pixels=self.max_image_pixels,
            )
        except OSError as exc:
            raise CodecError(f"转码失败: {input_path} ({exc})", path=input_path) from exc

        if result.passthrough:
            LOGGER.info("无需缩放，保持原样: %s", input_path)
        else:
            LOGGER.info(
                "缩放: %s %sx%s -> %sx%s",
                input_path,
                *result.original_size,
                *result.output_size,
            )
        return result

    def _promote(self, staging: Path, dest_path: Path) -> None:
        if not staging.is_file():
            raise PromoteError(f"临时文件不存在: {staging}", path=dest_path)
        try:
            os.replace(staging, dest_path)
        except OSError as exc:
            raise PromoteError(f"替换目标文件失败: {staging} -> {dest_path} ({exc})", path=dest_path) from exc
        LOGGER.info("替换: %s -> %s", staging.name, dest_path)

    def _discard_staging(self, staging: Path) -> None:
        try:
            staging.unlink(missing_ok=True)
        except OSError as exc:
            LOGGER.warning("无法删除临时文件 %s: %s", staging, exc)


def iter_staging_residue(root: Path, prefix: str = DEFAULT_STAGING_PREFIX) -> Iterator[Path]:
    """列出目录树中残留的临时文件。"""

    if not root.is_dir():
        return
    for candidate in sorted(root.rglob(f"{prefix}*")):
        if candidate.is_file() and is_staging_name(candidate.name, prefix):
            yield candidate
