"""图片缩放与编码（fit inside，不放大）。"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from PIL import Image, ImageSequence, UnidentifiedImageError

from image_redim.core.config import DEFAULT_JPEG_QUALITY, DEFAULT_MAX_IMAGE_PIXELS, ResizeBound
from image_redim.core.exceptions import CodecError

LOGGER = logging.getLogger(__name__)

_RESAMPLING = getattr(Image, "Resampling", Image)

SUPPORTED_FORMATS = {
    ".jpg": "JPEG",
    ".jpeg": "JPEG",
    ".png": "PNG",
    ".gif": "GIF",
    ".webp": "WEBP",
}

# 矢量图不做栅格化，原样复制。
PASSTHROUGH_SUFFIXES = {".svg"}

_ANIMATED_FORMATS = {"GIF", "WEBP"}


@dataclass(slots=True)
class TranscodeResult:
    """一次缩放的结果。``passthrough`` 表示输出与输入字节相同。"""

    original_size: Optional[tuple[int, int]]
    output_size: Optional[tuple[int, int]]
    passthrough: bool = False


def compute_fit_size(size: tuple[int, int], bound: ResizeBound) -> tuple[int, int]:
    """计算等比缩放后的尺寸，宽高都不超过上限，且不放大。"""

    width, height = size
    if width <= 0 or height <= 0:
        raise CodecError(f"图片尺寸无效: {width}x{height}")

    scale = min(1.0, bound.max_width / width, bound.max_height / height)
    if scale >= 1.0:
        return width, height

    new_width = max(1, min(bound.max_width, round(width * scale)))
    new_height = max(1, min(bound.max_height, round(height * scale)))
    return new_width, new_height


def resize_image(
    input_path: Path,
    output_path: Path,
    bound: ResizeBound,
    *,
    quality: int = DEFAULT_JPEG_QUALITY,
    max_image_pixels: Optional[int] = DEFAULT_MAX_IMAGE_PIXELS,
) -> TranscodeResult:
    """读取 ``input_path``，缩放后写入 ``output_path``。

    输出格式由 ``output_path`` 的扩展名决定。SVG 与无需缩放的图片直接复制字节。
    失败时删除可能残留的部分输出并抛出 ``CodecError``。
    """

    suffix = output_path.suffix.lower()
    if suffix in PASSTHROUGH_SUFFIXES:
        _copy_bytes(input_path, output_path)
        LOGGER.debug("矢量图原样复制: %s", input_path)
        return TranscodeResult(original_size=None, output_size=None, passthrough=True)

    image_format = SUPPORTED_FORMATS.get(suffix)
    if not image_format:
        raise CodecError(f"不支持的输出格式: {suffix}", path=input_path)

    try:
        with Image.open(input_path) as img:
            original_size = img.size
            width, height = original_size
            if max_image_pixels and width * height > max_image_pixels:
                raise CodecError(
                    f"图片像素过多 ({width}x{height})，超过上限 {max_image_pixels}", path=input_path
                )

            target_size = compute_fit_size(original_size, bound)
            if target_size == original_size:
                _copy_bytes(input_path, output_path)
                return TranscodeResult(original_size, original_size, passthrough=True)

            if image_format in _ANIMATED_FORMATS and getattr(img, "is_animated", False):
                _save_animated(img, target_size, output_path, image_format, quality)
            else:
                img.load()
                working = _normalize_mode(img)
                resized = working.resize(target_size, _RESAMPLING.LANCZOS)
                _save_still(resized, output_path, image_format, quality, img.info)
                resized.close()
                if working is not img:
                    working.close()
    except CodecError:
        _discard(output_path)
        raise
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        _discard(output_path)
        raise CodecError(f"无法处理图像: {input_path} ({exc})", path=input_path) from exc
    except Exception as exc:  # noqa: BLE001
        # 损坏的文件可能让解码器抛出 IndexError、EOFError 等任意异常。
        _discard(output_path)
        raise CodecError(
            f"解码器异常: {input_path} ({type(exc).__name__}: {exc})", path=input_path
        ) from exc

    LOGGER.debug("缩放完成: %s %sx%s -> %sx%s", input_path, *original_size, *target_size)
    return TranscodeResult(original_size, target_size, passthrough=False)


def _normalize_mode(img: Image.Image) -> Image.Image:
    """调色板与二值图先转为连续色彩模式，保证缩放插值效果。"""

    if img.mode == "P":
        return img.convert("RGBA" if "transparency" in img.info else "RGB")
    if img.mode == "1":
        return img.convert("L")
    return img


def _prepare_for_format(image: Image.Image, image_format: str) -> Image.Image:
    if image_format == "JPEG" and image.mode not in {"RGB", "L", "CMYK"}:
        return _convert_to_rgb(image)
    if image_format == "WEBP" and image.mode not in {"RGB", "RGBA"}:
        return image.convert("RGBA" if "A" in image.getbands() else "RGB")
    return image


def _convert_to_rgb(img: Image.Image) -> Image.Image:
    """将带透明通道的图像合成到白色背景上，其余模式直接转换。"""

    if img.mode in {"RGBA", "LA"}:
        background = Image.new("RGB", img.size, (255, 255, 255))
        background.paste(img.convert("RGBA"), mask=img.convert("RGBA").split()[-1])
        return background
    return img.convert("RGB")


def _save_params(image_format: str, quality: int, info: dict[str, Any]) -> dict[str, Any]:
    params: dict[str, Any] = {}
    if image_format == "JPEG":
        params.update(quality=quality, optimize=True)
        if info.get("exif"):
            params["exif"] = info["exif"]
    elif image_format == "PNG":
        params["optimize"] = True
    elif image_format == "WEBP":
        params["quality"] = quality
        if info.get("exif"):
            params["exif"] = info["exif"]

    if image_format != "GIF" and info.get("icc_profile"):
        params["icc_profile"] = info["icc_profile"]
    return params


def _save_still(
    image: Image.Image, destination: Path, image_format: str, quality: int, info: dict[str, Any]
) -> None:
    image_to_save = _prepare_for_format(image, image_format)
    image_to_save.save(destination, format=image_format, **_save_params(image_format, quality, info))


def _save_animated(
    img: Image.Image, target_size: tuple[int, int], destination: Path, image_format: str, quality: int
) -> None:
    """逐帧缩放动图，保留帧时长与循环次数。"""

    frames: list[Image.Image] = []
    durations: list[int] = []
    default_duration = img.info.get("duration", 100)
    for frame in ImageSequence.Iterator(img):
        durations.append(frame.info.get("duration", default_duration))
        frames.append(frame.convert("RGBA").resize(target_size, _RESAMPLING.LANCZOS))

    params: dict[str, Any] = {
        "save_all": True,
        "append_images": frames[1:],
        "duration": durations,
        "loop": img.info.get("loop", 0),
    }
    if image_format == "GIF":
        params["disposal"] = 2
    else:
        params["quality"] = quality

    try:
        frames[0].save(destination, format=image_format, **params)
    finally:
        for frame in frames:
            frame.close()


def _copy_bytes(source: Path, destination: Path) -> None:
    try:
        shutil.copyfile(source, destination)
    except OSError as exc:
        _discard(destination)
        raise CodecError(f"复制图像失败: {source} -> {destination} ({exc})", path=source) from exc


def _discard(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        LOGGER.warning("无法删除残留输出 %s: %s", path, exc)
