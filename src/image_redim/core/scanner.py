"""文件扫描与筛选逻辑。"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, Iterator, Optional, Sequence

from image_redim.core.config import DEFAULT_EXTENSIONS, DEFAULT_STAGING_PREFIX
from image_redim.core.exceptions import DiscoveryError
from image_redim.core.models import ImageFile
from image_redim.core.paths import is_staging_name

LOGGER = logging.getLogger(__name__)


def platform_is_case_insensitive() -> bool:
    """根据当前平台判断文件名是否大小写不敏感。"""

    return os.path.normcase("A") == "a"


def _normalize_extensions(extensions: Iterable[str], case_sensitive: bool) -> set[str]:
    normalized = set()
    for ext in extensions:
        value = ext if ext.startswith(".") else f".{ext}"
        normalized.add(value if case_sensitive else value.lower())
    return normalized


def _raise_walk_error(exc: OSError) -> None:
    raise DiscoveryError(f"无法读取目录: {exc.filename} ({exc.strerror})") from exc


def _iter_candidate_files(root: Path, excluded: set[Path]) -> Iterator[Path]:
    """按名称排序深度优先遍历，保证同一快照下顺序稳定。"""

    for dirpath, dirnames, filenames in os.walk(root, onerror=_raise_walk_error):
        current = Path(dirpath)
        dirnames[:] = sorted(d for d in dirnames if current / d not in excluded)
        for name in sorted(filenames):
            yield current / name


def discover_images(
    source_root: Path,
    *,
    extensions: Sequence[str] = DEFAULT_EXTENSIONS,
    case_sensitive: Optional[bool] = None,
    exclude: Iterable[Path] = (),
    staging_prefix: str = DEFAULT_STAGING_PREFIX,
) -> list[ImageFile]:
    """递归扫描源目录，返回扩展名在白名单内的图片列表。

    结果一次性生成，运行期间不会重新扫描。``case_sensitive`` 为 None 时跟随平台。
    """

    root = Path(source_root).resolve()
    if not root.is_dir():
        raise DiscoveryError(f"源目录不存在或不是文件夹: {root}")
    if not os.access(root, os.R_OK | os.X_OK):
        raise DiscoveryError(f"源目录不可读: {root}")

    if case_sensitive is None:
        case_sensitive = not platform_is_case_insensitive()
    allowed = _normalize_extensions(extensions, case_sensitive)
    excluded = {Path(p).resolve() for p in exclude}

    collected: list[ImageFile] = []
    for candidate in _iter_candidate_files(root, excluded):
        name = candidate.name
        if is_staging_name(name, staging_prefix):
            LOGGER.debug("忽略临时文件: %s", candidate)
            continue

        suffix = candidate.suffix if case_sensitive else candidate.suffix.lower()
        if suffix not in allowed:
            continue

        if not candidate.is_file():
            continue

        collected.append(
            ImageFile(
                source_path=candidate,
                root=root,
                relative_path=candidate.relative_to(root),
            )
        )

    LOGGER.debug("扫描完成: %s -> %d 个文件", root, len(collected))
    return collected
