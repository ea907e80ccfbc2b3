"""源路径到目标路径的映射，以及临时文件命名约定。

所有函数都是纯函数，不访问文件系统。
"""

from __future__ import annotations

import os
import secrets
from pathlib import Path, PurePath

from image_redim.core.exceptions import InvalidPathError


def map_destination(source_root: PurePath, dest_root: PurePath, input_path: PurePath) -> Path:
    """将 ``input_path`` 相对 ``source_root`` 的部分挂到 ``dest_root`` 之下。

    例如 ``/a/x/img.png``、源根 ``/a``、目标根 ``/b`` 映射为 ``/b/x/img.png``。
    输入不在源根之下（或就是源根本身）时抛出 ``InvalidPathError``。
    """

    try:
        relative = PurePath(input_path).relative_to(source_root)
    except ValueError as exc:
        raise InvalidPathError(
            f"文件不在源目录之下: {input_path} (源目录 {source_root})", path=Path(input_path)
        ) from exc

    if not relative.parts or ".." in relative.parts:
        raise InvalidPathError(f"无法映射的相对路径: {input_path}", path=Path(input_path))

    return Path(dest_root).joinpath(*relative.parts)


def new_staging_token() -> str:
    """生成进程内唯一的临时文件标记，避免并发运行之间相互覆盖。"""

    return f"{os.getpid()}-{secrets.token_hex(4)}"


def staging_path_for(dest_path: PurePath, prefix: str, token: str) -> Path:
    """返回与目标文件同目录的临时文件路径，保留原扩展名。"""

    dest = Path(dest_path)
    return dest.with_name(f"{prefix}{token}-{dest.name}")


def is_staging_name(name: str, prefix: str) -> bool:
    return name.startswith(prefix)
