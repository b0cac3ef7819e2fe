"""清单解析器

清单文件（.manifest）描述一个驱动包的元信息和文件列表。

格式:
  前 8 行为固定文件头，依次是:
    1. 描述
    2. 版本
    3. 内核接口文件名
    4. 内核模块名（rmmod / modprobe 使用的名字）
    5. 安装前需要卸载的模块名列表（空白分隔）
    6. 安装前需要删除的模块文件名列表（空白分隔）
    7. 内核模块构建目录
    8. 预编译内核接口目录
  其余各行是文件条目，遇到空行或文件结束为止。每个条目由空白分隔的
  字段组成: 文件名、八进制权限、类型关键字，然后按类型依次可能有
  架构（COMPAT32 / NATIVE）、TLS 类别（CLASSIC / NEW）、路径、链接目标。

"如何取得清单字节"（read_manifest_bytes）与"如何切分行"（ManifestLines）
与"如何解析行"（parse_manifest）相互解耦，解析器只面对抽象的行序列。
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable, Iterator

from drvinst.core.exceptions import (
    ManifestError,
    ManifestIOError,
    ManifestNotFoundError,
)
from drvinst.core.models import MANIFEST_KEYWORDS, Arch, Package, TlsClass

logger = logging.getLogger(__name__)

HEADER_LINES = 8

_MODE_RE = re.compile(r"^[0-7]+$")


# =========================================================================
# 行序列
# =========================================================================


class ManifestLines:
    """在不可变字节缓冲上惰性切分行，可重复迭代

    以 '\\n' 分隔；末尾没有换行的最后一行同样产出；
    以 '\\n' 结尾的缓冲不会多产出一个空行。
    '\\r' 原样保留，只含 '\\r' 的行不算空行。
    """

    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)

    def __iter__(self) -> Iterator[str]:
        data = self._data
        size = len(data)
        pos = 0
        while pos < size:
            end = data.find(b"\n", pos)
            if end == -1:
                end = size
            yield data[pos:end].decode("utf-8", errors="surrogateescape")
            pos = end + 1


def read_manifest_bytes(path: str | Path) -> bytes:
    """读取清单文件的原始字节"""
    p = Path(path)
    try:
        return p.read_bytes()
    except FileNotFoundError:
        raise ManifestNotFoundError(f"未找到可安装的包: {p}") from None
    except OSError as e:
        raise ManifestIOError(f"无法打开包的清单文件 {p}: {e.strerror or e}") from e


# =========================================================================
# 解析
# =========================================================================


def mode_string_to_mode(token: str) -> int | None:
    """把八进制权限字符串转换为数值，非法时返回 None"""
    if not _MODE_RE.match(token):
        return None
    # 与 chmod 一致，只保留权限位
    return int(token, 8) & 0o7777


def remove_trailing_slashes(path: str) -> str:
    stripped = path.rstrip("/")
    if not stripped and path:
        return "/"
    return stripped


def parse_manifest(lines: Iterable[str], root: str | Path = ".") -> Package:
    """解析行序列，构造 Package

    参数:
        lines: 清单的行序列
        root: 包根目录，条目中的相对路径以它为基准探测文件身份

    异常:
        ManifestError: 语法错误，携带出错行号
    """
    package = Package(root=str(root))
    numbered = enumerate(lines, start=1)

    def header(line_no: int, what: str) -> str:
        got = next(numbered, None)
        if got is None:
            raise ManifestError(line_no, f"缺少{what}")
        return got[1]

    package.description = header(1, "描述")
    package.version = header(2, "版本")
    package.kernel_interface_filename = header(3, "内核接口文件名")
    package.kernel_module_name = header(4, "内核模块名")
    package.bad_modules = header(5, "待卸载模块列表").split()
    package.bad_module_filenames = header(6, "待删除模块文件列表").split()
    package.kernel_module_build_directory = remove_trailing_slashes(
        header(7, "内核模块构建目录"))
    package.precompiled_kernel_interface_directory = remove_trailing_slashes(
        header(8, "预编译内核接口目录"))

    for line_no, text in numbered:
        if text == "":
            break
        _parse_entry(package, text, line_no)

    logger.info(
        "清单解析完成: %s (%s), %d 个条目",
        package.description, package.version, package.num_entries,
    )
    return package


def _parse_entry(package: Package, text: str, line_no: int) -> None:
    tokens = iter(text.split())

    def take(what: str) -> str:
        token = next(tokens, None)
        if token is None:
            raise ManifestError(line_no, f"缺少{what}")
        return token

    file = take("文件名")

    mode_token = take("权限")
    mode = mode_string_to_mode(mode_token)
    if mode is None:
        raise ManifestError(line_no, f"无效的权限 '{mode_token}'")

    keyword = take("文件类型")
    file_type = MANIFEST_KEYWORDS.get(keyword)
    if file_type is None:
        raise ManifestError(line_no, f"未知的文件类型 '{keyword}'")

    arch = tls_class = path = target = None

    if file_type.has_arch:
        token = take("架构")
        try:
            arch = Arch(token)
        except ValueError:
            raise ManifestError(line_no, f"未知的架构 '{token}'") from None

    if file_type.has_class:
        token = take("TLS 类别")
        try:
            tls_class = TlsClass(token)
        except ValueError:
            raise ManifestError(line_no, f"未知的 TLS 类别 '{token}'") from None

    if file_type.has_path:
        path = take("路径")

    if file_type.has_target:
        target = take("链接目标")

    package.add_entry(
        file, file_type, mode,
        arch=arch, tls_class=tls_class, path=path, target=target,
    )


def load_manifest(path: str | Path) -> Package:
    """读取并解析清单文件，包根目录为清单所在目录"""
    p = Path(path)
    data = read_manifest_bytes(p)
    return parse_manifest(ManifestLines(data), root=p.parent)
