"""核心数据模型

Package / PackageEntry 及其类型表集中定义在此处。
每种文件类型静态声明自己携带的附加字段（架构、TLS 类别、路径、链接目标），
解析器和后续各阶段都只查询类型表，不做零散的标志位判断。
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum, Flag, auto
from pathlib import Path
from typing import Callable

logger = logging.getLogger(__name__)


# =========================================================================
# 文件类型表
# =========================================================================


class EntryField(Flag):
    """文件类型携带的附加字段"""

    NONE = 0
    ARCH = auto()
    CLASS = auto()
    PATH = auto()
    TARGET = auto()


class EntryRole(Flag):
    """文件类型在流水线中的角色"""

    NONE = 0
    KERNEL = auto()     # 与内核模块相关，仅安装内核模块时保留
    OPENGL = auto()     # OpenGL 相关，--no-opengl-files 时剔除
    SYMLINK = auto()    # 安装为符号链接


_ARCH = EntryField.ARCH
_CLASS = EntryField.CLASS
_PATH = EntryField.PATH
_TARGET = EntryField.TARGET
_NONE = EntryField.NONE

_KERNEL = EntryRole.KERNEL
_GL = EntryRole.OPENGL
_LINK = EntryRole.SYMLINK


class FileType(str, Enum):
    """清单条目的文件类型

    枚举值即清单中的类型关键字；KERNEL_MODULE 没有关键字，
    只由内核模块获取阶段追加。
    """

    def __new__(
        cls, keyword: str,
        fields: EntryField = EntryField.NONE,
        roles: EntryRole = EntryRole.NONE,
    ) -> FileType:
        obj = str.__new__(cls, keyword)
        obj._value_ = keyword
        obj.fields = fields
        obj.roles = roles
        return obj

    KERNEL_MODULE_SRC = ("KERNEL_MODULE_SRC", _NONE, _KERNEL)
    KERNEL_MODULE_CMD = ("KERNEL_MODULE_CMD", _NONE, _KERNEL)
    KERNEL_MODULE = ("KERNEL_MODULE", _NONE, _KERNEL)
    OPENGL_HEADER = ("OPENGL_HEADER", _NONE, _GL)
    CUDA_ICD = ("CUDA_ICD", _NONE)
    OPENGL_LIB = ("OPENGL_LIB", _ARCH, _GL)
    CUDA_LIB = ("CUDA_LIB", _ARCH | _PATH)
    LIBGL_LA = ("LIBGL_LA", _ARCH, _GL)
    XLIB_STATIC_LIB = ("XLIB_STATIC_LIB", _NONE)
    XLIB_SHARED_LIB = ("XLIB_SHARED_LIB", _NONE)
    TLS_LIB = ("TLS_LIB", _ARCH | _CLASS | _PATH, _GL)
    UTILITY_LIB = ("UTILITY_LIB", _ARCH)
    DOCUMENTATION = ("DOCUMENTATION", _PATH)
    MANPAGE = ("MANPAGE", _NONE)
    EXPLICIT_PATH = ("EXPLICIT_PATH", _PATH)
    OPENGL_SYMLINK = ("OPENGL_SYMLINK", _ARCH | _TARGET, _GL | _LINK)
    CUDA_SYMLINK = ("CUDA_SYMLINK", _ARCH | _PATH | _TARGET, _LINK)
    XLIB_SYMLINK = ("XLIB_SYMLINK", _TARGET, _LINK)
    TLS_SYMLINK = ("TLS_SYMLINK", _ARCH | _CLASS | _PATH | _TARGET, _GL | _LINK)
    UTILITY_LIB_SYMLINK = ("UTILITY_LIB_SYMLINK", _ARCH | _TARGET, _LINK)
    INSTALLER_BINARY = ("INSTALLER_BINARY", _NONE)
    UTILITY_BINARY = ("UTILITY_BINARY", _NONE)
    UTILITY_BIN_SYMLINK = ("UTILITY_BIN_SYMLINK", _TARGET, _LINK)
    DOT_DESKTOP = ("DOT_DESKTOP", _NONE)
    XMODULE_SHARED_LIB = ("XMODULE_SHARED_LIB", _PATH)
    XMODULE_SYMLINK = ("XMODULE_SYMLINK", _PATH | _TARGET, _LINK)
    GLX_MODULE_SHARED_LIB = ("GLX_MODULE_SHARED_LIB", _PATH, _GL)
    GLX_MODULE_SYMLINK = ("GLX_MODULE_SYMLINK", _PATH | _TARGET, _GL | _LINK)
    XMODULE_NEWSYM = ("XMODULE_NEWSYM", _PATH | _TARGET, _LINK)
    VDPAU_LIB = ("VDPAU_LIB", _ARCH | _PATH)
    VDPAU_SYMLINK = ("VDPAU_SYMLINK", _ARCH | _PATH | _TARGET, _LINK)
    NVCUVID_LIB = ("NVCUVID_LIB", _ARCH)
    NVCUVID_SYMLINK = ("NVCUVID_LIB_SYMLINK", _ARCH | _TARGET, _LINK)

    @property
    def has_arch(self) -> bool:
        return bool(self.fields & EntryField.ARCH)

    @property
    def has_class(self) -> bool:
        return bool(self.fields & EntryField.CLASS)

    @property
    def has_path(self) -> bool:
        return bool(self.fields & EntryField.PATH)

    @property
    def has_target(self) -> bool:
        return bool(self.fields & EntryField.TARGET)

    @property
    def is_kernel_module(self) -> bool:
        return bool(self.roles & EntryRole.KERNEL)

    @property
    def is_opengl(self) -> bool:
        return bool(self.roles & EntryRole.OPENGL)

    @property
    def is_symlink(self) -> bool:
        return bool(self.roles & EntryRole.SYMLINK)


# 清单关键字 → 文件类型（KERNEL_MODULE 不出现在清单中）
MANIFEST_KEYWORDS: dict[str, FileType] = {
    t.value: t for t in FileType if t is not FileType.KERNEL_MODULE
}


class Arch(str, Enum):
    """库文件的目标架构"""

    COMPAT32 = "COMPAT32"
    NATIVE = "NATIVE"


class TlsClass(str, Enum):
    """线程局部存储实现类别"""

    CLASSIC = "CLASSIC"
    NEW = "NEW"


# =========================================================================
# 文件身份
# =========================================================================


@dataclass(frozen=True)
class FileIdentity:
    """文件系统身份（设备号 + inode）

    未知身份用 None 表示，而不是复用某个哨兵值，
    避免与真实的 (0, 0) 混淆而误判为同一文件。
    """

    device: int
    inode: int

    @classmethod
    def probe(cls, path: str | Path) -> FileIdentity | None:
        """stat 指定路径，失败返回 None"""
        try:
            st = os.stat(path)
        except OSError:
            return None
        return cls(device=st.st_dev, inode=st.st_ino)

    def matches(self, st: os.stat_result) -> bool:
        return self.device == st.st_dev and self.inode == st.st_ino


# =========================================================================
# 包条目
# =========================================================================


@dataclass
class PackageEntry:
    """包中一个待安装的文件或符号链接"""

    file: str
    type: FileType
    mode: int = 0o644
    arch: Arch | None = None
    tls_class: TlsClass | None = None
    path: str | None = None
    target: str | None = None
    dst: str | None = None
    identity: FileIdentity | None = None

    def __post_init__(self) -> None:
        t = self.type
        checks = (
            ("arch", t.has_arch, self.arch),
            ("tls_class", t.has_class, self.tls_class),
            ("path", t.has_path, self.path),
            ("target", t.has_target, self.target),
        )
        for attr, required, value in checks:
            if required != (value is not None):
                verb = "需要" if required else "不允许"
                raise ValueError(f"{t.value} 类型{verb}字段 {attr}: {self.file}")

    @property
    def name(self) -> str:
        """file 中最后一个 '/' 之后的部分"""
        return self.file.rsplit("/", 1)[-1]

    def same_file(self, st: os.stat_result) -> bool:
        """判断 st 是否就是本条目的源文件（身份未知时一律返回 False）"""
        return self.identity is not None and self.identity.matches(st)


# =========================================================================
# 包
# =========================================================================


@dataclass
class Package:
    """一个解析后的可安装单元

    所有字段都有默认值，部分构造（例如解析到一半失败）的包同样合法，
    release() 不对任何字段做非空假设。
    """

    description: str | None = None
    version: str | None = None
    kernel_module_filename: str | None = None
    kernel_interface_filename: str | None = None
    kernel_module_name: str | None = None
    bad_modules: list[str] = field(default_factory=list)
    bad_module_filenames: list[str] = field(default_factory=list)
    kernel_module_build_directory: str | None = None
    precompiled_kernel_interface_directory: str | None = None
    entries: list[PackageEntry] = field(default_factory=list)
    root: str = "."

    @property
    def num_entries(self) -> int:
        return len(self.entries)

    def resolve(self, file: str) -> Path:
        """把相对于包根目录的路径转换为实际路径"""
        return Path(self.root) / file

    def add_entry(
        self,
        file: str,
        type: FileType,  # noqa: A002
        mode: int,
        *,
        arch: Arch | None = None,
        tls_class: TlsClass | None = None,
        path: str | None = None,
        target: str | None = None,
        dst: str | None = None,
    ) -> PackageEntry:
        """追加一个条目，并记录其源文件的文件系统身份

        条目在追加前完成构造和校验，校验失败时包保持原样。
        """
        entry = PackageEntry(
            file=file, type=type, mode=mode, arch=arch, tls_class=tls_class,
            path=path, target=target, dst=dst,
            identity=FileIdentity.probe(self.resolve(file)),
        )
        self.entries.append(entry)
        return entry

    def remove_entries(self, predicate: Callable[[PackageEntry], bool]) -> int:
        """批量移除满足条件的条目，保持剩余条目顺序，返回移除数量"""
        kept = [e for e in self.entries if not predicate(e)]
        removed = len(self.entries) - len(kept)
        self.entries = kept
        if removed:
            logger.debug("已从包中移除 %d 个条目", removed)
        return removed

    def release(self) -> None:
        """释放包持有的全部数据，可重复调用"""
        self.description = None
        self.version = None
        self.kernel_module_filename = None
        self.kernel_interface_filename = None
        self.kernel_module_name = None
        self.bad_modules = []
        self.bad_module_filenames = []
        self.kernel_module_build_directory = None
        self.precompiled_kernel_interface_directory = None
        self.entries = []
