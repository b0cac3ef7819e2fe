"""包文件集变换

编排器在构建操作列表之前依次调用这些函数，对条目集做裁剪、
改写和补充，最后为每个条目计算安装目标路径。
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

from drvinst import __version__
from drvinst.core.exceptions import InstallStepError
from drvinst.core.models import Arch, FileType, Package, PackageEntry, TlsClass

if TYPE_CHECKING:
    from drvinst.core.config import InstallOptions
    from drvinst.core.protocols import EnvironmentProbe, UserInterface

logger = logging.getLogger(__name__)

DOC_SUBDIR = "share/doc/NVIDIA_GLX-1.0"


# =========================================================================
# 裁剪
# =========================================================================


def remove_non_kernel_module_files(package: Package) -> int:
    """只保留与内核模块相关的条目"""
    return package.remove_entries(lambda e: not e.type.is_kernel_module)


def remove_opengl_files(package: Package) -> int:
    """移除所有 OpenGL 相关条目"""
    return package.remove_entries(lambda e: e.type.is_opengl)


def should_install_opengl_headers(
    options: InstallOptions, ui: UserInterface, package: Package,
) -> bool:
    """专家模式下询问是否安装 OpenGL 头文件，不安装时移除对应条目"""
    install = options.opengl_headers
    if options.expert:
        install = ui.yes_no(install, "是否安装 OpenGL 头文件？")
    if not install:
        package.remove_entries(lambda e: e.type is FileType.OPENGL_HEADER)
    return install


def _resolve_tls(choice: str, probe: EnvironmentProbe) -> TlsClass:
    if choice == "new":
        return TlsClass.NEW
    if choice == "classic":
        return TlsClass.CLASSIC
    return TlsClass.NEW if probe.supports_new_tls() else TlsClass.CLASSIC


def select_tls_class(
    options: InstallOptions, probe: EnvironmentProbe, package: Package,
) -> dict[Arch, TlsClass]:
    """按架构选择 TLS 实现类别，移除未选中类别的条目"""
    selected = {
        Arch.NATIVE: _resolve_tls(options.tls, probe),
        Arch.COMPAT32: _resolve_tls(options.tls_compat32, probe),
    }

    def unselected(e: PackageEntry) -> bool:
        return (
            e.tls_class is not None
            and e.arch is not None
            and e.tls_class is not selected[e.arch]
        )

    package.remove_entries(unselected)
    logger.info(
        "TLS 类别: native=%s compat32=%s",
        selected[Arch.NATIVE].value, selected[Arch.COMPAT32].value,
    )
    return selected


def should_install_compat32_files(
    options: InstallOptions, ui: UserInterface,
    probe: EnvironmentProbe, package: Package,
) -> bool:
    """在 x86_64 主机上询问是否安装 32 位兼容库"""
    if not probe.is_x86_64():
        return False
    if not any(e.arch is Arch.COMPAT32 for e in package.entries):
        return False
    install = ui.yes_no(
        options.compat32_libs,
        "是否安装 32 位兼容 OpenGL 库？",
    )
    if not install:
        removed = package.remove_entries(lambda e: e.arch is Arch.COMPAT32)
        ui.log(f"跳过 {removed} 个 32 位兼容文件")
    return install


# =========================================================================
# 模板文件
# =========================================================================


def _staging_dir(options: InstallOptions) -> Path:
    try:
        if options.staging_dir:
            path = Path(options.staging_dir)
            path.mkdir(parents=True, exist_ok=True)
            return path
        return Path(tempfile.mkdtemp(prefix="drvinst-"))
    except OSError as e:
        where = options.staging_dir or tempfile.gettempdir()
        raise InstallStepError(f"无法创建临时目录 {where}: {e}") from e


def _render_template(
    package: Package, entry: PackageEntry, staging: Path,
    replacements: dict[str, str],
) -> str:
    src = package.resolve(entry.file)
    try:
        text = src.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise InstallStepError(f"无法读取模板文件 {src}: {e}") from e
    for token, value in replacements.items():
        text = text.replace(token, value)
    out = staging / entry.name
    try:
        out.write_text(text, encoding="utf-8")
    except OSError as e:
        raise InstallStepError(f"无法写入生成文件 {out}: {e}") from e
    return str(out)


def _replace_templates(
    options: InstallOptions, package: Package, file_type: FileType,
    replacements_for: dict[Arch | None, dict[str, str]],
) -> int:
    templates = [e for e in package.entries if e.type is file_type]
    if not templates:
        return 0
    staging = _staging_dir(options)
    rendered = []
    for entry in templates:
        sub = staging / (entry.arch.value.lower() if entry.arch else "common")
        try:
            sub.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise InstallStepError(f"无法创建临时目录 {sub}: {e}") from e
        rendered.append(
            (entry, _render_template(package, entry, sub, replacements_for[entry.arch])))
    package.remove_entries(lambda e: e.type is file_type)
    for entry, new_file in rendered:
        package.add_entry(
            new_file, entry.type, entry.mode,
            arch=entry.arch, tls_class=entry.tls_class,
            path=entry.path, target=entry.target,
        )
    return len(rendered)


def process_libgl_la_files(options: InstallOptions, package: Package) -> int:
    """把 libGL.la 模板中的库路径替换为实际安装路径"""
    def libdir(arch: Arch) -> str:
        return _lib_dir(options, options.opengl_prefix, options.opengl_libdir, arch)

    generated = f"Generated by drvinst {__version__}"
    return _replace_templates(options, package, FileType.LIBGL_LA, {
        arch: {"__LIBGL_PATH__": libdir(arch), "__GENERATED_BY__": generated}
        for arch in Arch
    })


def process_dot_desktop_files(options: InstallOptions, package: Package) -> int:
    """把 .desktop 模板中的工具路径替换为实际安装路径"""
    replacements = {
        "__UTILS_PATH__": str(Path(options.utility_prefix) / "bin"),
        "__PIXMAP_PATH__": str(Path(options.utility_prefix) / "share" / "pixmaps"),
    }
    return _replace_templates(options, package, FileType.DOT_DESKTOP, {None: replacements})


# =========================================================================
# 安装前缀与目标路径
# =========================================================================


def get_prefixes(options: InstallOptions, ui: UserInterface) -> InstallOptions:
    """专家模式下询问各安装前缀，返回更新后的选项"""
    changes: dict[str, str] = {}
    questions = (
        ("x_prefix", "X 安装前缀"),
        ("opengl_prefix", "OpenGL 安装前缀"),
        ("utility_prefix", "工具程序安装前缀"),
    )
    for attr, label in questions:
        value = getattr(options, attr)
        if options.expert:
            value = ui.get_input(value, f"{label}（仅在确有需要时修改）").strip()
        if not value or not os.path.isabs(value):
            raise InstallStepError(f"{label}必须是绝对路径: '{value}'")
        changes[attr] = value.rstrip("/") or "/"
    return options.evolve(**changes)


def _lib_dir(options: InstallOptions, prefix: str, libdir: str, arch: Arch | None) -> str:
    if arch is Arch.COMPAT32:
        libdir = options.compat32_libdir
    return str(Path(prefix) / libdir)


def _destination_dir(options: InstallOptions, package: Package, entry: PackageEntry) -> str:
    t = entry.type
    arch = entry.arch
    if t in (FileType.KERNEL_MODULE_SRC, FileType.KERNEL_MODULE_CMD):
        return str(Path(options.kernel_module_src_prefix) / f"nvidia-{package.version}")
    if t is FileType.OPENGL_HEADER:
        return str(Path(options.opengl_prefix) / "include" / "GL")
    if t in (
        FileType.OPENGL_LIB, FileType.OPENGL_SYMLINK, FileType.LIBGL_LA,
        FileType.TLS_LIB, FileType.TLS_SYMLINK,
        FileType.CUDA_LIB, FileType.CUDA_SYMLINK,
        FileType.VDPAU_LIB, FileType.VDPAU_SYMLINK,
        FileType.NVCUVID_LIB, FileType.NVCUVID_SYMLINK,
    ):
        return _lib_dir(options, options.opengl_prefix, options.opengl_libdir, arch)
    if t in (FileType.UTILITY_LIB, FileType.UTILITY_LIB_SYMLINK):
        return _lib_dir(options, options.utility_prefix, options.utility_libdir, arch)
    if t in (FileType.XLIB_STATIC_LIB, FileType.XLIB_SHARED_LIB, FileType.XLIB_SYMLINK):
        return str(Path(options.x_prefix) / options.x_libdir)
    if t in (
        FileType.XMODULE_SHARED_LIB, FileType.XMODULE_SYMLINK, FileType.XMODULE_NEWSYM,
        FileType.GLX_MODULE_SHARED_LIB, FileType.GLX_MODULE_SYMLINK,
    ):
        return options.x_module_path
    if t is FileType.DOCUMENTATION:
        return str(Path(options.documentation_prefix) / DOC_SUBDIR)
    if t is FileType.MANPAGE:
        section = _man_section(entry.name)
        return str(Path(options.documentation_prefix) / "share" / "man" / f"man{section}")
    if t is FileType.EXPLICIT_PATH:
        return "/"
    if t in (FileType.INSTALLER_BINARY, FileType.UTILITY_BINARY, FileType.UTILITY_BIN_SYMLINK):
        return str(Path(options.utility_prefix) / "bin")
    if t is FileType.DOT_DESKTOP:
        return str(Path(options.utility_prefix) / "share" / "applications")
    if t is FileType.CUDA_ICD:
        return options.opencl_icd_dir
    raise InstallStepError(f"无法确定 {t.value} 类型文件的安装位置: {entry.file}")


def _man_section(name: str) -> str:
    # nvidia-settings.1.gz -> 1
    parts = name.split(".")
    if parts[-1] == "gz":
        parts = parts[:-1]
    section = parts[-1] if len(parts) > 1 else ""
    return section if section[:1].isdigit() else "1"


def set_destinations(options: InstallOptions, package: Package) -> None:
    """为每个条目计算最终的绝对安装路径

    内核模块条目在获取阶段已确定目标路径，保持不变。
    """
    if options.no_kernel_module_source:
        package.remove_entries(
            lambda e: e.type in (FileType.KERNEL_MODULE_SRC, FileType.KERNEL_MODULE_CMD))

    for entry in package.entries:
        if entry.type is FileType.KERNEL_MODULE and entry.dst:
            continue
        base = _destination_dir(options, package, entry)
        if entry.path:
            base = os.path.join(base, entry.path)
        entry.dst = os.path.normpath(os.path.join(base, entry.name))
        logger.debug("目标路径: %s -> %s", entry.file, entry.dst)


def check_installed_files(package: Package) -> list[str]:
    """安装后检查，返回缺失的目标路径（仅供提示，不影响结果）"""
    missing = []
    for entry in package.entries:
        if not entry.dst:
            continue
        if entry.type.is_symlink:
            present = os.path.lexists(entry.dst)
        else:
            present = os.path.exists(entry.dst)
        if not present:
            missing.append(entry.dst)
    return missing
