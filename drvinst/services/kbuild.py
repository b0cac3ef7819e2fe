"""内核工具链 — 基于 Kbuild 的编译、链接、测试与预编译接口打包

预编译接口目录布局:
  <precompiled_dir>/<kernel_name>/
      <kernel_interface_filename>   预编译的内核接口目标文件
      signature                     构建时运行内核的 /proc/version 内容

查找时要求 signature 与运行内核完全一致，不做模糊匹配。
"""

from __future__ import annotations

import logging
import os
import platform
import re
import shutil
from pathlib import Path
from typing import TYPE_CHECKING

from drvinst.core.exceptions import BuildFailedError, ExecutionError, LinkFailedError
from drvinst.utils.shell import CommandExecutor, get_executor, run_cmd

if TYPE_CHECKING:
    from drvinst.core.config import InstallOptions
    from drvinst.core.models import Package

logger = logging.getLogger(__name__)

SIGNATURE_FILE = "signature"
BINARY_CORE = "nv-kernel.o"

_GCC_VERSION_RE = re.compile(r"gcc(?: version|-\d+ \([^)]*\)| \([^)]*\))\s+(\d+)\.(\d+)")


class KbuildToolchain:
    """内核模块工具链的默认实现"""

    def __init__(
        self, proc_root: str = "/proc", executor: CommandExecutor | None = None,
    ) -> None:
        self.proc_root = Path(proc_root)
        self.executor = executor or get_executor()

    # ---- 运行内核 ----

    def kernel_name(self, options: InstallOptions) -> str:
        return options.kernel_name or platform.release()

    def kernel_signature(self) -> str:
        try:
            return (self.proc_root / "version").read_text(encoding="utf-8").strip()
        except OSError:
            return platform.version()

    def module_installation_path(self, options: InstallOptions) -> str:
        if options.kernel_module_installation_path:
            return options.kernel_module_installation_path
        return f"/lib/modules/{self.kernel_name(options)}/kernel/drivers/video"

    def check_modprobe_path(self) -> bool:
        """/proc/sys/kernel/modprobe 指向的程序必须存在且可执行"""
        try:
            path = (self.proc_root / "sys/kernel/modprobe").read_text(encoding="utf-8").strip()
        except OSError:
            logger.debug("无法读取 modprobe 路径配置，跳过检查")
            return True
        if not path:
            return True
        if not os.access(path, os.X_OK):
            logger.error("modprobe 路径 '%s' 不存在或不可执行", path)
            return False
        return True

    # ---- 预编译接口 ----

    def find_precompiled_interface(
        self, options: InstallOptions, package: Package, signature: str,
    ) -> str | None:
        if not package.precompiled_kernel_interface_directory:
            return None
        base = package.resolve(package.precompiled_kernel_interface_directory)
        if not base.is_dir():
            return None
        try:
            candidates = sorted(base.iterdir())
            for candidate in candidates:
                sig_file = candidate / SIGNATURE_FILE
                interface = candidate / (package.kernel_interface_filename or "")
                if not sig_file.is_file() or not interface.is_file():
                    continue
                # 签名不是合法 UTF-8 时不可能匹配
                if sig_file.read_text(encoding="utf-8", errors="replace").strip() == signature:
                    return str(interface)
        except OSError as e:
            raise LinkFailedError(f"无法读取预编译内核接口目录 {base}: {e}") from e
        return None

    def _build_dir(self, package: Package) -> Path:
        return package.resolve(package.kernel_module_build_directory or ".")

    def _module_file(self, package: Package) -> Path:
        return self._build_dir(package) / f"{package.kernel_module_name}.ko"

    def link_module(self, package: Package, interface: str) -> str:
        build_dir = self._build_dir(package)
        module = self._module_file(package)
        core = build_dir / BINARY_CORE
        if not core.is_file():
            raise LinkFailedError(f"找不到内核模块的二进制核心: {core}")
        try:
            run_cmd(
                ["ld", "-r", "-o", str(module), interface, str(core)],
                cwd=str(build_dir), label="link", executor=self.executor,
            )
        except ExecutionError as e:
            raise LinkFailedError(f"链接内核模块失败: {e}") from e
        return str(module)

    # ---- 源码编译 ----

    def missing_development_tools(self, options: InstallOptions) -> list[str]:
        return [t for t in (options.cc, "make", "ld") if shutil.which(t) is None]

    def cc_version_compatible(self, options: InstallOptions) -> tuple[bool, str]:
        """比较编译器与构建运行内核时所用 gcc 的主版本号"""
        r = self.executor.execute([options.cc, "-dumpversion"])
        if not r.success:
            return True, ""
        cc_major = r.stdout.strip().split(".")[0]
        m = _GCC_VERSION_RE.search(self.kernel_signature())
        if not m:
            return True, ""
        kernel_major = m.group(1)
        if cc_major == kernel_major:
            return True, ""
        return False, (
            f"编译器 {options.cc} 版本 {r.stdout.strip()} 与构建内核所用的 "
            f"gcc {m.group(1)}.{m.group(2)} 不一致"
        )

    def kernel_source_path(self, options: InstallOptions) -> str | None:
        path = options.kernel_source_path or f"/lib/modules/{self.kernel_name(options)}/build"
        if (Path(path) / "Makefile").is_file():
            return path
        logger.debug("内核源码路径无效: %s", path)
        return None

    def _make(self, package: Package, source_path: str, target: str) -> None:
        try:
            run_cmd(
                ["make", "-C", str(self._build_dir(package)), f"SYSSRC={source_path}", target],
                cwd=str(self._build_dir(package)), label=f"make {target}",
                executor=self.executor,
            )
        except ExecutionError as e:
            raise BuildFailedError(f"编译 {target} 失败: {e}") from e

    def build_module(self, package: Package, source_path: str) -> str:
        self._make(package, source_path, "module")
        module = self._module_file(package)
        if not module.is_file():
            raise BuildFailedError(f"编译完成但未生成内核模块: {module}")
        return str(module)

    def test_module(self, package: Package, module_file: str) -> bool:
        r = self.executor.execute(["insmod", module_file])
        if not r.success:
            logger.error("insmod %s 失败: %s", module_file, r.output)
            return False
        r = self.executor.execute(["rmmod", package.kernel_module_name or ""])
        if not r.success:
            logger.error("rmmod %s 失败: %s", package.kernel_module_name, r.output)
            return False
        return True

    # ---- 预编译接口打包 ----

    def build_interface(self, package: Package, source_path: str) -> str:
        target = package.kernel_interface_filename or ""
        self._make(package, source_path, target)
        interface = self._build_dir(package) / target
        if not interface.is_file():
            raise BuildFailedError(f"编译完成但未生成内核接口: {interface}")
        return str(interface)

    def pack_precompiled_interface(
        self, package: Package, interface: str, kernel_name: str, signature: str,
    ) -> str:
        base = package.resolve(package.precompiled_kernel_interface_directory or "precompiled")
        dest = base / kernel_name
        try:
            dest.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(interface, dest / Path(interface).name)
            (dest / SIGNATURE_FILE).write_text(signature + "\n", encoding="utf-8")
        except OSError as e:
            raise BuildFailedError(f"打包预编译内核接口失败: {e}") from e
        return str(dest)
