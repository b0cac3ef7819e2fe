"""内核模块获取 — 预编译接口链接 / 源码编译 / 加载测试 / 登记

获取策略:
  1. 确定模块安装路径，检查 modprobe 路径配置
  2. 在包的预编译接口目录中查找与运行内核签名完全一致的接口
     - 找到: 与二进制核心链接，链接失败直接终止（不回退到源码编译）
     - 未找到: 检查开发工具 → 检查编译器版本（可由用户忽略）
       → 定位内核源码 → 编译
  3. 无论走哪条路径，都对模块做一次加载/卸载测试
  4. 把模块文件登记为包条目
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from drvinst.core.exceptions import (
    PreconditionFailedError,
    TestFailedError,
    ToolingIncompatibleError,
    ToolingMissingError,
)
from drvinst.core.models import FileType, Package, PackageEntry

if TYPE_CHECKING:
    from drvinst.core.config import InstallOptions
    from drvinst.core.protocols import KernelToolchain, UserInterface

logger = logging.getLogger(__name__)

MODULE_MODE = 0o644


class KernelModuleAcquisition:
    """为目标内核获取可用的内核模块"""

    def __init__(self, ui: UserInterface, toolchain: KernelToolchain) -> None:
        self.ui = ui
        self.toolchain = toolchain

    def install(self, options: InstallOptions, package: Package) -> PackageEntry:
        """获取、测试并登记内核模块，返回新增的包条目"""
        tc = self.toolchain
        install_path = tc.module_installation_path(options)
        if not install_path:
            raise PreconditionFailedError("无法确定内核模块的安装路径")
        if not tc.check_modprobe_path():
            raise PreconditionFailedError("modprobe 路径配置无效 (/proc/sys/kernel/modprobe)")

        signature = tc.kernel_signature()
        interface = tc.find_precompiled_interface(options, package, signature)
        if interface:
            self.ui.log(f"找到匹配运行内核的预编译内核接口: {interface}")
            module_file = tc.link_module(package, interface)
        else:
            self.ui.log("未找到匹配运行内核的预编译内核接口，将从源码编译")
            module_file = self._build_from_source(options, package)

        if not tc.test_module(package, module_file):
            raise TestFailedError(f"内核模块加载测试失败: {module_file}")
        self.ui.log(f"内核模块加载测试通过: {module_file}")

        return self.add_kernel_module_to_package(package, module_file, install_path)

    def _build_from_source(self, options: InstallOptions, package: Package) -> str:
        tc = self.toolchain
        missing = tc.missing_development_tools(options)
        if missing:
            raise ToolingMissingError(
                f"缺少编译内核模块所需的开发工具: {', '.join(missing)}")

        self.check_cc_version(options)

        source_path = tc.kernel_source_path(options)
        if not source_path:
            raise ToolingMissingError(
                "找不到运行内核的源码树/头文件，请安装对应的 kernel headers，"
                "或通过 --kernel-source-path 指定")
        self.ui.log(f"内核源码路径: {source_path}")

        return tc.build_module(package, source_path)

    def check_cc_version(self, options: InstallOptions) -> None:
        """编译器与目标内核不兼容时询问用户是否继续"""
        ok, detail = self.toolchain.cc_version_compatible(options)
        if ok:
            return
        if options.ignore_cc_mismatch:
            self.ui.warn(f"忽略编译器版本不匹配: {detail}")
            return
        if not self.ui.yes_no(
            False,
            f"编译器版本检查失败:\n\n{detail}\n\n"
            "编译器版本与构建内核时使用的版本不一致可能导致模块无法加载。"
            "是否忽略该检查继续安装？",
        ):
            raise ToolingIncompatibleError(f"编译器版本不兼容: {detail}")
        logger.warning("用户忽略了编译器版本不兼容: %s", detail)

    @staticmethod
    def add_kernel_module_to_package(
        package: Package, module_file: str, install_path: str,
    ) -> PackageEntry:
        """把内核模块登记为包条目，目标路径直接确定"""
        name = Path(module_file).name
        package.kernel_module_filename = name
        entry = package.add_entry(
            module_file, FileType.KERNEL_MODULE, MODULE_MODE,
            dst=str(Path(install_path) / name),
        )
        logger.info("内核模块已加入安装列表: %s -> %s", module_file, entry.dst)
        return entry

    # ---- 预编译接口打包 ----

    def build_interface_bundle(self, options: InstallOptions, package: Package) -> str:
        """为运行内核编译内核接口并打包为预编译接口，返回产物路径"""
        tc = self.toolchain
        source_path = tc.kernel_source_path(options)
        if not source_path:
            raise ToolingMissingError("找不到运行内核的源码树/头文件")
        interface = tc.build_interface(package, source_path)
        bundle = tc.pack_precompiled_interface(
            package, interface, tc.kernel_name(options), tc.kernel_signature(),
        )
        self.ui.log(f"预编译内核接口已打包: {bundle}")
        return bundle
