"""协作者协议定义

编排器只依赖这里的接口契约，具体实现（控制台界面、系统探测、
内核工具链、备份记录等）由服务容器装配，测试时可整体替换为 mock。

使用 typing.Protocol 而非 ABC，现有类无需继承即可满足协议。
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from drvinst.core.config import InstallOptions
    from drvinst.core.models import Package


# =========================================================================
# 用户交互
# =========================================================================

class UserInterface(Protocol):
    """用户交互层"""

    def set_title(self, title: str) -> None: ...

    def log(self, message: str) -> None:
        """只写入日志，不打扰用户"""
        ...

    def warn(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...

    def message(self, message: str) -> None: ...

    def yes_no(self, default: bool, question: str) -> bool:
        """阻塞等待用户回答是/否"""
        ...

    def get_input(self, default: str, question: str) -> str: ...

    def display_license(self, text: str) -> bool:
        """展示许可协议，返回用户是否接受"""
        ...

    def approve_command_list(self, commands: Any, description: str) -> bool: ...


# =========================================================================
# 环境探测
# =========================================================================

class EnvironmentProbe(Protocol):
    """运行环境探测，每项只在调用时检查一次"""

    def gpu_warnings(self) -> list[str]: ...

    def x_server_running(self) -> bool: ...

    def kernel_module_loaded(self, name: str) -> bool: ...

    def conflicting_driver_active(self) -> bool: ...

    def supports_new_tls(self) -> bool: ...

    def is_x86_64(self) -> bool: ...

    def sysvipc_ok(self) -> bool: ...

    def runtime_configuration_ok(self, package: Package) -> bool: ...

    def distro(self) -> str: ...


# =========================================================================
# 内核工具链
# =========================================================================

class KernelToolchain(Protocol):
    """内核模块编译/链接/测试的底层实现"""

    def kernel_name(self, options: InstallOptions) -> str: ...

    def kernel_signature(self) -> str:
        """运行中内核的版本/ABI 签名"""
        ...

    def module_installation_path(self, options: InstallOptions) -> str: ...

    def check_modprobe_path(self) -> bool: ...

    def find_precompiled_interface(
        self, options: InstallOptions, package: Package, signature: str,
    ) -> str | None: ...

    def link_module(self, package: Package, interface: str) -> str:
        """链接内核接口与二进制核心，返回模块文件路径"""
        ...

    def missing_development_tools(self, options: InstallOptions) -> list[str]: ...

    def cc_version_compatible(self, options: InstallOptions) -> tuple[bool, str]: ...

    def kernel_source_path(self, options: InstallOptions) -> str | None: ...

    def build_module(self, package: Package, source_path: str) -> str:
        """从源码编译内核模块，返回模块文件路径"""
        ...

    def test_module(self, package: Package, module_file: str) -> bool: ...

    def build_interface(self, package: Package, source_path: str) -> str: ...

    def pack_precompiled_interface(
        self, package: Package, interface: str, kernel_name: str, signature: str,
    ) -> str: ...


# =========================================================================
# 操作列表 / 备份
# =========================================================================

class CommandListProvider(Protocol):
    """根据最终条目集构建有序操作列表"""

    def build(self, options: InstallOptions, package: Package) -> Any: ...


class CommandListRunner(Protocol):
    """执行操作列表"""

    def execute(self, options: InstallOptions, package: Package, commands: Any) -> None: ...


class BackupEngine(Protocol):
    """备份记录：记录本次安装创建的文件，支持卸载旧驱动"""

    def installed_driver_version(self) -> str | None: ...

    def uninstall_existing_driver(self) -> None: ...

    def init_backup(self, package: Package) -> None: ...

    def record(self, path: str) -> None: ...


# =========================================================================
# 发行版钩子 / DKMS / X 配置
# =========================================================================

class HookRunner(Protocol):
    def run(self, name: str) -> bool: ...


class AutoRebuildAdapter(Protocol):
    """DKMS 等自动重建注册工具"""

    def available(self) -> bool: ...

    def install(self, version: str, kernel_name: str) -> None: ...


class XConfigUpdater(Protocol):
    def run(self) -> bool: ...
