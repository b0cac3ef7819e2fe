"""安装流水线步骤

步骤顺序：
 1. parse_manifest            解析清单
 2. check_gpus                显卡兼容性提示（只警告）
 3. check_preconditions       X 服务 / 已加载模块检查
 4. accept_license            许可协议
 5. check_existing_driver     已安装驱动确认
 6. run_pre_install_hook      pre-install 钩子
 7. check_conflicting_driver  冲突驱动检查
 8. kernel_module             内核模块获取 / DKMS 选择
 9. prepare_file_set          文件集裁剪与改写
10. remove_opengl_files       剔除 OpenGL 文件
11. set_destinations          计算目标路径
12. uninstall_existing_driver 卸载旧驱动
13. build_command_list        构建操作列表
14. approve_command_list      用户确认
15. init_backup               初始化备份记录
16. execute_command_list      执行操作列表
17. dkms_install              DKMS 注册
18. run_post_install_hook     post-install 钩子（只警告）
19. post_install_checks       安装后检查
20. update_x_configuration    X 配置与完成提示（不影响结果）

每个步骤在失败时抛出 InstallerError，用户放弃时抛出 UserDeclinedError，
成功时可返回一个 dict 作为报告中的步骤详情。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

from drvinst.core.exceptions import (
    InstallerError,
    InstallStepError,
    ManifestError,
    PreconditionFailedError,
    UserDeclinedError,
)
from drvinst.core.manifest import load_manifest
from drvinst.services import package_files

if TYPE_CHECKING:
    from drvinst.services.container import ServiceContainer
    from drvinst.services.orchestrator.models import InstallState

logger = logging.getLogger(__name__)

Step = Callable[["InstallState"], "dict[str, Any] | None"]

SUSE_DISTROS = ("suse", "sles", "sled", "opensuse")

EDIT_YOUR_XCONFIG = (
    "请根据需要更新 xorg.conf 文件；详细说明见 "
    "/usr/share/doc/NVIDIA_GLX-1.0/README.txt。"
)
SUSE_EDIT_YOUR_XCONFIG = "在 SuSE Linux 上请现在使用 SaX2 启用 NVIDIA 驱动。"


class InstallSteps:
    """安装步骤集合"""

    def __init__(self, container: ServiceContainer) -> None:
        self.c = container

    def pipeline(self) -> list[Step]:
        return [
            self.parse_manifest,
            self.check_gpus,
            self.check_preconditions,
            self.accept_license,
            self.check_existing_driver,
            self.run_pre_install_hook,
            self.check_conflicting_driver,
            self.kernel_module,
            self.prepare_file_set,
            self.remove_opengl_files,
            self.set_destinations,
            self.uninstall_existing_driver,
            self.build_command_list,
            self.approve_command_list,
            self.init_backup,
            self.execute_command_list,
            self.dkms_install,
            self.run_post_install_hook,
            self.post_install_checks,
            self.update_x_configuration,
        ]

    # ---- 1-7: 前置条件 ----

    def parse_manifest(self, state: InstallState) -> dict[str, Any]:
        """步骤1: 解析包根目录中的清单文件"""
        try:
            state.package = load_manifest(state.options.manifest_path)
        except ManifestError as e:
            self.c.ui.log(str(e))
            raise
        p = state.pkg
        self.c.ui.set_title(f"{p.description} ({p.version})")
        return {"entries": p.num_entries}

    def check_gpus(self, state: InstallState) -> dict[str, Any]:
        """步骤2: 显卡兼容性提示，从不终止安装"""
        warnings = self.c.probe.gpu_warnings()
        for w in warnings:
            self.c.ui.warn(w)
        return {"warnings": len(warnings)}

    def check_preconditions(self, state: InstallState) -> None:
        """步骤3: 不允许 X 服务运行，不允许内核模块已加载"""
        probe = self.c.probe
        if probe.x_server_running():
            raise PreconditionFailedError(
                "检测到 X 服务正在运行，请先退出 X 再安装驱动。")
        names = [state.pkg.kernel_module_name or "", *state.pkg.bad_modules]
        loaded = [n for n in names if n and probe.kernel_module_loaded(n)]
        if loaded:
            raise PreconditionFailedError(
                f"内核模块 {', '.join(loaded)} 已加载，请先卸载后再安装。")

    def accept_license(self, state: InstallState) -> None:
        """步骤4: 用户必须接受许可协议"""
        options = state.options
        p = state.pkg
        if options.accept_license:
            self.c.ui.log("已通过命令行选项接受许可协议")
        else:
            path = Path(p.root) / options.license_file
            try:
                text = path.read_text(encoding="utf-8")
            except OSError as e:
                self.c.ui.error(f"无法读取许可协议文件 {path}: {e}")
                raise UserDeclinedError("许可协议不可用") from e
            if not self.c.ui.display_license(text):
                raise UserDeclinedError("用户未接受许可协议")
        self.c.ui.log(f"正在安装驱动版本 {p.version}")

    def check_existing_driver(self, state: InstallState) -> dict[str, Any]:
        """步骤5: 已安装驱动时询问是否覆盖"""
        version = self.c.backup.installed_driver_version()
        if version and not self.c.ui.yes_no(
            True,
            f"系统中似乎已安装了驱动（版本 {version}）。"
            "继续安装将卸载该驱动，是否继续？",
        ):
            raise UserDeclinedError("用户选择保留已安装的驱动")
        return {"installed_version": version or ""}

    def run_pre_install_hook(self, state: InstallState) -> dict[str, Any]:
        """步骤6: 运行 pre-install 钩子，失败时询问是否继续"""
        ok = self.c.hooks.run("pre-install")
        state.ran_pre_install_hook = True
        if not ok and not self.c.ui.yes_no(
            True, "发行版提供的 pre-install 脚本执行失败！是否仍继续安装？",
        ):
            raise InstallStepError("pre-install 脚本执行失败")
        return {"hook_ok": ok}

    def check_conflicting_driver(self, state: InstallState) -> None:
        """步骤7: 冲突驱动（nouveau）正在使用时不能继续"""
        if self.c.probe.conflicting_driver_active():
            raise PreconditionFailedError(
                "nouveau 内核驱动正在使用中，它与本驱动冲突，"
                "请禁用 nouveau 后重试。")

    # ---- 8-11: 内核模块与文件集 ----

    def kernel_module(self, state: InstallState) -> dict[str, Any]:
        """步骤8: 内核模块获取，或延迟到安装后交给 DKMS"""
        options = state.options
        ui = self.c.ui
        if options.no_kernel_module:
            ui.warn(
                "指定了 --no-kernel-module，本次安装不会安装内核模块，"
                "也不会移除不属于早先安装的现有内核模块。"
                "请确保另行安装了与本驱动版本匹配的内核模块。")
            if options.dkms:
                ui.warn("同时指定了 --no-kernel-module 和 --dkms，--dkms 将被忽略。")
                state.options = options.evolve(dkms=False)
            return {"mode": "skipped"}

        dkms = options.dkms
        if self.c.dkms.available() and not options.no_kernel_module_source:
            dkms = ui.yes_no(
                dkms,
                "是否向 DKMS 注册内核模块源码？这样在以后安装新内核时，"
                "DKMS 会自动重新编译内核模块。")
        elif dkms:
            ui.warn("系统中没有可用的 DKMS，或未安装内核模块源码，将直接编译安装内核模块。")
            dkms = False
        state.options = options.evolve(dkms=dkms)

        if dkms:
            state.dkms_deferred = True
            return {"mode": "dkms"}

        entry = self.c.kernel_module.install(state.options, state.pkg)
        return {"mode": "inline", "module": entry.dst}

    def prepare_file_set(self, state: InstallState) -> dict[str, Any]:
        """步骤9: 按安装模式裁剪、改写条目集"""
        p = state.pkg
        if state.options.kernel_module_only:
            removed = package_files.remove_non_kernel_module_files(p)
            return {"kernel_module_only": True, "removed": removed}

        ui = self.c.ui
        probe = self.c.probe
        state.options = package_files.get_prefixes(state.options, ui)
        options = state.options
        package_files.should_install_opengl_headers(options, ui, p)
        package_files.select_tls_class(options, probe, p)
        package_files.process_libgl_la_files(options, p)
        package_files.process_dot_desktop_files(options, p)
        package_files.should_install_compat32_files(options, ui, probe, p)
        return {"kernel_module_only": False, "entries": p.num_entries}

    def remove_opengl_files(self, state: InstallState) -> dict[str, Any] | None:
        """步骤10: 指定 --no-opengl-files 时剔除 OpenGL 文件"""
        if not state.options.no_opengl_files:
            return None
        return {"removed": package_files.remove_opengl_files(state.pkg)}

    def set_destinations(self, state: InstallState) -> None:
        """步骤11: 计算每个条目的安装目标路径"""
        package_files.set_destinations(state.options, state.pkg)

    # ---- 12-17: 执行 ----

    def uninstall_existing_driver(self, state: InstallState) -> None:
        """步骤12: 卸载已安装的驱动"""
        if state.options.kernel_module_only:
            return
        self.c.backup.uninstall_existing_driver()

    def build_command_list(self, state: InstallState) -> dict[str, Any]:
        """步骤13: 根据最终条目集构建操作列表"""
        commands = self.c.builder.build(state.options, state.pkg)
        if commands is None:
            raise InstallStepError("无法构建安装操作列表")
        state.commands = commands
        return {"commands": len(commands)}

    def approve_command_list(self, state: InstallState) -> None:
        """步骤14: 请用户确认操作列表"""
        if not self.c.ui.approve_command_list(state.commands, state.pkg.description or ""):
            raise UserDeclinedError("用户未批准操作列表")

    def init_backup(self, state: InstallState) -> None:
        """步骤15: 在任何修改操作之前初始化备份记录"""
        if state.options.kernel_module_only:
            return
        self.c.backup.init_backup(state.pkg)

    def execute_command_list(self, state: InstallState) -> None:
        """步骤16: 执行操作列表"""
        self.c.runner.execute(state.options, state.pkg, state.commands)

    def dkms_install(self, state: InstallState) -> dict[str, Any] | None:
        """步骤17: 执行步骤8中延迟的 DKMS 注册"""
        if not state.dkms_deferred:
            return None
        kernel = self.c.toolchain.kernel_name(state.options)
        self.c.dkms.install(state.pkg.version or "", kernel)
        return {"kernel": kernel}

    # ---- 18-20: 收尾 ----

    def run_post_install_hook(self, state: InstallState) -> dict[str, Any]:
        """步骤18: 运行 post-install 钩子，失败只警告"""
        ok = self.c.hooks.run("post-install")
        if not ok:
            self.c.ui.warn("发行版提供的 post-install 脚本执行失败。")
        return {"hook_ok": ok}

    def post_install_checks(self, state: InstallState) -> dict[str, Any]:
        """步骤19: 安装后检查，文件缺失只警告，IPC 与运行时配置检查失败即终止"""
        p = state.pkg
        missing = package_files.check_installed_files(p)
        for path in missing:
            self.c.ui.warn(f"安装后检查: 文件 {path} 不存在。")
        if not self.c.probe.sysvipc_ok():
            raise InstallStepError(
                "内核不支持 System V IPC（/proc/sysvipc 不存在），"
                "OpenGL 驱动需要该功能。")
        if not self.c.probe.runtime_configuration_ok(p):
            raise InstallStepError(
                "运行时配置检查失败：动态链接器无法找到刚安装的库，"
                "可能有其他 OpenGL 库遮蔽了本驱动的库。")
        return {"missing_files": len(missing)}

    def update_x_configuration(self, state: InstallState) -> dict[str, Any]:
        """步骤20: 询问是否更新 X 配置，并输出完成提示；从不影响安装结果"""
        options = state.options
        p = state.pkg
        ui = self.c.ui
        if options.kernel_module_only or options.no_nvidia_xconfig_question:
            ui.message(f"{p.description}（版本 {p.version}）的内核模块安装完成。")
            return {"xconfig": "skipped"}

        updated = False
        if ui.yes_no(
            options.run_nvidia_xconfig,
            "是否运行 nvidia-xconfig 自动更新 X 配置文件，以便重启 X 后使用 "
            "NVIDIA X 驱动？原有的 X 配置文件会被备份。",
        ):
            try:
                updated = self.c.xconfig.run()
            except InstallerError as e:
                logger.warning("更新 X 配置失败: %s", e)

        if updated:
            ui.message(
                f"X 配置文件已成功更新。{p.description}（版本 {p.version}）安装完成。")
        else:
            hint = SUSE_EDIT_YOUR_XCONFIG if self._is_suse() else EDIT_YOUR_XCONFIG
            ui.message(f"{p.description}（版本 {p.version}）安装完成。{hint}")
        return {"xconfig": "updated" if updated else "not_updated"}

    def _is_suse(self) -> bool:
        distro = self.c.probe.distro()
        return any(distro.startswith(d) for d in SUSE_DISTROS)
