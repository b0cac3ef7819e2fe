"""服务容器 — 统一装配安装流程的各协作者

容器按 InstallOptions 懒加载默认实现；构造时传入的对象优先，
测试时可把任意协作者替换为 mock。

用法:
    container = ServiceContainer(options)
    ui = container.ui                    # 懒加载
    container = ServiceContainer(options, ui=FakeUI(), probe=mock_probe)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from drvinst.core.config import InstallOptions
    from drvinst.core.protocols import (
        AutoRebuildAdapter,
        BackupEngine,
        CommandListProvider,
        CommandListRunner,
        EnvironmentProbe,
        HookRunner,
        KernelToolchain,
        UserInterface,
        XConfigUpdater,
    )
    from drvinst.services.kernel_module import KernelModuleAcquisition

logger = logging.getLogger(__name__)

_NAMES = (
    "ui", "probe", "toolchain", "builder", "runner",
    "backup", "hooks", "dkms", "xconfig",
)


class ServiceContainer:
    """懒加载协作者容器"""

    def __init__(self, options: InstallOptions | None = None, **overrides: Any) -> None:
        unknown = set(overrides) - set(_NAMES)
        if unknown:
            raise TypeError(f"未知的协作者: {', '.join(sorted(unknown))}")
        if options is None:
            from drvinst.core.config import get_options
            options = get_options()
        self._options = options
        self._instances: dict[str, object] = dict(overrides)

    @property
    def options(self) -> InstallOptions:
        return self._options

    def _get(self, name: str, factory: Any) -> Any:
        if name not in self._instances:
            self._instances[name] = factory()
        return self._instances[name]

    @property
    def ui(self) -> UserInterface:
        from drvinst.ui.console import ConsoleUI
        return self._get("ui", lambda: ConsoleUI(no_questions=self._options.no_questions))

    @property
    def probe(self) -> EnvironmentProbe:
        from drvinst.services.system import SystemProbe
        return self._get("probe", SystemProbe)

    @property
    def toolchain(self) -> KernelToolchain:
        from drvinst.services.kbuild import KbuildToolchain
        return self._get("toolchain", KbuildToolchain)

    @property
    def builder(self) -> CommandListProvider:
        from drvinst.services.command_list import CommandListBuilder
        return self._get("builder", CommandListBuilder)

    @property
    def runner(self) -> CommandListRunner:
        from drvinst.services.command_list import CommandListExecutor
        return self._get("runner", lambda: CommandListExecutor(self.backup))

    @property
    def backup(self) -> BackupEngine:
        from drvinst.services.backup import BackupLog
        return self._get("backup", lambda: BackupLog(self._options.backup_dir))

    @property
    def hooks(self) -> HookRunner:
        from drvinst.services.system import DistroHookRunner
        return self._get("hooks", lambda: DistroHookRunner(self._options.hook_dir))

    @property
    def dkms(self) -> AutoRebuildAdapter:
        from drvinst.services.system import DkmsAdapter
        return self._get("dkms", DkmsAdapter)

    @property
    def xconfig(self) -> XConfigUpdater:
        from drvinst.services.system import XConfigTool
        return self._get("xconfig", XConfigTool)

    @property
    def kernel_module(self) -> KernelModuleAcquisition:
        from drvinst.services.kernel_module import KernelModuleAcquisition
        return KernelModuleAcquisition(self.ui, self.toolchain)
