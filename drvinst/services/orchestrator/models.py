"""安装编排数据模型

数据类：
- InstallOutcome: 三种终态（成功 / 用户放弃 / 失败）
- InstallState: 贯穿整个流水线的可变状态
- InstallReport: 安装报告
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from drvinst.core.config import InstallOptions
from drvinst.core.models import Package


class InstallOutcome(str, Enum):
    SUCCESS = "success"
    DECLINED = "declined"
    FAILED = "failed"


@dataclass
class InstallState:
    """流水线状态

    options 随阶段演进（每次修改都替换为新值），
    ran_pre_install_hook 决定失败时是否运行 failed-install 钩子。
    """

    options: InstallOptions
    package: Package | None = None
    ran_pre_install_hook: bool = False
    dkms_deferred: bool = False
    commands: Any = None

    @property
    def pkg(self) -> Package:
        if self.package is None:
            raise RuntimeError("包尚未解析")
        return self.package


@dataclass
class InstallReport:
    """安装执行报告"""

    outcome: InstallOutcome = InstallOutcome.FAILED
    description: str = ""
    version: str = ""
    error: str = ""
    error_code: str = ""
    steps: list[dict[str, Any]] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.outcome is InstallOutcome.SUCCESS

    def step_names(self, status: str = "done") -> list[str]:
        return [s["step"] for s in self.steps if s["status"] == status]
