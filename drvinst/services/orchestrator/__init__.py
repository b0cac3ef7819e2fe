"""安装编排模块

- models.py: 终态、流水线状态与报告
- steps.py: 安装流水线各步骤
- orchestrator.py: 协调器与两个顶层入口
"""

from drvinst.services.orchestrator.models import InstallOutcome, InstallReport, InstallState
from drvinst.services.orchestrator.orchestrator import (
    Installer,
    add_this_kernel,
    install_from_cwd,
)
from drvinst.services.orchestrator.steps import InstallSteps

__all__ = [
    "InstallOutcome",
    "InstallReport",
    "InstallState",
    "Installer",
    "InstallSteps",
    "add_this_kernel",
    "install_from_cwd",
]
