"""统一异常体系

所有安装流程中的失败都继承 InstallerError。编排器据此把异常映射为
Failed 结果，CLI 层据此输出友好提示。UserDeclinedError 表示用户主动放弃，
编排器将其映射为 Declined 结果，不输出错误信息。
"""

from __future__ import annotations


class InstallerError(Exception):
    """安装器基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(InstallerError):
    """配置文件缺失或内容无效"""

    code = "CONFIG_ERROR"


# =========================================================================
# 清单文件
# =========================================================================


class ManifestNotFoundError(InstallerError):
    """清单文件不存在"""

    code = "NOT_FOUND"


class ManifestIOError(InstallerError):
    """清单文件无法读取"""

    code = "IO_ERROR"


class ManifestError(InstallerError):
    """清单语法错误，携带出错的行号（从 1 开始）"""

    code = "MALFORMED"

    def __init__(self, line: int, detail: str = "") -> None:
        message = f"清单文件无效，第 {line} 行出错"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.line = line
        self.detail = detail


# =========================================================================
# 流程控制
# =========================================================================


class PreconditionFailedError(InstallerError):
    """环境前置条件不满足（X 正在运行、模块已加载、冲突驱动）"""

    code = "PRECONDITION_FAILED"


class UserDeclinedError(InstallerError):
    """用户主动放弃安装，不是错误"""

    code = "USER_DECLINED"


class InstallStepError(InstallerError):
    """必需的安装步骤失败"""

    code = "STEP_FAILED"


# =========================================================================
# 内核模块
# =========================================================================


class ToolingMissingError(InstallerError):
    """编译工具链或内核头文件缺失"""

    code = "TOOLING_MISSING"


class ToolingIncompatibleError(InstallerError):
    """编译器版本与目标内核不兼容"""

    code = "TOOLING_INCOMPATIBLE"


class BuildFailedError(InstallerError):
    """内核接口编译失败"""

    code = "BUILD_FAILED"


class LinkFailedError(InstallerError):
    """预编译内核接口链接失败"""

    code = "LINK_FAILED"


class TestFailedError(InstallerError):
    """内核模块加载测试失败"""

    __test__ = False
    code = "TEST_FAILED"


# =========================================================================
# 执行阶段
# =========================================================================


class BackupInitFailedError(InstallerError):
    """备份记录初始化失败"""

    code = "BACKUP_INIT_FAILED"


class OperationExecutionFailedError(InstallerError):
    """操作列表执行失败"""

    code = "EXECUTION_FAILED"


class ExecutionError(InstallerError):
    """外部命令执行失败"""

    code = "COMMAND_FAILED"
