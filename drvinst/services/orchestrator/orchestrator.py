"""安装编排器 - 协调安装流水线

职责：
- 按顺序执行各步骤，任一步骤失败立即终止
- 区分三种终态：成功 / 用户放弃（不报错）/ 失败（统一报错一次）
- 失败且已运行过 pre-install 钩子时，运行 failed-install 钩子
- 保证 package.release() 在 finally 中执行
"""

from __future__ import annotations

import logging
from pathlib import Path

from drvinst.core.config import InstallOptions
from drvinst.core.exceptions import InstallerError, InstallStepError, UserDeclinedError
from drvinst.core.manifest import load_manifest
from drvinst.services.container import ServiceContainer
from drvinst.services.orchestrator.models import InstallOutcome, InstallReport, InstallState
from drvinst.services.orchestrator.steps import InstallSteps

logger = logging.getLogger(__name__)

INSTALL_FAILED = "安装失败"
ADD_KERNEL_FAILED = "无法为运行中的内核添加预编译内核接口"


class Installer:
    """驱动安装编排器"""

    def __init__(self, container: ServiceContainer | None = None) -> None:
        self.c = container or ServiceContainer()
        self.steps = InstallSteps(self.c)

    def install(self, options: InstallOptions | None = None) -> InstallReport:
        """从当前包安装驱动"""
        state = InstallState(options=options or self.c.options)
        report = InstallReport()

        try:
            for step in self.steps.pipeline():
                detail = step(state)
                entry = {"step": step.__name__, "status": "done"}
                if detail:
                    entry["detail"] = detail
                report.steps.append(entry)
            report.outcome = InstallOutcome.SUCCESS
        except UserDeclinedError as e:
            logger.info("安装已被用户取消: %s", e)
            report.steps.append({"step": self._current(report), "status": "declined"})
            report.outcome = InstallOutcome.DECLINED
        except InstallerError as e:
            self._abort(state, report, e)
        except (OSError, ValueError) as e:
            logger.exception("安装过程中出现未预期的系统错误")
            self._abort(state, report, InstallStepError(f"{type(e).__name__}: {e}"))
        finally:
            self._finish(state, report)

        return report

    def add_this_kernel(self, options: InstallOptions | None = None) -> InstallReport:
        """为运行内核编译内核接口并打包为预编译接口"""
        options = options or self.c.options
        state = InstallState(options=options)
        report = InstallReport()

        try:
            state.package = load_manifest(options.manifest_path)
            report.steps.append({"step": "parse_manifest", "status": "done"})
            bundle = self.c.kernel_module.build_interface_bundle(options, state.package)
            report.steps.append({
                "step": "build_interface_bundle", "status": "done",
                "detail": {"bundle": bundle},
            })
            self.c.ui.message(f"已为内核 {self.c.toolchain.kernel_name(options)} 生成预编译内核接口: {bundle}")
            report.outcome = InstallOutcome.SUCCESS
        except InstallerError as e:
            self._fail(options, report, e, ADD_KERNEL_FAILED)
        except (OSError, ValueError) as e:
            logger.exception("生成预编译内核接口时出现未预期的系统错误")
            self._fail(options, report, InstallStepError(f"{type(e).__name__}: {e}"),
                       ADD_KERNEL_FAILED)
        finally:
            self._finish(state, report)

        return report

    # ---- 内部 ----

    def _current(self, report: InstallReport) -> str:
        """推算正在执行的步骤名"""
        done = len(report.steps)
        pipeline = self.steps.pipeline()
        return pipeline[done].__name__ if done < len(pipeline) else "unknown"

    def _abort(self, state: InstallState, report: InstallReport, err: InstallerError) -> None:
        report.steps.append({"step": self._current(report), "status": "failed"})
        self._fail(state.options, report, err, INSTALL_FAILED)
        if state.ran_pre_install_hook:
            self.c.hooks.run("failed-install")

    def _fail(
        self, options: InstallOptions, report: InstallReport, err: InstallerError,
        headline: str,
    ) -> None:
        """统一的失败提示，只区分日志文件是否存在"""
        report.outcome = InstallOutcome.FAILED
        report.error = str(err)
        report.error_code = err.code
        logger.error("%s [%s]: %s", headline, err.code, err)
        if options.log_enabled and Path(options.log_file_name).is_file():
            hint = f"详情请查看安装日志 {options.log_file_name}。"
        else:
            hint = "可使用 --log-file-name 启用安装日志以获取详细信息。"
        self.c.ui.error(f"{headline}: {err}\n\n{hint}")

    @staticmethod
    def _finish(state: InstallState, report: InstallReport) -> None:
        if state.package is None:
            return
        report.description = state.package.description or ""
        report.version = state.package.version or ""
        state.package.release()


def install_from_cwd(options: InstallOptions | None = None,
                     container: ServiceContainer | None = None) -> bool:
    """安装入口，返回是否成功"""
    return Installer(container or ServiceContainer(options)).install(options).success


def add_this_kernel(options: InstallOptions | None = None,
                    container: ServiceContainer | None = None) -> bool:
    """add-this-kernel 入口，返回是否成功"""
    return Installer(container or ServiceContainer(options)).add_this_kernel(options).success
