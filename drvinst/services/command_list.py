"""操作列表 — 构建与执行

CommandListBuilder 把最终条目集转换为有序操作列表，
CommandListExecutor 依次执行并把每个创建的路径登记到备份记录。
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from drvinst.core.exceptions import OperationExecutionFailedError
from drvinst.core.models import FileIdentity, FileType, Package
from drvinst.utils.shell import CommandExecutor, get_executor

if TYPE_CHECKING:
    from drvinst.core.config import InstallOptions
    from drvinst.core.protocols import BackupEngine

logger = logging.getLogger(__name__)


class CommandKind(str, Enum):
    INSTALL = "install"
    SYMLINK = "symlink"
    RUN = "run"


@dataclass
class Command:
    """单个安装操作"""

    kind: CommandKind
    dst: str = ""
    src: str = ""
    mode: int = 0o644
    target: str = ""
    argv: list[str] = field(default_factory=list)
    # 源文件的身份，用于识别目标路径就是源文件本身
    identity: FileIdentity | None = None

    def describe(self) -> str:
        if self.kind is CommandKind.INSTALL:
            return f"安装 '{self.src}' -> '{self.dst}' ({self.mode:o})"
        if self.kind is CommandKind.SYMLINK:
            return f"创建符号链接 '{self.dst}' -> '{self.target}'"
        return f"执行 '{' '.join(self.argv)}'"


@dataclass
class CommandList:
    commands: list[Command] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.commands)

    def __iter__(self):
        return iter(self.commands)

    def describe(self) -> list[str]:
        return [c.describe() for c in self.commands]


class CommandListBuilder:
    """根据条目集生成操作列表"""

    def build(self, options: InstallOptions, package: Package) -> CommandList:
        cl = CommandList()
        for entry in package.entries:
            if not entry.dst:
                raise OperationExecutionFailedError(f"条目缺少目标路径: {entry.file}")
            if entry.type is FileType.XMODULE_NEWSYM:
                # 只在目标不存在时创建
                if os.path.lexists(entry.dst):
                    logger.debug("跳过已存在的链接: %s", entry.dst)
                    continue
            if entry.type.is_symlink:
                cl.commands.append(Command(
                    CommandKind.SYMLINK, dst=entry.dst, target=entry.target or "",
                ))
            else:
                cl.commands.append(Command(
                    CommandKind.INSTALL, dst=entry.dst,
                    src=str(package.resolve(entry.file)), mode=entry.mode,
                    identity=entry.identity,
                ))
        if options.kernel_module_only:
            cl.commands.append(Command(CommandKind.RUN, argv=["depmod", "-a"]))
        else:
            cl.commands.append(Command(CommandKind.RUN, argv=["ldconfig"]))
        logger.info("操作列表已生成: %d 项", len(cl))
        return cl


class CommandListExecutor:
    """执行操作列表"""

    def __init__(
        self, backup: BackupEngine, executor: CommandExecutor | None = None,
    ) -> None:
        self.backup = backup
        self.executor = executor or get_executor()

    def execute(
        self, options: InstallOptions, package: Package, commands: CommandList,
    ) -> None:
        total = len(commands)
        for i, cmd in enumerate(commands, 1):
            logger.info("[%d/%d] %s", i, total, cmd.describe())
            try:
                self._execute_one(cmd)
            except OSError as e:
                raise OperationExecutionFailedError(
                    f"{cmd.describe()} 失败: {e}") from e

    def _execute_one(self, cmd: Command) -> None:
        if cmd.kind is CommandKind.RUN:
            r = self.executor.execute(cmd.argv)
            if not r.success:
                raise OperationExecutionFailedError(
                    f"{cmd.describe()} 失败 (rc={r.returncode}): {r.stderr[:500]}")
            return

        dst = Path(cmd.dst)
        dst.parent.mkdir(parents=True, exist_ok=True)
        if os.path.lexists(dst):
            if cmd.kind is CommandKind.INSTALL and cmd.identity is not None \
                    and cmd.identity.matches(os.lstat(dst)):
                logger.info("目标 %s 就是源文件本身，只调整权限", dst)
                os.chmod(dst, cmd.mode)
                return
            dst.unlink()
        if cmd.kind is CommandKind.SYMLINK:
            os.symlink(cmd.target, dst)
        else:
            shutil.copyfile(cmd.src, dst)
            os.chmod(dst, cmd.mode)
        self.backup.record(str(dst))
