"""操作列表构建与执行单元测试"""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from drvinst.core.config import InstallOptions
from drvinst.core.exceptions import OperationExecutionFailedError
from drvinst.core.models import FileType, Package
from drvinst.services.command_list import (
    Command,
    CommandKind,
    CommandList,
    CommandListBuilder,
    CommandListExecutor,
)
from drvinst.utils.shell import CommandResult


def _ok_executor() -> MagicMock:
    ex = MagicMock()
    ex.execute.return_value = CommandResult(0, "", "")
    return ex


class TestBuilder:
    def test_install_and_symlink(self, tmp_path: Path) -> None:
        p = Package(root=str(tmp_path))
        p.add_entry("libGL.so.1.0", FileType.XLIB_SHARED_LIB, 0o755, dst="/usr/lib/libGL.so.1.0")
        p.add_entry("libGL.so.1", FileType.XLIB_SYMLINK, 0o777, target="libGL.so.1.0",
                    dst="/usr/lib/libGL.so.1")
        cl = CommandListBuilder().build(InstallOptions(), p)
        kinds = [c.kind for c in cl]
        assert kinds == [CommandKind.INSTALL, CommandKind.SYMLINK, CommandKind.RUN]
        assert cl.commands[0].src == str(tmp_path / "libGL.so.1.0")
        assert cl.commands[0].mode == 0o755
        assert cl.commands[1].target == "libGL.so.1.0"
        assert cl.commands[-1].argv == ["ldconfig"]

    def test_kernel_module_only_runs_depmod(self) -> None:
        p = Package()
        p.add_entry("/b/nvidia.ko", FileType.KERNEL_MODULE, 0o644, dst="/lib/modules/x/nvidia.ko")
        cl = CommandListBuilder().build(InstallOptions(kernel_module_only=True), p)
        assert cl.commands[-1].argv == ["depmod", "-a"]

    def test_newsym_skipped_when_present(self, tmp_path: Path) -> None:
        existing = tmp_path / "libwfb.so"
        existing.write_text("x")
        p = Package()
        p.add_entry("libwfb.so", FileType.XMODULE_NEWSYM, 0o777, path=".",
                    target="libnvidia-wfb.so.1", dst=str(existing))
        p.add_entry("libfoo.so", FileType.XMODULE_NEWSYM, 0o777, path=".",
                    target="libfoo.so.1", dst=str(tmp_path / "libfoo.so"))
        cl = CommandListBuilder().build(InstallOptions(), p)
        assert [c.dst for c in cl if c.kind is CommandKind.SYMLINK] == [str(tmp_path / "libfoo.so")]

    def test_entry_without_destination(self) -> None:
        p = Package()
        p.add_entry("a", FileType.MANPAGE, 0o644)
        with pytest.raises(OperationExecutionFailedError, match="目标路径"):
            CommandListBuilder().build(InstallOptions(), p)

    def test_describe(self) -> None:
        cl = CommandList([
            Command(CommandKind.INSTALL, dst="/d", src="/s", mode=0o755),
            Command(CommandKind.SYMLINK, dst="/l", target="t"),
            Command(CommandKind.RUN, argv=["ldconfig"]),
        ])
        lines = cl.describe()
        assert len(cl) == 3
        assert "755" in lines[0]
        assert "'/l' -> 't'" in lines[1]
        assert "ldconfig" in lines[2]


class TestExecutor:
    def test_execute_records_created_paths(self, tmp_path: Path) -> None:
        src = tmp_path / "src.so"
        src.write_text("payload")
        dst = tmp_path / "root/usr/lib/libx.so.1"
        link = tmp_path / "root/usr/lib/libx.so"
        cl = CommandList([
            Command(CommandKind.INSTALL, dst=str(dst), src=str(src), mode=0o755),
            Command(CommandKind.SYMLINK, dst=str(link), target="libx.so.1"),
            Command(CommandKind.RUN, argv=["ldconfig"]),
        ])
        backup = MagicMock()
        ex = _ok_executor()
        CommandListExecutor(backup, ex).execute(InstallOptions(), Package(), cl)

        assert dst.read_text() == "payload"
        assert os.stat(dst).st_mode & 0o777 == 0o755
        assert os.readlink(link) == "libx.so.1"
        assert [c.args[0] for c in backup.record.call_args_list] == [str(dst), str(link)]
        ex.execute.assert_called_once_with(["ldconfig"])

    def test_replaces_existing_destination(self, tmp_path: Path) -> None:
        link = tmp_path / "libx.so"
        link.write_text("old")
        cl = CommandList([Command(CommandKind.SYMLINK, dst=str(link), target="libx.so.2")])
        CommandListExecutor(MagicMock(), _ok_executor()).execute(InstallOptions(), Package(), cl)
        assert os.readlink(link) == "libx.so.2"

    def test_missing_source(self, tmp_path: Path) -> None:
        cl = CommandList([Command(
            CommandKind.INSTALL, dst=str(tmp_path / "d"), src=str(tmp_path / "nope"))])
        with pytest.raises(OperationExecutionFailedError):
            CommandListExecutor(MagicMock(), _ok_executor()).execute(
                InstallOptions(), Package(), cl)

    def test_run_failure(self) -> None:
        ex = MagicMock()
        ex.execute.return_value = CommandResult(1, "", "ldconfig: error")
        cl = CommandList([Command(CommandKind.RUN, argv=["ldconfig"])])
        with pytest.raises(OperationExecutionFailedError, match="rc=1"):
            CommandListExecutor(MagicMock(), ex).execute(InstallOptions(), Package(), cl)

    def test_destination_is_source_file(self, tmp_path: Path) -> None:
        p = Package(root=str(tmp_path))
        (tmp_path / "nvidia-smi").write_text("binary", encoding="utf-8")
        os.chmod(tmp_path / "nvidia-smi", 0o600)
        entry = p.add_entry("nvidia-smi", FileType.EXPLICIT_PATH, 0o755, path=".",
                            dst=str(tmp_path / "nvidia-smi"))
        assert entry.identity is not None
        cl = CommandListBuilder().build(InstallOptions(), p)
        assert cl.commands[0].identity == entry.identity

        backup = MagicMock()
        CommandListExecutor(backup, _ok_executor()).execute(InstallOptions(), p, cl)
        assert (tmp_path / "nvidia-smi").read_text(encoding="utf-8") == "binary"
        assert os.stat(tmp_path / "nvidia-smi").st_mode & 0o777 == 0o755
        backup.record.assert_not_called()

    def test_different_file_at_destination_replaced(self, tmp_path: Path) -> None:
        p = Package(root=str(tmp_path / "pkg"))
        (tmp_path / "pkg").mkdir()
        (tmp_path / "pkg" / "nvidia-smi").write_text("new", encoding="utf-8")
        dst = tmp_path / "bin" / "nvidia-smi"
        dst.parent.mkdir()
        dst.write_text("old", encoding="utf-8")
        p.add_entry("nvidia-smi", FileType.EXPLICIT_PATH, 0o755, path=".", dst=str(dst))
        cl = CommandListBuilder().build(InstallOptions(), p)
        CommandListExecutor(MagicMock(), _ok_executor()).execute(InstallOptions(), p, cl)
        assert dst.read_text(encoding="utf-8") == "new"
