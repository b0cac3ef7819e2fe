"""ConsoleUI 单元测试"""

from __future__ import annotations

from unittest.mock import patch

from drvinst.services.command_list import Command, CommandKind, CommandList
from drvinst.ui.console import ConsoleUI


class TestNoQuestions:
    def test_yes_no_returns_default(self) -> None:
        ui = ConsoleUI(no_questions=True)
        with patch("drvinst.ui.console.click.confirm") as confirm:
            assert ui.yes_no(True, "继续？") is True
            assert ui.yes_no(False, "继续？") is False
        confirm.assert_not_called()

    def test_get_input_returns_default(self) -> None:
        assert ConsoleUI(no_questions=True).get_input("/usr", "前缀") == "/usr"

    def test_license_requires_explicit_acceptance(self, capsys) -> None:
        assert ConsoleUI(no_questions=True).display_license("LICENSE") is False
        assert "--accept-license" in capsys.readouterr().err

    def test_command_list_approved(self) -> None:
        cl = CommandList([Command(CommandKind.RUN, argv=["ldconfig"])])
        assert ConsoleUI(no_questions=True).approve_command_list(cl, "drv") is True


class TestInteractive:
    def test_yes_no_asks(self) -> None:
        with patch("drvinst.ui.console.click.confirm", return_value=False) as confirm:
            assert ConsoleUI().yes_no(True, "继续？") is False
        assert confirm.call_args.kwargs["default"] is True

    def test_license_paged_and_confirmed(self) -> None:
        with patch("drvinst.ui.console.click.echo_via_pager") as pager, \
                patch("drvinst.ui.console.click.confirm", return_value=True):
            assert ConsoleUI().display_license("许可协议正文") is True
        pager.assert_called_once_with("许可协议正文")

    def test_warn_and_error_go_to_stderr(self, capsys) -> None:
        ui = ConsoleUI()
        ui.warn("小心")
        ui.error("失败")
        ui.message("完成")
        out = capsys.readouterr()
        assert "警告: 小心" in out.err
        assert "错误: 失败" in out.err
        assert "完成" in out.out
