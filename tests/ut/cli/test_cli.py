"""CLI 单元测试"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest
from click.testing import CliRunner

import drvinst.cli as climod
import drvinst.core.config as cfgmod
from drvinst import __version__
from drvinst.cli import _collect_overrides, main


@pytest.fixture(autouse=True)
def _isolate(monkeypatch: pytest.MonkeyPatch) -> MagicMock:
    monkeypatch.setattr(cfgmod, "_current", None)
    setup = MagicMock(return_value=True)
    monkeypatch.setattr(climod, "setup_logging", setup)
    return setup


@pytest.fixture
def fake_install(monkeypatch: pytest.MonkeyPatch) -> MagicMock:
    fake = MagicMock(return_value=True)
    monkeypatch.setattr("drvinst.services.orchestrator.install_from_cwd", fake)
    return fake


@pytest.fixture
def config(tmp_path: Path) -> str:
    f = tmp_path / "drvinst.yml"
    f.write_text("x_prefix: /opt/X11\n", encoding="utf-8")
    return str(f)


class TestMain:
    def test_version(self) -> None:
        r = CliRunner().invoke(main, ["--version"])
        assert r.exit_code == 0
        assert __version__ in r.output

    def test_help_lists_commands(self) -> None:
        r = CliRunner().invoke(main, ["--help"])
        assert "install" in r.output
        assert "add-this-kernel" in r.output

    def test_collect_overrides(self) -> None:
        assert _collect_overrides({"a": None, "b": False, "c": True, "d": "x"}) == {
            "c": True, "d": "x"}


class TestInstall:
    def test_options_passed(self, fake_install: MagicMock, config: str) -> None:
        r = CliRunner().invoke(main, [
            "install", "-c", config, "-a", "-q", "--dkms", "--no-compat32-libs",
            "--force-tls", "classic", "--kernel-name", "6.1.0",
        ])
        assert r.exit_code == 0, r.output
        opts = fake_install.call_args.args[0]
        assert opts.accept_license and opts.no_questions and opts.dkms
        assert opts.compat32_libs is False
        assert opts.tls == "classic"
        assert opts.kernel_name == "6.1.0"
        assert opts.x_prefix == "/opt/X11"
        assert opts.expert is False

    def test_failure_exit_code(self, fake_install: MagicMock, config: str) -> None:
        fake_install.return_value = False
        r = CliRunner().invoke(main, ["install", "-c", config])
        assert r.exit_code == 1

    def test_invalid_tls_choice(self, fake_install: MagicMock, config: str) -> None:
        r = CliRunner().invoke(main, ["install", "-c", config, "--force-tls", "fancy"])
        assert r.exit_code == 2
        fake_install.assert_not_called()

    def test_broken_config(self, fake_install: MagicMock, tmp_path: Path) -> None:
        bad = tmp_path / "bad.yml"
        bad.write_text("a: [\n", encoding="utf-8")
        r = CliRunner().invoke(main, ["install", "-c", str(bad)])
        assert r.exit_code == 2
        assert "无法加载选项文件" in r.output

    def test_log_file_unavailable(self, fake_install: MagicMock, config: str,
                                  _isolate: MagicMock) -> None:
        _isolate.return_value = False
        r = CliRunner().invoke(main, ["install", "-c", config, "--log-file-name", "/x/y.log"])
        assert r.exit_code == 0
        assert fake_install.call_args.args[0].log_enabled is False
        assert _isolate.call_args.kwargs["log_file"] == "/x/y.log"

    def test_no_log(self, fake_install: MagicMock, config: str, _isolate: MagicMock) -> None:
        CliRunner().invoke(main, ["install", "-c", config, "--no-log"])
        assert fake_install.call_args.args[0].log_enabled is False
        assert all(c.kwargs["log_file"] is None for c in _isolate.call_args_list)


class TestAddThisKernel:
    def test_runs(self, monkeypatch: pytest.MonkeyPatch, config: str) -> None:
        fake = MagicMock(return_value=True)
        monkeypatch.setattr("drvinst.services.orchestrator.add_this_kernel", fake)
        r = CliRunner().invoke(main, ["add-this-kernel", "-c", config, "-k", "6.1.0"])
        assert r.exit_code == 0, r.output
        assert fake.call_args.args[0].kernel_name == "6.1.0"

    def test_failure(self, monkeypatch: pytest.MonkeyPatch, config: str) -> None:
        monkeypatch.setattr(
            "drvinst.services.orchestrator.add_this_kernel", MagicMock(return_value=False))
        r = CliRunner().invoke(main, ["add-this-kernel", "-c", config])
        assert r.exit_code == 1
