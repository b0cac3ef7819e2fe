"""日志配置单元测试"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from drvinst.utils.logger import JSONFormatter, reset_logging, setup_logging


@pytest.fixture
def _restore_root():
    root = logging.getLogger()
    saved = (root.handlers[:], root.level)
    yield
    reset_logging()
    root.handlers[:], root.level = saved[0], saved[1]


@pytest.mark.usefixtures("_restore_root")
class TestSetupLogging:
    def test_console_only(self) -> None:
        assert setup_logging("INFO") is False
        handlers = logging.getLogger().handlers
        assert len(handlers) == 1
        assert handlers[0].level == logging.INFO

    def test_log_file_written(self, tmp_path: Path) -> None:
        log = tmp_path / "sub" / "install.log"
        assert setup_logging(log_file=str(log)) is True
        logging.getLogger("drvinst.test").debug("调试信息")
        for h in logging.getLogger().handlers:
            h.flush()
        assert "调试信息" in log.read_text(encoding="utf-8")

    def test_log_file_unavailable(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("")
        assert setup_logging(log_file=str(blocker / "install.log")) is False


class TestJSONFormatter:
    def test_format(self) -> None:
        record = logging.LogRecord("drvinst", logging.ERROR, __file__, 1, "安装失败: %s", ("x",), None)
        data = json.loads(JSONFormatter().format(record))
        assert data["level"] == "ERROR"
        assert data["message"] == "安装失败: x"
