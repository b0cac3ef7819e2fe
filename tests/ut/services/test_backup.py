"""BackupLog 单元测试"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from drvinst.core.exceptions import BackupInitFailedError, InstallStepError
from drvinst.core.models import Package
from drvinst.services.backup import BackupLog
from drvinst.utils.yaml_io import load_yaml


class TestBackupLog:
    def test_no_previous_install(self, tmp_path: Path) -> None:
        log = BackupLog(str(tmp_path / "backup"))
        assert log.installed_driver_version() is None
        log.uninstall_existing_driver()

    def test_init_record_and_version(self, tmp_path: Path) -> None:
        log = BackupLog(str(tmp_path / "backup"))
        log.init_backup(Package(description="drv", version="1.0-9629"))
        log.record("/usr/lib/libGL.so.1")
        data = load_yaml(tmp_path / "backup" / "backup.yml")
        assert data["version"] == "1.0-9629"
        assert data["paths"] == ["/usr/lib/libGL.so.1"]
        assert BackupLog(str(tmp_path / "backup")).installed_driver_version() == "1.0-9629"

    def test_uninstall_removes_recorded_paths(self, tmp_path: Path) -> None:
        f = tmp_path / "libGL.so.1.0"
        f.write_text("x")
        link = tmp_path / "libGL.so.1"
        link.symlink_to("libGL.so.1.0")
        log = BackupLog(str(tmp_path / "backup"))
        log.init_backup(Package(version="1.0"))
        log.record(str(f))
        log.record(str(link))
        log.record(str(tmp_path / "already-gone"))

        fresh = BackupLog(str(tmp_path / "backup"))
        fresh.uninstall_existing_driver()
        assert not f.exists()
        assert not link.is_symlink()
        assert fresh.installed_driver_version() is None
        assert not (tmp_path / "backup" / "backup.yml").exists()

    def test_uninstall_failure(self, tmp_path: Path) -> None:
        log = BackupLog(str(tmp_path / "backup"))
        log.init_backup(Package(version="1.0"))
        log.record(str(tmp_path / "x"))
        (tmp_path / "x").write_text("x")
        with patch("drvinst.services.backup.os.unlink", side_effect=PermissionError("denied")):
            with pytest.raises(InstallStepError, match="卸载已安装驱动失败"):
                log.uninstall_existing_driver()

    def test_init_failure(self, tmp_path: Path) -> None:
        blocker = tmp_path / "backup"
        blocker.write_text("not a directory")
        with pytest.raises(BackupInitFailedError):
            BackupLog(str(blocker)).init_backup(Package(version="1.0"))

    def test_corrupt_record(self, tmp_path: Path) -> None:
        (tmp_path / "backup.yml").write_text("version: [unclosed\n", encoding="utf-8")
        with pytest.raises(InstallStepError, match="已损坏"):
            BackupLog(str(tmp_path)).installed_driver_version()

    def test_oversized_record(self, tmp_path: Path) -> None:
        (tmp_path / "backup.yml").write_text("x", encoding="utf-8")
        with patch("drvinst.utils.yaml_io.MAX_YAML_SIZE", 0):
            with pytest.raises(InstallStepError):
                BackupLog(str(tmp_path)).uninstall_existing_driver()
