"""备份记录

以 YAML 文件记录当前安装的驱动版本和本次安装创建的路径，
下次安装前据此卸载旧驱动。
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml

from drvinst.core.exceptions import BackupInitFailedError, InstallStepError
from drvinst.core.models import Package
from drvinst.utils.yaml_io import load_yaml, save_yaml

logger = logging.getLogger(__name__)

BACKUP_FILE = "backup.yml"


class BackupLog:
    """基于 YAML 的备份记录"""

    def __init__(self, backup_dir: str) -> None:
        self.backup_dir = Path(backup_dir)
        self.record_file = self.backup_dir / BACKUP_FILE
        self._data: dict[str, Any] | None = None

    def _load(self) -> dict[str, Any]:
        if self._data is None:
            try:
                self._data = load_yaml(self.record_file)
            except (yaml.YAMLError, OSError, ValueError) as e:
                raise InstallStepError(f"备份记录 {self.record_file} 无法读取或已损坏: {e}") from e
        return self._data

    def installed_driver_version(self) -> str | None:
        version = self._load().get("version")
        return str(version) if version else None

    def uninstall_existing_driver(self) -> None:
        """删除上一次安装记录中的全部路径"""
        data = self._load()
        paths = data.get("paths", [])
        if not paths:
            return
        logger.info("卸载已安装的驱动 %s (%d 个文件)", data.get("version"), len(paths))
        for path in reversed(paths):
            try:
                if os.path.lexists(path):
                    os.unlink(path)
            except OSError as e:
                raise InstallStepError(f"卸载已安装驱动失败，无法删除 {path}: {e}") from e
        self._data = {}
        try:
            self.record_file.unlink(missing_ok=True)
        except OSError as e:
            raise InstallStepError(f"无法删除备份记录 {self.record_file}: {e}") from e

    def init_backup(self, package: Package) -> None:
        """为本次安装新建一份空记录，必须在任何修改操作之前调用"""
        self._data = {
            "version": package.version,
            "description": package.description,
            "created_at": datetime.now(timezone.utc).isoformat(),
            "paths": [],
        }
        try:
            save_yaml(self.record_file, self._data)
        except OSError as e:
            raise BackupInitFailedError(f"无法初始化备份记录 {self.record_file}: {e}") from e
        logger.info("备份记录已初始化: %s", self.record_file)

    def record(self, path: str) -> None:
        """登记一个本次安装创建的路径"""
        data = self._load()
        data.setdefault("paths", []).append(path)
        save_yaml(self.record_file, data)
