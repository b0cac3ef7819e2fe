"""安装选项

InstallOptions 是只读的值对象，显式传入每个安装阶段。
阶段之间需要修改选项时（例如强制关闭 DKMS），通过 evolve() 返回新值，
而不是原地修改共享状态。
支持从 YAML 文件加载 + 命令行覆盖。
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from drvinst.core.exceptions import ConfigError
from drvinst.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

TLS_CHOICES = ("auto", "classic", "new")


@dataclass(frozen=True)
class InstallOptions:
    """安装器全局选项"""

    # 包与日志
    package_dir: str = "."
    manifest: str = ".manifest"
    license_file: str = "LICENSE"
    log_enabled: bool = True
    log_file_name: str = "/var/log/drvinst.log"

    # 交互
    accept_license: bool = False
    no_questions: bool = False
    expert: bool = False

    # 内核模块
    no_kernel_module: bool = False
    no_kernel_module_source: bool = False
    kernel_module_only: bool = False
    dkms: bool = False
    kernel_name: str = ""
    kernel_source_path: str = ""
    kernel_module_installation_path: str = ""
    cc: str = "cc"
    ignore_cc_mismatch: bool = False

    # 文件集
    no_opengl_files: bool = False
    opengl_headers: bool = False
    compat32_libs: bool = True
    tls: str = "auto"
    tls_compat32: str = "auto"

    # 安装前缀
    x_prefix: str = "/usr"
    x_libdir: str = "lib"
    x_module_path: str = "/usr/lib/xorg/modules"
    opengl_prefix: str = "/usr"
    opengl_libdir: str = "lib"
    compat32_libdir: str = "lib32"
    utility_prefix: str = "/usr"
    utility_libdir: str = "lib"
    documentation_prefix: str = "/usr"
    kernel_module_src_prefix: str = "/usr/src"
    opencl_icd_dir: str = "/etc/OpenCL/vendors"

    # 收尾
    no_nvidia_xconfig_question: bool = False
    run_nvidia_xconfig: bool = False

    # 外部协作者位置
    hook_dir: str = "/usr/lib/nvidia"
    backup_dir: str = "/var/lib/drvinst"
    staging_dir: str = ""

    # 自定义扩展 (放不到字段里的配置项)
    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for name in ("tls", "tls_compat32"):
            value = getattr(self, name)
            if value not in TLS_CHOICES:
                raise ConfigError(f"{name} 取值无效: {value} (可选 {', '.join(TLS_CHOICES)})")

    @property
    def manifest_path(self) -> str:
        return str(Path(self.package_dir) / self.manifest)

    def evolve(self, **changes: Any) -> InstallOptions:
        """返回修改了指定字段的新选项"""
        return dataclasses.replace(self, **changes)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InstallOptions:
        known = {f.name for f in dataclasses.fields(cls)} - {"extra"}
        matched = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}
        return cls(**matched, extra=extra)

    @classmethod
    def from_file(cls, path: str = "/etc/drvinst.yml") -> InstallOptions:
        """从 YAML 文件加载选项，不存在则返回默认"""
        try:
            data = load_yaml(path)
        except (yaml.YAMLError, OSError, ValueError) as e:
            raise ConfigError(f"无法加载选项文件 {path}: {e}") from e
        if not data:
            return cls()
        return cls.from_dict(data)

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)


# 进程级默认选项，首次 import 时不加载文件；由 CLI 入口显式初始化
_current: InstallOptions | None = None


def get_options() -> InstallOptions:
    """获取当前选项（未初始化则返回默认值）"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = InstallOptions()
    return _current


def init_options(path: str = "/etc/drvinst.yml", **overrides: Any) -> InstallOptions:
    """从文件初始化选项，并应用命令行覆盖"""
    global _current  # noqa: PLW0603
    options = InstallOptions.from_file(path)
    if overrides:
        options = options.evolve(**overrides)
    _current = options
    logger.info("选项已加载: %s", path)
    return _current
