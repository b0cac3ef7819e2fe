"""系统协作者 — 环境探测 / 发行版钩子 / DKMS / X 配置

这些实现只读取 /proc、/sys 等系统接口或调用外部工具，
不保存任何状态；每个探测都在调用时同步检查一次。
"""

from __future__ import annotations

import logging
import os
import platform
import re
import shutil
from pathlib import Path

from drvinst.core.exceptions import InstallStepError
from drvinst.core.models import FileType, Package
from drvinst.utils.shell import CommandExecutor, get_executor

logger = logging.getLogger(__name__)

NVIDIA_PCI_VENDOR = "0x10de"
CONFLICTING_DRIVERS = ("nouveau",)


def _read_text(path: str | Path) -> str | None:
    try:
        return Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None


class SystemProbe:
    """基于 /proc 和 /sys 的环境探测"""

    def __init__(
        self, root: str = "/", executor: CommandExecutor | None = None,
    ) -> None:
        self.root = Path(root)
        self.executor = executor or get_executor()

    def _path(self, rel: str) -> Path:
        return self.root / rel.lstrip("/")

    def _loaded_modules(self) -> set[str]:
        text = _read_text(self._path("/proc/modules")) or ""
        return {line.split()[0] for line in text.splitlines() if line.strip()}

    def gpu_warnings(self) -> list[str]:
        """检查系统中是否存在受支持的显卡，返回提示信息"""
        devices = self._path("/sys/bus/pci/devices")
        if not devices.is_dir():
            return []
        found = False
        for dev in devices.iterdir():
            vendor = (_read_text(dev / "vendor") or "").strip()
            pci_class = (_read_text(dev / "class") or "").strip()
            if vendor == NVIDIA_PCI_VENDOR and pci_class.startswith("0x03"):
                found = True
                break
        if found:
            return []
        return ["未在系统中检测到 NVIDIA 显卡，驱动安装后可能无法使用。"]

    def x_server_running(self) -> bool:
        """通过 /tmp/.X<n>-lock 中记录的进程判断 X 服务是否在运行"""
        for n in range(8):
            lock = self._path(f"/tmp/.X{n}-lock")
            text = _read_text(lock)
            if text is None:
                continue
            pid = text.strip()
            if pid.isdigit() and self._path(f"/proc/{pid}").exists():
                logger.debug("检测到运行中的 X 服务: display :%d (pid %s)", n, pid)
                return True
        return False

    def kernel_module_loaded(self, name: str) -> bool:
        return name in self._loaded_modules()

    def conflicting_driver_active(self) -> bool:
        loaded = self._loaded_modules()
        return any(d in loaded for d in CONFLICTING_DRIVERS)

    def supports_new_tls(self) -> bool:
        """glibc 2.3 及以上支持新式 TLS"""
        libc = platform.libc_ver()
        if libc[0] != "glibc" or not libc[1]:
            return True
        major, _, minor = libc[1].partition(".")
        try:
            return (int(major), int(minor.split(".")[0] or 0)) >= (2, 3)
        except ValueError:
            return True

    def is_x86_64(self) -> bool:
        return platform.machine() == "x86_64"

    def sysvipc_ok(self) -> bool:
        """OpenGL 驱动依赖 System V 共享内存"""
        return self._path("/proc/sysvipc/shm").exists()

    def runtime_configuration_ok(self, package: Package) -> bool:
        """确认动态链接器能找到刚安装的 OpenGL 库"""
        libs = [
            e for e in package.entries
            if e.type is FileType.OPENGL_LIB and e.dst
        ]
        if not libs:
            return True
        r = self.executor.execute(["ldconfig", "-p"])
        if not r.success:
            logger.warning("无法执行 ldconfig -p: %s", r.stderr.strip())
            return True
        cache = r.stdout
        missing = [e.name for e in libs if e.name not in cache]
        for name in missing:
            logger.error("动态链接器缓存中找不到 %s", name)
        return not missing

    def distro(self) -> str:
        text = _read_text(self._path("/etc/os-release")) or ""
        m = re.search(r'^ID="?([^"\n]+)"?', text, re.MULTILINE)
        return m.group(1).lower() if m else "unknown"


class DistroHookRunner:
    """运行发行版提供的钩子脚本（pre-install / post-install / failed-install）"""

    def __init__(self, hook_dir: str, executor: CommandExecutor | None = None) -> None:
        self.hook_dir = Path(hook_dir)
        self.executor = executor or get_executor()

    def run(self, name: str) -> bool:
        script = self.hook_dir / name
        if not script.exists():
            return True
        if not os.access(script, os.X_OK):
            logger.warning("钩子脚本不可执行: %s", script)
            return False
        logger.info("运行发行版钩子: %s", script)
        r = self.executor.execute([str(script)])
        if not r.success:
            logger.error("钩子 %s 失败 (rc=%d): %s", name, r.returncode, r.output)
        return r.success


class DkmsAdapter:
    """通过 DKMS 注册内核模块源码，以便新内核自动重建"""

    module_name = "nvidia"

    def __init__(self, executor: CommandExecutor | None = None) -> None:
        self.executor = executor or get_executor()

    def available(self) -> bool:
        return shutil.which("dkms") is not None

    def install(self, version: str, kernel_name: str) -> None:
        spec = f"{self.module_name}/{version}"
        for action in ("add", "build", "install"):
            argv = ["dkms", action, "-m", self.module_name, "-v", version]
            if action != "add":
                argv += ["-k", kernel_name]
            r = self.executor.execute(argv)
            if not r.success:
                raise InstallStepError(
                    f"DKMS {action} {spec} 失败 (rc={r.returncode}): {r.output[:500]}")
            logger.info("DKMS %s %s 完成", action, spec)


class XConfigTool:
    """运行 nvidia-xconfig 更新 X 配置文件"""

    def __init__(
        self, tool: str = "nvidia-xconfig", executor: CommandExecutor | None = None,
    ) -> None:
        self.tool = tool
        self.executor = executor or get_executor()

    def run(self) -> bool:
        r = self.executor.execute([self.tool])
        if not r.success:
            logger.warning("%s 失败 (rc=%d): %s", self.tool, r.returncode, r.output)
        return r.success
