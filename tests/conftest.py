"""测试公共夹具：示例驱动包与全 mock 的服务容器"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable
from unittest.mock import MagicMock

import pytest

from drvinst.core.config import InstallOptions
from drvinst.services.command_list import CommandListBuilder
from drvinst.services.container import ServiceContainer

HEADER = [
    "NVIDIA Accelerated Graphics Driver for Linux-x86_64",
    "1.0-9629",
    "nv-linux.o",
    "nvidia",
    "nvidia nvidia_drv",
    "nvidia.o nvidia.ko",
    "usr/src/nv/",
    "usr/src/nv/precompiled//",
]

ENTRIES = [
    "usr/src/nv/Makefile 0644 KERNEL_MODULE_SRC",
    "usr/src/nv/conftest.sh 0755 KERNEL_MODULE_CMD",
    "usr/include/GL/gl.h 0644 OPENGL_HEADER",
    "usr/lib/libGL.so.1.0.9629 0755 OPENGL_LIB NATIVE",
    "libGL.so.1 0777 OPENGL_SYMLINK NATIVE libGL.so.1.0.9629",
    "usr/lib/libGL.la 0644 LIBGL_LA NATIVE",
    "usr/lib/tls/libnvidia-tls.so.1.0.9629 0644 TLS_LIB NATIVE NEW tls",
    "usr/lib/libnvidia-tls.so.1.0.9629 0644 TLS_LIB NATIVE CLASSIC .",
    "usr/lib32/libGL.so.1.0.9629 0755 OPENGL_LIB COMPAT32",
    "usr/lib/libcuda.so.1.0.9629 0755 CUDA_LIB NATIVE .",
    "usr/bin/nvidia-settings 0755 UTILITY_BINARY",
    "usr/share/doc/README.txt 0644 DOCUMENTATION .",
    "usr/share/man/man1/nvidia-settings.1.gz 0644 MANPAGE",
    "usr/share/applications/nvidia-settings.desktop 0644 DOT_DESKTOP",
    "usr/X11R6/lib/modules/drivers/nvidia_drv.so 0755 XMODULE_SHARED_LIB drivers",
]

LIBGL_LA = "# __GENERATED_BY__\nlibdir='__LIBGL_PATH__'\n"
DESKTOP = "[Desktop Entry]\nExec=__UTILS_PATH__/nvidia-settings\nIcon=__PIXMAP_PATH__/nvidia-settings.png\n"


def manifest_text(header: list[str] | None = None, entries: list[str] | None = None) -> str:
    lines = list(HEADER if header is None else header)
    lines += ENTRIES if entries is None else entries
    return "\n".join(lines) + "\n"


@pytest.fixture
def pkg_dir(tmp_path: Path) -> Path:
    """写入一个完整的示例驱动包"""
    root = tmp_path / "pkg"
    root.mkdir()
    (root / ".manifest").write_text(manifest_text(), encoding="utf-8")
    (root / "LICENSE").write_text("示例许可协议\n", encoding="utf-8")
    la = root / "usr/lib/libGL.la"
    la.parent.mkdir(parents=True)
    la.write_text(LIBGL_LA, encoding="utf-8")
    desktop = root / "usr/share/applications/nvidia-settings.desktop"
    desktop.parent.mkdir(parents=True)
    desktop.write_text(DESKTOP, encoding="utf-8")
    return root


@pytest.fixture
def options(pkg_dir: Path, tmp_path: Path) -> InstallOptions:
    return InstallOptions(
        package_dir=str(pkg_dir),
        log_enabled=False,
        staging_dir=str(tmp_path / "staging"),
        backup_dir=str(tmp_path / "backup"),
        hook_dir=str(tmp_path / "hooks"),
    )


def make_ui() -> MagicMock:
    """所有问题取默认答案，许可协议与操作列表一律接受"""
    ui = MagicMock(name="ui")
    ui.yes_no.side_effect = lambda default, question: default
    ui.get_input.side_effect = lambda default, question: default
    ui.display_license.return_value = True
    ui.approve_command_list.return_value = True
    return ui


def make_probe() -> MagicMock:
    probe = MagicMock(name="probe")
    probe.gpu_warnings.return_value = []
    probe.x_server_running.return_value = False
    probe.kernel_module_loaded.return_value = False
    probe.conflicting_driver_active.return_value = False
    probe.supports_new_tls.return_value = True
    probe.is_x86_64.return_value = True
    probe.sysvipc_ok.return_value = True
    probe.runtime_configuration_ok.return_value = True
    probe.distro.return_value = "ubuntu"
    return probe


def make_toolchain(module_file: str = "/tmp/drvinst-test/nvidia.ko") -> MagicMock:
    tc = MagicMock(name="toolchain")
    tc.kernel_name.return_value = "5.15.0-test"
    tc.kernel_signature.return_value = "Linux version 5.15.0-test (gcc version 11.4.0)"
    tc.module_installation_path.return_value = "/lib/modules/5.15.0-test/kernel/drivers/video"
    tc.check_modprobe_path.return_value = True
    tc.find_precompiled_interface.return_value = "/pkg/precompiled/5.15.0-test/nv-linux.o"
    tc.link_module.return_value = module_file
    tc.build_module.return_value = module_file
    tc.test_module.return_value = True
    tc.missing_development_tools.return_value = []
    tc.cc_version_compatible.return_value = (True, "")
    tc.kernel_source_path.return_value = "/lib/modules/5.15.0-test/build"
    return tc


@pytest.fixture
def make_container(options: InstallOptions) -> Callable[..., ServiceContainer]:
    """构造协作者全部为 mock 的容器，关键字参数覆盖默认 mock"""

    def _make(opts: InstallOptions | None = None, **overrides: Any) -> ServiceContainer:
        backup = MagicMock(name="backup")
        backup.installed_driver_version.return_value = None
        hooks = MagicMock(name="hooks")
        hooks.run.return_value = True
        dkms = MagicMock(name="dkms")
        dkms.available.return_value = False
        xconfig = MagicMock(name="xconfig")
        xconfig.run.return_value = True
        collaborators: dict[str, Any] = {
            "ui": make_ui(),
            "probe": make_probe(),
            "toolchain": make_toolchain(),
            "builder": CommandListBuilder(),
            "runner": MagicMock(name="runner"),
            "backup": backup,
            "hooks": hooks,
            "dkms": dkms,
            "xconfig": xconfig,
        }
        collaborators.update(overrides)
        return ServiceContainer(opts or options, **collaborators)

    return _make
