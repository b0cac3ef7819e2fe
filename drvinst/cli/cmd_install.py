"""CLI — 安装命令"""

from __future__ import annotations

import sys
from typing import Any, Callable

import click

from drvinst.cli import _collect_overrides, _setup_logging
from drvinst.core.config import TLS_CHOICES, InstallOptions, init_options
from drvinst.core.exceptions import ConfigError


def register(group: click.Group) -> None:
    group.add_command(install)
    group.add_command(add_this_kernel)


_COMMON_OPTIONS = [
    click.option("--config", "-c", "config_path", default="/etc/drvinst.yml",
                 help="选项文件路径"),
    click.option("--package-dir", default=None, help="驱动包根目录（默认当前目录）"),
    click.option("--log-file-name", default=None, help="安装日志文件路径"),
    click.option("--no-log", is_flag=True, help="不写安装日志文件"),
    click.option("--no-questions", "-q", is_flag=True,
                 help="不提问，所有问题取默认答案"),
    click.option("--kernel-name", "-k", default=None, help="目标内核版本名"),
    click.option("--kernel-source-path", default=None, help="内核源码/头文件路径"),
    click.option("--cc", default=None, help="编译内核模块所用的编译器"),
]


def _common(func: Callable[..., Any]) -> Callable[..., Any]:
    for decorator in reversed(_COMMON_OPTIONS):
        func = decorator(func)
    return func


def _load_options(
    config_path: str, no_log: bool, kwargs: dict[str, Any], **forced: Any,
) -> InstallOptions:
    overrides = {**_collect_overrides(kwargs), **forced}
    if no_log:
        overrides["log_enabled"] = False
    try:
        options = init_options(config_path, **overrides)
    except ConfigError as e:
        raise click.UsageError(str(e)) from e
    if options.log_enabled and not _setup_logging(options.log_file_name):
        options = options.evolve(log_enabled=False)
    return options


@click.command()
@_common
@click.option("--accept-license", "-a", is_flag=True, help="接受许可协议")
@click.option("--expert", "-e", is_flag=True, help="专家模式，询问安装前缀等更多问题")
@click.option("--no-kernel-module", is_flag=True, help="不安装内核模块")
@click.option("--no-kernel-module-source", is_flag=True, help="不安装内核模块源码")
@click.option("--kernel-module-only", "-K", is_flag=True, help="只安装内核模块")
@click.option("--dkms", is_flag=True, help="向 DKMS 注册内核模块")
@click.option("--kernel-install-path", "kernel_module_installation_path", default=None,
              help="内核模块安装目录")
@click.option("--ignore-cc-version-check", "ignore_cc_mismatch", is_flag=True,
              help="忽略编译器版本检查")
@click.option("--no-opengl-files", is_flag=True, help="不安装 OpenGL 文件")
@click.option("--opengl-headers", is_flag=True, help="安装 OpenGL 头文件")
@click.option("--no-compat32-libs", is_flag=True, help="不安装 32 位兼容库")
@click.option("--force-tls", "tls", type=click.Choice(TLS_CHOICES), default=None,
              help="强制选择 TLS 库类型")
@click.option("--force-tls-compat32", "tls_compat32", type=click.Choice(TLS_CHOICES),
              default=None, help="强制选择 32 位兼容 TLS 库类型")
@click.option("--x-prefix", default=None, help="X 库安装前缀")
@click.option("--opengl-prefix", default=None, help="OpenGL 库安装前缀")
@click.option("--utility-prefix", default=None, help="工具程序安装前缀")
@click.option("--documentation-prefix", default=None, help="文档安装前缀")
@click.option("--no-nvidia-xconfig-question", is_flag=True,
              help="不询问是否更新 X 配置")
@click.option("--run-nvidia-xconfig", is_flag=True,
              help="默认运行 nvidia-xconfig 更新 X 配置")
def install(config_path: str, no_log: bool, no_compat32_libs: bool, **kwargs: Any) -> None:
    """从当前驱动包安装驱动"""
    from drvinst.services.orchestrator import install_from_cwd

    forced = {"compat32_libs": False} if no_compat32_libs else {}
    options = _load_options(config_path, no_log, kwargs, **forced)
    sys.exit(0 if install_from_cwd(options) else 1)


@click.command(name="add-this-kernel")
@_common
def add_this_kernel(config_path: str, no_log: bool, **kwargs: Any) -> None:
    """为运行内核生成预编译内核接口"""
    from drvinst.services.orchestrator import add_this_kernel as _add_this_kernel

    options = _load_options(config_path, no_log, kwargs)
    sys.exit(0 if _add_this_kernel(options) else 1)
