"""drvinst 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
"""

import os
from typing import Any

import click

from drvinst import __version__
from drvinst.utils.logger import setup_logging


def _collect_overrides(kwargs: dict[str, Any]) -> dict[str, Any]:
    """只保留命令行上显式给出的选项（None / False 视为未指定）"""
    return {k: v for k, v in kwargs.items() if v is not None and v is not False}


def _setup_logging(log_file: str | None = None) -> bool:
    return setup_logging(
        level=os.getenv("DRVINST_LOG_LEVEL", "WARNING"),
        json_output=os.getenv("DRVINST_LOG_JSON", "") == "1",
        log_file=log_file,
    )


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """drvinst - 显卡驱动安装器"""
    _setup_logging()


# 注册各领域子命令
from drvinst.cli.cmd_install import register as _reg_install  # noqa: E402

_reg_install(main)
