"""控制台用户界面

基于 click 的交互实现。no_questions 模式下所有提问直接取默认答案，
许可协议仍需 --accept-license 显式接受。
"""

from __future__ import annotations

import logging
import textwrap
from typing import Any

import click

logger = logging.getLogger("drvinst.ui")

_WIDTH = 78


def _wrap(message: str, prefix: str = "") -> str:
    paragraphs = message.split("\n")
    lines = []
    for p in paragraphs:
        if not p.strip():
            lines.append("")
            continue
        lines.extend(textwrap.wrap(
            p, width=_WIDTH, initial_indent=prefix,
            subsequent_indent=" " * len(prefix),
        ))
    return "\n".join(lines)


class ConsoleUI:
    """终端交互"""

    def __init__(self, no_questions: bool = False) -> None:
        self.no_questions = no_questions

    def set_title(self, title: str) -> None:
        logger.info("%s", title)
        click.secho(f"\n{title}\n", bold=True)

    def log(self, message: str) -> None:
        logger.info("%s", message)

    def message(self, message: str) -> None:
        logger.info("%s", message)
        click.echo(_wrap(message))

    def warn(self, message: str) -> None:
        logger.warning("%s", message)
        click.secho(_wrap(message, "警告: "), fg="yellow", err=True)

    def error(self, message: str) -> None:
        logger.error("%s", message)
        click.secho(_wrap(message, "错误: "), fg="red", err=True)

    def yes_no(self, default: bool, question: str) -> bool:
        if self.no_questions:
            logger.info("%s -> %s (默认)", question, "是" if default else "否")
            return default
        answer = click.confirm(_wrap(question), default=default)
        logger.info("%s -> %s", question, "是" if answer else "否")
        return answer

    def get_input(self, default: str, question: str) -> str:
        if self.no_questions:
            return default
        answer: str = click.prompt(_wrap(question), default=default)
        logger.info("%s -> %s", question, answer)
        return answer

    def display_license(self, text: str) -> bool:
        if self.no_questions:
            self.error(
                "无人值守模式下必须通过 --accept-license 接受许可协议。")
            return False
        click.echo_via_pager(text)
        return click.confirm("是否接受上述许可协议？", default=False)

    def approve_command_list(self, commands: Any, description: str) -> bool:
        for line in commands.describe():
            logger.debug("  %s", line)
        if self.no_questions:
            return True
        return click.confirm(
            f"即将安装 {description}（共 {len(commands)} 项操作），是否继续？",
            default=True,
        )
