"""drvinst 日志配置

终端输出支持普通文本和结构化 JSON 两种格式；
启用安装日志时，额外把完整的 DEBUG 级别记录写入日志文件，
安装失败时提示用户查看该文件。
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

_FILE_FORMAT = "%(asctime)s [%(levelname)-7s] %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """结构化 JSON 日志格式器，便于自动化部署工具消费"""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, ensure_ascii=False)


def setup_logging(
    level: str = "WARNING",
    json_output: bool = False,
    log_file: str | None = None,
) -> bool:
    """配置根日志器

    参数:
        level: 终端日志级别字符串（DEBUG, INFO, WARNING, ERROR, CRITICAL）
        json_output: 为 True 时终端使用 JSON 格式
        log_file: 安装日志文件路径，None 表示不写文件

    返回:
        bool: 日志文件是否成功打开（未请求日志文件时为 False）
    """
    reset_logging()
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(getattr(logging, level.upper(), logging.WARNING))
    if json_output:
        console.setFormatter(JSONFormatter())
    else:
        console.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    root.addHandler(console)

    if not log_file:
        return False
    try:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="w", encoding="utf-8")
    except OSError as e:
        logging.getLogger(__name__).warning("无法打开日志文件 %s: %s", log_file, e)
        return False
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
    root.addHandler(file_handler)
    return True


def reset_logging() -> None:
    """清理根日志器上已注册的 handlers"""
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
