"""Logging setup for fleetcmd."""

from __future__ import annotations

import os
import shutil
import sys
from datetime import datetime
from pathlib import Path

from loguru import logger

_CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level:<7}</level> | "
    "<cyan>{extra[tag]}</cyan> | <level>{message}</level>"
)
_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<7} | {extra[tag]} | {message}"


def _formatter(template: str):
    """Loguru format function that tolerates records logged without a tag."""

    def format_record(record) -> str:
        record["extra"].setdefault("tag", "-")
        return template + "\n{exception}"

    return format_record


def configure_logging(level: str | None = None, console: bool = True) -> None:
    """Replace loguru's default sink with the fleetcmd console sink."""
    level = (level or os.getenv("FLEETCMD_LOG_LEVEL", "INFO")).upper()
    logger.remove()
    if not console:
        return
    logger.add(
        sys.stderr,
        level=level,
        format=_formatter(_CONSOLE_FORMAT),
        colorize=None,
        backtrace=False,
        diagnose=False,
    )


def log(level: str, message: str, tag: str, host: str | None = None) -> None:
    """Log one message tagged with its origin, e.g. ``err :: web1``."""
    logger.bind(tag=tag, host=host).opt(depth=1).log(level, message.rstrip("\r\n"))


def add_host_log_files(
    log_dir: Path, hosts: list[str], source_path: Path | None = None
) -> tuple[Path, list[int]]:
    """Add one log file per host under a timestamped directory.

    Returns the directory and the loguru sink ids so the caller can remove
    them once the run is over.
    """
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    run_dir = log_dir / timestamp
    run_dir.mkdir(parents=True, exist_ok=True)

    # Copy the source config file to the log directory
    if source_path and source_path.exists():
        shutil.copy(source_path, run_dir / "config.yaml")

    sink_ids = []
    for host in hosts:
        sink_ids.append(
            logger.add(
                run_dir / f"{host}.log",
                level="DEBUG",
                format=_formatter(_FILE_FORMAT),
                filter=lambda record, host=host: record["extra"].get("host") == host,
            )
        )
    return run_dir, sink_ids


def remove_sinks(sink_ids: list[int]) -> None:
    for sink_id in sink_ids:
        logger.remove(sink_id)
