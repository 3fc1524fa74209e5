"""Console + file logging for a deploy run.

Every line the run prints (step headers, info messages, and the merged
stdout/stderr of the commands it shells out to) goes through the `ssh_deploy`
logger, so the console and `deploy_<YYYYMMDD_HHMMSS>.log` see the same text.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from pathlib import Path

LOGGER_NAME = "ssh_deploy"
LOG_PREFIX = "[ssh-deploy]"

logger = logging.getLogger(LOGGER_NAME)

STEP_COLOR = "\033[95m"
COLOR_RESET = "\033[0m"


def deploy_log_filename(now: datetime | None = None) -> str:
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    return f"deploy_{stamp}.log"


class _ColorStripFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        return text.replace(STEP_COLOR, "").replace(COLOR_RESET, "")


def setup_logging(
    *,
    log_dir: Path | None,
    now: datetime | None = None,
    stream=None,
) -> Path | None:
    """Attach console and (optionally) file handlers to the deploy logger.

    Returns the path of the log file, or None when file logging is disabled.
    Handlers from a previous call are replaced.
    """
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(logging.INFO)
    logger.propagate = False

    console = logging.StreamHandler(stream or sys.stdout)
    console.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(console)

    if log_dir is None:
        return None

    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / deploy_log_filename(now)
    file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    file_handler.setFormatter(_ColorStripFormatter("%(asctime)s %(levelname)s %(message)s"))
    logger.addHandler(file_handler)
    return log_path


class StepLog:
    """Numbered step headers and prefixed info lines."""

    def __init__(self, *, color: bool = True):
        self._step_number = 0
        self._color = color

    @property
    def step_number(self) -> int:
        return self._step_number

    def step(self, message: str, *, icon: str = "🚀") -> None:
        self._step_number += 1
        line = f"{LOG_PREFIX} {icon} Step {self._step_number}: {message}"
        if self._color:
            line = f"{STEP_COLOR}{line}{COLOR_RESET}"
        logger.info(line)

    def info(self, message: str, *, icon: str = "ℹ️") -> None:
        logger.info(f"{LOG_PREFIX} {icon} {message}")

    def success(self, message: str) -> None:
        logger.info(f"{LOG_PREFIX} ✅ {message}")

    def warning(self, message: str) -> None:
        logger.warning(f"{LOG_PREFIX} ⚠️  {message}")

    def error(self, message: str) -> None:
        logger.error(f"{LOG_PREFIX} ❌ {message}")


def mask_secret(value: str) -> str:
    if not value:
        return ""
    return value[:4] + "..." + value[-4:] if len(value) > 12 else "****"
