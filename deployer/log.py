"""Per-deployment logger.

Every stage receives the same ``DeploymentLogger``. It writes each entry to the
console (colorized by level) and appends it to ``logs/deployment-<id>.log`` as

    [2025-01-01T12:00:00.000Z] INFO: message {"optional": "json"}
"""
from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional

from loguru import logger

# loguru level name -> tag written to the log line
LEVEL_TAGS = {
    "DEBUG": "DEBUG",
    "INFO": "INFO",
    "SUCCESS": "SUCCESS",
    "WARNING": "WARN",
    "ERROR": "ERROR",
    "CRITICAL": "ERROR",
}

LINE_FORMAT = "[{extra[timestamp]}] {extra[tag]}: {message}{extra[data]}"


def _timestamp() -> str:
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _file_format(record) -> str:
    return LINE_FORMAT + "\n"


def _console_format(record) -> str:
    return "<level>" + LINE_FORMAT + "</level>\n"


class DeploymentLogger:
    def __init__(
        self,
        deployment_id: str,
        log_file: Optional[Path] = None,
        console: bool = True,
        console_level: str = "INFO",
    ):
        self.deployment_id = deployment_id
        self.log_file = Path(log_file) if log_file is not None else None
        self._logger = logger.bind(deployment_id=deployment_id)
        self._handler_ids: List[int] = []

        if console:
            self._handler_ids.append(
                logger.add(
                    sys.stdout,
                    level=console_level,
                    format=_console_format,
                    filter=self._owns,
                    colorize=True,
                )
            )

        if self.log_file is not None:
            try:
                self._handler_ids.append(
                    logger.add(
                        str(self.log_file),
                        level="DEBUG",
                        format=_file_format,
                        filter=self._owns,
                        colorize=False,
                        encoding="utf-8",
                    )
                )
            except OSError as e:
                self.log_file = None
                print(f"Failed to open log file: {e}", file=sys.stderr)

    def _owns(self, record) -> bool:
        return record["extra"].get("deployment_id") == self.deployment_id

    def log(self, level: str, message: str, data: Any = None) -> None:
        level = level.upper()
        if level == "WARN":
            level = "WARNING"
        suffix = ""
        if data is not None:
            suffix = " " + json.dumps(data, default=str)
        self._logger.bind(
            timestamp=_timestamp(),
            tag=LEVEL_TAGS.get(level, level),
            data=suffix,
        ).log(level, message)

    def debug(self, message: str, data: Any = None) -> None:
        self.log("DEBUG", message, data)

    def info(self, message: str, data: Any = None) -> None:
        self.log("INFO", message, data)

    def warn(self, message: str, data: Any = None) -> None:
        self.log("WARNING", message, data)

    warning = warn

    def error(self, message: str, data: Any = None) -> None:
        self.log("ERROR", message, data)

    def success(self, message: str, data: Any = None) -> None:
        self.log("SUCCESS", message, data)

    def close(self) -> None:
        for handler_id in self._handler_ids:
            try:
                logger.remove(handler_id)
            except ValueError:
                pass
        self._handler_ids = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False
