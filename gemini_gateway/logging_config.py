from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

from gemini_gateway.config import LoggingConfig

LOGGER_NAMESPACE = "gemini_gateway"
LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s"

_installed_handlers: list[logging.Handler] = []


def render_log_path(
    directory: str | Path,
    pattern: str,
    date_pattern: str,
    now: datetime | None = None,
) -> Path:
    stamp = (now or datetime.now()).strftime(date_pattern)
    return Path(directory) / pattern.replace("%DATE%", stamp)


class DateStampedFileHandler(logging.FileHandler):
    """File handler whose file name carries the current date.

    The target path is recomputed on every emit and the stream is reopened
    when the date rolls over, so each day gets its own file.
    """

    def __init__(
        self,
        directory: str | Path,
        pattern: str,
        date_pattern: str,
        level: int = logging.NOTSET,
    ) -> None:
        self._directory = Path(directory)
        self._pattern = pattern
        self._date_pattern = date_pattern
        path = self.current_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        super().__init__(path, encoding="utf-8", delay=True)
        self.setLevel(level)

    def current_path(self) -> Path:
        return render_log_path(self._directory, self._pattern, self._date_pattern)

    def emit(self, record: logging.LogRecord) -> None:
        target = os.path.abspath(self.current_path())
        if target != self.baseFilename:
            if self.stream is not None:
                self.stream.close()
                self.stream = None  # type: ignore[assignment]
            Path(target).parent.mkdir(parents=True, exist_ok=True)
            self.baseFilename = target
        super().emit(record)


def configure_logging(config: LoggingConfig) -> list[logging.Handler]:
    shutdown_logging()

    logger = logging.getLogger(LOGGER_NAMESPACE)
    logger.setLevel(config.level)

    formatter = logging.Formatter(LOG_FORMAT)
    console = logging.StreamHandler(sys.stderr)
    combined = DateStampedFileHandler(
        config.dir, config.combined_log_pattern, config.date_pattern
    )
    errors = DateStampedFileHandler(
        config.dir,
        config.error_log_pattern,
        config.date_pattern,
        level=logging.WARNING,
    )
    for handler in (console, combined, errors):
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        _installed_handlers.append(handler)
    return list(_installed_handlers)


def shutdown_logging() -> None:
    logger = logging.getLogger(LOGGER_NAMESPACE)
    while _installed_handlers:
        handler = _installed_handlers.pop()
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)


def _render(message: Any, context: str | None) -> str:
    if isinstance(message, (dict, list)):
        text = json.dumps(message, ensure_ascii=False, default=str)
    else:
        text = str(message)
    if context:
        return f"[{context}] {text}"
    return text


class GatewayLogger:
    """Logging sink handed to services.

    ``context`` names the owning component; the optional per-call context
    names the operation (for example ``create_chat_completion``).
    """

    def __init__(self, context: str) -> None:
        self.context = context
        self._logger = logging.getLogger(f"{LOGGER_NAMESPACE}.{context}")

    def log(self, message: Any, context: str | None = None) -> None:
        self._logger.info(_render(message, context))

    def debug(self, message: Any, context: str | None = None) -> None:
        self._logger.debug(_render(message, context))

    def warn(self, message: Any, context: str | None = None) -> None:
        self._logger.warning(_render(message, context))

    def error(
        self,
        message: Any,
        trace: str | None = None,
        context: str | None = None,
    ) -> None:
        rendered = _render(message, context)
        if trace:
            rendered = f"{rendered}\n{trace}"
        self._logger.error(rendered)
