from __future__ import annotations

import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import TextIO

from primer_cache.config.models import LoggingSettings

LOG_FORMAT = "[%(asctime)s][%(levelname)s][%(name)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _parse_level(name: str) -> int:
    level = logging.getLevelNamesMapping().get(name.strip().upper())
    if level is None:
        raise ValueError(f"Invalid logging level: {name}")
    return level


def _stream_for(target: str) -> TextIO:
    # stdout carries primer content; logging there is opt-in.
    return sys.stdout if target == "stdout" else sys.stderr


def init_logging(settings: LoggingSettings) -> None:
    """
    Configure the root logger for the primer cache.

    Records go to the configured stream (stderr unless asked otherwise) and,
    when `file.path` is set, to a daily rotating file. Third-party loggers
    listed in `library_levels` are pinned to their own level so that a DEBUG
    run shows cache activity without aiohttp connection chatter.
    """
    level = _parse_level(settings.level)
    library_levels = {name: _parse_level(value) for name, value in settings.library_levels.items()}

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    stream_handler = logging.StreamHandler(_stream_for(settings.stream))
    stream_handler.setFormatter(formatter)
    root_logger.addHandler(stream_handler)

    for name, library_level in library_levels.items():
        logging.getLogger(name).setLevel(library_level)

    file_path = settings.file.path.strip()
    if not file_path:
        return

    log_path = Path(file_path).expanduser()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = TimedRotatingFileHandler(
            filename=str(log_path),
            when="midnight",
            backupCount=settings.file.rotation.backup_count,
            encoding="utf-8",
        )
    except OSError:
        root_logger.error("File logging unavailable. path=%s", log_path, exc_info=True)
        return

    file_handler.suffix = "%Y-%m-%d"
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)


__all__ = ["init_logging"]
