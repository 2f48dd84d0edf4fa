"""Настройка логирования сервиса."""

import logging
import sys

from coauthor.core.config import settings


class StructuredFormatter(logging.Formatter):
    """Форматтер вида key=value для удобного чтения и грепа логов"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_data["exc"] = self.formatException(record.exc_info)

        return " ".join(f"{k}={v}" for k, v in log_data.items())


def setup_logging(level: str = None) -> None:
    """Один обработчик в stdout на корневом логгере пакета"""
    logger = logging.getLogger("coauthor")
    if logger.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter())
    logger.addHandler(handler)
    logger.setLevel((level or settings.log_level).upper())
    logger.propagate = False
