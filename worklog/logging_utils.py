from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def init_logger(name: str, log_dir: Path, level: str = "INFO", console: bool = True) -> logging.Logger:
    """Return the named logger writing to ``<log_dir>/<name>.log`` (and stderr when ``console``)."""
    log_dir.mkdir(parents=True, exist_ok=True)
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    if not logger.handlers:
        formatter = logging.Formatter(LOG_FORMAT)
        file_handler = RotatingFileHandler(
            log_dir / f"{name}.log",
            maxBytes=5 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

        if console:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(formatter)
            logger.addHandler(console_handler)

    return logger


class ThrottledLog:
    """Log a recurring message only when its key changes or ``interval`` seconds have passed."""

    def __init__(self, log: logging.Logger, interval: float = 60.0):
        self._logger = log
        self._interval = interval
        self._last_key: str | None = None
        self._last_at: dict[str, float] = {}

    def log(self, key: str, now: float, level: int, message: str, *args) -> bool:
        last_at = self._last_at.get(key)
        if self._last_key == key and last_at is not None and (now - last_at) < self._interval:
            return False
        self._last_key = key
        self._last_at[key] = now
        self._logger.log(level, message, *args)
        return True
