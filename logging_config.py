import logging
import os
from pathlib import Path
from typing import Optional

DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _parse_level(value, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, int):
        return value
    text = str(value).strip().upper()
    if not text:
        return default
    level = logging.getLevelName(text)
    if isinstance(level, int):
        return level
    try:
        return int(text)
    except ValueError:
        return default


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Configure the root logger. Safe to call more than once."""
    level = _parse_level(log_level, logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file and log_file.strip():
        path = Path(os.path.expanduser(log_file))
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    formatter = logging.Formatter(fmt=DEFAULT_FORMAT)
    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    for h in handlers:
        h.setFormatter(formatter)
        root.addHandler(h)
    root.setLevel(level)

    # uvicorn access lines only at DEBUG
    logging.getLogger("uvicorn.access").setLevel(logging.DEBUG if level <= logging.DEBUG else logging.WARNING)

    logging.captureWarnings(True)


def ensure_logging(log_level: str = "INFO", log_file: Optional[str] = None) -> bool:
    """Configure logging only if nothing has configured the root logger yet."""
    if logging.getLogger().handlers:
        return False
    setup_logging(log_level=log_level, log_file=log_file)
    return True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
