# fleetgate/utils/logger.py
"""
Logging setup shared by every module: console + rotating gate.log.
Configured on the first get_logger() call.
"""

import logging
import os
from logging.handlers import RotatingFileHandler

from fleetgate.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_FILE = "gate.log"

# httpx logs every Directory/MailerSend request at INFO
QUIET_LOGGERS = ("httpx", "httpcore")

_configured = False


def _log_dir() -> str:
    if settings.LOG_DIR:
        return settings.LOG_DIR
    repo_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
    return os.path.join(repo_root, "logs")


def _configure():
    global _configured
    if _configured:
        return
    _configured = True

    level = settings.LOG_LEVEL.upper()
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    root = logging.getLogger()
    root.setLevel(level)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    log_dir = _log_dir()
    try:
        os.makedirs(log_dir, exist_ok=True)
        # 5 × 2MB
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, LOG_FILE), maxBytes=2 * 1024 * 1024, backupCount=5, encoding="utf-8",
        )
    except OSError as e:
        root.warning(f"File logging disabled, cannot write to {log_dir}: {e}")
        return
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    """Named logger; call once at the top of each module."""
    _configure()
    return logging.getLogger(name)
