from __future__ import annotations

import logging
import logging.config
from pathlib import Path

LOG_FILE_NAME = "vacation_responder.log"

# Third-party loggers that are chatty at INFO/WARNING during normal polling.
QUIET_LOGGERS = ("googleapiclient.discovery_cache", "google_auth_oauthlib.flow", "urllib3")


def configure_logging(log_dir: Path, level: str = "INFO", console: bool = True) -> Path:
    """Configure the rotating log file and, optionally, console output."""

    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / LOG_FILE_NAME

    handlers = {
        "file": {
            "class": "logging.handlers.RotatingFileHandler",
            "formatter": "standard",
            "filename": str(log_path),
            "maxBytes": 1_000_000,
            "backupCount": 3,
            "encoding": "utf-8",
        },
    }
    if console:
        handlers["stderr"] = {
            "class": "logging.StreamHandler",
            "formatter": "console",
            "stream": "ext://sys.stderr",
        }

    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
            },
            "console": {
                "format": "%(asctime)s %(levelname)s | %(message)s",
                "datefmt": "%H:%M:%S",
            },
        },
        "handlers": handlers,
        "loggers": {name: {"level": "WARNING"} for name in QUIET_LOGGERS},
        "root": {
            "handlers": list(handlers),
            "level": level.upper(),
        },
    }

    logging.config.dictConfig(config)
    logging.getLogger(__name__).debug("Logging configured at %s, writing to %s", level, log_path)
    return log_path
