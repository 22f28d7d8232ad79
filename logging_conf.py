import logging
import logging.config
import os
import sys

# Constants
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

# Attributes every LogRecord carries; anything else came in through ``extra``
_RECORD_ATTRS = set(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime", "worker"}


def get_uvicorn_log_level():
    """
    Check for --log-level flag in uvicorn/gunicorn command line arguments
    Returns the log level or LOG_LEVEL if not found
    """
    log_level = None
    for i, arg in enumerate(sys.argv):
        if arg == "--log-level" and i + 1 < len(sys.argv):
            log_level = sys.argv[i + 1].upper()
            break
        elif arg.startswith("--log-level="):
            log_level = arg.split("=", 1)[1].upper()
            break

    valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if log_level in valid_levels:
        return log_level
    return LOG_LEVEL


class WorkerFilter(logging.Filter):
    """Tags records with the worker they were emitted from."""

    def filter(self, record):
        if not hasattr(record, "worker"):
            record.worker = os.environ.get("WORKER_ID") or f"pid-{os.getpid()}"
        return True


class DevTerminalFormatter(logging.Formatter):
    def format(self, record):
        message = super().format(record)
        extra_info = " ".join(
            f"[{k}: {v}]"
            for k, v in record.__dict__.items()
            if k not in _RECORD_ATTRS and not k.startswith("_")
        )
        return f"{message} {extra_info}" if extra_info else message


CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "worker": {"()": WorkerFilter},
    },
    "formatters": {
        "dev_terminal": {
            "()": DevTerminalFormatter,
            "format": "%(asctime)s - %(worker)s %(name)s %(levelname)s - %(message)s",
        },
        "uvicorn_access": {
            "format": "%(asctime)s - %(worker)s - %(message)s"
        },
    },
    "handlers": {
        "default": {
            "level": LOG_LEVEL,
            "formatter": "dev_terminal",
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stdout",
            "filters": ["worker"],
        },
        "uvicorn_access": {
            "class": "logging.StreamHandler",
            "formatter": "uvicorn_access",
            "filters": ["worker"],
        },
    },
    "loggers": {
        "": {
            "handlers": ["default"],
            "level": "DEBUG",
            "propagate": False,
        },
        "uvicorn.access": {
            "handlers": ["uvicorn_access"],
            "level": get_uvicorn_log_level(),
            "propagate": False,
        },
        "uvicorn.error": {
            "handlers": ["default"],
            "level": get_uvicorn_log_level(),
            "propagate": False,
        },
    },
}


def setup_logging():
    logging.config.dictConfig(CONFIG)
