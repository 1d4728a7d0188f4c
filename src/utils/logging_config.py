"""Logging setup for the command-line entry points."""

import logging
import os

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
LOG_FILENAME = "sync.log"


def configure_logging(logs_dir: str | None = None, level: str = "INFO") -> None:
    """Log to stderr and, when ``logs_dir`` is given, to ``<logs_dir>/sync.log``.

    The directory is created if missing so the log survives as a CI artifact.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if logs_dir:
        os.makedirs(logs_dir, exist_ok=True)
        handlers.append(
            logging.FileHandler(os.path.join(logs_dir, LOG_FILENAME), encoding="utf-8")
        )

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
    # botocore is noisy at INFO
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
