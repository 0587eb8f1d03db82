from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

LogFunc = Callable[..., None]

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"


def setup_logging(level: str, logfile: str):
    Path(logfile).parent.mkdir(parents=True, exist_ok=True)

    log_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(log_level)

    # Clear existing handlers to avoid duplicates when the CLI runs twice in-process.
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(LOG_FORMAT)

    fh = logging.FileHandler(logfile, encoding="utf-8")
    fh.setLevel(log_level)
    fh.setFormatter(fmt)
    root.addHandler(fh)

    ch = logging.StreamHandler()
    ch.setLevel(log_level)
    ch.setFormatter(fmt)
    root.addHandler(ch)

    # boto3/botocore are chatty at DEBUG; keep them at WARNING unless asked.
    if log_level > logging.DEBUG:
        for logger_name in ("boto3", "botocore", "s3transfer", "urllib3"):
            logging.getLogger(logger_name).setLevel(logging.WARNING)

    root.info("logging initialized")


def make_log_func() -> LogFunc:
    """Route ``log_func(level, module, message, detail)`` calls into stdlib logging."""

    def log_func(level: str, module: str, message: str, detail: Optional[str] = None):
        logging.getLogger(module).log(
            getattr(logging, level.upper(), logging.INFO),
            f"{message} {detail or ''}".strip(),
        )

    return log_func
