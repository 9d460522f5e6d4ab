"""Run-scoped logging: stderr plus one log file per process run."""

import logging
import sys
from pathlib import Path

from ulid import ULID

from lingosrs.application.config import AppConfig

LOG_FORMAT = "%(asctime)s %(levelname)s:%(name)s:%(message)s"


def setup_logging(config: AppConfig) -> tuple[logging.Logger, Path | None, str]:
    """
    Configure the `lingosrs` logger hierarchy.

    Returns:
        (logger, log_path, run_id). log_path is None when the log directory
        cannot be created; logging then stays on stderr only.
    """
    run_id = str(ULID())
    logger = logging.getLogger("lingosrs")
    logger.setLevel(config.log_level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    stream = logging.StreamHandler(sys.stderr)
    stream.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(stream)

    log_path: Path | None = config.log_dir / f"run_{run_id}.log"
    try:
        config.log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(file_handler)
    except OSError as e:
        logger.warning(f"File logging disabled, cannot write to {config.log_dir}: {e}")
        log_path = None

    logger.propagate = False
    logger.debug(f"Logging initialised run_id={run_id} path={log_path}")
    return logger, log_path, run_id
