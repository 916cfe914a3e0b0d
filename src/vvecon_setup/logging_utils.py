from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(
    level: int = logging.WARNING,
    log_path: Optional[str] = None,
    also_console: bool = False,
) -> Optional[str]:
    """Configure the package logger.

    User-facing output goes through the Rich console; logging is for
    diagnostics only. A file handler is added when log_path is given and a
    stderr handler when also_console is set. Repeated calls are no-ops.

    Returns the log file path in use, if any.
    """

    logger = logging.getLogger("vvecon_setup")
    logger.setLevel(level)

    if getattr(logger, "_vvecon_configured", False):
        return getattr(logger, "_vvecon_log_path", None)

    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z")
    handlers: list[logging.Handler] = []

    if log_path:
        Path(log_path).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(fmt)
        handlers.append(file_handler)

    if also_console:
        console = logging.StreamHandler()
        console.setFormatter(fmt)
        handlers.append(console)

    if not handlers:
        handlers.append(logging.NullHandler())

    for h in handlers:
        logger.addHandler(h)

    setattr(logger, "_vvecon_configured", True)
    setattr(logger, "_vvecon_log_path", log_path)

    logger.debug("Logging initialized (level=%s, file=%s)", logging.getLevelName(level), log_path)
    return log_path
