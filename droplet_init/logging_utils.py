from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from .lib.env import PATHS

DEFAULT_LOG_PATH = PATHS.log


def configure_logging(
    log_path: str = DEFAULT_LOG_PATH,
    level: int = logging.INFO,
    also_console: bool = True,
) -> str:
    """Configure logging for one of the three droplet-init processes.

    droplet-fetch, droplet-init and droplet-cert-retry all call this with
    the same line format, so their files interleave cleanly when read
    together. droplet-fetch writes /var/log/fetcher.log and also hands that
    file to the downloaded script as its stdout. droplet-init writes
    /var/log/do-init.log, and each timer firing of droplet-cert-retry
    appends to the same file, so certificate retries continue the
    provisioning history in order.

    Notes:
    - If the log directory is not writable (local runs without root), we fall
      back to a file in the working directory and report the path we used.
    - Calling this again in the same process is a no-op.

    Returns the actual file path being used.
    """

    logger = logging.getLogger()
    logger.setLevel(level)

    # Avoid duplicate handlers if configure_logging() is called multiple times.
    if getattr(logger, "_droplet_init_configured", False):
        return getattr(logger, "_droplet_init_log_path", log_path)

    chosen_path = log_path
    handlers: list[logging.Handler] = []

    fmt = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )

    file_handler: Optional[logging.Handler] = None
    try:
        Path(os.path.dirname(log_path) or ".").mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    except OSError:
        fallback = str(Path.cwd() / Path(log_path).name)
        file_handler = logging.FileHandler(fallback, mode="a", encoding="utf-8")
        chosen_path = fallback
    file_handler.setFormatter(fmt)
    handlers.append(file_handler)

    if also_console:
        console = logging.StreamHandler()
        console.setFormatter(fmt)
        handlers.append(console)

    for h in handlers:
        logger.addHandler(h)

    setattr(logger, "_droplet_init_configured", True)
    setattr(logger, "_droplet_init_log_path", chosen_path)

    logging.getLogger(__name__).info(
        "Logging initialized (requested=%s, actual=%s)", log_path, chosen_path
    )
    return chosen_path
