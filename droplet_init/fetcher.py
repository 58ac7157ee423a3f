"""First-boot fetcher: download the current initializer, run it, clean up.

The payload's own exit status is logged, never escalated. Only a failed
download makes the fetcher exit non-zero.
"""

from __future__ import annotations

import argparse
import logging
import os
import subprocess
from pathlib import Path
from typing import Optional

import requests

from .lib.env import PATHS
from .logging_utils import configure_logging

logger = logging.getLogger(__name__)

DEFAULT_SCRIPT_URL = "https://raw.githubusercontent.com/yourusername/do-droplet-init-scripts/main/init-v1.sh"
DEFAULT_DEST = "/tmp/real-init.sh"
DOWNLOAD_TIMEOUT_S = 60.0


def download(url: str, dest: str, *, timeout: float = DOWNLOAD_TIMEOUT_S) -> None:
    r = requests.get(url, timeout=timeout)
    r.raise_for_status()
    p = Path(dest)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_bytes(r.content)
    os.chmod(p, 0o755)
    logger.info("Downloaded %s (%d bytes) to %s", url, len(r.content), dest)


def fetch_and_run(
    url: str,
    *,
    dest: str = DEFAULT_DEST,
    log_path: str = PATHS.fetcher_log,
    timeout: float = DOWNLOAD_TIMEOUT_S,
) -> int:
    """Returns 1 if the download failed, else 0 whatever the payload did."""

    logger.info("Fetcher started - pulling %s", url)
    try:
        download(url, dest, timeout=timeout)
    except requests.RequestException as e:
        logger.error("Download failed - check URL/network: %s", e)
        return 1

    try:
        logger.info("Executing real script")
        # The payload's output goes straight into the same log file.
        with open(log_path, "a", encoding="utf-8") as out:
            p = subprocess.run([dest], stdout=out, stderr=subprocess.STDOUT)
        logger.info("Fetcher done (real script exit: %s)", p.returncode)
    finally:
        Path(dest).unlink(missing_ok=True)
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    p = argparse.ArgumentParser(prog="droplet-fetch")
    p.add_argument("--url", default=os.environ.get("DROPLET_INIT_URL", DEFAULT_SCRIPT_URL))
    p.add_argument("--dest", default=DEFAULT_DEST, help="Where the payload is stored while it runs")
    p.add_argument("--log", default=PATHS.fetcher_log, help="Path to fetcher log")

    args = p.parse_args(argv)

    log_path = configure_logging(log_path=args.log)
    return fetch_and_run(args.url, dest=args.dest, log_path=log_path)


if __name__ == "__main__":
    raise SystemExit(main())
