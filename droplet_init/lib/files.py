from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


def write_file(path: str, contents: str, *, mode: Optional[int] = None, dry_run: bool = False) -> None:
    p = Path(path)
    if dry_run:
        logger.info("Would write %s", str(p))
        return
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(contents, encoding="utf-8")
    if mode is not None:
        os.chmod(p, mode)
    logger.info("Wrote %s", str(p))


def symlink(target: str, link: str, *, dry_run: bool = False) -> None:
    """ln -sf target link"""

    p = Path(link)
    if dry_run:
        logger.info("Would link %s -> %s", link, target)
        return
    p.parent.mkdir(parents=True, exist_ok=True)
    if p.is_symlink() or p.exists():
        p.unlink()
    p.symlink_to(target)
    logger.info("Linked %s -> %s", link, target)


def remove_file(path: str, *, dry_run: bool = False) -> bool:
    p = Path(path)
    if not (p.is_symlink() or p.exists()):
        return False
    if dry_run:
        logger.info("Would remove %s", path)
        return True
    p.unlink()
    logger.info("Removed %s", path)
    return True
