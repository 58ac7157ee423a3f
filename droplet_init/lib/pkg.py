from __future__ import annotations

import logging
from typing import Sequence

from .command import NONINTERACTIVE_ENV, CmdResult, run_cmd

logger = logging.getLogger(__name__)


def apt_update(*, check: bool = True, dry_run: bool = False) -> CmdResult:
    return run_cmd(["apt-get", "update", "-qq"], check=check, env=NONINTERACTIVE_ENV, dry_run=dry_run)


def apt_upgrade(*, check: bool = True, dry_run: bool = False) -> CmdResult:
    """Apply pending upgrades without touching locally modified config files."""

    return run_cmd(
        [
            "apt-get",
            "-y",
            "-qq",
            "-o",
            "Dpkg::Options::=--force-confdef",
            "-o",
            "Dpkg::Options::=--force-confold",
            "upgrade",
        ],
        check=check,
        env=NONINTERACTIVE_ENV,
        dry_run=dry_run,
    )


def apt_install(
    packages: Sequence[str],
    *,
    check: bool = True,
    dry_run: bool = False,
) -> CmdResult | None:
    if not packages:
        return None
    argv = ["apt-get", "install", "-y", "--no-install-recommends", *packages]
    return run_cmd(argv, check=check, env=NONINTERACTIVE_ENV, dry_run=dry_run)


def apt_has_package(package: str, *, dry_run: bool = False) -> bool:
    """Return True if apt knows about a package name.

    This is useful for optional tools that may only exist in some releases.
    """
    if dry_run:
        # Be permissive in dry-run so planning doesn't fail.
        return True
    r = run_cmd(["apt-cache", "show", package], check=False)
    return r.ok


def snap_install(name: str, *, classic: bool = False, check: bool = True, dry_run: bool = False) -> CmdResult:
    argv = ["snap", "install"]
    if classic:
        argv.append("--classic")
    return run_cmd([*argv, name], check=check, dry_run=dry_run)


def snap_refresh(name: str, *, check: bool = True, dry_run: bool = False) -> CmdResult:
    return run_cmd(["snap", "refresh", name], check=check, dry_run=dry_run)
