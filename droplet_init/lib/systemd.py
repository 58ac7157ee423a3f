from __future__ import annotations

import logging

from .command import CmdResult, run_cmd

logger = logging.getLogger(__name__)


def render_oneshot_service(*, description: str, exec_start: str) -> str:
    return "\n".join(
        [
            "[Unit]",
            f"Description={description}",
            "Wants=network-online.target",
            "After=network-online.target nginx.service",
            "",
            "[Service]",
            "Type=oneshot",
            f"ExecStart={exec_start}",
            "",
        ]
    )


def render_timer(
    *,
    description: str,
    first_after: str = "2min",
    every: str = "10min",
) -> str:
    """Timer that fires once shortly after arming/boot, then periodically.

    Persistent=true catches up on a run missed while the host was down.
    """

    return "\n".join(
        [
            "[Unit]",
            f"Description={description}",
            "",
            "[Timer]",
            f"OnActiveSec={first_after}",
            f"OnBootSec={first_after}",
            f"OnUnitActiveSec={every}",
            "Persistent=true",
            "",
            "[Install]",
            "WantedBy=timers.target",
            "",
        ]
    )


def systemctl(*args: str, check: bool = True, dry_run: bool = False) -> CmdResult:
    return run_cmd(["systemctl", *args], check=check, dry_run=dry_run)


def daemon_reload(*, dry_run: bool = False) -> CmdResult:
    return systemctl("daemon-reload", dry_run=dry_run)


def enable_now(unit: str, *, dry_run: bool = False) -> CmdResult:
    return systemctl("enable", "--now", unit, dry_run=dry_run)


def disable_now(unit: str, *, dry_run: bool = False) -> CmdResult:
    return systemctl("disable", "--now", unit, dry_run=dry_run)
