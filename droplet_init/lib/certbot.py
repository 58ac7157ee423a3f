from __future__ import annotations

import logging
from typing import Sequence

from .command import CmdResult, run_cmd

logger = logging.getLogger(__name__)


def issue_argv(*, certbot: str, email: str, domains: Sequence[str]) -> list[str]:
    argv = [
        certbot,
        "--nginx",
        "--non-interactive",
        "--agree-tos",
        "--email",
        email,
        "--redirect",
        "--no-eff-email",
    ]
    for d in domains:
        argv += ["-d", d]
    return argv


def issue_certificate(
    *,
    email: str,
    domains: Sequence[str],
    certbot: str = "certbot",
    dry_run: bool = False,
) -> CmdResult:
    """Run certbot non-interactively. Never raises on a certbot failure.

    Re-issuing for domains that already hold a valid certificate is a no-op
    for certbot, which is what makes overlapping attempts harmless.
    """

    if not domains:
        raise ValueError("at least one domain is required")
    return run_cmd(issue_argv(certbot=certbot, email=email, domains=domains), check=False, dry_run=dry_run)
