from __future__ import annotations

import logging
from typing import Any, Dict

from ..lib.command import run_cmd
from ..lib.pkg import apt_install, apt_update
from ..pipeline import note, note_soft_failure
from ._context import step_context

logger = logging.getLogger(__name__)

# (rule, comment); SSH first so enabling the firewall never locks us out.
RULES = [
    ("OpenSSH", "SSH - keep access"),
    ("80/tcp", "HTTP"),
    ("443/tcp", "HTTPS"),
]


class FirewallStep:
    step_id = "30_firewall"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        _cfg, _paths, dry_run = step_context(state)

        if not apt_update(check=False, dry_run=dry_run).ok:
            note_soft_failure(state, "apt-get update failed")

        r = apt_install(["ufw"], check=False, dry_run=dry_run)
        if r is not None and not r.ok:
            # Ubuntu images usually ship ufw; keep going and let the rules fail if not.
            note_soft_failure(state, "ufw install failed")

        for rule, comment in RULES:
            if not run_cmd(["ufw", "allow", rule, "comment", comment], check=False, dry_run=dry_run).ok:
                note_soft_failure(state, f"ufw allow {rule} failed")

        if run_cmd(["ufw", "--force", "enable"], check=False, dry_run=dry_run).ok:
            note(state, "Firewall enabled: " + ", ".join(rule for rule, _ in RULES))
        else:
            note_soft_failure(state, "ufw enable failed")
        return state
