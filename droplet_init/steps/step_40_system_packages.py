from __future__ import annotations

import logging
from typing import Any, Dict

from ..lib.pkg import apt_has_package, apt_install, apt_update, apt_upgrade
from ..pipeline import note, note_soft_failure
from ._context import step_context

logger = logging.getLogger(__name__)

TOOLSET = ["curl", "wget", "ca-certificates", "git", "unzip", "jq", "htop", "dnsutils"]


class SystemPackagesStep:
    step_id = "40_system_packages"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        _cfg, _paths, dry_run = step_context(state)

        if not apt_update(check=False, dry_run=dry_run).ok:
            note_soft_failure(state, "apt-get update failed")
        if not apt_upgrade(check=False, dry_run=dry_run).ok:
            note_soft_failure(state, "apt-get upgrade failed")

        # Never fail on repo variance: skip tools apt does not know.
        packages = [p for p in TOOLSET if apt_has_package(p, dry_run=dry_run)]
        missing = [p for p in TOOLSET if p not in packages]
        if missing:
            logger.warning("Skipping unknown packages: %s", ", ".join(missing))

        r = apt_install(packages, check=False, dry_run=dry_run)
        if r is not None and not r.ok:
            note_soft_failure(state, "Toolset install failed: " + " ".join(packages))
        else:
            note(state, "Installed toolset: " + " ".join(packages))
        return state
