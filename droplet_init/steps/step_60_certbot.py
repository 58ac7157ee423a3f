from __future__ import annotations

import logging
from typing import Any, Dict

from ..lib.files import symlink
from ..lib.pkg import snap_install, snap_refresh
from ..pipeline import note, note_soft_failure
from ._context import step_context

logger = logging.getLogger(__name__)


class CertbotStep:
    step_id = "60_certbot"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        _cfg, paths, dry_run = step_context(state)

        if not snap_install("core", check=False, dry_run=dry_run).ok:
            note_soft_failure(state, "snap install core failed")
        if not snap_refresh("core", check=False, dry_run=dry_run).ok:
            note_soft_failure(state, "snap refresh core failed")

        if not snap_install("certbot", classic=True, check=False, dry_run=dry_run).ok:
            # The retry task will keep failing until certbot exists; that is visible in the log.
            note_soft_failure(state, "certbot install failed")
            return state

        try:
            symlink(paths.certbot_snap, paths.certbot_bin, dry_run=dry_run)
        except OSError as e:
            note_soft_failure(state, f"Could not link {paths.certbot_bin}: {e}")
            return state

        note(state, f"certbot available at {paths.certbot_bin}")
        return state
