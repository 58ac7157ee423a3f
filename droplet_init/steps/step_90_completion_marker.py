from __future__ import annotations

import logging
from typing import Any, Dict

from ..lib.env import Paths
from ..pipeline import note
from ..state_store import write_completion_marker

logger = logging.getLogger(__name__)


class CompletionMarkerStep:
    step_id = "90_completion_marker"
    always_run = True

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        paths = Paths.from_state(state)
        dry_run = bool((state.get("options") or {}).get("dry_run", False))

        logger.info("Finalize summary: %s", (state.get("execution") or {}).get("decisions") or {})

        stamp = write_completion_marker(paths.completion_marker, dry_run=dry_run)
        note(state, f"Init completed at {stamp}")
        return state
