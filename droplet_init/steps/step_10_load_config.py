from __future__ import annotations

import logging
from typing import Any, Dict

from ..config import ConfigError, load_config, save_env_file
from ..lib.env import Paths
from ..pipeline import FatalStepError, note, note_soft_failure

logger = logging.getLogger(__name__)


class LoadConfigStep:
    step_id = "10_load_config"
    # Config comes from the current environment, never from a previous run.
    always_run = True

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        opts = state.get("options") or {}
        paths = Paths.from_state(state)
        dry_run = bool(opts.get("dry_run", False))

        try:
            cfg = load_config(opts.get("config_path"))
        except ConfigError as e:
            raise FatalStepError(str(e)) from e

        state["config"] = cfg.to_dict()
        note(state, f"Provisioning {cfg.domain} (alt {cfg.alt_domain}) for {cfg.admin_email}")

        try:
            save_env_file(cfg, paths.config_env, dry_run=dry_run)
        except OSError as e:
            note_soft_failure(state, f"Could not persist config for the retry task: {e}")
        return state
