from __future__ import annotations

from typing import Any, Dict, Tuple

from ..config import InitConfig
from ..lib.env import Paths


def step_context(state: Dict[str, Any]) -> Tuple[InitConfig, Paths, bool]:
    """Config, paths and dry_run flag shared by every step after 10_load_config."""

    opts = state.get("options") or {}
    return InitConfig.from_state(state), Paths.from_state(state), bool(opts.get("dry_run", False))
