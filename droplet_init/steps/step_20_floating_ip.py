from __future__ import annotations

import logging
from typing import Any, Dict

import requests

from ..lib import metadata
from ..lib.cloud_api import CloudAPIError, assign_floating_ip
from ..lib.net import wait_for_public_ip
from ..pipeline import note, note_soft_failure
from ._context import step_context

logger = logging.getLogger(__name__)


class FloatingIPStep:
    step_id = "20_floating_ip"

    # About two minutes for the control plane to move the address.
    attempts = 24
    interval_s = 5.0

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg, _paths, dry_run = step_context(state)

        if not cfg.wants_floating_ip:
            note(state, "Floating IP not requested")
            return state

        if dry_run:
            logger.info("Would assign floating IP %s", cfg.floating_ip)
            return state

        try:
            did = metadata.droplet_id()
            assign_floating_ip(token=str(cfg.do_token), floating_ip=str(cfg.floating_ip), droplet_id=did)
        except (requests.RequestException, CloudAPIError, ValueError) as e:
            note_soft_failure(state, f"Floating IP {cfg.floating_ip} not assigned: {e}")
            return state

        if wait_for_public_ip(str(cfg.floating_ip), attempts=self.attempts, interval_s=self.interval_s):
            note(state, f"Floating IP {cfg.floating_ip} active")
        else:
            note_soft_failure(
                state,
                f"Public IP did not switch to {cfg.floating_ip} after {self.attempts} checks; continuing",
            )
        return state
