from __future__ import annotations

import logging
from typing import Any, Dict

from .. import cert_bootstrap
from ..cert_bootstrap import CertState
from ..lib.command import CommandError
from ..pipeline import note, note_soft_failure
from ._context import step_context

logger = logging.getLogger(__name__)


class CertificateStep:
    """Try the certificate now if DNS is ready; leave the rest to the retry timer.

    Issuance failures are deferred, not step failures. Only problems with
    the timer itself make this step a soft failure.
    """

    step_id = "70_certificate"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg, paths, dry_run = step_context(state)

        bootstrap = cert_bootstrap.build_bootstrap(cfg, paths, dry_run=dry_run)

        public_ip = cert_bootstrap.resolve_public_ip()
        note(state, f"Public IP: {public_ip or 'unknown'}")
        state.setdefault("execution", {}).setdefault("decisions", {})["public_ip"] = public_ip

        try:
            bootstrap.timer.install()
        except (CommandError, OSError) as e:
            note_soft_failure(state, f"Retry units not installed: {e}")

        result = bootstrap.evaluate(public_ip)
        state["execution"]["decisions"]["certificate"] = {"state": result.state.value, "domains": result.domains}

        try:
            if result.state == CertState.ISSUED:
                # evaluate() has already disarmed the timer.
                note(state, "Certificate issued for " + ", ".join(result.domains))
            else:
                note(state, result.reason)
                bootstrap.timer.arm()
        except CommandError as e:
            note_soft_failure(state, f"Retry timer update failed: {e}")

        note(state, f"Retry timer {bootstrap.timer.state.value}")
        return state
