from __future__ import annotations

import argparse
import json
import logging
from typing import Any, Dict, Optional

from .cert_bootstrap import CertStore
from .lib.env import PATHS
from .logging_utils import configure_logging
from .pipeline import RunReport, StepOutcome, run_pipeline
from .state_store import ensure_defaults, load_state, save_state
from .steps import (
    AdminUserStep,
    CertbotStep,
    CertificateStep,
    CompletionMarkerStep,
    FirewallStep,
    FloatingIPStep,
    LoadConfigStep,
    SystemPackagesStep,
    WebServerStep,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_HARD_FAILURE = 1
EXIT_CONFIG = 2


def build_steps():
    return [
        LoadConfigStep(),
        FloatingIPStep(),
        FirewallStep(),
        SystemPackagesStep(),
        WebServerStep(),
        CertbotStep(),
        CertificateStep(),
        AdminUserStep(),
        CompletionMarkerStep(),
    ]


def run(
    *,
    config_path: Optional[str] = None,
    root: Optional[str] = None,
    state_path: Optional[str] = None,
    log_path: Optional[str] = None,
    start_at: Optional[str] = None,
    stop_after: Optional[str] = None,
    force: bool = False,
    dry_run: bool = False,
    steps=None,
) -> RunReport:
    """Run the provisioning pipeline once, persisting state and the run report."""

    paths = PATHS.rooted(root)
    state_path = state_path or paths.state
    actual_log_path = configure_logging(log_path=log_path or paths.log)
    logger.info("Droplet init started (dry_run=%s)", dry_run)

    state = ensure_defaults(load_state(state_path))
    state["options"].update({"dry_run": dry_run, "config_path": config_path})
    state["paths"] = paths.to_dict()
    state["execution"].setdefault("log_path", actual_log_path)

    try:
        result = run_pipeline(
            state=state,
            steps=build_steps() if steps is None else steps,
            start_at=start_at,
            stop_after=stop_after,
            force=force,
        )
        state = result.state
        state["execution"]["report"] = result.report.to_dict()
        state["execution"]["summary"] = {"ran_steps": result.ran_steps, "skipped_steps": result.skipped_steps}
        if result.report.ok:
            logger.info("Droplet init finished (failed steps: %s)", ", ".join(result.report.failed_steps()) or "none")
        else:
            logger.error("Droplet init aborted (failed steps: %s)", ", ".join(result.report.failed_steps()))
        return result.report
    except Exception:
        logger.exception("Droplet init failed")
        raise
    finally:
        if not dry_run:
            save_state(state_path, state)


def exit_code(report: RunReport) -> int:
    if report.ok:
        return EXIT_OK
    if report.outcome_of(LoadConfigStep.step_id) == StepOutcome.HARD_FAILURE:
        return EXIT_CONFIG
    return EXIT_HARD_FAILURE


def status(*, root: Optional[str] = None, state_path: Optional[str] = None) -> Dict[str, Any]:
    """Last run report plus certificate/timer state, for operators."""

    paths = PATHS.rooted(root)
    state = load_state(state_path or paths.state)
    report = (state.get("execution") or {}).get("report") or {}
    cert = CertStore(paths.cert_state).doc
    return {"report": report, "certificate": cert}


def main(argv: Optional[list[str]] = None) -> int:
    p = argparse.ArgumentParser(prog="droplet-init")
    p.add_argument("command", nargs="?", default="run", choices=["run", "status"])
    p.add_argument("--config", default=None, help="Key-value config file (dotenv or YAML); env vars override it")
    p.add_argument("--root", default=None, help="Prefix for every filesystem path")
    p.add_argument("--state", default=None, help="Path to run state (json|yaml)")
    p.add_argument("--log", default=None, help="Path to provisioning log")
    p.add_argument("--start-at", default=None, help="Start at step_id (e.g. 50_web_server)")
    p.add_argument("--stop-after", default=None, help="Stop after step_id")
    p.add_argument("--force", action="store_true", help="Re-run steps even if marked completed")
    p.add_argument("--dry-run", action="store_true", help="Log commands and writes without executing them")

    args = p.parse_args(argv)

    if args.command == "status":
        print(json.dumps(status(root=args.root, state_path=args.state), indent=2, sort_keys=True))
        return EXIT_OK

    report = run(
        config_path=args.config,
        root=args.root,
        state_path=args.state,
        log_path=args.log,
        start_at=args.start_at,
        stop_after=args.stop_after,
        force=bool(args.force),
        dry_run=bool(args.dry_run),
    )
    return exit_code(report)


if __name__ == "__main__":
    raise SystemExit(main())
