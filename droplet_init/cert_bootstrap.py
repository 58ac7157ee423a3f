"""Certificate bootstrap: a two-state machine driven by a systemd timer.

PENDING -> ISSUED happens only when, at evaluation time, the primary domain
resolves to this instance and something listens on port 80. ISSUED is
terminal: later evaluations neither call certbot nor touch the timer beyond
making sure it is disarmed.

Between evaluations nothing runs in-process. The timer re-invokes
``droplet-cert-retry`` (2 minutes after arming or boot, then every 10
minutes) until an evaluation succeeds and disarms it.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .config import ConfigError, InitConfig, load_config
from .lib import metadata, systemd
from .lib.certbot import issue_certificate
from .lib.command import CommandError
from .lib.env import PATHS, Paths
from .lib.files import write_file
from .lib.net import is_dns_ready, is_port_listening, observed_public_ip, resolve_a
from .logging_utils import configure_logging
from .state_store import load_state, save_state, utc_now

logger = logging.getLogger(__name__)

SERVICE_UNIT = "droplet-cert-bootstrap.service"
TIMER_UNIT = "droplet-cert-bootstrap.timer"


class CertState(str, Enum):
    PENDING = "pending"
    ISSUED = "issued"


class TimerState(str, Enum):
    ARMED = "armed"
    DISARMED = "disarmed"


class CertStore:
    """Persisted certificate/timer state (a small JSON document)."""

    def __init__(self, path: str, *, dry_run: bool = False) -> None:
        self.path = path
        self.dry_run = dry_run
        self.doc: Dict[str, Any] = load_state(path)
        self.doc.setdefault("cert_state", CertState.PENDING.value)
        self.doc.setdefault("timer_state", TimerState.DISARMED.value)
        self.doc.setdefault("domains", [])
        self.doc.setdefault("issued_at", None)
        self.doc.setdefault("attempts", 0)
        self.doc.setdefault("last_attempt", None)

    @property
    def cert_state(self) -> CertState:
        return CertState(self.doc["cert_state"])

    @property
    def timer_state(self) -> TimerState:
        return TimerState(self.doc["timer_state"])

    def set_timer_state(self, value: TimerState) -> None:
        self.doc["timer_state"] = value.value
        self.save()

    def mark_issued(self, domains: List[str]) -> None:
        self.doc["cert_state"] = CertState.ISSUED.value
        self.doc["domains"] = list(domains)
        self.doc["issued_at"] = utc_now()
        self.save()

    def record_attempt(self, *, ok: bool, reason: str) -> None:
        self.doc["attempts"] = int(self.doc.get("attempts") or 0) + 1
        self.doc["last_attempt"] = {"at": utc_now(), "ok": ok, "reason": reason}
        self.save()

    def save(self) -> None:
        if self.dry_run:
            return
        save_state(self.path, self.doc)


def default_exec_start(paths: Paths) -> str:
    cmd = f"{sys.executable} -m droplet_init.cert_bootstrap --config {paths.config_env} --log {paths.log}"
    if paths.root:
        cmd += f" --root {paths.root}"
    return cmd


class RetryTimer:
    """Idempotent arm()/disarm() over the systemd timer.

    The recorded TimerState is authoritative; systemd is not probed to
    re-derive it.
    """

    def __init__(self, paths: Paths, store: CertStore, *, exec_start: Optional[str] = None, dry_run: bool = False):
        self.paths = paths
        self.store = store
        self.exec_start = exec_start or default_exec_start(paths)
        self.dry_run = dry_run

    @property
    def state(self) -> TimerState:
        return self.store.timer_state

    def install(self) -> None:
        """Write (or refresh) the unit files and reload systemd."""

        unit_dir = Path(self.paths.systemd_dir)
        write_file(
            str(unit_dir / SERVICE_UNIT),
            systemd.render_oneshot_service(
                description="Issue TLS certificate once DNS points at this droplet",
                exec_start=self.exec_start,
            ),
            dry_run=self.dry_run,
        )
        write_file(
            str(unit_dir / TIMER_UNIT),
            systemd.render_timer(description="Retry TLS certificate bootstrap"),
            dry_run=self.dry_run,
        )
        systemd.daemon_reload(dry_run=self.dry_run)

    def arm(self) -> bool:
        """Enable and start the timer. Returns False if it was already armed."""

        if self.state == TimerState.ARMED:
            logger.info("Retry timer already armed")
            return False
        systemd.enable_now(TIMER_UNIT, dry_run=self.dry_run)
        self.store.set_timer_state(TimerState.ARMED)
        logger.info("Retry timer armed (%s)", TIMER_UNIT)
        return True

    def disarm(self) -> bool:
        """Stop and disable the timer. Returns False if it was not armed."""

        if self.state == TimerState.DISARMED:
            logger.info("Retry timer disarmed (was not armed)")
            return False
        systemd.disable_now(TIMER_UNIT, dry_run=self.dry_run)
        self.store.set_timer_state(TimerState.DISARMED)
        logger.info("Retry timer disarmed (%s)", TIMER_UNIT)
        return True


def resolve_public_ip() -> str:
    """Observed public address, falling back to the metadata service."""

    ip = observed_public_ip()
    if not ip:
        ip = metadata.public_ipv4()
    return ip


@dataclass
class Evaluation:
    ok: bool
    state: CertState
    reason: str
    domains: List[str] = field(default_factory=list)
    attempted: bool = False


class CertBootstrap:
    def __init__(
        self,
        cfg: InitConfig,
        store: CertStore,
        timer: RetryTimer,
        *,
        certbot: str = "certbot",
        public_ip: Callable[[], str] = resolve_public_ip,
        resolver: Callable[[str], str] = resolve_a,
        port_listening: Callable[[int], bool] = is_port_listening,
        dry_run: bool = False,
    ) -> None:
        self.cfg = cfg
        self.store = store
        self.timer = timer
        self.certbot = certbot
        self._public_ip = public_ip
        self._resolver = resolver
        self._port_listening = port_listening
        self.dry_run = dry_run

    @property
    def state(self) -> CertState:
        return self.store.cert_state

    def dns_ready(self, name: str, public_ip: str) -> bool:
        return is_dns_ready(name, public_ip, resolver=self._resolver)

    def evaluate(self, public_ip: Optional[str] = None) -> Evaluation:
        if self.state == CertState.ISSUED:
            logger.info("Certificate already issued for %s; nothing to do", ", ".join(self.store.doc["domains"]))
            if self.timer.state == TimerState.ARMED:
                self._disarm()
            return Evaluation(ok=True, state=CertState.ISSUED, reason="already issued", domains=list(self.store.doc["domains"]))

        ip = public_ip if public_ip is not None else self._public_ip()

        if not self.dns_ready(self.cfg.domain, ip):
            return self._blocked(f"DNS not ready: {self.cfg.domain} does not resolve to {ip or 'unknown public IP'}")

        if not self._port_listening(80):
            return self._blocked("Web server not listening on port 80")

        domains = [self.cfg.domain]
        if self.cfg.alt_domain and self.dns_ready(self.cfg.alt_domain, ip):
            domains.append(self.cfg.alt_domain)
        else:
            logger.info("Leaving %s out of this certificate request (DNS not ready)", self.cfg.alt_domain)

        logger.info("Requesting certificate for %s", ", ".join(domains))
        r = issue_certificate(email=self.cfg.admin_email, domains=domains, certbot=self.certbot, dry_run=self.dry_run)
        if not r.ok:
            reason = f"certbot failed ({r.returncode}): {(r.stderr or r.stdout).strip()[-500:]}"
            logger.warning("Certificate issuance failed; retry timer will try again: %s", reason)
            self.store.record_attempt(ok=False, reason=reason)
            return Evaluation(ok=False, state=CertState.PENDING, reason=reason, domains=domains, attempted=True)

        self.store.mark_issued(domains)
        self.store.record_attempt(ok=True, reason="issued")
        logger.info("Certificate issued for %s", ", ".join(domains))
        self._disarm()
        return Evaluation(ok=True, state=CertState.ISSUED, reason="issued", domains=domains, attempted=True)

    def _disarm(self) -> None:
        # On failure the store stays ARMED, so the next firing lands in the
        # ISSUED branch above and disarms again.
        try:
            self.timer.disarm()
        except CommandError as e:
            logger.error("Could not disarm retry timer; will retry on next firing: %s", e)

    def _blocked(self, reason: str) -> Evaluation:
        logger.warning("%s; certificate deferred to retry timer", reason)
        self.store.record_attempt(ok=False, reason=reason)
        return Evaluation(ok=False, state=CertState.PENDING, reason=reason)


def build_bootstrap(cfg: InitConfig, paths: Paths, *, dry_run: bool = False, **kwargs: Any) -> CertBootstrap:
    store = CertStore(paths.cert_state, dry_run=dry_run)
    timer = RetryTimer(paths, store, dry_run=dry_run)
    return CertBootstrap(cfg, store, timer, certbot=paths.certbot_bin, dry_run=dry_run, **kwargs)


def main(argv: Optional[list[str]] = None) -> int:
    p = argparse.ArgumentParser(prog="droplet-cert-retry", description="One certificate bootstrap evaluation")
    p.add_argument("--config", default=None, help="Key-value config file written by droplet-init")
    p.add_argument("--log", default=None, help="Path to provisioning log")
    p.add_argument("--root", default=None, help="Prefix for every filesystem path")
    p.add_argument("--dry-run", action="store_true")

    args = p.parse_args(argv)

    paths = PATHS.rooted(args.root)
    configure_logging(log_path=args.log or paths.log)

    config_path = args.config or paths.config_env
    if not Path(config_path).exists():
        config_path = None
    try:
        cfg = load_config(config_path)
    except ConfigError as e:
        logger.error("Certificate retry cannot run: %s", e)
        return 2

    result = build_bootstrap(cfg, paths, dry_run=bool(args.dry_run)).evaluate()
    logger.info("Certificate bootstrap: %s (%s)", result.state.value, result.reason)
    return 0 if result.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
