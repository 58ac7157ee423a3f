"""
Tests for the certificate bootstrap state machine and its retry timer.
"""

from pathlib import Path

import pytest

from droplet_init import cert_bootstrap
from droplet_init.cert_bootstrap import (
    TIMER_UNIT,
    CertBootstrap,
    CertState,
    CertStore,
    RetryTimer,
    TimerState,
)

PUBLIC_IP = "203.0.113.10"


@pytest.fixture
def store(paths):
    return CertStore(paths.cert_state)


@pytest.fixture
def timer(paths, store):
    return RetryTimer(paths, store, exec_start="/usr/bin/droplet-cert-retry")


def make_bootstrap(cfg, store, timer, *, records, listening=True):
    return CertBootstrap(
        cfg,
        store,
        timer,
        public_ip=lambda: PUBLIC_IP,
        resolver=lambda name: records.get(name, ""),
        port_listening=lambda port: listening,
    )


class TestRetryTimer:
    """Tests for arm()/disarm() idempotence"""

    def test_install_writes_units(self, runner, paths, timer):
        timer.install()

        service = (Path(paths.systemd_dir) / "droplet-cert-bootstrap.service").read_text()
        unit = (Path(paths.systemd_dir) / TIMER_UNIT).read_text()
        assert "ExecStart=/usr/bin/droplet-cert-retry" in service
        assert "Type=oneshot" in service
        assert "OnActiveSec=2min" in unit
        assert "OnUnitActiveSec=10min" in unit
        assert "Persistent=true" in unit
        assert runner.ran("systemctl", "daemon-reload")

    def test_exec_start_carries_root(self, paths, tmp_path):
        """A staged install's retry task reads the staged config and state"""
        cmd = cert_bootstrap.default_exec_start(paths)
        assert f"--config {paths.config_env}" in cmd
        assert cmd.endswith(f"--root {tmp_path}")

    def test_exec_start_unrooted(self):
        cmd = cert_bootstrap.default_exec_start(cert_bootstrap.PATHS)
        assert "--root" not in cmd
        assert "--config /etc/droplet-init/droplet-init.env" in cmd

    def test_arm_is_idempotent(self, runner, timer):
        assert timer.arm() is True
        assert timer.arm() is False

        assert runner.count("systemctl", "enable", "--now", TIMER_UNIT) == 1
        assert timer.state == TimerState.ARMED

    def test_disarm_when_not_armed_is_noop(self, runner, timer):
        assert timer.disarm() is False
        assert runner.calls == []

    def test_disarm_after_arm(self, runner, timer):
        timer.arm()
        assert timer.disarm() is True
        assert timer.disarm() is False

        assert runner.count("systemctl", "disable", "--now", TIMER_UNIT) == 1
        assert timer.state == TimerState.DISARMED

    def test_state_survives_reload(self, runner, paths, timer):
        timer.arm()
        assert CertStore(paths.cert_state).timer_state == TimerState.ARMED

    def test_failed_enable_leaves_disarmed(self, runner, timer):
        runner.fail("systemctl", "enable")
        with pytest.raises(RuntimeError):
            timer.arm()
        assert timer.state == TimerState.DISARMED


class TestEvaluate:
    """Tests for PENDING -> ISSUED transitions"""

    def test_dns_not_ready(self, runner, cfg, store, timer):
        bootstrap = make_bootstrap(cfg, store, timer, records={"example.com": "198.51.100.1"})

        result = bootstrap.evaluate()

        assert not result.ok
        assert result.state == CertState.PENDING
        assert "DNS not ready" in result.reason
        assert not runner.ran("certbot")
        assert store.doc["attempts"] == 1

    def test_port_80_not_listening_keeps_timer_armed(self, runner, cfg, store, timer):
        """Retry fires before nginx listens: fail, log the blocker, stay armed"""
        timer.arm()
        bootstrap = make_bootstrap(cfg, store, timer, records={"example.com": PUBLIC_IP}, listening=False)

        result = bootstrap.evaluate()

        assert not result.ok
        assert result.reason == "Web server not listening on port 80"
        assert timer.state == TimerState.ARMED
        assert not runner.ran("systemctl", "disable")
        assert not runner.ran("certbot")

    def test_issue_both_domains_and_disarm(self, runner, cfg, store, timer):
        timer.arm()
        records = {"example.com": PUBLIC_IP, "www.example.com": PUBLIC_IP}
        bootstrap = make_bootstrap(cfg, store, timer, records=records)

        result = bootstrap.evaluate()

        assert result.ok and result.attempted
        assert result.state == CertState.ISSUED
        assert result.domains == ["example.com", "www.example.com"]
        certbot = [c for c in runner.calls if c[0] == "certbot"][0]
        assert certbot == [
            "certbot", "--nginx", "--non-interactive", "--agree-tos",
            "--email", "a@example.com", "--redirect", "--no-eff-email",
            "-d", "example.com", "-d", "www.example.com",
        ]
        assert timer.state == TimerState.DISARMED
        assert store.doc["issued_at"]

    def test_alt_domain_left_out_until_ready(self, runner, cfg, store, timer):
        bootstrap = make_bootstrap(cfg, store, timer, records={"example.com": PUBLIC_IP})

        result = bootstrap.evaluate()

        assert result.domains == ["example.com"]
        certbot = [c for c in runner.calls if c[0] == "certbot"][0]
        assert "www.example.com" not in certbot

    def test_certbot_failure_stays_pending(self, runner, cfg, store, timer):
        timer.arm()
        runner.fail("certbot", stderr="too many requests")
        bootstrap = make_bootstrap(cfg, store, timer, records={"example.com": PUBLIC_IP})

        result = bootstrap.evaluate()

        assert not result.ok and result.attempted
        assert result.state == CertState.PENDING
        assert "too many requests" in result.reason
        assert timer.state == TimerState.ARMED
        assert store.doc["last_attempt"]["ok"] is False

    def test_issued_is_terminal(self, runner, cfg, store, timer):
        """A second evaluation after ISSUED neither issues nor re-arms"""
        bootstrap = make_bootstrap(cfg, store, timer, records={"example.com": PUBLIC_IP})
        bootstrap.evaluate()
        runner.calls.clear()

        result = bootstrap.evaluate()

        assert result.ok
        assert result.reason == "already issued"
        assert runner.calls == []
        assert timer.state == TimerState.DISARMED

    def test_issued_state_survives_reload(self, runner, cfg, paths, store, timer):
        make_bootstrap(cfg, store, timer, records={"example.com": PUBLIC_IP}).evaluate()

        reloaded = CertStore(paths.cert_state)
        assert reloaded.cert_state == CertState.ISSUED
        assert reloaded.doc["domains"] == ["example.com"]

    def test_issued_with_stale_armed_timer_disarms(self, runner, cfg, store, timer):
        store.mark_issued(["example.com"])
        store.set_timer_state(TimerState.ARMED)
        bootstrap = make_bootstrap(cfg, store, timer, records={})

        result = bootstrap.evaluate()

        assert result.ok
        assert not runner.ran("certbot")
        assert runner.ran("systemctl", "disable", "--now", TIMER_UNIT)

    def test_disarm_failure_after_issue_stays_armed(self, runner, cfg, store, timer, caplog):
        """Issued even if systemctl cannot disable the timer; next firing disarms"""
        timer.arm()
        runner.fail("systemctl", "disable")
        bootstrap = make_bootstrap(cfg, store, timer, records={"example.com": PUBLIC_IP})

        result = bootstrap.evaluate()

        assert result.ok
        assert result.state == CertState.ISSUED
        assert timer.state == TimerState.ARMED
        assert "Could not disarm retry timer" in caplog.text

        runner.calls.clear()
        runner.respond("systemctl", "disable")
        assert bootstrap.evaluate().reason == "already issued"
        assert not runner.ran("certbot")
        assert timer.state == TimerState.DISARMED

    def test_explicit_public_ip_wins(self, runner, cfg, store, timer):
        bootstrap = make_bootstrap(cfg, store, timer, records={"example.com": "198.51.100.7"})
        assert bootstrap.evaluate(public_ip="198.51.100.7").ok


class TestRetryMain:
    """Tests for the droplet-cert-retry entry point"""

    def _write_config(self, paths):
        p = Path(paths.config_env)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text('DOMAIN="example.com"\nADMIN_EMAIL="a@example.com"\n', encoding="utf-8")

    def test_missing_config(self, runner, tmp_path):
        assert cert_bootstrap.main(["--root", str(tmp_path)]) == 2

    def test_dns_not_ready_exits_nonzero(self, runner, paths, tmp_path, dns_records, monkeypatch):
        self._write_config(paths)
        monkeypatch.setattr(cert_bootstrap, "observed_public_ip", lambda: PUBLIC_IP)

        assert cert_bootstrap.main(["--root", str(tmp_path)]) == 1
        assert not runner.ran(paths.certbot_bin)

    def test_issues_and_exits_zero(self, runner, paths, tmp_path, dns_records, monkeypatch):
        self._write_config(paths)
        dns_records["example.com"] = [PUBLIC_IP]
        runner.respond("ss", stdout="LISTEN 0 511 0.0.0.0:80 0.0.0.0:*\n")
        monkeypatch.setattr(cert_bootstrap, "observed_public_ip", lambda: PUBLIC_IP)

        assert cert_bootstrap.main(["--root", str(tmp_path)]) == 0
        assert runner.ran(paths.certbot_bin, "--nginx")
        assert CertStore(paths.cert_state).cert_state == CertState.ISSUED
