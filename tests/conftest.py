"""Shared pytest fixtures for droplet-init tests."""
from __future__ import annotations

import logging
import os
import subprocess
import sys
from types import SimpleNamespace

import dns.resolver
import pytest

# Add project root to path
_PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _PROJECT_ROOT)

from droplet_init.config import ENV_KEYS, InitConfig
from droplet_init.lib import command
from droplet_init.lib.env import PATHS


class FakeRunner:
    """Stands in for subprocess.run; records argv and answers by prefix."""

    def __init__(self):
        self.calls = []
        self._rules = []

    def respond(self, *prefix, returncode=0, stdout="", stderr=""):
        self._rules.insert(0, (list(prefix), returncode, stdout, stderr))
        return self

    def fail(self, *prefix, returncode=1, stderr="boom"):
        return self.respond(*prefix, returncode=returncode, stderr=stderr)

    def __call__(self, argv, **kwargs):
        argv = list(argv)
        self.calls.append(argv)
        for prefix, rc, out, err in self._rules:
            if argv[: len(prefix)] == prefix:
                return subprocess.CompletedProcess(argv, rc, out, err)
        return subprocess.CompletedProcess(argv, 0, "", "")

    def ran(self, *prefix):
        return any(c[: len(prefix)] == list(prefix) for c in self.calls)

    def count(self, *prefix):
        return sum(1 for c in self.calls if c[: len(prefix)] == list(prefix))


@pytest.fixture
def runner(monkeypatch):
    r = FakeRunner()
    monkeypatch.setattr(command.subprocess, "run", r)
    return r


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ENV_KEYS.values():
        monkeypatch.delenv(key, raising=False)


@pytest.fixture(autouse=True)
def reset_logging():
    root = logging.getLogger()
    before = list(root.handlers)
    yield
    for h in list(root.handlers):
        if h not in before:
            root.removeHandler(h)
            h.close()
    for attr in ("_droplet_init_configured", "_droplet_init_log_path"):
        if hasattr(root, attr):
            delattr(root, attr)


@pytest.fixture
def paths(tmp_path):
    return PATHS.rooted(str(tmp_path))


@pytest.fixture
def cfg():
    return InitConfig(domain="example.com", admin_email="a@example.com")


@pytest.fixture
def state(cfg, paths):
    return {
        "config": cfg.to_dict(),
        "options": {"dry_run": False},
        "paths": paths.to_dict(),
        "execution": {},
    }


@pytest.fixture
def dns_records(monkeypatch):
    """name -> list of A records served by a fake resolver; unknown names are NXDOMAIN."""
    records = {}

    def fake_resolve(name, rdtype):
        if name not in records:
            raise dns.resolver.NXDOMAIN()
        return [SimpleNamespace(address=a) for a in records[name]]

    monkeypatch.setattr(dns.resolver, "resolve", fake_resolve)
    return records
