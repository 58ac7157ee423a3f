from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict

import requests

from ..lib import systemd
from ..lib.command import run_cmd
from ..lib.files import remove_file, symlink, write_file
from ..lib.nginx import LANDING_MARKER, render_landing_page, render_vhost
from ..lib.pkg import apt_install
from ..pipeline import FatalStepError, note, note_soft_failure
from ._context import step_context

logger = logging.getLogger(__name__)

SMOKE_TEST_URL = "http://127.0.0.1/"


def smoke_test(url: str = SMOKE_TEST_URL, *, marker: str = LANDING_MARKER, timeout: float = 10.0) -> bool:
    try:
        r = requests.get(url, timeout=timeout)
    except requests.RequestException as e:
        logger.warning("Smoke test request failed: %s", e)
        return False
    return r.status_code == 200 and marker in r.text


class WebServerStep:
    step_id = "50_web_server"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg, paths, dry_run = step_context(state)

        r = apt_install(["nginx"], check=False, dry_run=dry_run)
        if r is not None and not r.ok:
            raise FatalStepError(f"nginx install failed ({r.returncode})")

        webroot = str(Path(paths.www_root) / cfg.domain / "html")
        write_file(str(Path(webroot) / "index.html"), render_landing_page(cfg.domain), dry_run=dry_run)

        # certbot --nginx needs a plain HTTP server block for the domain to validate against.
        vhost = str(Path(paths.nginx_available) / cfg.domain)
        write_file(vhost, render_vhost(domain=cfg.domain, alt_domain=cfg.alt_domain, webroot=webroot), dry_run=dry_run)
        symlink(vhost, str(Path(paths.nginx_enabled) / cfg.domain), dry_run=dry_run)

        # Our vhost is the default_server now; two default servers on :80 would not load.
        if remove_file(str(Path(paths.nginx_enabled) / "default"), dry_run=dry_run):
            note(state, "Disabled nginx default site")

        if not run_cmd(["nginx", "-t"], check=False, dry_run=dry_run).ok:
            note_soft_failure(state, "nginx -t reported an invalid configuration")
        if not systemd.systemctl("enable", "nginx", check=False, dry_run=dry_run).ok:
            note_soft_failure(state, "systemctl enable nginx failed")
        if not systemd.systemctl("restart", "nginx", check=False, dry_run=dry_run).ok:
            note_soft_failure(state, "systemctl restart nginx failed")

        if dry_run:
            logger.info("Would smoke test %s", SMOKE_TEST_URL)
            return state

        passed = smoke_test()
        state.setdefault("execution", {}).setdefault("decisions", {})["web_smoke_test"] = passed
        if passed:
            note(state, f"Smoke test PASS: {SMOKE_TEST_URL} serves the landing page")
        else:
            note_soft_failure(state, f"Smoke test FAIL: landing page marker not found at {SMOKE_TEST_URL}")
        return state
