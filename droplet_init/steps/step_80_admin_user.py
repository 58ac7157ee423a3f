from __future__ import annotations

import logging
import os
import pwd
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests

from ..lib import metadata
from ..lib.command import run_cmd
from ..lib.env import Paths
from ..lib.files import remove_file, write_file
from ..pipeline import note, note_soft_failure
from ._context import step_context

logger = logging.getLogger(__name__)

# Debian/Ubuntu hand out UIDs below this to system accounts.
FIRST_USER_UID = 1000


def render_sudoers(username: str) -> str:
    return f"{username} ALL=(ALL) NOPASSWD:ALL\n"


def _root_keys(paths: Paths) -> List[str]:
    p = Path(paths.root_home) / ".ssh" / "authorized_keys"
    if not p.exists():
        return []
    return [line.strip() for line in p.read_text(encoding="utf-8").splitlines() if line.strip()]


def passwd_entry(user: str, paths: Paths) -> Optional[pwd.struct_passwd]:
    """The host's account record, or None for staged trees and unknown users."""

    if paths.root:
        return None
    try:
        return pwd.getpwnam(user)
    except KeyError:
        return None


def home_dir(user: str, paths: Paths) -> Path:
    entry = passwd_entry(user, paths)
    if entry is not None:
        return Path(entry.pw_dir)
    return Path(paths.home_root) / user


class AdminUserStep:
    step_id = "80_admin_user"

    def _collect_keys(self, paths: Paths) -> List[str]:
        try:
            keys = metadata.public_keys()
        except requests.RequestException as e:
            logger.warning("Metadata public keys unavailable (%s); falling back to root's keys", e)
            keys = []
        if not keys:
            keys = _root_keys(paths)
        return keys

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg, paths, dry_run = step_context(state)
        user = cfg.username

        exists = (not dry_run) and run_cmd(["id", "-u", user], check=False).ok
        if exists:
            entry = passwd_entry(user, paths)
            if entry is not None and entry.pw_uid < FIRST_USER_UID:
                note_soft_failure(state, f"{user} is a system account (uid {entry.pw_uid}); not granting admin access")
                return state
            logger.info("User %s exists", user)
            if not run_cmd(["usermod", "-aG", "sudo", user], check=False).ok:
                note_soft_failure(state, f"Could not add {user} to sudo")
        elif not run_cmd(["useradd", "-m", "-s", "/bin/bash", "-G", "sudo", user], check=False, dry_run=dry_run).ok:
            note_soft_failure(state, f"useradd {user} failed")
            return state

        sudoers = str(Path(paths.sudoers_dir) / f"90-{user}")
        write_file(sudoers, render_sudoers(user), mode=0o440, dry_run=dry_run)
        if not run_cmd(["visudo", "-cf", sudoers], check=False, dry_run=dry_run).ok:
            # A broken sudoers.d file disables sudo for everyone.
            remove_file(sudoers, dry_run=dry_run)
            note_soft_failure(state, f"Rejected invalid sudoers file {sudoers}")

        keys = [] if dry_run else self._collect_keys(paths)
        ssh_dir = (Path(paths.home_root) / user if dry_run else home_dir(user, paths)) / ".ssh"
        auth = ssh_dir / "authorized_keys"
        if keys:
            write_file(str(auth), "\n".join(keys) + "\n", mode=0o600, dry_run=dry_run)
            if not dry_run:
                os.chmod(ssh_dir, 0o700)
            if not run_cmd(["chown", "-R", f"{user}:{user}", str(ssh_dir)], check=False, dry_run=dry_run).ok:
                note_soft_failure(state, f"chown {ssh_dir} failed")
            note(state, f"Installed {len(keys)} SSH key(s) for {user}")
        elif not dry_run:
            note_soft_failure(state, f"No SSH public keys found for {user}")

        state.setdefault("execution", {}).setdefault("decisions", {})["admin_user"] = {
            "username": user,
            "ssh_keys": len(keys),
        }
        return state
