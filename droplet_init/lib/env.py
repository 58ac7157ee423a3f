from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class Paths:
    log: str = "/var/log/do-init.log"
    fetcher_log: str = "/var/log/fetcher.log"
    completion_marker: str = "/var/log/init-complete.txt"
    state: str = "/var/lib/droplet-init/state.json"
    cert_state: str = "/var/lib/droplet-init/cert-bootstrap.json"
    config_env: str = "/etc/droplet-init/droplet-init.env"
    www_root: str = "/var/www"
    nginx_available: str = "/etc/nginx/sites-available"
    nginx_enabled: str = "/etc/nginx/sites-enabled"
    systemd_dir: str = "/etc/systemd/system"
    sudoers_dir: str = "/etc/sudoers.d"
    home_root: str = "/home"
    root_home: str = "/root"
    certbot_snap: str = "/snap/bin/certbot"
    certbot_bin: str = "/usr/bin/certbot"
    # Staging prefix the paths above were moved under; empty on a real host.
    root: str = ""

    def rooted(self, root: Optional[str]) -> "Paths":
        """Return a copy with every path moved under root (staging/tests)."""

        if not root:
            return self
        values = {
            f.name: str(Path(root) / getattr(self, f.name).lstrip("/")) for f in fields(self) if f.name != "root"
        }
        return Paths(root=str(root), **values)

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)

    @classmethod
    def from_state(cls, state: Dict[str, Any]) -> "Paths":
        raw = state.get("paths") or {}
        known = {f.name for f in fields(cls)}
        return cls(**{k: str(v) for k, v in raw.items() if k in known})


PATHS = Paths()
