from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from dotenv import dotenv_values

from .lib.files import write_file

logger = logging.getLogger(__name__)

DEFAULT_USERNAME = "deploy"

# field name -> recognized key (upper case in env files, lower case also accepted in YAML)
ENV_KEYS: Dict[str, str] = {
    "domain": "DOMAIN",
    "alt_domain": "WWW_DOMAIN",
    "admin_email": "ADMIN_EMAIL",
    "username": "ADMIN_USER",
    "do_token": "DO_TOKEN",
    "floating_ip": "FLOATING_IP",
}

REQUIRED = ("domain", "admin_email")


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class InitConfig:
    domain: str
    admin_email: str
    alt_domain: str = ""
    username: str = DEFAULT_USERNAME
    do_token: Optional[str] = None
    floating_ip: Optional[str] = None

    def __post_init__(self) -> None:
        if self.username == "root":
            raise ConfigError("ADMIN_USER must name a non-root account")
        if not self.alt_domain:
            object.__setattr__(self, "alt_domain", f"www.{self.domain}")

    @property
    def wants_floating_ip(self) -> bool:
        return bool(self.do_token and self.floating_ip)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def redacted(self) -> Dict[str, Any]:
        d = self.to_dict()
        if d.get("do_token"):
            d["do_token"] = "***"
        return d

    @classmethod
    def from_state(cls, state: Dict[str, Any]) -> "InitConfig":
        raw = state.get("config") or {}
        if not raw.get("domain"):
            raise RuntimeError("config not loaded (run 10_load_config first)")
        return cls(**{k: raw.get(k) for k in ENV_KEYS if raw.get(k) is not None})


def _read_file(path: str) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Config file not found: {path}")

    if p.suffix.lower() in {".yaml", ".yml"}:
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
        if not isinstance(raw, dict):
            raise ConfigError(f"{path} must contain a mapping/object")
        return {str(k): v for k, v in raw.items()}

    return {k: v for k, v in dotenv_values(p).items() if v is not None}


def _first_present(src: Mapping[str, Any], key: str) -> Optional[str]:
    for candidate in (key, key.lower()):
        v = src.get(candidate)
        if v is not None and str(v).strip():
            return str(v).strip()
    return None


def _pick(sources: list[Mapping[str, Any]], field: str) -> Optional[str]:
    # Later sources override earlier ones.
    value: Optional[str] = None
    for src in sources:
        found = _first_present(src, ENV_KEYS[field])
        if found is not None:
            value = found
    return value


def load_config(path: Optional[str] = None, *, environ: Optional[Mapping[str, str]] = None) -> InitConfig:
    """Load config from an optional key-value file, then the environment.

    Environment values win over file values. domain and admin_email are
    mandatory; their absence raises ConfigError.
    """

    sources: list[Mapping[str, Any]] = []
    if path:
        sources.append(_read_file(path))
    sources.append(os.environ if environ is None else environ)

    values = {field: _pick(sources, field) for field in ENV_KEYS}

    missing = [f for f in REQUIRED if not values.get(f)]
    if missing:
        keys = ", ".join(ENV_KEYS[f] for f in missing)
        raise ConfigError(f"Missing required configuration: {keys}")

    cfg = InitConfig(**{k: v for k, v in values.items() if v is not None})
    logger.info("Config loaded: %s", cfg.redacted())
    return cfg


def render_env_file(cfg: InitConfig) -> str:
    lines = ["# Written by droplet-init; read by droplet-cert-retry."]
    for field, key in ENV_KEYS.items():
        value = getattr(cfg, field)
        if value:
            escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
            lines.append(f'{key}="{escaped}"')
    return "\n".join(lines) + "\n"


def save_env_file(cfg: InitConfig, path: str, *, dry_run: bool = False) -> None:
    # May hold the cloud API token.
    write_file(path, render_env_file(cfg), mode=0o600, dry_run=dry_run)
