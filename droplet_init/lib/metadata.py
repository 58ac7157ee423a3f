from __future__ import annotations

import logging
from typing import List

import requests

from .net import http_get_text

logger = logging.getLogger(__name__)

METADATA_URL = "http://169.254.169.254/metadata/v1"
METADATA_TIMEOUT_S = 5.0


def _get(rel: str, *, base_url: str = METADATA_URL) -> str:
    return http_get_text(f"{base_url}/{rel.lstrip('/')}", timeout=METADATA_TIMEOUT_S)


def droplet_id(*, base_url: str = METADATA_URL) -> str:
    return _get("id", base_url=base_url).strip()


def public_keys(*, base_url: str = METADATA_URL) -> List[str]:
    """Registered SSH public keys, one per line in the endpoint body."""

    body = _get("public-keys", base_url=base_url)
    return [line.strip() for line in body.splitlines() if line.strip()]


def public_ipv4(*, base_url: str = METADATA_URL) -> str:
    """Anchor address assigned to the public interface; "" if unavailable."""

    try:
        return _get("interfaces/public/0/ipv4/address", base_url=base_url).strip()
    except requests.RequestException as e:
        logger.info("Metadata public IPv4 unavailable: %s", e)
        return ""
