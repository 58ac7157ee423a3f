from __future__ import annotations

import logging
from typing import Any, Dict

import requests

logger = logging.getLogger(__name__)

API_URL = "https://api.digitalocean.com/v2"
API_TIMEOUT_S = 30.0


class CloudAPIError(RuntimeError):
    pass


def assign_floating_ip(
    *,
    token: str,
    floating_ip: str,
    droplet_id: str,
    api_url: str = API_URL,
) -> Dict[str, Any]:
    """Ask the control plane to attach floating_ip to droplet_id.

    Returns the action object. The assignment completes asynchronously.
    """

    url = f"{api_url}/floating_ips/{floating_ip}/actions"
    payload = {"type": "assign", "droplet_id": int(droplet_id)}
    headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}

    logger.info("POST %s droplet_id=%s", url, droplet_id)
    try:
        r = requests.post(url, json=payload, headers=headers, timeout=API_TIMEOUT_S)
    except requests.RequestException as e:
        raise CloudAPIError(f"Floating IP assign request failed: {e}") from e

    if r.status_code >= 400:
        raise CloudAPIError(f"Floating IP assign rejected ({r.status_code}): {r.text.strip()}")

    try:
        body = r.json()
    except ValueError:
        body = {}
    action = body.get("action") or {}
    logger.info("Floating IP assign action id=%s status=%s", action.get("id"), action.get("status"))
    return action
