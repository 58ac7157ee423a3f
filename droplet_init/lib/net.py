from __future__ import annotations

import logging
import time
from typing import Callable, Optional

import dns.exception
import dns.resolver
import requests

from .command import run_cmd

logger = logging.getLogger(__name__)

IP_ECHO_URL = "https://api.ipify.org"
HTTP_TIMEOUT_S = 10.0


def observed_public_ip(*, url: str = IP_ECHO_URL, timeout: float = HTTP_TIMEOUT_S) -> str:
    """Public address as seen by the echo service; "" when it cannot be reached."""

    try:
        r = requests.get(url, timeout=timeout)
        r.raise_for_status()
    except requests.RequestException as e:
        logger.warning("Public IP lookup via %s failed: %s", url, e)
        return ""
    return r.text.strip()


def resolve_a(name: str) -> str:
    """First A record of name, or "" if it does not resolve."""

    if not name:
        return ""
    try:
        answers = dns.resolver.resolve(name, "A")
    except dns.exception.DNSException as e:
        logger.info("DNS lookup for %s failed: %s", name, e)
        return ""
    for rdata in answers:
        return rdata.address
    return ""


def addresses_match(resolved: str, public_ip: str) -> bool:
    resolved = (resolved or "").strip()
    public_ip = (public_ip or "").strip()
    if not resolved or not public_ip:
        return False
    return resolved == public_ip


def is_dns_ready(
    name: str,
    public_ip: str,
    *,
    resolver: Callable[[str], str] = resolve_a,
) -> bool:
    """A name is ready when its A record points at this instance."""

    resolved = resolver(name)
    ready = addresses_match(resolved, public_ip)
    logger.info("DNS %s -> %s (instance %s): %s", name, resolved or "-", public_ip or "-", "ready" if ready else "not ready")
    return ready


def wait_for_public_ip(
    expected: str,
    *,
    attempts: int = 24,
    interval_s: float = 5.0,
    lookup: Callable[[], str] = observed_public_ip,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Poll the observed public address until it equals expected.

    Returns False once the attempt budget is exhausted.
    """

    for attempt in range(1, attempts + 1):
        current = lookup()
        if addresses_match(current, expected):
            logger.info("Public IP is %s after %d attempt(s)", expected, attempt)
            return True
        logger.info("Public IP is %s, waiting for %s (%d/%d)", current or "-", expected, attempt, attempts)
        if attempt < attempts:
            sleep(interval_s)
    return False


def is_port_listening(port: int, *, dry_run: bool = False) -> bool:
    """Best-effort check that some local socket listens on a TCP port."""

    r = run_cmd(["ss", "-H", "-l", "-t", "-n", f"sport = :{port}"], check=False, dry_run=dry_run)
    if dry_run:
        return True
    return r.ok and bool(r.stdout.strip())


def http_get_text(url: str, *, timeout: float = HTTP_TIMEOUT_S, headers: Optional[dict] = None) -> str:
    r = requests.get(url, timeout=timeout, headers=headers)
    r.raise_for_status()
    return r.text
