"""Droplet init (first-boot provisioning for cloud instances).

Core design goals:
- One-shot, linear, idempotent-by-intent steps
- Best-effort steps with explicit per-step outcomes
- Certificate issuance deferred to a self-disarming retry timer
- Centralized logging
"""

__version__ = "1.0.0"

__all__ = ["__version__"]
