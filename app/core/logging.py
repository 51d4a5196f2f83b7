"""
Process-wide logging setup.

Modules log through `logging.getLogger(__name__)` and prefix messages with a
bracketed scope, e.g. ``[guardrail] user=u1 rule=attention_rule``, so the
stdout stream collected by gunicorn stays greppable per subsystem.
"""
from __future__ import annotations

import logging

_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
_configured = False


def configure_logging(level: str = "INFO") -> None:
    """Install a single stdout handler on the root logger (idempotent)."""
    global _configured
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        resolved = logging.INFO

    root = logging.getLogger()
    root.setLevel(resolved)
    if _configured:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_FORMAT))
    root.addHandler(handler)
    _configured = True
