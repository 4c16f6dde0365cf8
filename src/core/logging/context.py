"""Log context variables shared by formatters and filters."""

import secrets
from contextvars import ContextVar
from datetime import datetime
from typing import Dict, Optional

_node_id: ContextVar[Optional[str]] = ContextVar("node_id", default=None)
_stage: ContextVar[Optional[str]] = ContextVar("stage", default=None)
_tick_id: ContextVar[Optional[str]] = ContextVar("tick_id", default=None)


def set_log_context(
    node_id: Optional[str] = None,
    stage: Optional[str] = None,
    tick_id: Optional[str] = None,
) -> None:
    """
    Set log context for the current thread/task.

    Only non-None arguments are applied; existing values are kept otherwise.
    """
    if node_id is not None:
        _node_id.set(node_id)
    if stage is not None:
        _stage.set(stage)
    if tick_id is not None:
        _tick_id.set(tick_id)


def get_log_context() -> Dict[str, Optional[str]]:
    """Get current log context as a dict."""
    return {
        "node_id": _node_id.get(),
        "stage": _stage.get(),
        "tick_id": _tick_id.get(),
    }


def clear_log_context() -> None:
    """Reset all context variables."""
    _node_id.set(None)
    _stage.set(None)
    _tick_id.set(None)


def generate_tick_id() -> str:
    """
    Generate unique tick identifier.

    Format: t-YYYYMMDD-HHMMSS-XXXX where XXXX is random hex.
    """
    ts = datetime.now().strftime("%Y%m%d-%H%M%S")
    suffix = secrets.token_hex(2)
    return f"t-{ts}-{suffix}"
