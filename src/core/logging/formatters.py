"""Log formatters for JSON and console output."""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict

from core.logging.context import get_log_context


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter with context injection.

    Produces one JSON object per line for easy parsing with jq/grep.
    """

    # Fields to extract from LogRecord extras
    EXTRA_FIELDS = [
        # Identity
        "principal",
        "impersonated_user",
        "keytab_path",
        # Cluster
        "leader",
        "cluster_formed",
        "nodes_total",
        "nodes_succeeded",
        "nodes_failed",
        "failed_nodes",
        # Credentials
        "credential_fingerprint",
        "credential_bytes",
        "distribution_mode",
        # Loop
        "outcome",
        "state",
        "tick_count",
        "refresh_interval_seconds",
        "duration_ms",
        # Errors
        "error_category",
        "error_message",
        "missing_keys",
        "reason",
    ]

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3]
            + "Z",
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        # Inject context variables
        ctx = get_log_context()
        for key in ("node_id", "stage", "tick_id"):
            if ctx[key]:
                log_entry[key] = ctx[key]

        # Add source location for DEBUG/ERROR
        if record.levelno in (logging.DEBUG, logging.ERROR, logging.CRITICAL):
            log_entry["file"] = f"{record.filename}:{record.lineno}"

        for field in self.EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable console formatter.

    Includes context when available.
    """

    def format(self, record: logging.LogRecord) -> str:
        ctx = get_log_context()

        parts = [
            datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            record.levelname,
        ]

        if ctx["node_id"]:
            parts.append(f"[{ctx['node_id']}]")
        if ctx["stage"]:
            parts.append(f"[{ctx['stage']}]")

        prefix = " - ".join(parts)

        tick_id = ctx["tick_id"]
        if tick_id:
            message = f"{prefix} - [{tick_id[-4:]}] {record.getMessage()}"
        else:
            message = f"{prefix} - {record.getMessage()}"

        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return message
