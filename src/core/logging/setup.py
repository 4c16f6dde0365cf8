"""Process logging for a refresher node: rotating JSON file plus console."""

import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from core.logging.context import set_log_context
from core.logging.formatters import ConsoleFormatter, JSONFormatter

DEFAULT_DOMAIN = "credential_refresh"
DEFAULT_MAX_BYTES = 10 * 1024 * 1024  # 10MB
DEFAULT_BACKUP_COUNT = 5
DEFAULT_CONSOLE_LEVEL = logging.INFO
DEFAULT_FILE_LEVEL = logging.DEBUG

# Third-party loggers that are chatty at DEBUG
NOISY_LOGGERS = [
    "urllib3",
    "prometheus_client",
]


def get_log_file_path(
    log_dir: Path,
    domain: Optional[str] = None,
    stage: Optional[str] = None,
    instance_id: Optional[str] = None,
) -> Path:
    """
    Build log file path with domain/date subfolder structure.

    Structure: {log_dir}/{domain}/{YYYY-MM-DD}/{domain}_{stage}_{YYYYMMDD}[_instance].log

    Args:
        log_dir: Base log directory
        domain: Log domain (e.g. credential_refresh)
        stage: Stage name (refresher, receiver, ...)
        instance_id: Unique instance identifier (e.g., process ID) so that
            several processes on one host do not share a file
    """
    now = datetime.now()
    parts = [p for p in (domain, stage) if p] or [DEFAULT_DOMAIN]
    parts.append(now.strftime("%Y%m%d"))
    if instance_id:
        parts.append(instance_id)
    filename = "_".join(parts) + ".log"

    folder = log_dir / domain if domain else log_dir
    return folder / now.strftime("%Y-%m-%d") / filename


def _replace_root_handlers(*handlers: logging.Handler) -> None:
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # handlers filter
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root_logger.addHandler(handler)


def setup_logging(
    log_dir: Path,
    domain: Optional[str] = DEFAULT_DOMAIN,
    stage: Optional[str] = None,
    node_id: Optional[str] = None,
    json_format: bool = True,
    console_level: int = DEFAULT_CONSOLE_LEVEL,
    file_level: int = DEFAULT_FILE_LEVEL,
    max_bytes: int = DEFAULT_MAX_BYTES,
    backup_count: int = DEFAULT_BACKUP_COUNT,
    suppress_noisy: bool = True,
) -> Path:
    """
    Send all process logging to a rotating file and stdout.

    Replaces whatever handlers the root logger had, so calling it twice
    does not duplicate output. The node id and stage are stored in the log
    context of the calling thread and show up on every record it emits.

    Files are per process and per day:
        logs/credential_refresh/2025-01-15/credential_refresh_refresher_20250115_p12345.log

    Returns:
        Path of the log file
    """
    if node_id:
        set_log_context(node_id=node_id)
    if stage:
        set_log_context(stage=stage)

    log_file = get_log_file_path(
        Path(log_dir), domain=domain, stage=stage, instance_id=f"p{os.getpid()}"
    )
    log_file.parent.mkdir(parents=True, exist_ok=True)

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(file_level)
    if json_format:
        file_handler.setFormatter(JSONFormatter())
    else:
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(ConsoleFormatter())

    _replace_root_handlers(file_handler, console_handler)

    if suppress_noisy:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(f"Logging initialized: file={log_file}")
    return log_file
