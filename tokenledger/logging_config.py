"""Logging setup for processes that run token accounting.

Usage:
    from tokenledger.logging_config import setup_logging

    setup_logging("Server")     # once, at process startup

Every record gets the process role, plus the pipeline stage whose token usage
is being recorded (``record_function_usage`` binds it through ``bind_stage``):

    2026-10-19 14:30:01 [Server][Stage SystemCompletion][ERROR] tokenledger.services.token_usage:170 - No metadata provided to capture usage details.
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import Iterator

LOG_FORMAT = "%(asctime)s [%(role)s]%(stage_tag)s[%(levelname)s] %(name)s:%(lineno)d - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_STREAM_HANDLER = "_tokenledger_stream"
_FILE_HANDLER = "_tokenledger_file"

stage_var: ContextVar[str] = ContextVar("stage_var", default="")


@contextmanager
def bind_stage(stage: str | None) -> Iterator[None]:
    """Tag log records emitted inside the block with *stage*."""
    token = stage_var.set(stage or "")
    try:
        yield
    finally:
        stage_var.reset(token)


class StageFilter(logging.Filter):
    """Adds ``role`` and ``stage_tag`` attributes used by ``LOG_FORMAT``."""

    def __init__(self, role: str) -> None:
        super().__init__()
        self.role = role

    def filter(self, record: logging.LogRecord) -> bool:
        stage = stage_var.get()
        record.role = self.role  # type: ignore[attr-defined]
        record.stage_tag = f"[Stage {stage}]" if stage else ""  # type: ignore[attr-defined]
        return True


def _add_handler(root: logging.Logger, handler: logging.Handler, name: str, role: str) -> None:
    handler.name = name
    handler.addFilter(StageFilter(role))
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(handler)


def setup_logging(role: str) -> None:
    """Configure the root logger for *role*; a second call is a no-op.

    Logs go to stderr, and also to a rotating file when ``settings.LOG_FILE`` is set.
    """
    from tokenledger import config

    settings = config.settings
    root = logging.getLogger()
    if any(h.name == _STREAM_HANDLER for h in root.handlers):
        return

    root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    _add_handler(root, logging.StreamHandler(sys.stderr), _STREAM_HANDLER, role)

    if settings.LOG_FILE:
        log_path = Path(settings.LOG_FILE)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=settings.LOG_MAX_BYTES,
            backupCount=settings.LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
        _add_handler(root, file_handler, _FILE_HANDLER, role)

    # requests' connection pool logs every request at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)
