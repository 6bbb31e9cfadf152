"""Logging helpers for the commission core."""

from __future__ import annotations

import logging
import os
from pathlib import Path


class AuditFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        return record.name.startswith("lottery_commission.audit")


def configure_logging(level: int | None = None, audit_log_path: str | None = None) -> None:
    """Configure default logging if no handlers are present."""
    root = logging.getLogger()
    if root.handlers:
        return
    if level is None:
        level_name = (os.getenv("COMMISSION_LOG_LEVEL") or "INFO").strip().upper()
        parsed = logging.getLevelName(level_name)
        level = parsed if isinstance(parsed, int) else logging.INFO
    handlers: list[logging.Handler] = [logging.StreamHandler()]

    audit_path = audit_log_path or (os.getenv("COMMISSION_AUDIT_LOG") or "").strip() or None
    if audit_path:
        path = Path(audit_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        audit_handler = logging.FileHandler(path, encoding="utf-8")
        audit_handler.addFilter(AuditFilter())
        handlers.append(audit_handler)

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers,
    )
