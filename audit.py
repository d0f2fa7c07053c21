"""
Audit logging: records administrative catalog changes.

Events are written to both the audit_log table and structured logging.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime

from flask import has_request_context, request

from database import write_transaction

logger = logging.getLogger(__name__)


def log_event(action: str, user_id: str | None = None, detail: str = "") -> None:
    """Insert an audit log entry and emit a structured log line."""
    ip = (request.remote_addr or "") if has_request_context() else ""
    ua = request.headers.get("User-Agent", "") if has_request_context() else ""
    now = datetime.now().isoformat()

    try:
        with write_transaction() as db:
            db.execute(
                "INSERT INTO audit_log (user_id, action, detail, ip_address, user_agent, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (user_id, action, detail, ip, ua, now),
            )
    except sqlite3.Error:
        # Audit failures must not break the request
        logger.warning("audit write failed for %s", action, exc_info=True)

    logger.info("audit: %s user_id=%s detail=%s ip=%s", action, user_id, detail, ip)

