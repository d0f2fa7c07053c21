"""
Periodic maintenance jobs.

- refresh_all_streaks: streaks decay on days without activity, but the
  ledger is only written on completion, so a daily pass brings every
  current_streak back in line with the activity log.
- aggregate_daily_analytics: one "daily_problems_solved" row per user who
  finished work on the given day, with the distinct subjects touched.
- prune_old_analytics / clear_old_solver_payloads: retention for analytics
  rows and for raw solver responses, which are large and only useful for
  debugging recent submissions.
"""

from __future__ import annotations

import json
import logging
from datetime import date, datetime, timedelta
from typing import Optional

from database import get_db, write_transaction
from ledger import ProgressLedgerDB

logger = logging.getLogger(__name__)

DAILY_PROBLEMS_METRIC = "daily_problems_solved"


def refresh_all_streaks(today: Optional[date] = None) -> int:
    """Recompute current/longest streak for every ledger. Returns rows updated."""
    today = today or date.today()
    user_ids = [r["user_id"] for r in get_db().execute("SELECT user_id FROM user_progress").fetchall()]
    for user_id in user_ids:
        ProgressLedgerDB(user_id).refresh_streak(today)
    logger.info("Refreshed streaks for %d users", len(user_ids))
    return len(user_ids)


def aggregate_daily_analytics(day: Optional[date] = None) -> int:
    """Write per-user solved counts for ``day`` (default yesterday). Returns users recorded.

    Re-running for the same day overwrites that day's rows.
    """
    day = day or date.today() - timedelta(days=1)
    now = datetime.now().isoformat()
    with write_transaction() as db:
        rows = db.execute(
            "SELECT user_id, subject FROM submissions "
            "WHERE status IN ('completed', 'archived') AND substr(completed_at, 1, 10) = ?",
            (day.isoformat(),),
        ).fetchall()
        per_user: dict[str, list[str]] = {}
        for row in rows:
            per_user.setdefault(row["user_id"], []).append(row["subject"])
        for user_id, subjects in per_user.items():
            data = {"date": day.isoformat(), "subjects": sorted({s for s in subjects if s})}
            db.execute(
                "INSERT INTO learning_analytics (user_id, metric_name, metric_value, metric_data, "
                "date_recorded, created_at) VALUES (?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(user_id, metric_name, date_recorded) DO UPDATE SET "
                "metric_value = excluded.metric_value, metric_data = excluded.metric_data, "
                "created_at = excluded.created_at",
                (user_id, DAILY_PROBLEMS_METRIC, len(subjects), json.dumps(data),
                 day.isoformat(), now),
            )
    logger.info("Recorded daily analytics for %d users on %s", len(per_user), day)
    return len(per_user)


def prune_old_analytics(retention_days: int, now: Optional[datetime] = None) -> int:
    """Delete analytics rows recorded before the retention window."""
    cutoff = ((now or datetime.now()) - timedelta(days=retention_days)).isoformat()
    with write_transaction() as db:
        cur = db.execute("DELETE FROM learning_analytics WHERE created_at < ?", (cutoff,))
    logger.info("Pruned %d analytics rows older than %s", cur.rowcount, cutoff)
    return cur.rowcount


def clear_old_solver_payloads(retention_days: int, now: Optional[datetime] = None) -> int:
    """Blank ai_response on submissions created before the retention window."""
    cutoff = ((now or datetime.now()) - timedelta(days=retention_days)).isoformat()
    with write_transaction() as db:
        cur = db.execute(
            "UPDATE submissions SET ai_response = '' WHERE created_at < ? AND ai_response != ''",
            (cutoff,),
        )
    logger.info("Cleared solver payloads on %d submissions older than %s", cur.rowcount, cutoff)
    return cur.rowcount


def run_daily_maintenance(app) -> dict:
    """Entry point for the scheduler; runs inside its own app context."""
    cfg = app.config
    with app.app_context():
        streaks = refresh_all_streaks()
        analytics = aggregate_daily_analytics()
        pruned = prune_old_analytics(cfg.get("ANALYTICS_RETENTION_DAYS", 730))
        cleared = clear_old_solver_payloads(cfg.get("SOLVER_PAYLOAD_RETENTION_DAYS", 180))
    return {
        "streaks_refreshed": streaks,
        "analytics_recorded": analytics,
        "analytics_pruned": pruned,
        "payloads_cleared": cleared,
    }
