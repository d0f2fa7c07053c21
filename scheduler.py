"""
Centralized Scheduler: registers periodic background jobs.

Jobs:
  - Daily maintenance (3 AM): streak refresh, old solver payload cleanup
"""

from __future__ import annotations

from apscheduler.schedulers.background import BackgroundScheduler

from maintenance import run_daily_maintenance


def init_scheduler(app):
    """Start a background scheduler for periodic jobs. Returns the scheduler."""
    scheduler = BackgroundScheduler(daemon=True)

    def _daily_maintenance():
        try:
            result = run_daily_maintenance(app)
            app.logger.info("Daily maintenance finished: %s", result)
        except Exception:
            app.logger.exception("Daily maintenance failed")

    scheduler.add_job(
        func=_daily_maintenance,
        trigger="cron",
        hour=3,
        id="daily_maintenance",
        replace_existing=True,
    )

    scheduler.start()
    app.logger.info("Scheduler started (daily maintenance)")
    return scheduler
