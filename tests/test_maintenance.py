"""Tests for the scheduled maintenance jobs."""

import json
from datetime import date, datetime, timedelta

from ledger import ProgressLedgerDB
from maintenance import (
    aggregate_daily_analytics,
    clear_old_solver_payloads,
    prune_old_analytics,
    refresh_all_streaks,
    run_daily_maintenance,
)
from conftest import STUDENT_ID, solve

TODAY = date(2026, 3, 10)


def _insert(db, sid, created_at, ai_response='{"raw": "..."}'):
    db.execute(
        "INSERT INTO submissions (id, user_id, title, input_type, status, ai_response, created_at) "
        "VALUES (?, ?, 't', 'text', 'completed', ?, ?)",
        (sid, STUDENT_ID, ai_response, created_at),
    )


class TestStreakRefresh:
    def test_decays_idle_streaks(self, db):
        for n in (3, 2, 1):
            solve(today=TODAY - timedelta(days=n))
        assert refresh_all_streaks(TODAY + timedelta(days=1)) == 2
        ledger = ProgressLedgerDB(STUDENT_ID).get()
        assert ledger.current_streak == 0
        assert ledger.longest_streak == 3

    def test_grace_day_keeps_streak(self, db):
        for n in (2, 1):
            solve(today=TODAY - timedelta(days=n))
        refresh_all_streaks(TODAY)
        assert ProgressLedgerDB(STUDENT_ID).get().current_streak == 2


class TestPayloadRetention:
    def test_clears_only_old_payloads(self, db):
        now = datetime(2026, 3, 10, 12, 0)
        _insert(db, "old", (now - timedelta(days=200)).isoformat())
        _insert(db, "new", (now - timedelta(days=5)).isoformat())
        assert clear_old_solver_payloads(180, now=now) == 1
        rows = dict(db.execute("SELECT id, ai_response FROM submissions").fetchall())
        assert rows["old"] == ""
        assert rows["new"] == '{"raw": "..."}'

    def test_already_cleared_not_counted(self, db):
        now = datetime(2026, 3, 10, 12, 0)
        _insert(db, "old", (now - timedelta(days=400)).isoformat(), ai_response="")
        assert clear_old_solver_payloads(180, now=now) == 0


class TestDailyAnalytics:
    def _completed(self, db, sid, subject, completed_at, status="completed"):
        db.execute(
            "INSERT INTO submissions (id, user_id, title, input_type, subject, status, completed_at) "
            "VALUES (?, ?, 't', 'text', ?, ?, ?)",
            (sid, STUDENT_ID, subject, status, completed_at),
        )

    def _rows(self, db):
        return db.execute("SELECT * FROM learning_analytics ORDER BY user_id").fetchall()

    def test_counts_completed_work_for_the_day(self, db):
        self._completed(db, "a", "Mathematics", "2026-03-09T10:00:00")
        self._completed(db, "b", "Science", "2026-03-09T18:30:00")
        self._completed(db, "c", "Mathematics", "2026-03-09T20:00:00", status="archived")
        self._completed(db, "d", "History", "2026-03-10T01:00:00")
        db.execute(
            "INSERT INTO submissions (id, user_id, title, input_type, status) "
            "VALUES ('e', ?, 't', 'text', 'error')", (STUDENT_ID,),
        )
        assert aggregate_daily_analytics(date(2026, 3, 9)) == 1
        rows = self._rows(db)
        assert len(rows) == 1
        assert rows[0]["metric_name"] == "daily_problems_solved"
        assert rows[0]["metric_value"] == 3
        assert rows[0]["date_recorded"] == "2026-03-09"
        assert json.loads(rows[0]["metric_data"]) == {"date": "2026-03-09",
                                                      "subjects": ["Mathematics", "Science"]}

    def test_rerun_overwrites_the_day(self, db):
        self._completed(db, "a", "Mathematics", "2026-03-09T10:00:00")
        aggregate_daily_analytics(date(2026, 3, 9))
        self._completed(db, "b", "Mathematics", "2026-03-09T11:00:00")
        aggregate_daily_analytics(date(2026, 3, 9))
        rows = self._rows(db)
        assert len(rows) == 1
        assert rows[0]["metric_value"] == 2

    def test_quiet_day_records_nothing(self, db):
        assert aggregate_daily_analytics(date(2026, 3, 9)) == 0
        assert self._rows(db) == []

    def test_prune_old_rows(self, db):
        now = datetime(2026, 3, 10, 12, 0)
        for day, created in [("2023-01-01", now - timedelta(days=800)),
                             ("2026-03-01", now - timedelta(days=9))]:
            db.execute(
                "INSERT INTO learning_analytics (user_id, metric_name, metric_value, date_recorded, "
                "created_at) VALUES (?, 'daily_problems_solved', 1, ?, ?)",
                (STUDENT_ID, day, created.isoformat()),
            )
        assert prune_old_analytics(730, now=now) == 1
        assert [r["date_recorded"] for r in self._rows(db)] == ["2026-03-01"]


def test_run_daily_maintenance(app):
    result = run_daily_maintenance(app)
    assert result == {"streaks_refreshed": 2, "analytics_recorded": 0,
                      "analytics_pruned": 0, "payloads_cleared": 0}
