"""
Progress ledger: points, experience, level and streak per user.

``on_submission_completed`` is the single entry point that scores a
finished submission. It must run exactly once per transition into
``completed``; the submission pipeline guarantees that.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, asdict
from datetime import date, datetime, timedelta
from typing import Optional

from database import get_db, write_transaction
from errors import NotFound
from models import (
    DEFAULT_POINTS,
    DIFFICULTY_POINTS,
    HIGH_RATING_BONUS,
    HIGH_RATING_THRESHOLD,
    ProgressLedger,
    Submission,
    calculate_level,
)

logger = logging.getLogger(__name__)

STREAK_SCAN_LIMIT_DAYS = 365


def points_for(difficulty: Optional[str], rating: Optional[int]) -> int:
    points = DIFFICULTY_POINTS.get(difficulty or "", DEFAULT_POINTS)
    if rating is not None and rating >= HIGH_RATING_THRESHOLD:
        points += HIGH_RATING_BONUS
    return points


def minutes_for(processing_time_ms: Optional[int]) -> int:
    return max(0, (processing_time_ms or 0) // 60000)


def compute_streak(active_days: set[date], today: date) -> int:
    """Consecutive active days ending today.

    A day with no activity yet does not break the streak: counting then
    starts from yesterday.
    """
    day = today
    if day not in active_days:
        day -= timedelta(days=1)
    count = 0
    for _ in range(STREAK_SCAN_LIMIT_DAYS):
        if day not in active_days:
            break
        count += 1
        day -= timedelta(days=1)
    return count


@dataclass
class CompletionResult:
    points_awarded: int
    minutes: int
    level: int
    level_up: bool
    current_streak: int
    new_achievements: list[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


class ProgressLedgerDB:
    """DB-backed progress ledger for one user."""

    def __init__(self, user_id: str):
        self.user_id = user_id

    def _ensure(self, db) -> None:
        if not db.execute("SELECT 1 FROM users WHERE id = ?", (self.user_id,)).fetchone():
            raise NotFound(f"User {self.user_id} not found")
        db.execute(
            "INSERT OR IGNORE INTO user_progress (user_id, updated_at) VALUES (?, ?)",
            (self.user_id, datetime.now().isoformat()),
        )

    def get(self) -> ProgressLedger:
        row = get_db().execute(
            "SELECT * FROM user_progress WHERE user_id = ?", (self.user_id,)
        ).fetchone()
        if row:
            return ProgressLedger.from_row(row)
        return ProgressLedger(user_id=self.user_id)

    def active_days(self, since: Optional[date] = None) -> set[date]:
        sql = "SELECT streak_date FROM study_streaks WHERE user_id = ? AND problems_solved > 0"
        params: list = [self.user_id]
        if since is not None:
            sql += " AND streak_date >= ?"
            params.append(since.isoformat())
        rows = get_db().execute(sql, params).fetchall()
        return {date.fromisoformat(r["streak_date"]) for r in rows}

    def recent_activity(self, days: int = 30, today: Optional[date] = None) -> list[dict]:
        today = today or date.today()
        cutoff = (today - timedelta(days=days - 1)).isoformat()
        rows = get_db().execute(
            "SELECT streak_date, problems_solved, study_time_minutes FROM study_streaks "
            "WHERE user_id = ? AND streak_date >= ? ORDER BY streak_date",
            (self.user_id, cutoff),
        ).fetchall()
        return [dict(r) for r in rows]

    def record_day(self, today: date, minutes: int) -> None:
        with write_transaction() as db:
            db.execute(
                "INSERT INTO study_streaks (user_id, streak_date, problems_solved, study_time_minutes) "
                "VALUES (?, ?, 1, ?) "
                "ON CONFLICT(user_id, streak_date) DO UPDATE SET "
                "problems_solved = problems_solved + 1, "
                "study_time_minutes = study_time_minutes + excluded.study_time_minutes",
                (self.user_id, today.isoformat(), minutes),
            )

    def refresh_streak(self, today: Optional[date] = None) -> int:
        """Recompute current streak from the daily log; longest never shrinks."""
        today = today or date.today()
        window_start = today - timedelta(days=STREAK_SCAN_LIMIT_DAYS)
        with write_transaction() as db:
            # read under the write lock
            streak = compute_streak(self.active_days(since=window_start), today)
            db.execute(
                "UPDATE user_progress SET current_streak=?, "
                "longest_streak=MAX(longest_streak, ?), updated_at=? WHERE user_id=?",
                (streak, streak, datetime.now().isoformat(), self.user_id),
            )
        return streak

    def credit(self, points: int) -> tuple[int, int]:
        """Add points to total and experience; return (old_level, new_level)."""
        with write_transaction() as db:
            self._ensure(db)
            row = db.execute(
                "SELECT experience_points, level FROM user_progress WHERE user_id = ?",
                (self.user_id,),
            ).fetchone()
            new_xp = row["experience_points"] + points
            new_level = calculate_level(new_xp)
            db.execute(
                "UPDATE user_progress SET total_points = total_points + ?, experience_points = ?, "
                "level = ?, updated_at = ? WHERE user_id = ?",
                (points, new_xp, new_level, datetime.now().isoformat(), self.user_id),
            )
        return row["level"], new_level

    def record_completion(self, points: int, minutes: int, subject: str, today: date) -> tuple[int, int]:
        """Apply one completed submission to the ledger row."""
        with write_transaction() as db:
            self._ensure(db)
            row = db.execute(
                "SELECT subjects_studied FROM user_progress WHERE user_id = ?", (self.user_id,)
            ).fetchone()
            subjects = json.loads(row["subjects_studied"] or "[]")
            if subject and subject not in subjects:
                subjects.append(subject)
            db.execute(
                "UPDATE user_progress SET problems_solved = problems_solved + 1, "
                "total_study_time_minutes = total_study_time_minutes + ?, "
                "subjects_studied = ?, last_activity_date = ? WHERE user_id = ?",
                (minutes, json.dumps(subjects), today.isoformat(), self.user_id),
            )
            return self.credit(points)


def _update_prompt_usage(db, submission: Submission) -> None:
    if submission.prompt_id is None:
        return
    avg = db.execute(
        "SELECT AVG(user_rating) AS avg FROM submissions "
        "WHERE prompt_id = ? AND user_rating IS NOT NULL",
        (submission.prompt_id,),
    ).fetchone()["avg"]
    db.execute(
        "UPDATE prompt_templates SET usage_count = usage_count + 1, "
        "average_rating = ? WHERE id = ?",
        (round(avg, 2) if avg is not None else 0.0, submission.prompt_id),
    )
    if submission.prompt_variation_id is not None:
        db.execute(
            "UPDATE prompt_variations SET usage_count = usage_count + 1 WHERE id = ?",
            (submission.prompt_variation_id,),
        )


def on_submission_completed(submission: Submission,
                            today: Optional[date] = None) -> CompletionResult:
    """Score a newly completed submission and run achievement checks."""
    from achievements import check_and_award

    today = today or date.today()
    points = points_for(submission.difficulty, submission.user_rating)
    minutes = minutes_for(submission.processing_time_ms)
    ledger = ProgressLedgerDB(submission.user_id)

    with write_transaction() as db:
        old_level, new_level = ledger.record_completion(points, minutes, submission.subject, today)
        ledger.record_day(today, minutes)
        streak = ledger.refresh_streak(today)
        _update_prompt_usage(db, submission)
        awarded = check_and_award(submission.user_id)
        final_level = ledger.get().level

    logger.info(
        "Scored submission %s for user %s: +%d points, level %d -> %d, streak %d",
        submission.id, submission.user_id, points, old_level, final_level, streak,
    )
    return CompletionResult(
        points_awarded=points,
        minutes=minutes,
        level=final_level,
        level_up=final_level > old_level,
        current_streak=streak,
        new_achievements=awarded,
    )
