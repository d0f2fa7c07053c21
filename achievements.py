"""
Achievement engine.

Achievement criteria are stored as JSON objects and parsed into typed
``Criterion`` records. Every parsed criterion must hold for the achievement
to unlock. Criteria with no recognized key never unlock; they are logged as
content problems rather than raised.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from database import get_db, write_transaction
from ledger import ProgressLedgerDB
from errors import ValidationError
from models import RARITIES, Achievement, UserAchievement

logger = logging.getLogger(__name__)

# Submissions that count as solved work. Archiving does not undo a solve.
_SOLVED_STATUSES = ("completed", "archived")


class CriterionKind(enum.Enum):
    PROBLEMS_SOLVED = "problems_solved"
    CURRENT_STREAK = "current_streak"
    LEVEL = "level"
    DISTINCT_SUBJECTS = "distinct_subjects"
    FIVE_STAR_RATINGS = "five_star_ratings"
    MAX_PROBLEMS_IN_ONE_DAY = "max_problems_in_one_day"
    STUDY_HOURS = "study_hours"
    SUBJECT_PROBLEMS = "subject_problems"


# JSON key -> kind. Older content uses the alias spellings.
CRITERION_KEYS = {
    "problems_solved": CriterionKind.PROBLEMS_SOLVED,
    "current_streak": CriterionKind.CURRENT_STREAK,
    "streak_days": CriterionKind.CURRENT_STREAK,
    "level": CriterionKind.LEVEL,
    "distinct_subjects": CriterionKind.DISTINCT_SUBJECTS,
    "subjects_count": CriterionKind.DISTINCT_SUBJECTS,
    "five_star_ratings": CriterionKind.FIVE_STAR_RATINGS,
    "max_problems_in_one_day": CriterionKind.MAX_PROBLEMS_IN_ONE_DAY,
    "problems_per_session": CriterionKind.MAX_PROBLEMS_IN_ONE_DAY,
    "study_hours": CriterionKind.STUDY_HOURS,
}


@dataclass(frozen=True)
class Criterion:
    kind: CriterionKind
    threshold: float
    subject: Optional[str] = None


def _threshold(value) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def parse_criteria(raw: dict, achievement_name: str = "") -> list[Criterion]:
    """Turn a stored criteria object into typed criteria.

    ``{"subject": "Mathematics", "problems_solved": 25}`` is read as a
    per-subject count, the same as ``{"subject_problems": {"Mathematics": 25}}``.
    """
    if not isinstance(raw, dict):
        logger.warning("Achievement '%s' has non-object criteria %r", achievement_name, raw)
        return []

    criteria: list[Criterion] = []
    scoped_subject = raw.get("subject") if isinstance(raw.get("subject"), str) else None

    for key, value in raw.items():
        if key == "subject":
            continue
        if key == "subject_problems":
            if not isinstance(value, dict):
                logger.warning("Achievement '%s': subject_problems must be an object", achievement_name)
                continue
            for subject, count in value.items():
                threshold = _threshold(count)
                if threshold is None:
                    logger.warning("Achievement '%s': bad threshold %r for %s",
                                   achievement_name, count, subject)
                    continue
                criteria.append(Criterion(CriterionKind.SUBJECT_PROBLEMS, threshold, subject))
            continue

        kind = CRITERION_KEYS.get(key)
        if kind is None:
            logger.warning("Achievement '%s': unrecognized criterion '%s'", achievement_name, key)
            continue
        threshold = _threshold(value)
        if threshold is None:
            logger.warning("Achievement '%s': bad threshold %r for '%s'", achievement_name, value, key)
            continue
        if kind is CriterionKind.PROBLEMS_SOLVED and scoped_subject:
            criteria.append(Criterion(CriterionKind.SUBJECT_PROBLEMS, threshold, scoped_subject))
        else:
            criteria.append(Criterion(kind, threshold))

    if not criteria:
        logger.warning("Achievement '%s' has no usable criteria and can never unlock", achievement_name)
    return criteria


class UserStats:
    """Lazily computed metrics for one user, cached for a single evaluation pass."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        self.ledger = ProgressLedgerDB(user_id).get()
        self._cache: dict = {}

    def _scalar(self, sql: str, params: tuple) -> int:
        row = get_db().execute(sql, params).fetchone()
        return (row[0] or 0) if row else 0

    def value(self, criterion: Criterion) -> float:
        kind = criterion.kind
        if kind is CriterionKind.PROBLEMS_SOLVED:
            return self.ledger.problems_solved
        if kind is CriterionKind.CURRENT_STREAK:
            return self.ledger.current_streak
        if kind is CriterionKind.LEVEL:
            return self.ledger.level
        if kind is CriterionKind.STUDY_HOURS:
            return self.ledger.total_study_time_minutes / 60

        key = (kind, criterion.subject)
        if key in self._cache:
            return self._cache[key]

        placeholders = ", ".join("?" for _ in _SOLVED_STATUSES)
        if kind is CriterionKind.DISTINCT_SUBJECTS:
            result = self._scalar(
                f"SELECT COUNT(DISTINCT subject) FROM submissions WHERE user_id = ? "
                f"AND subject != '' AND status IN ({placeholders})",
                (self.user_id, *_SOLVED_STATUSES),
            )
        elif kind is CriterionKind.FIVE_STAR_RATINGS:
            result = self._scalar(
                f"SELECT COUNT(*) FROM submissions WHERE user_id = ? AND user_rating = 5 "
                f"AND status IN ({placeholders})",
                (self.user_id, *_SOLVED_STATUSES),
            )
        elif kind is CriterionKind.MAX_PROBLEMS_IN_ONE_DAY:
            result = self._scalar(
                "SELECT MAX(problems_solved) FROM study_streaks WHERE user_id = ?",
                (self.user_id,),
            )
        elif kind is CriterionKind.SUBJECT_PROBLEMS:
            result = self._scalar(
                f"SELECT COUNT(*) FROM submissions WHERE user_id = ? AND subject = ? "
                f"AND status IN ({placeholders})",
                (self.user_id, criterion.subject, *_SOLVED_STATUSES),
            )
        else:
            raise ValueError(f"Unhandled criterion kind {kind}")
        self._cache[key] = result
        return result

    def met(self, criterion: Criterion) -> bool:
        return self.value(criterion) >= criterion.threshold

    def progress(self, criterion: Criterion) -> float:
        return min(1.0, self.value(criterion) / criterion.threshold)


def active_achievements() -> list[Achievement]:
    rows = get_db().execute(
        "SELECT * FROM achievements WHERE is_active = 1 ORDER BY sort_order, id"
    ).fetchall()
    return [Achievement.from_row(r) for r in rows]


def _completed_ids(user_id: str) -> set[int]:
    rows = get_db().execute(
        "SELECT achievement_id FROM user_achievements WHERE user_id = ? AND is_completed = 1",
        (user_id,),
    ).fetchall()
    return {r["achievement_id"] for r in rows}


def _award(db, user_id: str, achievement: Achievement) -> bool:
    """Mark an achievement completed. Returns False if it already was."""
    cur = db.execute(
        "INSERT INTO user_achievements (user_id, achievement_id, is_completed, unlocked_at, points_earned) "
        "VALUES (?, ?, 1, ?, ?) "
        "ON CONFLICT(user_id, achievement_id) DO UPDATE SET "
        "is_completed = 1, unlocked_at = excluded.unlocked_at, points_earned = excluded.points_earned "
        "WHERE user_achievements.is_completed = 0",
        (user_id, achievement.id, datetime.now().isoformat(), achievement.points_reward),
    )
    if cur.rowcount == 0:
        return False
    if achievement.points_reward:
        ProgressLedgerDB(user_id).credit(achievement.points_reward)
    return True


def check_and_award(user_id: str) -> list[int]:
    """Award every achievement the user now qualifies for.

    Reward points can raise the user's level, which can satisfy a level
    criterion, so evaluation repeats until a pass awards nothing.
    Returns the ids awarded by this call.
    """
    awarded: list[int] = []
    with write_transaction() as db:
        achievements = active_achievements()
        parsed = {a.id: parse_criteria(a.criteria, a.name) for a in achievements}
        while True:
            stats = UserStats(user_id)
            done = _completed_ids(user_id)
            newly = []
            for achievement in achievements:
                criteria = parsed[achievement.id]
                if achievement.id in done or not criteria:
                    continue
                if all(stats.met(c) for c in criteria) and _award(db, user_id, achievement):
                    newly.append(achievement.id)
                    logger.info("User %s unlocked achievement '%s' (+%d points)",
                                user_id, achievement.name, achievement.points_reward)
            if not newly:
                break
            awarded.extend(newly)
    return awarded


def progress_report(user_id: str, rarity: Optional[str] = None) -> list[dict]:
    """Every active achievement with the user's completion state and progress.

    ``rarity`` narrows the list to one tier.
    """
    if rarity is not None and rarity not in RARITIES:
        raise ValidationError(f"rarity must be one of {', '.join(RARITIES)}")
    rows = get_db().execute(
        "SELECT * FROM user_achievements WHERE user_id = ?", (user_id,)
    ).fetchall()
    earned = {ua.achievement_id: ua for ua in map(UserAchievement.from_row, rows)}
    stats = UserStats(user_id)

    report = []
    for achievement in active_achievements():
        if rarity is not None and achievement.rarity != rarity:
            continue
        criteria = parse_criteria(achievement.criteria, achievement.name)
        row = earned.get(achievement.id)
        completed = bool(row and row.is_completed)
        if completed:
            progress = 1.0
        elif criteria:
            progress = min(stats.progress(c) for c in criteria)
        else:
            progress = 0.0
        entry = achievement.to_dict()
        entry.update({
            "is_completed": completed,
            "unlocked_at": row.unlocked_at if row else "",
            "points_earned": row.points_earned if row else 0,
            "progress": round(progress, 2),
        })
        report.append(entry)
    return report
