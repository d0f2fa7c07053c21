"""Personalized learning insights derived from a user's ledger and history."""

from __future__ import annotations

from database import get_db
from ledger import ProgressLedgerDB

VELOCITY_MIN_PROBLEMS = 10
STREAK_MIN_DAYS = 3


def _most_studied_subject(user_id: str) -> str | None:
    row = get_db().execute(
        "SELECT subject, COUNT(*) AS n FROM submissions "
        "WHERE user_id = ? AND status IN ('completed', 'archived') AND subject != '' "
        "GROUP BY subject ORDER BY n DESC, subject LIMIT 1",
        (user_id,),
    ).fetchone()
    return row["subject"] if row else None


def generate_insights(user_id: str) -> list[dict]:
    ledger = ProgressLedgerDB(user_id).get()
    insights: list[dict] = []

    if ledger.problems_solved > VELOCITY_MIN_PROBLEMS:
        hours = ledger.total_study_time_minutes / 60
        per_hour = round(ledger.problems_solved / max(hours, 1), 1)
        insights.append({
            "type": "performance",
            "title": "Learning Velocity Analysis",
            "description": f"You solve an average of {per_hour:.1f} problems per hour of study time.",
            "data": {
                "problems_per_hour": per_hour,
                "total_problems": ledger.problems_solved,
                "total_hours": round(hours, 2),
            },
        })

    if ledger.current_streak >= STREAK_MIN_DAYS:
        insights.append({
            "type": "motivation",
            "title": "Consistency Champion",
            "description": f"Amazing! You've maintained a {ledger.current_streak}-day learning streak. Keep it up!",
            "data": {
                "current_streak": ledger.current_streak,
                "longest_streak": ledger.longest_streak,
            },
        })

    subject = _most_studied_subject(user_id)
    if subject:
        insights.append({
            "type": "subject_focus",
            "title": "Subject Expertise",
            "description": f"You're becoming an expert in {subject}! Consider exploring related topics.",
            "data": {
                "primary_subject": subject,
                "suggestion": "Try challenging yourself with harder problems in this subject",
            },
        })

    if ledger.level > 1:
        remaining = max(0, ledger.xp_for_next_level - ledger.experience_points)
        insights.append({
            "type": "achievement",
            "title": "Level Up Progress",
            "description": f"You're at level {ledger.level}! You need {remaining} more XP to reach the next level.",
            "data": {
                "current_level": ledger.level,
                "current_xp": ledger.experience_points,
                "xp_to_next_level": remaining,
            },
        })

    return insights
