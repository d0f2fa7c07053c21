"""
Prompt effectiveness tracking.

effectiveness = 0.6 * average_rating + 0.4 * (success_rate / 20)

Both terms sit on a 0-5 scale: success_rate is a percentage, so dividing
by 20 maps it onto the rating scale. Usage count is owned by the ledger and
is not touched here.
"""

from __future__ import annotations

import logging
from typing import Optional

from database import get_db, write_transaction
from errors import NotFound
from models import Submission

logger = logging.getLogger(__name__)

RATING_WEIGHT = 0.6
SUCCESS_WEIGHT = 0.4


def effectiveness_score(average_rating: float, success_rate: float) -> float:
    return round(RATING_WEIGHT * average_rating + SUCCESS_WEIGHT * (success_rate / 20), 2)


def _prompt_stats(db, column: str, ref_id: int) -> dict:
    row = db.execute(
        f"SELECT COUNT(*) AS total, "
        f"SUM(CASE WHEN status = 'completed' THEN 1 ELSE 0 END) AS successful, "
        f"AVG(user_rating) AS avg_rating "
        f"FROM submissions WHERE {column} = ?",
        (ref_id,),
    ).fetchone()
    total = row["total"] or 0
    successful = row["successful"] or 0
    # unrounded; callers round only what they store or report
    return {
        "total_submissions": total,
        "successful_submissions": successful,
        "success_rate": successful * 100.0 / total if total else 0.0,
        "average_rating": row["avg_rating"] if row["avg_rating"] is not None else 0.0,
    }


def _rounded(stats: dict) -> dict:
    return dict(stats, success_rate=round(stats["success_rate"], 2),
                average_rating=round(stats["average_rating"], 2))


def recompute_prompt(prompt_id: int) -> Optional[float]:
    """Recompute a template's rating and effectiveness from its submissions."""
    with write_transaction() as db:
        stats = _prompt_stats(db, "prompt_id", prompt_id)
        if stats["total_submissions"] == 0:
            return None
        score = effectiveness_score(stats["average_rating"], stats["success_rate"])
        db.execute(
            "UPDATE prompt_templates SET average_rating = ?, effectiveness_score = ? WHERE id = ?",
            (round(stats["average_rating"], 2), score, prompt_id),
        )
    logger.debug("Prompt %d effectiveness %.2f (rating %.2f, success %.1f%%)",
                 prompt_id, score, stats["average_rating"], stats["success_rate"])
    return score


def _recompute_variation(variation_id: int) -> None:
    with write_transaction() as db:
        stats = _prompt_stats(db, "prompt_variation_id", variation_id)
        db.execute(
            "UPDATE prompt_variations SET success_rate = ? WHERE id = ?",
            (round(stats["success_rate"], 2), variation_id),
        )


def on_submission_rated(submission: Submission) -> Optional[float]:
    """Refresh the referenced template's statistics after a rating.

    Returns the new effectiveness score, or None when the submission does
    not reference a template.
    """
    if submission.prompt_id is None:
        return None
    score = recompute_prompt(submission.prompt_id)
    if submission.prompt_variation_id is not None:
        _recompute_variation(submission.prompt_variation_id)
    return score


def prompt_report(prompt_id: int) -> dict:
    db = get_db()
    row = db.execute(
        "SELECT id, title, usage_count, average_rating, effectiveness_score, version "
        "FROM prompt_templates WHERE id = ?",
        (prompt_id,),
    ).fetchone()
    if not row:
        raise NotFound(f"Prompt template {prompt_id} not found")
    report = dict(row)
    report.update(_rounded(_prompt_stats(db, "prompt_id", prompt_id)))
    report["variations"] = [
        dict(v) for v in db.execute(
            "SELECT id, variation_name, is_active, usage_count, success_rate "
            "FROM prompt_variations WHERE prompt_id = ? ORDER BY id",
            (prompt_id,),
        ).fetchall()
    ]
    return report
