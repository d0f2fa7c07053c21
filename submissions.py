"""
Submission records and their lifecycle.

    pending -> processing -> completed -> archived
                          -> error

``SubmissionPipeline`` is the only writer of submission status. Each
operation runs in one write transaction, and the side effects of a status
change are called explicitly and in order: completing a submission scores
it in the progress ledger (which runs achievement checks), and rating it
refreshes the referenced prompt's effectiveness.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import date, datetime
from typing import Any, Optional

from catalog import render_prompt
from database import get_db, write_transaction
from effectiveness import on_submission_rated
from errors import InvalidTransition, NotFound, ValidationError
from ledger import CompletionResult, on_submission_completed
from models import (
    ARCHIVED,
    COMPLETED,
    DIFFICULTIES,
    ERROR,
    GRADE_LEVELS,
    PENDING,
    PROCESSING,
    STATUSES,
    SUBMISSION_INPUT_TYPES,
    Submission,
    can_transition,
)
from prompt_selector import choose_variation, select_prompt

logger = logging.getLogger(__name__)


class SubmissionStore:
    """Reads and raw writes of submission rows."""

    def get(self, submission_id: str, user_id: Optional[str] = None) -> Submission:
        """Fetch a submission; with ``user_id`` only that user's submissions are visible."""
        sql = "SELECT * FROM submissions WHERE id = ?"
        params: list = [submission_id]
        if user_id is not None:
            sql += " AND user_id = ?"
            params.append(user_id)
        row = get_db().execute(sql, params).fetchone()
        if not row:
            raise NotFound(f"Submission {submission_id} not found")
        return Submission.from_row(row)

    @staticmethod
    def _user_filter(user_id: str, status: Optional[str], subject: Optional[str]) -> tuple[str, list]:
        sql = " WHERE user_id = ?"
        params: list = [user_id]
        if status:
            if status not in STATUSES:
                raise ValidationError(f"status must be one of {', '.join(STATUSES)}")
            sql += " AND status = ?"
            params.append(status)
        if subject:
            sql += " AND subject = ?"
            params.append(subject)
        return sql, params

    def count_for_user(self, user_id: str, status: Optional[str] = None,
                       subject: Optional[str] = None) -> int:
        where, params = self._user_filter(user_id, status, subject)
        return get_db().execute("SELECT COUNT(*) FROM submissions" + where, params).fetchone()[0]

    def list_for_user(self, user_id: str, status: Optional[str] = None,
                      subject: Optional[str] = None, limit: int = 50, offset: int = 0) -> list[Submission]:
        where, params = self._user_filter(user_id, status, subject)
        sql = "SELECT * FROM submissions" + where + " ORDER BY created_at DESC, id LIMIT ? OFFSET ?"
        params += [limit, offset]
        return [Submission.from_row(r) for r in get_db().execute(sql, params).fetchall()]

    def insert(self, submission: Submission) -> None:
        with write_transaction() as db:
            db.execute(
                "INSERT INTO submissions (id, user_id, title, description, input_type, text_content, "
                "content_ref, subject, difficulty, grade_level, tags, prompt_id, prompt_variation_id, "
                "final_prompt, status, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (submission.id, submission.user_id, submission.title, submission.description,
                 submission.input_type, submission.text_content, submission.content_ref,
                 submission.subject, submission.difficulty, submission.grade_level,
                 json.dumps(submission.tags), submission.prompt_id, submission.prompt_variation_id,
                 submission.final_prompt, submission.status,
                 submission.created_at, submission.updated_at),
            )

    def update(self, submission_id: str, **fields: Any) -> None:
        fields["updated_at"] = datetime.now().isoformat()
        for key in ("steps", "tags", "ai_response"):
            if key in fields and not isinstance(fields[key], str):
                fields[key] = json.dumps(fields[key])
        sets = ", ".join(f"{key}=?" for key in fields)
        with write_transaction() as db:
            db.execute(f"UPDATE submissions SET {sets} WHERE id=?",
                       (*fields.values(), submission_id))


def _check_transition(submission: Submission, new_status: str) -> None:
    if not can_transition(submission.status, new_status):
        raise InvalidTransition(submission.status, new_status)


def _optional_int(value: Any, name: str) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer")


def _validate_rating(rating: Any) -> int:
    if isinstance(rating, bool):
        raise ValidationError("rating must be an integer from 1 to 5")
    try:
        value = int(rating)
    except (TypeError, ValueError):
        raise ValidationError("rating must be an integer from 1 to 5")
    if value != rating and not isinstance(rating, str):
        raise ValidationError("rating must be an integer from 1 to 5")
    if not 1 <= value <= 5:
        raise ValidationError("rating must be an integer from 1 to 5")
    return value


class SubmissionPipeline:
    """Create submissions and drive them through their lifecycle."""

    def __init__(self, default_grade_level: str = "middle"):
        self.store = SubmissionStore()
        self.default_grade_level = default_grade_level

    def create(self, user_id: str, title: str, input_type: str, text_content: str = "",
               content_ref: str = "", subject: str = "", difficulty: Optional[str] = None,
               grade_level: str = "", tags: Optional[list[str]] = None, description: str = "",
               keywords: Optional[list[str]] = None) -> Submission:
        """Validate, pick a prompt and variation, render it, store as pending."""
        title = (title or "").strip()
        if not title:
            raise ValidationError("title is required")
        if input_type not in SUBMISSION_INPUT_TYPES:
            raise ValidationError(f"input_type must be one of {', '.join(SUBMISSION_INPUT_TYPES)}")
        if input_type == "text" and not (text_content or "").strip():
            raise ValidationError("text_content is required for text submissions")
        if input_type in ("image", "voice") and not (content_ref or "").strip():
            raise ValidationError(f"content_ref is required for {input_type} submissions")
        if difficulty is not None and difficulty not in DIFFICULTIES:
            raise ValidationError(f"difficulty must be one of {', '.join(DIFFICULTIES)}")
        grade_level = grade_level or self.default_grade_level
        if grade_level not in GRADE_LEVELS:
            raise ValidationError(f"grade_level must be one of {', '.join(GRADE_LEVELS)}")
        if tags is not None and not isinstance(tags, list):
            raise ValidationError("tags must be a list")

        prompt = None
        variation = None
        final_prompt = ""
        if subject:
            prompt = select_prompt(
                subject, input_type=input_type, difficulty=difficulty or "medium",
                grade_level=grade_level, keywords=keywords if keywords is not None else tags,
            )
        if prompt is not None:
            variation = choose_variation(prompt.id)
            template_text = variation.prompt_template if variation else prompt.prompt_template
            final_prompt = render_prompt(template_text, text_content or description or title, grade_level)

        now = datetime.now().isoformat()
        submission = Submission(
            id=uuid.uuid4().hex,
            user_id=user_id,
            title=title,
            description=description or "",
            input_type=input_type,
            text_content=text_content or "",
            content_ref=content_ref or "",
            subject=subject or "",
            difficulty=difficulty,
            grade_level=grade_level,
            tags=list(tags or []),
            prompt_id=prompt.id if prompt else None,
            prompt_variation_id=variation.id if variation else None,
            final_prompt=final_prompt,
            status=PENDING,
            created_at=now,
            updated_at=now,
        )
        self.store.insert(submission)
        logger.info("Created submission %s for user %s (prompt=%s)",
                    submission.id, user_id, submission.prompt_id)
        return submission

    def start_processing(self, submission_id: str, user_id: Optional[str] = None) -> Submission:
        with write_transaction():
            submission = self.store.get(submission_id, user_id)
            _check_transition(submission, PROCESSING)
            self.store.update(submission_id, status=PROCESSING)
            return self.store.get(submission_id)

    def complete(self, submission_id: str, solution: str = "", explanation: str = "",
                 steps: Optional[list] = None, confidence_score: Optional[float] = None,
                 ai_model_used: str = "", ai_response: Optional[dict] = None,
                 processing_time_ms: Optional[int] = None, user_id: Optional[str] = None,
                 today: Optional[date] = None) -> tuple[Submission, Optional[CompletionResult]]:
        """Record solver output and score the submission.

        Completing an already-completed submission changes nothing and
        returns ``None`` as the result.
        """
        if steps is not None and not isinstance(steps, list):
            raise ValidationError("steps must be a list")
        if ai_response is not None and not isinstance(ai_response, dict):
            raise ValidationError("ai_response must be an object")
        processing_time_ms = _optional_int(processing_time_ms, "processing_time_ms")
        if confidence_score is not None:
            try:
                confidence_score = float(confidence_score)
            except (TypeError, ValueError):
                raise ValidationError("confidence_score must be a number")

        with write_transaction():
            submission = self.store.get(submission_id, user_id)
            if submission.status == COMPLETED:
                logger.info("Submission %s already completed; ignoring", submission_id)
                return submission, None
            _check_transition(submission, COMPLETED)

            self.store.update(
                submission_id,
                status=COMPLETED,
                solution=solution or "",
                explanation=explanation or "",
                steps=steps or [],
                confidence_score=confidence_score,
                ai_model_used=ai_model_used or "",
                ai_response=ai_response or "",
                processing_time_ms=processing_time_ms,
                completed_at=datetime.now().isoformat(),
            )
            submission = self.store.get(submission_id)
            result = on_submission_completed(submission, today=today)
            self.store.update(submission_id, points_awarded=result.points_awarded)
            if submission.user_rating is not None and submission.prompt_id is not None:
                on_submission_rated(submission)
            return self.store.get(submission_id), result

    def fail(self, submission_id: str, error_message: str = "",
             processing_time_ms: Optional[int] = None, user_id: Optional[str] = None) -> Submission:
        processing_time_ms = _optional_int(processing_time_ms, "processing_time_ms")
        with write_transaction():
            submission = self.store.get(submission_id, user_id)
            _check_transition(submission, ERROR)
            self.store.update(submission_id, status=ERROR,
                              error_message=error_message or "Processing failed",
                              processing_time_ms=processing_time_ms)
            logger.warning("Submission %s failed: %s", submission_id, error_message)
            return self.store.get(submission_id)

    def archive(self, submission_id: str, user_id: Optional[str] = None) -> Submission:
        with write_transaction():
            submission = self.store.get(submission_id, user_id)
            _check_transition(submission, ARCHIVED)
            self.store.update(submission_id, status=ARCHIVED)
            return self.store.get(submission_id)

    def rate(self, submission_id: str, rating: Any, feedback: str = "",
             user_id: Optional[str] = None) -> Submission:
        """Store the user's rating. Points already awarded are not revisited."""
        value = _validate_rating(rating)
        with write_transaction():
            self.store.get(submission_id, user_id)
            self.store.update(submission_id, user_rating=value, user_feedback=feedback or "")
            submission = self.store.get(submission_id)
            on_submission_rated(submission)
            return submission
