"""
Catalog store: subjects, prompt templates and their A/B variations.

Templates are never deleted, only deactivated. Administrative edits to
template content bump the template's version. Usage and rating statistics
are derived columns written only by the ledger and effectiveness modules.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Optional

from database import get_db, write_transaction
from errors import NotFound, ValidationError
from models import (
    DIFFICULTIES,
    GRADE_LEVELS,
    PROMPT_INPUT_TYPES,
    PromptTemplate,
    PromptVariation,
    Subject,
)

logger = logging.getLogger(__name__)

_PROMPT_SELECT = (
    "SELECT p.*, s.name AS subject_name FROM prompt_templates p "
    "JOIN subjects s ON s.id = p.subject_id"
)

# Fields an administrator may change. Statistics are not in this list.
EDITABLE_PROMPT_FIELDS = {
    "title", "description", "prompt_template", "input_type", "difficulty_level",
    "grade_levels", "learning_objectives", "keywords", "requires_step_by_step",
    "includes_examples", "encourages_exploration", "max_tokens", "temperature",
}
_JSON_FIELDS = {"grade_levels", "learning_objectives", "keywords"}
_BOOL_FIELDS = {"requires_step_by_step", "includes_examples", "encourages_exploration"}


def render_prompt(template_text: str, user_input: str, grade_level: str) -> str:
    """Fill the ``{user_input}`` and ``{grade_level}`` placeholders.

    Plain substring replacement: any other braces in the template are left
    alone, so templates may contain literal JSON or LaTeX.
    """
    return (template_text
            .replace("{user_input}", user_input or "")
            .replace("{grade_level}", grade_level or ""))


def _validate_prompt_fields(fields: dict) -> None:
    if "input_type" in fields and fields["input_type"] not in PROMPT_INPUT_TYPES:
        raise ValidationError(f"input_type must be one of {', '.join(PROMPT_INPUT_TYPES)}")
    if "difficulty_level" in fields and fields["difficulty_level"] not in DIFFICULTIES:
        raise ValidationError(f"difficulty_level must be one of {', '.join(DIFFICULTIES)}")
    for key in _JSON_FIELDS:
        if key in fields and not isinstance(fields[key], list):
            raise ValidationError(f"{key} must be a list")
    bad_grades = set(fields.get("grade_levels") or []) - set(GRADE_LEVELS)
    if bad_grades:
        raise ValidationError(f"Unknown grade level(s): {', '.join(sorted(bad_grades))}")
    if "title" in fields and not str(fields["title"]).strip():
        raise ValidationError("title is required")
    if "prompt_template" in fields and not str(fields["prompt_template"]).strip():
        raise ValidationError("prompt_template is required")
    if "max_tokens" in fields:
        try:
            if int(fields["max_tokens"]) <= 0:
                raise ValueError
        except (TypeError, ValueError):
            raise ValidationError("max_tokens must be a positive integer")
    if "temperature" in fields:
        try:
            t = float(fields["temperature"])
        except (TypeError, ValueError):
            raise ValidationError("temperature must be a number")
        if not 0.0 <= t <= 2.0:
            raise ValidationError("temperature must be between 0 and 2")


def _to_column(key: str, value):
    if key in _JSON_FIELDS:
        return json.dumps(list(value))
    if key in _BOOL_FIELDS:
        return 1 if value else 0
    return value


class CatalogStore:
    """Subjects, prompt templates and variations."""

    # ── Subjects ─────────────────────────────────────────────────

    def list_subjects(self, active_only: bool = True) -> list[Subject]:
        db = get_db()
        sql = "SELECT * FROM subjects"
        if active_only:
            sql += " WHERE is_active = 1"
        rows = db.execute(sql + " ORDER BY name").fetchall()
        return [Subject.from_row(r) for r in rows]

    def get_subject_by_name(self, name: str) -> Optional[Subject]:
        db = get_db()
        row = db.execute("SELECT * FROM subjects WHERE name = ?", (name,)).fetchone()
        return Subject.from_row(row) if row else None

    def create_subject(self, name: str, description: str = "", icon: str = "",
                       color: str = "#8A2BE2", grade_levels: Optional[list[str]] = None,
                       difficulty_levels: Optional[list[str]] = None) -> Subject:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Subject name is required")
        now = datetime.now().isoformat()
        with write_transaction() as db:
            if db.execute("SELECT 1 FROM subjects WHERE name = ?", (name,)).fetchone():
                raise ValidationError(f"Subject '{name}' already exists")
            db.execute(
                "INSERT INTO subjects (name, description, icon, color, grade_levels, "
                "difficulty_levels, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (name, description, icon, color, json.dumps(grade_levels or []),
                 json.dumps(difficulty_levels or list(DIFFICULTIES)), now, now),
            )
        return self.get_subject_by_name(name)

    # ── Prompt templates ─────────────────────────────────────────

    def get_prompt(self, prompt_id: int) -> PromptTemplate:
        db = get_db()
        row = db.execute(_PROMPT_SELECT + " WHERE p.id = ?", (prompt_id,)).fetchone()
        if not row:
            raise NotFound(f"Prompt template {prompt_id} not found")
        return PromptTemplate.from_row(row)

    def list_prompts(self, subject: Optional[str] = None, input_type: Optional[str] = None,
                     difficulty: Optional[str] = None, grade_level: Optional[str] = None,
                     active_only: bool = True) -> list[PromptTemplate]:
        """Browse templates. ``input_type`` also matches templates accepting any input."""
        clauses, params = [], []
        if active_only:
            clauses.append("p.is_active = 1")
        if subject:
            clauses.append("s.name = ?")
            params.append(subject)
        if input_type:
            clauses.append("p.input_type IN (?, 'any')")
            params.append(input_type)
        if difficulty:
            clauses.append("p.difficulty_level = ?")
            params.append(difficulty)
        sql = _PROMPT_SELECT
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY p.effectiveness_score DESC, p.id"
        prompts = [PromptTemplate.from_row(r) for r in get_db().execute(sql, params).fetchall()]
        if grade_level:
            prompts = [p for p in prompts if grade_level in p.grade_levels]
        return prompts

    def candidate_prompts(self, subject_name: str, input_type: str) -> list[PromptTemplate]:
        """Active templates of a subject whose input type is ``input_type`` or 'any'."""
        db = get_db()
        rows = db.execute(
            _PROMPT_SELECT + " WHERE p.is_active = 1 AND s.name = ? AND p.input_type IN (?, 'any')",
            (subject_name, input_type),
        ).fetchall()
        return [PromptTemplate.from_row(r) for r in rows]

    def create_prompt(self, subject_name: str, created_by: Optional[str] = None,
                      **fields) -> PromptTemplate:
        unknown = set(fields) - EDITABLE_PROMPT_FIELDS
        if unknown:
            raise ValidationError(f"Unknown field(s): {', '.join(sorted(unknown))}")
        for required in ("title", "prompt_template"):
            if not fields.get(required):
                raise ValidationError(f"{required} is required")
        _validate_prompt_fields(fields)

        subject = self.get_subject_by_name(subject_name)
        if subject is None:
            raise NotFound(f"Subject '{subject_name}' not found")

        now = datetime.now().isoformat()
        cols = ["subject_id", "created_by", "created_at", "updated_at"]
        vals = [subject.id, created_by, now, now]
        for key, value in fields.items():
            cols.append(key)
            vals.append(_to_column(key, value))
        with write_transaction() as db:
            cur = db.execute(
                f"INSERT INTO prompt_templates ({', '.join(cols)}) "
                f"VALUES ({', '.join('?' for _ in cols)})",
                vals,
            )
            prompt_id = cur.lastrowid
        logger.info("Created prompt template %d for %s", prompt_id, subject_name)
        return self.get_prompt(prompt_id)

    def update_prompt(self, prompt_id: int, **fields) -> PromptTemplate:
        """Apply an administrative edit and bump the template version."""
        if not fields:
            raise ValidationError("No fields to update")
        unknown = set(fields) - EDITABLE_PROMPT_FIELDS
        if unknown:
            raise ValidationError(f"Field(s) not editable: {', '.join(sorted(unknown))}")
        _validate_prompt_fields(fields)

        sets = [f"{key}=?" for key in fields]
        vals = [_to_column(key, value) for key, value in fields.items()]
        sets += ["version=version+1", "updated_at=?"]
        vals += [datetime.now().isoformat(), prompt_id]
        with write_transaction() as db:
            cur = db.execute(f"UPDATE prompt_templates SET {', '.join(sets)} WHERE id=?", vals)
            if cur.rowcount == 0:
                raise NotFound(f"Prompt template {prompt_id} not found")
        return self.get_prompt(prompt_id)

    def set_prompt_active(self, prompt_id: int, active: bool) -> PromptTemplate:
        with write_transaction() as db:
            cur = db.execute(
                "UPDATE prompt_templates SET is_active=?, updated_at=? WHERE id=?",
                (1 if active else 0, datetime.now().isoformat(), prompt_id),
            )
            if cur.rowcount == 0:
                raise NotFound(f"Prompt template {prompt_id} not found")
        return self.get_prompt(prompt_id)

    # ── Variations ───────────────────────────────────────────────

    def add_variation(self, prompt_id: int, variation_name: str,
                      prompt_template: str) -> PromptVariation:
        if not (variation_name or "").strip():
            raise ValidationError("variation_name is required")
        if not (prompt_template or "").strip():
            raise ValidationError("prompt_template is required")
        self.get_prompt(prompt_id)
        with write_transaction() as db:
            cur = db.execute(
                "INSERT INTO prompt_variations (prompt_id, variation_name, prompt_template, created_at) "
                "VALUES (?, ?, ?, ?)",
                (prompt_id, variation_name.strip(), prompt_template, datetime.now().isoformat()),
            )
            variation_id = cur.lastrowid
        return self.get_variation(variation_id)

    def get_variation(self, variation_id: int) -> PromptVariation:
        row = get_db().execute(
            "SELECT * FROM prompt_variations WHERE id = ?", (variation_id,)
        ).fetchone()
        if not row:
            raise NotFound(f"Prompt variation {variation_id} not found")
        return PromptVariation.from_row(row)

    def list_variations(self, prompt_id: int, active_only: bool = True) -> list[PromptVariation]:
        sql = "SELECT * FROM prompt_variations WHERE prompt_id = ?"
        if active_only:
            sql += " AND is_active = 1"
        rows = get_db().execute(sql + " ORDER BY id", (prompt_id,)).fetchall()
        return [PromptVariation.from_row(r) for r in rows]
