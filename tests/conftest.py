"""
Test fixtures for the learning engine.

Provides app, client, auth_client, admin_client and db fixtures with
file-based SQLite, plus helpers to push submissions through the pipeline.
"""

from __future__ import annotations

import json
from datetime import datetime

import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

STUDENT_ID = "student-1"
ADMIN_ID = "admin-1"


@pytest.fixture
def app(tmp_path):
    """Create app with file-based SQLite for testing."""
    from app import create_app

    db_file = str(tmp_path / "test.db")
    app = create_app({
        "TESTING": True,
        "DATABASE": db_file,
        "SECRET_KEY": "test-secret-key",
        "SEED_DEFAULT_CATALOG": False,
    })

    with app.app_context():
        from database import init_db, run_migrations, get_db

        init_db()
        run_migrations()

        # Seed test users with empty ledgers
        db = get_db()
        now = datetime.now().isoformat()
        db.execute(
            "INSERT INTO users (id, email, display_name, grade_level, role, created_at) "
            "VALUES (?, 'student@example.com', 'Test Student', 'middle', 'student', ?)",
            (STUDENT_ID, now),
        )
        db.execute(
            "INSERT INTO users (id, email, display_name, role, created_at) "
            "VALUES (?, 'admin@example.com', 'Test Admin', 'admin', ?)",
            (ADMIN_ID, now),
        )
        db.execute("INSERT INTO user_progress (user_id) VALUES (?)", (STUDENT_ID,))
        db.execute("INSERT INTO user_progress (user_id) VALUES (?)", (ADMIN_ID,))

    # Outside the context: each client request gets its own g, so the
    # identity header is re-read per request.
    return app


@pytest.fixture
def seeded(app):
    """Load the default subjects, prompts and achievements."""
    with app.app_context():
        from seed_catalog import seed_all
        seed_all()
    return app


@pytest.fixture
def client(app):
    """Unauthenticated test client."""
    return app.test_client()


@pytest.fixture
def auth_client(app):
    """Test client carrying the student's identity header."""
    client = app.test_client()
    client.environ_base["HTTP_X_USER_ID"] = STUDENT_ID
    return client


@pytest.fixture
def admin_client(app):
    """Test client carrying the admin's identity header."""
    client = app.test_client()
    client.environ_base["HTTP_X_USER_ID"] = ADMIN_ID
    return client


@pytest.fixture
def db(app):
    """Direct database access for store tests."""
    with app.app_context():
        from database import get_db
        yield get_db()


def add_subject(db, name: str, grade_levels=("elementary", "middle", "high")) -> int:
    cur = db.execute(
        "INSERT INTO subjects (name, grade_levels) VALUES (?, ?)",
        (name, json.dumps(list(grade_levels))),
    )
    return cur.lastrowid


def add_prompt(db, subject_id: int, title: str, input_type: str = "any",
               difficulty: str = "medium", grade_levels=("middle",), keywords=(),
               effectiveness: float = 0.0, usage: int = 0, active: bool = True,
               template: str = "Solve {user_input} for a {grade_level} student.") -> int:
    cur = db.execute(
        "INSERT INTO prompt_templates (subject_id, title, prompt_template, input_type, "
        "difficulty_level, grade_levels, keywords, effectiveness_score, usage_count, is_active) "
        "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
        (subject_id, title, template, input_type, difficulty, json.dumps(list(grade_levels)),
         json.dumps(list(keywords)), effectiveness, usage, 1 if active else 0),
    )
    return cur.lastrowid


def add_achievement(db, name: str, criteria: dict, points: int = 0, active: bool = True) -> int:
    cur = db.execute(
        "INSERT INTO achievements (name, criteria, points_reward, is_active) VALUES (?, ?, ?, ?)",
        (name, json.dumps(criteria), points, 1 if active else 0),
    )
    return cur.lastrowid


def solve(user_id: str = STUDENT_ID, subject: str = "Mathematics", difficulty=None,
          rating=None, processing_time_ms=None, today=None):
    """Create, process and complete one text submission. Returns (submission, result)."""
    from submissions import SubmissionPipeline

    pipeline = SubmissionPipeline()
    sub = pipeline.create(user_id, title="Problem", input_type="text",
                          text_content="2x + 3 = 7", subject=subject, difficulty=difficulty)
    pipeline.start_processing(sub.id)
    if rating is not None:
        pipeline.rate(sub.id, rating)
    return pipeline.complete(sub.id, solution="x = 2", processing_time_ms=processing_time_ms,
                             today=today)
