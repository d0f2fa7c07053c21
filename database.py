"""
SQLite database layer for the learning engine.

Uses raw sqlite3 with WAL mode and parameterized queries.
A schema_version table handles migrations. All writes go through
write_transaction(), which takes the SQLite write lock up front.
"""

from __future__ import annotations

import fcntl
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from flask import current_app, g
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path(__file__).parent / "engine.db"


SCHEMA = """
-- Migration tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER NOT NULL,
    applied_at TEXT NOT NULL
);

-- Users (mirrors identity-provider accounts)
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT NOT NULL DEFAULT '',
    display_name TEXT NOT NULL DEFAULT '',
    grade_level TEXT NOT NULL DEFAULT '',
    is_guest INTEGER NOT NULL DEFAULT 0,
    role TEXT NOT NULL DEFAULT 'student',
    created_at TEXT NOT NULL DEFAULT ''
);

-- Catalog
CREATE TABLE IF NOT EXISTS subjects (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT UNIQUE NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    icon TEXT NOT NULL DEFAULT '',
    color TEXT NOT NULL DEFAULT '#8A2BE2',
    grade_levels TEXT NOT NULL DEFAULT '[]',
    difficulty_levels TEXT NOT NULL DEFAULT '["easy", "medium", "hard"]',
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL DEFAULT '',
    updated_at TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS prompt_templates (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    subject_id INTEGER NOT NULL REFERENCES subjects(id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    prompt_template TEXT NOT NULL,
    input_type TEXT NOT NULL DEFAULT 'any'
        CHECK (input_type IN ('text', 'image', 'voice', 'any')),
    difficulty_level TEXT NOT NULL DEFAULT 'medium'
        CHECK (difficulty_level IN ('easy', 'medium', 'hard')),
    grade_levels TEXT NOT NULL DEFAULT '[]',
    learning_objectives TEXT NOT NULL DEFAULT '[]',
    keywords TEXT NOT NULL DEFAULT '[]',
    requires_step_by_step INTEGER NOT NULL DEFAULT 1,
    includes_examples INTEGER NOT NULL DEFAULT 1,
    encourages_exploration INTEGER NOT NULL DEFAULT 1,
    max_tokens INTEGER NOT NULL DEFAULT 2048,
    temperature REAL NOT NULL DEFAULT 0.7,
    usage_count INTEGER NOT NULL DEFAULT 0,
    average_rating REAL NOT NULL DEFAULT 0.0,
    effectiveness_score REAL NOT NULL DEFAULT 0.0,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_by TEXT,
    created_at TEXT NOT NULL DEFAULT '',
    updated_at TEXT NOT NULL DEFAULT ''
);
CREATE INDEX IF NOT EXISTS idx_prompts_subject ON prompt_templates(subject_id, is_active);

-- Submissions
CREATE TABLE IF NOT EXISTS submissions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    input_type TEXT NOT NULL CHECK (input_type IN ('text', 'image', 'voice')),
    text_content TEXT NOT NULL DEFAULT '',
    content_ref TEXT NOT NULL DEFAULT '',
    subject TEXT NOT NULL DEFAULT '',
    difficulty TEXT,
    grade_level TEXT NOT NULL DEFAULT '',
    tags TEXT NOT NULL DEFAULT '[]',
    prompt_id INTEGER REFERENCES prompt_templates(id),
    final_prompt TEXT NOT NULL DEFAULT '',
    solution TEXT NOT NULL DEFAULT '',
    explanation TEXT NOT NULL DEFAULT '',
    steps TEXT NOT NULL DEFAULT '[]',
    confidence_score REAL,
    ai_model_used TEXT NOT NULL DEFAULT '',
    ai_response TEXT NOT NULL DEFAULT '',
    status TEXT NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending', 'processing', 'completed', 'error', 'archived')),
    error_message TEXT NOT NULL DEFAULT '',
    processing_time_ms INTEGER,
    user_rating INTEGER CHECK (user_rating IS NULL OR user_rating BETWEEN 1 AND 5),
    user_feedback TEXT NOT NULL DEFAULT '',
    points_awarded INTEGER NOT NULL DEFAULT 0,
    completed_at TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL DEFAULT '',
    updated_at TEXT NOT NULL DEFAULT ''
);
CREATE INDEX IF NOT EXISTS idx_submissions_user ON submissions(user_id, created_at);
CREATE INDEX IF NOT EXISTS idx_submissions_prompt ON submissions(prompt_id);

-- Progress ledger (one row per user)
CREATE TABLE IF NOT EXISTS user_progress (
    user_id TEXT PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
    problems_solved INTEGER NOT NULL DEFAULT 0,
    total_study_time_minutes INTEGER NOT NULL DEFAULT 0,
    current_streak INTEGER NOT NULL DEFAULT 0,
    longest_streak INTEGER NOT NULL DEFAULT 0,
    total_points INTEGER NOT NULL DEFAULT 0,
    experience_points INTEGER NOT NULL DEFAULT 0,
    level INTEGER NOT NULL DEFAULT 1,
    subjects_studied TEXT NOT NULL DEFAULT '[]',
    last_activity_date TEXT NOT NULL DEFAULT '',
    updated_at TEXT NOT NULL DEFAULT ''
);

-- Daily activity log
CREATE TABLE IF NOT EXISTS study_streaks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    streak_date TEXT NOT NULL,
    problems_solved INTEGER NOT NULL DEFAULT 0,
    study_time_minutes INTEGER NOT NULL DEFAULT 0,
    UNIQUE(user_id, streak_date)
);
CREATE INDEX IF NOT EXISTS idx_streaks_user_date ON study_streaks(user_id, streak_date);

-- Achievements
CREATE TABLE IF NOT EXISTS achievements (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT UNIQUE NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    icon TEXT NOT NULL DEFAULT '',
    category TEXT NOT NULL DEFAULT '',
    rarity TEXT NOT NULL DEFAULT 'common'
        CHECK (rarity IN ('common', 'rare', 'epic', 'legendary')),
    criteria TEXT NOT NULL DEFAULT '{}',
    points_reward INTEGER NOT NULL DEFAULT 0,
    is_active INTEGER NOT NULL DEFAULT 1,
    sort_order INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS user_achievements (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    achievement_id INTEGER NOT NULL REFERENCES achievements(id) ON DELETE CASCADE,
    is_completed INTEGER NOT NULL DEFAULT 0,
    unlocked_at TEXT NOT NULL DEFAULT '',
    points_earned INTEGER NOT NULL DEFAULT 0,
    UNIQUE(user_id, achievement_id)
);
"""


MIGRATIONS: list[tuple[int, str]] = [
    # Version 1 = base schema.
    # -----------------------------------------------------------
    # Migration 2: Prompt versioning + A/B variations
    (2, """
        ALTER TABLE prompt_templates ADD COLUMN version INTEGER NOT NULL DEFAULT 1;

        CREATE TABLE IF NOT EXISTS prompt_variations (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            prompt_id INTEGER NOT NULL REFERENCES prompt_templates(id) ON DELETE CASCADE,
            variation_name TEXT NOT NULL,
            prompt_template TEXT NOT NULL,
            is_active INTEGER NOT NULL DEFAULT 1,
            usage_count INTEGER NOT NULL DEFAULT 0,
            success_rate REAL NOT NULL DEFAULT 0.0,
            created_at TEXT NOT NULL DEFAULT ''
        );
        CREATE INDEX IF NOT EXISTS idx_variations_prompt ON prompt_variations(prompt_id);
    """),
    # Migration 3: Variation reference on submissions
    (3, """
        ALTER TABLE submissions ADD COLUMN prompt_variation_id INTEGER
            REFERENCES prompt_variations(id);
    """),
    # Migration 4: Audit trail for catalog administration
    (4, """
        CREATE TABLE IF NOT EXISTS audit_log (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT,
            action TEXT NOT NULL,
            detail TEXT NOT NULL DEFAULT '',
            ip_address TEXT NOT NULL DEFAULT '',
            user_agent TEXT NOT NULL DEFAULT '',
            created_at TEXT NOT NULL DEFAULT ''
        );
        CREATE INDEX IF NOT EXISTS idx_audit_user ON audit_log(user_id, created_at);
    """),
    # Migration 5: Maintenance lookups on completion time
    (5, """
        CREATE INDEX IF NOT EXISTS idx_submissions_completed ON submissions(status, completed_at);
    """),
    # Migration 6: Daily learning analytics written by maintenance
    (6, """
        CREATE TABLE IF NOT EXISTS learning_analytics (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            metric_name TEXT NOT NULL,
            metric_value REAL NOT NULL DEFAULT 0,
            metric_data TEXT NOT NULL DEFAULT '{}',
            date_recorded TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT '',
            UNIQUE(user_id, metric_name, date_recorded)
        );
        CREATE INDEX IF NOT EXISTS idx_analytics_created ON learning_analytics(created_at);
    """),
]


def _db_path() -> str:
    return current_app.config.get("DATABASE", str(DEFAULT_DB_PATH))


def connect(path: str) -> sqlite3.Connection:
    """Open a connection configured the way the rest of the app expects.

    isolation_level=None leaves transaction control to write_transaction().
    """
    conn = sqlite3.connect(path, timeout=current_app.config.get("DB_BUSY_TIMEOUT", 5.0),
                           isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def get_db() -> sqlite3.Connection:
    """Return a DB connection from Flask g, creating if needed."""
    if "db" not in g:
        g.db = connect(_db_path())
    return g.db


def close_db(e=None) -> None:
    """Teardown handler: close DB connection."""
    db = g.pop("db", None)
    if db is not None:
        db.close()


def _is_locked(exc: BaseException) -> bool:
    return isinstance(exc, sqlite3.OperationalError) and "locked" in str(exc).lower()


@retry(
    retry=retry_if_exception(_is_locked),
    wait=wait_exponential(multiplier=0.05, max=1),
    stop=stop_after_attempt(5),
    reraise=True,
)
def _begin_immediate(db: sqlite3.Connection) -> None:
    db.execute("BEGIN IMMEDIATE")


@contextmanager
def write_transaction():
    """Run the enclosed block as one serialized SQLite write transaction.

    BEGIN IMMEDIATE takes the database write lock before any read, so
    read-modify-write sequences on ledger and template counters cannot
    interleave. Lock acquisition is retried with backoff. A nested call
    joins the transaction that is already open.
    """
    db = get_db()
    if db.in_transaction:
        yield db
        return

    _begin_immediate(db)
    try:
        yield db
    except BaseException:
        db.rollback()
        raise
    db.commit()


def init_db() -> None:
    """Execute schema DDL to create all tables."""
    db = get_db()
    db.executescript(SCHEMA)


def run_migrations() -> None:
    """Apply any unapplied versioned migrations.

    Uses file-based locking to prevent race conditions when multiple
    Gunicorn workers start simultaneously.
    """
    lock_file = None
    lock_path = Path(_db_path()).with_suffix(".migration.lock")
    try:
        lock_file = open(lock_path, "w")
        fcntl.flock(lock_file, fcntl.LOCK_EX)
    except OSError:
        lock_file = None

    try:
        db = get_db()
        applied = {
            row["version"]
            for row in db.execute("SELECT version FROM schema_version").fetchall()
        }
        for version, sql in MIGRATIONS:
            if version not in applied:
                try:
                    db.executescript(sql)
                except sqlite3.OperationalError as e:
                    err_msg = str(e).lower()
                    if "duplicate column" not in err_msg and "already exists" not in err_msg:
                        raise
                db.execute(
                    "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                    (version, datetime.now().isoformat()),
                )
                logger.info("Applied schema migration %d", version)
    finally:
        if lock_file:
            fcntl.flock(lock_file, fcntl.LOCK_UN)
            lock_file.close()


def init_app(app) -> None:
    """Register teardown and auto-init on first request."""
    app.teardown_appcontext(close_db)

    @app.before_request
    def _ensure_db():
        if not getattr(app, "_db_initialized", False):
            init_db()
            run_migrations()
            if app.config.get("SEED_DEFAULT_CATALOG"):
                from seed_catalog import seed_all
                seed_all()
            app._db_initialized = True
