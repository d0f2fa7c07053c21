"""Tests for database.py: schema, migrations, write transactions."""

import sqlite3

import pytest

from tenacity import wait_none

from database import MIGRATIONS, get_db, run_migrations, write_transaction


class TestSchema:
    """Verify all tables are created correctly."""

    def test_tables_exist(self, db):
        tables = {r["name"] for r in db.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        ).fetchall()}
        expected = {
            "schema_version", "users", "subjects", "prompt_templates", "prompt_variations",
            "submissions", "user_progress", "study_streaks", "achievements",
            "user_achievements", "audit_log", "learning_analytics",
        }
        assert expected <= tables

    def test_wal_mode(self, db):
        assert db.execute("PRAGMA journal_mode").fetchone()[0] == "wal"

    def test_foreign_keys_enabled(self, db):
        assert db.execute("PRAGMA foreign_keys").fetchone()[0] == 1

    def test_migrations_recorded(self, db):
        versions = {r["version"] for r in db.execute("SELECT version FROM schema_version").fetchall()}
        assert versions == {v for v, _ in MIGRATIONS}

    def test_migrations_idempotent(self, app):
        with app.app_context():
            run_migrations()
            db = get_db()
            count = db.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0]
            assert count == len(MIGRATIONS)

    def test_prompt_version_column_added(self, db):
        cols = {r["name"] for r in db.execute("PRAGMA table_info(prompt_templates)").fetchall()}
        assert "version" in cols

    def test_status_check_constraint(self, db):
        with pytest.raises(sqlite3.IntegrityError):
            db.execute(
                "INSERT INTO submissions (id, user_id, title, input_type, status) "
                "VALUES ('x', 'student-1', 't', 'text', 'bogus')"
            )

    def test_rating_check_constraint(self, db):
        with pytest.raises(sqlite3.IntegrityError):
            db.execute(
                "INSERT INTO submissions (id, user_id, title, input_type, user_rating) "
                "VALUES ('x', 'student-1', 't', 'text', 6)"
            )

    def test_user_cascade(self, db):
        db.execute("DELETE FROM users WHERE id = 'student-1'")
        row = db.execute("SELECT * FROM user_progress WHERE user_id = 'student-1'").fetchone()
        assert row is None


class TestWriteTransaction:
    def test_commits_on_success(self, app):
        with app.app_context():
            with write_transaction() as db:
                db.execute("INSERT INTO subjects (name) VALUES ('Geography')")
            assert not get_db().in_transaction
        with app.app_context():
            row = get_db().execute("SELECT * FROM subjects WHERE name='Geography'").fetchone()
            assert row is not None

    def test_rolls_back_on_error(self, app):
        with app.app_context():
            with pytest.raises(RuntimeError):
                with write_transaction() as db:
                    db.execute("INSERT INTO subjects (name) VALUES ('Geography')")
                    raise RuntimeError("boom")
            row = get_db().execute("SELECT * FROM subjects WHERE name='Geography'").fetchone()
            assert row is None

    def test_nested_joins_outer(self, app):
        with app.app_context():
            with pytest.raises(RuntimeError):
                with write_transaction() as outer:
                    with write_transaction() as inner:
                        assert inner is outer
                        inner.execute("INSERT INTO subjects (name) VALUES ('Geography')")
                    assert outer.in_transaction
                    raise RuntimeError("boom")
            row = get_db().execute("SELECT * FROM subjects WHERE name='Geography'").fetchone()
            assert row is None

    def test_holds_write_lock(self, app):
        """A second connection cannot write while a transaction is open."""
        with app.app_context():
            other = sqlite3.connect(app.config["DATABASE"], timeout=0)
            try:
                with write_transaction() as db:
                    db.execute("INSERT INTO subjects (name) VALUES ('Geography')")
                    with pytest.raises(sqlite3.OperationalError):
                        other.execute("INSERT INTO subjects (name) VALUES ('Music')")
            finally:
                other.close()

    def test_retries_when_locked(self, app):
        import database

        calls = {"n": 0}
        real = database._begin_immediate.retry_with(wait=wait_none())

        class FlakyConnection:
            def __init__(self, conn):
                self._conn = conn

            def execute(self, sql, *args):
                if sql == "BEGIN IMMEDIATE":
                    calls["n"] += 1
                    if calls["n"] < 3:
                        raise sqlite3.OperationalError("database is locked")
                return self._conn.execute(sql, *args)

        with app.app_context():
            conn = get_db()
            real(FlakyConnection(conn))
            assert calls["n"] == 3
            assert conn.in_transaction
            conn.rollback()
