"""Tests for default catalog seeding and the audit log."""

from audit import log_event
from catalog import CatalogStore
from seed_catalog import ACHIEVEMENTS, PROMPTS, SUBJECTS, seed_all


class TestSeed:
    def test_seed_counts(self, db):
        counts = seed_all()
        assert counts == {"subjects": len(SUBJECTS), "prompts": len(PROMPTS),
                          "achievements": len(ACHIEVEMENTS)}

    def test_seed_is_idempotent(self, db):
        seed_all()
        assert seed_all() == {"subjects": 0, "prompts": 0, "achievements": 0}
        assert len(CatalogStore().list_subjects()) == len(SUBJECTS)

    def test_seed_keeps_admin_edits(self, db):
        seed_all()
        prompt = CatalogStore().list_prompts(subject="Mathematics")[0]
        CatalogStore().update_prompt(prompt.id, description="Edited")
        seed_all()
        assert CatalogStore().get_prompt(prompt.id).description == "Edited"

    def test_seeded_prompts_render(self, db):
        seed_all()
        for prompt in CatalogStore().list_prompts():
            assert "{user_input}" in prompt.prompt_template
            assert "{grade_level}" in prompt.prompt_template


class TestAudit:
    def test_log_event_outside_request(self, db):
        log_event("seeded", None, "subjects=6")
        row = db.execute("SELECT * FROM audit_log").fetchone()
        assert row["action"] == "seeded"
        assert row["ip_address"] == ""

    def test_log_event_survives_db_error(self, db, caplog):
        db.execute("DROP TABLE audit_log")
        log_event("prompt_created", "admin-1", "prompt_id=1")
        assert "audit write failed" in caplog.text
