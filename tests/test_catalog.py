"""Tests for catalog.py: subjects, prompt templates, variations, rendering."""

import pytest

from catalog import CatalogStore, render_prompt
from errors import NotFound, ValidationError
from conftest import add_prompt, add_subject


class TestRenderPrompt:
    def test_replaces_placeholders(self):
        text = render_prompt("Help with {user_input} at {grade_level} level.", "fractions", "middle")
        assert text == "Help with fractions at middle level."

    def test_leaves_other_braces(self):
        text = render_prompt('Return {"answer": ...} for {user_input}', "x+1", "high")
        assert text == 'Return {"answer": ...} for x+1'

    def test_repeated_placeholders(self):
        assert render_prompt("{user_input}/{user_input}", "a", "") == "a/a"


class TestSubjects:
    def test_create_and_list(self, db):
        store = CatalogStore()
        store.create_subject("Geography", grade_levels=["high"])
        names = [s.name for s in store.list_subjects()]
        assert names == ["Geography"]
        subject = store.get_subject_by_name("Geography")
        assert subject.grade_levels == ["high"]
        assert subject.difficulty_levels == ["easy", "medium", "hard"]

    def test_duplicate_name_rejected(self, db):
        store = CatalogStore()
        store.create_subject("Geography")
        with pytest.raises(ValidationError):
            store.create_subject("Geography")

    def test_inactive_hidden(self, db):
        add_subject(db, "Art")
        db.execute("UPDATE subjects SET is_active = 0 WHERE name = 'Art'")
        assert CatalogStore().list_subjects() == []
        assert len(CatalogStore().list_subjects(active_only=False)) == 1


class TestPrompts:
    def test_create_prompt(self, db):
        add_subject(db, "Mathematics")
        prompt = CatalogStore().create_prompt(
            "Mathematics", created_by="admin-1", title="Algebra helper",
            prompt_template="Solve {user_input}", difficulty_level="hard",
            keywords=["algebra"], grade_levels=["high"],
        )
        assert prompt.subject_name == "Mathematics"
        assert prompt.version == 1
        assert prompt.keywords == ["algebra"]
        assert prompt.usage_count == 0
        assert prompt.effectiveness_score == 0.0

    def test_create_prompt_unknown_subject(self, db):
        with pytest.raises(NotFound):
            CatalogStore().create_prompt("Nope", title="t", prompt_template="p")

    def test_create_prompt_rejects_bad_input_type(self, db):
        add_subject(db, "Mathematics")
        with pytest.raises(ValidationError):
            CatalogStore().create_prompt("Mathematics", title="t", prompt_template="p",
                                         input_type="video")

    def test_create_prompt_rejects_statistics(self, db):
        add_subject(db, "Mathematics")
        with pytest.raises(ValidationError):
            CatalogStore().create_prompt("Mathematics", title="t", prompt_template="p",
                                         effectiveness_score=5.0)

    def test_update_bumps_version(self, db):
        sid = add_subject(db, "Mathematics")
        pid = add_prompt(db, sid, "Old title")
        store = CatalogStore()
        updated = store.update_prompt(pid, title="New title", keywords=["geometry"])
        assert updated.title == "New title"
        assert updated.keywords == ["geometry"]
        assert updated.version == 2
        assert store.update_prompt(pid, temperature=0.2).version == 3

    def test_update_missing_prompt(self, db):
        with pytest.raises(NotFound):
            CatalogStore().update_prompt(999, title="x")

    def test_update_rejects_usage_count(self, db):
        sid = add_subject(db, "Mathematics")
        pid = add_prompt(db, sid, "P")
        with pytest.raises(ValidationError):
            CatalogStore().update_prompt(pid, usage_count=100)

    def test_deactivate_keeps_row(self, db):
        sid = add_subject(db, "Mathematics")
        pid = add_prompt(db, sid, "P")
        store = CatalogStore()
        prompt = store.set_prompt_active(pid, False)
        assert prompt.is_active is False
        assert store.list_prompts(subject="Mathematics") == []
        assert len(store.list_prompts(subject="Mathematics", active_only=False)) == 1

    def test_list_prompts_filters(self, db):
        sid = add_subject(db, "Mathematics")
        add_prompt(db, sid, "Any", input_type="any", grade_levels=("middle",))
        add_prompt(db, sid, "Image", input_type="image", grade_levels=("high",))
        add_prompt(db, sid, "Voice", input_type="voice", difficulty="hard")
        store = CatalogStore()
        assert {p.title for p in store.list_prompts(input_type="image")} == {"Any", "Image"}
        assert {p.title for p in store.list_prompts(difficulty="hard")} == {"Voice"}
        assert {p.title for p in store.list_prompts(grade_level="high")} == {"Image"}

    def test_candidate_prompts_hard_filter(self, db):
        math = add_subject(db, "Mathematics")
        sci = add_subject(db, "Science")
        add_prompt(db, math, "Text", input_type="text")
        add_prompt(db, math, "Any", input_type="any")
        add_prompt(db, math, "Image", input_type="image")
        add_prompt(db, math, "Inactive", input_type="text", active=False)
        add_prompt(db, sci, "Other subject", input_type="text")
        titles = {p.title for p in CatalogStore().candidate_prompts("Mathematics", "text")}
        assert titles == {"Text", "Any"}


class TestVariations:
    def test_add_and_list(self, db):
        sid = add_subject(db, "Mathematics")
        pid = add_prompt(db, sid, "P")
        store = CatalogStore()
        v = store.add_variation(pid, "B", "Variant for {user_input}")
        assert v.prompt_id == pid
        assert [x.id for x in store.list_variations(pid)] == [v.id]

    def test_add_to_missing_prompt(self, db):
        with pytest.raises(NotFound):
            CatalogStore().add_variation(999, "B", "text")

    def test_requires_name(self, db):
        sid = add_subject(db, "Mathematics")
        pid = add_prompt(db, sid, "P")
        with pytest.raises(ValidationError):
            CatalogStore().add_variation(pid, "  ", "text")
