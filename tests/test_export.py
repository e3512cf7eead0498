"""
Tests for training-data export.
"""

import json

import pytest

from dealscout.export import write_json, write_jsonl


@pytest.fixture
def populated(engine):
    """Scope 'early' with three feedback events and one pair."""
    engine.like("a", scope="early", tags=["founder", "fintech"], note="like founders")
    engine.like("b", scope="early", tags=["founder", "ai"], note="like AI")
    engine.dislike("c", scope="early", tags=["manager", "ai"], note="too junior")
    engine.compare("a", "c", reason="prior exit", scope="early")
    return engine


class TestExportWeights:
    """export_weights."""

    def test_completeness(self, populated):
        """Exactly the distinct pairs touched by the feedback events."""
        keys = {(w["category"], w["value"]) for w in populated.exporter.export_weights("early")}
        assert keys == {("tag", "founder"), ("tag", "fintech"), ("tag", "ai"), ("tag", "manager")}

    def test_completeness_after_replacement(self, populated):
        """Pairs touched by a replaced record stay exported (with zero counts)."""
        populated.like("a", scope="early", tags=["robotics"])
        weights = {(w["category"], w["value"]): w for w in populated.exporter.export_weights("early")}
        assert ("tag", "robotics") in weights
        assert weights[("tag", "fintech")]["like_count"] == 0

    def test_ordered(self, populated):
        values = [w["value"] for w in populated.exporter.export_weights("early")]
        assert values == sorted(values)

    def test_other_scope_empty(self, populated):
        assert populated.exporter.export_weights("growth") == []


class TestExportPairs:
    """export_preference_pairs."""

    def test_shape(self, populated):
        rows = populated.exporter.export_preference_pairs("early")
        assert len(rows) == 1
        row = rows[0]
        assert set(row) == {"prompt", "chosen", "rejected", "provenance"}
        assert row["chosen"] == "a is the better fit. prior exit"
        assert row["rejected"] == "c is the better fit."
        assert row["provenance"]["chosen_entity_id"] == "a"
        assert row["provenance"]["reason"] == "prior exit"

    def test_prompt_names_persona(self, populated):
        prompt = populated.exporter.export_preference_pairs("early")[0]["prompt"]
        assert "Early Stage VC" in prompt

    def test_prompt_does_not_reveal_choice(self, engine):
        engine.compare("zed", "alpha", reason="r", scope="early")
        prompt = engine.exporter.export_preference_pairs("early")[0]["prompt"]
        assert prompt.index("alpha") < prompt.index("zed")


class TestExportDocument:
    """export_document."""

    def test_sections(self, populated):
        doc = populated.exporter.export_document("early")
        assert set(doc) == {"persona", "metadata", "feedback", "preference_pairs", "learned_weights"}
        assert doc["persona"]["id"] == "early"
        assert doc["persona"]["recipe"]["weights"]["serial_founder"] == 0.95
        assert doc["metadata"] == {"feedback_count": 3, "pairs_count": 1, "weights_count": 4}

    def test_deterministic(self, populated):
        first = json.dumps(populated.exporter.export_document("early"), sort_keys=True)
        second = json.dumps(populated.exporter.export_document("early"), sort_keys=True)
        assert first == second

    def test_exported_at_only_when_given(self, populated):
        assert "exported_at" not in populated.exporter.export_document("early")["metadata"]
        doc = populated.exporter.export_document("early", exported_at="2026-01-01T00:00:00")
        assert doc["metadata"]["exported_at"] == "2026-01-01T00:00:00"

    def test_unknown_scope(self, engine):
        engine.like("a", scope="custom", tags=["x"])
        doc = engine.exporter.export_document("custom")
        assert doc["persona"] == {"id": "custom"}
        assert doc["metadata"]["feedback_count"] == 1

    def test_read_only(self, populated):
        before = populated.stats("early")
        populated.exporter.export_document("early")
        populated.exporter.export_dpo("early")
        assert populated.stats("early") == before


class TestExportDpo:
    """export_dpo."""

    def test_lines(self, populated):
        lines = populated.exporter.export_dpo("early")
        assert len(lines) == 4
        assert all(set(line) == {"prompt", "chosen", "rejected", "persona", "entity_id"} for line in lines)
        assert [line["entity_id"] for line in lines] == ["a", "b", "c", "a"]
        assert all(line["persona"] == "early" for line in lines)

    def test_like_and_dislike_text(self, populated):
        lines = populated.exporter.export_dpo("early")
        assert lines[0]["chosen"].startswith("This candidate is a good fit. Key signals: tag:founder, tag:fintech.")
        assert lines[0]["chosen"].endswith("like founders")
        assert lines[0]["rejected"] == "This candidate is not a good fit."
        assert lines[2]["chosen"].startswith("This candidate is not a good fit. Concerns:")
        assert lines[2]["rejected"] == "This candidate is a good fit."


class TestWriters:
    """File output."""

    def test_write_json(self, tmp_path, populated):
        path = tmp_path / "out" / "training-early.json"
        write_json(path, populated.exporter.export_document("early"))
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["metadata"]["feedback_count"] == 3

    def test_write_jsonl(self, tmp_path, populated):
        path = tmp_path / "dpo.jsonl"
        count = write_jsonl(path, populated.exporter.export_dpo("early"))
        lines = path.read_text(encoding="utf-8").splitlines()
        assert count == len(lines) == 4
        assert json.loads(lines[0])["entity_id"] == "a"
