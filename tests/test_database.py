"""
Tests for database.py - SQLite database operations.
"""

import json

import pytest
from sqlalchemy.exc import IntegrityError

from dealscout.database import (
    Feedback,
    LearnedWeight,
    Persona,
    PreferencePair,
    SyncQueueEntry,
    get_session,
    init_database,
)


class TestDatabaseInit:
    """Test database initialization."""

    def test_init_creates_database_file(self, tmp_path):
        db_path = tmp_path / "test.db"
        assert not db_path.exists()

        init_database(db_path)

        assert db_path.exists()

    def test_init_creates_tables(self, tmp_path):
        db_path = tmp_path / "test.db"
        init_database(db_path)

        session = get_session(db_path)
        for model in (Persona, Feedback, LearnedWeight, PreferencePair, SyncQueueEntry):
            assert session.query(model).count() == 0
        session.close()

    def test_init_creates_parent_directories(self, tmp_path):
        db_path = tmp_path / "nested" / "dir" / "test.db"
        assert not db_path.parent.exists()

        init_database(db_path)

        assert db_path.exists()

    def test_init_is_idempotent(self, tmp_path):
        db_path = tmp_path / "test.db"
        init_database(db_path)
        init_database(db_path)
        assert db_path.exists()


class TestModels:
    """Constraints and JSON-backed properties."""

    @pytest.fixture
    def db_session(self, tmp_path):
        db_path = tmp_path / "test.db"
        init_database(db_path)
        session = get_session(db_path)
        yield session
        session.close()

    def make_feedback(self, **overrides):
        data = dict(
            scope="early",
            entity_id="per_001",
            entity_type="person",
            action="like",
            tags_json=json.dumps(["founder"]),
            datapoints_json=json.dumps([["tag", "founder"], ["industry", "fintech"]]),
        )
        data.update(overrides)
        return Feedback(**data)

    def test_feedback_properties(self, db_session):
        db_session.add(self.make_feedback())
        db_session.commit()

        row = db_session.query(Feedback).one()
        assert row.tags == ["founder"]
        assert row.datapoints == [("tag", "founder"), ("industry", "fintech")]
        assert row.created_at is not None

    def test_one_feedback_per_scope_and_entity(self, db_session):
        db_session.add(self.make_feedback())
        db_session.commit()

        db_session.add(self.make_feedback(action="dislike"))
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_same_entity_in_other_scope(self, db_session):
        db_session.add(self.make_feedback())
        db_session.add(self.make_feedback(scope="growth"))
        db_session.commit()
        assert db_session.query(Feedback).count() == 2

    def test_weight_unique_per_scope(self, db_session):
        db_session.add(LearnedWeight(scope="early", category="tag", value="founder"))
        db_session.commit()

        db_session.add(LearnedWeight(scope="early", category="tag", value="founder"))
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_weight_defaults(self, db_session):
        db_session.add(LearnedWeight(scope="early", category="tag", value="founder"))
        db_session.commit()

        row = db_session.query(LearnedWeight).one()
        assert (row.like_count, row.dislike_count, row.derived_weight) == (0, 0, 0.0)
        assert row.reasons_json == "[]"

    def test_persona_recipe(self, db_session):
        db_session.add(Persona(id="early", name="Early", recipe_json=json.dumps({"red_flags": ["x"]})))
        db_session.add(Persona(id="blank", name="Blank"))
        db_session.commit()

        assert db_session.get(Persona, "early").recipe == {"red_flags": ["x"]}
        assert db_session.get(Persona, "blank").recipe == {}
        assert db_session.get(Persona, "blank").is_active is False

    def test_sync_entry_defaults(self, db_session):
        db_session.add(SyncQueueEntry(entity_id="per_001", entity_type="person", action="viewed"))
        db_session.commit()

        row = db_session.query(SyncQueueEntry).one()
        assert row.attempts == 0
        assert row.last_error is None
