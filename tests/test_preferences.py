"""
Tests for the preference store.
"""

import pytest

from dealscout.preferences import (
    LEARNING_INCREMENT,
    MAX_REASONS,
    clean_pairs,
    derive_weight,
)


def apply(engine, pairs, action, reason=None, scope="test"):
    with engine.session_scope() as session:
        return engine.preferences.apply_feedback(session, scope, pairs, action, reason)


def reverse(engine, pairs, action, reason=None, scope="test"):
    with engine.session_scope() as session:
        return engine.preferences.apply_feedback_reversal(session, scope, pairs, action, reason)


class TestDeriveWeight:
    """derived_weight formula."""

    def test_three_likes_one_dislike(self):
        assert derive_weight(3, 1) == 0.5

    def test_no_feedback_is_zero(self):
        assert derive_weight(0, 0) == 0.0

    def test_bounds(self):
        assert derive_weight(5, 0) == 1.0
        assert derive_weight(0, 5) == -1.0


class TestCleanPairs:
    """Pair normalization."""

    def test_normalizes_and_deduplicates(self):
        pairs = [("Tag", "Founder"), ("tag", "founder"), ("", "x"), ("tag", None), ("region", "EU")]
        assert clean_pairs(pairs) == [("tag", "founder"), ("region", "eu")]


class TestApplyFeedback:
    """Applying likes and dislikes."""

    def test_creates_rows(self, engine):
        updated = apply(engine, [("tag", "founder"), ("tag", "fintech")], "like")
        assert updated == 2
        assert engine.preferences.count("test") == 2

    def test_counts_and_weight(self, engine):
        for _ in range(3):
            apply(engine, [("tag", "founder")], "like")
        apply(engine, [("tag", "founder")], "dislike")

        view = engine.preferences.snapshot("test")[("tag", "founder")]
        assert view.like_count == 3
        assert view.dislike_count == 1
        assert view.derived_weight == 0.5
        assert view.positive_accumulator == pytest.approx(3 * LEARNING_INCREMENT)
        assert view.negative_accumulator == pytest.approx(LEARNING_INCREMENT)

    def test_missing_values_skipped(self, engine):
        assert apply(engine, [("tag", ""), ("", "x")], "like") == 0
        assert engine.preferences.count("test") == 0

    def test_scopes_are_isolated(self, engine):
        apply(engine, [("tag", "founder")], "like", scope="early")
        assert engine.preferences.snapshot("growth") == {}
        assert ("tag", "founder") in engine.preferences.snapshot("early")

    def test_reasons_deduplicated_and_bounded(self, engine):
        apply(engine, [("tag", "founder")], "like", reason="great team")
        apply(engine, [("tag", "founder")], "like", reason="great team")
        view = engine.preferences.snapshot("test")[("tag", "founder")]
        assert view.reasons == ("great team",)

        for i in range(MAX_REASONS + 5):
            apply(engine, [("tag", "founder")], "like", reason=f"reason {i}")
        view = engine.preferences.snapshot("test")[("tag", "founder")]
        assert len(view.reasons) == MAX_REASONS
        assert view.reasons[-1] == f"reason {MAX_REASONS + 4}"


class TestReversal:
    """apply_feedback_reversal undoes apply_feedback."""

    def test_exact_inverse(self, engine):
        apply(engine, [("tag", "founder")], "like", reason="first")
        before = engine.preferences.snapshot("test")[("tag", "founder")]

        apply(engine, [("tag", "founder")], "dislike", reason="changed my mind")
        reverse(engine, [("tag", "founder")], "dislike", reason="changed my mind")
        after = engine.preferences.snapshot("test")[("tag", "founder")]

        assert after.like_count == before.like_count
        assert after.dislike_count == before.dislike_count
        assert after.derived_weight == before.derived_weight
        assert after.positive_accumulator == before.positive_accumulator
        assert after.negative_accumulator == before.negative_accumulator
        assert after.reasons == before.reasons

    def test_shared_reason_survives_one_reversal(self, engine):
        apply(engine, [("tag", "ai")], "like", reason="like AI")
        apply(engine, [("tag", "ai")], "like", reason="like AI")
        reverse(engine, [("tag", "ai")], "like", reason="like AI")
        assert engine.preferences.snapshot("test")[("tag", "ai")].reasons == ("like AI",)

    def test_never_below_zero(self, engine):
        apply(engine, [("tag", "ai")], "like")
        reverse(engine, [("tag", "ai")], "dislike")
        view = engine.preferences.snapshot("test")[("tag", "ai")]
        assert view.dislike_count == 0
        assert view.like_count == 1

    def test_missing_row_skipped(self, engine):
        assert reverse(engine, [("tag", "never-seen")], "like") == 0
        assert engine.preferences.count("test") == 0


class TestReset:
    """reset zeroes weights but keeps the rows."""

    def test_reset(self, engine):
        apply(engine, [("tag", "ai"), ("tag", "founder")], "like", reason="x")
        with engine.session_scope() as session:
            assert engine.preferences.reset(session, "test") == 2

        views = engine.preferences.weights("test")
        assert len(views) == 2
        assert all(v.like_count == 0 and v.derived_weight == 0.0 and v.reasons == () for v in views)


class TestReads:
    """Read-only views."""

    def test_weights_ordered(self, engine):
        apply(engine, [("tag", "zeta"), ("region", "eu"), ("tag", "alpha")], "like")
        keys = [(v.category, v.value) for v in engine.preferences.weights("test")]
        assert keys == [("region", "eu"), ("tag", "alpha"), ("tag", "zeta")]

    def test_top_weights(self, engine):
        apply(engine, [("tag", "good")], "like")
        apply(engine, [("tag", "bad")], "dislike")
        apply(engine, [("tag", "mixed")], "like")
        apply(engine, [("tag", "mixed")], "dislike")

        positive = engine.preferences.top_weights("test")
        negative = engine.preferences.top_weights("test", positive=False)
        assert [v.value for v in positive] == ["good"]
        assert [v.value for v in negative] == ["bad"]

    def test_view_to_dict(self, engine):
        apply(engine, [("tag", "ai")], "like", reason="r")
        data = engine.preferences.snapshot("test")[("tag", "ai")].to_dict()
        assert data["reasons"] == ["r"]
        assert isinstance(data["last_updated"], str)

    def test_drift(self, engine):
        apply(engine, [("highlight", "serial_founder")], "dislike")
        rows = engine.preferences.drift("test", {"serial_founder": 0.95, "prior_exit": 0.9})
        assert len(rows) == 1
        assert rows[0]["value"] == "serial_founder"
        assert rows[0]["learned"] == -1.0
        assert rows[0]["drift"] == pytest.approx(-1.95)
