"""
Tests for the lexical embedder.
"""

import zlib

import numpy as np
import pytest

from dealscout.embedding import DIMENSION, LexicalEmbedder, embed, max_similarity, similarity


class TestEmbed:
    """Vector shape and normalization."""

    def test_fixed_width(self):
        assert embed("Founder AI San Francisco").shape == (DIMENSION,)

    def test_width_does_not_grow_with_vocabulary(self):
        """Many distinct tokens still fit the same width."""
        text = " ".join(f"token{i}" for i in range(500))
        assert embed(text).shape == (DIMENSION,)

    def test_unit_norm(self):
        assert np.linalg.norm(embed("serial founder fintech")) == pytest.approx(1.0)

    def test_empty_text_is_zero_vector(self):
        assert not embed("").any()
        assert not embed(None).any()

    def test_short_tokens_dropped(self):
        """Tokens under three characters carry no weight."""
        assert not embed("ai ml a b").any()

    def test_case_and_punctuation_ignored(self):
        assert np.array_equal(embed("Founder, AI!"), embed("founder ai"))

    def test_invalid_dimension(self):
        with pytest.raises(ValueError):
            LexicalEmbedder(dimension=0)


class TestDeterminism:
    """Embedding must be reproducible."""

    def test_bit_identical(self):
        a = embed("Founder AI San Francisco")
        b = embed("Founder AI San Francisco")
        assert np.array_equal(a, b)

    def test_independent_instances_agree(self):
        """crc32 slots do not depend on the interpreter's hash seed."""
        assert np.array_equal(
            LexicalEmbedder().embed("prior exit fintech"),
            LexicalEmbedder().embed("prior exit fintech"),
        )

    def test_known_slot(self):
        embedder = LexicalEmbedder()
        assert embedder.slot("founder") == zlib.crc32(b"founder") % DIMENSION


class TestSimilarity:
    """Cosine similarity over unit vectors."""

    def test_self_similarity(self):
        v = embed("Founder AI San Francisco")
        assert similarity(v, v) == pytest.approx(1.0)

    def test_range(self):
        s = similarity(embed("founder fintech payments"), embed("robotics warehouse automation"))
        assert 0.0 <= s <= 1.0 + 1e-9

    def test_max_similarity_empty_corpus(self):
        corpus = np.zeros((0, DIMENSION))
        assert max_similarity(embed("founder"), corpus) == 0.0

    def test_max_similarity_picks_best(self):
        embedder = LexicalEmbedder()
        corpus = embedder.embed_many(["robotics warehouse", "founder fintech"])
        assert max_similarity(embedder.embed("founder fintech"), corpus) == pytest.approx(1.0)

    def test_embed_many_empty(self):
        assert LexicalEmbedder().embed_many([]).shape == (0, DIMENSION)
