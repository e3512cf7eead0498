"""
Lexical embedding: a fixed-width bag-of-words count vector.

Tokens are mapped to slots with a bounded wrap-around hash
(slot = crc32(token) mod DIMENSION), so the vector width never grows with the
corpus. Distinct tokens may share a slot; the vectors are only used for
coarse "looks like something you liked" similarity, never as an
authoritative signal.

crc32 does not depend on the interpreter's hash seed, so the same text embeds
to the same vector in every process.
"""

import zlib
from typing import Iterable, Optional

import numpy as np

from .normalize import tokenize

DIMENSION = 50
MIN_TOKEN_LENGTH = 3


class LexicalEmbedder:
    """Embeds text into unit-normalized count vectors of fixed width."""

    def __init__(self, dimension: int = DIMENSION, min_token_length: int = MIN_TOKEN_LENGTH):
        if dimension <= 0:
            raise ValueError("dimension must be positive")
        self.dimension = dimension
        self.min_token_length = min_token_length

    def slot(self, token: str) -> int:
        return zlib.crc32(token.encode("utf-8")) % self.dimension

    def embed(self, text: Optional[str]) -> np.ndarray:
        vec = np.zeros(self.dimension, dtype=np.float64)
        for token in tokenize(text or "", self.min_token_length):
            vec[self.slot(token)] += 1.0
        norm = np.linalg.norm(vec)
        if norm > 0:
            vec /= norm
        return vec

    def embed_many(self, texts: Iterable[str]) -> np.ndarray:
        rows = [self.embed(t) for t in texts]
        if not rows:
            return np.zeros((0, self.dimension), dtype=np.float64)
        return np.vstack(rows)


def similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine similarity of two unit vectors (a plain dot product)."""
    return float(np.dot(a, b))


def max_similarity(vector: np.ndarray, corpus: np.ndarray) -> float:
    """Highest similarity between vector and any row of corpus (0.0 if empty)."""
    if corpus.size == 0:
        return 0.0
    return float(np.max(corpus @ vector))


_default = LexicalEmbedder()


def embed(text: Optional[str]) -> np.ndarray:
    return _default.embed(text)
