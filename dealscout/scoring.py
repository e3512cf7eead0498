"""
Scoring Logic for ranked entities.

Responsibilities:
- Compute a bounded 0-100 score for an entity from a preference snapshot.
- Emit human-readable match and warning annotations.

Non-Responsibilities:
- No database access.
- No learning (snapshots are read-only).

Invariant:
Given identical inputs, this module must always return
the same score and annotations.

Matching rule: a learned (category, value) matches an entity when the entity
has at least one value in the same category that contains the learned value
as a case-insensitive substring ("founder" matches "co-founder"). Matching is
category-scoped, so a learned region never matches a highlight.
"""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from .embedding import LexicalEmbedder, max_similarity
from .features import EntityFeatures
from .normalize import normalize_tag

NEUTRAL_SCORE = 50
POSITIVE_THRESHOLD = 0.1
NEGATIVE_THRESHOLD = -0.1
K_POS = 20
K_NEG = 20
SIMILARITY_THRESHOLD = 0.3
K_SIM = 15
K_RECIPE = 10
RED_FLAG_PENALTY = 15

VERDICTS = (
    (80, "STRONG LIKE"),
    (60, "LEAN LIKE"),
    (40, "NEUTRAL"),
    (20, "LEAN PASS"),
    (0, "STRONG PASS"),
)


@dataclass
class ScoreResult:
    score: int
    matches: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def verdict(self) -> str:
        return verdict(self.score)

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "verdict": self.verdict,
            "matches": list(self.matches),
            "warnings": list(self.warnings),
        }


def verdict(score: int) -> str:
    for cutoff, label in VERDICTS:
        if score >= cutoff:
            return label
    return VERDICTS[-1][1]


def tag_matches(features: EntityFeatures, category: str, value: str) -> bool:
    needle = normalize_tag(value)
    if not needle:
        return False
    return any(needle in v for v in features.values(category))


def _any_value_matches(features: EntityFeatures, value: str) -> bool:
    needle = normalize_tag(value)
    if not needle:
        return False
    return any(needle in v for _, v in features.pairs())


def _round(value: float) -> int:
    return int(Decimal(str(float(value))).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _corpus_matrix(liked_corpus, embedder: LexicalEmbedder) -> np.ndarray:
    if liked_corpus is None:
        return np.zeros((0, embedder.dimension))
    if isinstance(liked_corpus, np.ndarray):
        return liked_corpus.reshape(-1, embedder.dimension) if liked_corpus.size else np.zeros((0, embedder.dimension))
    rows = [embedder.embed(item) if isinstance(item, str) else np.asarray(item, dtype=np.float64) for item in liked_corpus]
    if not rows:
        return np.zeros((0, embedder.dimension))
    return np.vstack(rows)


def score(
    features: EntityFeatures,
    snapshot: Mapping[Tuple[str, str], object],
    liked_corpus: Optional[Sequence] = None,
    recipe: Optional[Mapping] = None,
    embedder: Optional[LexicalEmbedder] = None,
) -> ScoreResult:
    """
    Score an entity against learned preferences.

    Args:
        features: Extracted entity features
        snapshot: (category, value) -> weight view (anything with derived_weight)
        liked_corpus: Text blobs or embeddings of previously liked entities
        recipe: Persona recipe dict ("weights", "red_flags"); optional
        embedder: Embedder for the corpus bonus (default width 50)

    Returns:
        ScoreResult with an integer score in [0, 100]
    """
    embedder = embedder or LexicalEmbedder()
    total = float(NEUTRAL_SCORE)
    matches: List[str] = []
    warnings: List[str] = []

    for (category, value) in sorted(snapshot):
        weight = snapshot[(category, value)].derived_weight
        if not tag_matches(features, category, value):
            continue
        if weight > POSITIVE_THRESHOLD:
            total += weight * K_POS
            matches.append(f"✓ {category}: {value}")
        elif weight < NEGATIVE_THRESHOLD:
            total -= abs(weight) * K_NEG
            warnings.append(f"⚠ {category}: {value}")

    corpus = _corpus_matrix(liked_corpus, embedder)
    if corpus.shape[0] > 0:
        sim = max_similarity(embedder.embed(features.text_blob), corpus)
        if sim > SIMILARITY_THRESHOLD:
            total += sim * K_SIM
            matches.append(f"🔗 similar to liked ({round(sim * 100)}%)")

    if recipe:
        total += _score_recipe(features, recipe, matches, warnings)

    return ScoreResult(score=max(0, min(100, _round(total))), matches=matches, warnings=warnings)


def _score_recipe(features: EntityFeatures, recipe: Mapping, matches: List[str], warnings: List[str]) -> float:
    delta = 0.0
    weights: Dict[str, float] = recipe.get("weights") or {}
    for tag in sorted(weights):
        w = float(weights[tag])
        if w == 0 or not _any_value_matches(features, tag):
            continue
        delta += w * K_RECIPE
        if w > 0:
            matches.append(f"✓ recipe: {tag}")
        else:
            warnings.append(f"⚠ recipe: {tag}")

    blob = features.text_blob.lower()
    for flag in recipe.get("red_flags") or []:
        needle = normalize_tag(flag).replace("_", " ")
        if needle and (needle in blob or normalize_tag(flag) in blob):
            delta -= RED_FLAG_PENALTY
            warnings.append(f"🚩 {flag}")
    return delta


def rank(candidates: Iterable[Tuple[EntityFeatures, ScoreResult]]) -> List[Tuple[EntityFeatures, ScoreResult]]:
    """Sort by score descending, then id for a stable order."""
    return sorted(candidates, key=lambda item: (-item[1].score, item[0].id))
