"""
Preference Store: learned per-(category, value) opinion within a scope.

Responsibilities:
- Own every mutation of learned weights.
- Keep derived_weight = (likes - dislikes) / max(likes + dislikes, 1).
- Undo a previous contribution exactly when feedback is replaced.

Non-Responsibilities:
- No transaction management (callers pass the session of their unit of work).
- No scoring.

Invariant:
Accumulators are derived from the counts, so any sequence of applies and
reversals that nets to the same counts yields identical rows.
"""

import json
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func

from .database import LearnedWeight
from .normalize import normalize_tag

LEARNING_INCREMENT = 0.2
MAX_REASONS = 10

Pair = Tuple[str, str]


@dataclass(frozen=True)
class WeightView:
    """Read-only copy of a learned weight."""

    scope: str
    category: str
    value: str
    positive_accumulator: float
    negative_accumulator: float
    derived_weight: float
    like_count: int
    dislike_count: int
    reasons: Tuple[str, ...]
    last_updated: Optional[datetime]

    @classmethod
    def from_row(cls, row: LearnedWeight) -> "WeightView":
        return cls(
            scope=row.scope,
            category=row.category,
            value=row.value,
            positive_accumulator=row.positive_accumulator,
            negative_accumulator=row.negative_accumulator,
            derived_weight=row.derived_weight,
            like_count=row.like_count,
            dislike_count=row.dislike_count,
            reasons=tuple(r for r, _ in _load_reasons(row)),
            last_updated=row.last_updated,
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        data["reasons"] = list(self.reasons)
        data["last_updated"] = self.last_updated.isoformat() if self.last_updated else None
        return data


def derive_weight(like_count: int, dislike_count: int) -> float:
    return (like_count - dislike_count) / max(like_count + dislike_count, 1)


def _load_reasons(row: LearnedWeight) -> List[list]:
    return json.loads(row.reasons_json or "[]")


def _add_reason(row: LearnedWeight, reason: Optional[str]) -> None:
    reason = (reason or "").strip()
    if not reason:
        return
    reasons = _load_reasons(row)
    for entry in reasons:
        if entry[0] == reason:
            entry[1] += 1
            break
    else:
        reasons.append([reason, 1])
        # oldest reasons fall off once the log is full
        del reasons[:-MAX_REASONS]
    row.reasons_json = json.dumps(reasons)


def _remove_reason(row: LearnedWeight, reason: Optional[str]) -> None:
    reason = (reason or "").strip()
    if not reason:
        return
    reasons = _load_reasons(row)
    for i, entry in enumerate(reasons):
        if entry[0] == reason:
            entry[1] -= 1
            if entry[1] <= 0:
                del reasons[i]
            break
    row.reasons_json = json.dumps(reasons)


def _recompute(row: LearnedWeight) -> None:
    row.positive_accumulator = round(row.like_count * LEARNING_INCREMENT, 10)
    row.negative_accumulator = round(row.dislike_count * LEARNING_INCREMENT, 10)
    row.derived_weight = derive_weight(row.like_count, row.dislike_count)
    row.last_updated = datetime.now()


def clean_pairs(pairs: Iterable[Pair]) -> List[Pair]:
    """Normalize pairs, skipping empty categories/values and duplicates."""
    seen = set()
    result = []
    for category, value in pairs:
        category, value = normalize_tag(category), normalize_tag(value)
        if not category or not value or (category, value) in seen:
            continue
        seen.add((category, value))
        result.append((category, value))
    return result


class PreferenceStore:
    def __init__(self, session_factory):
        self._session_factory = session_factory

    def _find(self, session, scope: str, category: str, value: str) -> Optional[LearnedWeight]:
        return (
            session.query(LearnedWeight)
            .filter_by(scope=scope, category=category, value=value)
            .first()
        )

    def apply_feedback(self, session, scope: str, pairs: Iterable[Pair], action: str, reason: Optional[str] = None) -> int:
        """
        Credit every (category, value) pair with one like or dislike.

        Args:
            session: Session of the caller's transaction
            scope: Learning scope
            pairs: (category, value) pairs touched by the feedback
            action: "like" or "dislike"
            reason: Free-text reason added to each pair's reason log

        Returns:
            Number of pairs updated
        """
        updated = 0
        for category, value in clean_pairs(pairs):
            row = self._find(session, scope, category, value)
            if row is None:
                row = LearnedWeight(
                    scope=scope,
                    category=category,
                    value=value,
                    like_count=0,
                    dislike_count=0,
                    reasons_json="[]",
                )
                session.add(row)
            if action == "like":
                row.like_count += 1
            else:
                row.dislike_count += 1
            _add_reason(row, reason)
            _recompute(row)
            updated += 1
        return updated

    def apply_feedback_reversal(
        self, session, scope: str, pairs: Iterable[Pair], previous_action: str, reason: Optional[str] = None
    ) -> int:
        """Undo one earlier apply_feedback with the same pairs, action and reason."""
        reversed_count = 0
        for category, value in clean_pairs(pairs):
            row = self._find(session, scope, category, value)
            if row is None:
                continue
            if previous_action == "like":
                row.like_count = max(row.like_count - 1, 0)
            else:
                row.dislike_count = max(row.dislike_count - 1, 0)
            _remove_reason(row, reason)
            _recompute(row)
            reversed_count += 1
        return reversed_count

    def reset(self, session, scope: str) -> int:
        """Zero every weight of a scope. Rows are kept."""
        rows = session.query(LearnedWeight).filter_by(scope=scope).all()
        for row in rows:
            row.like_count = 0
            row.dislike_count = 0
            row.reasons_json = "[]"
            _recompute(row)
        return len(rows)

    def snapshot(self, scope: str) -> Dict[Pair, WeightView]:
        """Consistent read-only view of a scope's weights, keyed by (category, value)."""
        with self._session_factory() as session:
            rows = session.query(LearnedWeight).filter_by(scope=scope).all()
            return {(r.category, r.value): WeightView.from_row(r) for r in rows}

    def weights(self, scope: str) -> List[WeightView]:
        with self._session_factory() as session:
            rows = (
                session.query(LearnedWeight)
                .filter_by(scope=scope)
                .order_by(LearnedWeight.category, LearnedWeight.value)
                .all()
            )
            return [WeightView.from_row(r) for r in rows]

    def top_weights(self, scope: str, positive: bool = True, limit: int = 10) -> List[WeightView]:
        with self._session_factory() as session:
            query = session.query(LearnedWeight).filter_by(scope=scope)
            if positive:
                query = query.filter(LearnedWeight.derived_weight > 0).order_by(
                    LearnedWeight.derived_weight.desc(), LearnedWeight.like_count.desc()
                )
            else:
                query = query.filter(LearnedWeight.derived_weight < 0).order_by(
                    LearnedWeight.derived_weight.asc(), LearnedWeight.dislike_count.desc()
                )
            rows = query.order_by(LearnedWeight.category, LearnedWeight.value).limit(limit).all()
            return [WeightView.from_row(r) for r in rows]

    def count(self, scope: str) -> int:
        with self._session_factory() as session:
            return session.query(func.count(LearnedWeight.id)).filter_by(scope=scope).scalar() or 0

    def drift(self, scope: str, default_weights: Dict[str, float]) -> List[dict]:
        """Learned weight against the recipe default for every recipe tag that was learned."""
        defaults = {normalize_tag(k): v for k, v in (default_weights or {}).items()}
        rows = []
        for view in self.weights(scope):
            if view.value in defaults:
                rows.append(
                    {
                        "category": view.category,
                        "value": view.value,
                        "default": defaults[view.value],
                        "learned": view.derived_weight,
                        "drift": round(view.derived_weight - defaults[view.value], 4),
                    }
                )
        return rows
