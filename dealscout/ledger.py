"""
Feedback Ledger: durable, idempotent record of like/dislike and pair events.

The ledger is the transaction boundary. Recording feedback writes the
feedback row, the Preference Store update and the Sync Outbox entry in one
database transaction; if any step fails, none of them is kept.

One live record exists per (scope, entity_id). Recording again for the same
entity first reverses the stored record's contribution, then applies the new
one, so re-liking is idempotent and like -> dislike nets a clean swing.
"""

import json
import threading
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func

from .database import Feedback, LearnedWeight, PreferencePair
from .features import EntityFeatures, features_from_tags
from .logger import get_logger
from .normalize import normalize_entity_type
from .outbox import SyncOutbox
from .preferences import PreferenceStore, clean_pairs
from .schema import ValidationError, ensure_pair, ensure_scope, validate_feedback

logger = get_logger()


class ScopeLocks:
    """One lock per scope: writes within a scope are serialized."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}

    def __call__(self, scope: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(scope)
            if lock is None:
                lock = self._locks[scope] = threading.RLock()
            return lock


@dataclass(frozen=True)
class FeedbackRecord:
    scope: str
    entity_id: str
    entity_type: str
    action: str
    display_name: str
    tags: Tuple[str, ...]
    datapoints: Tuple[Tuple[str, str], ...]
    note: Optional[str]
    prior_score: Optional[int]
    user_agreed: Optional[bool]
    created_at: datetime
    replaced_action: Optional[str] = None

    @classmethod
    def from_row(cls, row: Feedback, replaced_action: Optional[str] = None) -> "FeedbackRecord":
        return cls(
            scope=row.scope,
            entity_id=row.entity_id,
            entity_type=row.entity_type,
            action=row.action,
            display_name=row.display_name or "",
            tags=tuple(row.tags),
            datapoints=tuple(row.datapoints),
            note=row.note,
            prior_score=row.prior_score,
            user_agreed=row.user_agreed,
            created_at=row.created_at,
            replaced_action=replaced_action,
        )

    @property
    def replaced(self) -> bool:
        return self.replaced_action is not None


@dataclass(frozen=True)
class PairRecord:
    id: int
    scope: str
    chosen_entity_id: str
    chosen_name: str
    rejected_entity_id: str
    rejected_name: str
    reason: Optional[str]
    created_at: datetime

    @classmethod
    def from_row(cls, row: PreferencePair) -> "PairRecord":
        return cls(
            id=row.id,
            scope=row.scope,
            chosen_entity_id=row.chosen_entity_id,
            chosen_name=row.chosen_name or "",
            rejected_entity_id=row.rejected_entity_id,
            rejected_name=row.rejected_name or "",
            reason=row.reason,
            created_at=row.created_at,
        )


@dataclass
class LedgerStats:
    likes: int = 0
    dislikes: int = 0
    total: int = 0
    agreed: int = 0
    pairs: int = 0
    avg_prior_score: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "likes": self.likes,
            "dislikes": self.dislikes,
            "total": self.total,
            "agreed": self.agreed,
            "pairs": self.pairs,
            "avg_prior_score": self.avg_prior_score,
        }


class FeedbackLedger:
    def __init__(
        self,
        session_factory,
        preferences: PreferenceStore,
        outbox: SyncOutbox,
        scope_lock: Optional[ScopeLocks] = None,
    ):
        self._session_factory = session_factory
        self.preferences = preferences
        self.outbox = outbox
        self._scope_lock = scope_lock or ScopeLocks()

    def record(
        self,
        scope: str,
        entity_id: str,
        entity_type: str,
        action: str,
        tags: Optional[Sequence[str]] = None,
        note: Optional[str] = None,
        features: Optional[EntityFeatures] = None,
        prior_score: Optional[int] = None,
        user_agreed: Optional[bool] = None,
    ) -> FeedbackRecord:
        """
        Record (or replace) feedback for one entity within a scope.

        Args:
            scope: Learning scope (persona id)
            entity_id: Entity identifier
            entity_type: person, company or talent_signal
            action: "like" or "dislike"
            tags: User-selected structured tags
            note: Free-text reason; also added to each touched weight's reason log
            features: Extracted entity features; without them only tags are learned
            prior_score: Score shown to the user before the feedback
            user_agreed: Whether the user agreed with the prior score

        Returns:
            The stored FeedbackRecord (replaced_action set when it replaced one)

        Raises:
            ValidationError: On malformed input
            SQLAlchemyError: On storage failure (nothing is kept)
        """
        entity_type = normalize_entity_type(entity_type) or entity_type
        tags = list(tags or [])
        errors = validate_feedback(
            {
                "scope": scope,
                "entity_id": entity_id,
                "entity_type": entity_type,
                "action": action,
                "tags": tags,
                "note": note,
                "prior_score": prior_score,
            }
        )
        if errors:
            raise ValidationError(errors)

        if features is None:
            features = features_from_tags(entity_id, entity_type, tags)
        else:
            features = features.with_tags(tags)
        datapoints = clean_pairs(features.pairs())
        note = note.strip() if note and note.strip() else None

        with self._scope_lock(scope):
            session = self._session_factory()
            try:
                row = session.query(Feedback).filter_by(scope=scope, entity_id=entity_id).first()
                replaced_action = None
                if row is not None:
                    replaced_action = row.action
                    self.preferences.apply_feedback_reversal(
                        session, scope, row.datapoints, row.action, row.note
                    )
                    row.created_at = datetime.now()
                else:
                    row = Feedback(scope=scope, entity_id=entity_id)
                    session.add(row)

                row.entity_type = entity_type
                row.action = action
                row.display_name = features.display_name
                row.tags_json = json.dumps(tags)
                row.datapoints_json = json.dumps([list(p) for p in datapoints])
                row.note = note
                row.text_blob = features.text_blob
                row.prior_score = prior_score
                row.user_agreed = user_agreed

                self.preferences.apply_feedback(session, scope, datapoints, action, note)
                self.outbox.enqueue(session, entity_id, entity_type, action)
                session.commit()
                record = FeedbackRecord.from_row(row, replaced_action)
            except Exception as e:
                session.rollback()
                logger.error("Feedback not recorded", scope=scope, entity_id=entity_id, error=str(e))
                raise
            finally:
                session.close()

        logger.record_feedback(replaced=replaced_action is not None)
        logger.info(
            "Feedback recorded",
            scope=scope,
            entity_id=entity_id,
            action=action,
            replaced=replaced_action,
            datapoints=len(datapoints),
        )
        return record

    def get(self, scope: str, entity_id: str) -> Optional[FeedbackRecord]:
        with self._session_factory() as session:
            row = session.query(Feedback).filter_by(scope=scope, entity_id=entity_id).first()
            return FeedbackRecord.from_row(row) if row is not None else None

    def list_by_scope(self, scope: str, action: Optional[str] = None) -> List[FeedbackRecord]:
        ensure_scope(scope)
        with self._session_factory() as session:
            query = session.query(Feedback).filter_by(scope=scope)
            if action:
                query = query.filter_by(action=action)
            rows = query.order_by(Feedback.created_at, Feedback.id).all()
            return [FeedbackRecord.from_row(r) for r in rows]

    def liked_corpus(self, scope: str) -> List[str]:
        """Text blobs of the scope's liked entities, oldest first."""
        with self._session_factory() as session:
            rows = (
                session.query(Feedback.text_blob)
                .filter_by(scope=scope, action="like")
                .order_by(Feedback.created_at, Feedback.id)
                .all()
            )
            return [r[0] for r in rows if r[0]]

    def stats(self, scope: str) -> LedgerStats:
        ensure_scope(scope)
        with self._session_factory() as session:
            counts = dict(
                session.query(Feedback.action, func.count(Feedback.id))
                .filter_by(scope=scope)
                .group_by(Feedback.action)
                .all()
            )
            agreed = (
                session.query(func.count(Feedback.id))
                .filter_by(scope=scope, user_agreed=True)
                .scalar()
            )
            avg_prior = (
                session.query(func.avg(Feedback.prior_score))
                .filter_by(scope=scope)
                .scalar()
            )
            pairs = (
                session.query(func.count(PreferencePair.id))
                .filter_by(scope=scope)
                .scalar()
            )
        likes = counts.get("like", 0)
        dislikes = counts.get("dislike", 0)
        return LedgerStats(
            likes=likes,
            dislikes=dislikes,
            total=likes + dislikes,
            agreed=agreed or 0,
            pairs=pairs or 0,
            avg_prior_score=round(float(avg_prior), 1) if avg_prior is not None else None,
        )

    def record_pair(
        self,
        scope: str,
        chosen_entity_id: str,
        rejected_entity_id: str,
        reason: Optional[str] = None,
        chosen_name: str = "",
        rejected_name: str = "",
    ) -> PairRecord:
        """Append a "chosen over rejected, because reason" comparison."""
        ensure_scope(scope)
        ensure_pair(chosen_entity_id, rejected_entity_id, reason)

        with self._scope_lock(scope):
            session = self._session_factory()
            try:
                row = PreferencePair(
                    scope=scope,
                    chosen_entity_id=chosen_entity_id,
                    chosen_name=chosen_name or "",
                    rejected_entity_id=rejected_entity_id,
                    rejected_name=rejected_name or "",
                    reason=reason.strip() if reason and reason.strip() else None,
                )
                session.add(row)
                session.commit()
                pair = PairRecord.from_row(row)
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

        logger.record_pair()
        logger.info(
            "Preference pair recorded",
            scope=scope,
            chosen=chosen_entity_id,
            rejected=rejected_entity_id,
        )
        return pair

    def list_pairs(self, scope: str) -> List[PairRecord]:
        with self._session_factory() as session:
            rows = (
                session.query(PreferencePair)
                .filter_by(scope=scope)
                .order_by(PreferencePair.created_at, PreferencePair.id)
                .all()
            )
            return [PairRecord.from_row(r) for r in rows]

    def replay(self, scope: str) -> int:
        """
        Rebuild a scope's learned weights from its live feedback records.

        Returns:
            Number of records replayed
        """
        ensure_scope(scope)
        with self._scope_lock(scope):
            session = self._session_factory()
            try:
                self.preferences.reset(session, scope)
                rows = (
                    session.query(Feedback)
                    .filter_by(scope=scope)
                    .order_by(Feedback.created_at, Feedback.id)
                    .all()
                )
                for row in rows:
                    self.preferences.apply_feedback(session, scope, row.datapoints, row.action, row.note)
                session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

        logger.info("Ledger replayed", scope=scope, records=len(rows))
        return len(rows)

    def verify(self, scope: str) -> List[dict]:
        """
        Compare stored like/dislike counts with what the live records imply.

        Returns:
            One dict per mismatching (category, value); empty when consistent
        """
        expected: Dict[Tuple[str, str], Counter] = {}
        with self._session_factory() as session:
            for row in session.query(Feedback).filter_by(scope=scope).all():
                for pair in clean_pairs(row.datapoints):
                    expected.setdefault(pair, Counter())[row.action] += 1
            stored = {
                (w.category, w.value): (w.like_count, w.dislike_count)
                for w in session.query(LearnedWeight).filter_by(scope=scope).all()
            }

        mismatches = []
        for pair in sorted(set(expected) | set(stored)):
            want = expected.get(pair, Counter())
            want_counts = (want["like"], want["dislike"])
            have_counts = stored.get(pair)
            if have_counts is None or have_counts != want_counts:
                mismatches.append(
                    {
                        "category": pair[0],
                        "value": pair[1],
                        "expected": want_counts,
                        "stored": have_counts,
                    }
                )
        return mismatches
