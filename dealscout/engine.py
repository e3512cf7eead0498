"""
Engine: one open database plus the components that work on it.

    with Engine(Path("data/dealscout.db")) as engine:
        engine.like(raw_person, note="great operator")
        result = engine.score(other_person)

Each Engine owns its SQLAlchemy engine, session factory and per-scope write
locks; nothing is process-global, so tests and tools can open several
independent databases side by side.
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from sqlalchemy.orm import sessionmaker

from .database import create_db_engine, init_database
from .embedding import LexicalEmbedder
from .export import Exporter
from .features import EntityFeatures, extract, features_from_tags
from .ledger import FeedbackLedger, FeedbackRecord, PairRecord, ScopeLocks
from .logger import get_logger
from .outbox import DEFAULT_BATCH_SIZE, DrainResult, Dispatcher, OutboxEntry, SyncOutbox
from .personas import PersonaRegistry
from .preferences import PreferenceStore
from .schema import ensure_scope
from .scoring import ScoreResult, rank
from .scoring import score as score_features

logger = get_logger()

Entity = Union[dict, EntityFeatures, str]


class Engine:
    def __init__(self, db_path: Path, dispatcher: Optional[Dispatcher] = None):
        self.db_path = Path(db_path)
        self.dispatcher = dispatcher
        self.embedder = LexicalEmbedder()
        self._db_engine = None
        self._sessionmaker = None
        self._locks = ScopeLocks()

        self.preferences = PreferenceStore(self._new_session)
        self.outbox = SyncOutbox(self._new_session)
        self.ledger = FeedbackLedger(self._new_session, self.preferences, self.outbox, self._locks)
        self.personas = PersonaRegistry(self._new_session)
        self.exporter = Exporter(self.ledger, self.preferences, self.personas)

    # Lifecycle

    def open(self) -> "Engine":
        if self._db_engine is not None:
            return self
        init_database(self.db_path)
        self._db_engine = create_db_engine(self.db_path)
        self._sessionmaker = sessionmaker(bind=self._db_engine)
        self.personas.seed()
        logger.debug("Engine opened", db_path=str(self.db_path))
        return self

    def close(self) -> None:
        if self._db_engine is None:
            return
        self._db_engine.dispose()
        self._db_engine = None
        self._sessionmaker = None
        logger.debug("Engine closed", db_path=str(self.db_path))

    @property
    def is_open(self) -> bool:
        return self._db_engine is not None

    def __enter__(self) -> "Engine":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _new_session(self):
        if self._sessionmaker is None:
            raise RuntimeError("Engine is closed; call open() first")
        return self._sessionmaker()

    @contextmanager
    def session_scope(self):
        """Session that commits on success and rolls back on error."""
        session = self._new_session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def scope_lock(self, scope: str):
        return self._locks(scope)

    def resolve_scope(self, scope: Optional[str] = None) -> str:
        """Explicit scope, or the active persona's id."""
        if scope is not None:
            return ensure_scope(scope)
        persona = self.personas.active()
        if persona is None:
            raise RuntimeError("No active persona; pass a scope or activate one")
        return persona.id

    # Feedback

    def features(self, entity: Entity, entity_type: Optional[str] = None, tags: Sequence[str] = ()) -> EntityFeatures:
        if isinstance(entity, str):
            return features_from_tags(entity, entity_type, tags)
        return extract(entity, entity_type)

    def feedback(
        self,
        entity: Entity,
        action: str,
        scope: Optional[str] = None,
        tags: Sequence[str] = (),
        note: Optional[str] = None,
        entity_type: Optional[str] = None,
        prior_score: Optional[int] = None,
        user_agreed: Optional[bool] = None,
    ) -> FeedbackRecord:
        scope = self.resolve_scope(scope)
        features = self.features(entity, entity_type, tags)
        return self.ledger.record(
            scope,
            features.id,
            features.entity_type,
            action,
            tags=tags,
            note=note,
            features=features,
            prior_score=prior_score,
            user_agreed=user_agreed,
        )

    def like(self, entity: Entity, scope: Optional[str] = None, **kwargs) -> FeedbackRecord:
        return self.feedback(entity, "like", scope=scope, **kwargs)

    def dislike(self, entity: Entity, scope: Optional[str] = None, **kwargs) -> FeedbackRecord:
        return self.feedback(entity, "dislike", scope=scope, **kwargs)

    def compare(
        self,
        chosen: Entity,
        rejected: Entity,
        reason: Optional[str] = None,
        scope: Optional[str] = None,
        entity_type: Optional[str] = None,
    ) -> PairRecord:
        scope = self.resolve_scope(scope)
        a = self.features(chosen, entity_type)
        b = self.features(rejected, entity_type)
        return self.ledger.record_pair(
            scope, a.id, b.id, reason, chosen_name=a.display_name, rejected_name=b.display_name
        )

    def view(self, entity: Entity, entity_type: Optional[str] = None) -> OutboxEntry:
        """Queue a 'viewed' status for the remote; no learning happens."""
        features = self.features(entity, entity_type)
        return self.outbox.enqueue_now(features.id, features.entity_type, "viewed")

    # Scoring

    def score(
        self,
        entity: Entity,
        scope: Optional[str] = None,
        entity_type: Optional[str] = None,
        use_recipe: bool = True,
    ) -> ScoreResult:
        return self.score_many([entity], scope, entity_type, use_recipe)[0][1]

    def score_many(
        self,
        entities: Iterable[Entity],
        scope: Optional[str] = None,
        entity_type: Optional[str] = None,
        use_recipe: bool = True,
    ) -> List[Tuple[EntityFeatures, ScoreResult]]:
        """Score entities against one snapshot and return them ranked."""
        scope = self.resolve_scope(scope)
        snapshot = self.preferences.snapshot(scope)
        corpus = self.embedder.embed_many(self.ledger.liked_corpus(scope))
        recipe = None
        if use_recipe:
            persona = self.personas.get(scope)
            recipe = persona.recipe.to_dict() if persona is not None else None

        scored = []
        for entity in entities:
            features = self.features(entity, entity_type)
            scored.append(
                (features, score_features(features, snapshot, corpus, recipe=recipe, embedder=self.embedder))
            )
        return rank(scored)

    # Sync

    def drain(self, dispatcher: Optional[Dispatcher] = None, batch_size: int = DEFAULT_BATCH_SIZE) -> DrainResult:
        dispatcher = dispatcher or self.dispatcher
        if dispatcher is None:
            raise RuntimeError("No dispatcher configured; set DEALSCOUT_API_BASE or pass one")
        return self.outbox.drain(dispatcher, batch_size)

    def stats(self, scope: Optional[str] = None) -> dict:
        scope = self.resolve_scope(scope)
        data = self.ledger.stats(scope).to_dict()
        data["weights"] = self.preferences.count(scope)
        data["outbox"] = self.outbox.counts()
        return data
