"""
Database schema and connection management.

Uses SQLite with SQLAlchemy for the feedback ledger, learned weights,
preference pairs, personas and the sync outbox.
"""

import json
from datetime import datetime
from pathlib import Path
from sqlalchemy import (
    create_engine,
    Boolean,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()

SQLITE_BUSY_TIMEOUT = 30  # seconds


class Persona(Base):
    """Named learning scope with its recipe."""

    __tablename__ = "personas"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    recipe_json = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=False)
    position = Column(Integer, nullable=False, default=0)  # display order
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    @property
    def recipe(self) -> dict:
        return json.loads(self.recipe_json) if self.recipe_json else {}


class Feedback(Base):
    """Live like/dislike record, one per (scope, entity_id)."""

    __tablename__ = "feedback"
    __table_args__ = (
        UniqueConstraint("scope", "entity_id", name="uq_feedback_scope_entity"),
        Index("idx_feedback_scope_action", "scope", "action"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    scope = Column(String, nullable=False)
    entity_id = Column(String, nullable=False)
    entity_type = Column(String, nullable=False)  # person, company, talent_signal
    action = Column(String, nullable=False)  # like, dislike
    display_name = Column(String, nullable=False, default="")
    tags_json = Column(Text, nullable=False, default="[]")
    datapoints_json = Column(Text, nullable=False, default="[]")  # [[category, value], ...]
    note = Column(Text, nullable=True)
    text_blob = Column(Text, nullable=False, default="")
    prior_score = Column(Integer, nullable=True)
    user_agreed = Column(Boolean, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    @property
    def tags(self) -> list:
        return json.loads(self.tags_json or "[]")

    @property
    def datapoints(self) -> list:
        return [tuple(p) for p in json.loads(self.datapoints_json or "[]")]


class LearnedWeight(Base):
    """Learned opinion about one (category, value) within a scope."""

    __tablename__ = "learned_weights"
    __table_args__ = (
        UniqueConstraint("scope", "category", "value", name="uq_weight_scope_category_value"),
        Index("idx_weights_scope", "scope"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    scope = Column(String, nullable=False)
    category = Column(String, nullable=False)
    value = Column(String, nullable=False)
    positive_accumulator = Column(Float, nullable=False, default=0.0)
    negative_accumulator = Column(Float, nullable=False, default=0.0)
    derived_weight = Column(Float, nullable=False, default=0.0)
    like_count = Column(Integer, nullable=False, default=0)
    dislike_count = Column(Integer, nullable=False, default=0)
    reasons_json = Column(Text, nullable=False, default="[]")  # [[reason, refcount], ...]
    last_updated = Column(DateTime, nullable=False, default=datetime.now)


class PreferencePair(Base):
    """Explicit "chosen over rejected, because reason" comparison."""

    __tablename__ = "preference_pairs"
    __table_args__ = (Index("idx_pairs_scope", "scope"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    scope = Column(String, nullable=False)
    chosen_entity_id = Column(String, nullable=False)
    chosen_name = Column(String, nullable=False, default="")
    rejected_entity_id = Column(String, nullable=False)
    rejected_name = Column(String, nullable=False, default="")
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)


class SyncQueueEntry(Base):
    """Local action awaiting confirmation from the remote entity-status API."""

    __tablename__ = "sync_queue"
    __table_args__ = (Index("idx_sync_attempts", "attempts"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    entity_id = Column(String, nullable=False)
    entity_type = Column(String, nullable=False)
    action = Column(String, nullable=False)  # like, dislike, viewed
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)


def create_db_engine(db_path: Path):
    """
    Create a SQLAlchemy engine for a SQLite file.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLAlchemy Engine usable from several threads
    """
    return create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT},
    )


def init_database(db_path: Path) -> None:
    """
    Initialize database and create tables.

    Args:
        db_path: Path to SQLite database file
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = create_db_engine(db_path)
    Base.metadata.create_all(engine)
    engine.dispose()


def get_session(db_path: Path):
    """
    Get database session.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLAlchemy session
    """
    engine = create_db_engine(db_path)
    Session = sessionmaker(bind=engine)
    return Session()
