"""
Database schema and connection management.

Uses SQLite with SQLAlchemy for the local catalog: input metadata records,
similarity pair documents and declared output schemas.
"""

from datetime import datetime
from pathlib import Path
from sqlalchemy import create_engine, Column, DateTime, Float, Index, Integer, JSON, String
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class CatalogRecord(Base):
    """Raw metadata record of the catalog."""

    __tablename__ = "catalog_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    relation = Column(String, nullable=False)
    record_type = Column(String, nullable=False)
    payload = Column(JSON, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    __table_args__ = (Index("ix_catalog_records_relation_type", "relation", "record_type"),)


class SimilarityDocument(Base):
    """One ordered pair of records with per-feature similarities."""

    __tablename__ = "similarity_pairs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    relation = Column(String, nullable=False)
    doc_type = Column(String, nullable=False)
    concept_a = Column(String, nullable=False)
    concept_b = Column(String, nullable=False)
    similarities = Column(JSON, nullable=False, default=dict)
    weight = Column(Float, nullable=True)  # NULL until normalized

    __table_args__ = (
        Index("ix_similarity_pairs_relation_type", "relation", "doc_type"),
        Index("ix_similarity_pairs_concept_a", "concept_a"),
    )


class DeclaredSchema(Base):
    """Field specs declared for an output relation."""

    __tablename__ = "declared_schemas"

    relation = Column(String, primary_key=True)
    doc_type = Column(String, primary_key=True)
    fields = Column(JSON, nullable=False)
    declared_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)


def get_engine(db_path: Path) -> Engine:
    """
    Create an engine for a SQLite file usable from flush threads.

    Args:
        db_path: Path to SQLite database file
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )


def init_database(db_path: Path) -> Engine:
    """
    Initialize database and create tables.

    Args:
        db_path: Path to SQLite database file

    Returns:
        Engine bound to the database
    """
    engine = get_engine(db_path)
    Base.metadata.create_all(engine)
    return engine
