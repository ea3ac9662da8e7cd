"""
Tests for database.py - SQLite catalog tables.
"""

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from catalogsim.database import (
    CatalogRecord,
    DeclaredSchema,
    SimilarityDocument,
    init_database,
)


def _session(db_path):
    return sessionmaker(bind=init_database(db_path))()


class TestDatabaseInit:
    """Test database initialization."""

    def test_init_creates_database_file(self, tmp_path):
        """Test that init_database creates the database file."""
        db_path = tmp_path / "test.db"
        assert not db_path.exists()

        init_database(db_path)

        assert db_path.exists()

    def test_init_creates_tables(self, tmp_path):
        """Test that init_database creates every catalog table."""
        db_path = tmp_path / "test.db"
        init_database(db_path)

        session = _session(db_path)
        assert session.query(CatalogRecord).count() == 0
        assert session.query(SimilarityDocument).count() == 0
        assert session.query(DeclaredSchema).count() == 0
        session.close()

    def test_init_creates_parent_directories(self, tmp_path):
        """Test that init_database creates parent directories if missing."""
        db_path = tmp_path / "nested" / "dir" / "test.db"
        assert not db_path.parent.exists()

        init_database(db_path)

        assert db_path.exists()

    def test_init_is_repeatable(self, tmp_path):
        """Test that initializing an existing database keeps its rows."""
        db_path = tmp_path / "test.db"
        init_database(db_path)
        session = _session(db_path)
        session.add(CatalogRecord(relation="catalog", record_type="RecomMetadata", payload={"id": "a"}))
        session.commit()
        session.close()

        init_database(db_path)

        session = _session(db_path)
        assert session.query(CatalogRecord).count() == 1
        session.close()


class TestTables:
    """Test row defaults and constraints."""

    @pytest.fixture
    def db_session(self, tmp_path):
        """Create a temporary database and return a session."""
        db_path = tmp_path / "test.db"
        init_database(db_path)
        session = _session(db_path)
        yield session
        session.close()

    def test_record_payload_round_trip(self, db_session):
        """Test that JSON payloads come back unchanged."""
        payload = {"id": "a", "tags": ["ocean", "wind"], "sizeMB": 12.5}
        db_session.add(CatalogRecord(relation="catalog", record_type="RecomMetadata", payload=payload))
        db_session.commit()

        record = db_session.query(CatalogRecord).one()
        assert record.payload == payload
        assert record.created_at is not None

    def test_similarity_defaults(self, db_session):
        """Test that a new pair has no similarities and no weight."""
        db_session.add(SimilarityDocument(relation="catalog", doc_type="Sim", concept_a="A", concept_b="B"))
        db_session.commit()

        pair = db_session.query(SimilarityDocument).one()
        assert pair.similarities == {}
        assert pair.weight is None

    def test_pair_requires_concepts(self, db_session):
        """Test that concept_A is required."""
        db_session.add(SimilarityDocument(relation="catalog", doc_type="Sim", concept_b="B"))
        with pytest.raises(IntegrityError):
            db_session.commit()

    def test_schema_primary_key(self, db_session):
        """Test that a relation and doc type are declared at most once."""
        db_session.add(DeclaredSchema(relation="catalog", doc_type="Sim", fields={}))
        db_session.commit()
        db_session.expunge_all()
        db_session.add(DeclaredSchema(relation="catalog", doc_type="Sim", fields={}))
        with pytest.raises(IntegrityError):
            db_session.commit()
