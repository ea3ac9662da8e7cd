"""
Tests for the SQLite catalog gateway.
"""

import pytest

from catalogsim.documents import OUTPUT_FIELDS, pair_document
from catalogsim.errors import StoreError
from catalogsim.gateways import INSERT, UPDATE, WriteOp


def _insert(a, b, sims, doc_type="Sim"):
    return WriteOp(INSERT, "catalog", doc_type, pair_document(a, b, sims))


class TestReads:
    """Test paginated reads."""

    def test_read_all_pages_through_records(self, loaded_catalog, settings, media_records):
        docs = list(loaded_catalog.read_all(settings.index, settings.record_type, page_size=2))
        assert docs == media_records

    def test_read_all_filters_by_type(self, sql_gateway):
        sql_gateway.load_records("catalog", "RecomMetadata", [{"id": "a"}])
        sql_gateway.load_records("catalog", "Other", [{"id": "b"}])
        sql_gateway.load_records("archive", "RecomMetadata", [{"id": "c"}])
        assert list(sql_gateway.read_all("catalog", "RecomMetadata")) == [{"id": "a"}]

    def test_read_pairs_filter_by_concept(self, sql_gateway):
        sql_gateway.write_batch([
            _insert("A", "A", {"x": 1.0}),
            _insert("A", "B", {"x": 0.5}),
            _insert("B", "A", {"x": 0.5}),
        ])
        pairs = list(sql_gateway.read_pairs("catalog", "Sim", page_size=1, concept_a="A"))
        assert [(doc["concept_A"], doc["concept_B"]) for _, doc in pairs] == [("A", "A"), ("A", "B")]
        assert pairs[1][1] == {"concept_A": "A", "concept_B": "B", "x_Sim": 0.5}


class TestWrites:
    """Test bulk inserts and weight updates."""

    def test_update_sets_weight_only(self, sql_gateway):
        sql_gateway.write_batch([_insert("A", "B", {"x": 0.5, "y": 1.0})])
        ((doc_id, _),) = sql_gateway.read_pairs("catalog", "Sim")

        sql_gateway.write_batch([WriteOp(UPDATE, "catalog", "Sim", {"weight": 0.75}, doc_id=doc_id)])
        ((_, doc),) = sql_gateway.read_pairs("catalog", "Sim")
        assert doc == {"concept_A": "A", "concept_B": "B", "x_Sim": 0.5, "y_Sim": 1.0, "weight": 0.75}

    def test_unknown_field_rejected(self, sql_gateway):
        op = WriteOp(INSERT, "catalog", "Sim", {"concept_A": "A", "concept_B": "B", "color": "red"})
        with pytest.raises(StoreError):
            sql_gateway.write_batch([op])

    def test_invalid_document_id(self, sql_gateway):
        with pytest.raises(StoreError):
            sql_gateway.write_batch([WriteOp(UPDATE, "catalog", "Sim", {"weight": 1.0}, doc_id="abc")])

    def test_bulk_writer_round_trip(self, sql_gateway):
        with sql_gateway.bulk_writer(batch_size=2) as writer:
            for n in range(5):
                writer.add(_insert("A", str(n), {"x": n / 10}))
        assert len(list(sql_gateway.read_pairs("catalog", "Sim"))) == 5


class TestSchemaAndReset:
    """Test schema declaration and relation reset."""

    def test_declare_schema_is_idempotent(self, sql_gateway):
        sql_gateway.declare_schema("catalog", "Sim", OUTPUT_FIELDS)
        sql_gateway.declare_schema("catalog", "Sim", OUTPUT_FIELDS)
        assert sql_gateway.declared_schema("catalog", "Sim") == OUTPUT_FIELDS

    def test_delete_relation_only_touches_doc_type(self, sql_gateway):
        sql_gateway.declare_schema("catalog", "Sim", OUTPUT_FIELDS)
        sql_gateway.write_batch([_insert("A", "B", {}), _insert("A", "B", {}, doc_type="Other")])

        sql_gateway.delete_relation("catalog", "Sim")

        assert list(sql_gateway.read_pairs("catalog", "Sim")) == []
        assert len(list(sql_gateway.read_pairs("catalog", "Other"))) == 1
        assert sql_gateway.declared_schema("catalog", "Sim") is None

    def test_delete_missing_relation(self, sql_gateway):
        sql_gateway.delete_relation("catalog", "Sim")

    def test_clear_records(self, loaded_catalog, settings):
        assert loaded_catalog.clear_records(settings.index, settings.record_type) == 3
        assert list(loaded_catalog.read_all(settings.index, settings.record_type)) == []

    def test_load_nothing(self, sql_gateway):
        assert sql_gateway.load_records("catalog", "RecomMetadata", []) == 0
