"""
Tests for the full similarity run on a SQLite catalog.
"""

import dataclasses

import pytest

from catalogsim.errors import ConfigurationError, StoreError
from catalogsim.gateways.sql import SqlCatalogGateway
from pipelines.feature_similarity.models import load_feature_model
from pipelines.feature_similarity.runner import FeatureSimilarityRun, RunState, build_run


def _pairs(gateway, settings):
    return {
        (doc["concept_A"], doc["concept_B"]): doc
        for _, doc in gateway.read_pairs(settings.index, settings.output_type)
    }


class FlakyGateway(SqlCatalogGateway):
    """SQLite gateway whose first bulk batch is rejected."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.calls = 0

    def write_batch(self, ops):
        self.calls += 1
        if self.calls == 1:
            raise StoreError("mapper_parsing_exception")
        super().write_batch(ops)


class BrokenGateway(SqlCatalogGateway):
    """SQLite gateway that cannot reset the output relation."""

    def delete_relation(self, relation, doc_type):
        raise StoreError("index_closed_exception")


class CorruptPairGateway(SqlCatalogGateway):
    """SQLite gateway that hands the normalizer a pair with an unreadable score."""

    def read_pairs(self, relation, doc_type, page_size=100, concept_a=None):
        yield "1", {"concept_A": "clip-a", "concept_B": "clip-b", "sizeMB_Sim": "abc"}


class TestFeatureSimilarityRun:
    """Test the compute, barrier and normalize sequence."""

    def test_end_to_end(self, loaded_catalog, settings):
        run = build_run(settings, gateway=loaded_catalog)
        report = run.execute()

        assert report.state is RunState.DONE
        assert report.model == "media"
        assert report.records == 3
        assert report.rejected_records == 0
        assert report.pairs_written == 9
        assert report.pairs_skipped == 0
        assert report.pairs_normalized == 9
        assert report.batches_failed == 0

        pairs = _pairs(loaded_catalog, settings)
        assert len(pairs) == 9

        ab = pairs[("clip-a", "clip-b")]
        assert ab["sizeMB_Sim"] == pytest.approx(0.8)
        assert ab["category_Sim"] == 1.0
        assert ab["tags_Sim"] == pytest.approx(0.25)
        assert ab["language_Sim"] == 1.0
        assert ab["title_Sim"] == pytest.approx(0.6)
        # (2 * 0.8 + 1 + 2 * 0.25 + 1 + 0.6) / 7
        assert ab["weight"] == pytest.approx(4.7 / 7)

    def test_one_sided_feature_is_omitted(self, loaded_catalog, settings):
        build_run(settings, gateway=loaded_catalog).execute()
        pairs = _pairs(loaded_catalog, settings)

        ac = pairs[("clip-a", "clip-c")]
        assert "language_Sim" not in ac
        # (2 * 0.2 + 0 + 0 + 0.2) / 7; language still counts in the denominator
        assert ac["weight"] == pytest.approx(0.6 / 7)

    def test_self_pairs(self, loaded_catalog, settings):
        build_run(settings, gateway=loaded_catalog).execute()
        pairs = _pairs(loaded_catalog, settings)

        assert pairs[("clip-a", "clip-a")]["weight"] == pytest.approx(1.0)
        assert pairs[("clip-c", "clip-c")]["weight"] == pytest.approx(6 / 7)

    def test_directional_text_overlap(self, loaded_catalog, settings):
        build_run(settings, gateway=loaded_catalog).execute()
        pairs = _pairs(loaded_catalog, settings)

        assert pairs[("clip-a", "clip-c")]["title_Sim"] == pytest.approx(1 / 5)
        assert pairs[("clip-c", "clip-a")]["title_Sim"] == pytest.approx(1 / 4)

    def test_state_history(self, loaded_catalog, settings):
        run = build_run(settings, gateway=loaded_catalog)
        run.execute()
        assert run.history == [
            RunState.IDLE,
            RunState.SCHEMA_RESET,
            RunState.COMPUTING,
            RunState.BARRIER,
            RunState.NORMALIZING,
            RunState.DONE,
        ]

    def test_rerun_rebuilds_output(self, loaded_catalog, settings):
        first = build_run(settings, gateway=loaded_catalog).execute()
        before = _pairs(loaded_catalog, settings)
        second = build_run(settings, gateway=loaded_catalog).execute()
        after = _pairs(loaded_catalog, settings)

        assert first.pairs_written == second.pairs_written == 9
        assert len(after) == 9
        assert {k: v["weight"] for k, v in after.items()} == {k: v["weight"] for k, v in before.items()}

    def test_run_executes_once(self, loaded_catalog, settings):
        run = build_run(settings, gateway=loaded_catalog)
        run.execute()
        with pytest.raises(RuntimeError):
            run.execute()

    def test_schema_declared(self, loaded_catalog, settings):
        build_run(settings, gateway=loaded_catalog).execute()
        schema = loaded_catalog.declared_schema(settings.index, settings.output_type)
        assert schema == {"concept_A": "keyword", "concept_B": "keyword", "weight": "float"}

    def test_empty_catalog(self, sql_gateway, settings):
        report = build_run(settings, gateway=sql_gateway).execute()
        assert report.state is RunState.DONE
        assert report.pairs_written == 0
        assert report.pairs_normalized == 0

    def test_invalid_records_rejected(self, sql_gateway, settings, media_records):
        sql_gateway.load_records(
            settings.index, settings.record_type, media_records[:2] + [{"sizeMB": 5}]
        )
        report = build_run(settings, gateway=sql_gateway).execute()
        assert report.records == 2
        assert report.rejected_records == 1
        assert report.pairs_written == 4

    def test_failed_batch_does_not_stop_run(self, settings, media_records, test_logger):
        gateway = FlakyGateway(settings.db_path)
        try:
            gateway.load_records(settings.index, settings.record_type, media_records)
            run = FeatureSimilarityRun(
                settings, gateway, load_feature_model("media"), retry_base_delay=0
            )
            report = run.execute()
            stored = _pairs(gateway, settings)
        finally:
            gateway.close()

        assert report.state is RunState.DONE
        assert report.batches_failed == 1
        assert report.pairs_written == 9
        # batch_size 3: the rejected batch lost three pairs
        assert len(stored) == 6
        assert report.pairs_normalized == 6
        assert all("weight" in doc for doc in stored.values())
        assert test_logger.get_metrics()["batches_failed"] == 1

    def test_store_error_fails_run(self, settings):
        gateway = BrokenGateway(settings.db_path)
        run = FeatureSimilarityRun(settings, gateway, load_feature_model("media"))
        try:
            with pytest.raises(StoreError):
                run.execute()
        finally:
            gateway.close()
        assert run.state is RunState.FAIL
        assert run.history == [RunState.IDLE, RunState.SCHEMA_RESET, RunState.FAIL]
        assert isinstance(run.error, StoreError)

    def test_unexpected_error_fails_run(self, settings, media_records, test_logger):
        gateway = CorruptPairGateway(settings.db_path)
        try:
            gateway.load_records(settings.index, settings.record_type, media_records)
            run = FeatureSimilarityRun(settings, gateway, load_feature_model("media"))
            with pytest.raises(ValueError):
                run.execute()
        finally:
            gateway.close()
        assert run.state is RunState.FAIL
        assert run.history[-2:] == [RunState.NORMALIZING, RunState.FAIL]
        assert isinstance(run.error, ValueError)

    def test_duplicate_record_ids_rejected(self, sql_gateway, settings, media_records):
        duplicate = dict(media_records[1], id=media_records[0]["id"])
        sql_gateway.load_records(settings.index, settings.record_type, media_records + [duplicate])
        report = build_run(settings, gateway=sql_gateway).execute()

        assert report.records == 3
        assert report.rejected_records == 1
        assert report.pairs_written == 9
        assert len(_pairs(sql_gateway, settings)) == 9


class TestBuildRun:
    """Test wiring a run from settings."""

    def test_unknown_model_aborts_before_catalog_access(self, settings):
        bad = dataclasses.replace(settings, feature_model="nope")
        with pytest.raises(ConfigurationError):
            build_run(bad)
        assert not settings.db_path.exists()

    def test_builds_gateway_from_settings(self, settings):
        run = build_run(settings)
        try:
            assert isinstance(run.gateway, SqlCatalogGateway)
            assert run.model.name == "media"
            assert run.state is RunState.IDLE
        finally:
            run.gateway.close()
