"""
Feature Similarity Run.

Responsibilities:
- Drive one full rebuild: reset output schema, compute all pairs, wait for
  the writes to become visible, normalize weights.
- Track the run state and report what happened.

Non-Responsibilities:
- No similarity math.
- No storage specifics (everything goes through a CatalogGateway).

Invariant:
Normalization never starts before every computed pair has been flushed and
the catalog's visibility barrier has returned. Every run is a full,
idempotent rebuild of the output relation.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from catalogsim.config import Settings
from catalogsim.documents import OUTPUT_FIELDS
from catalogsim.gateways import CatalogGateway, make_gateway
from catalogsim.logger import get_logger

from .computer import PairwiseSimilarityComputer
from .models import FeatureModel, load_feature_model
from .normalizer import WeightNormalizer
from .records import MetadataRecord, records_from_documents


class RunState(str, Enum):
    IDLE = "idle"
    SCHEMA_RESET = "schema_reset"
    COMPUTING = "computing"
    BARRIER = "barrier"
    NORMALIZING = "normalizing"
    DONE = "done"
    FAIL = "fail"


@dataclass(frozen=True)
class RunReport:
    model: str
    state: RunState
    records: int
    rejected_records: int
    pairs_written: int
    pairs_skipped: int
    pairs_normalized: int
    batches_failed: int
    elapsed_seconds: float


class FeatureSimilarityRun:
    """One execution of the compute / barrier / normalize pipeline."""

    def __init__(
        self,
        settings: Settings,
        gateway: CatalogGateway,
        model: FeatureModel,
        logger=None,
        retry_base_delay: float = 0.5,
    ):
        self.settings = settings
        self.gateway = gateway
        self.model = model
        self.logger = logger or get_logger()
        self.retry_base_delay = retry_base_delay
        self.state = RunState.IDLE
        self.history: List[RunState] = [RunState.IDLE]
        self.error: Optional[Exception] = None

    def _transition(self, state: RunState) -> None:
        self.logger.debug("Run state change", previous=self.state.value, state=state.value)
        self.state = state
        self.history.append(state)

    def _writer(self):
        return self.gateway.bulk_writer(
            batch_size=self.settings.batch_size,
            concurrent_requests=self.settings.concurrent_requests,
            base_delay=self.retry_base_delay,
            logger=self.logger,
        )

    def _read_records(self) -> Tuple[List[MetadataRecord], int]:
        docs = list(
            self.gateway.read_all(
                self.settings.index, self.settings.record_type, page_size=self.settings.page_size
            )
        )
        records, errors = records_from_documents(docs, self.settings.id_field)
        for error in errors:
            self.logger.warning("Rejected catalog record", error=error)
        self.logger.record_records_read(len(records))
        return records, len(errors)

    def execute(self) -> RunReport:
        """
        Run the pipeline to completion.

        Raises:
            ConfigurationError, StoreError: Fatal catalog errors
            Exception: Anything else, such as a corrupt stored pair. Every
                error ends the run in FAIL before it propagates
        """
        if self.state is not RunState.IDLE:
            raise RuntimeError(f"Run already executed (state: {self.state.value})")

        s = self.settings
        started = time.monotonic()
        self.logger.info("Feature based similarity starts", model=self.model.name, index=s.index)

        try:
            phase = time.monotonic()
            self._transition(RunState.SCHEMA_RESET)
            self.gateway.delete_relation(s.index, s.output_type)
            self.gateway.declare_schema(s.index, s.output_type, OUTPUT_FIELDS)
            self.logger.record_phase(RunState.SCHEMA_RESET.value, time.monotonic() - phase)

            phase = time.monotonic()
            self._transition(RunState.COMPUTING)
            records, rejected = self._read_records()
            writer = self._writer()
            try:
                computer = PairwiseSimilarityComputer(
                    self.model, writer, s.index, s.output_type, workers=s.workers, logger=self.logger
                )
                summary = computer.compute(records)
            finally:
                compute_stats = writer.close()
            self.logger.record_phase(RunState.COMPUTING.value, time.monotonic() - phase)

            self._transition(RunState.BARRIER)
            self.gateway.make_visible(s.index)

            phase = time.monotonic()
            self._transition(RunState.NORMALIZING)
            writer = self._writer()
            try:
                normalizer = WeightNormalizer(self.model, writer, s.index, s.output_type, logger=self.logger)
                normalized = normalizer.normalize(
                    self.gateway.read_pairs(s.index, s.output_type, page_size=s.page_size)
                )
            finally:
                normalize_stats = writer.close()
            self.gateway.make_visible(s.index)
            self.logger.record_phase(RunState.NORMALIZING.value, time.monotonic() - phase)

            self._transition(RunState.DONE)
        except Exception as e:
            self.error = e
            self._transition(RunState.FAIL)
            self.logger.critical("Feature based similarity failed", error=str(e), error_type=type(e).__name__)
            raise

        elapsed = time.monotonic() - started
        self.logger.info("Feature based similarity ends", seconds=round(elapsed, 3))
        return RunReport(
            model=self.model.name,
            state=self.state,
            records=summary.records,
            rejected_records=rejected,
            pairs_written=summary.pairs_written,
            pairs_skipped=summary.pairs_skipped,
            pairs_normalized=normalized,
            batches_failed=compute_stats.batches_failed + normalize_stats.batches_failed,
            elapsed_seconds=round(elapsed, 3),
        )


def build_run(settings: Settings, gateway: Optional[CatalogGateway] = None, logger=None) -> FeatureSimilarityRun:
    """
    Wire a run from settings.

    The feature model is resolved first so that a ConfigurationError aborts
    before the catalog is touched.
    """
    model = load_feature_model(settings.feature_model)
    if gateway is None:
        gateway = make_gateway(settings, logger=logger)
    return FeatureSimilarityRun(settings, gateway, model, logger=logger)

