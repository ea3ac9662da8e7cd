"""
Pairwise Similarity Computation.

Responsibilities:
- Compare every ordered pair of records, self-pairs included.
- Emit one per-feature similarity document per pair to the bulk writer.
- Skip (and log) a single pair whose record cannot be built.

Non-Responsibilities:
- No weighting or normalization.
- No catalog reads; the full record set is handed in.

Invariant:
For N records exactly N * N pairs are attempted. A feature appears in a
pair's document only when both records supply a value for it.
Cost is O(N^2 * F) for F declared features.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from catalogsim.errors import RecordSerializationError
from catalogsim.gateways import INSERT, BulkWriter, WriteOp
from catalogsim.logger import get_logger

from .models import FeatureModel
from .records import MetadataRecord, SimilarityPair


@dataclass(frozen=True)
class ComputeSummary:
    records: int
    pairs_written: int
    pairs_skipped: int


def build_pair(model: FeatureModel, record_a: MetadataRecord, record_b: MetadataRecord) -> SimilarityPair:
    """
    Compare two records feature by feature.

    Raises:
        RecordSerializationError: A similarity function rejected a value
    """
    pair = SimilarityPair(record_a.record_id, record_b.record_id)
    for spec in model.features:
        value_a = spec.value(record_a.values)
        if value_a is None:
            continue
        value_b = spec.value(record_b.values)
        if value_b is None:
            continue
        try:
            score = spec.function.similarity(value_a, value_b)
        except Exception as e:
            raise RecordSerializationError(
                pair.concept_a, pair.concept_b, f"feature '{spec.name}': {e}"
            ) from e
        if not 0.0 <= score <= 1.0:
            raise RecordSerializationError(
                pair.concept_a, pair.concept_b, f"feature '{spec.name}' scored {score} outside [0, 1]"
            )
        pair.similarities[spec.name] = score
    return pair


class PairwiseSimilarityComputer:
    def __init__(
        self,
        model: FeatureModel,
        writer: BulkWriter,
        relation: str,
        doc_type: str,
        workers: int = 1,
        logger=None,
    ):
        self.model = model
        self.writer = writer
        self.relation = relation
        self.doc_type = doc_type
        self.workers = max(1, workers)
        self.logger = logger or get_logger()

    def build_pair(self, record_a: MetadataRecord, record_b: MetadataRecord) -> SimilarityPair:
        return build_pair(self.model, record_a, record_b)

    def _compute_row(self, record_a: MetadataRecord, records: Sequence[MetadataRecord]) -> Tuple[int, int]:
        written = skipped = 0
        for record_b in records:
            try:
                pair = self.build_pair(record_a, record_b)
            except RecordSerializationError as e:
                skipped += 1
                self.logger.record_pair_skipped(type(e.__cause__ or e).__name__)
                self.logger.error("Skipping similarity pair", error=str(e))
                continue
            self.writer.add(WriteOp(INSERT, self.relation, self.doc_type, pair.to_document()))
            self.logger.record_pair_computed()
            written += 1
        return written, skipped

    def compute(self, records: Sequence[MetadataRecord]) -> ComputeSummary:
        """
        Emit a document for every ordered pair of records.

        The caller flushes the writer; this method only appends to it.
        """
        records = list(records)
        total = len(records)
        self.logger.info(
            "Computing pairwise feature similarity",
            records=total,
            pairs=total * total,
            features=len(self.model.features),
            workers=self.workers,
        )

        if self.workers == 1 or total < 2:
            results: List[Tuple[int, int]] = [self._compute_row(r, records) for r in records]
        else:
            with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="pairwise") as pool:
                results = list(pool.map(lambda r: self._compute_row(r, records), records))

        written = sum(w for w, _ in results)
        skipped = sum(s for _, s in results)
        return ComputeSummary(records=total, pairs_written=written, pairs_skipped=skipped)