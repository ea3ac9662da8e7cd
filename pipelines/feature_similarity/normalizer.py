"""
Weight Normalization.

Responsibilities:
- Aggregate a pair's per-feature similarities into one weighted score.
- Write the score back to the pair as its "weight" field, nothing else.

Non-Responsibilities:
- No similarity computation.
- No barrier handling (the caller flushes and makes writes visible first).

Invariant:
aggregate = sum(weight(f) * sim(f) for present f) / total declared weight,
and 0 when the total declared weight is 0. Features missing from a pair
count in the denominator only.
"""

from typing import Iterable, Mapping, Tuple

from catalogsim.documents import WEIGHT
from catalogsim.gateways import UPDATE, BulkWriter, WriteOp
from catalogsim.logger import get_logger

from .models import FeatureModel
from .records import SimilarityPair


class WeightNormalizer:
    def __init__(self, model: FeatureModel, writer: BulkWriter, relation: str, doc_type: str, logger=None):
        self.model = model
        self.writer = writer
        self.relation = relation
        self.doc_type = doc_type
        self.logger = logger or get_logger()
        self.weights = dict(model.weights)
        self.total_weight = sum(self.weights.values())

    def aggregate(self, similarities: Mapping[str, float]) -> float:
        if self.total_weight == 0:
            return 0.0
        weighted_sum = sum(
            weight * similarities[feature]
            for feature, weight in self.weights.items()
            if feature in similarities
        )
        return weighted_sum / self.total_weight

    def normalize(self, documents: Iterable[Tuple[str, Mapping]]) -> int:
        """
        Queue a weight update for every stored pair document.

        Args:
            documents: (document id, pair document) as read from the catalog

        Returns:
            Number of pairs normalized
        """
        if self.total_weight == 0:
            self.logger.warning("Total feature weight is 0; every aggregate will be 0", model=self.model.name)

        count = 0
        for doc_id, doc in documents:
            pair = SimilarityPair.from_document(doc)
            weight = self.aggregate(pair.similarities)
            self.writer.add(WriteOp(UPDATE, self.relation, self.doc_type, {WEIGHT: weight}, doc_id=doc_id))
            count += 1

        self.logger.record_pairs_normalized(count)
        self.logger.info("Normalized pair weights", pairs=count, total_weight=self.total_weight)
        return count
