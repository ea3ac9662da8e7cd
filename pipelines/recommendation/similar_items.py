"""
Similar Items Lookup.

Responsibilities:
- Answer "items similar to X" from the normalized similarity relation.
- Rank by aggregate weight, ties broken by item id.

Non-Responsibilities:
- No similarity computation or normalization.

Invariant:
Only pairs with concept_A == X and an attached weight are returned.
"""

from dataclasses import dataclass, field
from typing import Dict, List

from catalogsim.config import Settings
from catalogsim.gateways import CatalogGateway

from pipelines.feature_similarity.records import SimilarityPair


@dataclass(frozen=True)
class SimilarItem:
    record_id: str
    weight: float
    similarities: Dict[str, float] = field(default_factory=dict)


def similar_items(
    gateway: CatalogGateway,
    settings: Settings,
    record_id: str,
    top_k: int = 10,
    include_self: bool = False,
) -> List[SimilarItem]:
    if top_k < 1:
        return []

    candidates: List[SimilarItem] = []
    for _, doc in gateway.read_pairs(
        settings.index, settings.output_type, page_size=settings.page_size, concept_a=record_id
    ):
        pair = SimilarityPair.from_document(doc)
        if pair.concept_a != record_id or pair.weight is None:
            continue
        if pair.concept_b == record_id and not include_self:
            continue
        candidates.append(SimilarItem(pair.concept_b, pair.weight, pair.similarities))

    candidates.sort(key=lambda item: (-item.weight, item.record_id))
    return candidates[:top_k]
