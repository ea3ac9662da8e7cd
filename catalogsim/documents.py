"""
Document layout of similarity pairs as stored in the catalog.

    {"concept_A": "<id>", "concept_B": "<id>", "<feature>_Sim": 0.8, ..., "weight": 0.7}
"""

from typing import Any, Dict, Mapping, Optional, Tuple

CONCEPT_A = "concept_A"
CONCEPT_B = "concept_B"
WEIGHT = "weight"
SIM_SUFFIX = "_Sim"

# Field specs declared for the output relation
OUTPUT_FIELDS = {
    CONCEPT_A: "keyword",
    CONCEPT_B: "keyword",
    WEIGHT: "float",
}


def sim_key(feature: str) -> str:
    return f"{feature}{SIM_SUFFIX}"


def pair_document(
    concept_a: str,
    concept_b: str,
    similarities: Mapping[str, float],
    weight: Optional[float] = None,
) -> Dict[str, Any]:
    doc: Dict[str, Any] = {CONCEPT_A: concept_a, CONCEPT_B: concept_b}
    for feature, value in similarities.items():
        doc[sim_key(feature)] = value
    if weight is not None:
        doc[WEIGHT] = weight
    return doc


def split_document(doc: Mapping[str, Any]) -> Tuple[str, str, Dict[str, float], Optional[float]]:
    """Inverse of pair_document: (concept_a, concept_b, similarities, weight)."""
    similarities = {
        key[: -len(SIM_SUFFIX)]: float(value)
        for key, value in doc.items()
        if key.endswith(SIM_SUFFIX) and value is not None
    }
    weight = doc.get(WEIGHT)
    return (
        doc.get(CONCEPT_A),
        doc.get(CONCEPT_B),
        similarities,
        float(weight) if weight is not None else None,
    )
