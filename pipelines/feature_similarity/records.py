"""
Records flowing through the similarity pipeline.

Invariant:
MetadataRecord is read-only for the whole run. A SimilarityPair holds a
per-feature value only for features both records supplied.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from catalogsim.documents import pair_document, split_document
from catalogsim.schema import validate_record


@dataclass(frozen=True)
class MetadataRecord:
    record_id: str
    values: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    @classmethod
    def from_document(cls, doc: Mapping[str, Any], id_field: str) -> "MetadataRecord":
        return cls(record_id=doc[id_field].strip(), values=doc)


def records_from_documents(
    docs: Sequence[Mapping[str, Any]], id_field: str
) -> Tuple[List[MetadataRecord], List[str]]:
    """Build records from raw catalog documents.

    Returns (records, errors); documents without a usable id, and repeats of
    an id already seen, are left out.
    """
    records: List[MetadataRecord] = []
    errors: List[str] = []
    seen = set()
    for position, doc in enumerate(docs):
        problems = validate_record(doc, id_field)
        if problems:
            errors.extend(f"Document #{position}: {p}" for p in problems)
            continue
        record = MetadataRecord.from_document(doc, id_field)
        if record.record_id in seen:
            errors.append(f"Document #{position}: duplicate {id_field} '{record.record_id}'")
            continue
        seen.add(record.record_id)
        records.append(record)
    return records, errors


@dataclass
class SimilarityPair:
    concept_a: str
    concept_b: str
    similarities: Dict[str, float] = field(default_factory=dict)
    weight: Optional[float] = None

    def to_document(self) -> Dict[str, Any]:
        return pair_document(self.concept_a, self.concept_b, self.similarities, self.weight)

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "SimilarityPair":
        concept_a, concept_b, similarities, weight = split_document(doc)
        return cls(concept_a, concept_b, similarities, weight)
