#!/usr/bin/env python3
"""
Validate a finished similarity relation in the SQLite catalog.

Checks that every ordered pair of catalog records is present (N * N pairs,
less any the run skipped) and that every pair carries a weight in [0, 1].

Usage:
    python scripts/validate_similarity.py --db data/catalog.db --skipped 0
"""

import argparse
from pathlib import Path
import sys

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from catalogsim.config import Settings
from catalogsim.gateways.sql import SqlCatalogGateway
from pipelines.feature_similarity.records import SimilarityPair, records_from_documents


def validate(db_path: Path, settings: Settings, skipped: int = 0) -> bool:
    """
    Compare catalog records and similarity pairs.

    Returns True if they are consistent, False otherwise.
    """
    with SqlCatalogGateway(db_path) as gateway:
        print(f"Reading catalog records from {db_path}...")
        records, _ = records_from_documents(
            list(gateway.read_all(settings.index, settings.record_type)), settings.id_field
        )
        ids = [r.record_id for r in records]
        print(f"  Records: {len(ids)}")

        pairs = [
            SimilarityPair.from_document(doc)
            for _, doc in gateway.read_pairs(settings.index, settings.output_type)
        ]
        print(f"  Pairs:   {len(pairs)}")

    expected = len(ids) * len(ids) - skipped
    if len(pairs) != expected:
        print(f"\n❌ COUNT MISMATCH: expected {expected} pairs, found {len(pairs)}")
        return False
    print(f"\n✅ Pair count matches: {expected}")

    known = set(ids)
    unweighted = [p for p in pairs if p.weight is None]
    out_of_range = [p for p in pairs if p.weight is not None and not 0.0 <= p.weight <= 1.0]
    unknown = [p for p in pairs if p.concept_a not in known or p.concept_b not in known]

    if unweighted:
        print(f"\n❌ NOT NORMALIZED: {len(unweighted)} pairs without weight")
        for p in unweighted[:5]:
            print(f"   - ({p.concept_a}, {p.concept_b})")
    if out_of_range:
        print(f"\n❌ OUT OF RANGE: {len(out_of_range)} weights outside [0, 1]")
        for p in out_of_range[:5]:
            print(f"   - ({p.concept_a}, {p.concept_b}) weight={p.weight}")
    if unknown:
        print(f"\n❌ UNKNOWN RECORDS: {len(unknown)} pairs reference ids not in the catalog")

    if not unweighted and not out_of_range and not unknown:
        print("✅ All pairs validated successfully!")
        print("   - Every pair carries a weight in [0, 1]")
        print("   - Every pair references catalog records")
        return True
    return False


def main():
    defaults = Settings()
    parser = argparse.ArgumentParser(description="Validate a similarity relation")
    parser.add_argument("--db", type=Path, default=defaults.db_path,
                       help="Path to SQLite database file")
    parser.add_argument("--index", default=defaults.index, help="Catalog relation name")
    parser.add_argument("--record-type", default=defaults.record_type, help="Input record type")
    parser.add_argument("--output-type", default=defaults.output_type, help="Similarity relation type")
    parser.add_argument("--id-field", default=defaults.id_field, help="Record identifier field")
    parser.add_argument("--skipped", type=int, default=0, help="Pairs the run reported as skipped")

    args = parser.parse_args()

    if not args.db.exists():
        print(f"❌ Database file not found: {args.db}")
        sys.exit(1)

    settings = Settings(
        db_path=args.db,
        index=args.index,
        record_type=args.record_type,
        output_type=args.output_type,
        id_field=args.id_field,
    )
    success = validate(args.db, settings, skipped=args.skipped)
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
