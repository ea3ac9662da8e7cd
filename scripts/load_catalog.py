#!/usr/bin/env python3
"""
Load metadata records from a JSON file into the SQLite catalog.

Usage:
    python scripts/load_catalog.py --json data/podaac_metadata.json --db data/catalog.db
"""

import argparse
import json
from pathlib import Path
import sys

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from catalogsim.config import Settings
from catalogsim.gateways.sql import SqlCatalogGateway
from catalogsim.schema import validate_records


def load(json_path: Path, db_path: Path, index: str, record_type: str, id_field: str, dry_run: bool = False):
    """
    Load records from JSON into the catalog.

    Args:
        json_path: Path to a JSON array of records
        db_path: Path to SQLite database file
        dry_run: If True, don't write to database
    """
    print(f"Loading records from {json_path}...")
    with open(json_path) as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("records", [])

    valid, errors = validate_records(data, id_field)
    print(f"Found {len(data)} records ({len(valid)} valid, {len(errors)} invalid)")
    for error in errors[:5]:
        print(f"⚠️  {error}")
    if len(errors) > 5:
        print(f"  ... and {len(errors) - 5} more")

    if dry_run:
        print("\n[DRY RUN] Would load the following records:")
        for i, doc in enumerate(valid[:5], 1):
            print(f"  {i}. {doc[id_field]}")
        if len(valid) > 5:
            print(f"  ... and {len(valid) - 5} more")
        return True

    print(f"\nInitializing catalog at {db_path}...")
    with SqlCatalogGateway(db_path) as gateway:
        loaded = gateway.load_records(index, record_type, valid)

    print("\n✅ Load complete!")
    print(f"   Loaded:  {loaded}")
    print(f"   Skipped: {len(errors)}")
    return True


def main():
    defaults = Settings()
    parser = argparse.ArgumentParser(description="Load JSON metadata records into the SQLite catalog")
    parser.add_argument("--json", type=Path, required=True,
                       help="Path to JSON records file")
    parser.add_argument("--db", type=Path, default=defaults.db_path,
                       help="Path to SQLite database file")
    parser.add_argument("--index", default=defaults.index, help="Catalog relation name")
    parser.add_argument("--record-type", default=defaults.record_type, help="Record type of the loaded records")
    parser.add_argument("--id-field", default=defaults.id_field, help="Record identifier field")
    parser.add_argument("--dry-run", action="store_true",
                       help="Show what would be loaded without writing")

    args = parser.parse_args()

    if not args.json.exists():
        print(f"❌ JSON file not found: {args.json}")
        sys.exit(1)

    load(args.json, args.db, args.index, args.record_type, args.id_field, dry_run=args.dry_run)


if __name__ == "__main__":
    main()
