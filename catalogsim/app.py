import argparse
import dataclasses
import json
from pathlib import Path

from . import __version__
from .config import BACKENDS, Settings, load_settings
from .env import load_env
from .errors import CatalogSimError, ConfigurationError
from .gateways import make_gateway
from .logger import get_logger
from .schema import validate_records


def _settings(args: argparse.Namespace) -> Settings:
    """Environment settings with CLI flags applied on top."""
    settings = load_settings()
    overrides = {
        "backend": args.backend,
        "db_path": Path(args.db) if args.db else None,
        "es_url": args.es_url,
        "index": args.index,
        "feature_model": args.model,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}
    return dataclasses.replace(settings, **overrides).validate()


def _logger(settings: Settings):
    return get_logger(level=settings.log_level, log_dir=settings.log_dir)


def _read_json_records(input_path: Path) -> list:
    if not input_path.exists():
        raise SystemExit(f"Input file not found: {input_path}")
    with input_path.open("r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise SystemExit(f"Input is not valid JSON: {e}")
    if isinstance(data, dict):
        data = data.get("records", [])
    if not isinstance(data, list):
        raise SystemExit("Input must be a JSON array of records (or an object with a 'records' array)")
    return data


def cmd_run(args: argparse.Namespace) -> None:
    from pipelines.feature_similarity.runner import build_run

    settings = _settings(args)
    logger = _logger(settings)
    logger.reset_metrics()
    run = build_run(settings, logger=logger)
    try:
        report = run.execute()
    finally:
        run.gateway.close()
    logger.log_metrics_summary()

    print(f"Model: {report.model}")
    print(f"State: {report.state.value}")
    print(
        f"Done. records={report.records} rejected={report.rejected_records} "
        f"pairs={report.pairs_written} skipped={report.pairs_skipped} "
        f"normalized={report.pairs_normalized} failed_batches={report.batches_failed} "
        f"seconds={report.elapsed_seconds}"
    )


def cmd_similar(args: argparse.Namespace) -> None:
    from pipelines.recommendation.similar_items import similar_items

    settings = _settings(args)
    _logger(settings)
    with make_gateway(settings) as gateway:
        items = similar_items(gateway, settings, args.id, top_k=args.top, include_self=args.include_self)
    if not items:
        print(f"No similar items for {args.id}. Has a run completed?")
        return
    print(f"Items similar to {args.id}:\n")
    for rank, item in enumerate(items, 1):
        print(f"{rank:>3}. {item.record_id}  weight={item.weight:.3f}")
        if args.verbose:
            for feature, value in sorted(item.similarities.items()):
                print(f"       {feature}: {value:.3f}")


def cmd_models(args: argparse.Namespace) -> None:
    from pipelines.feature_similarity.models import FEATURE_MODELS, load_feature_model

    names = [args.model] if args.model else sorted(FEATURE_MODELS)
    for name in names:
        model = load_feature_model(name)
        print(f"{model.name} (total weight {model.total_weight:g})")
        for feature in model.describe():
            fields = ", ".join(feature["fields"])
            print(f"  {feature['name']}: {feature['type']} weight={feature['weight']:g} fields=[{fields}]")
        print()


def cmd_load(args: argparse.Namespace) -> None:
    settings = _settings(args)
    if settings.backend != "sql":
        raise SystemExit("The load command only seeds the sql backend.")
    _logger(settings)
    docs = _read_json_records(Path(args.input))
    valid, errors = validate_records(docs, settings.id_field)
    for e in errors:
        print(f" - {e}")
    if errors and not args.skip_invalid:
        raise SystemExit(f"{len(errors)} invalid records. Fix them or pass --skip-invalid.")

    from .gateways.sql import SqlCatalogGateway

    with SqlCatalogGateway(settings.db_path) as gateway:
        if args.replace:
            removed = gateway.clear_records(settings.index, settings.record_type)
            print(f"Removed {removed} existing records.")
        loaded = gateway.load_records(settings.index, settings.record_type, valid)
    print(f"Loaded {loaded} records into {settings.db_path} ({settings.index}/{settings.record_type}).")


def cmd_validate(args: argparse.Namespace) -> None:
    settings = _settings(args)
    docs = _read_json_records(Path(args.input))
    valid, errors = validate_records(docs, settings.id_field)
    if errors:
        print("Invalid:")
        for e in errors:
            print(f" - {e}")
        raise SystemExit(2)
    print(f"Valid ({len(valid)} records)")


def _add_catalog_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--backend", choices=BACKENDS, help="Catalog backend (or set CATALOGSIM_BACKEND)")
    parser.add_argument("--db", help="SQLite catalog path for the sql backend (or set CATALOGSIM_DB_PATH)")
    parser.add_argument("--es-url", help="Elasticsearch URL for the elastic backend (or set CATALOGSIM_ES_URL)")
    parser.add_argument("--index", help="Catalog relation holding records and output (or set CATALOGSIM_INDEX)")
    parser.add_argument("--model", help="Feature model name or file:<path> (or set CATALOGSIM_FEATURE_MODEL)")


def main():
    # Load .env if present (CATALOGSIM_* settings)
    load_env()
    parser = argparse.ArgumentParser(prog="catalogsim", description="Feature-based metadata similarity")
    parser.add_argument("--version", action="store_true", help="Show version")

    subparsers = parser.add_subparsers(dest="command")
    run = subparsers.add_parser("run", help="Rebuild the pairwise similarity relation")
    _add_catalog_args(run)
    run.set_defaults(func=cmd_run)

    sim = subparsers.add_parser("similar", help="List the items most similar to a record")
    _add_catalog_args(sim)
    sim.add_argument("--id", required=True, help="Record identifier")
    sim.add_argument("--top", type=int, default=10, help="Number of items (default: 10)")
    sim.add_argument("--include-self", action="store_true", help="Keep the record's own self-pair")
    sim.add_argument("--verbose", action="store_true", help="Show per-feature similarities")
    sim.set_defaults(func=cmd_similar)

    mdl = subparsers.add_parser("models", help="Show feature models, their features and weights")
    mdl.add_argument("--model", help="Only this model (name or file:<path>)")
    mdl.set_defaults(func=cmd_models)

    lod = subparsers.add_parser("load", help="Load a JSON array of records into the SQLite catalog")
    _add_catalog_args(lod)
    lod.add_argument("--input", required=True, help="Path to records JSON")
    lod.add_argument("--replace", action="store_true", help="Delete existing records of the type first")
    lod.add_argument("--skip-invalid", action="store_true", help="Load valid records even if some are invalid")
    lod.set_defaults(func=cmd_load)

    val = subparsers.add_parser("validate", help="Validate a records JSON file")
    _add_catalog_args(val)
    val.add_argument("--input", required=True, help="Path to records JSON")
    val.set_defaults(func=cmd_validate)

    args = parser.parse_args()

    if args.version:
        print(__version__)
        return

    if hasattr(args, "func"):
        try:
            args.func(args)
        except ConfigurationError as e:
            raise SystemExit(f"Configuration error: {e}")
        except CatalogSimError as e:
            raise SystemExit(f"Run failed: {e}")
        return

    parser.print_help()


if __name__ == "__main__":
    main()
