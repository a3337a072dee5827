"""
forest-reconcile CLI

Command-line interface for running one reconciliation batch and for
inspecting or resetting the geocode cache.
"""

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from forest_reconcile.cache.geocode_cache import GeocodeCache
from forest_reconcile.cache.kv_store import SQLiteKeyValueStore
from forest_reconcile.config_manager import ConfigManager
from forest_reconcile.exceptions import ReconcileError
from forest_reconcile.models import ReconciliationInput
from forest_reconcile.pipeline import ReconciliationPipeline

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="forest-reconcile",
        description="Reconcile fire-ban, facility and closure data into canonical forest records",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Reconcile a scraped snapshot
  %(prog)s scraped.json --output snapshot.json

  # Use custom configuration and a smaller lookup budget
  %(prog)s scraped.json --config reconcile.yaml --max-lookups 5

  # Write the review queue of unresolved forests
  %(prog)s scraped.json --failures-csv review.csv

  # Show cache statistics
  %(prog)s --stats
        """
    )

    # Input/Output options
    parser.add_argument(
        'input_file',
        nargs='?',
        type=Path,
        help='Input JSON produced by the scraping job'
    )
    parser.add_argument(
        '-o', '--output',
        type=Path,
        help='Output snapshot JSON (default: <output_dir>/forests_snapshot.json)'
    )
    parser.add_argument(
        '--failures-csv',
        type=Path,
        help='Output CSV listing forests without exact coordinates'
    )

    # Configuration options
    parser.add_argument(
        '-c', '--config',
        type=Path,
        help='Configuration YAML file (default: use built-in config)'
    )
    parser.add_argument(
        '--cache-db',
        type=Path,
        help='Geocode cache database path (overrides config)'
    )
    parser.add_argument(
        '--max-lookups',
        type=int,
        help='Maximum new provider lookups for this run (overrides config)'
    )
    parser.add_argument(
        '--workers',
        type=int,
        help='Forest geocoding threads (overrides config)'
    )
    parser.add_argument(
        '--init-config',
        type=Path,
        metavar='OUTPUT',
        help='Write an example configuration file and exit'
    )

    # Cache operations
    parser.add_argument(
        '--stats',
        action='store_true',
        help='Show cache statistics and exit'
    )
    parser.add_argument(
        '--clear-cache',
        action='store_true',
        help='Delete and recreate the geocode cache (WARNING: destructive!)'
    )
    parser.add_argument(
        '-y', '--yes',
        action='store_true',
        help='Do not ask for confirmation before clearing the cache'
    )

    # Output options
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Verbose output'
    )
    parser.add_argument(
        '-q', '--quiet',
        action='store_true',
        help='Minimal output (errors only)'
    )
    parser.add_argument(
        '--no-progress',
        action='store_true',
        help='Disable progress indicators'
    )
    return parser


def configure_logging(verbose: bool, quiet: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose, args.quiet)

    if args.init_config:
        ConfigManager.save_example_config(args.init_config)
        if not args.quiet:
            print(f"✅ Wrote example configuration to {args.init_config}")
        return 0

    if not args.input_file and not args.stats and not args.clear_cache:
        parser.error("input_file is required unless using --stats, --clear-cache or --init-config")

    try:
        return run(args)
    except ReconcileError as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        return 1


def run(args: argparse.Namespace) -> int:
    try:
        config = ConfigManager(args.config).load()
    except FileNotFoundError as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        return 1

    if args.cache_db:
        config.cache_db_path = args.cache_db
    if args.max_lookups is not None:
        if args.max_lookups < 0:
            print("❌ Error: --max-lookups must be >= 0", file=sys.stderr)
            return 1
        config.geocoding = replace(config.geocoding, max_new_lookups_per_run=args.max_lookups)
    if args.workers is not None:
        config.geocoding = replace(config.geocoding, forest_workers=max(1, args.workers))

    # Handle cache operations
    if args.clear_cache:
        if not args.quiet and not args.yes:
            print("⚠️  WARNING: This will delete all cached geocodes!")
            response = input("Are you sure? (yes/no): ")
            if response.lower() != 'yes':
                print("Aborted.")
                return 0
        store = SQLiteKeyValueStore(config.cache_db_path)
        store.reset()
        if not args.quiet:
            print(f"✅ Cache cleared at {config.cache_db_path}")
        return 0

    if args.stats:
        show_statistics(GeocodeCache(SQLiteKeyValueStore(config.cache_db_path)))
        return 0

    # Validate input file
    if not args.input_file.exists():
        print(f"❌ Error: Input file not found: {args.input_file}", file=sys.stderr)
        return 1

    if not args.quiet:
        print(f"📊 Loading scraped data from {args.input_file}...")
    try:
        with open(args.input_file, 'r') as f:
            inputs = ReconciliationInput.model_validate(json.load(f))
    except (json.JSONDecodeError, ValidationError) as e:
        print(f"❌ Error loading input: {e}", file=sys.stderr)
        return 1

    if not args.quiet:
        print(f"   Loaded {len(inputs.areas)} areas, {len(inputs.directory.forests)} directory forests, "
              f"{len(inputs.closures)} closure notices")
        print("\n🚀 Running reconciliation...")

    pipeline = ReconciliationPipeline.from_config(
        config,
        show_progress=not (args.no_progress or args.quiet),
    )
    result = pipeline.run(inputs)

    if not args.quiet:
        pipeline.print_summary(result)

    output_path = args.output or Path(config.output_dir) / "forests_snapshot.json"
    pipeline.write_snapshot(result, output_path)
    if not args.quiet:
        print(f"📁 Wrote snapshot with {len(result.forests)} forests to {output_path}")

    if args.failures_csv:
        count = pipeline.export_geocode_failures(result, args.failures_csv)
        if not args.quiet:
            print(f"📁 Exported {count} forests needing review to {args.failures_csv}")

    return 0


def show_statistics(cache: GeocodeCache) -> None:
    """Show cache statistics."""
    stats = cache.statistics()
    total = stats['total_entries']

    print("\n" + "="*60)
    print("📊 Geocode Cache Statistics")
    print("="*60)
    print(f"Total Entries:     {total}")
    print()
    print("Entries by Provider:")
    for provider, count in sorted(stats['by_provider'].items()):
        percentage = count / total * 100 if total > 0 else 0
        print(f"  {provider:20s}: {count:4d} ({percentage:5.1f}%)")
    print("="*60)


if __name__ == "__main__":
    sys.exit(main())
