#!/usr/bin/env python3
"""
Legacy Ledger Migration Script

Migrates flat legacy records (salesHistory and inventory JSON exports) into
the event ledger. Exact duplicate sales are dropped and events already
migrated are skipped, so the script can be re-run safely.

Usage:
    python migrate_legacy_ledger.py --sales salesHistory.json
    python migrate_legacy_ledger.py --sales salesHistory.json --inventory inventory.json
    python migrate_legacy_ledger.py --sales salesHistory.json --dry-run
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, List

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from repositories.config import load_settings
from services.engine import build_engine


def load_records(path: str) -> List[dict[str, Any]]:
    """
    Load a JSON array of records.

    Raises:
        ValueError: If the file does not hold a JSON array of objects
    """
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        raise ValueError(f"{path} must contain a JSON array of objects")
    return data


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Migrate legacy flat records into the event ledger"
    )
    parser.add_argument("--sales", required=True, help="JSON file with legacy sale records")
    parser.add_argument("--inventory", help="JSON file with legacy inventory records")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only report duplicates; migrate nothing"
    )

    args = parser.parse_args()

    try:
        sales = load_records(args.sales)
        inventory = load_records(args.inventory) if args.inventory else []
        print(f"Loaded {len(sales)} sale records and {len(inventory)} inventory records")

        engine = build_engine(load_settings())

        if args.dry_run:
            cleanup = engine.ledger.cleanup_duplicate_sales(sales)
            print(f"Unique sales:    {len(cleanup.kept)}")
            print(f"Duplicate sales: {len(cleanup.duplicates)}")
            for duplicate in cleanup.duplicates:
                print(f"  - {duplicate.id} ({duplicate.inventory_item_id}, {duplicate.sold_at})")
            return 0

        result = engine.ledger.migrate_legacy(sales, inventory)

        print()
        print("=" * 60)
        print("MIGRATION SUMMARY")
        print("=" * 60)
        print(f"Ledger records touched: {len(result.records)}")
        print(f"Purchase events added:  {result.purchases_added}")
        print(f"Sale events added:      {result.sales_added}")
        print(f"Duplicates skipped:     {result.duplicates_skipped}")
        print(f"Invalid records:        {len(result.invalid_records)}")
        for problem in result.invalid_records:
            print(f"  - {problem}")
        print("=" * 60)

        return 0 if not result.invalid_records else 2

    except KeyboardInterrupt:
        print("\n\nMigration interrupted by user")
        return 130

    except Exception as e:
        print(f"\nERROR: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
