#!/usr/bin/env python3
"""
Ledger Export Script

Exports the compliance ledger to CSV (UTF-8 with BOM, opens cleanly in Excel).
Every record is exported; records missing mandated fields are flagged in the
compliance columns.

Usage:
    python export_ledger.py --output ledger.csv
    python export_ledger.py --from 2025-01-01 --to 2025-03-31 --output q1.csv
    python export_ledger.py --type sale --as-of 2025-03-31 --output sales.csv
"""

from __future__ import annotations

import argparse
import sys
from datetime import date
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from repositories.config import load_settings
from services.engine import build_engine
from services.ledger_export_service import generate_ledger_csv
from services.ledger_service import LedgerFilters, TransactionType


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Export the compliance ledger to CSV",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Export the whole ledger
  python export_ledger.py --output ledger.csv

  # Export one quarter, with ages computed at the quarter end
  python export_ledger.py --from 2025-01-01 --to 2025-03-31 --as-of 2025-03-31 --output q1.csv

  # Export only records with nothing sold yet
  python export_ledger.py --type purchase --output stock.csv
        """
    )

    parser.add_argument("--output", "-o", required=True, help="Path to output CSV file")
    parser.add_argument("--from", dest="date_from", type=date.fromisoformat, help="Inclusive start date (YYYY-MM-DD)")
    parser.add_argument("--to", dest="date_to", type=date.fromisoformat, help="Inclusive end date (YYYY-MM-DD)")
    parser.add_argument(
        "--type",
        choices=[t.value for t in TransactionType],
        default=TransactionType.ALL.value,
        help="Transaction type filter"
    )
    parser.add_argument("--customer", default="", help="Search seller and buyer names")
    parser.add_argument("--as-of", type=date.fromisoformat, help="Date ages are computed at (default: today)")

    args = parser.parse_args()

    try:
        engine = build_engine(load_settings())
        filters = LedgerFilters(
            date_from=args.date_from,
            date_to=args.date_to,
            transaction_type=TransactionType(args.type),
            customer_search=args.customer,
        )

        print("Building ledger...")
        rows = engine.ledger.filtered_rows(filters, args.as_of)
        if not rows:
            print("No ledger records found matching the specified filters")
            return 1

        csv_content = generate_ledger_csv(engine.ledger, filters, args.as_of)
        Path(args.output).write_text(csv_content, encoding="utf-8")

        flagged = sum(1 for row in rows if not row.is_compliant)

        print()
        print("=" * 60)
        print("EXPORT SUMMARY")
        print("=" * 60)
        print(f"Records exported:      {len(rows)}")
        print(f"  Compliant:           {len(rows) - flagged}")
        print(f"  Missing fields:      {flagged}")
        print()
        print(f"Output file: {args.output}")
        print("=" * 60)

        return 0

    except KeyboardInterrupt:
        print("\n\nExport interrupted by user")
        return 130

    except Exception as e:
        print(f"\nERROR: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
