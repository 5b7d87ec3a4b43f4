"""Command-line summary of the chat usage and sign-in exports.

Aggregates every configured export in the data directory, writes the
dashboard JSON/CSV files and prints a short report.
"""

from __future__ import annotations

import argparse
import logging
import sys

from dashboard import DATA_DIR, build_dashboard_payload, print_summary_report, save_dashboard_files


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.  Exits with code 1 if nothing could be loaded."""
    parser = argparse.ArgumentParser(description="Summarise chat usage and sign-in exports")
    parser.add_argument('--data-dir', '-d', default=str(DATA_DIR),
                        help=f'Directory holding the CSV exports (default: {DATA_DIR})')
    parser.add_argument('--output-dir', '-o', default='usage_analytics',
                        help='Directory for the generated files (default: usage_analytics)')
    parser.add_argument('--quiet', '-q', action='store_true',
                        help='Do not print the summary report')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Log skipped rows and files in detail')
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        payload = build_dashboard_payload(args.data_dir)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if not payload["months"] and not payload["periods"]:
        print(f"Error: no exports could be loaded from {args.data_dir}", file=sys.stderr)
        sys.exit(1)

    save_dashboard_files(payload, args.output_dir)
    if not args.quiet:
        print_summary_report(payload)
        print(f"\nDashboard data has been saved to the '{args.output_dir}' directory.")


if __name__ == '__main__':
    main()
