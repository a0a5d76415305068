#!/usr/bin/env python3
"""
Re-match stored external records against the driver registry.

Run: python scripts/rematch_records.py [--scope unmatched|all] [--source lead]
                                      [--margin-days 14] [--name-threshold 0.5]
                                      [--no-fuzzy] [--skip-reconciliation]

Each source starts from its configured defaults (MatchRules.for_source);
rule options replace individual fields on top of them. Manual and discarded results are never touched.
After matching, reconciliation re-classifies cross-source claims.

Exit codes:
  0 - Completed, no reconciliation conflicts
  1 - Completed, conflicts need operator review
  2 - Run failed (configuration, database or matching error)
"""

import argparse
import json
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

try:
    from driver_matcher.config import settings
    from driver_matcher.database import init_db
    from driver_matcher.exceptions import MatchingError
    from driver_matcher.services.matching.types import Source
    from driver_matcher.services.matching_service import MatchingService, REPROCESS_SCOPES
    from driver_matcher.services.monitoring import setup_logging
    from driver_matcher.services.reconciliation import ReconciliationService
except ImportError as e:
    print(f"ERROR: Failed to import required modules: {e}")
    print("Make sure you're running from the project root and dependencies are installed.")
    sys.exit(2)


def build_rule_overrides(args) -> dict:
    """Rule fields given on the command line, applied on top of each source's defaults."""
    overrides = {}
    if args.margin_days is not None:
        overrides["margin_days"] = args.margin_days
    if args.name_threshold is not None:
        overrides["name_threshold"] = args.name_threshold
    if args.phone_threshold is not None:
        overrides["phone_threshold"] = args.phone_threshold
    if args.min_words_match is not None:
        overrides["min_words_match"] = args.min_words_match
    if args.no_fuzzy:
        overrides["enable_fuzzy_matching"] = False
    if args.ignore_trailing_surname:
        overrides["ignore_trailing_surname"] = True
    if args.adaptive_name_threshold:
        overrides["adaptive_name_threshold"] = True

    return overrides


def format_summary(summary: dict, reconciliation: "dict | None") -> str:
    lines = []
    lines.append("=" * 60)
    lines.append("RE-MATCH SUMMARY")
    lines.append("=" * 60)
    lines.append(f"Records in scope:    {summary['total']}")
    lines.append(f"Matched:             {summary['matched_count']}")
    lines.append(f"Unmatched:           {summary['unmatched_count']}")
    lines.append(f"Skipped (manual/discarded): {summary['skipped_count']}")
    lines.append(f"Reference dates:     {summary['date_range_from']} .. {summary['date_range_to']}")
    lines.append("")

    if reconciliation is not None:
        lines.append("RECONCILIATION")
        lines.append("-" * 60)
        lines.append(f"Claims checked:        {reconciliation['claims_checked']}")
        lines.append(f"Matched both sources:  {reconciliation['matched_both_sources']}")
        lines.append(f"Single source pending: {reconciliation['single_source_pending']}")
        lines.append(f"Conflicting:           {reconciliation['conflicting']}")
        lines.append(f"Unmatched:             {reconciliation['unmatched']}")

        for conflict in reconciliation["conflicts"][:10]:  # Show first 10
            lines.append(
                f"  - claimant {conflict['claimant_id']} / {conflict['identity_name']}: "
                f"drivers {', '.join(conflict['driver_ids'])}"
            )
        if len(reconciliation["conflicts"]) > 10:
            lines.append(f"  ... and {len(reconciliation['conflicts']) - 10} more")
        lines.append("")

    lines.append("=" * 60)
    return "\n".join(lines)


def main():
    """Re-match script entry point"""
    parser = argparse.ArgumentParser(
        description="Re-match stored external records and re-run reconciliation"
    )
    parser.add_argument("--scope", choices=REPROCESS_SCOPES, default="unmatched",
                        help="Which records to re-match (default: unmatched)")
    parser.add_argument("--source", choices=[s.value for s in Source], default=None,
                        help="Restrict to one source")
    parser.add_argument("--margin-days", type=int, default=None,
                        help="Maximum days between reference date and hire date")
    parser.add_argument("--name-threshold", type=float, default=None)
    parser.add_argument("--phone-threshold", type=float, default=None)
    parser.add_argument("--min-words-match", type=int, default=None)
    parser.add_argument("--no-fuzzy", action="store_true",
                        help="Exact matches only (thresholds forced to 1.0)")
    parser.add_argument("--ignore-trailing-surname", action="store_true")
    parser.add_argument("--adaptive-name-threshold", action="store_true")
    parser.add_argument("--skip-reconciliation", action="store_true")
    parser.add_argument("--json", action="store_true", help="Print the summary as JSON")
    args = parser.parse_args()

    setup_logging(settings.log_level)

    try:
        session_factory = init_db()
        if session_factory is None:
            print("ERROR: Database not configured. Set DATABASE_URL environment variable.")
            sys.exit(2)
    except Exception as e:
        print(f"ERROR: Failed to connect to database: {e}")
        sys.exit(2)

    try:
        service = MatchingService(session_factory)
        summary = service.reprocess_with_rules(
            scope=args.scope,
            source=args.source,
            rule_overrides=build_rule_overrides(args),
        )

        reconciliation = None
        if not args.skip_reconciliation:
            reconciliation = ReconciliationService(session_factory).run()
    except MatchingError as e:
        print(f"ERROR: Re-match failed: {e}")
        sys.exit(2)
    except Exception as e:
        print(f"ERROR: Re-match crashed: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(2)

    if args.json:
        print(json.dumps({"summary": summary.to_dict(), "reconciliation": reconciliation}, indent=2, default=str))
    else:
        print(format_summary(summary.to_dict(), reconciliation))

    if reconciliation and reconciliation["conflicting"] > 0:
        sys.exit(1)
    sys.exit(0)


if __name__ == "__main__":
    main()
