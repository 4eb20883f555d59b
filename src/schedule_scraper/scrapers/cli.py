#!/usr/bin/env python3
"""
Command Line Interface for Schedule Scrapers

Run providers, retry pending uploads, show statistics and close runs left
behind by crashed processes.
"""

import argparse
import sys
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from ..backend import BackendClient
from ..config import Settings
from ..database import ClassStore, ScrapeOptions, check_connection
from ..pipeline import reconcile_stale_runs, run_providers, upload_pending
from ..utils.logger import setup_logger
from .base import BaseScraper
from .registry import build_providers


def select_providers(providers: Dict[str, BaseScraper], name: Optional[str], run_all: bool) -> List[BaseScraper]:
    """
    Pick the providers a scrape command should run.

    Raises:
        ValueError: Unknown or disabled provider, or nothing selected
    """
    if run_all or name in (None, "all"):
        selected = [p for p in providers.values() if p.enabled]
        if not selected:
            raise ValueError("No enabled providers configured")
        return selected

    if name not in providers:
        available = ", ".join(providers) or "none"
        raise ValueError(f"Unknown provider: {name} (available: {available})")
    if not providers[name].enabled:
        raise ValueError(f"Provider {name} is disabled")
    return [providers[name]]


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    return datetime.strptime(value, "%Y-%m-%d") if value else None


def cmd_scrape(args, settings: Settings) -> bool:
    providers = build_providers(settings.providers_config, headless=settings.headless and not args.no_headless)
    try:
        selected = select_providers(providers, args.provider, args.all)
    except ValueError as e:
        print(f"❌ {e}")
        return False

    options = ScrapeOptions(
        start_date=_parse_date(args.start_date),
        end_date=_parse_date(args.end_date),
        location=args.location,
        max_results=args.max_results,
    )
    client = None if args.no_upload else BackendClient.from_settings(settings)

    print(f"🚀 Running {len(selected)} scrapers...")
    with ClassStore.connect(settings.database_url) as store:
        reports = run_providers(selected, store, client, options, upload=not args.no_upload)

    for report in reports:
        icon = "✅" if report.success else "❌"
        print(
            f"{icon} {report.provider}: {report.tally.seen} found, {report.tally.accepted} new, "
            f"{report.tally.duplicate} duplicates, {report.tally.invalid} invalid, {report.uploaded} uploaded"
        )
        for error in report.errors:
            print(f"   ⚠️ {error}")

    succeeded = sum(1 for r in reports if r.success)
    print(f"\nSummary: {succeeded}/{len(reports)} scrapers completed successfully")
    return succeeded == len(reports)


def cmd_upload(args, settings: Settings) -> bool:
    client = BackendClient.from_settings(settings)
    with ClassStore.connect(settings.database_url) as store:
        result = upload_pending(store, client, args.limit)

    print(f"📤 Uploaded {result.uploaded}, failed {result.failed}")
    for error in result.errors:
        print(f"   ⚠️ {error}")
    return result.success


def cmd_stats(args, settings: Settings) -> bool:
    with ClassStore.connect(settings.database_url) as store:
        stats = store.all_provider_stats()
        runs = store.recent_runs(args.limit)

    print("\n=== Provider Statistics ===\n")
    for provider in stats:
        print(f"{provider.name}:")
        print(f"  Enabled: {provider.enabled}")
        print(f"  Total Runs: {provider.total_runs}")
        print(f"  Successful: {provider.successful_runs}")
        print(f"  Classes Found: {provider.total_classes_found}")
        print(f"  Last Scrape: {provider.last_scrape or 'Never'}")
        print("")

    print("\n=== Recent Scrape Runs ===\n")
    for run in runs:
        print(f"[{run.started_at}] {run.provider} - {run.status}")
        print(f"  Classes: {run.classes_found}, Uploaded: {run.classes_uploaded}")
        if run.errors:
            print(f"  Errors: {run.errors}")
        print("")
    return True


def cmd_reconcile(args, settings: Settings) -> bool:
    hours = args.max_age_hours if args.max_age_hours is not None else settings.stale_run_hours
    with ClassStore.connect(settings.database_url) as store:
        closed = reconcile_stale_runs(store, timedelta(hours=hours))
    print(f"🧹 Marked {len(closed)} stale runs as failed")
    return True


def cmd_list(args, settings: Settings) -> bool:
    providers = build_providers(settings.providers_config)
    print("Available scrapers:")
    for name, provider in providers.items():
        suffix = "" if provider.enabled else " (disabled)"
        print(f"  - {name}{suffix}")
    return True


def cmd_check_db(args, settings: Settings) -> bool:
    ok = check_connection(settings.database_url)
    print("✅ Database connection successful" if ok else "❌ Database connection failed")
    return ok


COMMANDS = {
    "scrape": cmd_scrape,
    "upload": cmd_upload,
    "stats": cmd_stats,
    "reconcile": cmd_reconcile,
    "list": cmd_list,
    "check-db": cmd_check_db,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="schedule-scraper",
        description="Schedule Scraper CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  schedule-scraper scrape rite                # Run one provider
  schedule-scraper scrape --all --no-upload   # Run all, keep results local
  schedule-scraper upload --limit 200         # Retry pending uploads
  schedule-scraper reconcile                  # Fail runs left running
        """
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    scrape = subparsers.add_parser("scrape", help="Scrape classes from a provider")
    scrape.add_argument("provider", nargs="?", help="Name of the provider to run")
    scrape.add_argument("--all", action="store_true", help="Run all enabled providers")
    scrape.add_argument("--no-upload", action="store_true", help="Skip uploading to backend")
    scrape.add_argument(
        "--no-headless",
        action="store_true",
        help="Run with visible browser (useful for debugging)"
    )
    scrape.add_argument("--start-date", help="Start date (YYYY-MM-DD)")
    scrape.add_argument("--end-date", help="End date (YYYY-MM-DD)")
    scrape.add_argument("--max-results", type=int, help="Maximum number of results per provider")
    scrape.add_argument("--location", help="Location to search")

    upload = subparsers.add_parser("upload", help="Upload pending classes to backend")
    upload.add_argument("--limit", type=int, help="Limit number of classes to upload")

    stats = subparsers.add_parser("stats", help="Show scraping statistics")
    stats.add_argument("--limit", type=int, default=10, help="Number of recent runs to show")

    reconcile = subparsers.add_parser("reconcile", help="Mark runs stuck in running as failed")
    reconcile.add_argument("--max-age-hours", type=float, help="Age after which a running run is stale")

    subparsers.add_parser("list", help="List all configured providers")
    subparsers.add_parser("check-db", help="Test the database connection")

    return parser


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "scrape" and args.all and args.provider:
        parser.error("Cannot specify both --all and a specific provider")

    settings = Settings.from_env()
    setup_logger(level=settings.log_level)

    success = COMMANDS[args.command](args, settings)
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
