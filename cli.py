#!/usr/bin/env python3
"""
Command-line interface for the household inventory system.

Usage:
    python cli.py [command] [options]

Commands:
    digest      Run the DAILY or WEEKLY digest
    dispatch    Run the immediate-delivery sweep
    preview     Show who would get what, without sending
    test        Run the test suite
    serve       Start the API server

The scheduled jobs run against a store seeded from the JSON fixtures in
data/ (or HOUSEHOLD_DATA_DIR).

Examples:
    python cli.py digest daily
    python cli.py preview --family fam-001
    python cli.py serve --reload
"""

import argparse
import logging
import subprocess
import sys

from household.app import HouseholdApp
from shared.config import get_settings
from shared.models import Frequency


def build_app() -> HouseholdApp:
    """Scheduled jobs run their side effects inline so the process can exit cleanly."""
    settings = get_settings().model_copy(update={"BACKGROUND_TASKS_INLINE": True})
    return HouseholdApp(settings).start()


def print_sent_messages(hh: HouseholdApp) -> None:
    messages = hh.channels.get_all_sent_messages()
    if not messages:
        print("No messages sent.")
        return
    print(f"\n{len(messages)} message(s):")
    for message in messages:
        print(f"  {message}")


def run_digest(cadence: str) -> None:
    hh = build_app()
    report = hh.digest.run(Frequency(cadence.upper()))
    print(report.summary())
    for error in report.errors:
        print(f"  error: {error}")
    print_sent_messages(hh)
    hh.stop()


def run_dispatch() -> None:
    hh = build_app()
    report = hh.router.sweep()
    print(f"Routed {report.events_routed} event(s): sent={report.sent} failed={report.failed} errored={report.errored}")
    print_sent_messages(hh)
    hh.stop()


def run_preview(family_id: str = None) -> None:
    hh = build_app()
    preview = hh.queue.preview_delivery_queue(family_id)
    for frequency in (Frequency.IMMEDIATE, Frequency.DAILY, Frequency.WEEKLY):
        entries = preview.bucket(frequency)
        print(f"\n{frequency.value} ({len(entries)})")
        for entry in entries:
            print(f"  {entry.member_name:<12} {entry.channel:<6} {entry.event_type:<20} {entry.item_name}")
    hh.stop()


def run_tests(args: list[str]) -> None:
    """Run the test suite."""
    cmd = [sys.executable, "-m", "pytest"] + args
    subprocess.run(cmd)


def run_server(host: str, port: int, reload: bool) -> None:
    """Start the API server."""
    cmd = [sys.executable, "-m", "uvicorn", "api.main:app", f"--host={host}", f"--port={port}"]
    if reload:
        cmd.append("--reload")

    print(f"Starting server at http://{host}:{port}")
    print(f"API docs available at http://{host}:{port}/docs")
    subprocess.run(cmd)


def main() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Household Inventory CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s digest daily
  %(prog)s digest weekly
  %(prog)s dispatch
  %(prog)s preview --family fam-001
  %(prog)s test -v
  %(prog)s serve --reload
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Digest command
    digest_parser = subparsers.add_parser("digest", help="Run a digest")
    digest_parser.add_argument("cadence", choices=["daily", "weekly"], help="Which digest to run")

    # Dispatch command
    subparsers.add_parser("dispatch", help="Run the immediate-delivery sweep")

    # Preview command
    preview_parser = subparsers.add_parser("preview", help="Preview the delivery queue")
    preview_parser.add_argument("--family", default=None, help="Limit to one family")

    # Test command
    test_parser = subparsers.add_parser("test", help="Run the test suite")
    test_parser.add_argument(
        "pytest_args",
        nargs="*",
        default=[],
        help="Arguments to pass to pytest",
    )

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    serve_parser.add_argument("--reload", action="store_true", help="Enable auto-reload")

    args = parser.parse_args()

    if args.command in ("digest", "dispatch", "preview"):
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s | %(name)-24s | %(levelname)-5s | %(message)s",
            datefmt="%H:%M:%S",
        )

    if args.command == "digest":
        run_digest(args.cadence)
    elif args.command == "dispatch":
        run_dispatch()
    elif args.command == "preview":
        run_preview(args.family)
    elif args.command == "test":
        run_tests(args.pytest_args)
    elif args.command == "serve":
        run_server(args.host, args.port, args.reload)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
