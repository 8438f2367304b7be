"""
CLI main entry point.
"""

import argparse
import json
import logging
import sys
import time
from pathlib import Path

from ..config import Config, create_default_config, load_config
from ..extractors import CandidateAssembler
from ..notifications import (
    CANDIDATE_DETECTED,
    InMemoryNotificationBus,
    NotificationBus,
    WebhookNotifier,
)
from ..review import CandidateLifecycle
from ..schemas.expense_candidate import ExpenseCandidate, RawMessage, utc_now
from ..services.ingestion import IngestionOrchestrator
from ..sources import (
    FixtureMessageSource,
    GatewayMessageSource,
    JsonExportMessageSource,
    MessageSource,
)
from ..state_store import CandidateStore

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def create_cli() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="sms-expenses",
        description="Detect expenses in bank SMS alerts and queue them for review",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to config file (default: config.yaml)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # init-config command
    init_parser = subparsers.add_parser("init-config", help="Write a default config file")
    init_parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite an existing config file",
    )

    # parse command
    parse_parser = subparsers.add_parser(
        "parse", help="Run the detector on one SMS text without storing anything"
    )
    parse_parser.add_argument("text", type=str, help="SMS body")
    parse_parser.add_argument(
        "--sender",
        type=str,
        default="UNKNOWN",
        help="Sender ID (default: UNKNOWN)",
    )
    parse_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the candidate as JSON",
    )

    # scan command
    scan_parser = subparsers.add_parser("scan", help="Backfill expenses from recent SMS")
    scan_parser.add_argument(
        "--days",
        type=int,
        default=None,
        help="Days to look back (default: scan.window_days from config)",
    )

    # listen command
    listen_parser = subparsers.add_parser(
        "listen", help="Watch for new SMS and detect expenses until interrupted"
    )
    listen_parser.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Stop after this many seconds (default: run until Ctrl+C)",
    )

    # pending command
    pending_parser = subparsers.add_parser("pending", help="List candidates awaiting review")
    pending_parser.add_argument(
        "--json",
        action="store_true",
        help="Print candidates as JSON",
    )

    # confirm / reject / delete commands
    confirm_parser = subparsers.add_parser(
        "confirm", help="Mark a candidate confirmed (after adding it to your ledger)"
    )
    confirm_parser.add_argument("candidate_id", type=str, help="Candidate ID")

    reject_parser = subparsers.add_parser("reject", help="Mark a candidate rejected")
    reject_parser.add_argument("candidate_id", type=str, help="Candidate ID")

    delete_parser = subparsers.add_parser("delete", help="Delete a candidate permanently")
    delete_parser.add_argument("candidate_id", type=str, help="Candidate ID")

    # status command
    subparsers.add_parser("status", help="Show detector status and statistics")

    return parser


def build_message_source(config: Config) -> MessageSource:
    """Create the message source selected in config."""
    source = config.source
    if source.kind == "json_export":
        return JsonExportMessageSource(
            source.export_path,
            poll_interval_seconds=source.poll_interval_seconds,
        )
    if source.kind == "gateway":
        return GatewayMessageSource(
            base_url=source.gateway_url,
            token=source.gateway_token,
            timeout=source.timeout_seconds,
            poll_interval_seconds=source.poll_interval_seconds,
        )
    return FixtureMessageSource.with_samples()


def build_notification_bus(config: Config) -> NotificationBus:
    """Webhook when configured, otherwise an in-process bus that prints detections."""
    if config.notifications.webhook_url:
        return WebhookNotifier(
            config.notifications.webhook_url,
            timeout=config.notifications.timeout_seconds,
        )

    bus = InMemoryNotificationBus()
    bus.subscribe(CANDIDATE_DETECTED, _print_detected)
    return bus


def build_orchestrator(config: Config, store: CandidateStore) -> IngestionOrchestrator:
    return IngestionOrchestrator(
        source=build_message_source(config),
        store=store,
        notifier=build_notification_bus(config),
        max_messages=config.scan.max_messages,
        window_days=config.scan.window_days,
    )


def _print_detected(candidate: ExpenseCandidate) -> None:
    print(f"  🔔 New expense: {_format_candidate(candidate)}")


def _format_candidate(candidate: ExpenseCandidate) -> str:
    flag = " ⚠️ review" if candidate.needs_review else ""
    return (
        f"{candidate.amount:.2f} {candidate.merchant} "
        f"[{candidate.category.value}, {candidate.payment_method.value}] "
        f"{candidate.transaction_date.isoformat()} "
        f"({candidate.confidence:.0%}){flag}"
    )


def cmd_init_config(config_path: Path, force: bool = False) -> int:
    """Write a default config file."""
    if config_path.exists() and not force:
        print(f"❌ {config_path} already exists (use --force to overwrite)")
        return 1

    create_default_config(config_path)
    print(f"✓ Wrote default config to {config_path}")
    return 0


def cmd_parse(text: str, sender: str, as_json: bool = False) -> int:
    """Run the detector on one message."""
    message = RawMessage(body=text, sender=sender, received_at=utc_now())
    candidate = CandidateAssembler().assemble(message)

    if candidate is None:
        print("✗ Not an expense alert")
        return 1

    if as_json:
        print(json.dumps(candidate.to_dict(), indent=2))
        return 0

    print("💸 Expense detected")
    print(f"     → Amount:   {candidate.amount:.2f}")
    print(f"     → Merchant: {candidate.merchant}")
    print(f"     → Category: {candidate.category.value} ({candidate.confidence:.0%})")
    print(f"     → Method:   {candidate.payment_method.value}")
    print(f"     → Date:     {candidate.transaction_date.isoformat()}")
    if candidate.needs_review:
        print("     ⚠️  Low confidence, needs review")
    return 0


def cmd_scan(config: Config, days: int | None = None) -> int:
    """Backfill candidates from the inbox."""
    window = days if days is not None else config.scan.window_days
    print(f"🔍 Scanning SMS from the last {window} day(s) ({config.source.kind})...")

    store = CandidateStore(config.state_db_path)
    orchestrator = build_orchestrator(config, store)
    result = orchestrator.backfill(window_days=window)

    if not result.permission_granted:
        print("❌ SMS read permission not granted")
        return 1

    for candidate in result.added:
        print(f"  💸 [{candidate.id}] {_format_candidate(candidate)}")

    print()
    print(f"  Messages read:       {result.messages_read}")
    print(f"  Expenses detected:   {result.candidates_detected}")
    print(f"  New candidates:      {result.candidates_added}")
    print(f"  Duplicates skipped:  {result.duplicates_skipped}")

    if result.source_error:
        print(f"\n⚠️  Could not read messages: {result.source_error}")
        return 1

    print("\n✓ Scan complete")
    return 0


def cmd_listen(config: Config, duration: float | None = None) -> int:
    """Listen for new messages until interrupted."""
    store = CandidateStore(config.state_db_path)
    orchestrator = build_orchestrator(config, store)

    subscription = orchestrator.start_listener()
    if subscription is None:
        print("❌ Could not start SMS listener (permission or source unavailable)")
        return 1

    print(f"👂 Listening for new SMS ({config.source.kind}); press Ctrl+C to stop")
    deadline = time.monotonic() + duration if duration is not None else None
    try:
        while subscription.active:
            if deadline is not None and time.monotonic() >= deadline:
                break
            time.sleep(0.5)
    except KeyboardInterrupt:
        pass
    finally:
        subscription.close()

    print("\n✓ Listener stopped")
    return 0


def cmd_pending(config: Config, as_json: bool = False) -> int:
    """List pending candidates."""
    store = CandidateStore(config.state_db_path)
    pending = CandidateLifecycle(store).get_pending()

    if as_json:
        print(json.dumps([c.to_dict() for c in pending], indent=2))
        return 0

    if not pending:
        print("✓ Nothing pending review")
        return 0

    print(f"📋 {len(pending)} candidate(s) pending review\n")
    for candidate in pending:
        print(f"  [{candidate.id}] {_format_candidate(candidate)}")
        print(f"      {candidate.source_sender}: {candidate.original_text}")
    return 0


def cmd_confirm(config: Config, candidate_id: str) -> int:
    """Confirm a pending candidate."""
    lifecycle = CandidateLifecycle(CandidateStore(config.state_db_path))
    if not lifecycle.confirm(candidate_id):
        print(f"❌ {candidate_id} is not a pending candidate")
        return 1
    print(f"✓ Confirmed {candidate_id}")
    return 0


def cmd_reject(config: Config, candidate_id: str) -> int:
    """Reject a pending candidate."""
    lifecycle = CandidateLifecycle(CandidateStore(config.state_db_path))
    if not lifecycle.reject(candidate_id):
        print(f"❌ {candidate_id} is not a pending candidate")
        return 1
    print(f"✓ Rejected {candidate_id}")
    return 0


def cmd_delete(config: Config, candidate_id: str) -> int:
    """Delete a candidate."""
    store = CandidateStore(config.state_db_path)
    if not store.delete_candidate(candidate_id):
        print(f"❌ No candidate {candidate_id}")
        return 1
    print(f"🗑  Deleted {candidate_id}")
    return 0


def cmd_status(config: Config) -> int:
    """Show detector status."""
    store = CandidateStore(config.state_db_path)
    stats = store.get_stats()
    last_scan = store.get_last_scan()

    print("\n📊 SMS Expense Status")
    print("=" * 40)
    print(f"  Source:                 {config.source.kind}")
    print(f"  Candidates total:       {stats['candidates_total']}")
    print(f"  Pending review:         {stats['pending']}")
    print(f"    low confidence:       {stats['pending_needs_review']}")
    print(f"  Confirmed:              {stats['confirmed']}")
    print(f"  Rejected:               {stats['rejected']}")
    print(f"  Scans completed:        {stats['scans_total']}")
    if last_scan:
        print(f"  Last scan:              {last_scan.completed_at:%Y-%m-%d %H:%M:%S} UTC")
    else:
        print("  Last scan:              never")
    print()

    return 0


def main(args: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_cli()
    parsed = parser.parse_args(args)

    setup_logging(parsed.verbose)

    if not parsed.command:
        parser.print_help()
        return 1

    if parsed.command == "init-config":
        return cmd_init_config(parsed.config, parsed.force)
    if parsed.command == "parse":
        return cmd_parse(parsed.text, parsed.sender, parsed.json)

    # Load config
    try:
        config = load_config(parsed.config)
    except Exception as e:
        print(f"❌ Failed to load config: {e}")
        return 1

    errors = config.validate()
    if errors:
        print("❌ Invalid configuration:")
        for error in errors:
            print(f"   - {error}")
        return 1

    # Route to command
    if parsed.command == "scan":
        return cmd_scan(config, parsed.days)
    elif parsed.command == "listen":
        return cmd_listen(config, parsed.duration)
    elif parsed.command == "pending":
        return cmd_pending(config, parsed.json)
    elif parsed.command == "confirm":
        return cmd_confirm(config, parsed.candidate_id)
    elif parsed.command == "reject":
        return cmd_reject(config, parsed.candidate_id)
    elif parsed.command == "delete":
        return cmd_delete(config, parsed.candidate_id)
    elif parsed.command == "status":
        return cmd_status(config)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
