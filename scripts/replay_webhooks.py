#!/usr/bin/env python3
"""
Replay processor notifications through the Webhook Reconciler.

Reads a JSON-lines dump (one event object per line, as exported from the
processor dashboard or CLI) and reconciles each event in order.  Events that
were already processed are reported as duplicates, so replaying a dump twice
changes nothing.

Usage:
    python3 scripts/replay_webhooks.py events.jsonl
    python3 scripts/replay_webhooks.py events.jsonl --dry-run
"""

import argparse
import json
import os
import sys
from collections import Counter
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def load_events(path: Path) -> list[dict]:
    events = []
    with path.open(encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                events.append(json.loads(line))
            except json.JSONDecodeError as exc:
                raise ValueError(f"{path}:{lineno}: invalid JSON: {exc}") from exc
    return events


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Replay a JSON-lines dump of processor events through the reconciler.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "examples:\n"
            "  python3 scripts/replay_webhooks.py events.jsonl\n"
            "  python3 scripts/replay_webhooks.py events.jsonl --dry-run\n"
        ),
    )
    parser.add_argument("dump", type=Path, help="JSON-lines file of events")
    parser.add_argument(
        "--dry-run", action="store_true",
        help="Parse and list the events without reconciling",
    )
    parser.add_argument(
        "--config", type=str, default=None,
        help="Configuration file (default: $MARKETPLACE_CONFIG or the packaged default)",
    )
    parser.add_argument(
        "--db-url", type=str, default=os.environ.get("DATABASE_URL"),
        help="Database URL (default: $DATABASE_URL or database.url from the config)",
    )

    args = parser.parse_args()

    try:
        events = load_events(args.dump)
    except (OSError, ValueError) as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1

    if args.dry_run:
        for event in events:
            print(f"    {event.get('id')}  {event.get('type')}")
        print(f"\n    {len(events)} events")
        return 0

    from marketplace_config import get_active_config
    from marketplace_kernel.db.engine import get_session_factory, init_engine_from_url
    from marketplace_kernel.exceptions import MarketplaceError
    from marketplace_kernel.logging_config import configure_logging
    from marketplace_services.orchestrator import SettlementOrchestrator

    configure_logging()
    config = get_active_config(args.config)
    db_url = args.db_url or config.database_url
    if not db_url:
        print("  ERROR: No database URL (use --db-url or DATABASE_URL)", file=sys.stderr)
        return 1
    init_engine_from_url(db_url)
    orchestrator = SettlementOrchestrator.from_config(
        config, session_factory=get_session_factory()
    )

    outcomes: Counter[str] = Counter()
    failures = 0
    for event in events:
        try:
            result = orchestrator.reconciler.reconcile(event)
        except MarketplaceError as exc:
            failures += 1
            print(f"    {event.get('id')}  {event.get('type')}  ERROR [{exc.code}]: {exc}")
            continue
        outcomes[result.outcome.value] += 1
        print(f"    {result.event_id}  {result.event_type}  {result.outcome.value}")

    print()
    for outcome, count in sorted(outcomes.items()):
        print(f"    {outcome}: {count}")
    if failures:
        print(f"    errors: {failures}")
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
