"""
Record Sync CLI entry point.

Usage:
    python -m modules.record_sync test                      Check config and store
    python -m modules.record_sync status                    Show sync status
    python -m modules.record_sync reconcile [--kind rfq] [--limit 75]
    python -m modules.record_sync serve                     Start webhook server
    python -m modules.record_sync run                       Start scheduled reconciliation
    python -m modules.record_sync mappings [--kind order]   List record mappings
    python -m modules.record_sync export [--out backups]    Export store tables to JSON
    python -m modules.record_sync add-identity --tracker-user ID --registry-user ID --name NAME
"""

import argparse
import sys
from datetime import datetime
from pathlib import Path

from .config import config
from .db import db
from .log_config import setup_logging
from .models import RecordKind

logger = setup_logging()


def _engine():
    from .registry_client import registry_client
    from .sync_engine import SyncEngine
    from .tracker_client import tracker_client

    return SyncEngine(db, tracker_client, registry_client, config)


def cmd_test(args):
    """Validate configuration and store access."""
    print("=" * 60)
    print("Record Sync Configuration Test")
    print("=" * 60)

    errors = config.validate()
    if errors:
        print("\n[CONFIG ERRORS]")
        for err in errors:
            print(f"  - {err}")
        return 1

    print(f"\nEnvironment: {config.ENV}")
    print(f"Database: {config.DB_PATH}")

    print("\n[Database]")
    try:
        db.set_state('test_key', 'test_value')
        db.get_state('test_key')
        print("  ✓ Database read/write working")
    except Exception as e:
        print(f"  ✗ Database failed: {e}")
        return 1

    print("\n[Registry]")
    try:
        from .registry_client import registry_client
        registry_client.get_access_token()
        print("  ✓ Registry token acquired")
    except Exception as e:
        print(f"  ✗ Registry auth failed: {e}")
        return 1

    print("\n" + "=" * 60)
    print("All checks passed!")
    print("=" * 60)
    return 0


def cmd_status(args):
    """Show current sync status."""
    print("=" * 60)
    print("Record Sync Status")
    print("=" * 60)

    print("\n[Configuration]")
    print(f"  Environment: {config.ENV}")
    print(f"  Daily reconcile limit: {config.RECONCILE_DAILY_LIMIT}")
    print(f"  Notification reconcile limit: {config.NOTIFICATION_RECONCILE_LIMIT}")
    print(f"  Reconcile interval: {config.RECONCILE_INTERVAL}s")

    print("\n[Mappings]")
    counts = db.count_mappings()
    for kind in RecordKind:
        c = counts.get(kind.value, {'total': 0, 'linked': 0})
        last = db.get_state(f'last_reconcile_{kind.value}')
        print(f"  {kind.value:10} {c['total']:5} mapped, {c['linked']:5} linked | last reconcile: {last or 'Never'}")

    print("\n[Recent Sync Activity]")
    logs = db.get_recent_logs(limit=10)
    if logs:
        for log in logs:
            status_icon = "✓" if log['status'] == 'success' else "✗"
            print(f"  {status_icon} {log['timestamp'][:16]} | {log['direction']:20} | {log['action']:7} | {log['kind'] or ''}")
    else:
        print("  No sync activity recorded yet")

    return 0


def cmd_reconcile(args):
    """Run one reconciliation pass."""
    engine = _engine()
    kinds = [RecordKind(args.kind)] if args.kind else list(RecordKind)

    exit_code = 0
    for kind in kinds:
        print(f"\n[Reconciling {kind.value} (limit {args.limit})]")
        result = engine.reconcile(kind, args.limit)
        print(f"  Fetched: {result.fetched}")
        print(f"  Created: {len(result.created)}")
        print(f"  Updated: {len(result.updated)}")
        if result.failed:
            exit_code = 1
            print(f"  Failed:  {len(result.failed)}")
            for registry_id, error in result.failed:
                print(f"    ✗ {registry_id}: {error[:80]}")

    engine.shutdown()
    return exit_code


def cmd_serve(args):
    """Start the webhook server (development)."""
    from .webhooks import create_app

    app = create_app(_engine(), config)
    print(f"Serving webhooks on {config.API_HOST}:{config.API_PORT}")
    app.run(host=config.API_HOST, port=config.API_PORT, threaded=True)
    return 0


def cmd_run(args):
    """Start scheduled reconciliation (continuous)."""
    from .poller import Poller

    print("=" * 60)
    print("Starting Record Sync Poller")
    print("=" * 60)
    print(f"Reconcile interval: {config.RECONCILE_INTERVAL}s")
    print(f"Records per kind: {args.limit}")
    print("\nPress Ctrl+C to stop\n")

    engine = _engine()
    try:
        Poller(engine, limit=args.limit).start()
    except KeyboardInterrupt:
        print("\nStopped by user")
    finally:
        engine.shutdown(wait=False)

    return 0


def cmd_mappings(args):
    """List record mappings."""
    kind = RecordKind(args.kind) if args.kind else None
    mappings = db.list_mappings(kind, limit=args.limit)

    if not mappings:
        print("No record mappings yet.")
        return 0

    print("=" * 60)
    print("Record Mappings (newest first)")
    print("=" * 60)
    for m in mappings:
        print(f"  {m.kind.value:10} tracker {m.tracker_id or '-':20} registry {m.registry_id or '-':8} {m.fingerprint[:12]}")
    return 0


def cmd_export(args):
    """Export store tables to JSON files."""
    stamp = datetime.now().strftime('%Y%m%d')
    out_dir = Path(args.out)

    for table in ('record_map', 'identity_map'):
        path = out_dir / f"{table}_{stamp}.json"
        count = db.export_table(table, path)
        print(f"  ✓ {table}: {count} rows → {path}")
    return 0


def cmd_add_identity(args):
    """Add or update a user known to both systems."""
    if not (args.tracker_user and args.registry_user):
        print("--tracker-user and --registry-user are required")
        return 1

    db.upsert_identity(args.tracker_user, args.registry_user, args.name or '')
    print(f"  ✓ {args.tracker_user} ↔ {args.registry_user} ({args.name or 'no name'})")
    return 0


def main():
    parser = argparse.ArgumentParser(description='Record Sync - Tracker ↔ Registry')
    parser.add_argument('command',
                        choices=['test', 'status', 'reconcile', 'serve', 'run', 'mappings', 'export', 'add-identity'],
                        help='Command to run')
    parser.add_argument('--kind', choices=[k.value for k in RecordKind], help='Record kind')
    parser.add_argument('--limit', type=int, default=config.RECONCILE_DAILY_LIMIT,
                        help='Records per kind (reconcile/run) or rows (mappings)')
    parser.add_argument('--out', default='backups', help='Export directory')
    parser.add_argument('--tracker-user', help='Tracker user id')
    parser.add_argument('--registry-user', help='Registry user id')
    parser.add_argument('--name', help='Display name')

    args = parser.parse_args()

    commands = {
        'test': cmd_test,
        'status': cmd_status,
        'reconcile': cmd_reconcile,
        'serve': cmd_serve,
        'run': cmd_run,
        'mappings': cmd_mappings,
        'export': cmd_export,
        'add-identity': cmd_add_identity,
    }

    db.open()
    try:
        return commands[args.command](args)
    finally:
        db.close()


if __name__ == '__main__':
    sys.exit(main())
