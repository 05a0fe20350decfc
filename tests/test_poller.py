"""Tests for the scheduled reconciliation poller."""
import asyncio

from modules.record_sync.models import RecordKind, ReconcileResult
from modules.record_sync.poller import Poller


def test_run_once_reconciles_every_kind(mocker):
    engine = mocker.Mock()
    engine.reconcile.side_effect = lambda kind, limit: ReconcileResult(
        kind=kind, fetched=2, created=['1'], updated=['2']
    )
    poller = Poller(engine, interval=60, limit=10)

    asyncio.run(poller.run_once())

    assert [c.args for c in engine.reconcile.call_args_list] == [(kind, 10) for kind in RecordKind]
    stats = poller.get_status()['stats']
    assert stats == {'runs': 1, 'created': 3, 'updated': 3, 'errors': 0}


def test_run_once_continues_after_error(mocker):
    engine = mocker.Mock()
    engine.reconcile.side_effect = [
        RuntimeError('store closed'),
        ReconcileResult(kind=RecordKind.DATASHEET, failed=[('4', 'boom')]),
        ReconcileResult(kind=RecordKind.ORDER),
    ]
    poller = Poller(engine, interval=60, limit=10)

    asyncio.run(poller.run_once())

    assert engine.reconcile.call_count == 3
    assert poller.get_status()['stats']['errors'] == 2
    assert poller.get_status()['last_run'] is not None
