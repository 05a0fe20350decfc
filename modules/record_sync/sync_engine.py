"""
Sync Engine - Core Tracker ↔ Registry sync logic.

Handles:
- Webhook event batches (field mutations, deletions, order completion)
- Reconciliation of recently modified Registry records into Tracker tasks
- Idempotency via content fingerprints in the mapping store
- Per-item failure isolation
"""

import base64
import json
import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from datetime import datetime
from typing import Optional

from .config import config
from .exceptions import TranslationAmbiguity
from .models import (
    EventType,
    Mutation,
    RecordKind,
    ReconcileResult,
    RegistryRecord,
    TaskFields,
    derive_start_date,
    fingerprint,
    parse_timestamp,
)
from .translators import EventTranslator, decode_event
from . import vocabulary

logger = logging.getLogger(__name__)

ORDER_COMPLETED_STATUS = 'Completed'


def _date_only(value: Optional[datetime]) -> Optional[str]:
    return value.date().isoformat() if value else None


class SyncEngine:
    """Bidirectional record sync engine."""

    def __init__(self, store, tracker, registry, settings=None):
        self.store = store
        self.tracker = tracker
        self.registry = registry
        self.settings = settings or config
        self.translator = EventTranslator(store, self.settings.TRACKER_REVIEWER_FIELDS)
        self._background = ThreadPoolExecutor(max_workers=1, thread_name_prefix='reconcile')

    def shutdown(self, wait: bool = True):
        """Stop the background reconciliation worker."""
        self._background.shutdown(wait=wait)

    # ==========================================================================
    # Tracker → Registry (webhooks)
    # ==========================================================================

    def handle_field_events(self, kind: RecordKind, hooks: list) -> dict:
        """
        Translate and send assignee/reviewer changes for a webhook batch.

        Events are processed in delivery order and every mutation is sent on
        its own, so two changes to one field in a batch both reach the
        Registry. Returns counts of sent/skipped/failed events.
        """
        counts = {'sent': 0, 'skipped': 0, 'failed': 0}

        for hook in hooks:
            task_id = hook.get('taskId') if isinstance(hook, dict) else None
            try:
                event = decode_event(hook)
                result = self.translator.translate(kind, event)

                if not isinstance(result, Mutation):
                    logger.info(f"Skipping {kind.value} event for task {task_id}: {result.reason}")
                    self.store.log_sync(
                        direction='tracker_to_registry',
                        action='skip',
                        kind=kind,
                        tracker_id=task_id,
                        details=result.reason,
                        status='skipped',
                    )
                    counts['skipped'] += 1
                    continue

                self.registry.send_mutation(result)
                self.store.log_sync(
                    direction='tracker_to_registry',
                    action='mutate',
                    kind=kind,
                    tracker_id=task_id,
                    registry_id=str(result.registry_id),
                    details=json.dumps(result.to_body()),
                )
                counts['sent'] += 1

            except TranslationAmbiguity as e:
                logger.info(f"Skipping unrecognized {kind.value} event: {e}")
                counts['skipped'] += 1

            except Exception as e:
                logger.error(f"Failed to apply {kind.value} event for task {task_id}: {e}")
                self._log_error('tracker_to_registry', kind, str(e), tracker_id=task_id)
                counts['failed'] += 1

        return counts

    def handle_deletions(self, kind: RecordKind, hooks: list) -> int:
        """Remove mappings for deleted Tracker tasks. Returns rows removed."""
        removed = 0

        for hook in hooks:
            try:
                event = decode_event(hook, deleted=True)
            except TranslationAmbiguity:
                logger.info("Deletion event without taskId, ignoring")
                continue

            try:
                count = self.store.delete_by_task_id(kind, event.task_id)
            except Exception as e:
                logger.error(f"Failed to delete mappings for {kind.value} task {event.task_id}: {e}")
                self._log_error('tracker_to_registry', kind, str(e), tracker_id=event.task_id)
                continue

            removed += count
            logger.info(f"Deleted {count} {kind.value} mapping(s) for task {event.task_id}")
            self.store.log_sync(
                direction='tracker_to_registry',
                action='delete',
                kind=kind,
                tracker_id=event.task_id,
                details=json.dumps({'removed': count}),
            )

        return removed

    def handle_order_events(self, hooks: list) -> int:
        """Upload documents for orders marked completed. Returns uploads made."""
        uploaded = 0

        for hook in hooks:
            try:
                event = decode_event(hook)
            except TranslationAmbiguity as e:
                logger.info(f"Skipping unrecognized order event: {e}")
                continue

            if event.type != EventType.STATUS_NOOP or event.value != ORDER_COMPLETED_STATUS:
                logger.debug(f"Order task {event.task_id}: {event.type.value} ignored")
                continue

            try:
                if self.complete_order(event.task_id):
                    uploaded += 1
            except Exception as e:
                logger.error(f"Failed to upload order for task {event.task_id}: {e}")
                self._log_error('tracker_to_registry', RecordKind.ORDER, str(e), tracker_id=event.task_id)

        return uploaded

    def complete_order(self, task_id: str) -> bool:
        """
        Upload a completed order's attachment to the Registry.

        The attachment's file name is fingerprinted; repeated deliveries for
        the same document find the existing mapping and do not upload again.
        A failed upload releases the mapping so a redelivery retries it.
        """
        attachment = self.tracker.get_task_attachment(task_id)
        if attachment is None:
            logger.info(f"Order task {task_id} has no attachment, nothing to upload")
            return False

        file_name, content = attachment
        file_hash = fingerprint(file_name)

        if not self.store.upsert_fingerprint(RecordKind.ORDER, file_hash, task_id):
            logger.info(f"Order {file_name} already uploaded, skipping")
            return False

        try:
            self.registry.upload_order(base64.b64encode(content).decode('ascii'), file_name)
        except Exception:
            self.store.delete_by_fingerprint(RecordKind.ORDER, file_hash)
            raise

        self.store.log_sync(
            direction='tracker_to_registry',
            action='upload',
            kind=RecordKind.ORDER,
            tracker_id=task_id,
            details=json.dumps({'name': file_name, 'content': file_hash}),
        )
        return True

    # ==========================================================================
    # Registry → Tracker (reconciliation)
    # ==========================================================================

    def normalize(self, record: RegistryRecord) -> TaskFields:
        """Single defaulting pass from a decoded Registry record to task fields."""
        kind = record.kind
        created = parse_timestamp(record.created)

        if kind == RecordKind.RFQ:
            start = derive_start_date(
                created,
                parse_timestamp(record.customer_requested_date),
                parse_timestamp(record.internal_due_date),
            )
            due = parse_timestamp(record.internal_due_date) or parse_timestamp(record.customer_requested_date)
            title = record.title or f"RFQ {record.registry_id}"
        elif kind == RecordKind.DATASHEET:
            start, due = created, None
            title = f"(DS) {record.title or record.registry_id}"
        else:
            start, due = created, None
            title = record.file_name or f"Order {record.registry_id}"

        return TaskFields(
            kind=kind,
            title=title,
            description=self._build_description(record),
            status=vocabulary.status_id(kind, record.status),
            importance=vocabulary.importance(kind, record.priority),
            start_date=_date_only(start),
            due_date=_date_only(due),
            assignee=self.store.resolve_identity(record.assignee_ref),
            reviewer=self.store.resolve_identity(record.reviewer_ref),
            author=self.store.resolve_identity(record.author_ref),
            registry_id=record.registry_id,
        )

    def _build_description(self, record: RegistryRecord) -> str:
        """Build the Tracker task description from a Registry record."""
        lines = []

        if record.kind == RecordKind.DATASHEET and record.description:
            lines.append('<br>'.join(record.description.split('\n')))

        details = [
            ('Customer', record.customer_name),
            ('Contact', record.contact_name),
            ('Contact email', record.contact_email),
            ('Account type', record.account_type),
            ('Quote source', record.quote_source),
            ('Submission method', record.submission_method),
            ('Line items', record.line_items),
            ('Priority #', record.priority_number),
            ('PO type', record.po_type),
            ('PO number', record.po_number),
            ('SO number', record.so_number),
            ('Ship to', record.ship_to_site),
            ('Entered date', record.created),
        ]
        lines.extend(f"{label}: {value}" for label, value in details if value)

        if record.url:
            lines.append(f"URL: {record.url}")
        elif self.settings.REGISTRY_ITEM_URL and record.registry_id:
            lines.append(f"Link: {self.settings.REGISTRY_ITEM_URL}{record.registry_id}")

        return '<br>'.join(lines)

    def reconcile_record(self, kind: RecordKind, item: dict) -> tuple[str, str]:
        """
        Upsert one Registry item into the Tracker.

        Returns ('created' | 'updated', registry_id).
        """
        record = RegistryRecord.from_api(kind, item)
        if not record.registry_id:
            raise TranslationAmbiguity(f"{kind.value} record without id")

        fields = self.normalize(record)
        record_hash = record.fingerprint
        mapping = self.store.find_by_fingerprint(kind, record_hash)

        if mapping and mapping.tracker_id and self._from_tracker_upload(record):
            # The Tracker task is the source of this document; only link it
            self.store.attach_registry_id(kind, record_hash, record.registry_id)
            self.store.log_sync(
                direction='registry_to_tracker',
                action='link',
                kind=kind,
                tracker_id=mapping.tracker_id,
                registry_id=record.registry_id,
            )
            return 'updated', record.registry_id

        if mapping and mapping.tracker_id:
            self.tracker.update_task(mapping.tracker_id, fields)
            if mapping.registry_id != record.registry_id:
                self.store.attach_registry_id(kind, record_hash, record.registry_id)
            self.store.log_sync(
                direction='registry_to_tracker',
                action='update',
                kind=kind,
                tracker_id=mapping.tracker_id,
                registry_id=record.registry_id,
            )
            return 'updated', record.registry_id

        tracker_id = self.tracker.create_task(kind, fields)
        if not self.store.upsert_fingerprint(kind, record_hash, tracker_id):
            self.store.set_tracker_id(kind, record_hash, tracker_id)
        self.store.attach_registry_id(kind, record_hash, record.registry_id)
        self.store.log_sync(
            direction='registry_to_tracker',
            action='create',
            kind=kind,
            tracker_id=tracker_id,
            registry_id=record.registry_id,
            details=json.dumps({'title': fields.title}),
        )
        return 'created', record.registry_id

    def _from_tracker_upload(self, record: RegistryRecord) -> bool:
        """Orders created by the system account were uploaded by complete_order."""
        return (
            record.kind == RecordKind.ORDER
            and bool(record.created_by_name)
            and record.created_by_name == self.settings.REGISTRY_SYSTEM_ACCOUNT
        )

    def reconcile(self, kind: RecordKind, limit: int) -> ReconcileResult:
        """
        Pull the `limit` most recently modified Registry records of a kind and
        upsert each into the Tracker.

        Items run concurrently with no ordering between them. A failing item is
        recorded and logged without affecting the others. The batch is capped
        at RECONCILE_MAX_ITEMS items and RECONCILE_TIME_BUDGET seconds.
        """
        result = ReconcileResult(kind=kind)
        limit = min(limit, self.settings.RECONCILE_MAX_ITEMS)
        if limit <= 0:
            return result

        started = time.monotonic()
        logger.info(f"Reconciling up to {limit} {kind.value} records")

        try:
            items = self.registry.fetch_recent_records(kind, limit)
        except Exception as e:
            logger.error(f"Failed to fetch {kind.value} records: {e}")
            self._log_error('registry_to_tracker', kind, f"Fetch error: {e}")
            result.failed.append((None, str(e)))
            return result

        items = items[:limit]
        result.fetched = len(items)

        executor = ThreadPoolExecutor(
            max_workers=max(1, self.settings.RECONCILE_WORKERS),
            thread_name_prefix=f'reconcile-{kind.value}',
        )
        futures = {
            executor.submit(self.reconcile_record, kind, item): self._item_id(item)
            for item in items
        }

        pending = set(futures)
        try:
            for future in as_completed(futures, timeout=self.settings.RECONCILE_TIME_BUDGET):
                pending.discard(future)
                self._collect(kind, future, futures[future], result)
        except TimeoutError:
            for future in pending:
                if future.done():
                    self._collect(kind, future, futures[future], result)
                else:
                    future.cancel()
                    result.failed.append((futures[future], 'reconciliation time budget exceeded'))
            logger.warning(
                f"{kind.value} reconciliation hit the {self.settings.RECONCILE_TIME_BUDGET}s budget"
            )
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        self.store.set_state(f'last_reconcile_{kind.value}', datetime.now().isoformat())
        logger.info(
            f"{kind.value} reconcile complete in {time.monotonic() - started:.1f}s: "
            f"{result.fetched} fetched, {len(result.created)} created, "
            f"{len(result.updated)} updated, {len(result.failed)} failed"
        )
        return result

    def reconcile_in_background(self, kind: RecordKind, limit: int) -> Future:
        """Queue a reconcile so notification callers are not blocked."""
        return self._background.submit(self.reconcile, kind, limit)

    def reconcile_all(self, limit: int) -> list[ReconcileResult]:
        """Reconcile every kind in turn."""
        return [self.reconcile(kind, limit) for kind in RecordKind]

    def _collect(self, kind: RecordKind, future: Future, registry_id: Optional[str], result: ReconcileResult):
        try:
            action, rid = future.result()
        except Exception as e:
            logger.error(f"Failed to reconcile {kind.value} record {registry_id}: {e}")
            self._log_error('registry_to_tracker', kind, str(e), registry_id=registry_id)
            result.failed.append((registry_id, str(e)))
            return

        if action == 'created':
            result.created.append(rid)
        else:
            result.updated.append(rid)

    @staticmethod
    def _item_id(item) -> Optional[str]:
        if isinstance(item, dict) and item.get('id') is not None:
            return str(item['id'])
        return None

    def _log_error(self, direction: str, kind: RecordKind, details: str,
                   tracker_id: Optional[str] = None, registry_id: Optional[str] = None):
        """Best-effort audit entry for a failure."""
        try:
            self.store.log_sync(
                direction=direction,
                action='error',
                kind=kind,
                tracker_id=tracker_id,
                registry_id=registry_id,
                details=details,
                status='error',
            )
        except Exception as e:
            logger.error(f"Could not record sync error: {e}")
