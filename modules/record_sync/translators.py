"""
Event translators - Tracker webhook events → Registry field mutations.

Decoding turns one raw webhook item into a SyncEvent; translation reads the
mapping store and identity table and yields a Mutation or a Skip. Neither
step performs I/O against the downstream systems.
"""

import json
import logging
import re
from typing import Optional

from .exceptions import LookupMiss, TranslationAmbiguity
from .models import (
    EventType,
    Mutation,
    Operation,
    RecordKind,
    Skip,
    SyncEvent,
    TranslationResult,
)

logger = logging.getLogger(__name__)

# Kinds whose assignee/reviewer changes are mirrored to the Registry
FIELD_SYNC_KINDS = (RecordKind.RFQ, RecordKind.DATASHEET)


def _first_user_id(value) -> Optional[str]:
    """
    First user id from a responsibles list or contact custom-field value.

    Contact fields arrive JSON-encoded ('["KUAAA"]'); an empty string or the
    literal '""' means the field was cleared.
    """
    if value is None:
        return None
    if isinstance(value, str):
        text = value.strip()
        if text in ('', '""', '[]'):
            return None
        if text.startswith('['):
            try:
                value = json.loads(text)
            except ValueError:
                return text
        else:
            return text
    if isinstance(value, list):
        return str(value[0]) if value and value[0] else None
    return str(value)


def decode_event(hook: dict, deleted: bool = False) -> SyncEvent:
    """Decode one webhook item. Raises TranslationAmbiguity if unrecognized."""
    if not isinstance(hook, dict) or not hook.get('taskId'):
        raise TranslationAmbiguity(f"Webhook item has no taskId: {hook!r}")

    task_id = str(hook['taskId'])

    if deleted or hook.get('eventType') == 'TaskDeleted':
        return SyncEvent(EventType.TASK_DELETED, task_id)

    if hook.get('addedResponsibles'):
        return SyncEvent(
            EventType.ASSIGNEE_ADDED, task_id, value=_first_user_id(hook['addedResponsibles'])
        )

    if hook.get('removedResponsibles'):
        return SyncEvent(
            EventType.ASSIGNEE_REMOVED, task_id, value=_first_user_id(hook['removedResponsibles'])
        )

    if hook.get('customFieldId'):
        user_id = _first_user_id(hook.get('value'))
        return SyncEvent(
            EventType.REVIEWER_SET if user_id else EventType.REVIEWER_CLEARED,
            task_id,
            custom_field_id=str(hook['customFieldId']),
            value=user_id,
        )

    if 'status' in hook:
        return SyncEvent(EventType.STATUS_NOOP, task_id, value=hook.get('status'))

    raise TranslationAmbiguity(f"Unrecognized webhook item for task {task_id}: {sorted(hook)}")


class EventTranslator:
    """Builds Registry mutations from decoded Tracker events."""

    def __init__(self, store, reviewer_fields: Optional[dict] = None):
        self.store = store
        self.reviewer_fields = reviewer_fields or {}

    def translate(self, kind: RecordKind, event: SyncEvent) -> TranslationResult:
        if kind not in FIELD_SYNC_KINDS:
            return Skip(f"{kind.value} fields are not mirrored")

        try:
            if event.type in (EventType.ASSIGNEE_ADDED, EventType.ASSIGNEE_REMOVED):
                return self._translate_assignee(kind, event)
            if event.type in (EventType.REVIEWER_SET, EventType.REVIEWER_CLEARED):
                return self._translate_reviewer(kind, event)
        except LookupMiss as e:
            return Skip(str(e))

        return Skip(f"{event.type.value} is not a field mutation")

    def _registry_id(self, kind: RecordKind, event: SyncEvent) -> int:
        """Parsed Registry id for the event's task."""
        mapping = self.store.find_by_task_id(kind, event.task_id)
        if mapping is None:
            raise LookupMiss(f"no mapping for {kind.value} task {event.task_id}")
        if not mapping.registry_id:
            raise LookupMiss(f"{kind.value} task {event.task_id} not linked to a Registry record yet")
        # Registry ids may carry a prefix ("R7"); the mutation body takes the number
        match = re.search(r'\d+', str(mapping.registry_id))
        if match is None:
            raise LookupMiss(f"Registry id {mapping.registry_id!r} is not numeric")
        return int(match.group())

    def _display_name(self, role: str, tracker_user_id: Optional[str]) -> str:
        identity = self.store.get_identity_by_tracker_user(tracker_user_id) if tracker_user_id else None
        if identity is None:
            raise LookupMiss(f"unknown {role} {tracker_user_id}")
        return identity.display_name

    def _translate_assignee(self, kind: RecordKind, event: SyncEvent) -> Mutation:
        registry_id = self._registry_id(kind, event)
        operation = Operation.ADD if event.type == EventType.ASSIGNEE_ADDED else Operation.REMOVE
        return Mutation(
            resource=kind.resource,
            registry_id=registry_id,
            operation=operation,
            field='assignee',
            value=self._display_name('assignee', event.value),
        )

    def _translate_reviewer(self, kind: RecordKind, event: SyncEvent) -> TranslationResult:
        reviewer_field = self.reviewer_fields.get(kind.value)
        if not reviewer_field:
            return Skip(f"no reviewer field configured for {kind.value}")
        if event.custom_field_id != reviewer_field:
            return Skip(f"custom field {event.custom_field_id} is not tracked")

        registry_id = self._registry_id(kind, event)

        if event.type == EventType.REVIEWER_CLEARED:
            return Mutation(
                resource=kind.resource,
                registry_id=registry_id,
                operation=Operation.REMOVE,
                field='reviewer',
            )

        return Mutation(
            resource=kind.resource,
            registry_id=registry_id,
            operation=Operation.ADD,
            field='reviewer',
            value=self._display_name('reviewer', event.value),
        )
