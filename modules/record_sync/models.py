"""
Data models for Record Sync module.

Mapping/identity rows, webhook events, downstream mutations and the typed
Registry record that reconciliation normalizes into Tracker task fields.
"""

import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union


class RecordKind(str, Enum):
    """Kinds of record kept in sync. Values match URL path segments."""
    RFQ = 'rfq'
    DATASHEET = 'datasheet'
    ORDER = 'order'

    @property
    def resource(self) -> str:
        """Resource name used in downstream mutation bodies."""
        return {
            RecordKind.RFQ: 'RFQ',
            RecordKind.DATASHEET: 'Datasheet',
            RecordKind.ORDER: 'Order',
        }[self]

    @classmethod
    def from_path(cls, segment: str) -> Optional['RecordKind']:
        """Resolve a URL segment ('rfq', 'datasheets', 'Order') to a kind."""
        if not segment:
            return None
        value = segment.lower()
        if value.endswith('s'):
            value = value[:-1]
        try:
            return cls(value)
        except ValueError:
            return None


class EventType(str, Enum):
    """Decoded webhook event kinds."""
    ASSIGNEE_ADDED = 'AssigneeAdded'
    ASSIGNEE_REMOVED = 'AssigneeRemoved'
    REVIEWER_SET = 'ReviewerSet'
    REVIEWER_CLEARED = 'ReviewerCleared'
    TASK_DELETED = 'TaskDeleted'
    STATUS_NOOP = 'StatusNoop'


class Operation(str, Enum):
    ADD = 'ADD'
    REMOVE = 'REMOVE'


def fingerprint(text: str) -> str:
    """SHA-256 hex digest of content-identifying text."""
    return hashlib.sha256(text.encode('utf-8')).hexdigest()


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO date or datetime string into an aware UTC datetime.

    Returns None for empty or unparseable input.
    """
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def derive_start_date(
    created: Optional[datetime],
    customer_requested: Optional[datetime],
    internal_due: Optional[datetime],
) -> Optional[datetime]:
    """
    Effective start date for a record.

    Some records are entered after they are already due. When either due date
    precedes creation, the earlier of the two due dates becomes the start;
    otherwise the creation date is used.
    """
    if created is None:
        return None

    due_dates = [d for d in (customer_requested, internal_due) if d is not None]
    if any(d < created for d in due_dates):
        return min(due_dates)
    return created


# =============================================================================
# Store rows
# =============================================================================

@dataclass
class MappingRecord:
    """Correspondence between one Registry record and one Tracker task."""
    kind: RecordKind
    fingerprint: str
    tracker_id: Optional[str] = None
    registry_id: Optional[str] = None
    salt: str = 'null'
    iterations: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> 'MappingRecord':
        return cls(
            kind=RecordKind(row['kind']),
            fingerprint=row['fingerprint'],
            tracker_id=row['tracker_id'],
            registry_id=row['registry_id'],
            salt=row['salt'],
            iterations=row['iterations'],
            created_at=row['created_at'],
            updated_at=row['updated_at'],
        )


@dataclass
class IdentityRecord:
    """One user known to both systems."""
    tracker_user_id: str
    registry_user_id: str
    display_name: str = ''

    @classmethod
    def from_row(cls, row) -> 'IdentityRecord':
        return cls(
            tracker_user_id=row['tracker_user_id'],
            registry_user_id=row['registry_user_id'],
            display_name=row['display_name'] or '',
        )


# =============================================================================
# Webhook events and translator output
# =============================================================================

@dataclass
class SyncEvent:
    """Decoded webhook event. Transient, never persisted."""
    type: EventType
    task_id: str
    custom_field_id: Optional[str] = None
    value: Optional[str] = None


@dataclass
class Mutation:
    """Downstream field mutation for one Registry record."""
    resource: str
    registry_id: int
    operation: Operation
    field: str
    value: str = 'null'

    def to_body(self) -> dict:
        """Wire body expected by the mutation endpoint."""
        return {
            'resource': self.resource,
            'data': self.value,
            'id': self.registry_id,
            'type': self.operation.value,
            'name': 'null',
            'field': self.field,
        }


@dataclass
class Skip:
    """Translator decided not to emit a mutation."""
    reason: str


TranslationResult = Union[Mutation, Skip]


# =============================================================================
# Registry records
# =============================================================================

def _lookup_id(value) -> Optional[str]:
    """Normalize a Registry person lookup (scalar or [{'LookupId': ..}])."""
    if isinstance(value, list):
        value = value[0].get('LookupId') if value and isinstance(value[0], dict) else None
    if value is None or value == '':
        return None
    return str(value)


@dataclass
class RegistryRecord:
    """
    Typed, fully-optional view of a raw Registry list item.

    Decoding never fails on missing fields; defaults are applied in one place
    by the reconciliation normalizer.
    """
    kind: RecordKind
    registry_id: Optional[str] = None
    title: Optional[str] = None
    url: Optional[str] = None
    description: Optional[str] = None
    created: Optional[str] = None
    modified: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    priority_number: Optional[str] = None
    customer_requested_date: Optional[str] = None
    internal_due_date: Optional[str] = None
    author_ref: Optional[str] = None
    assignee_ref: Optional[str] = None
    reviewer_ref: Optional[str] = None
    created_by_name: Optional[str] = None
    customer_name: Optional[str] = None
    contact_name: Optional[str] = None
    contact_email: Optional[str] = None
    account_type: Optional[str] = None
    quote_source: Optional[str] = None
    submission_method: Optional[str] = None
    line_items: Optional[str] = None
    file_name: Optional[str] = None
    po_type: Optional[str] = None
    po_number: Optional[str] = None
    so_number: Optional[str] = None
    ship_to_site: Optional[str] = None

    @classmethod
    def from_api(cls, kind: RecordKind, item: dict) -> 'RegistryRecord':
        """Decode a list item ({'id', 'createdDateTime', 'fields': {...}})."""
        fields = item.get('fields') or {}
        doc_url = fields.get('_dlc_DocIdUrl') or {}
        created_by = (item.get('createdBy') or {}).get('user') or {}

        record = cls(
            kind=kind,
            registry_id=str(item['id']) if item.get('id') is not None else None,
            created=item.get('createdDateTime'),
            modified=fields.get('Modified') or item.get('lastModifiedDateTime'),
            url=doc_url.get('Url') or doc_url.get('url'),
            status=fields.get('Status'),
            created_by_name=created_by.get('displayName'),
        )

        if kind == RecordKind.RFQ:
            record.title = fields.get('Title')
            record.priority = fields.get('Priority')
            record.customer_requested_date = fields.get('Customer_x0020_Requested_x0020_Date')
            record.internal_due_date = fields.get('Internal_x0020_Due_x0020_Date')
            record.assignee_ref = _lookup_id(fields.get('AssignedLookupId'))
            record.reviewer_ref = _lookup_id(fields.get('ReviewerLookupId'))
            record.author_ref = _lookup_id(fields.get('AuthorLookupId'))
            record.customer_name = fields.get('Customer_x0020_Name')
            record.contact_name = fields.get('Contact_x0020_Name')
            record.contact_email = fields.get('Contact_x0020_Email')
            record.account_type = fields.get('Account_x0020_Type')
            record.quote_source = fields.get('Quote_x0020_Source')
            record.submission_method = fields.get('Submission_x0020_Method')
            line_items = fields.get('Number_x0020_of_x0020_Line_x0020_Items')
            record.line_items = str(line_items) if line_items is not None else None
        elif kind == RecordKind.DATASHEET:
            record.title = fields.get('Title')
            record.description = fields.get('field_2')
            record.priority = fields.get('field_5')
            number = fields.get('Priority_x0023_')
            record.priority_number = str(number) if number is not None else None
            record.author_ref = _lookup_id(fields.get('Author0LookupId'))
            # The list has no separate assignee column; the author owns the work
            record.assignee_ref = record.author_ref
            record.reviewer_ref = _lookup_id(fields.get('Guide_x002f_Mentor'))
        elif kind == RecordKind.ORDER:
            record.file_name = fields.get('FileLeafRef')
            record.title = record.file_name
            record.author_ref = _lookup_id(fields.get('AuthorLookupId'))
            record.customer_name = fields.get('CustomerName')
            record.po_type = fields.get('POType')
            record.po_number = fields.get('PONumber')
            record.so_number = fields.get('SONumber')
            record.ship_to_site = fields.get('ShipToSite')

        return record

    @property
    def fingerprint_source(self) -> Optional[str]:
        """Content-identifying text: file name for orders, record id otherwise."""
        if self.kind == RecordKind.ORDER and self.file_name:
            return self.file_name
        return self.registry_id

    @property
    def fingerprint(self) -> Optional[str]:
        source = self.fingerprint_source
        return fingerprint(source) if source else None


@dataclass
class TaskFields:
    """Normalized Tracker task payload produced by reconciliation."""
    kind: RecordKind
    title: str
    description: str = ''
    status: Optional[str] = None
    importance: str = 'Normal'
    start_date: Optional[str] = None
    due_date: Optional[str] = None
    assignee: Optional[str] = None
    reviewer: Optional[str] = None
    author: Optional[str] = None
    registry_id: Optional[str] = None

    def to_api(self, reviewer_field_id: Optional[str] = None) -> dict:
        """Tracker task create/update body."""
        data = {
            'title': self.title,
            'description': self.description,
            'importance': self.importance,
        }
        if self.status:
            data['customStatus'] = self.status
        if self.assignee:
            data['responsibles'] = json.dumps([self.assignee])

        dates = {}
        if self.start_date:
            dates['start'] = self.start_date
        if self.due_date:
            dates['due'] = self.due_date
        if dates:
            dates['type'] = 'Planned' if 'start' in dates and 'due' in dates else 'Backlog'
            data['dates'] = json.dumps(dates)

        if reviewer_field_id and self.reviewer:
            data['customFields'] = json.dumps([
                {'id': reviewer_field_id, 'value': json.dumps([self.reviewer])},
            ])
        return data


@dataclass
class ReconcileResult:
    """Outcome of one reconciliation batch."""
    kind: RecordKind
    fetched: int = 0
    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    failed: list[tuple[Optional[str], str]] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return len(self.created) + len(self.updated)

    def to_dict(self) -> dict:
        return {
            'kind': self.kind.value,
            'fetched': self.fetched,
            'created': self.created,
            'updated': self.updated,
            'failed': [{'registry_id': rid, 'error': err} for rid, err in self.failed],
        }
