"""
Vocabulary tables - Registry status/priority names → Tracker ids.

The two systems evolve their enumerations independently, so every lookup
falls back to a per-kind default instead of failing.
"""

from .models import RecordKind

VOCABULARY_VERSION = 3

# Registry status name → Tracker custom status id (many-to-one allowed)
STATUS_TABLES = {
    RecordKind.RFQ: [
        ('In Progress', 'IEAF5SOTJMEAEFWQ'),
        ('Awaiting Assignment', 'IEAF5SOTJMEAEFW2'),
        ('In Review', 'IEAF5SOTJMEAEFXE'),
        ('New', 'IEAF5SOTJMEAFYJS'),
        ('Peer Approved', 'IEAF5SOTJMEAGWEI'),
        ('Completed', 'IEAF5SOTJMEAEFWR'),
        ('Deleted', 'IEAF5SOTJMEAG235'),
    ],
    RecordKind.DATASHEET: [
        ('Working on Document', 'IEAF5SOTJMEEOFGO'),  # active
        ('Draft Completed', 'IEAF5SOTJMEEOFGO'),
        ('Peer Review', 'IEAF5SOTJMEEOFGY'),
        ('Ready to Route', 'IEAF5SOTJMEEOFHC'),
        ('Routed for Approval', 'IEAF5SOTJMEEOFHM'),  # routed
        ('Routed', 'IEAF5SOTJMEEOFHM'),
        ('Approved in DMS-Complete', 'IEAF5SOTJMEEOFGP'),  # completed
        ('Achieve', 'IEAF5SOTJMEEOFGP'),
        ('Needs Escalation', 'IEAF5SOTJMEEOFIW'),
        ('Pending Information', 'IEAF5SOTJMEEOFJA'),
        ('Open', 'IEAF5SOTJMEEOFIM'),  # deferred
        ('Closed', 'IEAF5SOTJMEEOFIM'),
        ('Pending Start - Low Priority', 'IEAF5SOTJMEEOFIM'),
        ('Canceled', 'IEAF5SOTJMEEOJ5Z'),
    ],
    RecordKind.ORDER: [
        ('Recieved', 'IEAF5SOTJMEGHU32'),
        ('Received', 'IEAF5SOTJMEGHU32'),
        ('Active', 'IEAF5SOTJMEGHU4E'),
        ('Completed', 'IEAF5SOTJMEGHU33'),
        ('Deferred', 'IEAF5SOTJMEGHU4Q'),
        ('Cancelled', 'IEAF5SOTJMEGHU43'),
    ],
}

DEFAULT_STATUS = {
    RecordKind.RFQ: 'IEAF5SOTJMEAFYJS',  # New
    RecordKind.DATASHEET: 'IEAF5SOTJMEEOFGO',  # Working on Document
    RecordKind.ORDER: 'IEAF5SOTJMEGHU32',  # Recieved
}

# Registry priority → Tracker importance
PRIORITY_TABLES = {
    RecordKind.RFQ: {'High': 'High', 'Medium': 'Normal', 'Low': 'Low'},
    RecordKind.DATASHEET: {'High': 'High', 'Medium': 'Normal', 'Low': 'Low', 'Critical': 'High'},
    RecordKind.ORDER: {'High': 'High', 'Medium': 'Normal', 'Low': 'Low'},
}

DEFAULT_IMPORTANCE = {
    RecordKind.RFQ: 'Normal',
    RecordKind.DATASHEET: 'Normal',
    RecordKind.ORDER: 'Normal',
}

# Built once; lookups are plain dict gets
_STATUS_INDEX = {kind: dict(entries) for kind, entries in STATUS_TABLES.items()}


def status_id(kind: RecordKind, registry_status) -> str:
    """Tracker status id for a Registry status name, or the kind's default."""
    if not isinstance(registry_status, str):
        return DEFAULT_STATUS[kind]
    return _STATUS_INDEX[kind].get(registry_status.strip(), DEFAULT_STATUS[kind])


def importance(kind: RecordKind, registry_priority) -> str:
    """Tracker importance for a Registry priority, or the kind's default."""
    if not isinstance(registry_priority, str):
        return DEFAULT_IMPORTANCE[kind]
    return PRIORITY_TABLES[kind].get(registry_priority.strip(), DEFAULT_IMPORTANCE[kind])
