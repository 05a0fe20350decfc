"""Tests for status and priority vocabularies."""
import pytest

from modules.record_sync import vocabulary
from modules.record_sync.models import RecordKind


@pytest.mark.parametrize('kind, name, expected', [
    (RecordKind.RFQ, 'In Review', 'IEAF5SOTJMEAEFXE'),
    (RecordKind.RFQ, 'Completed', 'IEAF5SOTJMEAEFWR'),
    (RecordKind.DATASHEET, 'Routed', 'IEAF5SOTJMEEOFHM'),
    (RecordKind.ORDER, 'Active', 'IEAF5SOTJMEGHU4E'),
])
def test_known_statuses(kind, name, expected):
    assert vocabulary.status_id(kind, name) == expected


def test_many_to_one_statuses():
    assert vocabulary.status_id(RecordKind.DATASHEET, 'Open') == \
        vocabulary.status_id(RecordKind.DATASHEET, 'Closed')
    assert vocabulary.status_id(RecordKind.DATASHEET, 'Achieve') == \
        vocabulary.status_id(RecordKind.DATASHEET, 'Approved in DMS-Complete')


@pytest.mark.parametrize('value', ['Brand New Status', '', None, 42, ['New']])
def test_status_lookup_is_total(value):
    for kind in RecordKind:
        assert vocabulary.status_id(kind, value) == vocabulary.DEFAULT_STATUS[kind]


def test_priority_mapping():
    assert vocabulary.importance(RecordKind.RFQ, 'Medium') == 'Normal'
    assert vocabulary.importance(RecordKind.DATASHEET, 'Critical') == 'High'
    # Critical only exists in the datasheet list
    assert vocabulary.importance(RecordKind.RFQ, 'Critical') == 'Normal'


@pytest.mark.parametrize('value', ['Urgent', None, {}])
def test_priority_lookup_is_total(value):
    for kind in RecordKind:
        assert vocabulary.importance(kind, value) == vocabulary.DEFAULT_IMPORTANCE[kind]


def test_every_kind_has_tables_and_defaults():
    for kind in RecordKind:
        assert kind in vocabulary.STATUS_TABLES
        assert kind in vocabulary.PRIORITY_TABLES
        assert vocabulary.DEFAULT_STATUS[kind]
        assert vocabulary.DEFAULT_IMPORTANCE[kind]
