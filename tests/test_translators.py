"""Tests for webhook decoding and event translation."""
import pytest

from conftest import RFQ_REVIEWER_FIELD
from modules.record_sync.exceptions import TranslationAmbiguity
from modules.record_sync.models import EventType, Mutation, Operation, RecordKind, Skip, fingerprint
from modules.record_sync.translators import EventTranslator, decode_event


@pytest.fixture
def translator(identities, settings):
    identities.upsert_fingerprint(RecordKind.RFQ, fingerprint('7'), 'T1')
    identities.attach_registry_id(RecordKind.RFQ, fingerprint('7'), '7')
    return EventTranslator(identities, settings.TRACKER_REVIEWER_FIELDS)


class TestDecodeEvent:

    def test_assignee_added(self):
        event = decode_event({'taskId': 'T1', 'addedResponsibles': ['W9']})
        assert event.type == EventType.ASSIGNEE_ADDED
        assert event.task_id == 'T1'
        assert event.value == 'W9'

    def test_assignee_removed(self):
        event = decode_event({'taskId': 'T1', 'removedResponsibles': ['W9']})
        assert event.type == EventType.ASSIGNEE_REMOVED

    def test_reviewer_set_from_encoded_value(self):
        event = decode_event({'taskId': 'T1', 'customFieldId': 'CF1', 'value': '["W7"]'})
        assert event.type == EventType.REVIEWER_SET
        assert event.custom_field_id == 'CF1'
        assert event.value == 'W7'

    @pytest.mark.parametrize('value', ['', '""', '[]', None])
    def test_reviewer_cleared(self, value):
        event = decode_event({'taskId': 'T1', 'customFieldId': 'CF1', 'value': value})
        assert event.type == EventType.REVIEWER_CLEARED
        assert event.value is None

    def test_status_change_is_noop(self):
        event = decode_event({'taskId': 'T1', 'status': 'Active'})
        assert event.type == EventType.STATUS_NOOP
        assert event.value == 'Active'

    def test_deleted(self):
        assert decode_event({'taskId': 'T1', 'eventType': 'TaskDeleted'}).type == EventType.TASK_DELETED
        assert decode_event({'taskId': 'T1'}, deleted=True).type == EventType.TASK_DELETED

    @pytest.mark.parametrize('hook', [{}, {'addedResponsibles': ['W9']}, 'T1', {'taskId': 'T1'}])
    def test_unrecognized_items_raise(self, hook):
        with pytest.raises(TranslationAmbiguity):
            decode_event(hook)


class TestEventTranslator:

    def test_assignee_added_becomes_mutation(self, translator):
        event = decode_event({'taskId': 'T1', 'addedResponsibles': ['W9']})
        result = translator.translate(RecordKind.RFQ, event)
        assert result == Mutation('RFQ', 7, Operation.ADD, 'assignee', 'Dana Reyes')

    def test_assignee_removed_becomes_remove(self, translator):
        event = decode_event({'taskId': 'T1', 'removedResponsibles': ['W9']})
        result = translator.translate(RecordKind.RFQ, event)
        assert result.operation == Operation.REMOVE
        assert result.value == 'Dana Reyes'

    def test_reviewer_set(self, translator):
        event = decode_event({'taskId': 'T1', 'customFieldId': RFQ_REVIEWER_FIELD, 'value': '["W7"]'})
        result = translator.translate(RecordKind.RFQ, event)
        assert result == Mutation('RFQ', 7, Operation.ADD, 'reviewer', 'Sam Ortiz')

    def test_reviewer_cleared_sends_null(self, translator):
        event = decode_event({'taskId': 'T1', 'customFieldId': RFQ_REVIEWER_FIELD, 'value': ''})
        result = translator.translate(RecordKind.RFQ, event)
        assert result.operation == Operation.REMOVE
        assert result.to_body()['data'] == 'null'

    def test_other_custom_field_skipped(self, translator):
        event = decode_event({'taskId': 'T1', 'customFieldId': 'OTHER', 'value': '["W7"]'})
        assert isinstance(translator.translate(RecordKind.RFQ, event), Skip)

    def test_unconfigured_reviewer_field_skipped(self, identities):
        translator = EventTranslator(identities, {})
        event = decode_event({'taskId': 'T1', 'customFieldId': RFQ_REVIEWER_FIELD, 'value': '["W7"]'})
        result = translator.translate(RecordKind.RFQ, event)
        assert isinstance(result, Skip)
        assert 'no reviewer field' in result.reason

    def test_unmapped_task_skipped(self, translator):
        event = decode_event({'taskId': 'T404', 'addedResponsibles': ['W9']})
        result = translator.translate(RecordKind.RFQ, event)
        assert isinstance(result, Skip)
        assert 'no mapping' in result.reason

    def test_unlinked_task_skipped(self, translator, identities):
        identities.upsert_fingerprint(RecordKind.RFQ, fingerprint('8'), 'T2')
        event = decode_event({'taskId': 'T2', 'addedResponsibles': ['W9']})
        assert isinstance(translator.translate(RecordKind.RFQ, event), Skip)

    def test_non_numeric_registry_id_skipped(self, translator, identities):
        identities.upsert_fingerprint(RecordKind.RFQ, fingerprint('x'), 'T3')
        identities.attach_registry_id(RecordKind.RFQ, fingerprint('x'), 'abc')
        event = decode_event({'taskId': 'T3', 'addedResponsibles': ['W9']})
        result = translator.translate(RecordKind.RFQ, event)
        assert isinstance(result, Skip)
        assert 'not numeric' in result.reason

    def test_prefixed_registry_id_uses_number(self, translator, identities):
        identities.upsert_fingerprint(RecordKind.RFQ, fingerprint('R12'), 'T4')
        identities.attach_registry_id(RecordKind.RFQ, fingerprint('R12'), 'R12')
        event = decode_event({'taskId': 'T4', 'addedResponsibles': ['W9']})
        result = translator.translate(RecordKind.RFQ, event)
        assert result == Mutation('RFQ', 12, Operation.ADD, 'assignee', 'Dana Reyes')

    def test_unknown_user_skipped(self, translator):
        event = decode_event({'taskId': 'T1', 'addedResponsibles': ['W0']})
        result = translator.translate(RecordKind.RFQ, event)
        assert isinstance(result, Skip)
        assert 'unknown assignee' in result.reason

    def test_status_event_skipped(self, translator):
        event = decode_event({'taskId': 'T1', 'status': 'Active'})
        assert isinstance(translator.translate(RecordKind.RFQ, event), Skip)

    def test_order_fields_not_mirrored(self, translator):
        event = decode_event({'taskId': 'T1', 'addedResponsibles': ['W9']})
        assert isinstance(translator.translate(RecordKind.ORDER, event), Skip)
