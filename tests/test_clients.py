"""Tests for the Tracker and Registry HTTP clients."""
import httpx
import pytest

from modules.record_sync.config import config
from modules.record_sync.exceptions import UpstreamFailure
from modules.record_sync.models import Mutation, Operation, RecordKind, TaskFields
from modules.record_sync.registry_client import RegistryClient
from modules.record_sync.tracker_client import TrackerClient


def make_response(method, status_code=200, json=None, content=None):
    request = httpx.Request(method, 'https://api.example/test')
    if json is not None:
        return httpx.Response(status_code, json=json, request=request)
    return httpx.Response(status_code, content=content or b'', request=request)


@pytest.fixture
def configured(mocker):
    mocker.patch.object(config, 'TRACKER_FOLDERS', {'rfq': 'F-RFQ', 'datasheet': 'F-DS', 'order': 'F-ORD'})
    mocker.patch.object(config, 'TRACKER_REVIEWER_FIELDS', {'rfq': 'CF1', 'datasheet': ''})
    mocker.patch.object(config, 'REGISTRY_LISTS', {'rfq': 'L-RFQ', 'datasheet': 'L-DS', 'order': 'L-ORD'})
    mocker.patch.object(config, 'REGISTRY_SITE_ID', 'site-1')
    mocker.patch.object(config, 'REGISTRY_MUTATION_URL', 'https://flows.example/mutate')
    mocker.patch.object(config, 'REGISTRY_ORDER_UPLOAD_URL', 'https://flows.example/orders')
    return config


class TestTrackerClient:

    def test_create_task(self, configured, mocker):
        send = mocker.patch.object(
            httpx.Client, 'request',
            return_value=make_response('POST', json={'data': [{'id': 'T-100'}]}),
        )
        fields = TaskFields(kind=RecordKind.RFQ, title='Quote 7', assignee='W9', reviewer='W7')

        task_id = TrackerClient(api_token='tok', base_url='https://tracker.example').create_task(RecordKind.RFQ, fields)

        assert task_id == 'T-100'
        method, url = send.call_args.args
        assert (method, url) == ('POST', 'https://tracker.example/folders/F-RFQ/tasks')
        body = send.call_args.kwargs['data']
        assert body['responsibles'] == '["W9"]'
        assert 'customFields' in body
        assert send.call_args.kwargs['headers']['Authorization'] == 'Bearer tok'

    def test_update_adds_responsibles(self, configured, mocker):
        send = mocker.patch.object(httpx.Client, 'request', return_value=make_response('PUT', json={'data': []}))
        fields = TaskFields(kind=RecordKind.RFQ, title='Quote 7', assignee='W9')

        TrackerClient(api_token='tok', base_url='https://tracker.example').update_task('T-100', fields)

        body = send.call_args.kwargs['data']
        assert body['addResponsibles'] == '["W9"]'
        assert 'responsibles' not in body

    def test_missing_folder(self, configured, mocker):
        mocker.patch.object(config, 'TRACKER_FOLDERS', {})
        with pytest.raises(UpstreamFailure):
            TrackerClient(api_token='tok').create_task(RecordKind.ORDER, TaskFields(kind=RecordKind.ORDER, title='x'))

    def test_http_error_becomes_upstream_failure(self, configured, mocker):
        mocker.patch.object(httpx.Client, 'request', return_value=make_response('PUT', status_code=500))
        with pytest.raises(UpstreamFailure):
            TrackerClient(api_token='tok').update_task('T-100', TaskFields(kind=RecordKind.RFQ, title='Quote 7'))

    def test_transport_error_becomes_upstream_failure(self, configured, mocker):
        mocker.patch.object(httpx.Client, 'request', side_effect=httpx.ConnectError('refused'))
        with pytest.raises(UpstreamFailure):
            TrackerClient(api_token='tok').update_task('T-100', TaskFields(kind=RecordKind.RFQ, title='Quote 7'))

    def test_get_task_attachment(self, configured, mocker):
        mocker.patch.object(httpx.Client, 'request', side_effect=[
            make_response('GET', json={'data': [{'id': 'A1', 'name': 'PO-5521.pdf'}]}),
            make_response('GET', content=b'%PDF'),
        ])

        attachment = TrackerClient(api_token='tok').get_task_attachment('T9')

        assert attachment == ('PO-5521.pdf', b'%PDF')

    def test_no_attachment(self, configured, mocker):
        mocker.patch.object(httpx.Client, 'request', return_value=make_response('GET', json={'data': []}))
        assert TrackerClient(api_token='tok').get_task_attachment('T9') is None


class TestRegistryClient:

    @pytest.fixture
    def client(self, configured, mocker):
        registry = RegistryClient()
        mocker.patch.object(registry, 'get_access_token', return_value='graph-token')
        return registry

    def test_fetch_recent_records(self, client, mocker):
        send = mocker.patch.object(
            httpx.Client, 'request',
            return_value=make_response('GET', json={'value': [{'id': '1'}, {'id': '2'}, {'id': '3'}]}),
        )

        items = client.fetch_recent_records(RecordKind.RFQ, 2)

        assert [i['id'] for i in items] == ['1', '2']
        params = send.call_args.kwargs['params']
        assert params['$top'] == 2
        assert params['$orderby'] == 'fields/Modified desc'
        assert 'ContentType' in params['$filter']
        assert send.call_args.kwargs['headers']['Authorization'] == 'Bearer graph-token'

    def test_send_mutation_body(self, client, mocker):
        send = mocker.patch.object(httpx.Client, 'request', return_value=make_response('PATCH', status_code=202))

        client.send_mutation(Mutation('RFQ', 7, Operation.ADD, 'assignee', 'Dana Reyes'))

        assert send.call_args.args == ('PATCH', 'https://flows.example/mutate')
        assert send.call_args.kwargs['json'] == {
            'resource': 'RFQ', 'data': 'Dana Reyes', 'id': 7,
            'type': 'ADD', 'name': 'null', 'field': 'assignee',
        }

    def test_mutation_failure(self, client, mocker):
        mocker.patch.object(httpx.Client, 'request', return_value=make_response('PATCH', status_code=502))
        with pytest.raises(UpstreamFailure):
            client.send_mutation(Mutation('RFQ', 7, Operation.REMOVE, 'reviewer'))

    def test_upload_order(self, client, mocker):
        send = mocker.patch.object(httpx.Client, 'request', return_value=make_response('POST'))

        client.upload_order('JVBERg==', 'PO-5521.pdf')

        assert send.call_args.kwargs['json'] == {'file': 'JVBERg==', 'name': 'PO-5521.pdf'}

    def test_token_is_cached(self, configured, mocker):
        post = mocker.patch.object(
            httpx.Client, 'post',
            return_value=make_response('POST', json={'access_token': 'abc', 'expires_in': 3600}),
        )
        registry = RegistryClient()

        assert registry.get_access_token() == 'abc'
        assert registry.get_access_token() == 'abc'
        post.assert_called_once()
