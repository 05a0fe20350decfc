"""
pytest configuration and fixtures for record sync tests.
"""
import sys
from pathlib import Path

import pytest

# Add project root to Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from modules.record_sync.config import Config
from modules.record_sync.db import Database
from modules.record_sync.sync_engine import SyncEngine
from modules.record_sync.webhooks import create_app

HOOK_SECRET = 'test-hook-secret'
CLIENT_STATE = 'test-client-state'
RFQ_REVIEWER_FIELD = 'IEAF5SOTJUAAREVW'


@pytest.fixture
def project_root():
    """Return the project root path."""
    return PROJECT_ROOT


@pytest.fixture
def settings():
    """Config with test secrets and small reconciliation bounds."""
    cfg = Config()
    cfg.TRACKER_HOOK_SECRET = HOOK_SECRET
    cfg.REGISTRY_CLIENT_STATE = CLIENT_STATE
    cfg.TRACKER_REVIEWER_FIELDS = {'rfq': RFQ_REVIEWER_FIELD, 'datasheet': 'IEAF5SOTJUAADSREV'}
    cfg.REGISTRY_ITEM_URL = ''
    cfg.REGISTRY_SYSTEM_ACCOUNT = 'System'
    cfg.RECONCILE_MAX_ITEMS = 50
    cfg.RECONCILE_TIME_BUDGET = 10
    cfg.RECONCILE_WORKERS = 3
    cfg.RECONCILE_DAILY_LIMIT = 75
    cfg.NOTIFICATION_RECONCILE_LIMIT = 5
    cfg.API_KEY = ''
    return cfg


@pytest.fixture
def test_db_path(tmp_path):
    """Create a temporary database path for testing."""
    return tmp_path / "test_record_sync.db"


@pytest.fixture
def store(test_db_path):
    """Open record store on a temporary file."""
    database = Database(test_db_path).open()
    yield database
    database.close()


@pytest.fixture
def identities(store):
    """Users known to both systems."""
    store.upsert_identity('W9', 'reg-42', 'Dana Reyes')
    store.upsert_identity('W7', 'reg-17', 'Sam Ortiz')
    return store


@pytest.fixture
def tracker(mocker):
    """Tracker collaborator double; creates tasks T-<registry id>."""
    mock = mocker.Mock()
    mock.create_task.side_effect = lambda kind, fields: f"T-{fields.registry_id}"
    mock.update_task.return_value = True
    mock.get_task_attachment.return_value = None
    return mock


@pytest.fixture
def registry(mocker):
    """Registry collaborator double."""
    mock = mocker.Mock()
    mock.fetch_recent_records.return_value = []
    mock.send_mutation.return_value = True
    mock.upload_order.return_value = True
    return mock


@pytest.fixture
def engine(store, tracker, registry, settings):
    sync_engine = SyncEngine(store, tracker, registry, settings)
    yield sync_engine
    sync_engine.shutdown()


@pytest.fixture
def app(engine, settings):
    flask_app = create_app(engine, settings)
    flask_app.config['TESTING'] = True
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


def make_rfq_item(registry_id, **fields):
    """Registry RFQ list item as returned by the list API."""
    base = {
        'Title': f'Quote {registry_id}',
        'Status': 'In Progress',
        'Priority': 'High',
        'Customer_x0020_Name': 'Acme Corp',
        'Modified': '2024-03-11T09:00:00Z',
        '_dlc_DocIdUrl': {'Url': f'https://registry.example/docs/{registry_id}'},
    }
    base.update(fields)
    return {
        'id': str(registry_id),
        'createdDateTime': '2024-03-10T08:00:00Z',
        'createdBy': {'user': {'displayName': 'Dana Reyes'}},
        'fields': base,
    }


@pytest.fixture
def sample_rfq():
    return make_rfq_item(
        7,
        AssignedLookupId='reg-42',
        ReviewerLookupId='reg-17',
        Internal_x0020_Due_x0020_Date='2024-03-05T00:00:00Z',
        Customer_x0020_Requested_x0020_Date='2024-03-08T00:00:00Z',
    )


@pytest.fixture
def sample_order():
    return {
        'id': '31',
        'createdDateTime': '2024-04-02T15:30:00Z',
        'createdBy': {'user': {'displayName': 'System'}},
        'fields': {
            'FileLeafRef': 'PO-5521.pdf',
            'CustomerName': 'Acme Corp',
            'PONumber': '5521',
            'AuthorLookupId': 'reg-42',
            '_dlc_DocIdUrl': {'Url': 'https://registry.example/orders/31'},
        },
    }
