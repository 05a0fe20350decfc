"""Configuration for Record Sync module."""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env from project root
PROJECT_ROOT = Path(__file__).parent.parent.parent
load_dotenv(PROJECT_ROOT / '.env')


class Config:
    """Configuration settings for Tracker ↔ Registry sync."""

    def __init__(self):
        # Environment
        self.ENV = os.getenv('RECORD_SYNC_ENV', 'dev')

        # Tracker (task system, webhook source)
        self.TRACKER_HOOK_SECRET = os.getenv('TRACKER_HOOK_SECRET', '')
        self.TRACKER_API_TOKEN = os.getenv('TRACKER_API_TOKEN', '')
        self.TRACKER_BASE_URL = os.getenv('TRACKER_BASE_URL', 'https://www.wrike.com/api/v4')
        self.TRACKER_FOLDERS = {
            'rfq': os.getenv('TRACKER_FOLDER_RFQ', ''),
            'datasheet': os.getenv('TRACKER_FOLDER_DATASHEET', ''),
            'order': os.getenv('TRACKER_FOLDER_ORDER', ''),
        }
        self.TRACKER_REVIEWER_FIELDS = {
            'rfq': os.getenv('TRACKER_REVIEWER_FIELD_RFQ', ''),
            'datasheet': os.getenv('TRACKER_REVIEWER_FIELD_DATASHEET', ''),
        }

        # Registry (list system, reconciliation source)
        self.REGISTRY_TENANT_ID = os.getenv('REGISTRY_TENANT_ID', '')
        self.REGISTRY_CLIENT_ID = os.getenv('REGISTRY_CLIENT_ID', '')
        self.REGISTRY_CLIENT_SECRET = os.getenv('REGISTRY_CLIENT_SECRET', '')
        self.REGISTRY_BASE_URL = os.getenv('REGISTRY_BASE_URL', 'https://graph.microsoft.com/v1.0')
        self.REGISTRY_SITE_ID = os.getenv('REGISTRY_SITE_ID', '')
        self.REGISTRY_LISTS = {
            'rfq': os.getenv('REGISTRY_LIST_RFQ', ''),
            'datasheet': os.getenv('REGISTRY_LIST_DATASHEET', ''),
            'order': os.getenv('REGISTRY_LIST_ORDER', ''),
        }
        self.REGISTRY_CLIENT_STATE = os.getenv('REGISTRY_CLIENT_STATE', '')
        self.REGISTRY_MUTATION_URL = os.getenv('REGISTRY_MUTATION_URL', '')
        self.REGISTRY_ORDER_UPLOAD_URL = os.getenv('REGISTRY_ORDER_UPLOAD_URL', '')
        self.REGISTRY_SYSTEM_ACCOUNT = os.getenv('REGISTRY_SYSTEM_ACCOUNT', 'System')
        self.REGISTRY_ITEM_URL = os.getenv('REGISTRY_ITEM_URL', '')

        # Database
        self.DB_PATH = Path(os.getenv('RECORD_SYNC_DB_PATH', str(PROJECT_ROOT / 'data' / 'record_sync.db')))

        # Outbound calls (seconds)
        self.HTTP_TIMEOUT = float(os.getenv('HTTP_TIMEOUT', '30'))

        # Reconciliation
        self.RECONCILE_DAILY_LIMIT = int(os.getenv('RECONCILE_DAILY_LIMIT', '75'))
        self.NOTIFICATION_RECONCILE_LIMIT = int(os.getenv('NOTIFICATION_RECONCILE_LIMIT', '5'))
        self.RECONCILE_MAX_ITEMS = int(os.getenv('RECONCILE_MAX_ITEMS', '200'))
        self.RECONCILE_TIME_BUDGET = float(os.getenv('RECONCILE_TIME_BUDGET', '240'))
        self.RECONCILE_WORKERS = int(os.getenv('RECONCILE_WORKERS', '5'))
        self.RECONCILE_INTERVAL = int(os.getenv('RECONCILE_INTERVAL', '86400'))

        # API server (webhooks)
        self.API_HOST = os.getenv('RECORD_SYNC_API_HOST', '127.0.0.1')
        self.API_PORT = int(os.getenv('RECORD_SYNC_API_PORT', '5501'))
        self.API_KEY = os.getenv('RECORD_SYNC_API_KEY', '')

        # Logging
        self.LOG_LEVEL = os.getenv('RECORD_SYNC_LOG_LEVEL', 'INFO')
        self.LOG_FILE = os.getenv('RECORD_SYNC_LOG_FILE', '')

    def is_dev(self) -> bool:
        return self.ENV == 'dev'

    def is_prod(self) -> bool:
        return self.ENV == 'prod'

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if not self.TRACKER_HOOK_SECRET:
            errors.append('TRACKER_HOOK_SECRET not set')

        if not self.TRACKER_API_TOKEN:
            errors.append('TRACKER_API_TOKEN not set')

        if not self.REGISTRY_CLIENT_STATE:
            errors.append('REGISTRY_CLIENT_STATE not set')

        if not (self.REGISTRY_TENANT_ID and self.REGISTRY_CLIENT_ID and self.REGISTRY_CLIENT_SECRET):
            errors.append('REGISTRY_TENANT_ID, REGISTRY_CLIENT_ID and REGISTRY_CLIENT_SECRET are required')

        if not self.REGISTRY_MUTATION_URL:
            errors.append('REGISTRY_MUTATION_URL not set')

        for kind, list_id in self.REGISTRY_LISTS.items():
            if not list_id:
                errors.append(f'REGISTRY_LIST_{kind.upper()} not set')

        return errors


# Module-level singleton
config = Config()
