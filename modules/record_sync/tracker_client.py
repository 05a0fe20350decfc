"""
Tracker API client for Record Sync.

Creates and updates tasks in the per-kind folders and fetches task
attachments for order uploads.
"""

import logging
from typing import Optional

import httpx

from .config import config
from .exceptions import UpstreamFailure
from .models import RecordKind, TaskFields

logger = logging.getLogger(__name__)


class TrackerClient:
    """Tracker REST API client."""

    def __init__(self, api_token: Optional[str] = None, base_url: Optional[str] = None, timeout: Optional[float] = None):
        self.api_token = api_token or config.TRACKER_API_TOKEN
        self.base_url = base_url or config.TRACKER_BASE_URL
        self.timeout = timeout or config.HTTP_TIMEOUT

    def _get_headers(self) -> dict:
        """Get request headers."""
        return {
            'Authorization': f'Bearer {self.api_token}',
            'Accept': 'application/json',
        }

    def _send(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        data: Optional[dict] = None,
    ) -> httpx.Response:
        url = f"{self.base_url}/{endpoint}"
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.request(
                    method,
                    url,
                    headers=self._get_headers(),
                    params=params,
                    data=data,
                )
                response.raise_for_status()
                return response
        except httpx.HTTPError as e:
            raise UpstreamFailure(f"Tracker {method} {endpoint} failed: {e}") from e

    def _request(self, method: str, endpoint: str, **kwargs) -> dict:
        """Make a request and return the decoded JSON body."""
        response = self._send(method, endpoint, **kwargs)
        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    # ==========================================================================
    # Tasks
    # ==========================================================================

    def create_task(self, kind: RecordKind, fields: TaskFields) -> str:
        """Create a task in the kind's folder. Returns the new task id."""
        folder_id = config.TRACKER_FOLDERS.get(kind.value)
        if not folder_id:
            raise UpstreamFailure(f"No Tracker folder configured for {kind.value}")

        body = fields.to_api(config.TRACKER_REVIEWER_FIELDS.get(kind.value))
        data = self._request('POST', f'folders/{folder_id}/tasks', data=body)
        tasks = data.get('data') or []
        if not tasks:
            raise UpstreamFailure(f"Tracker returned no task for {fields.title!r}")

        task_id = tasks[0]['id']
        logger.info(f"Created Tracker task {task_id}: {fields.title}")
        return task_id

    def update_task(self, tracker_id: str, fields: TaskFields) -> bool:
        """Overwrite a task's synced fields."""
        body = fields.to_api(config.TRACKER_REVIEWER_FIELDS.get(fields.kind.value))
        # Updates add responsibles instead of replacing the list
        if 'responsibles' in body:
            body['addResponsibles'] = body.pop('responsibles')

        self._request('PUT', f'tasks/{tracker_id}', data=body)
        logger.info(f"Updated Tracker task {tracker_id}")
        return True

    # ==========================================================================
    # Attachments
    # ==========================================================================

    def get_task_attachment(self, tracker_id: str) -> Optional[tuple[str, bytes]]:
        """First attachment of a task as (file name, content), or None."""
        data = self._request('GET', f'tasks/{tracker_id}/attachments')
        attachments = data.get('data') or []
        if not attachments:
            return None

        attachment = attachments[0]
        response = self._send('GET', f"attachments/{attachment['id']}/download")
        return attachment['name'], response.content


# Module-level instance
tracker_client = TrackerClient()
