"""
Registry API client for Record Sync.

Reads recently modified list items, and pushes field mutations and order
uploads through the configured flow endpoints.
"""

import logging
import threading
import time
from typing import Optional

import httpx

from .config import config
from .exceptions import UpstreamFailure
from .models import Mutation, RecordKind

logger = logging.getLogger(__name__)

TOKEN_URL = 'https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token'
TOKEN_SCOPE = 'https://graph.microsoft.com/.default'

# Content type filter per list (only the RFQ list mixes content types)
CONTENT_TYPE_FILTERS = {
    RecordKind.RFQ: "fields/ContentType eq 'Request for Quote'",
}


class RegistryClient:
    """Registry (list store) API client."""

    def __init__(self, timeout: Optional[float] = None):
        self.base_url = config.REGISTRY_BASE_URL
        self.timeout = timeout or config.HTTP_TIMEOUT
        self._token: Optional[str] = None
        self._token_expires_at = 0.0
        self._token_lock = threading.Lock()

    # ==========================================================================
    # Auth
    # ==========================================================================

    def get_access_token(self) -> str:
        """Client-credentials bearer token, cached until shortly before expiry."""
        with self._token_lock:
            if self._token and time.time() < self._token_expires_at - 60:
                return self._token

            url = TOKEN_URL.format(tenant=config.REGISTRY_TENANT_ID)
            form = {
                'grant_type': 'client_credentials',
                'client_id': config.REGISTRY_CLIENT_ID,
                'client_secret': config.REGISTRY_CLIENT_SECRET,
                'scope': TOKEN_SCOPE,
            }
            try:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.post(url, data=form)
                    response.raise_for_status()
                    data = response.json()
            except httpx.HTTPError as e:
                raise UpstreamFailure(f"Registry token request failed: {e}") from e

            self._token = data['access_token']
            self._token_expires_at = time.time() + int(data.get('expires_in', 3600))
            return self._token

    def _get_headers(self) -> dict:
        """Get request headers."""
        return {
            'Authorization': f'Bearer {self.get_access_token()}',
            'Accept': 'application/json',
            'Prefer': 'HonorNonIndexedQueriesWarningMayFailRandomly',
        }

    def _request(
        self,
        method: str,
        url: str,
        params: Optional[dict] = None,
        json_data: Optional[dict] = None,
        headers: Optional[dict] = None,
    ) -> httpx.Response:
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.request(
                    method,
                    url,
                    headers=headers,
                    params=params,
                    json=json_data,
                )
                response.raise_for_status()
                return response
        except httpx.HTTPError as e:
            raise UpstreamFailure(f"Registry {method} {url} failed: {e}") from e

    # ==========================================================================
    # List items
    # ==========================================================================

    def fetch_recent_records(self, kind: RecordKind, limit: int) -> list[dict]:
        """Most recently modified list items of a kind, newest first."""
        list_id = config.REGISTRY_LISTS.get(kind.value)
        if not list_id:
            raise UpstreamFailure(f"No Registry list configured for {kind.value}")

        url = f"{self.base_url}/sites/{config.REGISTRY_SITE_ID}/lists/{list_id}/items"
        params = {
            'expand': 'fields',
            '$orderby': 'fields/Modified desc',
            '$top': limit,
        }
        if kind in CONTENT_TYPE_FILTERS:
            params['$filter'] = CONTENT_TYPE_FILTERS[kind]

        response = self._request('GET', url, params=params, headers=self._get_headers())
        items = response.json().get('value', [])
        logger.debug(f"Fetched {len(items)} {kind.value} records from Registry")
        return items[:limit]

    # ==========================================================================
    # Flow endpoints
    # ==========================================================================

    def send_mutation(self, mutation: Mutation) -> bool:
        """PATCH one field mutation to the Registry mutation flow."""
        if not config.REGISTRY_MUTATION_URL:
            raise UpstreamFailure("REGISTRY_MUTATION_URL not set")

        self._request(
            'PATCH',
            config.REGISTRY_MUTATION_URL,
            json_data=mutation.to_body(),
            headers={'Content-Type': 'application/json'},
        )
        logger.info(
            f"Sent {mutation.operation.value} {mutation.field} for "
            f"{mutation.resource} {mutation.registry_id}"
        )
        return True

    def upload_order(self, content_b64: str, file_name: str) -> bool:
        """Upload an order document to the Registry order library."""
        if not config.REGISTRY_ORDER_UPLOAD_URL:
            raise UpstreamFailure("REGISTRY_ORDER_UPLOAD_URL not set")

        self._request(
            'POST',
            config.REGISTRY_ORDER_UPLOAD_URL,
            json_data={'file': content_b64, 'name': file_name},
            headers={'Content-Type': 'application/json'},
        )
        logger.info(f"Uploaded order {file_name}")
        return True


# Module-level instance
registry_client = RegistryClient()
