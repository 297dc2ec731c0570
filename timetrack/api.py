"""
Client for the remote project/session JSON API.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = 'http://localhost:5174'
DEFAULT_TIMEOUT = 10.0


class ApiError(Exception):
    """A remote call failed: transport error, non-2xx status or bad body."""

    def __init__(self, message: str, status_code: Optional[int] = None, url: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


@dataclass(frozen=True)
class Principal:
    """The authenticated user on whose behalf remote calls are made."""
    uid: str
    token: Optional[str] = None


def resolve_base_url(explicit: Optional[str] = None, stored: Optional[str] = None) -> str:
    """
    Pick the API base URL.

    Priority: explicit argument, ``TIMETRACK_API_URL``, stored setting, default.
    """
    for candidate in (explicit, os.environ.get('TIMETRACK_API_URL'), stored):
        if candidate:
            return candidate.rstrip('/')
    return DEFAULT_BASE_URL


class ApiClient:
    """
    Thin synchronous wrapper over ``httpx.Client``.

    Every method raises ``ApiError`` on failure and returns the decoded JSON
    body on success.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        principal: Optional[Principal] = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None
    ):
        self.base_url = resolve_base_url(base_url)
        self._principal = principal
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={'Content-Type': 'application/json', 'Accept': 'application/json'},
        )

    @property
    def principal(self) -> Optional[Principal]:
        return self._principal

    def set_principal(self, principal: Optional[Principal]):
        self._principal = principal

    def close(self):
        self._client.close()

    def __enter__(self) -> 'ApiClient':
        return self

    def __exit__(self, *exc_info):
        self.close()

    def _headers(self) -> Dict[str, str]:
        if self._principal is None:
            return {}
        headers = {'X-User-Id': self._principal.uid}
        if self._principal.token:
            headers['Authorization'] = f'Bearer {self._principal.token}'
        return headers

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        url = f'{self.base_url}{path}'
        try:
            response = self._client.request(method, path, json=payload, headers=self._headers())
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise ApiError(f'API request failed at {url}: {e}', url=url) from e

        if response.is_error:
            text = response.text or ''
            hint = ''
            if 'Cannot' in text:
                hint = f' (check API base {self.base_url} and that the server is running)'
            raise ApiError(
                f'API {response.status_code} {response.reason_phrase} at {url}{hint}',
                status_code=response.status_code,
                url=url,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ApiError(f'API returned invalid JSON at {url}', status_code=response.status_code, url=url) from e

    # ==================== Projects ====================

    def create_project(self, name: str, description: str = '') -> Dict[str, Any]:
        return self._request('POST', '/projects', {'name': name, 'description': description})

    def list_projects(self) -> List[Dict[str, Any]]:
        result = self._request('GET', '/projects')
        return result if isinstance(result, list) else []

    def get_project(self, remote_id: str) -> Dict[str, Any]:
        return self._request('GET', f'/projects/{remote_id}')

    def patch_project(self, remote_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        return self._request('PATCH', f'/projects/{remote_id}', changes)

    def delete_project(self, remote_id: str) -> Any:
        return self._request('DELETE', f'/projects/{remote_id}')

    # ==================== Sessions ====================

    def post_session(self, remote_id: str, session: Dict[str, Any]) -> Dict[str, Any]:
        """
        Append a session to a remote project.

        Args:
            remote_id: The project's id on the server.
            session: ``{type, start, end, durationMs}`` with ISO-8601 instants.

        Returns:
            The updated project snapshot ``{id, name, totalMs, sessions}``.
        """
        return self._request('POST', f'/projects/{remote_id}/sessions', session)
