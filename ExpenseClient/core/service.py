"""Expense service HTTP integration.

Provides a thin client over the expense REST API: liveness, listing, create,
update, delete and statistics. Transport problems are raised as
:class:`~ExpenseClient.status.status.ServiceUnavailableException`, non-success
answers as :class:`~ExpenseClient.status.status.RemoteRequestException`; callers in
the sync layer turn both into offline behaviour.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from .models import ExpenseFilters, ExpenseRecord
from ..status import status

DEFAULT_PROBE_TIMEOUT: float = 5.0
DEFAULT_REQUEST_TIMEOUT: float = 10.0


class ExpenseService:
    """Client for the expense REST API.

    Args:
        base_url: API root, e.g. ``http://localhost:5000/api``.
        health_path: Path of the liveness endpoint.
        probe_timeout: Timeout in seconds for the liveness request.
        request_timeout: Timeout in seconds for every other request.
        transport: Optional httpx transport, used by tests to serve a fake backend.
    """

    def __init__(
            self,
            base_url: str,
            health_path: str = '/health',
            probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
            request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
            transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip('/')
        self.health_path = health_path
        self.probe_timeout = float(probe_timeout)
        self.request_timeout = float(request_timeout)
        self._transport = transport
        self._client: Optional[httpx.Client] = None

    @classmethod
    def from_settings(cls, settings: Any, transport: Optional[httpx.BaseTransport] = None) -> 'ExpenseService':
        """Build a service from the ``remote`` settings section."""
        config: Dict[str, Any] = settings.get_section('remote')
        return cls(
            settings.base_url,
            health_path=config.get('health_path', '/health'),
            probe_timeout=config.get('probe_timeout', DEFAULT_PROBE_TIMEOUT),
            request_timeout=config.get('request_timeout', DEFAULT_REQUEST_TIMEOUT),
            transport=transport,
        )

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.base_url,
                timeout=self.request_timeout,
                transport=self._transport,
                headers={'Content-Type': 'application/json'},
            )
            logging.debug(f'HTTP client created for {self.base_url}.')
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def _send(self, method: str, path: str, timeout: Optional[float] = None, **kwargs: Any) -> httpx.Response:
        """Issue a request and return the response of a successful answer.

        Raises:
            status.ServiceUnavailableException: On timeouts and network errors.
            status.RemoteRequestException: On non-2xx answers.
        """
        url = f'{self.base_url}{path}'
        try:
            response = self.client.request(
                method, url, timeout=timeout if timeout is not None else self.request_timeout, **kwargs
            )
        except httpx.TimeoutException as ex:
            raise status.ServiceUnavailableException(f'Timeout on {method} {path}: {ex}') from ex
        except httpx.TransportError as ex:
            raise status.ServiceUnavailableException(f'{method} {path} failed: {ex}') from ex

        if not response.is_success:
            try:
                body = response.json() if response.content else None
            except ValueError:
                body = None
            message = body.get('message') if isinstance(body, dict) else None
            raise status.RemoteRequestException(
                f'{method} {path} returned HTTP {response.status_code}: {message or response.reason_phrase}',
                status_code=response.status_code,
            )
        return response

    def _request(self, method: str, path: str, timeout: Optional[float] = None, **kwargs: Any) -> Any:
        """Issue a request and return the decoded JSON body.

        Raises:
            status.ServiceUnavailableException: On timeouts and network errors.
            status.RemoteRequestException: On non-2xx answers or unreadable bodies.
        """
        response = self._send(method, path, timeout=timeout, **kwargs)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as ex:
            raise status.RemoteRequestException(
                f'{method} {path} returned a body that is not JSON.', status_code=response.status_code
            ) from ex

    @staticmethod
    def _data(body: Any, path: str) -> Any:
        if not isinstance(body, dict) or 'data' not in body:
            raise status.RemoteRequestException(f'Response of {path} has no "data" field.')
        return body['data']

    @staticmethod
    def _record(data: Any, path: str) -> ExpenseRecord:
        if not isinstance(data, dict) or data.get('id') in (None, ''):
            raise status.RemoteRequestException(f'Response of {path} is not an expense record.')
        try:
            return ExpenseRecord.from_dict(data)
        except (KeyError, TypeError, AttributeError, ValueError) as ex:
            raise status.RemoteRequestException(f'Response of {path} is malformed: {ex}') from ex

    def ping(self) -> None:
        """Request the liveness endpoint within the probe timeout.

        Any 2xx answer counts as alive, whatever the body.

        Raises:
            status.ServiceUnavailableException: If the service cannot be reached in time.
            status.RemoteRequestException: If the service answers with a non-success status.
        """
        self._send('GET', self.health_path, timeout=self.probe_timeout)

    def list_expenses(self, filters: Optional[ExpenseFilters] = None) -> List[ExpenseRecord]:
        """Fetch the authoritative expense list.

        Args:
            filters: Optional category and date range filters.

        Returns:
            List[ExpenseRecord]: Records as returned by the service.
        """
        params = filters.to_params() if filters else {}
        body = self._request('GET', '/expenses', params=params)
        data = self._data(body, '/expenses') or []
        if not isinstance(data, list):
            raise status.RemoteRequestException('Response of /expenses is not a list.')
        records = [self._record(item, '/expenses') for item in data]
        logging.debug(f'Fetched {len(records)} expense(s) from the service.')
        return records

    def create_expense(self, payload: Dict[str, Any]) -> ExpenseRecord:
        body = self._request('POST', '/expenses', json=payload)
        return self._record(self._data(body, '/expenses'), '/expenses')

    def update_expense(self, record_id: str, payload: Dict[str, Any]) -> ExpenseRecord:
        path = f'/expenses/{record_id}'
        body = self._request('PUT', path, json=payload)
        return self._record(self._data(body, path), path)

    def delete_expense(self, record_id: str) -> None:
        """Delete a record on the service.

        Any 2xx answer counts as deleted, whatever the body. A record the service
        no longer knows (HTTP 404) counts as deleted too.
        """
        try:
            self._send('DELETE', f'/expenses/{record_id}')
        except status.RemoteRequestException as ex:
            if ex.status_code != 404:
                raise
            logging.info(f'Expense "{record_id}" was already gone from the service.')

    def fetch_statistics(self) -> Dict[str, Any]:
        """Fetch totals computed by the service.

        Returns:
            Dict[str, Any]: ``total``, ``count`` and ``expensesByCategory``.
        """
        path = '/expenses/summary/statistics'
        data = self._data(self._request('GET', path), path)
        if not isinstance(data, dict):
            raise status.RemoteRequestException(f'Response of {path} is malformed.')
        return data
