"""HTTP client for a connector's external API.

The remote contract is deliberately small: ``GET`` on the connector
endpoint returns a JSON array of flat objects, writes accept a JSON object
and answer with any 2xx.  Transient failures (connection errors, 429,
502, 503, 504) are retried a bounded number of times with exponential
backoff by urllib3's ``Retry`` mounted on the session.
"""

import logging
import threading
from datetime import datetime
from typing import Any
from urllib.parse import quote

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..config_schema import ConnectorConfig
from ..errors import ConfigurationError, DetectionError, RemoteAPIError

logger = logging.getLogger(__name__)

RETRY_STATUSES = (429, 502, 503, 504)


class RemoteClient:
    def __init__(self, connector: ConnectorConfig):
        self.connector = connector
        self._thread_local = threading.local()
        self._auth_headers = self._build_auth_headers()

    @property
    def session(self) -> requests.Session:
        """The current thread's session."""
        return self._get_session()

    def _build_auth_headers(self) -> dict[str, str]:
        auth = self.connector.auth
        match auth.method:
            case "none" | "basic":
                return {}
            case "bearer":
                if not auth.token:
                    raise ConfigurationError(
                        f"Connector '{self.connector.id}' uses bearer auth but has no token"
                    )
                return {"Authorization": f"Bearer {auth.token}"}
            case "api_key":
                if not auth.api_key:
                    raise ConfigurationError(
                        f"Connector '{self.connector.id}' uses api_key auth but has no key"
                    )
                return {auth.api_key_header: auth.api_key}
            case _:
                raise ConfigurationError(
                    f"Unsupported auth method: {auth.method}"
                )

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        auth = self.connector.auth
        if auth.method == "basic":
            session.auth = (auth.username or "", auth.password or "")
        session.headers.update({"Content-Type": "application/json"})
        session.headers.update(self.connector.headers)
        session.headers.update(self._auth_headers)

        retry = Retry(
            total=self.connector.max_retries,
            backoff_factor=self.connector.backoff_factor,
            status_forcelist=RETRY_STATUSES,
            allowed_methods=frozenset({"GET", "POST", "DELETE"}),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def fetch_records(
        self, since: datetime | None = None
    ) -> list[dict[str, Any]]:
        """
        Fetch candidate records from the connector endpoint.

        ``since`` is sent as an ``updated_since`` query hint; servers that
        ignore it simply return more records.

        Raises:
            DetectionError: On network failure, non-2xx status, or a body
                that is not a JSON array.
        """
        params = {"updated_since": since.isoformat()} if since else None
        try:
            response = self._get_session().get(
                self.connector.endpoint,
                params=params,
                timeout=self.connector.timeout,
            )
        except requests.RequestException as exc:
            raise DetectionError(f"Remote API unreachable: {exc}") from exc

        if not _is_success(response):
            raise DetectionError(
                f"Remote API error: {response.status_code}"
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise DetectionError(
                "Remote API returned a non-JSON body"
            ) from exc

        if not isinstance(data, list):
            raise DetectionError(
                f"Remote API returned {type(data).__name__}, expected an array"
            )

        records = [item for item in data if isinstance(item, dict)]
        if len(records) != len(data):
            logger.warning(
                "Ignored %d non-object item(s) from %s",
                len(data) - len(records),
                self.connector.endpoint,
            )
        return records

    def push_record(self, payload: dict[str, Any]) -> None:
        """
        Create or update one record on the remote side.

        Raises:
            RemoteAPIError: If the request fails or returns non-2xx.
        """
        self._send("POST", self.connector.resolved_write_endpoint, payload)

    def delete_record(self, record_id: str) -> None:
        """
        Delete one record on the remote side.

        Raises:
            RemoteAPIError: If the request fails or returns non-2xx.
        """
        base = self.connector.resolved_write_endpoint.rstrip("/")
        self._send("DELETE", f"{base}/{quote(record_id, safe='')}", None)

    def _send(
        self, method: str, url: str, payload: dict[str, Any] | None
    ) -> None:
        try:
            response = self._get_session().request(
                method,
                url,
                json=payload,
                timeout=self.connector.timeout,
            )
        except requests.RequestException as exc:
            raise RemoteAPIError(f"Remote API unreachable: {exc}") from exc

        if not _is_success(response):
            raise RemoteAPIError(
                f"Remote API error: {response.status_code}",
                status_code=response.status_code,
            )


def _is_success(response: requests.Response) -> bool:
    """Only 2xx counts; ``response.ok`` also accepts redirects."""
    return 200 <= response.status_code < 300
