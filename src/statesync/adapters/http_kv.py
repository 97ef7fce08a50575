"""
HTTP adapter for an edge key-value store.

Talks to a Cloudflare-KV-shaped REST API:
    GET/PUT {base_url}/accounts/{account_id}/storage/kv/namespaces/{namespace}/values/{key}

The stored value is a JSON envelope {"blob", "fingerprint", "updatedAt"}.
Transient failures (network errors, 429, 5xx) are retried with exponential
backoff; auth and validation failures are not.
"""

import json
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Dict, Optional
from urllib.parse import quote

import requests

from ..core.adapter import RemoteBlob, RemoteStoreAdapter
from ..errors import AdapterError


logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.cloudflare.com/client/v4"
RETRYABLE_STATUS = {408, 425, 429, 500, 502, 503, 504}


class HttpKeyValueAdapter(RemoteStoreAdapter):
    """
    Edge key-value store adapter over HTTP.
    
    Supports:
    - Bearer token auth
    - Retries with exponential backoff (honoring Retry-After)
    - Rate limiting between requests
    """

    def __init__(
        self,
        name: str = "edge",
        base_url: str = DEFAULT_BASE_URL,
        api_token: str = "",
        account_id: str = "",
        namespace: str = "",
        timeout: int = 30,
        max_retries: int = 3,
        base_backoff_seconds: float = 1.0,
        max_backoff_seconds: float = 30.0,
        rate_limit_delay: float = 0.0,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the HTTP key-value adapter.
        
        Args:
            name: Adapter name
            base_url: API root
            api_token: Bearer token
            account_id: Account identifier in the URL path
            namespace: Key-value namespace identifier
            timeout: Request timeout in seconds
            max_retries: Maximum attempts per call
            base_backoff_seconds: Delay before the first retry (doubles each time)
            max_backoff_seconds: Cap on a single backoff delay
            rate_limit_delay: Minimum seconds between requests
            session: Optional preconfigured session
            sleep: Sleep function (injectable for tests)
        """
        self.name = name
        self.base_url = base_url.rstrip("/")
        self.account_id = account_id
        self.namespace = namespace
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.base_backoff_seconds = base_backoff_seconds
        self.max_backoff_seconds = max_backoff_seconds
        self.rate_limit_delay = rate_limit_delay
        self.last_request_time = 0.0
        self._sleep = sleep

        self.session = session or requests.Session()
        if api_token:
            self.session.headers["Authorization"] = f"Bearer {api_token}"
        self.session.headers.setdefault("User-Agent", "statesync/1.0")

    def _value_url(self, key: str) -> str:
        return (
            f"{self.base_url}/accounts/{self.account_id}/storage/kv/namespaces/"
            f"{self.namespace}/values/{quote(key, safe='')}"
        )

    def retrieve(self, key: str) -> Optional[RemoteBlob]:
        response = self._request("GET", self._value_url(key))
        if response.status_code == 404:
            return None

        try:
            content = json.loads(response.text)
            return RemoteBlob.from_dict(content)
        except (ValueError, KeyError, TypeError) as e:
            raise AdapterError(f"parse error: {e}", adapter=self.name, retryable=False) from e

    def store(self, key: str, payload: RemoteBlob) -> None:
        envelope = dict(payload.to_dict(), updatedAt=datetime.now(timezone.utc).isoformat())
        response = self._request(
            "PUT",
            self._value_url(key),
            data=json.dumps(envelope, ensure_ascii=False).encode("utf-8"),
            headers={"Content-Type": "application/json"},
        )

        # The KV API wraps write results as {"success": bool, "errors": [...]}
        try:
            body = response.json()
        except ValueError:
            body = {}
        if isinstance(body, dict) and body.get("success") is False:
            raise AdapterError(
                f"store rejected: {body.get('errors')}",
                adapter=self.name,
                retryable=False,
                status_code=response.status_code,
            )

    def _request(
        self,
        method: str,
        url: str,
        data: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> requests.Response:
        """
        Issue a request with retry.
        
        Returns:
            Response with a 2xx status or 404
            
        Raises:
            AdapterError: non-retryable status, or retries exhausted
        """
        last_error = ""
        for attempt in range(self.max_retries):
            self._wait_for_rate_limit()
            retry_after: Optional[float] = None

            try:
                response = self.session.request(
                    method, url, data=data, headers=headers, timeout=self.timeout
                )
            except requests.exceptions.RequestException as e:
                last_error = str(e)
                logger.warning(
                    f"{self.name}: {method} failed (attempt {attempt + 1}/{self.max_retries}): {e}"
                )
            else:
                status = response.status_code
                if status < 300 or (status == 404 and method == "GET"):
                    return response

                if status not in RETRYABLE_STATUS:
                    raise AdapterError(
                        f"HTTP {status}: {response.text[:200]}",
                        adapter=self.name,
                        retryable=False,
                        status_code=status,
                    )

                last_error = f"HTTP {status}"
                retry_after = self._parse_retry_after(response)
                logger.warning(
                    f"{self.name}: {method} got HTTP {status} "
                    f"(attempt {attempt + 1}/{self.max_retries})"
                )

            if attempt < self.max_retries - 1:
                self._sleep(self._backoff(attempt, retry_after))

        raise AdapterError(
            f"Request failed after {self.max_retries} attempts: {last_error}",
            adapter=self.name,
            retryable=True,
        )

    def _backoff(self, attempt: int, retry_after: Optional[float] = None) -> float:
        if retry_after is not None:
            return min(retry_after, self.max_backoff_seconds)
        return min(self.base_backoff_seconds * (2 ** attempt), self.max_backoff_seconds)

    @staticmethod
    def _parse_retry_after(response: requests.Response) -> Optional[float]:
        value = response.headers.get("Retry-After")
        if not value:
            return None
        try:
            return max(0.0, float(value))
        except ValueError:
            return None

    def _wait_for_rate_limit(self) -> None:
        """Enforce rate limiting between requests."""
        if self.rate_limit_delay > 0:
            elapsed = time.time() - self.last_request_time
            if elapsed < self.rate_limit_delay:
                self._sleep(self.rate_limit_delay - elapsed)
        self.last_request_time = time.time()

    def get_name(self) -> str:
        return self.name

    def close(self) -> None:
        """Close the session."""
        if self.session:
            self.session.close()
