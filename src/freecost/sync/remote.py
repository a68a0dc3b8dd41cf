"""Remote store client.

Talks to a PostgREST-style REST API (Supabase-compatible) for delta reads,
bulk upserts and location lookup, with proper error handling, retries and
an explicit connect/disconnect lifecycle.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional, TypeVar

import requests

from ..config import get_config
from ..utils import format_timestamp
from .errors import (
    NetworkError,
    NotAuthenticatedError,
    RateLimitError,
    RemoteConfigError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _retry_after(value: Optional[str]) -> float:
    """Seconds from a Retry-After header, or 0 when absent or not a number.

    HTTP-date values fall back to the client's own backoff delay.
    """
    try:
        return max(0.0, float(value))
    except (TypeError, ValueError):
        return 0.0


@dataclass
class UpsertResult:
    """Result of a bulk upsert."""

    success: bool
    count: int = 0
    error: Optional[str] = None


class RemoteClient:
    """Client for the remote multi-tenant store.

    Construct one per composition root and pass it to the components that
    need it; nothing connects implicitly on first use.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        initial_backoff: Optional[float] = None,
        session: Optional[requests.Session] = None,
        page_size: int = 1000,
    ):
        """Initialize remote client.

        Args:
            url: Base URL of the remote project (uses config if not provided)
            api_key: Public API key (uses config if not provided)
            timeout: Request timeout in seconds
            max_retries: Maximum attempts for retryable failures
            initial_backoff: Initial backoff delay in seconds
            session: requests session to use (created if not provided)
            page_size: Rows per page for delta reads
        """
        config = get_config()

        self.url = (url or config.supabase_url or "").rstrip("/")
        self.api_key = api_key or config.supabase_key
        self.timeout = timeout if timeout is not None else config.request_timeout
        self.max_retries = max_retries if max_retries is not None else config.sync_retry_max
        self.initial_backoff = (
            initial_backoff if initial_backoff is not None else config.sync_retry_base_delay
        )
        self.page_size = page_size

        if not self.url:
            raise RemoteConfigError("SUPABASE_URL not set")
        if not self.api_key:
            raise RemoteConfigError("SUPABASE_ANON_KEY not set")

        self._session = session or requests.Session()
        self._session.headers.update({"apikey": self.api_key})
        self._access_token: Optional[str] = None
        self.user_id: Optional[str] = None

    # ========================================================================
    # Lifecycle
    # ========================================================================

    @property
    def is_authenticated(self) -> bool:
        return self._access_token is not None

    def connect(
        self,
        email: Optional[str] = None,
        password: Optional[str] = None,
        access_token: Optional[str] = None,
    ) -> None:
        """Open an authenticated session.

        Either pass an existing access token or sign in with email/password.

        Raises:
            NotAuthenticatedError: If sign-in is rejected or no credentials given
        """
        if access_token:
            self._set_token(access_token)
            logger.info("Connected to %s with existing access token", self.url)
            return

        if not (email and password):
            raise NotAuthenticatedError("No credentials provided")

        response = self._send(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        data = response.json()
        token = data.get("access_token")
        if not token:
            raise NotAuthenticatedError("Sign-in returned no access token")

        self._set_token(token)
        self.user_id = (data.get("user") or {}).get("id")
        logger.info("Signed in to %s as %s", self.url, email)

    def disconnect(self) -> None:
        """Drop the session and close the HTTP connection pool."""
        self._access_token = None
        self.user_id = None
        self._session.headers.pop("Authorization", None)
        self._session.close()

    def __enter__(self) -> "RemoteClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.disconnect()

    def _set_token(self, token: str) -> None:
        self._access_token = token
        self._session.headers["Authorization"] = f"Bearer {token}"

    # ========================================================================
    # HTTP
    # ========================================================================

    def _send(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        """Send one request and translate failures into sync errors."""
        url = f"{self.url}{path}"
        kwargs.setdefault("timeout", self.timeout)
        try:
            response = self._session.request(method, url, **kwargs)
        except requests.exceptions.Timeout:
            raise NetworkError(f"Request timed out: {method} {path}")
        except requests.exceptions.RequestException as e:
            raise NetworkError(f"Request failed: {e}")

        status = response.status_code
        if status in (401, 403):
            raise NotAuthenticatedError(f"Remote rejected credentials ({status})")
        if status == 429:
            raise RateLimitError(_retry_after(response.headers.get("Retry-After")))
        if status >= 500:
            raise NetworkError(f"HTTP error: {status}")
        if status >= 400:
            raise NetworkError(f"HTTP error: {status} - {response.text[:200]}", retryable=False)
        return response

    def request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        """Send a request with retry for transient failures."""
        return self._with_retry(lambda: self._send(method, path, **kwargs))

    def _with_retry(self, operation: Callable[[], T]) -> T:
        """Execute operation with exponential backoff retry.

        Args:
            operation: Callable to execute

        Returns:
            Result of operation
        """
        max_attempts = max(1, self.max_retries)
        backoff = self.initial_backoff

        for attempt in range(max_attempts):
            try:
                return operation()
            except RateLimitError as e:
                if attempt == max_attempts - 1:
                    raise
                sleep_time = max(e.retry_after, backoff)
                logger.info("Rate limited. Waiting %ss...", sleep_time)
                time.sleep(sleep_time)
                backoff *= 2
            except NetworkError as e:
                if not e.retryable or attempt == max_attempts - 1:
                    raise
                logger.info("%s - retrying in %ss...", e, backoff)
                time.sleep(backoff)
                backoff *= 2

    # ========================================================================
    # Table Operations
    # ========================================================================

    def fetch_rows(
        self,
        table: str,
        location_id: str,
        modified_after: Optional[datetime] = None,
    ) -> list[dict[str, Any]]:
        """Fetch a location's rows modified strictly after a timestamp.

        Args:
            table: Remote table name
            location_id: Tenant/location to scope to
            modified_after: Exclusive lower bound (None = all rows)

        Returns:
            List of raw row dicts, oldest change first
        """
        params: dict[str, Any] = {
            "select": "*",
            "location_id": f"eq.{location_id}",
            "order": "modified_at.asc,id.asc",
            "limit": self.page_size,
        }
        if modified_after is not None:
            params["modified_at"] = f"gt.{format_timestamp(modified_after)}"

        rows: list[dict[str, Any]] = []
        offset = 0
        while True:
            response = self.request(
                "GET", f"/rest/v1/{table}", params={**params, "offset": offset}
            )
            page = response.json()
            rows.extend(page)
            if len(page) < self.page_size:
                break
            offset += len(page)

        logger.debug("Fetched %d rows from %s", len(rows), table)
        return rows

    def upsert_rows(self, table: str, rows: list[dict[str, Any]]) -> UpsertResult:
        """Insert or overwrite rows by id in a single request.

        Returns:
            UpsertResult; failures are reported, not raised, except
            NotAuthenticatedError which aborts the caller's round
        """
        if not rows:
            return UpsertResult(success=True)

        try:
            self.request(
                "POST",
                f"/rest/v1/{table}",
                params={"on_conflict": "id"},
                json=rows,
                headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
            )
        except NotAuthenticatedError:
            raise
        except NetworkError as e:
            logger.warning("Upsert of %d rows into %s failed: %s", len(rows), table, e)
            return UpsertResult(success=False, error=str(e))

        return UpsertResult(success=True, count=len(rows))

    def list_locations(self) -> list[dict[str, Any]]:
        """Fetch the locations visible to the signed-in user."""
        params: dict[str, Any] = {"select": "*", "order": "name.asc"}
        if self.user_id:
            params["user_id"] = f"eq.{self.user_id}"
        return self.request("GET", "/rest/v1/locations", params=params).json()
