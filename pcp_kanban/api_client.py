"""
Authenticated API client with single-flight token refresh.

Every board request goes through ApiClient.request():

    1. attach "Authorization: Bearer <access token>" when a credential exists
    2. send through the transport
    3. on 401 (first attempt only) recover a fresh token and replay once:
         - no refresh running   → this call runs POST /auth/refresh
         - refresh already running → this call waits in the FIFO waiter queue
       A refresh failure wakes all waiters with None, clears the credential
       store and raises AuthExpired everywhere.
    4. any other failure is raised as ApiError / ApiTimeout, never retried

Only the transport calls suspend, so the refresh flag and the waiter queue
need no locking on a single event loop.
"""
import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, Optional

import requests

from .credentials import CredentialStore
from .errors import ApiError, ApiTimeout, AuthExpired, PcpError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
DEFAULT_REFRESH_TIMEOUT = 15.0
REFRESH_PATH = "/auth/refresh"


@dataclass
class ApiResponse:
    """Transport-neutral view of an HTTP response."""
    status: int
    data: Any = None
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def error_message(self) -> str:
        """The server's `message` field if present, else the raw body or the status."""
        if isinstance(self.data, dict) and self.data.get("message"):
            return str(self.data["message"])
        return self.text.strip() or f"HTTP {self.status}"

    @classmethod
    def from_requests(cls, resp: requests.Response) -> "ApiResponse":
        try:
            data = resp.json() if resp.content else None
        except ValueError:
            data = None
        return cls(status=resp.status_code, data=data, text=resp.text or "")


class RequestsTransport:
    """
    Runs blocking `requests` calls in a worker thread so the event loop stays free.

    Without an explicit session every call goes through `requests.request`,
    which builds its own session; `requests.Session` is not thread-safe and
    gathered calls run on different worker threads.
    """

    def __init__(self, session: Optional[requests.Session] = None):
        self.session = session

    async def send(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> ApiResponse:
        try:
            resp = await asyncio.to_thread(
                self.session.request if self.session else requests.request,
                method,
                url,
                headers=headers,
                json=json,
                params=params,
                timeout=timeout,
            )
        except requests.Timeout as e:
            raise ApiTimeout(f"{method} {url} timed out after {timeout}s") from e
        except requests.RequestException as e:
            raise ApiError(f"{method} {url} failed: {e}", kind="network") from e
        return ApiResponse.from_requests(resp)

    def close(self) -> None:
        if self.session:
            self.session.close()


class ApiClient:
    """Single entry point for all remote board operations."""

    def __init__(
        self,
        base_url: str,
        credentials: CredentialStore,
        transport=None,
        timeout: float = DEFAULT_TIMEOUT,
        refresh_timeout: float = DEFAULT_REFRESH_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self.credentials = credentials
        self.transport = transport or RequestsTransport()
        self.timeout = timeout
        self.refresh_timeout = refresh_timeout

        self._refreshing = False
        self._waiters: Deque[asyncio.Future] = deque()

    @property
    def refresh_in_progress(self) -> bool:
        return self._refreshing

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _current_token(self) -> Optional[str]:
        credential = self.credentials.get()
        return credential.access_token if credential else None

    async def _send(
        self,
        method: str,
        path: str,
        json: Any,
        params: Optional[Dict[str, Any]],
        token: Optional[str],
    ) -> ApiResponse:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return await self.transport.send(
            method,
            self._url(path),
            headers=headers,
            json=json,
            params=params,
            timeout=self.timeout,
        )

    async def request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        authenticated: bool = True,
    ) -> ApiResponse:
        """
        Send one request, recovering once from an expired access token.

        Unauthenticated calls (login) carry no bearer header and get no
        refresh handling.

        Raises:
            AuthExpired: 401 that a refresh could not fix, or a second 401 after replay.
            ApiTimeout:  the transport timed out.
            ApiError:    any other non-2xx response or transport failure.
        """
        token = self._current_token() if authenticated else None
        response = await self._send(method, path, json, params, token)

        if response.status == 401 and authenticated:
            logger.info(f"{method} {path} unauthorized, recovering session")
            token = await self._recover_token()
            response = await self._send(method, path, json, params, token)
            if response.status == 401:
                logger.warning(f"{method} {path} still unauthorized after refresh")
                self.credentials.clear()
                raise AuthExpired("Authorization rejected after token refresh")

        if not response.ok:
            raise ApiError(response.error_message, status=response.status)
        return response

    # ──────────────────────────────────────────
    # Single-flight refresh
    # ──────────────────────────────────────────

    async def _recover_token(self) -> str:
        """Return a fresh access token, joining an in-flight refresh if there is one."""
        if self._refreshing:
            waiter = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)
            token = await waiter
            if token is None:
                raise AuthExpired("Session expired, please log in again")
            return token

        self._refreshing = True
        token: Optional[str] = None
        try:
            token = await self._refresh()
        except PcpError as e:
            logger.warning(f"Token refresh failed: {e}")
            raise AuthExpired("Session expired, please log in again") from e
        finally:
            self._refreshing = False
            self._flush_waiters(token)
            if token is None:
                self.credentials.clear()
        return token

    def _flush_waiters(self, token: Optional[str]) -> None:
        """Wake every queued call, in registration order, with the same outcome."""
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(token)

    async def _refresh(self) -> str:
        credential = self.credentials.get()
        if not credential or not credential.refresh_token:
            raise AuthExpired("No refresh token available")

        response = await self.transport.send(
            "POST",
            self._url(REFRESH_PATH),
            headers={"Accept": "application/json"},
            json={"refreshToken": credential.refresh_token},
            timeout=self.refresh_timeout,
        )
        if not response.ok:
            raise ApiError(response.error_message, status=response.status)

        data = response.data if isinstance(response.data, dict) else {}
        access_token = data.get("accessToken")
        if not access_token:
            raise ApiError("Refresh response carried no accessToken", status=response.status)

        self.credentials.update_access_token(access_token, data.get("refreshToken"))
        logger.info("Access token refreshed")
        return access_token

    def close(self) -> None:
        close = getattr(self.transport, "close", None)
        if close:
            close()
