"""Shared test fixtures for the PCP Kanban client tests."""

import asyncio
import base64
import json
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

import pytest

# Ensure the package is importable without installation
sys.path.insert(0, str(Path(__file__).parent.parent))

from pcp_kanban.api_client import ApiClient, ApiResponse
from pcp_kanban.credentials import Credential, CredentialStore


BASE_URL = "http://api.test"


def make_jwt(payload: dict) -> str:
    """Build an unsigned JWT-shaped token carrying the given payload."""
    def seg(obj):
        raw = json.dumps(obj).encode()
        return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()
    return f"{seg({'alg': 'none'})}.{seg(payload)}.sig"


@dataclass
class Call:
    method: str
    path: str
    headers: Dict[str, str]
    json: Any = None
    params: Optional[Dict[str, Any]] = None
    timeout: Optional[float] = None


class FakeBackend:
    """
    Scripted stand-in for the remote API, used as the client's transport.

    Accepts only `valid_token` as bearer credential; /auth/refresh hands out
    `issued_token` (which is `valid_token` unless a test wants them to differ).
    """

    def __init__(self, valid_token="fresh", issued_token=None, refresh_ok=True, refresh_delay=0.01):
        self.valid_token = valid_token
        self.issued_token = issued_token or valid_token
        self.refresh_ok = refresh_ok
        self.refresh_body: Optional[dict] = None
        self.refresh_delay = refresh_delay
        self.routes: Dict[tuple, Any] = {}
        self.calls: List[Call] = []

    def route(self, method: str, path: str, response):
        """Register a response (ApiResponse, exception, or callable(call) -> either)."""
        self.routes[(method, path)] = response

    async def send(self, method, url, *, headers=None, json=None, params=None, timeout=None):
        path = urlsplit(url).path
        call = Call(method, path, dict(headers or {}), json, params, timeout)
        self.calls.append(call)

        if path == "/auth/refresh":
            await asyncio.sleep(self.refresh_delay)
            if not self.refresh_ok:
                return ApiResponse(401, {"message": "invalid refresh token"})
            body = self.refresh_body if self.refresh_body is not None else {"accessToken": self.issued_token}
            return ApiResponse(200, body)

        await asyncio.sleep(0)
        protected = path != "/auth/login"
        if protected and call.headers.get("Authorization") != f"Bearer {self.valid_token}":
            return ApiResponse(401, {"message": "token expired"})

        response = self.routes.get((method, path))
        if callable(response) and not isinstance(response, ApiResponse):
            response = response(call)
        if response is None:
            return ApiResponse(404, {"message": "not found"})
        if isinstance(response, Exception):
            raise response
        return response

    def count(self, path: str, method: Optional[str] = None) -> int:
        return sum(1 for c in self.calls if c.path == path and (method is None or c.method == method))


@pytest.fixture
def store(tmp_path):
    return CredentialStore(str(tmp_path / "session.db"))


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def client(store, backend):
    store.set(Credential("stale", "refresh-1"))
    return ApiClient(BASE_URL, store, transport=backend)
