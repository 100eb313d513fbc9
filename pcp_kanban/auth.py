"""
Session login/logout.

Login is the only producer of a fresh credential pair; after that the API
client keeps the access token alive through refreshes.
"""
import logging

from .api_client import ApiClient
from .credentials import Credential, CredentialStore
from .errors import ApiError

logger = logging.getLogger(__name__)

LOGIN_PATH = "/auth/login"


class AuthSession:
    """Login, logout and session status for one credential store."""

    def __init__(self, client: ApiClient, credentials: CredentialStore):
        self.client = client
        self.credentials = credentials

    async def login(self, username: str, password: str) -> Credential:
        """
        Exchange username/password for a credential pair and store it.

        Raises ApiError with the server's message on rejection, or when the
        response carries no access token.
        """
        response = await self.client.request(
            "POST",
            LOGIN_PATH,
            json={"username": username, "password": password},
            authenticated=False,
        )
        data = response.data if isinstance(response.data, dict) else {}
        access_token = data.get("accessToken")
        if not access_token:
            raise ApiError("No access token received", status=response.status)

        credential = Credential(access_token, data.get("refreshToken") or "")
        self.credentials.set(credential)
        logger.info(f"Logged in as {username}")
        return credential

    def logout(self) -> None:
        self.credentials.clear()

    def is_authenticated(self) -> bool:
        return not self.credentials.is_expired()
