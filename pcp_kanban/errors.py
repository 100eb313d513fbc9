"""
Exception taxonomy shared by the API client, the orders API and the
transition controller.
"""
from typing import Optional


class PcpError(Exception):
    """Base class for all board client errors."""
    pass


class ConfigError(PcpError):
    """Raised when configuration is invalid or incomplete."""
    pass


class ApiError(PcpError):
    """A remote call failed with a non-2xx status or a transport error."""

    def __init__(self, message: str, status: Optional[int] = None, kind: str = "http"):
        super().__init__(message)
        self.message = message
        self.status = status
        self.kind = kind  # "http" | "network" | "timeout"

    def __str__(self) -> str:
        if self.status is not None:
            return f"[{self.status}] {self.message}"
        return self.message


class ApiTimeout(ApiError):
    """The transport gave up waiting for a response."""

    def __init__(self, message: str = "Request timed out"):
        super().__init__(message, status=None, kind="timeout")


class AuthExpired(PcpError):
    """Authorization failed and could not be restored by a token refresh."""
    pass
