"""Exception hierarchy. Each error carries a stable message safe to show users."""

from typing import Optional


class CopierError(Exception):
    """Base class for all html_copier errors."""

    user_message = "Failed to copy the HTML"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail or self.user_message)
        self.detail = detail


class FetchError(CopierError):
    """The document could not be retrieved."""


class InvalidUrl(FetchError):
    user_message = "Invalid URL"


class DnsFailure(FetchError):
    user_message = "URL not found"


class ConnectionRefused(FetchError):
    user_message = "Connection refused"


class FetchTimeout(FetchError):
    user_message = "The request timed out"


class HttpStatusError(FetchError):
    """Non-2xx response."""

    def __init__(self, status: int, detail: Optional[str] = None):
        super().__init__(detail or f"HTTP {status}")
        self.status = status

    @property
    def user_message(self) -> str:
        return f"HTTP error {self.status}"


class BaseUrlInvalid(CopierError):
    user_message = "Invalid base URL"


class DocumentNotFound(CopierError):
    user_message = "Copy not found"


class InvalidLinkPayload(CopierError):
    user_message = "Filename and links are required"
