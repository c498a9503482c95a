"""Single-shot async HTTP fetch with typed failures."""

import logging
import socket
from typing import Optional

import httpx

from .config import CopierConfig
from .errors import (
    ConnectionRefused,
    DnsFailure,
    FetchError,
    FetchTimeout,
    HttpStatusError,
    InvalidUrl,
)
from .models import FetchResult
from .utils import is_http_url

logger = logging.getLogger(__name__)

_DNS_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "temporary failure in name resolution",
    "no address associated with hostname",
)
_REFUSED_MARKERS = ("connection refused", "actively refused")


def _classify_connect_error(exc: httpx.TransportError, url: str) -> FetchError:
    """Map a transport failure onto DnsFailure / ConnectionRefused / FetchError."""
    cause: Optional[BaseException] = exc
    while cause is not None:
        if isinstance(cause, socket.gaierror):
            return DnsFailure(f"Host not found for {url}: {exc}")
        if isinstance(cause, ConnectionRefusedError):
            return ConnectionRefused(f"Connection refused by {url}: {exc}")
        cause = cause.__cause__ or cause.__context__

    message = str(exc).lower()
    if any(marker in message for marker in _DNS_MARKERS):
        return DnsFailure(f"Host not found for {url}: {exc}")
    if any(marker in message for marker in _REFUSED_MARKERS):
        return ConnectionRefused(f"Connection refused by {url}: {exc}")
    return FetchError(f"Failed to fetch {url}: {exc}")


async def fetch(
    url: str,
    config: Optional[CopierConfig] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> FetchResult:
    """
    GET url once and return its body and final URL.

    No retry: the caller re-invokes. Raises InvalidUrl before any network
    traffic when url is not an absolute http(s) URL, and HttpStatusError,
    FetchTimeout, DnsFailure or ConnectionRefused on failure.
    """
    config = config or CopierConfig()
    if not is_http_url(url):
        raise InvalidUrl(f"Not an absolute http(s) URL: {url!r}")

    headers = {"User-Agent": config.user_agent}
    try:
        if client is None:
            async with httpx.AsyncClient(headers=headers) as own_client:
                resp = await own_client.get(
                    url, timeout=config.timeout_seconds, follow_redirects=True
                )
        else:
            resp = await client.get(
                url,
                headers=headers,
                timeout=config.timeout_seconds,
                follow_redirects=True,
            )
    except httpx.TimeoutException as e:
        raise FetchTimeout(f"Timed out after {config.timeout_seconds}s fetching {url}") from e
    except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
        raise InvalidUrl(f"Rejected URL {url!r}: {e}") from e
    except httpx.TransportError as e:
        raise _classify_connect_error(e, url) from e
    except httpx.RequestError as e:
        # Redirect loops and body decoding failures
        raise FetchError(f"Failed to fetch {url}: {e}") from e

    if not resp.is_success:
        logger.warning("Got %s for %s", resp.status_code, url)
        raise HttpStatusError(resp.status_code, f"HTTP {resp.status_code} for {url}")

    logger.info("Fetched %s (%d bytes)", resp.url, len(resp.content))
    return FetchResult(
        body=resp.content,
        final_url=str(resp.url),
        status_code=resp.status_code,
        encoding=resp.charset_encoding,
    )
