"""URL and key helpers for link resolution and storage naming."""

import uuid
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urljoin, urlsplit, urlunsplit

HTTP_SCHEMES = ("http", "https")
DEFAULT_PORTS = {"http": 80, "https": 443, "ws": 80, "wss": 443, "ftp": 21}

Origin = tuple[str, str, Optional[int]]


def is_absolute_url(url: str) -> bool:
    """True when url has a scheme and a host, and its port (if any) is valid."""
    return url_origin(url) is not None


def is_http_url(url: str) -> bool:
    """True for absolute http(s) URLs with a host."""
    origin = url_origin(url)
    return origin is not None and origin[0] in HTTP_SCHEMES


def url_origin(url: str) -> Optional[Origin]:
    """Return (scheme, host, effective port), or None if url does not parse."""
    if not isinstance(url, str):
        return None
    try:
        parts = urlsplit(url.strip())
        port = parts.port
    except ValueError:
        return None
    if not parts.scheme or not parts.hostname:
        return None
    scheme = parts.scheme.lower()
    return scheme, parts.hostname, port if port is not None else DEFAULT_PORTS.get(scheme)


def origin_prefix(url: str) -> str:
    """Serialize the origin of url as scheme://host[:port]."""
    origin = url_origin(url)
    if origin is None:
        return ""
    scheme, host, port = origin
    if ":" in host:
        host = f"[{host}]"
    if port is None or port == DEFAULT_PORTS.get(scheme):
        return f"{scheme}://{host}"
    return f"{scheme}://{host}:{port}"


def resolve_href(href: str, base_url: str) -> str:
    """Resolve href against base_url. Raises ValueError when it cannot be resolved."""
    resolved = urljoin(base_url, href.strip())
    parts = urlsplit(resolved)
    if parts.scheme.lower() in HTTP_SCHEMES and parts.netloc and not parts.path:
        resolved = urlunsplit(parts._replace(path="/"))
    return resolved


def is_external(url: str, base_url: str) -> bool:
    """
    Classify url against the document at base_url.

    Parseable URLs compare origins; anything else falls back to a prefix
    check on the base origin. The fallback is a heuristic, not an access check.
    """
    base = url_origin(base_url)
    target = url_origin(url)
    if target is not None:
        return target != base and target[0] in HTTP_SCHEMES
    return not url.startswith(origin_prefix(base_url)) and url.startswith("http")


def generate_key(now: Optional[datetime] = None) -> str:
    """Unique document key: '<UTC ISO timestamp>_<8 hex>.html'."""
    now = now or datetime.now(timezone.utc)
    stamp = now.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    stamp = stamp.replace("+00:00", "Z").replace(":", "-").replace(".", "-")
    return f"{stamp}_{uuid.uuid4().hex[:8]}.html"


def document_key(name: str) -> str:
    """Accept a key with or without the metadata '.json' suffix."""
    if name.lower().endswith(".json"):
        return name[: -len(".json")]
    return name
