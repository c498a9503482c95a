"""Link inventory: parse HTML, extract anchors in document order, rewrite hrefs by position."""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Optional

from bs4 import BeautifulSoup
from bs4.element import Tag

from .charset import ensure_utf8, serialize
from .config import CopierConfig
from .errors import BaseUrlInvalid
from .models import LinkRecord
from .utils import is_absolute_url, is_external, resolve_href

logger = logging.getLogger(__name__)


@dataclass
class ExtractionResult:
    """Ordered link inventory; degraded is set when lxml rejected the markup."""

    links: list[LinkRecord] = field(default_factory=list)
    degraded: bool = False


def parse_html(html: str) -> tuple[BeautifulSoup, bool]:
    """
    Parse markup tolerantly. Returns (soup, degraded).

    lxml is the primary parser; if it rejects the input the stdlib parser is
    used instead, and an empty tree is the last resort.
    """
    try:
        return BeautifulSoup(html, "lxml"), False
    except Exception as e:
        logger.warning("lxml could not parse document, using html.parser: %s", e)
    try:
        return BeautifulSoup(html, "html.parser"), True
    except Exception as e:
        logger.warning("html.parser could not parse document, treating it as empty: %s", e)
        return BeautifulSoup("", "html.parser"), True


def iter_anchors(soup: BeautifulSoup) -> list[Tag]:
    """Every <a> carrying an href attribute (even empty), in pre-order."""
    return [a for a in soup.find_all("a") if a.has_attr("href")]


def _anchor_text(anchor: Tag, config: CopierConfig) -> str:
    text = anchor.get_text().strip()[: config.link_text_max_length]
    return text or config.empty_text_placeholder


def _anchor_title(anchor: Tag) -> str:
    return str(anchor.get("title", ""))


def extract(
    html: str, base_url: str, config: Optional[CopierConfig] = None
) -> ExtractionResult:
    """
    Build the link inventory of html, one LinkRecord per anchor with href.

    Relative hrefs are resolved against base_url; an href that cannot be
    resolved is kept verbatim. Raises BaseUrlInvalid when base_url is not
    an absolute URL; malformed markup never raises.
    """
    config = config or CopierConfig()
    if not is_absolute_url(base_url):
        raise BaseUrlInvalid(f"Base URL is not absolute: {base_url!r}")

    soup, degraded = parse_html(html)
    links: list[LinkRecord] = []
    for anchor in iter_anchors(soup):
        href = str(anchor["href"])
        try:
            url = resolve_href(href, base_url)
        except ValueError as e:
            logger.debug("Keeping unresolved href %r: %s", href, e)
            url = href
        links.append(
            LinkRecord(
                url=url,
                text=_anchor_text(anchor, config),
                title=_anchor_title(anchor),
                is_external=is_external(url, base_url),
            )
        )

    logger.debug("Extracted %d links from %s", len(links), base_url)
    return ExtractionResult(links=links, degraded=degraded)


def _edited_url(item: Any) -> Optional[str]:
    """The non-empty, stripped url of an edited link, or None to leave the href alone."""
    if isinstance(item, Mapping):
        url = item.get("url")
    else:
        url = getattr(item, "url", None)
    if isinstance(url, str) and url.strip():
        return url.strip()
    return None


def rewrite(html: str, new_links: Sequence[Any]) -> str:
    """
    Re-apply edited link targets to html by position.

    The i-th anchor with an href receives new_links[i].url. Anchors beyond
    the list keep their href, surplus entries are ignored, and empty URLs
    leave the anchor unchanged. Matching is purely positional; if the
    markup changed since extraction the mapping is silently misaligned.
    """
    soup, _ = parse_html(html)
    anchors = iter_anchors(soup)
    changed = 0
    for anchor, item in zip(anchors, new_links):
        url = _edited_url(item)
        if url is None:
            continue
        anchor["href"] = url
        changed += 1

    logger.debug(
        "Rewrote %d of %d anchors (%d edited links supplied)",
        changed,
        len(anchors),
        len(new_links),
    )
    return ensure_utf8(serialize(soup))
