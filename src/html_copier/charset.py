"""Guarantee a UTF-8 charset declaration in stored markup."""

import logging
import re

from bs4 import BeautifulSoup
from bs4.element import Doctype
from bs4.dammit import EntitySubstitution
from bs4.formatter import HTMLFormatter

logger = logging.getLogger(__name__)

UTF8_DECLARATION = '<meta charset="UTF-8">'

# Keeps characters as-is and writes void elements as <meta ...> rather than <meta .../>
MARKUP_FORMATTER = HTMLFormatter(
    entity_substitution=EntitySubstitution.substitute_xml,
    void_element_close_prefix=None,
)

_CHARSET_META_RE = re.compile(r"<meta\b[^>]*charset=", re.IGNORECASE)
_HEAD_OPEN_RE = re.compile(r"<head(?:\s[^>]*)?>", re.IGNORECASE)
_CONTENT_CHARSET_RE = re.compile(r"(charset\s*=\s*)[^\s;\"']*", re.IGNORECASE)


def insert_charset_declaration(html: str) -> str:
    """
    Text-only fallback: add a UTF-8 meta unless some meta already declares a charset.

    Inserted right after the opening <head> tag when there is one, otherwise
    prepended to the document.
    """
    if _CHARSET_META_RE.search(html):
        return html
    head = _HEAD_OPEN_RE.search(html)
    if head:
        return html[: head.end()] + UTF8_DECLARATION + html[head.end():]
    return UTF8_DECLARATION + html


def _find_or_create_head(soup: BeautifulSoup):
    head = soup.find("head")
    if head is not None:
        return head
    head = soup.new_tag("head")
    html_tag = soup.find("html")
    body = soup.find("body")
    if html_tag is not None:
        html_tag.insert(0, head)
    elif body is not None:
        body.insert_before(head)
    else:
        # Bare fragment: after a leading doctype, otherwise first node
        position = 0
        for index, node in enumerate(soup.contents):
            if isinstance(node, Doctype):
                position = index + 1
                break
        soup.insert(position, head)
    return head


def serialize(soup: BeautifulSoup) -> str:
    """Markup for soup with charset attribute values written exactly as stored."""
    return soup.decode(eventual_encoding=None, formatter=MARKUP_FORMATTER)


def _is_content_type_meta(tag) -> bool:
    return (
        tag.name == "meta"
        and str(tag.get("http-equiv", "")).strip().lower() == "content-type"
        and tag.has_attr("content")
    )


def _normalize_with_parser(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")

    meta = soup.find("meta", attrs={"charset": True})
    if meta is not None:
        meta["charset"] = "UTF-8"
        return serialize(soup)

    for candidate in soup.find_all(_is_content_type_meta):
        content = str(candidate["content"])
        if "charset=" in content.lower().replace(" ", ""):
            candidate["content"] = _CONTENT_CHARSET_RE.sub(r"\1UTF-8", content)
            return serialize(soup)

    head = _find_or_create_head(soup)
    declaration = soup.new_tag("meta", attrs={"charset": "UTF-8"})
    head.insert(0, declaration)
    return serialize(soup)


def ensure_utf8(html: str) -> str:
    """
    Return html with a UTF-8 charset declaration.

    An existing <meta charset> (or http-equiv content charset) is corrected
    in place; otherwise a new one becomes the first child of <head>, which
    is synthesized when missing. Additional charset metas are left alone.
    Never raises: parser failures fall back to insert_charset_declaration().
    """
    try:
        return _normalize_with_parser(html)
    except Exception as e:
        logger.warning("Charset normalization fell back to text insertion: %s", e)
        return insert_charset_declaration(html)
