"""Orchestrates copy, link update, delete and listing over the stores."""

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import ValidationError

from .charset import ensure_utf8
from .config import CopierConfig
from .errors import CopierError, DocumentNotFound, InvalidLinkPayload
from .fetcher import fetch
from .models import DocumentMetadata, LinkRecord
from .storage import BlobStore, MetadataStore
from .transformer import extract, rewrite
from .utils import document_key, generate_key

logger = logging.getLogger(__name__)

GENERIC_COPY_ERROR = "Failed to copy the HTML"
GENERIC_UPDATE_ERROR = "Failed to update links"


@dataclass
class CopyReport:
    """Outcome of one copy run. error holds a user-facing message only."""

    original_url: str
    key: Optional[str] = None
    final_url: Optional[str] = None
    size: int = 0
    total_links: int = 0
    links: list[LinkRecord] = field(default_factory=list)
    degraded: bool = False
    duration_seconds: float = 0.0
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class UpdateReport:
    """Outcome of a link update."""

    key: str
    total_links: int = 0
    html_updated: bool = False
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class CopySummary:
    key: str
    size: int
    original_url: Optional[str]
    total_links: int
    external_links: int = 0


@dataclass
class LibraryListing:
    copies: list[CopySummary]

    @property
    def total_files(self) -> int:
        return len(self.copies)

    @property
    def total_links(self) -> int:
        return sum(c.total_links for c in self.copies)


def copy_page(
    url: str,
    blobs: BlobStore,
    metadata: MetadataStore,
    config: Optional[CopierConfig] = None,
) -> CopyReport:
    """
    Fetch url, store its charset-normalized HTML and link inventory.

    The stored markup is what extraction runs on, so later rewrites see the
    same anchors in the same order.
    """
    config = config or CopierConfig()
    start = time.perf_counter()
    report = CopyReport(original_url=url)

    try:
        result = asyncio.run(fetch(url, config))
        html = ensure_utf8(result.text())
        extraction = extract(html, result.final_url, config)

        key = generate_key()
        body = html.encode("utf-8")
        blobs.put(key, body)
        meta = DocumentMetadata(
            original_url=url,
            total_links=len(extraction.links),
            links=extraction.links,
        )
        try:
            metadata.put(key, meta.to_json_dict())
        except Exception:
            blobs.delete(key)
            raise
    except CopierError as e:
        logger.error("Copy of %s failed: %s", url, e)
        report.error = e.user_message
        return report
    except Exception:
        logger.exception("Unexpected failure copying %s", url)
        report.error = GENERIC_COPY_ERROR
        return report

    if extraction.degraded:
        logger.warning("Parsed %s with degraded markup handling", url)

    report.key = key
    report.final_url = result.final_url
    report.size = len(body)
    report.total_links = len(extraction.links)
    report.links = extraction.links[: config.preview_links]
    report.degraded = extraction.degraded
    report.duration_seconds = time.perf_counter() - start
    logger.info(
        "Copied %s to %s: %d bytes, %d links in %.2fs",
        url,
        key,
        report.size,
        report.total_links,
        report.duration_seconds,
    )
    return report


def _validate_links(links: Any) -> list[LinkRecord]:
    if not isinstance(links, Sequence) or isinstance(links, (str, bytes)):
        raise InvalidLinkPayload("links must be a list of link objects")
    try:
        return [
            link if isinstance(link, LinkRecord) else LinkRecord.model_validate(link)
            for link in links
        ]
    except ValidationError as e:
        raise InvalidLinkPayload(f"Invalid link payload: {e}") from e


def update_links(
    key: str,
    links: Any,
    blobs: BlobStore,
    metadata: MetadataStore,
) -> UpdateReport:
    """
    Replace the whole link inventory of key and rewrite its HTML by position.

    The metadata update stands even if rewriting the stored HTML fails.
    """
    key = document_key(key)
    report = UpdateReport(key=key)

    try:
        records = _validate_links(links)
        meta = DocumentMetadata.model_validate(metadata.get(key))
        meta.links = records
        meta.total_links = len(records)
        meta.updated_at = datetime.now(timezone.utc)
        metadata.put(key, meta.to_json_dict())
    except CopierError as e:
        logger.error("Link update for %s failed: %s", key, e)
        report.error = e.user_message
        return report
    except Exception:
        logger.exception("Unexpected failure updating links for %s", key)
        report.error = GENERIC_UPDATE_ERROR
        return report

    report.total_links = len(records)
    if blobs.exists(key):
        try:
            html = blobs.get(key).decode("utf-8", errors="replace")
            blobs.put(key, rewrite(html, records).encode("utf-8"))
            report.html_updated = True
        except Exception:
            logger.exception("Failed to rewrite HTML of %s with new links", key)
    else:
        logger.warning("No stored HTML for %s, metadata updated only", key)

    logger.info("Updated %d links for %s", report.total_links, key)
    return report


def get_metadata(key: str, metadata: MetadataStore) -> DocumentMetadata:
    """Stored metadata for key (with or without the .json suffix)."""
    return DocumentMetadata.model_validate(metadata.get(document_key(key)))


def delete_copy(key: str, blobs: BlobStore, metadata: MetadataStore) -> bool:
    """Remove the document and its metadata. Returns False if neither existed."""
    key = document_key(key)
    found = False
    if blobs.exists(key):
        blobs.delete(key)
        found = True
    if metadata.exists(key):
        metadata.delete(key)
        found = True
    if found:
        logger.info("Deleted %s", key)
    else:
        logger.warning("Nothing stored under %s", key)
    return found


def list_copies(blobs: BlobStore, metadata: MetadataStore) -> LibraryListing:
    """Stored copies newest first, with their original URL and link count."""
    copies: list[CopySummary] = []
    for key in blobs.keys():
        original_url: Optional[str] = None
        total_links = 0
        external_links = 0
        try:
            meta = get_metadata(key, metadata)
            original_url = meta.original_url
            total_links = meta.total_links
            external_links = sum(1 for link in meta.links if link.is_external)
        except DocumentNotFound:
            logger.debug("No metadata for %s", key)
        except ValueError as e:
            logger.warning("Unreadable metadata for %s: %s", key, e)
        copies.append(
            CopySummary(
                key=key,
                size=blobs.size(key),
                original_url=original_url,
                total_links=total_links,
                external_links=external_links,
            )
        )
    return LibraryListing(copies=copies)
