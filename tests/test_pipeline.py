"""Tests for the copy / update / delete / list pipeline."""

import tempfile
from pathlib import Path

import httpx
import respx
from bs4 import BeautifulSoup
from httpx import Response

from html_copier.config import CopierConfig
from html_copier.pipeline import copy_page, delete_copy, get_metadata, list_copies, update_links
from html_copier.storage import DuckDBMetadataStore, FileBlobStore, FileMetadataStore

SOURCE_URL = "https://x.com/dir/"
SOURCE_HTML = '<html><head><title>X</title></head><body><a href="/a" title="T">Hi</a><a href="b">There</a></body></html>'


def _hrefs(html: bytes) -> list[str]:
    soup = BeautifulSoup(html.decode("utf-8"), "lxml")
    return [a["href"] for a in soup.find_all("a") if a.has_attr("href")]


def _stores(tmp: str):
    return FileBlobStore(tmp), FileMetadataStore(tmp)


@respx.mock
def test_copy_page_stores_html_and_metadata():
    """A copy writes normalized HTML plus the camelCase sidecar."""
    respx.get(SOURCE_URL).mock(return_value=Response(200, text=SOURCE_HTML))
    with tempfile.TemporaryDirectory() as tmp:
        blobs, metadata = _stores(tmp)
        report = copy_page(SOURCE_URL, blobs, metadata)

        assert report.success
        assert report.key.endswith(".html")
        assert report.total_links == 2
        assert report.size == len(blobs.get(report.key))

        stored = blobs.get(report.key)
        assert b'<meta charset="UTF-8">' in stored
        assert _hrefs(stored) == ["/a", "b"]

        sidecar = metadata.get(report.key)
        assert sidecar["originalUrl"] == SOURCE_URL
        assert "copiedAt" in sidecar
        assert "updatedAt" not in sidecar
        assert sidecar["totalLinks"] == 2
        assert sidecar["links"] == [
            {"url": "https://x.com/a", "text": "Hi", "title": "T", "isExternal": False},
            {"url": "https://x.com/dir/b", "text": "There", "title": "", "isExternal": False},
        ]


@respx.mock
def test_copy_page_previews_first_links():
    """The report previews at most preview_links links; the sidecar keeps all."""
    html = "".join(f'<a href="/p{i}">p{i}</a>' for i in range(12))
    respx.get("https://x.com/").mock(return_value=Response(200, text=html))
    with tempfile.TemporaryDirectory() as tmp:
        blobs, metadata = _stores(tmp)
        report = copy_page("https://x.com/", blobs, metadata)

        assert report.total_links == 12
        assert len(report.links) == CopierConfig().preview_links
        assert len(metadata.get(report.key)["links"]) == 12


@respx.mock
def test_copy_page_resolves_against_final_url():
    """After a redirect, relative links resolve against where the page landed."""
    respx.get("https://x.com/old").mock(
        return_value=Response(302, headers={"Location": "https://y.com/new/"})
    )
    respx.get("https://y.com/new/").mock(return_value=Response(200, text='<a href="page">p</a>'))
    with tempfile.TemporaryDirectory() as tmp:
        blobs, metadata = _stores(tmp)
        report = copy_page("https://x.com/old", blobs, metadata)

        assert report.final_url == "https://y.com/new/"
        sidecar = metadata.get(report.key)
        assert sidecar["originalUrl"] == "https://x.com/old"
        assert sidecar["links"][0]["url"] == "https://y.com/new/page"


@respx.mock
def test_copy_page_maps_errors_to_messages():
    """Fetch failures become user-facing messages and store nothing."""
    respx.get("https://x.com/missing").mock(return_value=Response(404))
    respx.get("https://gone.invalid/").mock(
        side_effect=httpx.ConnectError("[Errno -2] Name or service not known")
    )
    with tempfile.TemporaryDirectory() as tmp:
        blobs, metadata = _stores(tmp)

        assert copy_page("https://x.com/missing", blobs, metadata).error == "HTTP error 404"
        assert copy_page("https://gone.invalid/", blobs, metadata).error == "URL not found"
        assert copy_page("not-a-url", blobs, metadata).error == "Invalid URL"
        assert blobs.keys() == []
        assert list(Path(tmp).iterdir()) == []


@respx.mock
def test_update_links_rewrites_by_position():
    """Updated links replace the inventory and the stored hrefs by index."""
    respx.get(SOURCE_URL).mock(return_value=Response(200, text=SOURCE_HTML))
    with tempfile.TemporaryDirectory() as tmp:
        blobs, metadata = _stores(tmp)
        key = copy_page(SOURCE_URL, blobs, metadata).key
        copied_at = metadata.get(key)["copiedAt"]

        report = update_links(key, [{"url": "https://y.com/new"}, {"url": ""}], blobs, metadata)

        assert report.success
        assert report.html_updated
        assert report.total_links == 2
        assert _hrefs(blobs.get(key)) == ["https://y.com/new", "b"]

        sidecar = metadata.get(key)
        assert sidecar["totalLinks"] == 2
        assert sidecar["copiedAt"] == copied_at
        assert "updatedAt" in sidecar
        assert [link["url"] for link in sidecar["links"]] == ["https://y.com/new", ""]


@respx.mock
def test_update_links_round_trip_keeps_inventory():
    """Re-submitting the extracted links leaves the inventory unchanged."""
    respx.get(SOURCE_URL).mock(return_value=Response(200, text=SOURCE_HTML))
    with tempfile.TemporaryDirectory() as tmp:
        blobs, metadata = _stores(tmp)
        key = copy_page(SOURCE_URL, blobs, metadata).key
        links = metadata.get(key)["links"]

        update_links(f"{key}.json", links, blobs, metadata)

        assert metadata.get(key)["links"] == links
        assert _hrefs(blobs.get(key)) == ["https://x.com/a", "https://x.com/dir/b"]


def test_update_links_errors():
    """Unknown keys and malformed payloads are reported, not raised."""
    with tempfile.TemporaryDirectory() as tmp:
        blobs, metadata = _stores(tmp)

        missing = update_links("nope.html", [{"url": "/x"}], blobs, metadata)
        assert missing.error == "Copy not found"

        metadata.put("doc.html", {"originalUrl": "https://x.com/", "totalLinks": 0, "links": []})
        assert update_links("doc.html", "not a list", blobs, metadata).error is not None
        assert update_links("doc.html", [{"url": {"nested": 1}}], blobs, metadata).error is not None
        assert metadata.get("doc.html")["totalLinks"] == 0


def test_update_links_without_html_updates_metadata_only():
    """Metadata is replaced even when no HTML is stored."""
    with tempfile.TemporaryDirectory() as tmp:
        blobs, metadata = _stores(tmp)
        metadata.put("doc.html", {"originalUrl": "https://x.com/", "totalLinks": 0, "links": []})

        report = update_links("doc.html", [{"url": "/x", "text": "x"}], blobs, metadata)

        assert report.success
        assert not report.html_updated
        assert metadata.get("doc.html")["totalLinks"] == 1


@respx.mock
def test_delete_and_list_copies():
    """Listing counts copies and links; delete removes both artifacts."""
    respx.get(SOURCE_URL).mock(return_value=Response(200, text=SOURCE_HTML))
    with tempfile.TemporaryDirectory() as tmp:
        blobs, metadata = _stores(tmp)
        first = copy_page(SOURCE_URL, blobs, metadata).key
        copy_page(SOURCE_URL, blobs, metadata)

        listing = list_copies(blobs, metadata)
        assert listing.total_files == 2
        assert listing.total_links == 4
        assert [c.external_links for c in listing.copies] == [0, 0]
        assert {c.original_url for c in listing.copies} == {SOURCE_URL}

        assert delete_copy(first, blobs, metadata) is True
        assert not blobs.exists(first)
        assert not metadata.exists(first)
        assert delete_copy(first, blobs, metadata) is False
        assert list_copies(blobs, metadata).total_files == 1


@respx.mock
def test_pipeline_with_duckdb_metadata():
    """The duckdb backend supports the full copy/update/read cycle."""
    respx.get(SOURCE_URL).mock(return_value=Response(200, text=SOURCE_HTML))
    with tempfile.TemporaryDirectory() as tmp:
        blobs = FileBlobStore(tmp)
        metadata = DuckDBMetadataStore(CopierConfig(storage_dir=tmp).duckdb_path)
        key = copy_page(SOURCE_URL, blobs, metadata).key

        update_links(key, [{"url": "https://b.com/ext", "isExternal": True}], blobs, metadata)

        meta = get_metadata(key, metadata)
        assert meta.total_links == 1
        assert meta.updated_at is not None
        assert list_copies(blobs, metadata).copies[0].external_links == 1
        assert _hrefs(blobs.get(key)) == ["https://b.com/ext", "b"]


@respx.mock
def test_update_links_coerces_non_string_urls():
    """Null and numeric urls are stored as strings instead of rejecting the payload."""
    respx.get(SOURCE_URL).mock(return_value=Response(200, text=SOURCE_HTML))
    with tempfile.TemporaryDirectory() as tmp:
        blobs, metadata = _stores(tmp)
        key = copy_page(SOURCE_URL, blobs, metadata).key

        report = update_links(key, [{"url": None}, {"url": 42}], blobs, metadata)

        assert report.success
        stored = metadata.get(key)
        assert [link["url"] for link in stored["links"]] == ["", "42"]
        assert _hrefs(blobs.get(key)) == ["/a", "42"]
