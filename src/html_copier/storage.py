"""Blob and metadata stores for copied documents, keyed by generated filename."""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path

import duckdb

from .errors import DocumentNotFound
from .utils import document_key

logger = logging.getLogger(__name__)

BULK_CHUNK_SIZE = 1000


class BlobStore(ABC):
    """Raw document bytes. Keys are opaque."""

    @abstractmethod
    def put(self, key: str, data: bytes) -> None: ...

    @abstractmethod
    def get(self, key: str) -> bytes: ...

    @abstractmethod
    def exists(self, key: str) -> bool: ...

    @abstractmethod
    def delete(self, key: str) -> None: ...

    @abstractmethod
    def keys(self) -> list[str]: ...

    def size(self, key: str) -> int:
        return len(self.get(key))


class MetadataStore(ABC):
    """JSON-compatible metadata, keyed identically to its blob."""

    @abstractmethod
    def put(self, key: str, data: dict) -> None: ...

    @abstractmethod
    def get(self, key: str) -> dict: ...

    @abstractmethod
    def exists(self, key: str) -> bool: ...

    @abstractmethod
    def delete(self, key: str) -> None: ...


def _safe_name(key: str) -> str:
    name = Path(key).name
    if not name or name != key or name in (".", ".."):
        raise DocumentNotFound(f"Invalid document key: {key!r}")
    return name


class FileBlobStore(BlobStore):
    """One file per document under root."""

    def __init__(self, root: str | Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.root / _safe_name(key)

    def put(self, key: str, data: bytes) -> None:
        self._path(key).write_bytes(data)
        logger.debug("Wrote %d bytes to %s", len(data), key)

    def get(self, key: str) -> bytes:
        path = self._path(key)
        if not path.is_file():
            raise DocumentNotFound(f"No document stored under {key!r}")
        return path.read_bytes()

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def keys(self) -> list[str]:
        """Stored document keys, newest first."""
        files = [p for p in self.root.iterdir() if p.is_file() and p.suffix.lower() == ".html"]
        files.sort(key=lambda p: p.stat().st_mtime, reverse=True)
        return [p.name for p in files]

    def size(self, key: str) -> int:
        path = self._path(key)
        if not path.is_file():
            raise DocumentNotFound(f"No document stored under {key!r}")
        return path.stat().st_size


class FileMetadataStore(MetadataStore):
    """JSON sidecar '<key>.json' next to the document."""

    def __init__(self, root: str | Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.root / f"{_safe_name(document_key(key))}.json"

    def put(self, key: str, data: dict) -> None:
        self._path(key).write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")

    def get(self, key: str) -> dict:
        path = self._path(key)
        if not path.is_file():
            raise DocumentNotFound(f"No metadata stored under {key!r}")
        return json.loads(path.read_text(encoding="utf-8"))

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


def _bulk_insert(
    conn: duckdb.DuckDBPyConnection,
    table: str,
    columns: list[str],
    rows: list[tuple],
) -> None:
    """Insert rows via multi-VALUES statements, chunked to avoid parameter limits."""
    if not rows:
        return
    ncols = len(columns)
    placeholder = f"({', '.join(['?'] * ncols)})"
    cols = ", ".join(columns)
    for i in range(0, len(rows), BULK_CHUNK_SIZE):
        chunk = rows[i : i + BULK_CHUNK_SIZE]
        values = ", ".join([placeholder] * len(chunk))
        params = [val for row in chunk for val in row]
        conn.execute(f"INSERT INTO {table} ({cols}) SELECT * FROM (VALUES {values})", params)


class DuckDBMetadataStore(MetadataStore):
    """
    Metadata in a DuckDB file.

    documents holds the full JSON per key; document_links holds one row per
    link position so inventories can be queried directly.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        with duckdb.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    key VARCHAR PRIMARY KEY,
                    original_url VARCHAR,
                    total_links INTEGER,
                    metadata VARCHAR
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS document_links (
                    key VARCHAR,
                    position INTEGER,
                    url VARCHAR,
                    text VARCHAR,
                    title VARCHAR,
                    is_external BOOLEAN
                )
            """)

    def put(self, key: str, data: dict) -> None:
        key = document_key(key)
        links = data.get("links") or []
        with duckdb.connect(self.db_path) as conn:
            conn.begin()
            try:
                conn.execute("DELETE FROM documents WHERE key = ?", [key])
                conn.execute("DELETE FROM document_links WHERE key = ?", [key])
                conn.execute(
                    "INSERT INTO documents (key, original_url, total_links, metadata) VALUES (?, ?, ?, ?)",
                    [key, data.get("originalUrl"), data.get("totalLinks", len(links)), json.dumps(data)],
                )
                _bulk_insert(
                    conn,
                    "document_links",
                    ["key", "position", "url", "text", "title", "is_external"],
                    [
                        (
                            key,
                            position,
                            link.get("url", ""),
                            link.get("text", ""),
                            link.get("title", ""),
                            bool(link.get("isExternal", False)),
                        )
                        for position, link in enumerate(links)
                    ],
                )
            except Exception:
                conn.rollback()
                raise
            conn.commit()
        logger.debug("Stored metadata for %s (%d links)", key, len(links))

    def get(self, key: str) -> dict:
        with duckdb.connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT metadata FROM documents WHERE key = ?", [document_key(key)]
            ).fetchone()
        if row is None:
            raise DocumentNotFound(f"No metadata stored under {key!r}")
        return json.loads(row[0])

    def exists(self, key: str) -> bool:
        with duckdb.connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM documents WHERE key = ?", [document_key(key)]
            ).fetchone()
        return row[0] > 0

    def delete(self, key: str) -> None:
        key = document_key(key)
        with duckdb.connect(self.db_path) as conn:
            conn.execute("DELETE FROM documents WHERE key = ?", [key])
            conn.execute("DELETE FROM document_links WHERE key = ?", [key])
