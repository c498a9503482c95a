"""Copier configuration with defaults, overridable via CLI."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class CopierConfig:
    """Configuration for fetching, link extraction and storage."""

    timeout_seconds: float = 10.0
    user_agent: str = field(default_factory=lambda: "HTML-Copier/1.0")
    storage_dir: str = "html_copies"
    db_path: Optional[str] = None
    link_text_max_length: int = 100
    empty_text_placeholder: str = "[no text]"
    preview_links: int = 10

    @property
    def duckdb_path(self) -> str:
        """DuckDB file used by the duckdb metadata backend."""
        return self.db_path or str(Path(self.storage_dir) / "library.duckdb")
