"""Pydantic models for link inventories and document metadata."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from bs4 import UnicodeDammit
from pydantic import BaseModel, ConfigDict, Field, field_validator


class LinkRecord(BaseModel):
    """One anchor of a copied document, in document order."""

    model_config = ConfigDict(populate_by_name=True)

    url: str = Field(default="", description="Resolved absolute URL, or the raw href")
    text: str = Field(default="", description="Visible anchor text, truncated")
    title: str = Field(default="", description="Anchor title attribute")
    is_external: bool = Field(
        default=False,
        alias="isExternal",
        description="Resolved URL is http(s) on a different origin",
    )

    @field_validator("url", mode="before")
    @classmethod
    def _coerce_url(cls, value):
        # Edited payloads may carry null or numeric urls
        if value is None:
            return ""
        if isinstance(value, (int, float)):
            return str(value)
        return value


class DocumentMetadata(BaseModel):
    """JSON sidecar stored next to each copied document."""

    model_config = ConfigDict(populate_by_name=True)

    original_url: str = Field(..., alias="originalUrl", description="URL the copy was fetched from")
    copied_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        alias="copiedAt",
        description="When the document was fetched (UTC)",
    )
    updated_at: Optional[datetime] = Field(
        default=None,
        alias="updatedAt",
        description="When the link inventory was last replaced (UTC)",
    )
    total_links: int = Field(default=0, ge=0, alias="totalLinks")
    links: list[LinkRecord] = Field(default_factory=list)

    def to_json_dict(self) -> dict:
        """Sidecar shape: camelCase keys, ISO-8601 timestamps, no null fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


@dataclass
class FetchResult:
    """Body and final location of a successful GET."""

    body: bytes
    final_url: str
    status_code: int = 200
    encoding: Optional[str] = None

    def text(self) -> str:
        """Decode the body, trying the HTTP-declared encoding first."""
        known = [self.encoding] if self.encoding else []
        dammit = UnicodeDammit(self.body, known_definite_encodings=known, is_html=True)
        if dammit.unicode_markup is None:
            return self.body.decode("utf-8", errors="replace")
        return dammit.unicode_markup
