"""Data models for book metadata."""

from __future__ import annotations

import math
from dataclasses import dataclass, field


def _clean_categories(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    return [c.strip() for c in value if isinstance(c, str) and c.strip()]


def _page_count(value: object) -> int | float | None:
    if not value or isinstance(value, bool):
        return None
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return int(number) if number.is_integer() else number


@dataclass
class BookRecord:
    """Metadata as claimed by the provider, before the trust gate."""

    found: bool = False
    source_isbn: str | None = None
    title: str | None = None
    author: str | None = None
    publisher: str | None = None
    page_count: int | float | None = None
    published_date: str | None = None
    description: str | None = None
    categories: list[str] = field(default_factory=list)

    @classmethod
    def from_payload(cls, data: dict) -> BookRecord:
        source_isbn = data.get("sourceIsbn")
        return cls(
            found=bool(data.get("found")),
            source_isbn=source_isbn if isinstance(source_isbn, str) else None,
            title=data.get("title") or None,
            author=data.get("author") or None,
            publisher=data.get("publisher") or None,
            page_count=_page_count(data.get("pageCount")),
            published_date=data.get("publishedDate") or None,
            description=data.get("description") or None,
            categories=_clean_categories(data.get("categories")),
        )

    def to_response(self, cover_url: str) -> dict:
        return {
            "found": True,
            "title": self.title,
            "author": self.author,
            "publisher": self.publisher,
            "pageCount": self.page_count,
            "publishedDate": self.published_date,
            "description": self.description,
            "coverImageUrl": cover_url,
            "categories": self.categories,
        }
