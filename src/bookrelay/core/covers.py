"""Find a cover image for an ISBN from multiple sources."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Awaitable, Callable
from urllib.parse import urlsplit

import httpx
import structlog

from .isbn import alternate_isbn

log = structlog.get_logger()

PLACEHOLDER_COVER_URL = (
    "https://cdn.vectorstock.com/i/500p/33/47/no-photo-available-icon-vector-40343347.jpg"
)

# "No image available" icons served with a 200 are all below this size.
MIN_COVER_BYTES = 2500
VERIFY_TIMEOUT = 2.5
SCRAPE_TIMEOUT = 4.0

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

_ISBNSEARCH_IMAGE_RE = re.compile(r'<div class="image">\s*<img src="([^"]+)"', re.IGNORECASE)
# Google Images embeds results as ["<url>",<height>,<width>] arrays.
_GOOGLE_IMAGE_RE = re.compile(r'\["(https?://[^"]+)",(\d+),(\d+)\]')

_SEARCH_ENGINE_HOSTS = ("gstatic.com", "google.com")
_NON_COVER_MARKERS = ("icon", "logo", "avatar")
_IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp")


def is_cover_image_url(url: object) -> bool:
    """Whether a scraped URL plausibly points at a cover photo."""
    if not isinstance(url, str):
        return False
    if any(host in url for host in _SEARCH_ENGINE_HOSTS) or not url.startswith("http"):
        return False
    try:
        path = urlsplit(url).path.lower()
    except ValueError:
        return False
    if any(marker in path for marker in _NON_COVER_MARKERS):
        return False
    return path.endswith(_IMAGE_EXTENSIONS)


async def verify_image_url(client: httpx.AsyncClient, url: str) -> bool:
    """HEAD-check a URL: must answer 200 with a body larger than MIN_COVER_BYTES."""
    try:
        resp = await client.head(url, timeout=VERIFY_TIMEOUT, follow_redirects=True)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        log.debug("cover_verify_error", url=url, error=str(e))
        return False
    if resp.status_code != 200:
        log.debug("cover_verify_status", url=url, status=resp.status_code)
        return False
    try:
        size = int(resp.headers.get("content-length", ""))
    except ValueError:
        log.debug("cover_verify_no_size", url=url)
        return False
    return size > MIN_COVER_BYTES


@dataclass(frozen=True)
class CoverProbe:
    name: str
    attempt: Callable[[str], Awaitable[str | None]]


@dataclass(frozen=True)
class CoverResult:
    url: str
    source: str

    @property
    def is_placeholder(self) -> bool:
        return self.url == PLACEHOLDER_COVER_URL


class CoverFinder:
    """Finds a cover image URL for an ISBN.

    Waterfall: DirectTextbook → ISBNSearch page → AbeBooks → Amazon →
    Google Images → placeholder. Sources are ranked by how reliably they
    return the right edition, so the first hit wins and the rest are skipped.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        probes: list[CoverProbe] | None = None,
    ) -> None:
        self.client = client
        self.probes = probes if probes is not None else self.default_probes()

    def default_probes(self) -> list[CoverProbe]:
        return [
            CoverProbe("directtextbook", self._try_directtextbook),
            CoverProbe("isbnsearch", self._try_isbnsearch),
            CoverProbe("abebooks", self._try_abebooks),
            CoverProbe("amazon", self._try_amazon),
            CoverProbe("google_images", self._try_google_images),
        ]

    async def _verified(self, url: str) -> str | None:
        return url if await verify_image_url(self.client, url) else None

    async def _try_directtextbook(self, isbn: str) -> str | None:
        return await self._verified(f"https://www.directtextbook.com/large/{isbn}.webp")

    async def _try_isbnsearch(self, isbn: str) -> str | None:
        """Scrape the cover <img> from the ISBNSearch detail page."""
        resp = await self.client.get(
            f"https://isbnsearch.org/isbn/{isbn}",
            headers={"User-Agent": BROWSER_USER_AGENT},
            timeout=SCRAPE_TIMEOUT,
            follow_redirects=True,
        )
        resp.raise_for_status()
        match = _ISBNSEARCH_IMAGE_RE.search(resp.text)
        if not match:
            return None
        return await self._verified(match.group(1))

    async def _try_abebooks(self, isbn: str) -> str | None:
        return await self._verified(f"https://pictures.abebooks.com/isbn/{isbn}-us-300.jpg")

    async def _try_amazon(self, isbn: str) -> str | None:
        isbn10 = alternate_isbn(isbn)
        if not isbn10:
            log.debug("amazon_no_isbn10", isbn=isbn)
            return None
        return await self._verified(f"http://images.amazon.com/images/P/{isbn10}.01.LZZZZZZZ.jpg")

    async def _try_google_images(self, isbn: str) -> str | None:
        """Exact-phrase image search on the ISBN.

        Best effort: the result page layout is not a stable contract. Hits are
        not HEAD-verified; the classifier is the only filter.
        """
        resp = await self.client.get(
            "https://www.google.com/search",
            params={"q": f'"{isbn}"', "tbm": "isch"},
            headers={
                "User-Agent": BROWSER_USER_AGENT,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
            },
        )
        resp.raise_for_status()
        for match in _GOOGLE_IMAGE_RE.finditer(resp.text):
            url = match.group(1)
            try:
                url = json.loads(f'"{url}"')
            except ValueError:
                pass
            if is_cover_image_url(url):
                return url
        return None

    async def find_cover(self, isbn: str) -> CoverResult:
        """Run the probes in order and return the first hit, else the placeholder."""
        log.info("cover_search_started", isbn=isbn)
        for probe in self.probes:
            try:
                url = await probe.attempt(isbn)
            except Exception as e:
                log.debug("probe_failed", isbn=isbn, source=probe.name, error=repr(e))
                continue
            if url:
                log.info("cover_source_hit", isbn=isbn, source=probe.name, url=url)
                return CoverResult(url=url, source=probe.name)
            log.debug("cover_source_miss", isbn=isbn, source=probe.name)

        log.warning("cover_not_found", isbn=isbn)
        return CoverResult(url=PLACEHOLDER_COVER_URL, source="placeholder")
