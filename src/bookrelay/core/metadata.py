"""Book metadata lookup through the OpenAI Responses API, plus the ISBN trust gate."""

from __future__ import annotations

import json
import re

import httpx
import structlog

from .config import Settings
from .isbn import strip_isbn
from .models import BookRecord

log = structlog.get_logger()

_CODE_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)

# Anything shorter cannot be a real ISBN, even if it happens to match.
MIN_TRUSTED_ISBN_LENGTH = 10

SYSTEM_PROMPT = """
You are a book data assistant.

Your only job is to produce book metadata for the ISBN you are given and to
return it as valid JSON, nothing else.

The output must have exactly this shape:

{{
  "found": boolean,
  "sourceIsbn": "the ISBN exactly as shown by the source you used, or null",
  "title": "Book title",
  "author": "Author name",
  "publisher": "Publisher name",
  "pageCount": number,
  "publishedDate": "Year",
  "description": "Short summary",
  "categories": ["Category 1", "Category 2"]
}}

ISBN RULES:

- The ISBN is: {isbn}
- When searching the web, ONLY use results that match this ISBN exactly.
- Do NOT accept any result whose ISBN field does not clearly show {isbn}.
- If the ISBN does not match exactly, return "found": false and "sourceIsbn": null.
- If you are not sure, do NOT guess: return "found": false.

Fields:

- "found": true if the book was found, false otherwise.
- "sourceIsbn": the real value of the "ISBN" field you saw online; null if
  you could not find it or are not sure.
- "title", "author", "publisher": if the book was published in Turkey, use the
  Turkish title and publisher; otherwise use the original title and author.
- "pageCount": a number only (for example 320), null if unknown.
- "publishedDate": the year only, as a string (for example "2014").
- "description": a 2-4 sentence summary, in Turkish where possible.
- "categories": a list of genre names such as "Self-Help", "Science Fiction",
  "Fantasy", "Psychology", "History"; [] if there are none.

Hard rules:

1. NEVER produce cover images, links, URLs or image sources.
2. Do not write anything outside the JSON: no commentary, markdown or warnings
   before or after it. Return a single JSON object.
3. The JSON must be valid: double-quoted keys and strings, no trailing commas,
   no comments.
""".strip()


class MetadataProviderError(Exception):
    """Raised when the metadata provider call fails."""


def parse_provider_text(text: str) -> dict:
    """Parse the assistant's JSON answer, tolerating markdown code fences.

    Unparseable output yields an empty dict, which the trust gate rejects.
    """
    cleaned = _CODE_FENCE_RE.sub("", text).strip()
    try:
        data = json.loads(cleaned or "{}")
    except ValueError as e:
        log.error("provider_json_parse_error", error=str(e), text=text[:200])
        return {}
    if not isinstance(data, dict):
        log.error("provider_json_not_object", kind=type(data).__name__)
        return {}
    return data


def extract_output_text(payload: dict) -> str:
    """Pull the assistant's output_text out of a Responses API payload."""
    items = payload.get("output")
    if not isinstance(items, list) or not items:
        return ""
    message = next(
        (
            item
            for item in items
            if isinstance(item, dict)
            and item.get("type") == "message"
            and item.get("role") == "assistant"
        ),
        items[0],
    )
    content = message.get("content") if isinstance(message, dict) else None
    if not isinstance(content, list):
        return ""
    for part in content:
        if isinstance(part, dict) and part.get("type") == "output_text":
            text = part.get("text")
            return text.strip() if isinstance(text, str) else ""
    return ""


def is_trusted(requested_isbn: str, record: BookRecord) -> bool:
    """Accept a record only if its claimed ISBN is exactly the requested one."""
    if not record.found:
        return False
    claimed = strip_isbn(record.source_isbn or "")
    return len(claimed) >= MIN_TRUSTED_ISBN_LENGTH and claimed == strip_isbn(requested_isbn)


class MetadataProvider:
    """Looks up book metadata with an LLM that is allowed to search the web."""

    def __init__(self, client: httpx.AsyncClient, settings: Settings) -> None:
        self.client = client
        self.settings = settings

    def _request_body(self, isbn: str) -> dict:
        def message(role: str, text: str) -> dict:
            return {
                "type": "message",
                "role": role,
                "content": [{"type": "input_text", "text": text}],
            }

        return {
            "model": self.settings.openai_model,
            "tools": [{"type": "web_search"}],
            "temperature": 0,
            "input": [
                message("system", SYSTEM_PROMPT.format(isbn=isbn)),
                message("user", f"Return the metadata for ISBN {isbn} only."),
            ],
        }

    async def lookup(self, isbn: str) -> BookRecord:
        """Ask the provider about an ISBN.

        Raises MetadataProviderError on transport errors or non-2xx answers.
        The returned record has not been through the trust gate yet.
        """
        url = f"{self.settings.openai_base_url}/responses"
        headers = {"Authorization": f"Bearer {self.settings.openai_api_key}"}
        try:
            resp = await self.client.post(
                url,
                json=self._request_body(isbn),
                headers=headers,
                timeout=self.settings.openai_timeout,
            )
        except httpx.HTTPError as e:
            log.error("provider_request_error", isbn=isbn, error=str(e))
            raise MetadataProviderError(f"OpenAI request failed: {e}") from e

        try:
            payload = resp.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        if resp.is_error:
            error = payload.get("error")
            detail = error.get("message") if isinstance(error, dict) else None
            log.error("provider_error", isbn=isbn, status=resp.status_code, detail=detail)
            raise MetadataProviderError(detail or f"OpenAI error: {resp.status_code}")

        text = extract_output_text(payload)
        record = BookRecord.from_payload(parse_provider_text(text))
        log.debug("provider_answer", isbn=isbn, found=record.found, source_isbn=record.source_isbn)
        return record
