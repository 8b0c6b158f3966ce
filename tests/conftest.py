"""
Pytest configuration and fixtures for bookrelay tests.
"""

import json
from typing import Callable

import httpx
import pytest

from bookrelay.core.config import Settings


@pytest.fixture
def settings() -> Settings:
    """Settings with a dummy key; never touches the environment."""
    return Settings(openai_api_key="test-key", env="test")


@pytest.fixture
def openai_payload() -> Callable[..., dict]:
    """Build a Responses API payload whose assistant text is the given record."""

    def build(record: dict | None = None, text: str | None = None) -> dict:
        if text is None:
            text = json.dumps(record or {})
        return {
            "id": "resp_test",
            "output": [
                {"type": "web_search_call", "id": "ws_1", "status": "completed"},
                {
                    "type": "message",
                    "role": "assistant",
                    "content": [{"type": "output_text", "text": text}],
                },
            ],
        }

    return build


@pytest.fixture
def book_record() -> dict:
    """A plausible provider record for 978-605-080-000-1."""
    return {
        "found": True,
        "sourceIsbn": "978-605-080-000-1",
        "title": "Kürk Mantolu Madonna",
        "author": "Sabahattin Ali",
        "publisher": "Yapı Kredi Yayınları",
        "pageCount": 160,
        "publishedDate": "2014",
        "description": "Raif Efendi'nin defterinden bir aşk hikayesi.",
        "categories": ["Roman", "  Klasik ", "", 7],
    }


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.requests: list[httpx.Request] = []

        def record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(record)

    def hosts(self) -> list[str]:
        return [r.url.host for r in self.requests]


@pytest.fixture
def recording_transport() -> type[RecordingTransport]:
    return RecordingTransport


def image_head(size: int = 48_000) -> httpx.Response:
    return httpx.Response(200, headers={"content-type": "image/jpeg", "content-length": str(size)})


@pytest.fixture
def image_response() -> Callable[[int], httpx.Response]:
    return image_head
