"""
Unit tests for the metadata provider client and the ISBN trust gate.
"""

import json

import httpx
import pytest

from bookrelay.core.metadata import (
    MetadataProvider,
    MetadataProviderError,
    extract_output_text,
    is_trusted,
    parse_provider_text,
)
from bookrelay.core.models import BookRecord

REQUESTED = "9786050800001"


class TestTrustGate:
    def test_accepts_matching_isbn_after_cleanup(self):
        record = BookRecord(found=True, source_isbn="978-605-080-000-1", title="Kitap")
        assert is_trusted(REQUESTED, record)

    def test_rejects_different_isbn_however_plausible(self):
        record = BookRecord(
            found=True,
            source_isbn="9786050800002",
            title="Kürk Mantolu Madonna",
            author="Sabahattin Ali",
            publisher="Yapı Kredi Yayınları",
            page_count=160,
            categories=["Roman"],
        )
        assert not is_trusted(REQUESTED, record)

    def test_rejects_not_found_even_with_match(self):
        assert not is_trusted(REQUESTED, BookRecord(found=False, source_isbn=REQUESTED))

    @pytest.mark.parametrize("source_isbn", [None, "", "n/a", "605080000"])
    def test_rejects_missing_or_short_claims(self, source_isbn):
        assert not is_trusted(REQUESTED, BookRecord(found=True, source_isbn=source_isbn))

    def test_short_requested_isbn_never_matches(self):
        assert not is_trusted("123456", BookRecord(found=True, source_isbn="123456"))

    def test_x_check_character_is_case_insensitive(self):
        record = BookRecord(found=True, source_isbn="0-8044-2957-x")
        assert is_trusted("080442957X", record)

    def test_isbn10_claim_does_not_match_isbn13_request(self):
        record = BookRecord(found=True, source_isbn="6050800006")
        assert not is_trusted(REQUESTED, record)


class TestParseProviderText:
    def test_plain_json(self):
        assert parse_provider_text('{"found": true}') == {"found": True}

    def test_strips_code_fences(self):
        text = '```json\n{"found": true, "title": "Dune"}\n```'
        assert parse_provider_text(text) == {"found": True, "title": "Dune"}

    def test_uppercase_fence(self):
        assert parse_provider_text('```JSON\n{"found": false}\n```') == {"found": False}

    @pytest.mark.parametrize("text", ["", "I could not find that book.", "[1, 2]", '{"found": tru'])
    def test_unusable_output_is_empty(self, text):
        assert parse_provider_text(text) == {}


class TestExtractOutputText:
    def test_prefers_assistant_message(self, openai_payload):
        assert extract_output_text(openai_payload(text="  {}  ")) == "{}"

    def test_falls_back_to_first_item(self):
        payload = {"output": [{"content": [{"type": "output_text", "text": "hello"}]}]}
        assert extract_output_text(payload) == "hello"

    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"output": []},
            {"output": "nope"},
            {"output": [{"type": "message", "role": "assistant", "content": []}]},
            {"output": [{"type": "message", "role": "assistant", "content": [{"type": "refusal"}]}]},
        ],
    )
    def test_missing_text(self, payload):
        assert extract_output_text(payload) == ""


class TestMetadataProvider:
    async def test_lookup_sends_search_request(self, settings, openai_payload, book_record):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=openai_payload(book_record))

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            record = await MetadataProvider(client, settings).lookup(REQUESTED)

        assert record.found is True
        assert record.title == "Kürk Mantolu Madonna"
        assert record.categories == ["Roman", "Klasik"]

        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == "https://api.openai.com/v1/responses"
        assert request.headers["authorization"] == "Bearer test-key"
        body = json.loads(request.content)
        assert body["model"] == "gpt-4o-mini"
        assert body["tools"] == [{"type": "web_search"}]
        assert body["temperature"] == 0
        system, user = body["input"]
        assert system["role"] == "system"
        assert REQUESTED in system["content"][0]["text"]
        assert REQUESTED in user["content"][0]["text"]

    async def test_unparseable_answer_gives_empty_record(self, settings, openai_payload):
        payload = openai_payload(text="Sorry, I can't help with that.")
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(lambda r: httpx.Response(200, json=payload))
        ) as client:
            record = await MetadataProvider(client, settings).lookup(REQUESTED)

        assert record == BookRecord()
        assert not is_trusted(REQUESTED, record)

    async def test_error_message_from_provider(self, settings):
        error = {"error": {"message": "Incorrect API key provided", "type": "invalid_request_error"}}
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(lambda r: httpx.Response(401, json=error))
        ) as client:
            with pytest.raises(MetadataProviderError, match="Incorrect API key provided"):
                await MetadataProvider(client, settings).lookup(REQUESTED)

    async def test_error_without_body(self, settings):
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(lambda r: httpx.Response(502, text="Bad Gateway"))
        ) as client:
            with pytest.raises(MetadataProviderError, match="OpenAI error: 502"):
                await MetadataProvider(client, settings).lookup(REQUESTED)

    async def test_transport_error(self, settings):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(MetadataProviderError):
                await MetadataProvider(client, settings).lookup(REQUESTED)
