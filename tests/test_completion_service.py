"""
Inkwell Backend — Completion Service Tests
============================================

What:  The AI gateway: prompt assembly, response extraction, tag filtering
       and error mapping.
How:   httpx.MockTransport stands in for the remote API; no network.

What we test:
    ✅ Tag filtering and ordering
    ✅ Input truncation with marker
    ✅ Response extraction precedence
    ✅ 429 → UpstreamRateLimitedError, other non-2xx → LLMServiceError
    ✅ Chat request carries system prompt, windowed history, question last
"""

import json

import httpx
import pytest

from inkwell.exceptions import LLMServiceError, UpstreamRateLimitedError
from inkwell.services.completion_service import (
    NO_RESPONSE,
    TRUNCATION_MARKER,
    CompletionService,
    extract_output_text,
    parse_tags,
    to_chat_messages,
    truncate,
)


def make_service(handler, api_key: str = "k") -> CompletionService:
    return CompletionService(
        api_key=api_key,
        base_url="https://llm.test/models/v2",
        model="acme/tiny",
        transport=httpx.MockTransport(handler),
    )


class TestParseTags:

    def test_filters_meta_and_long_entries(self):
        assert parse_tags("cats, dogs, the great outdoors, keywords:") == ["cats", "dogs"]

    def test_strips_markdown_characters(self):
        assert parse_tags("**python**, #asyncio, web dev.") == ["python", "asyncio", "web dev"]

    def test_empty_reply(self):
        assert parse_tags("") == []
        assert parse_tags(" , ,") == []

    def test_case_insensitive_keywords_filter(self):
        assert parse_tags("Keywords, sql") == ["sql"]


class TestHelpers:

    def test_truncate_under_limit_unchanged(self):
        assert truncate("abc", 3) == "abc"

    def test_truncate_over_limit(self):
        assert truncate("abcdef", 4) == "abcd" + TRUNCATION_MARKER

    def test_extract_prefers_output_content(self):
        payload = {"output": {"role": "assistant", "content": "hi"}}
        assert extract_output_text(payload, NO_RESPONSE) == "hi"

    def test_extract_plain_string_output(self):
        assert extract_output_text({"output": "hello"}, NO_RESPONSE) == "hello"

    def test_extract_other_output_is_json_encoded(self):
        assert extract_output_text({"output": ["a", "b"]}, NO_RESPONSE) == json.dumps(["a", "b"])

    def test_extract_falls_back_to_default(self):
        assert extract_output_text({"output": None}, NO_RESPONSE) == NO_RESPONSE
        assert extract_output_text({"output": {}}, NO_RESPONSE) == NO_RESPONSE
        assert extract_output_text({}, NO_RESPONSE) == NO_RESPONSE
        assert extract_output_text("not a dict", "x") == "x"

    def test_extract_empty_content_falls_through_to_output(self):
        payload = {"output": {"content": "", "role": "assistant"}}
        assert extract_output_text(payload, NO_RESPONSE) == json.dumps(payload["output"])

    def test_chat_messages_window_and_roles(self):
        history = [{"role": "user", "content": str(i)} for i in range(12)]
        history[-1]["role"] = "bot"
        messages = to_chat_messages(history, 10)
        assert len(messages) == 10
        assert messages[0]["content"] == "2"
        assert messages[-1]["role"] == "assistant"


class TestCompletionCalls:

    @pytest.mark.asyncio
    async def test_extract_tags_request_and_parse(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"output": {"content": "cats, dogs, keywords:"}})

        service = make_service(handler)
        tags = await service.extract_tags("x" * 7000)
        await service.aclose()

        assert tags == ["cats", "dogs"]
        assert seen["url"] == "https://llm.test/models/v2/acme/tiny"
        assert seen["auth"] == "k"
        messages = seen["body"]["messages"]
        assert [m["role"] for m in messages] == ["system", "user"]
        assert TRUNCATION_MARKER in messages[1]["content"]
        assert "x" * 6001 not in messages[1]["content"]

    @pytest.mark.asyncio
    async def test_answer_includes_history_and_question_last(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"output": "  Light.  "})

        service = make_service(handler)
        history = [
            {"role": "user", "content": "q1"},
            {"role": "assistant", "content": "a1"},
        ]
        reply = await service.answer("The note", "What do plants need?", history)

        assert reply == "Light."
        messages = seen["body"]["messages"]
        assert messages[0]["role"] == "system"
        assert "The note" in messages[0]["content"]
        assert messages[1:3] == history
        assert messages[-1] == {"role": "user", "content": "What do plants need?"}

    @pytest.mark.asyncio
    async def test_answer_empty_output_uses_default(self):
        service = make_service(lambda request: httpx.Response(200, json={"output": ""}))
        assert await service.answer("n", "q") == NO_RESPONSE

    @pytest.mark.asyncio
    async def test_429_maps_to_upstream_rate_limited(self):
        service = make_service(
            lambda request: httpx.Response(429, headers={"Retry-After": "7"}, json={})
        )
        with pytest.raises(UpstreamRateLimitedError) as exc_info:
            await service.extract_tags("text")
        assert exc_info.value.status_code == 429
        assert exc_info.value.retry_after == 7

    @pytest.mark.asyncio
    async def test_server_error_carries_status(self):
        service = make_service(lambda request: httpx.Response(500, text="boom"))
        with pytest.raises(LLMServiceError) as exc_info:
            await service.answer("n", "q")
        assert not isinstance(exc_info.value, UpstreamRateLimitedError)
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_transport_failure_has_no_status(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        service = make_service(handler)
        with pytest.raises(LLMServiceError) as exc_info:
            await service.extract_tags("text")
        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_timeout_is_upstream_failure(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        service = make_service(handler)
        with pytest.raises(LLMServiceError) as exc_info:
            await service.answer("n", "q")
        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_missing_api_key_makes_no_request(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"output": "x"})

        service = make_service(handler, api_key="")
        with pytest.raises(LLMServiceError):
            await service.extract_tags("text")
        assert calls == []
        assert await service.health_check() is False

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        service = make_service(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(LLMServiceError):
            await service.extract_tags("text")
