from __future__ import annotations

import asyncio
import json
import logging

import httpx
import pytest

from voice_orders.core.errors import GeminiRequestError, ModelOutputError
from voice_orders.core.gemini import (
    GeminiIntentResolver,
    _redact_key,
    build_system_prompt,
    parse_order_items,
)
from voice_orders.schemas.orders import ProductRef

CATALOG = [
    ProductRef(_id="p1", name="Camisa Azul"),
    ProductRef(_id="p2", name="Pantalón Negro"),
]


def _sse(*texts: str) -> str:
    events = []
    for text in texts:
        event = {"candidates": [{"content": {"role": "model", "parts": [{"text": text}]}}]}
        events.append(f"data: {json.dumps(event)}\r\n\r\n")
    return "".join(events)


def _resolver(handler, **kwargs) -> GeminiIntentResolver:
    return GeminiIntentResolver("test-key", transport=httpx.MockTransport(handler), **kwargs)


def _streaming(*texts: str):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text=_sse(*texts), headers={"content-type": "text/event-stream"})

    return handler, seen


def test_chunks_are_buffered_before_parsing():
    handler, _ = _streaming('[{"_id": "p1",', ' "count": 2}', "]")

    items = asyncio.run(_resolver(handler).resolve("dos camisas azules", CATALOG))

    assert items == [{"_id": "p1", "count": 2}]


def test_request_carries_prompt_catalog_and_generation_settings():
    handler, seen = _streaming("[]")

    asyncio.run(_resolver(handler).resolve("dos camisas azules", CATALOG))

    request = seen[0]
    assert request.url.path.endswith("/models/gemini-flash-lite-latest:streamGenerateContent")
    assert request.url.params["alt"] == "sse"

    payload = json.loads(request.content)
    assert payload["contents"] == [{"role": "user", "parts": [{"text": "dos camisas azules"}]}]
    assert payload["generationConfig"] == {
        "temperature": 0.1,
        "maxOutputTokens": 1000,
        "thinkingConfig": {"thinkingBudget": 0},
    }
    assert payload["safetySettings"] == [
        {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "threshold": "BLOCK_LOW_AND_ABOVE"}
    ]
    system_text = payload["systemInstruction"]["parts"][0]["text"]
    assert '{"_id": "p1", "name": "Camisa Azul"}' in system_text
    assert "Pantalón Negro" in system_text
    assert "DO NOT return anything else besides valid JSON." in system_text


def test_non_json_output_is_logged_and_becomes_empty(caplog):
    handler, _ = _streaming("No encontré productos.")

    with caplog.at_level(logging.ERROR, logger="voice_orders.core.gemini"):
        items = asyncio.run(_resolver(handler).resolve("hola", CATALOG))

    assert items == []
    assert "No encontré productos." in caplog.text


def test_json_object_instead_of_array_becomes_empty():
    handler, _ = _streaming('{"_id": "p1", "count": 2}')

    assert asyncio.run(_resolver(handler).resolve("una camisa", CATALOG)) == []


def test_blocked_response_without_text_becomes_empty():
    def handler(request):
        event = {"promptFeedback": {"blockReason": "SAFETY"}}
        return httpx.Response(200, text=f"data: {json.dumps(event)}\r\n\r\n")

    assert asyncio.run(_resolver(handler).resolve("algo", CATALOG)) == []


def test_items_are_returned_as_is_by_default():
    handler, _ = _streaming('[{"_id": "zz", "count": 1}, {"_id": "p2", "count": 3}]')

    items = asyncio.run(_resolver(handler).resolve("tres pantalones", CATALOG))

    assert items == [{"_id": "zz", "count": 1}, {"_id": "p2", "count": 3}]


def test_unknown_ids_dropped_when_filter_enabled():
    handler, _ = _streaming('[{"_id": "zz", "count": 1}, {"_id": "p2", "count": 3}]')

    items = asyncio.run(_resolver(handler, filter_unknown=True).resolve("tres pantalones", CATALOG))

    assert items == [{"_id": "p2", "count": 3}]


def test_http_error_raises_with_key_redacted():
    def handler(request):
        return httpx.Response(403, text=f"denied for {request.url}")

    with pytest.raises(GeminiRequestError) as excinfo:
        asyncio.run(_resolver(handler).resolve("hola", CATALOG))

    assert excinfo.value.status_code == 403
    assert "test-key" not in str(excinfo.value)
    assert "key=REDACTED" in str(excinfo.value)


def test_transport_error_raises_request_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(GeminiRequestError):
        asyncio.run(_resolver(handler).resolve("hola", CATALOG))


def test_missing_api_key_raises():
    resolver = GeminiIntentResolver("", transport=httpx.MockTransport(lambda r: httpx.Response(200)))

    with pytest.raises(GeminiRequestError):
        asyncio.run(resolver.resolve("hola", CATALOG))


def test_parse_order_items_rejects_fenced_array():
    text = '```json\n[{"_id": "p1", "count": 2}]\n```'

    with pytest.raises(ModelOutputError):
        parse_order_items(text)


def test_fenced_model_output_becomes_empty():
    handler, _ = _streaming('```json\n[{"_id":"p1","count":2}]\n```')

    assert asyncio.run(_resolver(handler).resolve("dos camisas azules", CATALOG)) == []


@pytest.mark.parametrize("text", ["", "not json", "```json\n{broken\n```", "42"])
def test_parse_order_items_rejects_non_arrays(text):
    with pytest.raises(ModelOutputError):
        parse_order_items(text)


def test_system_prompt_with_empty_catalog():
    assert "Products list: []" in build_system_prompt([])


def test_redact_key():
    assert _redact_key("https://x/models/m:streamGenerateContent?alt=sse&key=abc123") == (
        "https://x/models/m:streamGenerateContent?alt=sse&key=REDACTED"
    )
