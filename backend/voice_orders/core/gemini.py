import json
import logging
import re
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import httpx

from voice_orders.core.errors import GeminiRequestError, ModelOutputError
from voice_orders.schemas.orders import ProductRef

logger = logging.getLogger(__name__)

# Service endpoint for Gemini API (v1beta)
API_BASE = "https://generativelanguage.googleapis.com/v1beta"

SYSTEM_PROMPT_TEMPLATE = """
You are given a user input describing products with quantities in natural language.
You also have a list of available products with _id.

Your task:
- Match the products mentioned in the user input to the available products.
- Return a JSON array of objects with the following format:
  [{{ "_id": <product_id>, "count": <quantity> }}]
- If a product is not mentioned or not found, it should not appear.
- If words are similar, match the most similar one.
- DO NOT return anything else besides valid JSON.

Products list: {products_json}
"""


def _redact_key(s: str) -> str:
    """
    Redact 'key=...' in URLs or text so we never leak API keys in logs/responses.
    """
    if not s:
        return s
    # Replace key=XXXXX (until & or whitespace)
    return re.sub(r"(key=)([^&\s]+)", r"\1REDACTED", s)


def build_system_prompt(products: Sequence[ProductRef]) -> str:
    products_json = json.dumps([p.as_prompt_item() for p in products], ensure_ascii=False)
    return SYSTEM_PROMPT_TEMPLATE.format(products_json=products_json)


def parse_order_items(text: str) -> List[Any]:
    """
    Parse model output into a JSON array (strict json.loads, no extraction).
    Raises ModelOutputError for anything else, including fenced blocks and
    valid JSON that is not an array.
    """
    try:
        obj = json.loads(text)
    except ValueError as e:
        raise ModelOutputError("Model output is not valid JSON") from e

    if not isinstance(obj, list):
        raise ModelOutputError(f"Expected a JSON array, got {type(obj).__name__}")
    return obj


def _chunk_text(event: Dict[str, Any]) -> str:
    """Text of one streamed GenerateContentResponse (may be empty, e.g. safety blocks)."""
    texts = []
    for candidate in event.get("candidates") or []:
        for part in (candidate.get("content") or {}).get("parts") or []:
            if isinstance(part.get("text"), str):
                texts.append(part["text"])
        # Only the first candidate is used
        break
    return "".join(texts)


class GeminiIntentResolver:
    """
    Maps a transcript onto catalog products via Gemini.

    - Streams `streamGenerateContent?alt=sse` and buffers every chunk before parsing
    - Thinking disabled (thinkingBudget=0), low temperature, bounded output
    - Unparseable output degrades to [] (logged), transport errors raise GeminiRequestError
    """

    def __init__(
        self,
        api_key: str,
        *,
        model: str = "gemini-flash-lite-latest",
        temperature: float = 0.1,
        max_output_tokens: int = 1000,
        timeout: float = 60,
        filter_unknown: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_key = (api_key or "").strip()
        self._model = model if model.startswith("models/") else f"models/{model}"
        self._temperature = temperature
        self._max_output_tokens = max_output_tokens
        self._timeout = timeout
        self._filter_unknown = filter_unknown
        self._transport = transport

    def build_payload(self, transcript: str, products: Sequence[ProductRef]) -> Dict[str, Any]:
        return {
            "systemInstruction": {"parts": [{"text": build_system_prompt(products)}]},
            "contents": [{"role": "user", "parts": [{"text": transcript}]}],
            "generationConfig": {
                "temperature": self._temperature,
                "maxOutputTokens": self._max_output_tokens,
                "thinkingConfig": {"thinkingBudget": 0},
            },
            "safetySettings": [
                {
                    "category": "HARM_CATEGORY_DANGEROUS_CONTENT",
                    "threshold": "BLOCK_LOW_AND_ABOVE",
                }
            ],
        }

    async def stream_text(self, payload: Dict[str, Any]) -> AsyncIterator[str]:
        """Yields the text fragments of the streamed response, in order."""
        if not self._api_key:
            raise GeminiRequestError("GEMINI_API_KEY is not set")

        url = f"{API_BASE}/{self._model}:streamGenerateContent"
        params = {"alt": "sse", "key": self._api_key}

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                async with client.stream("POST", url, params=params, json=payload) as r:
                    if r.status_code >= 400:
                        body = _redact_key((await r.aread()).decode("utf-8", "replace"))[:2000]
                        raise GeminiRequestError(
                            f"Gemini request failed: {r.status_code}\nURL:\n{_redact_key(str(r.request.url))}\nBODY:\n{body}",
                            status_code=r.status_code,
                            body=body,
                        )

                    async for line in r.aiter_lines():
                        if not line.startswith("data:"):
                            continue
                        data = line[len("data:"):].strip()
                        if not data:
                            continue
                        try:
                            event = json.loads(data)
                        except ValueError:
                            logger.warning("Skipping malformed SSE event from Gemini: %s", data[:200])
                            continue
                        text = _chunk_text(event)
                        if text:
                            yield text
        except httpx.HTTPError as e:
            raise GeminiRequestError(f"Gemini transport error: {_redact_key(str(e))}", cause=e) from e

    async def generate(self, transcript: str, products: Sequence[ProductRef]) -> str:
        payload = self.build_payload(transcript, products)
        output = ""
        async for chunk in self.stream_text(payload):
            output += chunk
        return output

    async def resolve(self, transcript: str, products: Sequence[ProductRef]) -> List[Any]:
        output = await self.generate(transcript, products)

        try:
            items = parse_order_items(output)
        except ModelOutputError as e:
            logger.error("Failed to parse Gemini response (%s): %r", e, output)
            return []

        if self._filter_unknown:
            items = self._drop_unknown(items, products)
        return items

    @staticmethod
    def _drop_unknown(items: List[Any], products: Sequence[ProductRef]) -> List[Any]:
        known = {str(p.id) for p in products}
        kept = []
        for item in items:
            if isinstance(item, dict) and str(item.get("_id")) in known:
                kept.append(item)
            else:
                logger.warning("Dropping model item not in catalog: %r", item)
        return kept
