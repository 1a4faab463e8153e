"""
Google Cloud Speech-to-Text wrapper.

One synchronous `recognize` call per upload (no streaming, no long-running
operation). The recognition config is fixed per deployment: encoding and
language come from settings, never from the request.

Usage::

    transcriber = SpeechTranscriber(get_speech_client)
    text = await transcriber.transcribe(audio_bytes)
"""

import json
import logging
from functools import lru_cache
from typing import Any, Callable, Iterable

from google.cloud import speech
from google.oauth2 import service_account

from voice_orders.core.config import settings
from voice_orders.core.errors import TranscriptionError

logger = logging.getLogger(__name__)


def join_transcripts(results: Iterable[Any]) -> str:
    """Top alternative of every segment, in provider order, joined by one space."""
    parts = []
    for result in results or []:
        alternatives = getattr(result, "alternatives", None)
        if not alternatives:
            continue
        parts.append(alternatives[0].transcript)
    return " ".join(parts)


@lru_cache(maxsize=1)
def get_speech_client() -> speech.SpeechAsyncClient:
    """
    Process-wide Speech client.
    GOOGLE_CLOUD_KEY holds the service account JSON; when empty we fall back to
    Application Default Credentials.

    The underlying grpc.aio channel is bound to the event loop that first uses
    it. Under uvicorn there is a single loop, so caching is safe; scripts that
    call asyncio.run() more than once must call get_speech_client.cache_clear()
    between runs (or build their own client) instead of reusing this one.
    """
    raw_key = (settings.GOOGLE_CLOUD_KEY or "").strip()
    if not raw_key:
        logger.info("GOOGLE_CLOUD_KEY not set, using application default credentials")
        return speech.SpeechAsyncClient()

    try:
        info = json.loads(raw_key)
    except ValueError as e:
        raise ValueError("GOOGLE_CLOUD_KEY is not valid JSON") from e

    credentials = service_account.Credentials.from_service_account_info(info)
    return speech.SpeechAsyncClient(credentials=credentials)


class SpeechTranscriber:
    """
    `client_factory` is called on first use so a request rejected before
    transcription never needs credentials.
    """

    def __init__(
        self,
        client_factory: Callable[[], Any],
        *,
        encoding: str = "WEBM_OPUS",
        language_code: str = "es-CO",
    ):
        try:
            self._encoding = speech.RecognitionConfig.AudioEncoding[encoding.upper()]
        except KeyError:
            raise ValueError(f"Unsupported speech encoding: {encoding}")
        self._client_factory = client_factory
        self._language_code = language_code

    async def transcribe(self, audio_bytes: bytes) -> str:
        config = speech.RecognitionConfig(
            encoding=self._encoding,
            language_code=self._language_code,
        )
        audio = speech.RecognitionAudio(content=audio_bytes)

        logger.info("Sending %d bytes to Speech-to-Text (%s)", len(audio_bytes), self._language_code)
        try:
            client = self._client_factory()
            response = await client.recognize(config=config, audio=audio)
        except Exception as e:
            raise TranscriptionError(f"recognize failed: {e}", cause=e) from e

        transcription = join_transcripts(response.results)
        if not transcription:
            logger.info("Speech-to-Text returned no results")
        return transcription
