from fastapi import Depends

from voice_orders.core.catalog import CatalogClient
from voice_orders.core.config import settings
from voice_orders.core.gemini import GeminiIntentResolver
from voice_orders.core.pipeline import AudioOrderPipeline
from voice_orders.core.speech import SpeechTranscriber, get_speech_client


def get_transcriber() -> SpeechTranscriber:
    return SpeechTranscriber(
        get_speech_client,
        encoding=settings.SPEECH_ENCODING,
        language_code=settings.SPEECH_LANGUAGE_CODE,
    )


def get_catalog() -> CatalogClient:
    return CatalogClient(settings.CATALOG_URL, timeout=settings.CATALOG_TIMEOUT_SECONDS)


def get_resolver() -> GeminiIntentResolver:
    return GeminiIntentResolver(
        settings.GEMINI_API_KEY,
        model=settings.GEMINI_MODEL,
        temperature=settings.GEMINI_TEMPERATURE,
        max_output_tokens=settings.GEMINI_MAX_OUTPUT_TOKENS,
        timeout=settings.GEMINI_TIMEOUT_SECONDS,
        filter_unknown=settings.FILTER_UNKNOWN_PRODUCTS,
    )


def get_pipeline(
    transcriber=Depends(get_transcriber),
    catalog=Depends(get_catalog),
    resolver=Depends(get_resolver),
) -> AudioOrderPipeline:
    return AudioOrderPipeline(transcriber, catalog, resolver)
