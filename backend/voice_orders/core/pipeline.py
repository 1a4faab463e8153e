import asyncio
import logging
from typing import Any, List, Protocol, Sequence

from voice_orders.schemas.orders import ProcessAudioResponse, ProductRef

logger = logging.getLogger(__name__)


class Transcriber(Protocol):
    async def transcribe(self, audio_bytes: bytes) -> str: ...


class ProductCatalog(Protocol):
    async def fetch_products(self) -> List[ProductRef]: ...


class IntentResolver(Protocol):
    async def resolve(self, transcript: str, products: Sequence[ProductRef]) -> List[Any]: ...


class AudioOrderPipeline:
    """
    Audio bytes -> {transcription, products}.

    Transcription and catalog fetch don't depend on each other, so they run
    concurrently; the resolver needs both. Errors from speech/catalog/Gemini
    transport propagate; the resolver already turns bad model output into [].
    """

    def __init__(self, transcriber: Transcriber, catalog: ProductCatalog, resolver: IntentResolver):
        self._transcriber = transcriber
        self._catalog = catalog
        self._resolver = resolver

    async def run(self, audio_bytes: bytes) -> ProcessAudioResponse:
        transcription, products_list = await asyncio.gather(
            self._transcriber.transcribe(audio_bytes),
            self._catalog.fetch_products(),
        )
        logger.info("Transcription: %r (catalog size=%d)", transcription, len(products_list))

        products = await self._resolver.resolve(transcription, products_list)
        logger.info("Resolved %d product(s)", len(products))

        return ProcessAudioResponse(transcription=transcription, products=products)
