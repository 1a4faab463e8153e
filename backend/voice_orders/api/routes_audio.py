import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile

from voice_orders.api.dependencies import get_pipeline
from voice_orders.core.config import settings
from voice_orders.core.errors import UpstreamError
from voice_orders.core.pipeline import AudioOrderPipeline
from voice_orders.core.uploads import read_upload, stored_upload
from voice_orders.schemas.orders import ErrorResponse, ProcessAudioResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["audio"])

# The form is read by hand so a non-file "audio" part gets the same 400 as a missing one
AUDIO_FORM_SCHEMA = {
    "requestBody": {
        "content": {
            "multipart/form-data": {
                "schema": {
                    "type": "object",
                    "properties": {"audio": {"type": "string", "format": "binary"}},
                    "required": ["audio"],
                }
            }
        },
        "required": True,
    }
}


@router.post(
    "/process-audio",
    response_model=ProcessAudioResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    openapi_extra=AUDIO_FORM_SCHEMA,
)
async def process_audio(
    request: Request,
    pipeline: AudioOrderPipeline = Depends(get_pipeline),
):
    async with request.form() as form:
        audio = form.get("audio")
        if not isinstance(audio, UploadFile):
            return JSONResponse(status_code=400, content={"error": "Audio file missing"})

        try:
            async with stored_upload(audio, settings.UPLOAD_DIR) as upload_path:
                audio_bytes = await read_upload(upload_path)
                return await pipeline.run(audio_bytes)

        except UpstreamError as e:
            logger.error("Upstream failure while processing %r: %s", audio.filename, e, exc_info=e.cause or e)
            return JSONResponse(status_code=500, content={"error": "Internal server error"})

        except Exception:
            logger.exception("Unexpected failure while processing %r", audio.filename)
            return JSONResponse(status_code=500, content={"error": "Internal server error"})
