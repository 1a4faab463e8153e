"""
Voice Orders API - FastAPI Main Entry

✅ LOCAL:
    cd backend
    source .venv/bin/activate
    python -m uvicorn voice_orders.main:app --reload --host 0.0.0.0 --port 3000

    or simply:
    python -m voice_orders.main

✅ TEST:
    curl -i http://127.0.0.1:3000/health
    curl -i -F "audio=@pedido.webm" http://127.0.0.1:3000/process-audio

✅ REQUIRED ENV:
    GOOGLE_CLOUD_KEY   service account JSON (the document itself, not a path)
    GEMINI_API_KEY
    PORT               optional, defaults to 3000
"""

import logging
import sys

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from voice_orders.core.config import settings

# ✅ Routers
from voice_orders.api.routes_audio import router as audio_router
from voice_orders.api.routes_meta import router as meta_router

logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    """Single stdout handler on the root logger; third-party chatter kept at WARNING."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(settings.LOG_LEVEL.upper())

    for name in ("httpx", "httpcore", "google", "grpc", "urllib3"):
        logging.getLogger(name).setLevel(logging.WARNING)


def create_app() -> FastAPI:
    _configure_logging()

    app = FastAPI(
        title="Voice Orders API",
        version=settings.APP_VERSION,
        description="Turns a spoken order (audio upload) into catalog product ids and quantities",
    )

    # ✅ CORS (browser clients upload straight from the page)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ✅ Root (GET /)
    @app.get("/")
    def root():
        return {
            "name": "Voice Orders API",
            "status": "ok",
            "docs": "/docs",
            "health": "/health",
            "version": "/version",
        }

    # ✅ Health Check (GET /health)
    @app.get("/health")
    def health():
        return {"ok": True}

    # ✅ Anything that escapes a route: fixed body, details only in logs
    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request, exc):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    # ✅ Mount routers
    app.include_router(audio_router)
    app.include_router(meta_router)

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)
