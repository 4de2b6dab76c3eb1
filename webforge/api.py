"""
HTTP surface for WebForge.

``POST /api/generate`` validates the request synchronously (400 on any input
problem, before any model call) and then streams the pipeline's NDJSON lines.
"""

from __future__ import annotations

import json
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse

from . import __version__
from .core.config import Settings
from .core.exceptions import InputValidationError
from .core.logging import get_logger, setup_logging
from .models.request import GenerationRequest
from .orchestration import GenerationPipeline, stream_generation

logger = get_logger(__name__)

NDJSON_MEDIA_TYPE = "application/x-ndjson"
STREAM_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive"}


def create_app(settings: Settings | None = None, pipeline: GenerationPipeline | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Explicit settings; read from the environment when omitted
        pipeline: Pipeline override (tests inject scripted collaborators)
    """
    settings = settings or Settings.from_env()
    setup_logging(settings)
    pipeline = pipeline or GenerationPipeline(settings)

    app = FastAPI(title=settings.project_name, version=__version__)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {"status": "ok", "version": __version__}

    @app.post("/api/generate")
    async def generate(request: Request) -> Any:
        try:
            payload = await request.json()
        except json.JSONDecodeError:
            return JSONResponse({"error": "Request body must be valid JSON"}, status_code=400)
        if not isinstance(payload, dict):
            return JSONResponse({"error": "Request body must be a JSON object"}, status_code=400)

        try:
            generation_request = GenerationRequest.parse_payload(payload)
        except InputValidationError as e:
            logger.info("Generation request rejected", field=e.field_name, error=e.message)
            return JSONResponse({"error": str(e)}, status_code=400)

        return StreamingResponse(
            stream_generation(generation_request, settings, pipeline=pipeline),
            media_type=NDJSON_MEDIA_TYPE,
            headers=STREAM_HEADERS,
        )

    return app
