"""HTTP gateway: OpenAI-style image generation on top of a chat-completions proxy."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from fastapi.staticfiles import StaticFiles

from app.config import Settings, settings
from src.core.errors import (
    GenerationFailedError,
    UpstreamResponseError,
    UpstreamStatusError,
    UpstreamTransportError,
)
from src.core.gateway_config import GatewayConfig
from src.core.models import (
    ChatProxyRequest,
    EnhanceRequest,
    GenerationRequest,
    GenerationResult,
    HistoryEntry,
)
from src.core.request_builder import build_chat_url
from src.core.state import AppState, load_state
from src.utils.concurrency_limiter import ConcurrencyLimitMiddleware
from src.utils.image_store import IMAGE_URL_PREFIX
from src.utils.prompt_enhancer import ENHANCE_MODEL

logger = logging.getLogger(__name__)

SERVICE_NAME = "Image Generation Gateway"
APP_VERSION = "0.1.0"

CHAT_DEFAULT_MODEL = ENHANCE_MODEL


def configure_logging(level: str) -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def get_state(request: Request) -> AppState:
    """Fetch the application state attached at startup."""
    return request.app.state.gateway


def create_app(state: Optional[AppState] = None, app_settings: Optional[Settings] = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        state: Pre-built application state (tests pass their own); loaded
            from the configured files when omitted
        app_settings: Process settings, defaults to the global settings

    Returns:
        The configured application
    """
    app_settings = app_settings or settings
    if state is None:
        state = load_state(
            app_settings.config_file,
            app_settings.history_file,
            app_settings.max_concurrent_requests
        )

    storage_path = Path(state.config.peek().storage_path)
    storage_path.mkdir(parents=True, exist_ok=True)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await state.aclose()

    app = FastAPI(
        title=SERVICE_NAME,
        version=APP_VERSION,
        description="OpenAI-compatible image generation backed by a chat-completions proxy.",
        lifespan=lifespan
    )
    app.state.gateway = state

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(ConcurrencyLimitMiddleware, limiter=state.limiter)

    app.mount(IMAGE_URL_PREFIX.rstrip("/"), StaticFiles(directory=str(storage_path)), name="images")

    register_routes(app)
    return app


def register_routes(app: FastAPI) -> None:
    """Attach every endpoint to ``app``."""

    @app.get("/health", response_class=PlainTextResponse)
    async def health():
        return "OK"

    @app.get("/api/health")
    async def health_report(request: Request):
        state = get_state(request)
        config = await state.config.get()
        result = state.health.check_health(storage_path=config.storage_path)
        report = result.to_dict()
        report["concurrency"] = state.limiter.get_stats()
        return report

    @app.post("/v1/images/generations", response_model=GenerationResult)
    async def generate_image(payload: GenerationRequest, request: Request):
        state = get_state(request)
        try:
            result = await state.generator.generate(payload)
        except GenerationFailedError as e:
            state.health.record_request(success=False)
            return PlainTextResponse(str(e), status_code=502)
        state.health.record_request(success=True)
        return result

    @app.get("/api/config", response_model=GatewayConfig)
    async def get_config(request: Request):
        return await get_state(request).config.get()

    @app.post("/api/config")
    async def update_config(new_config: GatewayConfig, request: Request):
        try:
            await get_state(request).config.replace(new_config)
        except OSError as e:
            logger.error(f"Failed to save config: {e}")
            return PlainTextResponse("Failed to save config", status_code=500)
        return Response(status_code=200)

    @app.get("/api/history", response_model=list[HistoryEntry])
    async def get_history(request: Request):
        return await get_state(request).history.get_all()

    @app.delete("/api/history")
    async def clear_history(request: Request):
        await get_state(request).history.clear()
        return Response(status_code=200)

    @app.post("/api/enhance-prompt", response_class=PlainTextResponse)
    async def enhance_prompt(payload: EnhanceRequest, request: Request):
        state = get_state(request)
        config = await state.config.get()
        try:
            return await state.enhancer.enhance(config.primary_target(), payload.prompt)
        except UpstreamTransportError as e:
            logger.error(f"Could not reach upstream: {e}")
            return PlainTextResponse(str(e), status_code=500)
        except (UpstreamStatusError, UpstreamResponseError) as e:
            logger.error(f"Prompt enhancement failed: {e}")
            return PlainTextResponse("Failed to enhance prompt", status_code=502)

    @app.post("/api/chat")
    async def chat_completions(payload: ChatProxyRequest, request: Request):
        state = get_state(request)
        config = await state.config.get()
        target = config.primary_target()
        body = {
            "model": payload.model or CHAT_DEFAULT_MODEL,
            "messages": payload.messages,
        }
        try:
            data = await state.backend.raw_chat_completion(build_chat_url(target.base_url), target, body)
        except UpstreamTransportError as e:
            logger.error(f"Could not reach upstream: {e}")
            return PlainTextResponse(str(e), status_code=500)
        except (UpstreamStatusError, UpstreamResponseError) as e:
            logger.error(f"Chat request failed: {e}")
            return PlainTextResponse("Failed to call chat completion", status_code=502)
        return JSONResponse(data)

    @app.get("/api/export-zip")
    async def export_zip(timestamp: int, request: Request):
        state = get_state(request)
        entry = await state.history.get_by_timestamp(timestamp)
        if entry is None:
            return PlainTextResponse("History group not found", status_code=404)

        config = await state.config.get()
        store = state.generator.image_store_for(config.storage_path)
        archive = await store.export_zip(entry.images)
        return Response(
            content=archive,
            media_type="application/zip",
            headers={"Content-Disposition": f'attachment; filename="images-{timestamp}.zip"'}
        )


def main() -> None:
    """Run the gateway with uvicorn on the configured port."""
    configure_logging(settings.log_level)
    app = create_app()
    port = app.state.gateway.config.peek().port
    logger.info(f"Gateway listening on {settings.host}:{port}")
    uvicorn.run(app, host=settings.host, port=port)


if __name__ == "__main__":
    main()
