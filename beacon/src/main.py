"""
Beacon - Application Entry Point
=================================
FastAPI application factory.  Registers the routes from
``beacon.src.api.routes``, CORS, and the exception handlers that map pipeline
errors to HTTP statuses:

  • ``ServiceUnavailableError`` → 503 with the missing setting named
  • ``BeaconError`` (everything else) → 500 ``Internal server error``

The orchestrator is built once during startup from ``settings``, unless one
is injected (tests).  Missing credentials never stop startup; they surface
as 503 responses.

Run:  beacon-api   (or ``uvicorn beacon.src.main:app --port 3005``)
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from beacon.config.settings import Settings, settings
from beacon.src.api.routes import API_VERSION, router
from beacon.src.core.errors import INTERNAL_ERROR_MESSAGE, BeaconError, ServiceUnavailableError
from beacon.src.core.rag_engine import RAGOrchestrator, build_orchestrator
from beacon.src.utils.logger import get_logger

logger = get_logger(__name__)


async def _service_unavailable_handler(request: Request, exc: ServiceUnavailableError) -> JSONResponse:
    return JSONResponse(status_code=503, content={"detail": str(exc)})


async def _pipeline_error_handler(request: Request, exc: BeaconError) -> JSONResponse:
    logger.error("[API] %s %s failed: %s", request.method, request.url.path, type(exc).__name__)
    return JSONResponse(status_code=500, content={"detail": INTERNAL_ERROR_MESSAGE})


def create_app(rag: RAGOrchestrator | None = None, config: Settings | None = None) -> FastAPI:
    """
    Build the FastAPI application.

    Parameters
    ----------
    rag
        Pre-built orchestrator.  Built from *config* at startup when omitted.
    config
        Settings to use.  Defaults to the module-level ``settings``.
    """
    config = config or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if getattr(app.state, "rag", None) is None:
            app.state.rag = build_orchestrator(config)
        flags = app.state.rag.availability()
        logger.info("[API] Beacon API ready (index_connected=%s, llm_connected=%s).", flags["index_connected"], flags["llm_connected"])
        yield

    app = FastAPI(title="Beacon RAG Chatbot API", description="Retrieval-augmented chatbot API over LanceDB and Gemini", version=API_VERSION, lifespan=lifespan)
    app.state.rag = rag

    app.add_middleware(CORSMiddleware, allow_origins=config.CORS_ORIGINS, allow_methods=["GET", "POST"], allow_headers=["Content-Type", "Authorization"])
    app.add_exception_handler(ServiceUnavailableError, _service_unavailable_handler)  # type: ignore[arg-type]
    app.add_exception_handler(BeaconError, _pipeline_error_handler)  # type: ignore[arg-type]
    app.include_router(router)
    return app


app = create_app()


def run() -> None:
    """Console entry point."""
    import uvicorn

    logger.info("Beacon API starting on http://%s:%d (docs at /docs)", settings.HOST, settings.PORT)
    uvicorn.run("beacon.src.main:app", host=settings.HOST, port=settings.PORT)
