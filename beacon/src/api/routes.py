"""
Beacon - API Routes
====================
Thin controllers over ``RAGOrchestrator``:

  - ``GET  /``             → API information
  - ``GET  /health``       → availability probe (static provider flags)
  - ``POST /chat``         → complete answer
  - ``POST /chat/stream``  → Server-Sent-Events answer stream

No business logic lives here.  Pipeline errors are mapped to HTTP statuses
by the exception handlers registered in ``beacon.src.main``.

SSE framing
-----------
Each event is one ``data: <json>\\n\\n`` frame, where the JSON is
``{"chunk": ...}``, ``{"done": true}`` or ``{"error": ...}``.  The terminal
frame is always last.
"""

from __future__ import annotations

import json
import platform
from collections.abc import AsyncIterator
from contextlib import aclosing
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from beacon.src.api.schemas import ChatRequest, ChatResponse, EnvironmentInfo, ErrorResponse, HealthResponse
from beacon.src.core.models import StreamEvent
from beacon.src.core.rag_engine import RAGOrchestrator
from beacon.src.utils.logger import get_logger

logger = get_logger(__name__)

API_VERSION = "1.0.0"

_SSE_HEADERS = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}
_ERROR_RESPONSES = {503: {"model": ErrorResponse, "description": "Service unavailable"}, 500: {"model": ErrorResponse, "description": "Internal server error"}}

router = APIRouter()


def get_rag(request: Request) -> RAGOrchestrator:
    """Return the orchestrator attached to the running app."""
    return request.app.state.rag


def sse_frame(event: StreamEvent) -> str:
    return f"data: {json.dumps(event, ensure_ascii=False)}\n\n"


async def sse_stream(events: AsyncIterator[StreamEvent]) -> AsyncIterator[str]:
    """Frame pipeline events as SSE, closing the pipeline when the client goes away."""
    async with aclosing(events) as stream:
        async for event in stream:
            yield sse_frame(event)


@router.get("/", tags=["root"], summary="API information")
async def root() -> dict[str, str | dict[str, str]]:
    return {"message": "Beacon RAG Chatbot API", "version": API_VERSION, "framework": "FastAPI", "endpoints": {"health": "/health", "chat": "/chat", "chat_stream": "/chat/stream", "docs": "/docs"}}


@router.get("/health", tags=["health"], summary="Health check endpoint", response_model=HealthResponse)
async def health(rag: RAGOrchestrator = Depends(get_rag)) -> HealthResponse:
    flags = rag.availability()
    return HealthResponse(status="healthy", timestamp=datetime.now(timezone.utc).isoformat(), pinecone_connected=flags["index_connected"], openai_connected=flags["llm_connected"], index_connected=flags["index_connected"], llm_connected=flags["llm_connected"], environment=EnvironmentInfo(python_version=platform.python_version(), platform=platform.system().lower()))


@router.post("/chat", tags=["chat"], summary="Send a message to the RAG chatbot", response_model=ChatResponse, responses=_ERROR_RESPONSES)
async def chat(body: ChatRequest, rag: RAGOrchestrator = Depends(get_rag)) -> ChatResponse:
    envelope = await rag.answer(body.to_query())
    return ChatResponse(response=envelope.response, sources=envelope.sources, conversation_id=envelope.conversation_id)


@router.post("/chat/stream", tags=["chat"], summary="Stream a chatbot answer as Server-Sent Events", responses=_ERROR_RESPONSES)
async def chat_stream(body: ChatRequest, rag: RAGOrchestrator = Depends(get_rag)) -> StreamingResponse:
    # Unconfigured providers fail with 503 before the stream opens.
    rag.check_availability()
    query = body.to_query()
    logger.info("[API] Opening answer stream (conversation=%s).", query.conversation_id)
    return StreamingResponse(sse_stream(rag.answer_stream(query)), media_type="text/event-stream", headers=_SSE_HEADERS)
