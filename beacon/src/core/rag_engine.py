"""
Beacon - RAG Engine
====================
Orchestrates the Retrieval-Augmented Generation pipeline.

``RAGOrchestrator``
    Stateless pipeline composed from three injected providers.  Flow:
        1. Availability check → ``ServiceUnavailableError`` before any
           network call when a provider lacks credentials
        2. Embed the question
        3. Retrieve top-K context (degrades to "no context", never aborts)
        4. Generate the answer (batch or streaming)
        5. Return the envelope, or end the stream with a ``done`` event

    Unexpected errors are logged with their traceback and replaced by a
    single ``InternalPipelineError``; callers never see upstream error
    text.  Streaming failures become one terminal ``error`` event.

``build_orchestrator``
    Wires the concrete Gemini / LanceDB providers from ``Settings``.

Concurrency
-----------
- No request-scoped state is stored on the orchestrator; concurrent
  requests share the providers read-only.
- ``answer_stream`` is an async generator.  Closing it (client
  disconnect) closes the upstream model stream.

Usage:
    from beacon.src.core.rag_engine import build_orchestrator
    rag = build_orchestrator(settings)
    envelope = await rag.answer(Query("How do I calculate CGT?"))
"""

from __future__ import annotations

import time
from collections.abc import AsyncIterator
from contextlib import aclosing

from beacon.config.settings import Settings
from beacon.src.core.completion import CompletionProvider
from beacon.src.core.embeddings import EmbeddingProvider
from beacon.src.core.errors import INTERNAL_ERROR_MESSAGE, InternalPipelineError, ServiceUnavailableError
from beacon.src.core.models import AnswerEnvelope, Query, RetrievalResult, StreamEvent, chunk_event, done_event, error_event
from beacon.src.database.vector_store import VectorIndexGateway
from beacon.src.utils.logger import get_logger

logger = get_logger(__name__)


class RAGOrchestrator:
    """
    End-to-end pipeline: availability → embed → retrieve → generate.

    Parameters
    ----------
    embeddings
        Question → vector.
    index
        Vector → ranked context.
    completion
        Question + context → answer text or fragments.
    """

    __slots__ = ("_embeddings", "_index", "_completion")

    def __init__(self, embeddings: EmbeddingProvider, index: VectorIndexGateway, completion: CompletionProvider) -> None:
        self._embeddings = embeddings
        self._index = index
        self._completion = completion

    # ══════════════════════════════════════════════════════════════════
    #  AVAILABILITY
    # ══════════════════════════════════════════════════════════════════

    def availability(self) -> dict[str, bool]:
        """Static provider flags for the health probe."""
        return {"index_connected": self._index.is_available(), "llm_connected": self._embeddings.is_available() and self._completion.is_available()}


    def check_availability(self) -> None:
        """
        Raise ``ServiceUnavailableError`` if any provider lacks credentials.

        The index is checked first, then the model providers.
        """
        if not self._index.is_available():
            raise ServiceUnavailableError("Vector index", "LANCEDB_URI / LANCEDB_API_KEY")
        if not self._embeddings.is_available() or not self._completion.is_available():
            raise ServiceUnavailableError("LLM", "GOOGLE_API_KEY")

    # ══════════════════════════════════════════════════════════════════
    #  PUBLIC OPERATIONS
    # ══════════════════════════════════════════════════════════════════

    async def answer(self, query: Query) -> AnswerEnvelope:
        """
        Answer *query* in one piece.

        Raises
        ------
        ServiceUnavailableError
            A provider is unconfigured.  No network call was made.
        InternalPipelineError
            Anything else went wrong.
        """
        t_start = time.perf_counter()
        logger.info("[RAG] Processing message (conversation=%s): %s", query.conversation_id, query.text[:80])

        try:
            self.check_availability()
            retrieval = await self._retrieve(query)

            t_llm = time.perf_counter()
            response = await self._completion.generate(query.text, retrieval.contexts, retrieval.sources)
            llm_ms = (time.perf_counter() - t_llm) * 1000
        except ServiceUnavailableError as exc:
            logger.warning("[RAG] Service unavailable: %s", exc)
            raise
        except Exception as exc:
            logger.exception("[RAG] Error processing message.")
            raise InternalPipelineError() from exc

        total_ms = (time.perf_counter() - t_start) * 1000
        logger.info("[RAG] Pipeline total: %.1fms (llm=%.1f, contexts=%d)", total_ms, llm_ms, len(retrieval))

        # Sources are cited inline by the model; the envelope list stays empty.
        return AnswerEnvelope(response=response, conversation_id=query.conversation_id, sources=[])


    async def answer_stream(self, query: Query) -> AsyncIterator[StreamEvent]:
        """
        Answer *query* as a stream of events.

        Yields zero or more ``{"chunk": str}`` events followed by exactly one
        terminal event: ``{"done": True}`` or ``{"error": str}``.  Never
        raises for pipeline failures.
        """
        t_start = time.perf_counter()
        logger.info("[RAG] Processing streaming message (conversation=%s): %s", query.conversation_id, query.text[:80])

        chunks = 0
        try:
            self.check_availability()
            retrieval = await self._retrieve(query)

            async with aclosing(self._completion.generate_stream(query.text, retrieval.contexts, retrieval.sources)) as fragments:
                async for fragment in fragments:
                    chunks += 1
                    yield chunk_event(fragment)
        except ServiceUnavailableError as exc:
            logger.warning("[RAG] Service unavailable: %s", exc)
            yield error_event(str(exc))
            return
        except Exception:
            logger.exception("[RAG] Error processing streaming message after %d chunk(s).", chunks)
            yield error_event(INTERNAL_ERROR_MESSAGE)
            return

        logger.info("[RAG] Stream total: %.1fms (%d chunks)", (time.perf_counter() - t_start) * 1000, chunks)
        yield done_event()

    # ══════════════════════════════════════════════════════════════════
    #  PIPELINE STEPS
    # ══════════════════════════════════════════════════════════════════

    async def _retrieve(self, query: Query) -> RetrievalResult:
        """Embed the question and fetch its context."""
        t_embed = time.perf_counter()
        vector = await self._embeddings.embed(query.text)
        embed_ms = (time.perf_counter() - t_embed) * 1000

        t_search = time.perf_counter()
        retrieval = await self._index.search(vector)
        search_ms = (time.perf_counter() - t_search) * 1000

        if not retrieval:
            logger.warning("[RAG] No relevant context found; generating with the no-context marker.")
        logger.info("[RAG] Retrieval: %d context(s) (embed=%.1fms, search=%.1fms)", len(retrieval), embed_ms, search_ms)
        return retrieval


# ══════════════════════════════════════════════════════════════════════
#  FACTORY
# ══════════════════════════════════════════════════════════════════════


def build_orchestrator(config: Settings) -> RAGOrchestrator:
    """Construct the production providers from *config* and wire them."""
    embeddings = EmbeddingProvider(api_key=config.GOOGLE_API_KEY, model=config.EMBEDDING_MODEL)
    index = VectorIndexGateway(uri=config.LANCEDB_URI, api_key=config.LANCEDB_API_KEY, table_name=config.LANCEDB_TABLE_NAME, top_k=config.SEARCH_TOP_K, region=config.LANCEDB_REGION)
    completion = CompletionProvider(api_key=config.GOOGLE_API_KEY, model=config.LLM_MODEL, temperature=config.LLM_TEMPERATURE, max_output_tokens=config.LLM_MAX_OUTPUT_TOKENS, domain=config.KNOWLEDGE_DOMAIN, topics=config.TOPIC_SCOPE)
    return RAGOrchestrator(embeddings, index, completion)
