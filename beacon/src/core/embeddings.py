"""
Beacon - EmbeddingProvider
===========================
Turns a question into the vector used as the similarity-search query.

The LangChain embedder is injected or, when only an API key is given, built
from ``GoogleGenerativeAIEmbeddings``.  Without a key the provider is
unavailable and no client is created.

Usage:
    provider = EmbeddingProvider(api_key=settings.GOOGLE_API_KEY)
    if provider.is_available():
        vector = await provider.embed("How do I calculate CGT?")
"""

from __future__ import annotations

import time
from typing import Protocol, runtime_checkable

from pydantic import SecretStr

from beacon.config.settings import settings
from beacon.src.core.errors import EmbeddingGenerationError
from beacon.src.core.models import EmbeddingVector
from beacon.src.utils.logger import get_logger

logger = get_logger(__name__)


@runtime_checkable
class Embedder(Protocol):
    """Structural type for any LangChain-compatible embedding model."""

    async def aembed_query(self, text: str) -> list[float]: ...


class EmbeddingProvider:
    """
    Parameters
    ----------
    api_key
        Google API key.  ``None`` or blank marks the provider unavailable.
    model
        Embedding model name.  Defaults to ``settings.EMBEDDING_MODEL``.
    embedder
        Pre-built embedder (tests, alternative backends).
    """

    __slots__ = ("_available", "_model", "_embedder")

    def __init__(self, api_key: SecretStr | None, model: str | None = None, embedder: Embedder | None = None) -> None:
        self._available: bool = api_key is not None and bool(api_key.get_secret_value())
        self._model: str = model or settings.EMBEDDING_MODEL
        self._embedder: Embedder | None = None

        if not self._available:
            logger.warning("[EMBED] GOOGLE_API_KEY not configured; embeddings unavailable.")
            return

        self._embedder = embedder or self._init_embedder(api_key, self._model)  # type: ignore[arg-type]
        logger.info("[EMBED] Embedding provider initialised: %s", self._model)


    @staticmethod
    def _init_embedder(api_key: SecretStr, model: str) -> Embedder:
        from langchain_google_genai import GoogleGenerativeAIEmbeddings

        return GoogleGenerativeAIEmbeddings(model=model, google_api_key=api_key.get_secret_value())


    def is_available(self) -> bool:
        return self._available


    async def embed(self, text: str) -> EmbeddingVector:
        """
        Embed *text* for retrieval.

        Raises
        ------
        EmbeddingGenerationError
            On any upstream failure (the original error is chained and logged).
        """
        if self._embedder is None:
            raise EmbeddingGenerationError("Embedding provider is not initialised")

        t_start = time.perf_counter()
        try:
            vector = await self._embedder.aembed_query(text)
        except Exception as exc:
            logger.exception("[EMBED] Error generating embeddings.")
            raise EmbeddingGenerationError() from exc

        logger.debug("[EMBED] %d-dim vector in %.1fms", len(vector), (time.perf_counter() - t_start) * 1000)
        return list(vector)
