"""
Beacon - VectorIndexGateway
============================
Read-only wrapper around a LanceDB table providing top-K similarity search
for the answer pipeline.

Design decisions:
  • **Lazy connection**: the LanceDB connection and table handle are
    opened on the first search, under a lock, and reused afterwards.
    Construction never touches the network.
  • **Never fails the caller**: any upstream error (unreachable index,
    missing table, vector dimension mismatch) is logged and degraded to an
    empty ``RetrievalResult``.  "No context" is a valid outcome.
  • **No re-ranking**: matches are returned in the order LanceDB ranks
    them.  Rows without a ``text`` payload are skipped.

Expected table columns: ``vector``, ``text``, ``source`` (optional), ``id``.

Usage:
    gateway = VectorIndexGateway(uri=settings.LANCEDB_URI, api_key=settings.LANCEDB_API_KEY)
    result = await gateway.search(vector)
    result.contexts, result.sources
"""

from __future__ import annotations

import asyncio
import threading

import lancedb
from pydantic import SecretStr

from beacon.config.settings import settings
from beacon.src.core.models import EmbeddingVector, RetrievalResult, RetrievedMatch
from beacon.src.utils.logger import get_logger

logger = get_logger(__name__)

# ── Type Aliases ──────────────────────────────────────────────────────
IndexRow = dict[str, str | int | float | list[float] | None]

# ── Constants ──────────────────────────────────────────────────────────
_REMOTE_SCHEME = "db://"
_DISTANCE_TYPE = "cosine"
_PREVIEW_CHARS = 100


class VectorIndexGateway:
    """
    Top-K nearest-neighbour search against a single named LanceDB table.

    Parameters
    ----------
    uri
        Local directory or ``db://`` LanceDB Cloud URI.  ``None`` marks the
        gateway unavailable.
    api_key
        LanceDB Cloud key; required for ``db://`` URIs.
    table_name
        Defaults to ``settings.LANCEDB_TABLE_NAME``.
    top_k
        Defaults to ``settings.SEARCH_TOP_K``.
    region
        LanceDB Cloud region.  Defaults to ``settings.LANCEDB_REGION``.
    connection
        Pre-opened ``lancedb.DBConnection``-like object (tests).
    """

    __slots__ = ("_uri", "_api_key", "_region", "_table_name", "_top_k", "_available", "_connection", "_table", "_lock")

    def __init__(self, uri: str | None, api_key: SecretStr | None = None, table_name: str | None = None, top_k: int | None = None, region: str | None = None, connection: object | None = None) -> None:
        self._uri = uri
        self._api_key = api_key
        self._region: str = region or settings.LANCEDB_REGION
        self._table_name: str = table_name or settings.LANCEDB_TABLE_NAME
        self._top_k: int = top_k or settings.SEARCH_TOP_K
        self._connection = connection
        self._table: object | None = None
        self._lock = threading.Lock()
        self._available: bool = self._has_credentials(uri, api_key)

        if self._available:
            logger.info("[INDEX] Vector index configured: table='%s', top_k=%d", self._table_name, self._top_k)
        elif not uri:
            logger.warning("[INDEX] LANCEDB_URI not configured; vector index unavailable.")
        else:
            logger.warning("[INDEX] LANCEDB_API_KEY not configured for remote index; vector index unavailable.")


    @staticmethod
    def _has_credentials(uri: str | None, api_key: SecretStr | None) -> bool:
        if not uri:
            return False
        if uri.startswith(_REMOTE_SCHEME):
            return api_key is not None and bool(api_key.get_secret_value())
        return True


    def is_available(self) -> bool:
        return self._available


    async def search(self, vector: EmbeddingVector) -> RetrievalResult:
        """
        Return the top-K matches for *vector*.

        Never raises: errors are logged and an empty result is returned.
        """
        if not self._available:
            logger.warning("[INDEX] Search requested on an unavailable index; returning no context.")
            return RetrievalResult.empty()

        try:
            rows = await asyncio.to_thread(self._query, vector)
        except Exception:
            logger.exception("[INDEX] Error searching knowledge base.")
            return RetrievalResult.empty()

        if not rows:
            logger.info("[INDEX] No matches found.")
            return RetrievalResult.empty()

        logger.info("[INDEX] Found %d matches.", len(rows))
        matches = [match for match in (self._to_match(row, rank) for rank, row in enumerate(rows, 1)) if match is not None]
        logger.info("[INDEX] Total contexts retrieved: %d", len(matches))
        return RetrievalResult.from_matches(matches)


    def _query(self, vector: EmbeddingVector) -> list[IndexRow]:
        """Blocking LanceDB lookup; runs in a worker thread."""
        table = self._open_table()
        return table.search(vector).distance_type(_DISTANCE_TYPE).limit(self._top_k).to_list()  # type: ignore[attr-defined]


    def _open_table(self) -> object:
        """Open (or re-use) the connection and table handle."""
        if self._table is None:
            with self._lock:
                if self._table is None:
                    if self._connection is None:
                        self._connection = self._connect()
                    self._table = self._connection.open_table(self._table_name)  # type: ignore[attr-defined]
                    logger.info("[INDEX] Opened table '%s'.", self._table_name)
        return self._table


    def _connect(self) -> object:
        logger.info("[INDEX] Opening LanceDB connection.")
        if self._uri.startswith(_REMOTE_SCHEME):  # type: ignore[union-attr]
            return lancedb.connect(self._uri, api_key=self._api_key.get_secret_value(), region=self._region)  # type: ignore[union-attr]
        return lancedb.connect(self._uri)


    @staticmethod
    def _to_match(row: IndexRow, rank: int) -> RetrievedMatch | None:
        """Convert a LanceDB row; rows without text are dropped.  *rank* names id-less rows."""
        text = row.get("text")
        if not text:
            return None

        row_id = row.get("id")
        source = row.get("source") or f"Doc_{row_id if row_id is not None else rank}"
        distance = row.get("_distance")
        score = 1.0 - float(distance) if distance is not None else 0.0

        logger.debug("[INDEX] Retrieved document - Score: %.4f, Source: %s, Text preview: %s...", score, source, str(text)[:_PREVIEW_CHARS])
        return RetrievedMatch(text=str(text), source=str(source), score=score)


    def __repr__(self) -> str:
        return f"VectorIndexGateway(table='{self._table_name}', top_k={self._top_k}, available={self._available})"
