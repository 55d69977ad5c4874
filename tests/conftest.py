"""Shared pytest fixtures and test doubles for the Beacon pipeline."""
from __future__ import annotations

from collections.abc import Callable

import pytest
from langchain_core.messages import AIMessage, AIMessageChunk, BaseMessage, HumanMessage
from pydantic import SecretStr

from beacon.config.prompt_templates import NO_CONTEXT_MARKER, NOT_IN_DOCS
from beacon.src.core.completion import CompletionProvider
from beacon.src.core.embeddings import EmbeddingProvider
from beacon.src.core.rag_engine import RAGOrchestrator
from beacon.src.database.vector_store import VectorIndexGateway

TEST_KEY = SecretStr("test-key")
DIMENSION = 8


# -- Embeddings --

class FakeEmbedder:
    """Deterministic embedder; counts calls."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[str] = []

    async def aembed_query(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail:
            raise RuntimeError("embedding quota exceeded: key=sk-secret")
        return [0.1] * DIMENSION


# -- LanceDB --

class FakeQuery:
    def __init__(self, table: "FakeTable", vector: list[float]):
        self._table = table
        self._limit = 10
        table.vectors.append(vector)

    def distance_type(self, name: str) -> "FakeQuery":
        self._table.distance_types.append(name)
        return self

    def limit(self, n: int) -> "FakeQuery":
        self._limit = n
        self._table.limits.append(n)
        return self

    def to_list(self) -> list[dict]:
        if self._table.fail:
            raise ValueError("query vector dimension 8 does not match index dimension 1536")
        return list(self._table.rows[: self._limit])


class FakeTable:
    def __init__(self, rows: list[dict] | None = None, fail: bool = False):
        self.rows = rows or []
        self.fail = fail
        self.vectors: list[list[float]] = []
        self.limits: list[int] = []
        self.distance_types: list[str] = []

    def search(self, vector: list[float]) -> FakeQuery:
        return FakeQuery(self, vector)


class FakeConnection:
    def __init__(self, table: FakeTable | None = None, missing: bool = False):
        self.table = table or FakeTable()
        self.missing = missing
        self.opened: list[str] = []

    def open_table(self, name: str) -> FakeTable:
        self.opened.append(name)
        if self.missing:
            raise FileNotFoundError(f"Table '{name}' was not found")
        return self.table


# -- Chat model --

def human_text(messages: list[BaseMessage]) -> str:
    return next(m.content for m in messages if isinstance(m, HumanMessage))


def context_echo(messages: list[BaseMessage]) -> str:
    """Obeys the no-context rule: NOT_IN_DOCS when no context was supplied."""
    prompt = human_text(messages)
    if NO_CONTEXT_MARKER in prompt:
        return NOT_IN_DOCS
    context = prompt.split("Context:\n", 1)[1].split("\n", 1)[0]
    return f"Based on the documents: {context}"


class FakeChatModel:
    """
    Stand-in for ``ChatGoogleGenerativeAI``.

    ``responder`` produces the full answer for a prompt; ``astream`` yields it
    word by word.  ``fragments`` overrides the streamed pieces and
    ``fail_after`` raises once that many fragments were produced.
    """

    def __init__(self, responder: Callable[[list[BaseMessage]], str] = context_echo, fragments: list[str] | None = None, fail_after: int | None = None, fail_invoke: bool = False, content: object = None):
        self.responder = responder
        self.fragments = fragments
        self.fail_after = fail_after
        self.fail_invoke = fail_invoke
        self.content = content
        self.invocations: list[list[BaseMessage]] = []
        self.streams_opened = 0
        self.streams_closed = 0

    async def ainvoke(self, messages: list[BaseMessage]) -> AIMessage:
        self.invocations.append(messages)
        if self.fail_invoke:
            raise ConnectionError("upstream 500: internal details")
        if self.content is not None:
            return AIMessage(content=self.content)
        return AIMessage(content=self.responder(messages))

    async def astream(self, messages: list[BaseMessage]):
        self.invocations.append(messages)
        self.streams_opened += 1
        pieces = self.fragments if self.fragments is not None else split_words(self.responder(messages))
        try:
            for i, piece in enumerate(pieces):
                if self.fail_after is not None and i >= self.fail_after:
                    raise ConnectionError("stream reset by peer")
                yield AIMessageChunk(content=piece)
            if self.fail_after is not None and len(pieces) <= self.fail_after:
                raise ConnectionError("stream reset by peer")
        finally:
            self.streams_closed += 1


def split_words(text: str) -> list[str]:
    words = text.split(" ")
    return [words[0]] + [" " + w for w in words[1:]]


# -- Fixtures --

CGT_ROWS = [
    {"id": "1", "text": "CGT = Sale Proceeds - Cost Base", "source": "doc1", "_distance": 0.12},
]


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def table() -> FakeTable:
    return FakeTable(rows=list(CGT_ROWS))


@pytest.fixture
def chat_model() -> FakeChatModel:
    return FakeChatModel()


def make_orchestrator(embedder: FakeEmbedder, table: FakeTable | None = None, chat_model: FakeChatModel | None = None, google_key: SecretStr | None = TEST_KEY, index_uri: str | None = "/tmp/beacon-index", connection: FakeConnection | None = None) -> RAGOrchestrator:
    embeddings = EmbeddingProvider(api_key=google_key, embedder=embedder)
    index = VectorIndexGateway(uri=index_uri, connection=connection or FakeConnection(table or FakeTable()), top_k=5, table_name="docs")
    completion = CompletionProvider(api_key=google_key, llm=chat_model or FakeChatModel(), domain="ScaleApp Academy and ScaleApp Docs", topics="ScaleApp, property investment, or personal finance")
    return RAGOrchestrator(embeddings, index, completion)


@pytest.fixture
def rag(embedder: FakeEmbedder, table: FakeTable, chat_model: FakeChatModel) -> RAGOrchestrator:
    return make_orchestrator(embedder, table, chat_model)


@pytest.fixture
def make_rag() -> Callable[..., RAGOrchestrator]:
    return make_orchestrator
