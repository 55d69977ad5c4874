"""Tests for RAGOrchestrator: the end-to-end answer pipeline."""
import pytest
from pydantic import SecretStr

from beacon.config.prompt_templates import NO_CONTEXT_MARKER, NOT_IN_DOCS
from beacon.config.settings import Settings
from beacon.src.core.completion import CompletionProvider
from beacon.src.core.errors import InternalPipelineError, ServiceUnavailableError
from beacon.src.core.models import Query
from beacon.src.core.rag_engine import RAGOrchestrator, build_orchestrator

from conftest import FakeChatModel, FakeConnection, FakeEmbedder, FakeTable, human_text


async def collect(events) -> list[dict]:
    return [event async for event in events]


class RecordingCompletion(CompletionProvider):
    """Captures what the orchestrator hands to generation."""

    __slots__ = ("seen",)

    def __init__(self, llm: FakeChatModel):
        super().__init__(api_key=SecretStr("test-key"), llm=llm)
        self.seen: list[tuple[str, tuple[str, ...], tuple[str, ...]]] = []

    async def generate(self, query, contexts, sources):
        self.seen.append((query, tuple(contexts), tuple(sources)))
        return await super().generate(query, contexts, sources)


class TestAvailability:
    @pytest.mark.asyncio
    async def test_missing_google_key_aborts_before_any_call(self, make_rag, embedder, table, chat_model):
        rag = make_rag(embedder, table, chat_model, google_key=None)

        with pytest.raises(ServiceUnavailableError, match="GOOGLE_API_KEY"):
            await rag.answer(Query("How do I calculate CGT?"))

        assert embedder.calls == []
        assert table.vectors == []
        assert chat_model.invocations == []

    @pytest.mark.asyncio
    async def test_missing_index_aborts_before_any_call(self, make_rag, embedder, chat_model):
        connection = FakeConnection(FakeTable())
        rag = make_rag(embedder, chat_model=chat_model, index_uri=None, connection=connection)

        with pytest.raises(ServiceUnavailableError, match="LANCEDB_URI"):
            await rag.answer(Query("How do I calculate CGT?"))

        assert embedder.calls == []
        assert connection.opened == []
        assert chat_model.invocations == []

    @pytest.mark.asyncio
    async def test_stream_reports_unavailability_as_single_error_event(self, make_rag, embedder, table, chat_model):
        rag = make_rag(embedder, table, chat_model, google_key=None)

        events = await collect(rag.answer_stream(Query("hi")))

        assert len(events) == 1
        assert "GOOGLE_API_KEY" in events[0]["error"]
        assert embedder.calls == []
        assert chat_model.streams_opened == 0

    def test_availability_flags(self, make_rag, embedder):
        assert make_rag(embedder).availability() == {"index_connected": True, "llm_connected": True}
        assert make_rag(embedder, google_key=None).availability() == {"index_connected": True, "llm_connected": False}
        assert make_rag(embedder, index_uri=None).availability() == {"index_connected": False, "llm_connected": True}


class TestAnswer:
    @pytest.mark.asyncio
    async def test_no_context_returns_not_in_docs(self, make_rag, embedder):
        rag = make_rag(embedder, FakeTable(rows=[]))

        envelope = await rag.answer(Query("What is ScaleApp?"))

        assert envelope.response == NOT_IN_DOCS
        assert envelope.sources == []
        assert envelope.conversation_id == "default"

    @pytest.mark.asyncio
    async def test_cgt_answer_inlines_sources(self, rag):
        envelope = await rag.answer(Query("How do I calculate CGT?", conversation_id="conv-7"))

        assert envelope.response != NOT_IN_DOCS
        assert "cost base" in envelope.response.lower()
        assert envelope.sources == []
        assert envelope.conversation_id == "conv-7"

    @pytest.mark.asyncio
    async def test_generation_receives_parallel_contexts_and_sources(self, embedder):
        rows = [
            {"id": "1", "text": "first", "source": "a.md", "_distance": 0.1},
            {"id": "2", "source": "skipped.md", "_distance": 0.2},
            {"id": "3", "text": "third", "_distance": 0.3},
        ]
        completion = RecordingCompletion(FakeChatModel())
        rag = _orchestrator(embedder, FakeTable(rows), completion)

        await rag.answer(Query("q"))

        query, contexts, sources = completion.seen[0]
        assert contexts == ("first", "third")
        assert sources == ("a.md", "Doc_3")
        assert len(contexts) == len(sources)

    @pytest.mark.asyncio
    async def test_index_failure_degrades_to_no_context(self, make_rag, embedder, chat_model):
        rag = make_rag(embedder, FakeTable(fail=True), chat_model)

        envelope = await rag.answer(Query("How do I calculate CGT?"))

        assert envelope.response == NOT_IN_DOCS
        assert NO_CONTEXT_MARKER in human_text(chat_model.invocations[0])

    @pytest.mark.asyncio
    async def test_embedding_failure_becomes_generic_internal_error(self, make_rag, table, chat_model):
        rag = make_rag(FakeEmbedder(fail=True), table, chat_model)

        with pytest.raises(InternalPipelineError) as exc_info:
            await rag.answer(Query("q"))

        assert str(exc_info.value) == "Internal server error"
        assert chat_model.invocations == []

    @pytest.mark.asyncio
    async def test_generation_failure_becomes_generic_internal_error(self, make_rag, embedder, table):
        rag = make_rag(embedder, table, FakeChatModel(fail_invoke=True))

        with pytest.raises(InternalPipelineError) as exc_info:
            await rag.answer(Query("q"))

        assert "internal details" not in str(exc_info.value)


class TestAnswerStream:
    @pytest.mark.asyncio
    async def test_chunks_then_done(self, rag):
        events = await collect(rag.answer_stream(Query("How do I calculate CGT?")))

        assert events[-1] == {"done": True}
        assert all(set(event) == {"chunk"} for event in events[:-1])
        assert len(events) > 2

    @pytest.mark.asyncio
    async def test_stream_matches_batch_answer(self, rag):
        envelope = await rag.answer(Query("How do I calculate CGT?"))
        events = await collect(rag.answer_stream(Query("How do I calculate CGT?")))

        assert "".join(event["chunk"] for event in events if "chunk" in event) == envelope.response

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "  CGT is proceeds minus cost base.\n"])
    async def test_stream_matches_batch_for_empty_and_padded_output(self, make_rag, embedder, table, text):
        rag = make_rag(embedder, table, FakeChatModel(responder=lambda _: text, fragments=[text]))

        envelope = await rag.answer(Query("How do I calculate CGT?"))
        events = await collect(rag.answer_stream(Query("How do I calculate CGT?")))

        assert events[-1] == {"done": True}
        assert "".join(event["chunk"] for event in events[:-1]) == envelope.response

    @pytest.mark.asyncio
    async def test_error_after_two_chunks(self, make_rag, embedder, table):
        rag = make_rag(embedder, table, FakeChatModel(fragments=["CGT is ", "sale proceeds ", "minus cost base"], fail_after=2))

        events = await collect(rag.answer_stream(Query("How do I calculate CGT?")))

        assert events == [{"chunk": "CGT is"}, {"chunk": " sale proceeds"}, {"error": "Internal server error"}]

    @pytest.mark.asyncio
    async def test_embedding_failure_yields_single_error_event(self, make_rag, table, chat_model):
        rag = make_rag(FakeEmbedder(fail=True), table, chat_model)

        events = await collect(rag.answer_stream(Query("q")))

        assert events == [{"error": "Internal server error"}]

    @pytest.mark.asyncio
    async def test_no_context_stream_yields_sentinel(self, make_rag, embedder):
        rag = make_rag(embedder, FakeTable(rows=[]))

        events = await collect(rag.answer_stream(Query("What is ScaleApp?")))

        assert events == [{"chunk": NOT_IN_DOCS}, {"done": True}]

    @pytest.mark.asyncio
    async def test_consumer_close_releases_upstream_stream(self, make_rag, embedder, table):
        llm = FakeChatModel(fragments=["a", "b", "c", "d"])
        stream = make_rag(embedder, table, llm).answer_stream(Query("q"))

        assert await stream.__anext__() == {"chunk": "a"}
        await stream.aclose()

        assert llm.streams_opened == 1
        assert llm.streams_closed == 1


def test_build_orchestrator_without_credentials_is_unavailable():
    rag = build_orchestrator(Settings(GOOGLE_API_KEY=None, LANCEDB_URI=None, _env_file=None))

    assert rag.availability() == {"index_connected": False, "llm_connected": False}
    with pytest.raises(ServiceUnavailableError):
        rag.check_availability()


@pytest.mark.asyncio
async def test_build_orchestrator_applies_search_and_sampling_settings(monkeypatch):
    import lancedb
    import langchain_google_genai

    table = FakeTable([{"id": str(i), "text": f"chunk {i}", "_distance": 0.1} for i in range(10)])
    connected: list[str] = []
    created: list[dict] = []

    class RecordingGemini:
        def __init__(self, **kwargs):
            created.append(kwargs)

    def fake_connect(uri, **kwargs):
        connected.append(uri)
        return FakeConnection(table)

    monkeypatch.setattr(lancedb, "connect", fake_connect)
    monkeypatch.setattr(langchain_google_genai, "ChatGoogleGenerativeAI", RecordingGemini)
    monkeypatch.setattr(langchain_google_genai, "GoogleGenerativeAIEmbeddings", lambda **kwargs: FakeEmbedder())

    rag = build_orchestrator(Settings(GOOGLE_API_KEY="gemini-key", LANCEDB_URI="/tmp/beacon-index", SEARCH_TOP_K=3, LLM_TEMPERATURE=0.1, LLM_MAX_OUTPUT_TOKENS=256, _env_file=None))
    result = await rag._index.search([0.1] * 8)

    assert connected == ["/tmp/beacon-index"]
    assert table.limits == [3]
    assert len(result) == 3
    assert created[0]["temperature"] == 0.1
    assert created[0]["max_output_tokens"] == 256


def _orchestrator(embedder, table, completion) -> RAGOrchestrator:
    from beacon.src.core.embeddings import EmbeddingProvider
    from beacon.src.database.vector_store import VectorIndexGateway

    embeddings = EmbeddingProvider(api_key=SecretStr("test-key"), embedder=embedder)
    index = VectorIndexGateway(uri="/tmp/beacon-index", connection=FakeConnection(table))
    return RAGOrchestrator(embeddings, index, completion)
