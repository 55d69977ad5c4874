"""
Beacon - Pipeline Data Model
=============================
Request-scoped values passed between the pipeline stages.  Everything here
is immutable and discarded when the request finishes.
"""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_CONVERSATION_ID = "default"

# ── Type Aliases ──────────────────────────────────────────────────────
EmbeddingVector = list[float]
StreamEvent = dict[str, str | bool]


@dataclass(frozen=True, slots=True)
class Query:
    """A user question.  ``conversation_id`` is an opaque tag, not a session."""

    text: str
    conversation_id: str = DEFAULT_CONVERSATION_ID


@dataclass(frozen=True, slots=True)
class RetrievedMatch:
    text: str
    source: str
    score: float


@dataclass(frozen=True, slots=True)
class RetrievalResult:
    """
    Parallel ``contexts`` / ``sources`` sequences in index relevance order.

    ``contexts[i]`` was retrieved together with ``sources[i]``; a length
    mismatch is rejected at construction.
    """

    contexts: tuple[str, ...] = ()
    sources: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if len(self.contexts) != len(self.sources):
            raise ValueError(f"Length mismatch: {len(self.contexts)} contexts vs {len(self.sources)} sources.")


    @classmethod
    def empty(cls) -> RetrievalResult:
        return cls()


    @classmethod
    def from_matches(cls, matches: list[RetrievedMatch]) -> RetrievalResult:
        return cls(contexts=tuple(m.text for m in matches), sources=tuple(m.source for m in matches))


    def __len__(self) -> int:
        return len(self.contexts)


@dataclass(frozen=True, slots=True)
class AnswerEnvelope:
    """
    Final non-streaming result.

    ``sources`` stays empty: the generation step cites sources inline in
    ``response``.
    """

    response: str
    conversation_id: str = DEFAULT_CONVERSATION_ID
    sources: list[str] = field(default_factory=list)


# ── Stream Events ─────────────────────────────────────────────────────

def chunk_event(text: str) -> StreamEvent:
    return {"chunk": text}


def done_event() -> StreamEvent:
    return {"done": True}


def error_event(message: str) -> StreamEvent:
    return {"error": message}
