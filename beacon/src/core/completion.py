"""
Beacon - CompletionProvider
============================
Grounded answer generation on top of Gemini via LangChain.

Responsibilities
----------------
- **Prompt assembly**: a system message carrying the content contract
  (``NOT_IN_DOCS`` / ``UNRELATED`` sentinels, paraphrasing, answer
  structure, formula delimiters, dense markdown) and a user message with
  the context block, the numbered source list and the question.  Assembly
  is a pure function of ``(query, contexts, sources)``.
- **Batch mode**: ``generate`` returns the trimmed answer, or
  ``NOT_IN_DOCS`` when the model returns nothing.
- **Streaming mode**: ``generate_stream`` forwards fragments from
  ``astream`` in arrival order, trimmed so that their concatenation equals
  what ``generate`` returns.  Only trailing whitespace is held back, and an
  empty stream yields ``NOT_IN_DOCS``.  Closing the generator closes the
  upstream stream.

Usage:
    provider = CompletionProvider(api_key=settings.GOOGLE_API_KEY)
    answer = await provider.generate(question, contexts, sources)
    async for fragment in provider.generate_stream(question, contexts, sources):
        ...
"""

from __future__ import annotations

import time
from collections.abc import AsyncIterator, Sequence
from contextlib import aclosing
from typing import Protocol, runtime_checkable

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from pydantic import SecretStr

from beacon.config.prompt_templates import NO_CONTEXT_MARKER, NOT_IN_DOCS, SOURCES_BLOCK_TEMPLATE, SYSTEM_PROMPT_TEMPLATE, TASK_INSTRUCTIONS, USER_PROMPT_TEMPLATE
from beacon.config.settings import settings
from beacon.src.core.errors import ResponseGenerationError
from beacon.src.utils.logger import get_logger

logger = get_logger(__name__)


@runtime_checkable
class ChatModel(Protocol):
    """The two LangChain chat-model entry points used here."""

    async def ainvoke(self, input: list[BaseMessage]) -> BaseMessage: ...

    def astream(self, input: list[BaseMessage]) -> AsyncIterator[BaseMessage]: ...


def message_text(content: str | list[str | dict[str, str]]) -> str:
    """
    Flatten LangChain message content to plain text.

    Gemini may return content as a list of parts; only text parts are kept.
    """
    if isinstance(content, str):
        return content

    parts: list[str] = []
    for part in content:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type", "text") == "text":
            parts.append(part.get("text", ""))
    return "".join(parts)


class CompletionProvider:
    """
    Parameters
    ----------
    api_key
        Google API key.  ``None`` or blank marks the provider unavailable.
    model
        Chat model name.  Defaults to ``settings.LLM_MODEL``.
    temperature, max_output_tokens
        Sampling controls.  Default to the corresponding settings.
    domain, topics
        Knowledge domain and on-topic scope injected into the system prompt.
    llm
        Pre-built chat model (tests, alternative backends).
    """

    __slots__ = ("_available", "_model", "_temperature", "_max_output_tokens", "_system_prompt", "_llm")

    def __init__(self, api_key: SecretStr | None, model: str | None = None, temperature: float | None = None, max_output_tokens: int | None = None, domain: str | None = None, topics: str | None = None, llm: ChatModel | None = None) -> None:
        self._available: bool = api_key is not None and bool(api_key.get_secret_value())
        self._model: str = model or settings.LLM_MODEL
        self._temperature: float = settings.LLM_TEMPERATURE if temperature is None else temperature
        self._max_output_tokens: int = max_output_tokens or settings.LLM_MAX_OUTPUT_TOKENS
        self._system_prompt: str = SYSTEM_PROMPT_TEMPLATE.format(domain=domain or settings.KNOWLEDGE_DOMAIN, topics=topics or settings.TOPIC_SCOPE)
        self._llm: ChatModel | None = None

        if not self._available:
            logger.warning("[LLM] GOOGLE_API_KEY not configured; answer generation unavailable.")
            return

        self._llm = llm or self._init_llm(api_key)  # type: ignore[arg-type]


    def _init_llm(self, api_key: SecretStr) -> ChatModel:
        """Initialise the Gemini chat model via LangChain."""
        from langchain_google_genai import ChatGoogleGenerativeAI

        llm = ChatGoogleGenerativeAI(model=self._model, temperature=self._temperature, max_output_tokens=self._max_output_tokens, google_api_key=api_key.get_secret_value())
        logger.info("[LLM] LLM initialised: %s (temperature=%.1f, max_output_tokens=%d)", self._model, self._temperature, self._max_output_tokens)
        return llm


    def is_available(self) -> bool:
        return self._available


    @property
    def system_prompt(self) -> str:
        return self._system_prompt

    # ══════════════════════════════════════════════════════════════════
    #  PROMPT ASSEMBLY
    # ══════════════════════════════════════════════════════════════════

    def build_messages(self, query: str, contexts: Sequence[str], sources: Sequence[str]) -> list[BaseMessage]:
        """Return the ``[system, user]`` prompt for one question."""
        return [SystemMessage(content=self._system_prompt), HumanMessage(content=self.build_user_prompt(query, contexts, sources))]


    @staticmethod
    def build_user_prompt(query: str, contexts: Sequence[str], sources: Sequence[str]) -> str:
        context_str = "\n\n".join(contexts) if contexts else NO_CONTEXT_MARKER

        sources_block = ""
        if sources:
            numbered = "\n".join(f"{i}. {source}" for i, source in enumerate(sources, 1))
            sources_block = SOURCES_BLOCK_TEMPLATE.format(sources=numbered)

        return USER_PROMPT_TEMPLATE.format(context=context_str, sources_block=sources_block, question=query, instructions=TASK_INSTRUCTIONS)

    # ══════════════════════════════════════════════════════════════════
    #  GENERATION
    # ══════════════════════════════════════════════════════════════════

    async def generate(self, query: str, contexts: Sequence[str], sources: Sequence[str]) -> str:
        """
        Generate a complete answer.

        Returns the trimmed completion, or ``NOT_IN_DOCS`` for empty output.

        Raises
        ------
        ResponseGenerationError
            On any upstream failure.
        """
        llm = self._require_llm()
        messages = self.build_messages(query, contexts, sources)

        t_llm = time.perf_counter()
        try:
            response = await llm.ainvoke(messages)
        except Exception as exc:
            logger.exception("[LLM] Error generating response.")
            raise ResponseGenerationError() from exc

        answer = message_text(response.content).strip()
        logger.info("[LLM] Response in %.1fms (%d chars, %d contexts)", (time.perf_counter() - t_llm) * 1000, len(answer), len(contexts))
        return answer or NOT_IN_DOCS


    async def generate_stream(self, query: str, contexts: Sequence[str], sources: Sequence[str]) -> AsyncIterator[str]:
        """
        Yield answer fragments as the model produces them.

        Single pass: every call issues a new model request.  The joined
        fragments equal ``generate``'s answer for the same completion: leading
        whitespace is dropped, trailing whitespace is withheld until more text
        follows, and an empty completion yields ``NOT_IN_DOCS``.  An upstream
        failure raises ``ResponseGenerationError`` after the fragments that
        were already yielded.
        """
        llm = self._require_llm()
        messages = self.build_messages(query, contexts, sources)

        t_llm = time.perf_counter()
        fragments = 0
        pending = ""
        try:
            async with aclosing(llm.astream(messages)) as stream:
                async for chunk in stream:
                    text = message_text(chunk.content)
                    if not fragments:
                        text = text.lstrip()
                    text = pending + text
                    body = text.rstrip()
                    pending = text[len(body):]
                    if body:
                        fragments += 1
                        yield body
        except Exception as exc:
            logger.exception("[LLM] Streaming failed after %d fragment(s).", fragments)
            raise ResponseGenerationError("Failed to generate streaming response") from exc

        if not fragments:
            logger.info("[LLM] Empty stream; answering %s.", NOT_IN_DOCS)
            yield NOT_IN_DOCS
        logger.info("[LLM] Stream finished in %.1fms (%d fragments)", (time.perf_counter() - t_llm) * 1000, fragments)


    def _require_llm(self) -> ChatModel:
        if self._llm is None:
            raise ResponseGenerationError("Completion provider is not initialised")
        return self._llm
