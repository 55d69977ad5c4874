"""
Beacon - API Schemas
=====================
Request / response bodies for the HTTP layer.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from beacon.src.core.models import DEFAULT_CONVERSATION_ID, Query


class ChatRequest(BaseModel):
    message: str = Field(description="User message to send to the chatbot")
    conversation_id: str | None = Field(default=None, description="Optional conversation ID for session tracking")

    def to_query(self) -> Query:
        return Query(text=self.message, conversation_id=self.conversation_id or DEFAULT_CONVERSATION_ID)


class ChatResponse(BaseModel):
    response: str = Field(description="Bot response message")
    sources: list[str] = Field(default_factory=list, description="Source documents used for the response")
    conversation_id: str = Field(description="Conversation ID")


class EnvironmentInfo(BaseModel):
    python_version: str
    platform: str


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    pinecone_connected: bool = Field(description="Vector index availability; legacy key read by existing clients")
    openai_connected: bool = Field(description="Model provider availability; legacy key read by existing clients")
    index_connected: bool
    llm_connected: bool
    environment: EnvironmentInfo


class ErrorResponse(BaseModel):
    detail: str
