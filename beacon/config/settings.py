"""
Beacon - Centralized Configuration
===================================
Uses ``pydantic-settings`` (``BaseSettings``) to load *all* configuration
from environment variables and the project-level ``.env`` file.

Credentials
-----------
- ``GOOGLE_API_KEY`` and ``LANCEDB_API_KEY`` are typed as ``SecretStr``.
  The raw values are never exposed in repr, logs, or tracebacks.
- Both are **optional**.  A missing credential does not stop the process
  from starting; the provider that needs it reports itself unavailable
  and requests fail with HTTP 503 until it is configured.

Tuning
------
``SEARCH_TOP_K``, ``LLM_TEMPERATURE`` and ``LLM_MAX_OUTPUT_TOKENS`` are the
retrieval and generation knobs.  Their defaults favour determinism
(low temperature) and short, dense answers.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings.

    Every field is loaded from environment variables (or ``.env``).

    Attributes
    ----------
    GOOGLE_API_KEY : SecretStr | None
        API key for Google AI Studio (Gemini).  Powers both embeddings and
        answer generation.  Access the raw value with
        ``settings.GOOGLE_API_KEY.get_secret_value()``.
    LANCEDB_URI : str | None
        Local directory or LanceDB Cloud URI (``db://...``) holding the
        document index.
    LANCEDB_API_KEY : SecretStr | None
        Required only for remote (``db://``) URIs.
    LANCEDB_REGION : str
        LanceDB Cloud region.
    LANCEDB_TABLE_NAME : str
        Name of the table searched for context.
    ENV : Literal["dev", "prod"]
        Environment mode controlling logging verbosity.
    EMBEDDING_MODEL : str
        Model identifier passed to ``GoogleGenerativeAIEmbeddings``.
    LLM_MODEL : str
        Model identifier for the response-generation LLM.
    LLM_TEMPERATURE : float
        Sampling temperature for answers.
    LLM_MAX_OUTPUT_TOKENS : int
        Upper bound on the generated answer length.
    SEARCH_TOP_K : int
        Number of nearest neighbours requested from the index.
    KNOWLEDGE_DOMAIN : str
        Name of the document collection the assistant answers from.
    TOPIC_SCOPE : str
        Topics considered on-topic; anything else is answered ``UNRELATED``.
    HOST, PORT : str, int
        Bind address for the API server.
    CORS_ORIGINS : list[str]
        Browser origins allowed to call the API.
    """

    # ── Resolved Absolute Paths ────────────────────────────────────────
    BASE_DIR: Path = Path(__file__).resolve().parent.parent

    # ── Environment Mode ───────────────────────────────────────────────
    ENV: Literal["dev", "prod"] = "dev"

    # ── API Keys (optional; absence degrades availability) ─────────────
    GOOGLE_API_KEY: SecretStr | None = None

    # ── LanceDB ────────────────────────────────────────────────────────
    LANCEDB_URI: str | None = None
    LANCEDB_API_KEY: SecretStr | None = None
    LANCEDB_REGION: str = "us-east-1"
    LANCEDB_TABLE_NAME: str = "default"

    # ── Model Configuration ────────────────────────────────────────────
    EMBEDDING_MODEL: str = "models/gemini-embedding-001"
    LLM_MODEL: str = "gemini-2.0-flash"
    LLM_TEMPERATURE: float = 0.2
    LLM_MAX_OUTPUT_TOKENS: int = 600

    # ── Retrieval ──────────────────────────────────────────────────────
    SEARCH_TOP_K: int = 5

    # ── Assistant Domain ───────────────────────────────────────────────
    KNOWLEDGE_DOMAIN: str = "ScaleApp Academy and ScaleApp Docs"
    TOPIC_SCOPE: str = "ScaleApp, property investment, or personal finance"

    # ── HTTP Server ────────────────────────────────────────────────────
    HOST: str = "0.0.0.0"
    PORT: int = 3005
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000", "http://frontend:3000"]

    # ── Validators ─────────────────────────────────────────────────────

    @field_validator("LLM_TEMPERATURE")
    @classmethod
    def _temperature_range(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"LLM_TEMPERATURE must be 0.0–1.0, got {v}")
        return v


    @field_validator("LLM_MAX_OUTPUT_TOKENS")
    @classmethod
    def _max_tokens_floor(cls, v: int) -> int:
        if v < 64:
            raise ValueError(f"LLM_MAX_OUTPUT_TOKENS must be ≥ 64, got {v}")
        return v


    @field_validator("SEARCH_TOP_K")
    @classmethod
    def _top_k_range(cls, v: int) -> int:
        if not 1 <= v <= 50:
            raise ValueError(f"SEARCH_TOP_K must be 1–50, got {v}")
        return v

    # ── Pydantic Settings Configuration ────────────────────────────────
    model_config = SettingsConfigDict(env_file=Path(__file__).resolve().parent.parent / ".env", env_file_encoding="utf-8", extra="ignore")


# ── Singleton Instance ─────────────────────────────────────────────────
# Import this throughout the project:
#     from beacon.config.settings import settings
settings = Settings()
