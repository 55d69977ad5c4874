"""
Beacon - Error Taxonomy
========================
Exceptions raised by the answer pipeline.

``ServiceUnavailableError``
    A provider is missing its credentials.  Fixable by configuration and
    reported to HTTP callers as 503.
``EmbeddingGenerationError`` / ``ResponseGenerationError``
    An upstream model call failed.  Never retried here.
``InternalPipelineError``
    The single generic failure callers see for anything unexpected.  Its
    message never carries upstream exception text.

An empty retrieval result is **not** an error: the index gateway degrades to
"no context" instead of raising.
"""

from __future__ import annotations

INTERNAL_ERROR_MESSAGE = "Internal server error"


class BeaconError(Exception):
    """Base class for every pipeline error."""


class ServiceUnavailableError(BeaconError):
    """A required provider was constructed without credentials."""

    def __init__(self, service: str, setting: str) -> None:
        self.service = service
        self.setting = setting
        super().__init__(f"{service} service not initialized. Check {setting}.")


class EmbeddingGenerationError(BeaconError):
    """The embedding capability failed to return a vector."""

    def __init__(self, message: str = "Failed to generate embeddings") -> None:
        super().__init__(message)


class ResponseGenerationError(BeaconError):
    """The chat capability failed while producing an answer."""

    def __init__(self, message: str = "Failed to generate response") -> None:
        super().__init__(message)


class InternalPipelineError(BeaconError):
    def __init__(self, message: str = INTERNAL_ERROR_MESSAGE) -> None:
        super().__init__(message)
