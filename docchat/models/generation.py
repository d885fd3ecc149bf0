"""Generation request options and results."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class GenerationOptions(BaseModel):
    """Sampling parameters plus the retry policy for one generation call.

    Every field can be overridden per call with ``model_copy(update=...)``.
    """

    model_config = ConfigDict(frozen=True)

    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    top_p: float = Field(default=0.8, gt=0.0, le=1.0)
    top_k: int = Field(default=40, ge=1)
    max_tokens: int = Field(default=800, ge=1)

    # Retry policy -- see GenerationClient.
    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=1.0, ge=0.0, description="Seconds before the first retry.")
    max_delay: float = Field(default=10.0, ge=0.0, description="Cap on any single backoff delay.")
    jitter: float = Field(default=1.0, ge=0.0, description="Upper bound of the random jitter added.")
    timeout: float = Field(default=60.0, gt=0.0, description="Per-attempt request timeout in seconds.")


class ProviderCompletion(BaseModel):
    """What a provider adapter returns for a single successful call."""

    model_config = ConfigDict(frozen=True)

    text: str
    tokens_used: int = 0
    model_id: str


class GenerationResult(BaseModel):
    """A successful generation, annotated with timing and attempt count."""

    model_config = ConfigDict(frozen=True)

    text: str
    tokens_used: int = 0
    model_id: str
    elapsed_ms: int = 0
    attempt_count: int = 1
