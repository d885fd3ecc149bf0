"""docchat FastAPI application entry point.

Wires together the providers, services, and routes via dependency
injection.  Loads configuration from ``.env`` and ``config/config.yaml``
and configures structured logging before anything else runs.

Every component is built explicitly in :func:`_build_all` and stored on
``app.state`` by the lifespan handler; routes resolve them with
``Depends``.  A misconfigured generation provider raises
``ConfigurationError`` during startup rather than on the first request.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI

from docchat.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from docchat.api.routes import router as api_router
from docchat.config.loader import load_config
from docchat.config.settings import Settings
from docchat.models.generation import GenerationOptions
from docchat.providers.generation import build_generation_provider
from docchat.providers.store.sqlite_document_store import SQLiteDocumentStore
from docchat.services.chat_service import DEFAULT_CHAT_OPTIONS, ChatService
from docchat.services.generation.circuit_breaker import CircuitBreaker
from docchat.services.generation.generation_client import GenerationClient
from docchat.services.ingestion.chunker import TextChunker
from docchat.services.ingestion.extractor import TextExtractor
from docchat.services.ingestion.ingestion_service import IngestionService
from docchat.services.prompt_assembler import PromptAssembler
from docchat.utils.logging import configure_logging, get_logger

_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()
config = load_config(settings=settings)

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Component factories
# ---------------------------------------------------------------------------


def _build_chat_options(app_settings: Settings, app_config: dict[str, Any]) -> GenerationOptions:
    """Chat sampling / retry policy from ``generation.chat`` in config.yaml."""
    overrides = dict(app_config.get("generation", {}).get("chat", {}))
    overrides["timeout"] = app_settings.generation_timeout_seconds
    return DEFAULT_CHAT_OPTIONS.model_copy(update=overrides)


def _build_all(app_settings: Settings, app_config: dict[str, Any]) -> dict[str, Any]:
    """Construct every provider and service instance for the application.

    Returns a flat dict of named components to be stored on ``app.state``.
    """
    ingestion_config = app_config.get("ingestion", {})
    prompt_config = app_config.get("prompt", {})

    # -- Persistence --
    store = SQLiteDocumentStore(db_path=app_settings.database_path)

    # -- Generation --
    provider = build_generation_provider(app_settings)
    breaker = CircuitBreaker(
        failure_threshold=app_settings.circuit_breaker_threshold,
        reset_timeout=app_settings.circuit_breaker_reset_seconds,
    )
    generation_client = GenerationClient(provider=provider, breaker=breaker)

    # -- Ingestion --
    ingestion_service = IngestionService(
        store=store,
        extractor=TextExtractor(),
        chunker=TextChunker(chunk_size=app_settings.chunk_size_chars),
        max_upload_bytes=app_settings.max_upload_bytes,
        max_documents_per_owner=app_settings.max_documents_per_owner,
        summary_chars=ingestion_config.get("summary_chars", 200),
    )

    # -- Chat --
    chat_service = ChatService(
        store=store,
        assembler=PromptAssembler.from_config(prompt_config),
        client=generation_client,
        chat_options=_build_chat_options(app_settings, app_config),
        max_documents=prompt_config.get("max_documents", 5),
        stream_max_documents=prompt_config.get("stream_max_documents", 3),
        max_prompt_chars=prompt_config.get("max_prompt_chars", 12000),
    )

    return {
        "settings": app_settings,
        "document_store": store,
        "generation_provider": provider,
        "generation_client": generation_client,
        "ingestion_service": ingestion_service,
        "chat_service": chat_service,
    }


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Initialise providers and services on startup."""
    components = _build_all(settings, config)

    for key, value in components.items():
        setattr(application.state, key, value)

    await components["document_store"].initialize()

    provider = components["generation_provider"]
    credentials_ok = await provider.validate_credentials()
    if not credentials_ok:
        _logger.warning(
            "generation_credentials_unverified",
            provider=provider.get_provider_name(),
        )

    _logger.info(
        "app_startup",
        version=_VERSION,
        environment=settings.app_env,
        provider=provider.get_provider_name(),
        database=settings.database_path,
    )

    yield

    _logger.info("app_shutdown")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="docchat API",
        version=_VERSION,
        description=(
            "Upload PDF, Word or text documents and ask questions about them. "
            "Answers are generated by a hosted or local LLM from the first "
            "passages of each document."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(
        ErrorHandlingMiddleware,
        expose_details=(settings.app_env == "development"),
    )
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application)

    application.include_router(api_router)
    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "docchat.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
