"""Unit tests for factory functions in docchat/main.py.

All external SDK clients are constructed with placeholder keys; nothing
here makes a network call.
"""

from __future__ import annotations

from pathlib import Path

from fastapi import FastAPI

from docchat.config.settings import Settings


# ======================================================================
# Shared helpers
# ======================================================================


def _settings(tmp_path: Path, **overrides) -> Settings:
    defaults = {
        "generation_provider": "auto",
        "openai_api_key": "",
        "anthropic_api_key": "",
        "ollama_base_url": "http://localhost:11434",
        "database_path": str(tmp_path / "docchat.db"),
        "app_env": "test",
    }
    defaults.update(overrides)
    return Settings(_env_file=None, **defaults)


class TestBuildChatOptions:
    def test_yaml_overrides_and_timeout(self, tmp_path: Path) -> None:
        from docchat.main import _build_chat_options

        options = _build_chat_options(
            _settings(tmp_path, generation_timeout_seconds=12.5),
            {"generation": {"chat": {"max_tokens": 256, "max_attempts": 2}}},
        )

        assert options.max_tokens == 256
        assert options.max_attempts == 2
        assert options.timeout == 12.5
        assert options.temperature == 0.2

    def test_defaults_without_config(self, tmp_path: Path) -> None:
        from docchat.main import _build_chat_options

        options = _build_chat_options(_settings(tmp_path), {})
        assert options.max_tokens == 1000
        assert options.base_delay == 1.5


class TestBuildAll:
    def test_components_are_wired(self, tmp_path: Path) -> None:
        from docchat.main import _build_all
        from docchat.providers.generation.ollama_provider import OllamaGenerationProvider
        from docchat.services.chat_service import ChatService
        from docchat.services.ingestion.ingestion_service import IngestionService

        components = _build_all(
            _settings(tmp_path, circuit_breaker_threshold=5, max_upload_bytes=2048),
            {"prompt": {"max_documents": 4}},
        )

        assert set(components) == {
            "settings",
            "document_store",
            "generation_provider",
            "generation_client",
            "ingestion_service",
            "chat_service",
        }
        assert isinstance(components["generation_provider"], OllamaGenerationProvider)
        assert isinstance(components["ingestion_service"], IngestionService)
        assert isinstance(components["chat_service"], ChatService)
        assert components["ingestion_service"].max_upload_bytes == 2048
        assert components["generation_client"].breaker.snapshot()["threshold"] == 5
        assert components["generation_client"].provider_name == "ollama"


class TestCreateApp:
    def test_routes_registered(self) -> None:
        from docchat.main import create_app

        app = create_app()
        assert isinstance(app, FastAPI)
        paths = {getattr(route, "path", None) for route in app.routes}
        assert {
            "/api/v1/files/upload",
            "/api/v1/files",
            "/api/v1/files/{document_id}",
            "/api/v1/chat",
            "/api/v1/chat/summarize",
            "/api/v1/chat/stream",
            "/api/v1/chat/history",
            "/api/v1/chat/history/stats/summary",
            "/api/v1/chat/history/{history_id}",
            "/api/v1/health",
        } <= paths
