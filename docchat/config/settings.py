"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# Values are read from two sources (in priority order):
#
#   1. Environment variables, e.g. OPENAI_API_KEY=sk-abc123
#   2. The .env file in the project root (local development)
#
# Field ``openai_api_key`` maps to env var ``OPENAI_API_KEY``.  Defaults
# below apply when neither source sets a value.  Tunables that are not
# secrets (prompt shapes, chunk size) also live in config/config.yaml, see
# docchat/config/loader.py.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """docchat application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Generation backend ===
    # "auto" picks the first configured provider: anthropic -> openai -> ollama.
    generation_provider: str = "auto"
    openai_api_key: str = ""
    openai_base_url: str = ""  # Custom base URL for OpenAI-compatible APIs
    openai_model: str = "gpt-4o-mini"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-3-5-haiku-latest"
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama3"

    # === Generation resilience ===
    generation_timeout_seconds: float = 60.0
    circuit_breaker_threshold: int = 3
    circuit_breaker_reset_seconds: float = 60.0

    # === Ingestion ===
    chunk_size_chars: int = 1200
    max_upload_bytes: int = 10 * 1024 * 1024
    max_documents_per_owner: int = 5

    # === Persistence ===
    database_path: str = "data/docchat.db"

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"
    config_path: str = "config/config.yaml"

    def get_available_generation_providers(self) -> list[str]:
        """Return provider names that have credentials (or a URL) configured."""
        providers: list[str] = []
        if self.anthropic_api_key:
            providers.append("anthropic")
        if self.openai_api_key:
            providers.append("openai")
        if self.ollama_base_url:
            providers.append("ollama")
        return providers
