"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# Settings are read from two sources (in priority order):
#
#   1. **Environment variables**: e.g. ANTHROPIC_API_KEY=sk-ant-...
#   2. **.env file**: key=value lines in the project root .env file
#
# Field ``openai_api_key`` maps to env var ``OPENAI_API_KEY``.  Defaults
# apply when neither source defines a value.  Pipeline tuning knobs
# (chunk sizes, thresholds, retry limits) live in config/config.yaml and
# are loaded by src.config.loader, not here.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """CourseForge application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # === LLM Providers ===
    # Empty string = "not configured"; main.py falls through to the next provider.
    openai_api_key: str = ""
    openai_base_url: str = ""  # OpenAI-compatible endpoints (TogetherAI, Groq, ...)
    openai_text_model: str = ""
    openai_embedding_model: str = ""
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-5"
    ollama_base_url: str = "http://localhost:11434"
    ollama_text_model: str = "llama3.1"

    # === Reranking (optional, Jina-compatible API) ===
    jina_api_key: str = ""
    jina_rerank_url: str = "https://api.jina.ai/v1/rerank"
    jina_rerank_model: str = "jina-reranker-v2-base-multilingual"
    rerank_timeout_seconds: float = 8.0

    # === Vector store ===
    chromadb_persist_dir: str = "./data/chromadb"
    chromadb_collection_prefix: str = "course"

    # === Persistence collaborator ===
    persistence_db_path: str = "data/courseforge.db"

    # === External call policy ===
    external_call_timeout_seconds: float = 30.0
    embedding_batch_size: int = 64
    index_max_attempts: int = 3

    # === Pipeline runtime ===
    event_buffer_size: int = 256
    max_concurrent_chunking: int = 4
    job_retention_seconds: int = 3600

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"

    def get_available_llm_providers(self) -> list[str]:
        """Return LLM provider names that are configured, in selection order."""
        providers: list[str] = []
        if self.anthropic_api_key:
            providers.append("anthropic")
        if self.openai_api_key:
            providers.append("openai")
        if self.ollama_base_url:
            providers.append("ollama")
        return providers

    def rerank_enabled(self) -> bool:
        return bool(self.jina_api_key and self.jina_rerank_url)
