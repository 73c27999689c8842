"""Provider selection shared by the API server and the ingest CLI.

Both entry points must embed with the same provider, otherwise vectors
written by the CLI are not comparable with the server's queries.

# ─── SELECTION ORDER ──────────────────────────────────────────────────
#
#   LLM        Anthropic → OpenAI(-compatible) → Ollama
#   Embedding  OpenAI(-compatible) → Nomic via Ollama → ConfigurationError
#   Rerank     Jina when a key is set, otherwise none
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.llm_provider import ILLMProvider
from src.interfaces.rerank_provider import IRerankProvider
from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.providers.embedding.nomic_embedding_provider import NomicEmbeddingProvider
from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from src.providers.llm.anthropic_provider import AnthropicLLMProvider
from src.providers.llm.ollama_provider import OllamaLLMProvider
from src.providers.llm.openai_provider import OpenAILLMProvider
from src.providers.rerank.jina_rerank_provider import JinaRerankProvider
from src.providers.vector_store.chromadb_provider import ChromaDBProvider
from src.services.index_client import IndexClient
from src.utils.errors import ConfigurationError


def build_llm_provider(app_settings: Settings) -> ILLMProvider:
    """Pick the model provider from configured keys: Anthropic, OpenAI, then Ollama."""
    if app_settings.anthropic_api_key:
        return AnthropicLLMProvider(settings=app_settings)
    if app_settings.openai_api_key:
        return OpenAILLMProvider(settings=app_settings)
    return OllamaLLMProvider(settings=app_settings)


def build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider:
    """OpenAI(-compatible) embeddings when a key is set, else Nomic via Ollama.

    Raises
    ------
    ConfigurationError
        If neither provider is usable.  Indexing cannot work without one.
    """
    if app_settings.openai_api_key:
        provider: IEmbeddingProvider = OpenAIEmbeddingProvider(settings=app_settings)
        if provider.is_available():
            return provider

    provider = NomicEmbeddingProvider(settings=app_settings)
    if provider.is_available():
        return provider

    raise ConfigurationError(
        message="No embedding provider available: set OPENAI_API_KEY or run Ollama "
        "with nomic-embed-text"
    )


def build_reranker(app_settings: Settings) -> IRerankProvider | None:
    if not app_settings.rerank_enabled():
        return None
    return JinaRerankProvider(settings=app_settings)


def build_vector_store(app_settings: Settings) -> IVectorStoreProvider:
    return ChromaDBProvider(persist_directory=app_settings.chromadb_persist_dir)


def build_index_client(
    app_settings: Settings,
    embedding: IEmbeddingProvider | None = None,
    vector_store: IVectorStoreProvider | None = None,
) -> IndexClient:
    """IndexClient with the configured batching, timeout and retry budget.

    Raises :class:`ConfigurationError` when no embedding provider is usable
    and none was passed in.
    """
    return IndexClient(
        embedding_provider=embedding or build_embedding_provider(app_settings),
        vector_store=vector_store or build_vector_store(app_settings),
        batch_size=app_settings.embedding_batch_size,
        timeout_seconds=app_settings.external_call_timeout_seconds,
        max_attempts=app_settings.index_max_attempts,
    )
