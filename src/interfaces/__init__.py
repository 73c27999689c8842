"""Public interface definitions for all external service providers.

Every external service the pipeline talks to is reached through the
abstract base classes in this package.  Concrete adapters in
``src/providers/`` implement them and are injected by ``src/main.py``, so
tests can substitute in-memory fakes and deployments can swap backends
without touching pipeline code.

CONCRETE PROVIDER MAP:
    Interface              →  Concrete implementations (in src/providers/)
    ─────────────────────────────────────────────────────────────────────
    ILLMProvider           →  AnthropicLLMProvider, OpenAILLMProvider,
                              OllamaLLMProvider
    IEmbeddingProvider     →  OpenAIEmbeddingProvider, NomicEmbeddingProvider
    IVectorStoreProvider   →  ChromaDBProvider
    IRerankProvider        →  JinaRerankProvider
    IPersistenceProvider   →  SQLitePersistenceProvider
"""

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.llm_provider import ILLMProvider
from src.interfaces.persistence_provider import IPersistenceProvider
from src.interfaces.rerank_provider import IRerankProvider, RerankResult
from src.interfaces.vector_store_provider import IVectorStoreProvider

__all__ = [
    "IEmbeddingProvider",
    "ILLMProvider",
    "IPersistenceProvider",
    "IRerankProvider",
    "IVectorStoreProvider",
    "RerankResult",
]
