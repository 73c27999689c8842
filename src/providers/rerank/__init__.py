"""Rerank provider implementations."""

from src.providers.rerank.jina_rerank_provider import JinaRerankProvider

__all__ = ["JinaRerankProvider"]
