"""Persistence provider implementations."""

from src.providers.persistence.sqlite_persistence_provider import SQLitePersistenceProvider

__all__ = ["SQLitePersistenceProvider"]
