"""Persistence store implementations."""

from workspace_rag.providers.persistence.sqlite_store import SQLitePersistenceStore

__all__ = ["SQLitePersistenceStore"]
