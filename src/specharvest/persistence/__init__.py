"""Persistence layer - database models, repositories and store adapters."""

from .db import dispose_engine, get_engine, get_session, get_sync_session, init_db
from .models import Base, CatalogItem, HarvestRun, PhoneSpec, RunLock
from .repo import CompletionRepository, RunRepository, SpecRepository
from .store import CompletionStore, PersistenceError, SpecStore, StoreUnavailableError

__all__ = [
    "dispose_engine",
    "get_engine",
    "get_session",
    "get_sync_session",
    "init_db",
    "Base",
    "CatalogItem",
    "HarvestRun",
    "PhoneSpec",
    "RunLock",
    "CompletionRepository",
    "RunRepository",
    "SpecRepository",
    "CompletionStore",
    "PersistenceError",
    "SpecStore",
    "StoreUnavailableError",
]
