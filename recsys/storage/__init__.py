"""Storage module for recommendation state persistence."""

from recsys.storage.db import Base, create_engine, create_session_factory
from recsys.storage.json_utils import safe_json_dumps, safe_json_loads
from recsys.storage.models import StoredRecord
from recsys.storage.repo_records import SqlRepository
from recsys.storage.repository import (
    EXPERIMENTS,
    FEEDBACK,
    MATRICES,
    NAMESPACES,
    PERF_METRICS,
    PROFILES,
    TRENDING_ITEMS,
    InMemoryRepository,
    Repository,
)

__all__ = [
    # Database
    "Base",
    "create_engine",
    "create_session_factory",
    # JSON utilities
    "safe_json_dumps",
    "safe_json_loads",
    # Models
    "StoredRecord",
    # Repositories
    "Repository",
    "InMemoryRepository",
    "SqlRepository",
    # Namespaces
    "PROFILES",
    "MATRICES",
    "TRENDING_ITEMS",
    "PERF_METRICS",
    "EXPERIMENTS",
    "FEEDBACK",
    "NAMESPACES",
]
