"""Persistence layer for O2D follow-up state."""

from __future__ import annotations

import os
from typing import Optional

from ..config import O2DConfig, load_config
from .inmemory import InMemoryItemRepository
from .repository import ItemRepository
from .rest import HttpItemRepository
from .sqlite import SQLiteItemRepository

try:  # pragma: no cover - optional dependency
    from .postgres import PostgresItemRepository
except ImportError:  # pragma: no cover - optional dependency
    PostgresItemRepository = None  # type: ignore

_repository_instance: ItemRepository | None = None


def get_repository(
    database_url: Optional[str] = None, config: Optional[O2DConfig] = None
) -> ItemRepository:
    """Factory function to obtain an item repository.

    The backend is selected based on ``database_url`` which can be provided
    explicitly, via environment variable ``O2D_DATABASE_URL`` or
    ``DATABASE_URL``, or from loaded configuration. ``http(s)://`` URLs point
    at the order-tracking REST API. When nothing is configured, an in-memory
    repository is returned.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("O2D_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or config.database_url
    )

    if not database_url:
        _repository_instance = InMemoryItemRepository()
        return _repository_instance

    if database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        _repository_instance = SQLiteItemRepository(path)
    elif database_url.startswith("postgres://") or database_url.startswith(
        "postgresql://"
    ):
        if PostgresItemRepository is None:
            raise RuntimeError("Postgres support not available")
        _repository_instance = PostgresItemRepository(database_url)
    elif database_url.startswith("http://") or database_url.startswith("https://"):
        _repository_instance = HttpItemRepository(
            database_url, timeout=config.http.timeout_seconds
        )
    else:
        raise ValueError(f"Unsupported database backend: {database_url}")

    return _repository_instance


__all__ = [
    "ItemRepository",
    "InMemoryItemRepository",
    "SQLiteItemRepository",
    "PostgresItemRepository",
    "HttpItemRepository",
    "get_repository",
]
