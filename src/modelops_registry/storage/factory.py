"""
Object store factory with backend switching.

Provides a single factory function that creates the configured ObjectStore
implementation, so call sites never name a concrete backend.
"""
from __future__ import annotations

from ..settings import Settings
from .base import ObjectStore


def make_store(settings: Settings) -> ObjectStore:
    """
    Create an object store based on settings.store.

    Args:
        settings: Store configuration

    Returns:
        ObjectStore implementation
            - "s3": S3ObjectStore (AWS S3, MinIO and other S3-compatible services)
            - "memory": InMemoryObjectStore (local development, tests)

    Raises:
        ValueError: If settings.store names an unknown backend
    """
    if settings.store == "s3":
        from .s3 import S3ObjectStore
        return S3ObjectStore(settings=settings)
    elif settings.store == "memory":
        from .fakes.memory_store import InMemoryObjectStore
        return InMemoryObjectStore(bucket=settings.bucket)
    else:
        raise ValueError(
            f"Unknown store backend: {settings.store}. "
            f"Supported values: s3, memory"
        )


__all__ = ["make_store"]
