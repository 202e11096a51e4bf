# Fake implementations for testing and local development

from .memory_store import InMemoryObjectStore

__all__ = ["InMemoryObjectStore"]
