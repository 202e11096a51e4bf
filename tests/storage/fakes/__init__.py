# Fault-injecting fakes for testing

from .failing_store import FailingStore, StallingStore

__all__ = ["FailingStore", "StallingStore"]
