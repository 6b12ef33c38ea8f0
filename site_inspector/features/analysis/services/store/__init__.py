"""
Result stores for analysis jobs.
"""
from site_inspector.features.analysis.services.store.base import ResultStore
from site_inspector.features.analysis.services.store.memory_store import InMemoryResultStore
from site_inspector.features.analysis.services.store.sql_store import SqlResultStore

__all__ = ["ResultStore", "InMemoryResultStore", "SqlResultStore", "build_result_store"]


def build_result_store(backend: str) -> ResultStore:
    if backend == "memory":
        return InMemoryResultStore()

    from site_inspector.platform.db.session import SessionLocal

    return SqlResultStore(SessionLocal)
