import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List

from ..utils.logger import app_logger
from .kuzu_adapter import KuzuAdapter


class ConnectionPool:
    """Owns one graph store connection per repository.

    Every ``acquire`` holds that repository's lock for the duration of the
    block, so statements against one connection never overlap while distinct
    repositories proceed in parallel.
    """

    def __init__(self, adapter_factory=KuzuAdapter):
        self.logger = app_logger.bind(component="connection_pool")
        self._adapter_factory = adapter_factory
        self._adapters: Dict[str, KuzuAdapter] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, repo_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(repo_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[repo_id] = lock
            return lock

    @contextmanager
    def acquire(self, repo_id: str, db_path: str) -> Iterator[KuzuAdapter]:
        """Yield the repository's open adapter under its exclusive lock."""
        lock = self._lock_for(repo_id)
        with lock:
            adapter = self._adapters.get(repo_id)
            if adapter is None:
                adapter = self._adapter_factory(db_path, repo_id=repo_id)
                self._adapters[repo_id] = adapter
            adapter.open()
            yield adapter

    def is_open(self, repo_id: str) -> bool:
        adapter = self._adapters.get(repo_id)
        return adapter is not None and adapter.is_open

    def open_repos(self) -> List[str]:
        return [repo_id for repo_id in list(self._adapters) if self.is_open(repo_id)]

    def close(self, repo_id: str):
        """Close and forget a repository's connection."""
        with self._lock_for(repo_id):
            adapter = self._adapters.pop(repo_id, None)
            if adapter is not None:
                adapter.close()
                self.logger.info(f"Released connection for {repo_id}")

    def close_all(self):
        for repo_id in list(self._adapters):
            self.close(repo_id)
