import re
from contextlib import contextmanager
from typing import List, Dict, Any

import pytest

from graphnexus.storage.repo_manager import RepoManager
from graphnexus.types import RepoMeta


class FakeAdapter:
    """Records queries and answers them from (pattern, rows) rules.

    A rule whose rows is an exception instance raises it instead.
    """

    def __init__(self, rules=None):
        self.rules = list(rules or [])
        self.calls: List[Dict[str, Any]] = []
        self.extensions: List[str] = []

    def load_extension(self, name: str) -> bool:
        self.extensions.append(name)
        return True

    def query(self, cypher: str, parameters=None):
        self.calls.append({"cypher": cypher, "params": parameters or {}})
        for pattern, rows in self.rules:
            if re.search(pattern, cypher):
                if isinstance(rows, Exception):
                    raise rows
                return [dict(row) for row in rows]
        return []

    def stats(self):
        return {"nodes": 0, "edges": 0}

    def build_graph(self):
        return {"nodes": [], "relationships": []}


class FakePool:
    """Connection pool handing out a single fake adapter."""

    def __init__(self, adapter=None):
        self.adapter = adapter or FakeAdapter()
        self.acquired: List[str] = []

    @contextmanager
    def acquire(self, repo_id: str, db_path: str):
        self.acquired.append(repo_id)
        yield self.adapter

    def close(self, repo_id: str):
        pass

    def close_all(self):
        pass


@pytest.fixture
def home_dir(tmp_path):
    """Isolated GraphNexus home directory."""
    home = tmp_path / "graphnexus-home"
    home.mkdir()
    return home


@pytest.fixture
def repo_manager(home_dir) -> RepoManager:
    return RepoManager(home_dir=str(home_dir), case_insensitive=False)


@pytest.fixture
def sample_meta():
    def build(repo_path: str) -> RepoMeta:
        return RepoMeta(
            repo_path=repo_path,
            last_commit="abc1234",
            indexed_at="2026-01-01T00:00:00+00:00",
            stats={"files": 2, "nodes": 5, "edges": 4, "communities": 1, "processes": 1},
        )
    return build


@pytest.fixture
def registered_repo(tmp_path, repo_manager, sample_meta):
    """A registered repository whose storage directory exists."""
    repo_path = tmp_path / "work" / "app"
    (repo_path / "src").mkdir(parents=True)
    (repo_path / "src" / "main.py").write_text("def main():\n    return 42\n", encoding="utf-8")
    storage = repo_manager.storage_path_for(str(repo_path))
    storage.mkdir(parents=True)
    repo_manager.save_meta(storage, sample_meta(str(repo_path.resolve())))
    return repo_manager.register_repo(str(repo_path), sample_meta(str(repo_path.resolve())))


@pytest.fixture
def fake_adapter():
    return FakeAdapter()


@pytest.fixture
def fake_pool(fake_adapter):
    return FakePool(fake_adapter)


@pytest.fixture
def make_adapter():
    """Factory for fake adapters answering from (pattern, rows) rules."""
    return FakeAdapter


@pytest.fixture
def make_pool():
    return FakePool
