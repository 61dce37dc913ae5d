import threading
import time

from graphnexus.graph.connection_pool import ConnectionPool


class RecordingAdapter:
    """Adapter stand-in that tracks overlapping use."""

    active = 0
    max_active = 0
    guard = threading.Lock()

    def __init__(self, db_path, repo_id=None):
        self.db_path = db_path
        self.repo_id = repo_id
        self.opened = 0
        self.is_open = False

    def open(self):
        self.opened += 1
        self.is_open = True
        return self

    def close(self):
        self.is_open = False

    def work(self):
        with RecordingAdapter.guard:
            RecordingAdapter.active += 1
            RecordingAdapter.max_active = max(RecordingAdapter.max_active, RecordingAdapter.active)
        time.sleep(0.01)
        with RecordingAdapter.guard:
            RecordingAdapter.active -= 1


class TestConnectionPool:
    """Per-repository adapters behind per-repository locks."""

    def test_one_adapter_per_repo(self):
        pool = ConnectionPool(adapter_factory=RecordingAdapter)
        with pool.acquire("repo-a", "/tmp/a") as first:
            pass
        with pool.acquire("repo-a", "/tmp/a") as second:
            pass
        with pool.acquire("repo-b", "/tmp/b") as other:
            pass

        assert first is second
        assert other is not first
        assert sorted(pool.open_repos()) == ["repo-a", "repo-b"]

    def test_close_forgets_adapter(self):
        pool = ConnectionPool(adapter_factory=RecordingAdapter)
        with pool.acquire("repo-a", "/tmp/a") as adapter:
            pass
        pool.close("repo-a")

        assert not adapter.is_open
        assert not pool.is_open("repo-a")
        with pool.acquire("repo-a", "/tmp/a") as reopened:
            assert reopened is not adapter

    def test_same_repo_is_serialized(self):
        """Concurrent users of one repository never overlap."""
        RecordingAdapter.active = 0
        RecordingAdapter.max_active = 0
        pool = ConnectionPool(adapter_factory=RecordingAdapter)

        def use():
            with pool.acquire("repo-a", "/tmp/a") as adapter:
                adapter.work()

        threads = [threading.Thread(target=use) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert RecordingAdapter.max_active == 1

    def test_close_all(self):
        pool = ConnectionPool(adapter_factory=RecordingAdapter)
        for repo_id in ("a", "b", "c"):
            with pool.acquire(repo_id, f"/tmp/{repo_id}"):
                pass
        pool.close_all()
        assert pool.open_repos() == []
