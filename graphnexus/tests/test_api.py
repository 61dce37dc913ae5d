import pytest
from fastapi.testclient import TestClient

from graphnexus.server.api import create_app
from graphnexus.server.backend import RepoBackend


@pytest.fixture
def adapter(make_adapter):
    return make_adapter([
        (r"QUERY_FTS_INDEX\('File'", [{"filePath": "src/main.py", "score": 1.25}]),
        (r"BROKEN", RuntimeError("Parser exception: invalid input")),
        (r"RETURN n.name AS name", [{"name": "main"}]),
    ])


@pytest.fixture
def backend(repo_manager, adapter, make_pool):
    return RepoBackend(repo_manager, make_pool(adapter))


@pytest.fixture
def client(backend):
    return TestClient(create_app(backend))


class TestRepositories:
    """Repository listing and lookup."""

    def test_empty_registry(self, client):
        """Without indexed repositories the list is empty and lookups are 404."""
        assert client.get("/api/repos").json() == []
        response = client.get("/api/repo")
        assert response.status_code == 404
        assert "error" in response.json()

    def test_list_repos(self, registered_repo, client):
        """Listed entries do not expose the storage location."""
        repos = client.get("/api/repos").json()
        assert [r["name"] for r in repos] == ["app"]
        assert "storagePath" not in repos[0]

    def test_repo_info(self, registered_repo, client):
        info = client.get("/api/repo", params={"repo": "app"}).json()
        assert info["repoPath"] == registered_repo.path
        assert info["lastCommit"] == "abc1234"
        assert info["stats"]["nodes"] == 5

    def test_unknown_repo(self, registered_repo, client):
        response = client.get("/api/repo", params={"repo": "missing"})
        assert response.status_code == 404
        assert response.json() == {"error": "Repository not found: missing"}

    def test_graph(self, registered_repo, client):
        assert client.get("/api/graph").json() == {"nodes": [], "relationships": []}


class TestQuery:
    """Raw Cypher endpoint."""

    def test_query_result(self, registered_repo, client):
        response = client.post("/api/query", json={"cypher": "MATCH (n:Function) RETURN n.name AS name"})
        assert response.status_code == 200
        assert response.json() == {"result": [{"name": "main"}]}

    def test_query_error(self, registered_repo, client):
        """Store errors become a 500 with the message."""
        response = client.post("/api/query", json={"cypher": "BROKEN"})
        assert response.status_code == 500
        assert "Parser exception" in response.json()["error"]


class TestSearch:
    def test_lexical_results(self, registered_repo, client):
        """Without embeddings the search endpoint returns full-text results."""
        response = client.post("/api/search", json={"query": "main", "limit": 5})
        assert response.status_code == 200
        results = response.json()["results"]
        assert results[0]["filePath"] == "src/main.py"
        assert results[0]["score"] == 1.25
        assert results[0]["sources"] == ["bm25"]

    @pytest.mark.parametrize("limit", [0, -3])
    def test_limit_must_be_positive(self, registered_repo, client, limit):
        """Zero or negative limits are rejected before reaching the store."""
        response = client.post("/api/search", json={"query": "main", "limit": limit})
        assert response.status_code == 422


class TestFile:
    """Source file reads."""

    def test_read_file(self, registered_repo, client):
        response = client.get("/api/file", params={"path": "src/main.py"})
        assert response.status_code == 200
        assert response.json()["content"].startswith("def main():")

    def test_missing_path(self, registered_repo, client):
        response = client.get("/api/file")
        assert response.status_code == 400
        assert "error" in response.json()

    def test_missing_file(self, registered_repo, client):
        response = client.get("/api/file", params={"path": "src/nope.py"})
        assert response.status_code == 404
        assert response.json() == {"error": "File not found: src/nope.py"}

    def test_path_outside_repo(self, registered_repo, client):
        """Paths escaping the repository root are refused."""
        response = client.get("/api/file", params={"path": "../../etc/passwd"})
        assert response.status_code == 403
