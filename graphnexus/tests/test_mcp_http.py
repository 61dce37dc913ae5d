import asyncio
import time

import pytest
from fastapi.testclient import TestClient

from graphnexus.mcp.server import GraphNexusMCP
from graphnexus.server.api import create_app
from graphnexus.server.backend import RepoBackend
from graphnexus.server.mcp_http import MCPSessionManager


@pytest.fixture
def backend(repo_manager, make_adapter, make_pool):
    adapter = make_adapter([
        (r"QUERY_FTS_INDEX\('Function'", [{"filePath": "src/main.py", "score": 0.7}]),
        (r"RETURN count", [{"cnt": 3}]),
    ])
    return RepoBackend(repo_manager, make_pool(adapter))


@pytest.fixture
def mcp_server(backend, registered_repo):
    return GraphNexusMCP(backend, cwd=registered_repo.path)


@pytest.fixture
def session_manager(mcp_server):
    return MCPSessionManager(mcp_server.get_protocol_server())


@pytest.fixture
def client(backend, session_manager):
    return TestClient(create_app(backend, session_manager))


class TestSessionRouting:
    """Requests to /api/mcp without a live session."""

    def test_unknown_session(self, client, session_manager):
        """An unknown session id asks the client to re-initialize."""
        response = client.post(
            "/api/mcp",
            headers={"mcp-session-id": "does-not-exist"},
            json={"jsonrpc": "2.0", "id": 1, "method": "tools/list"},
        )
        assert response.status_code == 404
        assert response.json() == {
            "jsonrpc": "2.0",
            "error": {"code": -32001, "message": "Session not found. Re-initialize."},
            "id": None,
        }
        assert session_manager.sessions == {}

    def test_get_without_session(self, client):
        """Only a POST may start a session."""
        response = client.get("/api/mcp")
        assert response.status_code == 400
        assert response.json()["error"]["code"] == -32000

    def test_delete_without_session(self, client):
        response = client.delete("/api/mcp")
        assert response.status_code == 400

    def test_start_requires_running_manager(self, session_manager):
        """Sessions can only start inside the manager's task group."""
        with pytest.raises(RuntimeError):
            asyncio.run(session_manager._start_session())


class TestSessionLifecycle:
    """A session from initialize through DELETE."""

    headers = {
        "Accept": "application/json, text/event-stream",
        "Content-Type": "application/json",
    }

    def initialize(self, client):
        return client.post("/api/mcp", headers=self.headers, json={
            "jsonrpc": "2.0",
            "id": 1,
            "method": "initialize",
            "params": {
                "protocolVersion": "2025-03-26",
                "capabilities": {},
                "clientInfo": {"name": "graphnexus-tests", "version": "0.1.0"},
            },
        })

    def test_initialize_route_and_close(self, backend, session_manager):
        """The new session id routes later requests and is dropped after DELETE."""
        with TestClient(create_app(backend, session_manager)) as client:
            response = self.initialize(client)
            assert response.status_code == 200
            session_id = response.headers.get("mcp-session-id")
            assert session_id
            assert session_id in session_manager.sessions

            session_headers = dict(self.headers, **{
                "mcp-session-id": session_id,
                "mcp-protocol-version": "2025-03-26",
            })
            notified = client.post("/api/mcp", headers=session_headers, json={
                "jsonrpc": "2.0", "method": "notifications/initialized",
            })
            assert notified.status_code == 202

            listed = client.post("/api/mcp", headers=session_headers, json={
                "jsonrpc": "2.0", "id": 2, "method": "tools/list",
            })
            assert listed.status_code == 200
            assert '"search"' in listed.text

            assert client.delete("/api/mcp", headers=session_headers).status_code == 200

            deadline = time.monotonic() + 5
            while session_id in session_manager.sessions and time.monotonic() < deadline:
                time.sleep(0.05)
            assert session_id not in session_manager.sessions

            after = client.post("/api/mcp", headers=session_headers, json={
                "jsonrpc": "2.0", "id": 3, "method": "tools/list",
            })
            assert after.status_code == 404
            assert after.json()["error"]["code"] == -32001

    def test_sessions_are_independent(self, backend, session_manager):
        with TestClient(create_app(backend, session_manager)) as client:
            first = self.initialize(client).headers["mcp-session-id"]
            second = self.initialize(client).headers["mcp-session-id"]
            assert first != second
            assert {first, second} <= set(session_manager.sessions)
        assert session_manager.sessions == {}


class TestTools:
    """Tool handlers registered on the MCP server."""

    def get_tool(self, mcp_server, name):
        tools = asyncio.run(mcp_server.get_server().get_tools())
        return tools[name].fn

    def test_search_tool(self, mcp_server):
        search = self.get_tool(mcp_server, "search")
        text = asyncio.run(search(query="main"))
        assert text.startswith("Found 1 results:")
        assert "src/main.py" in text

    def test_read_tool(self, mcp_server):
        read = self.get_tool(mcp_server, "read")
        assert asyncio.run(read(path="src/main.py")).startswith("def main():")

    def test_read_tool_outside_repo(self, mcp_server):
        """Errors come back as text instead of raising."""
        read = self.get_tool(mcp_server, "read")
        assert asyncio.run(read(path="../../secret")).startswith("Error reading file:")

    def test_overview_tool(self, mcp_server):
        overview = self.get_tool(mcp_server, "overview")
        text = asyncio.run(overview())
        assert "Repository: app" in text
        assert "Processes: 1" in text

    def test_cypher_tool_returns_json(self, mcp_server):
        cypher = self.get_tool(mcp_server, "cypher")
        assert '"cnt": 3' in asyncio.run(cypher(query="MATCH (n) RETURN count(n) AS cnt"))

    def test_search_limit_must_be_positive(self, mcp_server):
        """The tool schema rejects limits below one."""
        tools = asyncio.run(mcp_server.get_server().get_tools())
        assert tools["search"].parameters["properties"]["limit"]["minimum"] == 1
