import asyncio
import json
import os
from typing import Annotated, Optional

from fastmcp import FastMCP
from pydantic import Field

from ..search.hybrid_search import format_hybrid_results
from ..server.backend import RepoBackend
from ..utils.logger import app_logger

CYPHER_SCHEMA_HINT = """Schema:
- Node tables: File, Folder, Function, Class, Interface, Method, Community, Process
  and language tables such as Struct, Enum, Trait, Impl, `Macro`, `Module`
- Symbol properties: id, name, filePath, startLine, endLine, content
- One relationship table CodeRelation with properties type, confidence, reason, step
- Relationship types: CONTAINS, DEFINES, IMPORTS, CALLS, EXTENDS, IMPLEMENTS,
  MEMBER_OF, STEP_IN_PROCESS

Example:
  MATCH (a)-[:CodeRelation {type: 'CALLS'}]->(b:Function {name: "validateUser"})
  RETURN a.name, a.filePath"""


class GraphNexusMCP:
    """MCP server exposing the code knowledge graph to agents."""

    def __init__(self, backend: RepoBackend, cwd: Optional[str] = None):
        self.logger = app_logger.bind(component="mcp_server")
        self.backend = backend
        self.cwd = cwd or os.getcwd()
        self.mcp = FastMCP("GraphNexus")
        self._register_tools()

    def _register_tools(self):
        """Register all MCP tools."""

        @self.mcp.tool()
        async def list_repos() -> str:
            """List all indexed repositories.

            Returns:
                One line per repository with its path and index statistics
            """
            try:
                repos = await asyncio.to_thread(self.backend.list_repos)
                if not repos:
                    return "No indexed repositories. Run `graphnexus index` first."
                lines = [f"Indexed repositories ({len(repos)}):"]
                for repo in repos:
                    stats = repo.get("stats") or {}
                    lines.append(
                        f"- {repo['name']}: {repo['path']} "
                        f"({stats.get('nodes', 0)} nodes, {stats.get('edges', 0)} edges, "
                        f"indexed {repo.get('indexedAt') or 'unknown'})"
                    )
                return "\n".join(lines)
            except Exception as e:
                self.logger.error(f"Error listing repositories: {e}")
                return f"Error listing repositories: {str(e)}"

        @self.mcp.tool()
        async def search(query: str, limit: Annotated[int, Field(ge=1)] = 10,
                         repo: Optional[str] = None) -> str:
            """Hybrid search (keyword + semantic) across the codebase.

            Args:
                query: Natural language or keyword search query
                limit: Max results to return
                repo: Repository name. Omit to use the repository of the working directory.

            Returns:
                Ranked files with the search source that found them
            """
            try:
                results = await asyncio.to_thread(self.backend.search, query, limit, repo, self.cwd)
                return format_hybrid_results(results)
            except Exception as e:
                self.logger.error(f"Error searching for '{query}': {e}")
                return f"Error searching code: {str(e)}"

        @self.mcp.tool(description=(
            "Execute a Cypher query against the code knowledge graph.\n\n" + CYPHER_SCHEMA_HINT
        ))
        async def cypher(query: str, repo: Optional[str] = None) -> str:
            try:
                rows = await asyncio.to_thread(self.backend.cypher, query, repo, self.cwd)
                return json.dumps(rows, indent=2, default=str)
            except Exception as e:
                self.logger.error(f"Error running cypher query: {e}")
                return f"Error running query: {str(e)}"

        @self.mcp.tool()
        async def read(path: str, repo: Optional[str] = None) -> str:
            """Read a source file of an indexed repository.

            Args:
                path: File path relative to the repository root
                repo: Repository name. Omit to use the repository of the working directory.

            Returns:
                The file content
            """
            try:
                return await asyncio.to_thread(self.backend.read_file, path, repo, self.cwd)
            except Exception as e:
                self.logger.error(f"Error reading {path}: {e}")
                return f"Error reading file: {str(e)}"

        @self.mcp.tool()
        async def overview(repo: Optional[str] = None) -> str:
            """Summarize an indexed repository.

            Args:
                repo: Repository name. Omit to use the repository of the working directory.

            Returns:
                Index metadata and live node and edge counts
            """
            try:
                info = await asyncio.to_thread(self.backend.overview, repo, self.cwd)
                stats = info.get("stats") or {}
                live = info.get("live") or {}
                return (
                    f"Repository: {info['name']}\n"
                    f"Path: {info['repoPath']}\n"
                    f"Indexed at: {info.get('indexedAt') or 'unknown'}\n"
                    f"Last commit: {info.get('lastCommit') or 'unknown'}\n"
                    f"Files: {stats.get('files', 0)}\n"
                    f"Communities: {stats.get('communities', 0)}\n"
                    f"Processes: {stats.get('processes', 0)}\n"
                    f"Nodes: {live.get('nodes', stats.get('nodes', 0))}\n"
                    f"Edges: {live.get('edges', stats.get('edges', 0))}"
                )
            except Exception as e:
                self.logger.error(f"Error building overview: {e}")
                return f"Error getting overview: {str(e)}"

    def get_server(self):
        """Get the FastMCP server instance."""
        return self.mcp

    def get_protocol_server(self):
        """Get the low-level MCP server behind FastMCP, used by the HTTP session manager."""
        return self.mcp._mcp_server
