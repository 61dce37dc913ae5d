from contextlib import asynccontextmanager
from typing import List, Dict, Any, Optional

from fastapi import FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..errors import FileNotFoundInRepoError, PathOutsideRepoError, RepoNotFoundError
from ..utils.logger import app_logger
from .backend import RepoBackend
from .mcp_http import MCPSessionManager

logger = app_logger.bind(component="api_server")


class QueryRequest(BaseModel):
    cypher: str


class QueryResponse(BaseModel):
    result: List[Dict[str, Any]]


class SearchRequest(BaseModel):
    query: str
    limit: int = Field(10, ge=1)


class SearchResponse(BaseModel):
    results: List[Dict[str, Any]]


class FileResponse(BaseModel):
    content: str


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def create_app(backend: RepoBackend, session_manager: Optional[MCPSessionManager] = None) -> FastAPI:
    """Build the local HTTP API serving indexed repositories.

    Handlers are plain functions so FastAPI runs them in its threadpool and
    store queries never block the event loop.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if session_manager is None:
            yield
            return
        async with session_manager.run():
            logger.info("MCP HTTP endpoint available at /api/mcp")
            yield

    app = FastAPI(title="GraphNexus API", version="0.1.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["mcp-session-id"],
    )

    @app.exception_handler(RepoNotFoundError)
    async def repo_not_found(request, exc: RepoNotFoundError):
        return error_response(404, str(exc))

    @app.get("/api/repos")
    def list_repos():
        """List indexed repositories."""
        return backend.list_repos()

    @app.get("/api/repo")
    def repo_info(repo: Optional[str] = None):
        """Metadata of one repository."""
        return backend.repo_info(repo)

    @app.get("/api/graph")
    def graph(repo: Optional[str] = None):
        """Every node and relationship of a repository, without source content."""
        return backend.graph(repo)

    @app.post("/api/query", response_model=QueryResponse)
    def query(request: QueryRequest, repo: Optional[str] = None):
        """Run a raw Cypher query."""
        try:
            return QueryResponse(result=backend.cypher(request.cypher, repo))
        except RepoNotFoundError:
            raise
        except Exception as e:
            logger.error(f"Query failed: {e}")
            return error_response(500, str(e))

    @app.post("/api/search", response_model=SearchResponse)
    def search(request: SearchRequest, repo: Optional[str] = None):
        """Hybrid search over a repository."""
        results = backend.search(request.query, request.limit, repo)
        return SearchResponse(results=[result.to_dict() for result in results])

    @app.get("/api/file", response_model=FileResponse)
    def read_file(path: Optional[str] = Query(default=None), repo: Optional[str] = None):
        """Read a source file relative to the repository root."""
        if not path:
            return error_response(400, "Missing path")
        try:
            return FileResponse(content=backend.read_file(path, repo))
        except PathOutsideRepoError as e:
            return error_response(403, str(e))
        except FileNotFoundInRepoError as e:
            return error_response(404, str(e))

    if session_manager is not None:
        app.add_route("/api/mcp", session_manager, include_in_schema=False)

    return app
