from pathlib import Path
from typing import List, Dict, Any, Optional

from ..embedding.embedding_service import EmbeddingService
from ..errors import FileNotFoundInRepoError, PathOutsideRepoError
from ..graph.connection_pool import ConnectionPool
from ..search.full_text import FullTextSearch
from ..search.hybrid_search import FusionStrategy, HybridSearch
from ..search.semantic_search import SemanticSearch
from ..storage.repo_manager import RepoManager
from ..types import HybridResult, RegistryEntry
from ..utils.logger import app_logger


class RepoBackend:
    """Repository-scoped operations shared by the HTTP API and MCP tools.

    Every store access happens inside ``pool.acquire`` so requests from
    different threads never overlap on one repository's connection.
    """

    def __init__(self, repo_manager: RepoManager, pool: ConnectionPool,
                 embedding_service: Optional[EmbeddingService] = None,
                 fusion_strategy: Optional[FusionStrategy] = None):
        self.logger = app_logger.bind(component="repo_backend")
        self.repo_manager = repo_manager
        self.pool = pool
        self.embedding_service = embedding_service
        self.fusion_strategy = fusion_strategy

    def resolve(self, repo: Optional[str] = None, cwd: Optional[str] = None) -> RegistryEntry:
        """Pick a repository by name, then by working directory, then the first one."""
        if repo:
            return self.repo_manager.get_repo(repo)
        if cwd:
            entry = self.repo_manager.find_repo_for_path(cwd)
            if entry is not None:
                return entry
        return self.repo_manager.get_repo()

    def list_repos(self) -> List[Dict[str, Any]]:
        return [
            {
                "name": entry.name,
                "path": entry.path,
                "indexedAt": entry.indexed_at,
                "lastCommit": entry.last_commit,
                "stats": entry.stats,
            }
            for entry in self.repo_manager.list_registered_repos()
        ]

    def repo_info(self, repo: Optional[str] = None) -> Dict[str, Any]:
        return self._describe(self.resolve(repo))

    def _describe(self, entry: RegistryEntry) -> Dict[str, Any]:
        meta = self.repo_manager.load_meta(Path(entry.storage_path))
        return {
            "name": entry.name,
            "repoPath": entry.path,
            "indexedAt": meta.indexed_at if meta else entry.indexed_at,
            "lastCommit": meta.last_commit if meta else entry.last_commit,
            "stats": meta.stats if meta else entry.stats,
        }

    def graph(self, repo: Optional[str] = None) -> Dict[str, Any]:
        entry = self.resolve(repo)
        with self.pool.acquire(entry.repo_id, entry.kuzu_path) as adapter:
            return adapter.build_graph()

    def cypher(self, query: str, repo: Optional[str] = None,
               cwd: Optional[str] = None) -> List[Dict[str, Any]]:
        """Run a raw Cypher query. Errors propagate to the caller."""
        entry = self.resolve(repo, cwd)
        with self.pool.acquire(entry.repo_id, entry.kuzu_path) as adapter:
            return adapter.query(query)

    def search(self, query: str, limit: int = 10, repo: Optional[str] = None,
               cwd: Optional[str] = None) -> List[HybridResult]:
        """Hybrid search when embeddings are available, otherwise full-text only."""
        entry = self.resolve(repo, cwd)
        with self.pool.acquire(entry.repo_id, entry.kuzu_path) as adapter:
            semantic = None
            if self.embedding_service is not None and self.embedding_service.is_ready():
                semantic = SemanticSearch(adapter, self.embedding_service)
            searcher = HybridSearch(FullTextSearch(adapter), semantic, self.fusion_strategy)
            return searcher.search(query, limit, semantic.as_function() if semantic else None)

    def read_file(self, path: str, repo: Optional[str] = None, cwd: Optional[str] = None) -> str:
        """Read a file relative to the repository root."""
        entry = self.resolve(repo, cwd)
        root = Path(entry.path).resolve()
        target = (root / path).resolve()
        if target != root and root not in target.parents:
            raise PathOutsideRepoError(path)
        if not target.is_file():
            raise FileNotFoundInRepoError(path)
        return target.read_text(encoding="utf-8", errors="replace")

    def overview(self, repo: Optional[str] = None, cwd: Optional[str] = None) -> Dict[str, Any]:
        """Stored index metadata plus live store counts."""
        entry = self.resolve(repo, cwd)
        info = self._describe(entry)
        with self.pool.acquire(entry.repo_id, entry.kuzu_path) as adapter:
            info["live"] = adapter.stats()
        return info

