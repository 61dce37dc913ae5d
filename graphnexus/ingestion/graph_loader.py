import json
import shutil
import subprocess
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Dict, Any, Optional, Tuple

from ..embedding.embedding_service import EmbeddingService
from ..graph.connection_pool import ConnectionPool
from ..graph.schema import NODE_TABLES, label_from_id
from ..search.full_text import FullTextSearch
from ..search.semantic_search import SemanticSearch
from ..storage.repo_manager import RepoManager
from ..types import GraphNode, GraphRelationship, RepoMeta
from ..utils.logger import app_logger


def read_graph_export(path: str) -> Tuple[List[GraphNode], List[GraphRelationship]]:
    """Read a ``{"nodes": [...], "relationships": [...]}`` graph export."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    nodes = [GraphNode.from_dict(raw) for raw in data.get("nodes", [])]
    relationships = [GraphRelationship.from_dict(raw) for raw in data.get("relationships", [])]
    return nodes, relationships


def current_commit(repo_path: str) -> str:
    """HEAD commit of a git checkout, or an empty string."""
    try:
        completed = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            cwd=repo_path,
            capture_output=True,
            text=True,
            timeout=10,
        )
    except (OSError, subprocess.SubprocessError):
        return ""
    return completed.stdout.strip() if completed.returncode == 0 else ""


class GraphLoader:
    """Persists an ingested graph as a repository's index and registers it."""

    def __init__(self, repo_manager: RepoManager, pool: ConnectionPool,
                 embedding_service: Optional[EmbeddingService] = None):
        self.logger = app_logger.bind(component="graph_loader")
        self.repo_manager = repo_manager
        self.pool = pool
        self.embedding_service = embedding_service

    def _reset_store(self, repo_id: str, storage_path: Path):
        """Drop a previous index so a re-index replaces it entirely."""
        self.pool.close(repo_id)
        if not storage_path.exists():
            return
        for existing in storage_path.glob("kuzu*"):
            if existing.is_dir():
                shutil.rmtree(existing)
            else:
                existing.unlink()
        self.logger.info(f"Removed previous index at {storage_path}")

    @staticmethod
    def group_rows(nodes: List[GraphNode]) -> Dict[str, List[Dict[str, Any]]]:
        rows = defaultdict(list)
        for node in nodes:
            rows[node.label].append({**node.properties, "id": node.id})
        return rows

    def load(self, repo_path: str, nodes: List[GraphNode], relationships: List[GraphRelationship],
             last_commit: Optional[str] = None, embeddings: bool = False) -> RepoMeta:
        """Load nodes, then edges, then build search indexes and save metadata."""
        resolved = str(Path(repo_path).resolve())
        storage_path = self.repo_manager.storage_path_for(resolved)
        repo_id = storage_path.name
        self._reset_store(repo_id, storage_path)

        for node in nodes:
            if label_from_id(node.id) != node.label:
                self.logger.warning(f"Node id {node.id} does not encode its label {node.label}")

        rows_by_label = self.group_rows(nodes)
        unknown = set(rows_by_label) - set(NODE_TABLES)
        if unknown:
            self.logger.warning(f"Skipping nodes with unsupported labels: {sorted(unknown)}")

        with self.pool.acquire(repo_id, str(storage_path / "kuzu")) as adapter:
            loaded = 0
            for label in NODE_TABLES:
                loaded += adapter.bulk_load_nodes(label, rows_by_label.get(label, []))
            self.logger.info(f"Loaded {loaded}/{len(nodes)} nodes")

            edge_result = adapter.create_relationships(relationships)

            FullTextSearch(adapter).create_indexes()
            if embeddings and self.embedding_service is not None:
                SemanticSearch(adapter, self.embedding_service).embed_nodes()

            stats = adapter.stats()

        meta = RepoMeta(
            repo_path=resolved,
            last_commit=last_commit if last_commit is not None else current_commit(resolved),
            indexed_at=datetime.now(timezone.utc).isoformat(),
            stats={
                "files": len(rows_by_label.get("File", [])),
                "nodes": stats["nodes"],
                "edges": stats["edges"],
                "communities": len(rows_by_label.get("Community", [])),
                "processes": len(rows_by_label.get("Process", [])),
            },
        )
        self.repo_manager.save_meta(storage_path, meta)
        self.repo_manager.register_repo(resolved, meta)
        self.logger.info(
            f"Indexed {resolved}: {stats['nodes']} nodes, {edge_result.inserted_count} edges "
            f"({edge_result.skipped_count} skipped)"
        )
        return meta
