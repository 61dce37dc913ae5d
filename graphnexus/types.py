from typing import List, Dict, Any, Optional
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class GraphNode:
    """Represents a node in the code knowledge graph."""
    id: str
    label: str
    properties: Dict[str, Any]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GraphNode":
        """Build a node from an exported graph entry."""
        return cls(
            id=data["id"],
            label=data["label"],
            properties=dict(data.get("properties") or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "label": self.label,
            "properties": self.properties,
        }


@dataclass
class GraphRelationship:
    """Represents a directed, confidence-scored edge in the code graph."""
    id: str
    source_id: str
    target_id: str
    type: str
    confidence: float = 1.0
    reason: str = ""
    step: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GraphRelationship":
        """Build a relationship from an exported graph entry."""
        step = data.get("step")
        return cls(
            id=data.get("id") or f"{data['sourceId']}->{data['targetId']}",
            source_id=data["sourceId"],
            target_id=data["targetId"],
            type=data["type"],
            confidence=float(data.get("confidence", 1.0)),
            reason=data.get("reason") or "",
            step=int(step) if step is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "sourceId": self.source_id,
            "targetId": self.target_id,
            "type": self.type,
            "confidence": self.confidence,
            "reason": self.reason,
            "step": self.step,
        }


@dataclass
class RelationshipLoadResult:
    """Outcome of inserting a batch of relationships."""
    inserted_count: int = 0
    skipped_count: int = 0

    def merge(self, other: "RelationshipLoadResult") -> "RelationshipLoadResult":
        return RelationshipLoadResult(
            inserted_count=self.inserted_count + other.inserted_count,
            skipped_count=self.skipped_count + other.skipped_count,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "insertedCount": self.inserted_count,
            "skippedCount": self.skipped_count,
        }


@dataclass
class FullTextResult:
    """A file-level full-text hit with scores merged across tables."""
    file_path: str
    score: float
    rank: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "filePath": self.file_path,
            "score": self.score,
            "rank": self.rank,
        }


@dataclass
class SemanticResult:
    """A nearest-neighbour hit returned by the semantic index."""
    file_path: str
    distance: float
    node_id: str = ""
    name: str = ""
    label: str = ""
    start_line: Optional[int] = None
    end_line: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filePath": self.file_path,
            "distance": self.distance,
            "nodeId": self.node_id,
            "name": self.name,
            "label": self.label,
            "startLine": self.start_line,
            "endLine": self.end_line,
        }


@dataclass
class HybridResult:
    """A fused search result."""
    file_path: str
    score: float
    rank: int
    sources: List[str]
    bm25_score: Optional[float] = None
    semantic_score: Optional[float] = None
    node_id: Optional[str] = None
    name: Optional[str] = None
    label: Optional[str] = None
    start_line: Optional[int] = None
    end_line: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "filePath": self.file_path,
            "score": self.score,
            "rank": self.rank,
            "sources": self.sources,
            "bm25Score": self.bm25_score,
            "semanticScore": self.semantic_score,
            "nodeId": self.node_id,
            "name": self.name,
            "label": self.label,
            "startLine": self.start_line,
            "endLine": self.end_line,
        }


@dataclass
class FrameworkHint:
    """Entry-point weighting produced by the framework scorer."""
    framework: str
    multiplier: float
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "framework": self.framework,
            "multiplier": self.multiplier,
            "reason": self.reason,
        }


@dataclass
class RepoMeta:
    """Per-repository index metadata persisted as meta.json."""
    repo_path: str
    last_commit: str
    indexed_at: str
    stats: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RepoMeta":
        return cls(
            repo_path=data["repoPath"],
            last_commit=data.get("lastCommit", ""),
            indexed_at=data.get("indexedAt", ""),
            stats=dict(data.get("stats") or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "repoPath": self.repo_path,
            "lastCommit": self.last_commit,
            "indexedAt": self.indexed_at,
            "stats": self.stats,
        }


@dataclass
class RegistryEntry:
    """An indexed repository as recorded in the global registry."""
    name: str
    path: str
    storage_path: str
    indexed_at: str
    last_commit: str
    stats: Dict[str, int] = field(default_factory=dict)

    @property
    def repo_id(self) -> str:
        """Stable key of the repository's store connection."""
        return Path(self.storage_path).name

    @property
    def kuzu_path(self) -> str:
        """Location of the repository's graph database."""
        return str(Path(self.storage_path) / "kuzu")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RegistryEntry":
        return cls(
            name=data["name"],
            path=data["path"],
            storage_path=data["storagePath"],
            indexed_at=data.get("indexedAt", ""),
            last_commit=data.get("lastCommit", ""),
            stats=dict(data.get("stats") or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "path": self.path,
            "storagePath": self.storage_path,
            "indexedAt": self.indexed_at,
            "lastCommit": self.last_commit,
            "stats": self.stats,
        }
