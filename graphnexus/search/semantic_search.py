from typing import List, Dict, Any, Callable, Optional

import numpy as np

from ..embedding.embedding_service import EMBEDDABLE_LABELS, EmbeddingService, generate_node_text
from ..graph.schema import EMBEDDING_TABLE_NAME, escape_table_name, label_from_id
from ..types import SemanticResult
from ..utils.logger import app_logger


SemanticFn = Callable[[str, int], List[SemanticResult]]


class SemanticSearch:
    """Nearest-neighbour search over stored node embeddings."""

    def __init__(self, adapter, embedding_service: EmbeddingService, embed_batch_size: int = 32):
        self.logger = app_logger.bind(component="semantic_search")
        self.adapter = adapter
        self.embedding_service = embedding_service
        self.embed_batch_size = embed_batch_size

    def embedding_count(self) -> int:
        try:
            records = self.adapter.query(f"MATCH (e:{EMBEDDING_TABLE_NAME}) RETURN count(e) AS cnt")
            return int(records[0]["cnt"]) if records else 0
        except Exception as e:
            self.logger.debug(f"Could not count embeddings: {e}")
            return 0

    def is_ready(self) -> bool:
        """Whether an embedding provider is configured and vectors are stored."""
        return self.embedding_service.is_ready() and self.embedding_count() > 0

    def embed_nodes(self) -> int:
        """Embed every embeddable node in the store. Returns vectors stored."""
        if not self.embedding_service.is_ready():
            self.logger.info("No embedding provider configured, skipping embeddings")
            return 0

        nodes = []
        for label in EMBEDDABLE_LABELS:
            try:
                records = self.adapter.query(
                    f"MATCH (n:{escape_table_name(label)}) "
                    "RETURN n.id AS id, n.name AS name, n.filePath AS filePath, n.content AS content"
                )
            except Exception as e:
                self.logger.warning(f"Could not read {label} nodes for embedding: {e}")
                continue
            nodes.extend((label, record) for record in records)

        stored = 0
        for start in range(0, len(nodes), self.embed_batch_size):
            batch = nodes[start:start + self.embed_batch_size]
            texts = [generate_node_text(label, record) for label, record in batch]
            try:
                vectors = self.embedding_service.embed_texts(texts)
            except Exception as e:
                self.logger.warning(f"Embedding batch at {start} failed: {e}")
                continue
            stored += self.adapter.store_embeddings(
                [(record["id"], vector) for (_, record), vector in zip(batch, vectors)]
            )

        self.logger.info(f"Stored {stored} embeddings for {len(nodes)} nodes")
        return stored

    def _node_details(self, node_id: str) -> Optional[Dict[str, Any]]:
        label = label_from_id(node_id)
        if label not in EMBEDDABLE_LABELS:
            return None
        lines = "" if label == "File" else ", n.startLine AS startLine, n.endLine AS endLine"
        records = self.adapter.query(
            f"MATCH (n:{escape_table_name(label)} {{id: $id}}) "
            f"RETURN n.name AS name, n.filePath AS filePath{lines}",
            {"id": node_id},
        )
        if not records:
            return None
        details = records[0]
        details["label"] = label
        return details

    def search(self, query: str, k: int = 10) -> List[SemanticResult]:
        """Embed the query and return the k closest nodes by cosine distance."""
        try:
            query_embedding = self.embedding_service.embed_query(query)
            records = self.adapter.query(
                f"MATCH (e:{EMBEDDING_TABLE_NAME}) RETURN e.nodeId AS nodeId, e.embedding AS embedding"
            )
        except Exception as e:
            self.logger.error(f"Error in semantic search: {e}")
            return []

        if not records:
            return []

        distances = self.embedding_service.cosine_distances(
            query_embedding, [record["embedding"] for record in records]
        )
        results = []
        for idx in np.argsort(distances, kind="stable"):
            if len(results) >= k:
                break
            node_id = records[idx]["nodeId"]
            try:
                details = self._node_details(node_id)
            except Exception as e:
                self.logger.debug(f"Could not resolve embedded node {node_id}: {e}")
                continue
            if details is None:
                continue
            start_line = details.get("startLine")
            end_line = details.get("endLine")
            results.append(SemanticResult(
                file_path=details.get("filePath") or "",
                distance=float(distances[idx]),
                node_id=node_id,
                name=details.get("name") or "",
                label=details["label"],
                start_line=start_line if start_line is not None and start_line >= 0 else None,
                end_line=end_line if end_line is not None and end_line >= 0 else None,
            ))
        return results

    def as_function(self) -> SemanticFn:
        """Expose search as a plain ``(query, k)`` callable."""
        return self.search
