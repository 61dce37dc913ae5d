from typing import List, Dict, Any, Tuple

from ..config import settings
from ..types import FullTextResult
from ..utils.logger import app_logger


# Queried in this order, one after another on the same connection
FTS_INDEXES: List[Tuple[str, str]] = [
    ("File", "file_fts"),
    ("Function", "function_fts"),
    ("Class", "class_fts"),
    ("Method", "method_fts"),
    ("Interface", "interface_fts"),
]

FTS_FIELDS = ["name", "content"]


class FullTextSearch:
    """Keyword search over the store's per-table full-text indexes."""

    def __init__(self, adapter):
        self.logger = app_logger.bind(component="full_text_search")
        self.adapter = adapter

    def create_indexes(self) -> int:
        """Create the full-text indexes. Returns how many were created."""
        self.adapter.load_extension("fts")
        created = 0
        fields = ", ".join(f"'{name}'" for name in FTS_FIELDS)
        for table, index_name in FTS_INDEXES:
            try:
                self.adapter.query(
                    f"CALL CREATE_FTS_INDEX('{table}', '{index_name}', [{fields}], "
                    f"stemmer := '{settings.fts_stemmer}')"
                )
                created += 1
            except Exception as e:
                if "already exists" in str(e).lower():
                    continue
                self.logger.warning(f"Failed to create full-text index {index_name}: {e}")
        self.logger.info(f"Created {created} full-text indexes")
        return created

    def _query_table(self, table: str, index_name: str, query: str, limit: int) -> List[Dict[str, Any]]:
        """Query one index; any failure yields no hits."""
        cypher = (
            f"CALL QUERY_FTS_INDEX('{table}', '{index_name}', $query, conjunctive := false) "
            "RETURN node.filePath AS filePath, score "
            f"ORDER BY score DESC LIMIT {int(limit)}"
        )
        try:
            records = self.adapter.query(cypher, {"query": query})
        except Exception as e:
            self.logger.debug(f"Full-text query on {table} failed: {e}")
            return []

        hits = []
        for record in records:
            try:
                score = float(record.get("score") or 0)
            except (TypeError, ValueError):
                score = 0.0
            hits.append({"filePath": record.get("filePath") or "", "score": score})
        return hits

    def search(self, query: str, limit: int = 20) -> List[FullTextResult]:
        """Search all indexes and merge hits per file by summing scores."""
        self.adapter.load_extension("fts")
        merged: Dict[str, float] = {}
        for table, index_name in FTS_INDEXES:
            for hit in self._query_table(table, index_name, query, limit):
                merged[hit["filePath"]] = merged.get(hit["filePath"], 0.0) + hit["score"]

        ordered = sorted(merged.items(), key=lambda item: item[1], reverse=True)[:limit]
        return [
            FullTextResult(file_path=file_path, score=score, rank=rank + 1)
            for rank, (file_path, score) in enumerate(ordered)
        ]
