import csv
import os
import re
import shutil
import tempfile
from pathlib import Path
from typing import List, Dict, Any, Optional, Sequence, Tuple

import kuzu

from ..config import settings
from ..errors import NotInitializedError
from ..types import GraphNode, GraphRelationship, RelationshipLoadResult
from ..utils.logger import app_logger
from .schema import (
    EMBEDDING_TABLE_NAME,
    NODE_COLUMNS,
    NODE_TABLES,
    REL_TABLE_NAME,
    column_names,
    escape_table_name,
    label_from_id,
    schema_queries,
)

LIST_COLUMNS = {"keywords", "communities"}
INT32_COLUMNS = {"symbolCount", "stepCount"}
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f\ud800-\udfff\ufffe\uffff]")


def normalize_row(row: Any, columns: Sequence[str]) -> Dict[str, Any]:
    """Turn a named or positional result row into a column-keyed record."""
    if isinstance(row, dict):
        return dict(row)
    return {column: value for column, value in zip(columns, row)}


def _sanitize_text(value: str) -> str:
    value = value.replace("\r\n", "\n").replace("\r", "\n")
    return _CONTROL_CHARS.sub("", value)


class KuzuAdapter:
    """Embedded Kuzu graph store for a single repository.

    One adapter owns one connection. Kuzu connections must not receive
    overlapping statements, so callers go through ``ConnectionPool`` which
    serializes access per repository.
    """

    def __init__(self, db_path: str, repo_id: Optional[str] = None,
                 embedding_dimension: Optional[int] = None):
        self.logger = app_logger.bind(component="kuzu_adapter")
        self.db_path = str(db_path)
        self.repo_id = repo_id or self.db_path
        self.embedding_dimension = embedding_dimension or settings.embedding_dimension
        self.db = None
        self.conn = None
        self._extensions = set()

    @property
    def is_open(self) -> bool:
        return self.conn is not None

    def open(self) -> "KuzuAdapter":
        """Open the database, creating it and its schema when needed."""
        if self.conn is not None:
            return self

        path = Path(self.db_path)
        if path.is_dir() and not any(path.iterdir()):
            # Kuzu refuses to create a database inside an existing empty directory
            shutil.rmtree(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        try:
            self.db = kuzu.Database(self.db_path)
            self.conn = kuzu.Connection(self.db)
            self.logger.info(f"Opened graph store at {self.db_path}")
        except Exception as e:
            self.logger.error(f"Failed to open graph store at {self.db_path}: {e}")
            self.db = None
            self.conn = None
            raise

        self._ensure_schema()
        return self

    def _ensure_schema(self):
        """Apply every schema statement, tolerating existing tables."""
        for statement in schema_queries(self.embedding_dimension):
            try:
                self.conn.execute(statement)
            except Exception as e:
                if "already exists" in str(e).lower():
                    continue
                self.logger.warning(f"Schema statement failed: {e}")

    def close(self):
        """Close the connection and database handle."""
        if self.conn is None:
            return
        try:
            self.conn.close()
            self.db.close()
        finally:
            self.conn = None
            self.db = None
            self._extensions = set()
            self.logger.info(f"Closed graph store at {self.db_path}")

    def load_extension(self, name: str) -> bool:
        """Install and load a Kuzu extension once per connection."""
        self._require_connection()
        if name in self._extensions:
            return True
        try:
            self.conn.execute(f"INSTALL {name}")
        except Exception as e:
            self.logger.debug(f"INSTALL {name} failed, trying to load a local copy: {e}")
        try:
            self.conn.execute(f"LOAD EXTENSION {name}")
        except Exception as e:
            if "already loaded" not in str(e).lower():
                self.logger.warning(f"Could not load extension {name}: {e}")
                return False
        self._extensions.add(name)
        return True

    def _require_connection(self):
        if self.conn is None:
            raise NotInitializedError(self.repo_id)

    def query(self, cypher: str, parameters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Run a Cypher query and return field-keyed records."""
        self._require_connection()
        result = self.conn.execute(cypher, parameters or {})
        if isinstance(result, list):
            # Multi-statement input yields one result per statement
            result = result[-1]
        columns = result.get_column_names()
        records = []
        while result.has_next():
            records.append(normalize_row(result.get_next(), columns))
        return records

    def execute_batched(self, cypher: str, params_list: List[Dict[str, Any]],
                        batch_size: Optional[int] = None) -> int:
        """Execute one parameterized statement for many parameter sets.

        Each sub-batch runs in its own transaction. A failing sub-batch is
        rolled back, logged and skipped. Returns the number of parameter sets
        that were committed.
        """
        self._require_connection()
        if not params_list:
            return 0

        batch_size = batch_size or settings.batch_size
        executed = 0

        for start in range(0, len(params_list), batch_size):
            batch = params_list[start:start + batch_size]
            try:
                self.conn.execute("BEGIN TRANSACTION")
                for params in batch:
                    self.conn.execute(cypher, params)
                self.conn.execute("COMMIT")
                executed += len(batch)
            except Exception as e:
                self.logger.warning(
                    f"Batch starting at {start} failed, skipping {len(batch)} statements: {e}"
                )
                self._rollback()

        return executed

    def _rollback(self):
        try:
            self.conn.execute("ROLLBACK")
        except Exception as e:
            # Kuzu already rolls back on a failed statement
            self.logger.debug(f"No transaction to roll back: {e}")

    def bulk_load_nodes(self, label: str, rows: List[Dict[str, Any]]) -> int:
        """Bulk import all nodes of one table via a single COPY.

        Tables with list columns, and any table whose COPY is rejected, go
        through batched parameterized inserts instead.
        """
        self._require_connection()
        if label not in NODE_COLUMNS:
            raise ValueError(f"Unknown node table: {label}")
        if not rows:
            self.logger.debug(f"No {label} rows to load, skipping")
            return 0

        columns = column_names(label)
        if LIST_COLUMNS.intersection(columns):
            # COPY has no escaping inside list literals
            return self._insert_rows(label, columns, rows)

        fd, csv_path = tempfile.mkstemp(prefix=f"graphnexus_{label.lower()}_", suffix=".csv")
        try:
            with os.fdopen(fd, "w", newline="", encoding="utf-8") as handle:
                writer = csv.writer(handle, quoting=csv.QUOTE_ALL, lineterminator="\n")
                writer.writerow(columns)
                for row in rows:
                    writer.writerow([self._csv_value(column, row.get(column)) for column in columns])

            copy_query = (
                f"COPY {escape_table_name(label)} "
                f"FROM \"{Path(csv_path).as_posix()}\" "
                "(HEADER=true, ESCAPE='\"', DELIM=',', QUOTE='\"', PARALLEL=false)"
            )
            try:
                self.conn.execute(copy_query)
                self.logger.info(f"Loaded {len(rows)} {label} nodes")
                return len(rows)
            except Exception as e:
                self.logger.warning(f"COPY into {label} failed, inserting row by row: {e}")
                return self._insert_rows(label, columns, rows)
        finally:
            if os.path.exists(csv_path):
                os.remove(csv_path)

    def _insert_rows(self, label: str, columns: List[str], rows: List[Dict[str, Any]]) -> int:
        assignments = ", ".join(self._assignment(column) for column in columns)
        cypher = f"CREATE (n:{escape_table_name(label)} {{{assignments}}})"
        params_list = [
            {column: self._param_value(column, row.get(column)) for column in columns}
            for row in rows
        ]
        loaded = self.execute_batched(cypher, params_list)
        self.logger.info(f"Inserted {loaded}/{len(rows)} {label} nodes")
        return loaded

    @staticmethod
    def _assignment(column: str) -> str:
        if column in INT32_COLUMNS:
            return f"{column}: CAST(${column} AS INT32)"
        return f"{column}: ${column}"

    @staticmethod
    def _csv_value(column: str, value: Any) -> str:
        if value is None:
            if column in ("startLine", "endLine"):
                return "-1"
            if column in ("cohesion", "symbolCount", "stepCount"):
                return "0"
            return ""
        return _sanitize_text(str(value))

    @staticmethod
    def _param_value(column: str, value: Any) -> Any:
        if column in LIST_COLUMNS:
            return [str(item) for item in value] if value else None
        if value is None:
            if column in ("startLine", "endLine"):
                return -1
            if column == "cohesion":
                return 0.0
            if column in INT32_COLUMNS:
                return 0
            return ""
        if isinstance(value, str):
            return _sanitize_text(value)
        return value

    def create_relationship(self, source_id: str, target_id: str, relationship_type: str,
                            confidence: float = 1.0, reason: str = "",
                            step: Optional[int] = None) -> RelationshipLoadResult:
        """Insert one CodeRelation edge between existing nodes.

        Failures are counted, never raised.
        """
        self._require_connection()
        source_table = label_from_id(source_id)
        target_table = label_from_id(target_id)
        if source_table not in NODE_COLUMNS or target_table not in NODE_COLUMNS:
            self.logger.debug(f"Skipping edge with unknown endpoint table: {source_id} -> {target_id}")
            return RelationshipLoadResult(skipped_count=1)

        cypher = (
            f"MATCH (a:{escape_table_name(source_table)} {{id: $source_id}}), "
            f"(b:{escape_table_name(target_table)} {{id: $target_id}}) "
            f"CREATE (a)-[r:{REL_TABLE_NAME} {{type: $type, confidence: $confidence, "
            "reason: $reason, step: CAST($step AS INT32)}]->(b) "
            "RETURN count(r) AS created"
        )
        params = {
            "source_id": source_id,
            "target_id": target_id,
            "type": relationship_type,
            "confidence": float(confidence),
            "reason": reason or "",
            "step": int(step) if step is not None else 0,
        }
        try:
            records = self.query(cypher, params)
        except Exception as e:
            self.logger.debug(f"Failed to create edge {source_id} -> {target_id}: {e}")
            return RelationshipLoadResult(skipped_count=1)

        created = int(records[0]["created"]) if records else 0
        if created == 0:
            self.logger.debug(f"Edge endpoint missing: {source_id} -> {target_id}")
            return RelationshipLoadResult(skipped_count=1)
        return RelationshipLoadResult(inserted_count=created)

    def create_relationships(self, relationships: List[GraphRelationship]) -> RelationshipLoadResult:
        """Insert edges one at a time, isolating each failure."""
        total = RelationshipLoadResult()
        for rel in relationships:
            total = total.merge(self.create_relationship(
                rel.source_id, rel.target_id, rel.type,
                rel.confidence, rel.reason, rel.step,
            ))
        if total.skipped_count:
            self.logger.warning(
                f"Skipped {total.skipped_count} of {len(relationships)} relationships"
            )
        self.logger.info(f"Inserted {total.inserted_count} relationships")
        return total

    def store_embeddings(self, embeddings: List[Tuple[str, List[float]]]) -> int:
        """Persist node embeddings into the CodeEmbedding table."""
        cypher = (
            f"CREATE (e:{EMBEDDING_TABLE_NAME} {{nodeId: $nodeId, "
            f"embedding: CAST($embedding AS FLOAT[{self.embedding_dimension}])}})"
        )
        params_list = [
            {"nodeId": node_id, "embedding": [float(x) for x in vector]}
            for node_id, vector in embeddings
        ]
        return self.execute_batched(cypher, params_list)

    def stats(self) -> Dict[str, int]:
        """Count nodes across all node tables and all CodeRelation edges."""
        self._require_connection()
        nodes = 0
        for table in NODE_TABLES:
            try:
                records = self.query(f"MATCH (n:{escape_table_name(table)}) RETURN count(n) AS cnt")
                nodes += int(records[0]["cnt"]) if records else 0
            except Exception as e:
                self.logger.debug(f"Could not count {table}: {e}")

        edges = 0
        try:
            records = self.query(f"MATCH ()-[r:{REL_TABLE_NAME}]->() RETURN count(r) AS cnt")
            edges = int(records[0]["cnt"]) if records else 0
        except Exception as e:
            self.logger.debug(f"Could not count relationships: {e}")

        return {"nodes": nodes, "edges": edges}

    def build_graph(self) -> Dict[str, List[Dict[str, Any]]]:
        """Get every node (without file content) and relationship."""
        nodes = []
        for table in NODE_TABLES:
            try:
                records = self.query(f"MATCH (n:{escape_table_name(table)}) RETURN n")
            except Exception as e:
                self.logger.debug(f"Could not read {table}: {e}")
                continue
            for record in records:
                properties = {
                    key: value for key, value in record["n"].items()
                    if not key.startswith("_") and key != "content"
                }
                nodes.append(GraphNode(id=properties["id"], label=table, properties=properties))

        relationships = []
        try:
            records = self.query(
                f"MATCH (a)-[r:{REL_TABLE_NAME}]->(b) "
                "RETURN a.id AS sourceId, b.id AS targetId, r.type AS type, "
                "r.confidence AS confidence, r.reason AS reason, r.step AS step"
            )
        except Exception as e:
            self.logger.warning(f"Could not read relationships: {e}")
            records = []

        for record in records:
            relationships.append(GraphRelationship(
                id=f"{record['sourceId']}_{record['type']}_{record['targetId']}",
                source_id=record["sourceId"],
                target_id=record["targetId"],
                type=record["type"],
                confidence=record["confidence"],
                reason=record["reason"] or "",
                step=record["step"] or None,
            ))

        return {
            "nodes": [node.to_dict() for node in nodes],
            "relationships": [rel.to_dict() for rel in relationships],
        }
