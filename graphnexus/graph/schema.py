"""Kuzu schema for the code knowledge graph.

Separate node tables per code element kind, one generic ``CodeRelation``
edge table whose ``type`` property carries the relationship kind, and an
optional ``CodeEmbedding`` table for semantic search.
"""

from typing import Dict, List, Tuple

from ..config import settings


CORE_SYMBOL_TABLES = ["Function", "Class", "Interface", "Method", "CodeElement"]

# Multi-language symbol kinds; several collide with Kuzu reserved words
LANGUAGE_SYMBOL_TABLES = [
    "Struct", "Enum", "Macro", "Typedef", "Union", "Namespace", "Trait", "Impl",
    "TypeAlias", "Const", "Static", "Property", "Record", "Delegate", "Annotation",
    "Constructor", "Template", "Module",
]

SYMBOL_TABLES = CORE_SYMBOL_TABLES + LANGUAGE_SYMBOL_TABLES

NODE_TABLES = ["File", "Folder"] + CORE_SYMBOL_TABLES + ["Community", "Process"] + LANGUAGE_SYMBOL_TABLES

REL_TABLE_NAME = "CodeRelation"
EMBEDDING_TABLE_NAME = "CodeEmbedding"

REL_TYPES = [
    "CONTAINS", "CALLS", "INHERITS", "OVERRIDES", "IMPORTS", "USES", "DEFINES",
    "DECORATES", "IMPLEMENTS", "EXTENDS", "MEMBER_OF", "STEP_IN_PROCESS",
]

NODE_COLUMNS: Dict[str, List[Tuple[str, str]]] = {
    "File": [("id", "STRING"), ("name", "STRING"), ("filePath", "STRING"), ("content", "STRING")],
    "Folder": [("id", "STRING"), ("name", "STRING"), ("filePath", "STRING")],
    "Community": [
        ("id", "STRING"), ("label", "STRING"), ("heuristicLabel", "STRING"),
        ("keywords", "STRING[]"), ("description", "STRING"), ("enrichedBy", "STRING"),
        ("cohesion", "DOUBLE"), ("symbolCount", "INT32"),
    ],
    "Process": [
        ("id", "STRING"), ("label", "STRING"), ("heuristicLabel", "STRING"),
        ("processType", "STRING"), ("stepCount", "INT32"), ("communities", "STRING[]"),
        ("entryPointId", "STRING"), ("terminalId", "STRING"),
    ],
}

SYMBOL_COLUMNS: List[Tuple[str, str]] = [
    ("id", "STRING"), ("name", "STRING"), ("filePath", "STRING"),
    ("startLine", "INT64"), ("endLine", "INT64"), ("content", "STRING"),
    ("description", "STRING"),
]

for _table in SYMBOL_TABLES:
    NODE_COLUMNS[_table] = SYMBOL_COLUMNS


def escape_table_name(table: str) -> str:
    """Backtick-quote table names that Kuzu would parse as keywords."""
    if table in LANGUAGE_SYMBOL_TABLES:
        return f"`{table}`"
    return table


def label_from_id(node_id: str) -> str:
    """Derive a node's table from its id.

    Ids are ``Label:path[:name]`` except the synthetic ``comm_*`` and
    ``proc_*`` ids of communities and processes.
    """
    if node_id.startswith("comm_"):
        return "Community"
    if node_id.startswith("proc_"):
        return "Process"
    return node_id.split(":", 1)[0]


def column_names(table: str) -> List[str]:
    """Get the ordered column names of a node table."""
    return [name for name, _ in NODE_COLUMNS[table]]


def node_table_ddl(table: str) -> str:
    columns = ", ".join(f"{name} {col_type}" for name, col_type in NODE_COLUMNS[table])
    return f"CREATE NODE TABLE {escape_table_name(table)} ({columns}, PRIMARY KEY (id))"


def relation_pairs() -> List[Tuple[str, str]]:
    """Allowed FROM/TO table pairs of the CodeRelation table."""
    pairs = []
    for target in ["File", "Folder"] + SYMBOL_TABLES:
        pairs.append(("File", target))
    pairs.append(("Folder", "Folder"))
    pairs.append(("Folder", "File"))
    for source in SYMBOL_TABLES:
        for target in SYMBOL_TABLES + ["Community", "Process"]:
            pairs.append((source, target))
    return pairs


def relation_table_ddl() -> str:
    pairs = ", ".join(
        f"FROM {escape_table_name(source)} TO {escape_table_name(target)}"
        for source, target in relation_pairs()
    )
    return (
        f"CREATE REL TABLE {REL_TABLE_NAME} ({pairs}, "
        "type STRING, confidence DOUBLE, reason STRING, step INT32)"
    )


def embedding_table_ddl(dimension: int = None) -> str:
    dimension = dimension or settings.embedding_dimension
    return (
        f"CREATE NODE TABLE {EMBEDDING_TABLE_NAME} "
        f"(nodeId STRING, embedding FLOAT[{dimension}], PRIMARY KEY (nodeId))"
    )


def schema_queries(embedding_dimension: int = None) -> List[str]:
    """All DDL statements, node tables first."""
    queries = [node_table_ddl(table) for table in NODE_TABLES]
    queries.append(relation_table_ddl())
    queries.append(embedding_table_ddl(embedding_dimension))
    return queries
