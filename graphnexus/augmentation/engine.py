"""Fast-path enrichment of search patterns with knowledge graph context.

Called from agent hook scripts before a grep/glob style tool runs, so it
uses lexical search only and returns an empty string instead of raising.
Community cohesion orders the symbols but is never part of the output.
"""

import os
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional

from ..graph.connection_pool import ConnectionPool
from ..search.full_text import FullTextSearch
from ..storage.repo_manager import RepoManager
from ..utils.logger import app_logger

MIN_PATTERN_LENGTH = 3
SEARCH_LIMIT = 10
TOP_FILES = 5
SYMBOLS_PER_FILE = 3
TOP_SYMBOLS = 5
NEIGHBOR_LIMIT = 3
HEADER = "[GraphNexus]"


@dataclass
class EnrichedSymbol:
    node_id: str
    name: str
    file_path: str
    callers: List[str] = field(default_factory=list)
    callees: List[str] = field(default_factory=list)
    processes: List[str] = field(default_factory=list)
    cohesion: float = 0.0


class AugmentationEngine:
    """Turns a search pattern into callers, callees and flows of matching symbols."""

    def __init__(self, repo_manager: RepoManager, pool: ConnectionPool):
        self.logger = app_logger.bind(component="augmentation")
        self.repo_manager = repo_manager
        self.pool = pool

    def augment(self, pattern: str, cwd: Optional[str] = None) -> str:
        """Return graph context for ``pattern``, or "" when there is none."""
        if not pattern or len(pattern) < MIN_PATTERN_LENGTH:
            return ""
        try:
            repo = self.repo_manager.find_repo_for_path(cwd or os.getcwd())
            if repo is None:
                return ""
            with self.pool.acquire(repo.repo_id, repo.kuzu_path) as adapter:
                symbols = self._enrich(adapter, pattern)
            return self.render(symbols)
        except Exception as e:
            self.logger.debug(f"Augmentation failed for '{pattern}': {e}")
            return ""

    def _enrich(self, adapter, pattern: str) -> List[EnrichedSymbol]:
        hits = FullTextSearch(adapter).search(pattern, SEARCH_LIMIT)
        if not hits:
            return []

        token = pattern.split()[0]
        matches = []
        for hit in hits[:TOP_FILES]:
            matches.extend(self._guarded(adapter, (
                "MATCH (n) WHERE n.filePath = $filePath AND n.name CONTAINS $token "
                f"RETURN n.id AS id, n.name AS name, n.filePath AS filePath LIMIT {SYMBOLS_PER_FILE}"
            ), {"filePath": hit.file_path, "token": token}))

        enriched = []
        seen = set()
        for match in matches[:TOP_SYMBOLS]:
            node_id = match.get("id")
            if not node_id or node_id in seen:
                continue
            seen.add(node_id)
            enriched.append(self._enrich_symbol(adapter, match))

        enriched.sort(key=lambda symbol: symbol.cohesion, reverse=True)
        return enriched

    def _enrich_symbol(self, adapter, match: Dict[str, Any]) -> EnrichedSymbol:
        params = {"id": match["id"]}
        symbol = EnrichedSymbol(
            node_id=match["id"],
            name=match.get("name") or "",
            file_path=match.get("filePath") or "",
        )

        callers = self._guarded(adapter, (
            "MATCH (caller)-[:CodeRelation {type: 'CALLS'}]->(n {id: $id}) "
            f"RETURN caller.name AS name LIMIT {NEIGHBOR_LIMIT}"
        ), params)
        symbol.callers = [row["name"] for row in callers if row.get("name")]

        callees = self._guarded(adapter, (
            "MATCH (n {id: $id})-[:CodeRelation {type: 'CALLS'}]->(callee) "
            f"RETURN callee.name AS name LIMIT {NEIGHBOR_LIMIT}"
        ), params)
        symbol.callees = [row["name"] for row in callees if row.get("name")]

        processes = self._guarded(adapter, (
            "MATCH (n {id: $id})-[r:CodeRelation {type: 'STEP_IN_PROCESS'}]->(p:Process) "
            "RETURN p.heuristicLabel AS label, r.step AS step, p.stepCount AS stepCount"
        ), params)
        symbol.processes = [
            f"{row['label']} (step {row.get('step')}/{row.get('stepCount')})"
            for row in processes if row.get("label")
        ]

        cohesion = self._guarded(adapter, (
            "MATCH (n {id: $id})-[:CodeRelation {type: 'MEMBER_OF'}]->(c:Community) "
            "RETURN c.cohesion AS cohesion LIMIT 1"
        ), params)
        if cohesion:
            symbol.cohesion = float(cohesion[0].get("cohesion") or 0.0)

        return symbol

    def _guarded(self, adapter, cypher: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Run one lookup; a failure contributes nothing."""
        try:
            return adapter.query(cypher, params)
        except Exception as e:
            self.logger.debug(f"Augmentation query failed: {e}")
            return []

    @staticmethod
    def render(symbols: List[EnrichedSymbol]) -> str:
        if not symbols:
            return ""
        lines = [f"{HEADER} {len(symbols)} related symbols found:", ""]
        for symbol in symbols:
            lines.append(f"{symbol.name} ({symbol.file_path})")
            if symbol.callers:
                lines.append(f"  Called by: {', '.join(symbol.callers)}")
            if symbol.callees:
                lines.append(f"  Calls: {', '.join(symbol.callees)}")
            if symbol.processes:
                lines.append(f"  Flows: {', '.join(symbol.processes)}")
            lines.append("")
        return "\n".join(lines).strip()
