from abc import ABC, abstractmethod
from typing import List, Dict, Optional

from ..config import settings
from ..types import FullTextResult, HybridResult, SemanticResult
from ..utils.logger import app_logger
from .full_text import FullTextSearch
from .semantic_search import SemanticFn


class FusionStrategy(ABC):
    """Combines a lexical and a semantic ranking into one ordering.

    Subclasses only assign a fused score per file. Ordering is shared: score
    descending, ties broken by lexical rank (files without a lexical hit go
    last), then by file path, so the output is a pure function of the inputs.
    """

    name = "fusion"

    @abstractmethod
    def fused_scores(self, lexical: List[FullTextResult],
                     semantic: List[SemanticResult]) -> Dict[str, float]:
        """Map each file path to its fused score."""

    def fuse(self, lexical: List[FullTextResult], semantic: List[SemanticResult],
             limit: int) -> List[HybridResult]:
        semantic = _unique_files(semantic)
        scores = self.fused_scores(lexical, semantic)

        lexical_by_path = {r.file_path: r for r in lexical}
        semantic_by_path = {r.file_path: r for r in semantic}
        lexical_rank = {r.file_path: position for position, r in enumerate(lexical)}

        ordered = sorted(
            scores,
            key=lambda path: (-scores[path], lexical_rank.get(path, len(lexical)), path),
        )

        results = []
        for rank, path in enumerate(ordered[:limit]):
            lexical_hit = lexical_by_path.get(path)
            semantic_hit = semantic_by_path.get(path)
            sources = []
            if lexical_hit is not None:
                sources.append("bm25")
            if semantic_hit is not None:
                sources.append("semantic")
            results.append(HybridResult(
                file_path=path,
                score=scores[path],
                rank=rank + 1,
                sources=sources,
                bm25_score=lexical_hit.score if lexical_hit else None,
                semantic_score=1 - semantic_hit.distance if semantic_hit else None,
                node_id=semantic_hit.node_id if semantic_hit else None,
                name=semantic_hit.name if semantic_hit else None,
                label=semantic_hit.label if semantic_hit else None,
                start_line=semantic_hit.start_line if semantic_hit else None,
                end_line=semantic_hit.end_line if semantic_hit else None,
            ))
        return results


class ReciprocalRankFusion(FusionStrategy):
    """Sum of 1 / (k + rank) over every ranking a file appears in."""

    name = "rrf"

    def __init__(self, k: int = 60):
        self.k = k

    def fused_scores(self, lexical, semantic):
        scores: Dict[str, float] = {}
        for ranking in (lexical, semantic):
            for position, result in enumerate(ranking):
                scores[result.file_path] = scores.get(result.file_path, 0.0) + 1 / (self.k + position + 1)
        return scores


class WeightedScoreFusion(FusionStrategy):
    """Weighted sum of min-max normalized lexical and semantic scores."""

    name = "weighted"

    def __init__(self, lexical_weight: float = 0.4, semantic_weight: float = 0.6):
        self.lexical_weight = lexical_weight
        self.semantic_weight = semantic_weight

    @staticmethod
    def _normalize(scores: List[float]) -> List[float]:
        if not scores:
            return []
        min_score = min(scores)
        max_score = max(scores)
        if max_score == min_score:
            return [1.0] * len(scores)
        return [(s - min_score) / (max_score - min_score) for s in scores]

    def fused_scores(self, lexical, semantic):
        scores: Dict[str, float] = {}
        lexical_norm = self._normalize([r.score for r in lexical])
        semantic_norm = self._normalize([1 - r.distance for r in semantic])

        for result, value in zip(lexical, lexical_norm):
            scores[result.file_path] = scores.get(result.file_path, 0.0) + value * self.lexical_weight
        for result, value in zip(semantic, semantic_norm):
            scores[result.file_path] = scores.get(result.file_path, 0.0) + value * self.semantic_weight
        return scores


def _unique_files(results: List[SemanticResult]) -> List[SemanticResult]:
    """Keep the closest hit per file, preserving order."""
    seen = set()
    unique = []
    for result in results:
        if result.file_path in seen:
            continue
        seen.add(result.file_path)
        unique.append(result)
    return unique


def create_fusion_strategy(name: Optional[str] = None) -> FusionStrategy:
    """Build the configured fusion strategy."""
    name = name or settings.fusion_strategy
    if name == "rrf":
        return ReciprocalRankFusion(k=settings.rrf_k)
    if name == "weighted":
        return WeightedScoreFusion(settings.lexical_weight, settings.semantic_weight)
    raise ValueError(f"Unsupported fusion strategy: {name}")


class HybridSearch:
    """Lexical search, fused with semantic search when it is available."""

    def __init__(self, full_text: FullTextSearch, semantic=None,
                 strategy: Optional[FusionStrategy] = None):
        self.logger = app_logger.bind(component="hybrid_search")
        self.full_text = full_text
        self.semantic = semantic
        self.strategy = strategy or create_fusion_strategy()

    def semantic_ready(self) -> bool:
        if self.semantic is None:
            return False
        try:
            return bool(self.semantic.is_ready())
        except Exception as e:
            self.logger.warning(f"Semantic readiness check failed: {e}")
            return False

    def search(self, query: str, limit: int = 10,
               semantic_fn: Optional[SemanticFn] = None) -> List[HybridResult]:
        """Perform hybrid search.

        ``semantic_fn(query, k)`` supplies the semantic ranking. It defaults to
        the semantic component's own search; without a semantic component an
        injected function is taken as ready.
        """
        if self.semantic is not None:
            ready = self.semantic_ready()
            semantic_fn = semantic_fn or self.semantic.search
        else:
            ready = semantic_fn is not None

        if not ready:
            lexical = self.full_text.search(query, limit)
            return [
                HybridResult(
                    file_path=r.file_path,
                    score=r.score,
                    rank=r.rank,
                    sources=["bm25"],
                    bm25_score=r.score,
                )
                for r in lexical
            ]

        self.logger.debug(f"Hybrid search ({self.strategy.name}) for: {query}")
        lexical = self.full_text.search(query, limit * 2)
        try:
            semantic = semantic_fn(query, limit * 2)
        except Exception as e:
            self.logger.error(f"Error in semantic search: {e}")
            semantic = []
        return self.strategy.fuse(lexical, semantic, limit)


def format_hybrid_results(results: List[HybridResult]) -> str:
    """Render results as numbered text blocks."""
    if not results:
        return "No results found."

    blocks = []
    for i, result in enumerate(results, 1):
        location = f" (lines {result.start_line}-{result.end_line})" if result.start_line else ""
        label = f"{result.label}: " if result.label else "File: "
        name = result.name or result.file_path.split("/")[-1] or result.file_path
        blocks.append(
            f"[{i}] {label}{name}\n"
            f"    File: {result.file_path}{location}\n"
            f"    Found by: {' + '.join(result.sources)}\n"
            f"    Relevance: {result.score:.4f}"
        )
    return f"Found {len(results)} results:\n\n" + "\n\n".join(blocks)
