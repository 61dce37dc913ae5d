import re
from typing import List, Dict, Any, Optional

import numpy as np
import requests
from openai import OpenAI

from ..config import settings
from ..utils.logger import app_logger


EMBEDDABLE_LABELS = ["Function", "Class", "Method", "Interface", "File"]


class OllamaEmbeddingProvider:
    """Ollama embedding provider."""

    def __init__(self, host: str = "http://localhost:11434", model: str = "all-minilm",
                 dimension: int = 384):
        self.host = host
        self.model = model
        self.logger = app_logger.bind(component="ollama_embedding")
        self.dimension = dimension
        self.session = requests.Session()

    def embed_text(self, text: str) -> List[float]:
        """Generate embedding for a single text using Ollama."""
        try:
            response = self.session.post(
                f"{self.host}/api/embeddings",
                json={"model": self.model, "prompt": text},
                timeout=30,
            )
            response.raise_for_status()
            return response.json()["embedding"]
        except Exception as e:
            self.logger.error(f"Error generating Ollama embedding: {e}")
            raise

    def embed_texts(self, texts: List[str]) -> List[List[float]]:
        return [self.embed_text(text) for text in texts]

    def get_dimension(self) -> int:
        return self.dimension


class OpenAIEmbeddingProvider:
    """OpenAI embedding provider, truncated to the store's vector width."""

    def __init__(self, api_key: str, model: str = "text-embedding-3-small", dimension: int = 384):
        self.client = OpenAI(api_key=api_key)
        self.model = model
        self.logger = app_logger.bind(component="openai_embedding")
        self.dimension = dimension

    def embed_texts(self, texts: List[str]) -> List[List[float]]:
        """Generate embeddings for multiple texts."""
        try:
            response = self.client.embeddings.create(
                model=self.model,
                input=texts,
                dimensions=self.dimension,
            )
            return [data.embedding for data in response.data]
        except Exception as e:
            self.logger.error(f"Error generating OpenAI embeddings: {e}")
            raise

    def embed_text(self, text: str) -> List[float]:
        return self.embed_texts([text])[0]

    def get_dimension(self) -> int:
        return self.dimension


class EmbeddingService:
    """Embedding generation for semantic search.

    With ``embedding_provider=none`` the service stays unavailable and every
    semantic-aware caller falls back to lexical search.
    """

    def __init__(self, provider=None):
        self.logger = app_logger.bind(component="embedding_service")
        self.provider = provider if provider is not None else self._initialize_provider()
        self.dimension = self.provider.get_dimension() if self.provider else settings.embedding_dimension

    def _initialize_provider(self):
        """Initialize the embedding provider based on configuration."""
        if settings.embedding_provider == "none":
            return None
        if settings.embedding_provider == "ollama":
            return OllamaEmbeddingProvider(
                host=settings.ollama_host,
                model=settings.ollama_model,
                dimension=settings.embedding_dimension,
            )
        if settings.embedding_provider == "openai":
            if not settings.openai_api_key:
                self.logger.warning("OpenAI API key missing, semantic search disabled")
                return None
            return OpenAIEmbeddingProvider(
                api_key=settings.openai_api_key,
                model=settings.openai_model,
                dimension=settings.embedding_dimension,
            )
        raise ValueError(f"Unsupported embedding provider: {settings.embedding_provider}")

    def is_ready(self) -> bool:
        return self.provider is not None

    def embed_text(self, text: str) -> List[float]:
        """Generate embedding for a single text."""
        return self.provider.embed_text(text)

    def embed_texts(self, texts: List[str]) -> List[List[float]]:
        """Generate embeddings for multiple texts."""
        return self.provider.embed_texts(texts)

    def embed_query(self, query: str) -> List[float]:
        """Generate embedding for a search query."""
        return self.embed_text(query)

    def get_dimension(self) -> int:
        return self.dimension

    @staticmethod
    def cosine_distances(query_embedding: List[float], document_embeddings) -> np.ndarray:
        """Cosine distance (1 - similarity) of each document to the query."""
        query_np = np.asarray(query_embedding, dtype=np.float32)
        doc_np = np.asarray(document_embeddings, dtype=np.float32)
        if doc_np.size == 0:
            return np.zeros(0, dtype=np.float32)

        norms = np.linalg.norm(doc_np, axis=1) * np.linalg.norm(query_np)
        norms[norms == 0] = 1e-12
        similarities = doc_np @ query_np / norms
        return 1.0 - similarities


def generate_node_text(label: str, properties: Dict[str, Any], max_snippet: int = 500) -> str:
    """Build the text that represents a code node for embedding."""
    file_path = properties.get("filePath") or ""
    parts = [f"{label}: {properties.get('name') or ''}"]
    if file_path:
        directory, _, file_name = file_path.rpartition("/")
        parts.append(f"File: {file_name}")
        if directory:
            parts.append(f"Directory: {directory}")

    content: Optional[str] = properties.get("content")
    if content:
        content = re.sub(r"\n{3,}", "\n\n", content.replace("\r\n", "\n")).strip()
        if len(content) > max_snippet:
            content = content[:max_snippet] + "..."
        parts.append("")
        parts.append(content)
    return "\n".join(parts)
