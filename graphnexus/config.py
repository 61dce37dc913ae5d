from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="GRAPHNEXUS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage Configuration
    home_dir: str = Field(default="~/.graphnexus")
    registry_file_name: str = Field(default="registry.json")
    meta_file_name: str = Field(default="meta.json")

    # Graph Store Configuration
    batch_size: int = Field(default=4)
    fts_stemmer: str = Field(default="porter")

    # Search Configuration
    search_limit: int = Field(default=10)
    fusion_strategy: str = Field(default="rrf")
    rrf_k: int = Field(default=60)
    lexical_weight: float = Field(default=0.4)
    semantic_weight: float = Field(default=0.6)

    # Embedding Service Configuration
    embedding_provider: str = Field(default="none")
    embedding_dimension: int = Field(default=384)
    openai_api_key: Optional[str] = Field(default=None)
    openai_model: str = Field(default="text-embedding-3-small")
    ollama_host: str = Field(default="http://localhost:11434")
    ollama_model: str = Field(default="all-minilm")

    # Server Configuration
    api_host: str = Field(default="127.0.0.1")
    api_port: int = Field(default=4747)
    mcp_host: str = Field(default="127.0.0.1")
    mcp_port: int = Field(default=4748)

    # Logging Configuration
    log_level: str = Field(default="INFO")
    log_file: Optional[str] = Field(default=None)

    @property
    def home_path(self) -> Path:
        """Get the global GraphNexus directory."""
        return Path(self.home_dir).expanduser()

    @property
    def repos_dir(self) -> Path:
        """Get the directory holding per-repository storage."""
        return self.home_path / "repos"

    @property
    def registry_path(self) -> Path:
        """Get the global registry file path."""
        return self.home_path / self.registry_file_name

    @property
    def log_path(self) -> Path:
        """Get log file path."""
        if self.log_file:
            return Path(self.log_file).expanduser()
        return self.home_path / "logs" / "graphnexus.log"

    def ensure_directories(self):
        """Ensure necessary directories exist."""
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self.repos_dir.mkdir(parents=True, exist_ok=True)


settings = Settings()
