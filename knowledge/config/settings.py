"""
Configuration settings for the knowledge core.

This module uses Pydantic Settings to manage configuration from environment
variables and .env files with validation and type safety. Settings are read
at bootstrap only; pipeline components receive explicit values (for example
TextSplitterOptions via ChunkingSettings.as_options()).
"""

from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING, Literal

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from knowledge.ingestion.textsplitter import TextSplitterOptions


class EmbeddingSettings(BaseSettings):
    """Embedding provider configuration."""

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    embedding_provider: Literal["openai", "ollama", "huggingface"] = Field(
        default="openai",
        description="Embedding provider name",
    )
    embedding_model: str = Field(
        default="",
        description="Embedding model name (empty selects the provider default)",
    )
    openai_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="OpenAI API key",
    )
    openai_base_url: str = Field(
        default="",
        description="Base URL of an OpenAI-compatible API (empty for api.openai.com)",
    )
    openai_dimensions: int | None = Field(
        default=None,
        ge=1,
        description="Requested embedding dimensions (text-embedding-3 models only)",
    )
    ollama_base_url: str = Field(
        default="http://localhost:11434",
        description="Ollama base URL for embeddings",
    )
    huggingface_device: str = Field(
        default="cpu",
        description="Torch device for local HuggingFace models",
    )


class ChromaSettings(BaseSettings):
    """ChromaDB configuration."""

    model_config = SettingsConfigDict(env_prefix="CHROMA_")

    host: str = Field(
        default="localhost",
        description="ChromaDB host",
    )
    port: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="ChromaDB port",
    )
    persist_directory: str = Field(
        default="",
        description="Use a persistent local client rooted here (empty for HTTP)",
    )
    in_memory: bool = Field(
        default=False,
        description="Use in-memory ChromaDB",
    )
    distance: Literal["cosine", "l2", "ip"] = Field(
        default="cosine",
        description="HNSW distance function for new collections",
    )

    @property
    def url(self) -> str:
        """Get ChromaDB URL."""
        return f"http://{self.host}:{self.port}"


class ChunkingSettings(BaseSettings):
    """Text splitter configuration."""

    model_config = SettingsConfigDict(env_prefix="")

    chunk_size: int = Field(
        default=1024,
        ge=1,
        le=100000,
        description="Maximum chunk size",
    )
    chunk_overlap: int = Field(
        default=256,
        ge=0,
        le=10000,
        description="Overlap between consecutive chunks",
    )
    encoding_name: str = Field(
        default="cl100k_base",
        description="tiktoken encoding used by the token splitter",
    )

    @model_validator(mode="after")
    def validate_overlap_less_than_size(self) -> "ChunkingSettings":
        """Ensure overlap is less than chunk size."""
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be less than chunk_size")
        return self

    def as_options(self) -> "TextSplitterOptions":
        """Build the explicit options value handed to text splitters."""
        from knowledge.ingestion.textsplitter import TextSplitterOptions

        return TextSplitterOptions(
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
            encoding_name=self.encoding_name,
        )


class IngestionSettings(BaseSettings):
    """Ingestion orchestration configuration."""

    model_config = SettingsConfigDict(env_prefix="INGESTION_")

    transformer_error_policy: Literal["abort", "skip"] = Field(
        default="abort",
        description="What to do when a document transformer fails",
    )
    max_concurrency: int = Field(
        default=4,
        ge=1,
        le=256,
        description="Documents processed in parallel by ingest_many",
    )


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Log level",
    )
    log_format: Literal["json", "console"] = Field(
        default="json",
        description="Log format",
    )


class Settings(BaseSettings):
    """Main settings aggregating all configuration sections."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    chroma: ChromaSettings = Field(default_factory=ChromaSettings)
    chunking: ChunkingSettings = Field(default_factory=ChunkingSettings)
    ingestion: IngestionSettings = Field(default_factory=IngestionSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings.

    Note:
        Settings are cached after first load. Call `reload_settings()`
        to re-read the environment.
    """
    return Settings()


def reload_settings() -> Settings:
    """Reload settings from environment."""
    get_settings.cache_clear()
    return get_settings()
