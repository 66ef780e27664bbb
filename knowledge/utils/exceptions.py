"""
Custom exception hierarchy for the knowledge ingestion and retrieval core.

This module defines the exception taxonomy used by every stage of the
pipeline: configuration, loading, splitting, transformation, embedding and
storage. Pipeline failures are wrapped in PipelineStageError so callers know
which document failed and at which stage.
"""

from typing import Any, Dict, Optional


class KnowledgeError(Exception):
    """
    Base exception for all knowledge core errors.

    All custom exceptions in the package inherit from this base class,
    so callers can catch every knowledge-related failure at once.

    Attributes:
        message: Human-readable error message
        details: Optional dictionary with additional error context
        cause: Optional underlying exception that caused this error
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        """
        Initialize knowledge exception.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional error context
            cause: Optional underlying exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        """Return string representation of the exception."""
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message

    def __repr__(self) -> str:
        """Return detailed string representation for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"cause={self.cause!r})"
        )


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(KnowledgeError):
    """
    Error in system or provider configuration.

    Raised when configuration is invalid, missing, or inconsistent.
    """
    pass


class MissingConfigurationError(ConfigurationError):
    """
    Required configuration value is missing.

    Raised when a provider requires a setting (API key, model name) that
    was not supplied.
    """
    pass


class InvalidConfigurationError(ConfigurationError):
    """
    Configuration value is invalid.

    Raised when a configuration parameter has an invalid value, including
    unknown provider, splitter or transformer names.
    """
    pass


class ProviderNotConfiguredError(ConfigurationError):
    """
    Embedding provider used before a successful configure() call.
    """
    pass


# =============================================================================
# Document Ingestion Errors
# =============================================================================

class DocumentIngestionError(KnowledgeError):
    """
    Error during document ingestion process.

    Raised when there are issues loading, splitting, or transforming
    documents during the ingestion pipeline.
    """
    pass


class DocumentLoadError(DocumentIngestionError):
    """
    Error loading a document from a byte stream.

    Raised when a document cannot be decoded or parsed, or when no loader
    exists for its file type.
    """
    pass


class ChunkingError(DocumentIngestionError):
    """
    Error during text splitting.

    Raised when document text cannot be properly split into chunks.
    """
    pass


class TransformationError(DocumentIngestionError):
    """
    Error raised by a document transformer.

    Raised when a transformer fails on malformed content.
    """
    pass


class PipelineStageError(DocumentIngestionError):
    """
    A pipeline stage failed for one document.

    Carries the document id and the stage name so the caller can retry
    or skip the document.

    Attributes:
        document_id: Identifier of the document being processed
        stage: Name of the failing stage (load, split, transform, embed, store)
    """

    def __init__(
        self,
        message: str,
        document_id: str,
        stage: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        merged = {"document_id": document_id, "stage": stage}
        merged.update(details or {})
        super().__init__(message, details=merged, cause=cause)
        self.document_id = document_id
        self.stage = stage


# =============================================================================
# Embedding Errors
# =============================================================================

class EmbeddingError(KnowledgeError):
    """
    Error with embedding generation.

    Raised for issues with creating embeddings from text.
    """
    pass


class EmbeddingConnectionError(EmbeddingError):
    """
    Error connecting to embedding service.

    Raised when unable to reach the embedding backend.
    """
    pass


class EmbeddingGenerationError(EmbeddingError):
    """
    Error during embedding generation.

    Raised when the backend returns a number of vectors that does not
    match the number of input texts.
    """
    pass


# =============================================================================
# Store Errors
# =============================================================================

class StoreError(KnowledgeError):
    """
    Error with vector store operations.

    Raised for issues with vector database operations like connection,
    storage, or retrieval.
    """
    pass


class StoreConnectionError(StoreError):
    """
    Error connecting to the vector store backend.
    """
    pass


class DatasetNotFoundError(StoreError):
    """
    Requested dataset (collection) does not exist in the store.
    """
    pass


class StoreWriteError(StoreError):
    """
    Error storing documents in the vector store.
    """
    pass


class StoreQueryError(StoreError):
    """
    Error querying documents from the vector store.
    """
    pass


class InvalidQueryError(StoreError):
    """
    Query parameters are invalid.

    Raised before any backend call, e.g. when k <= 0.
    """
    pass


__all__ = [
    # Base exception
    "KnowledgeError",
    # Configuration
    "ConfigurationError",
    "MissingConfigurationError",
    "InvalidConfigurationError",
    "ProviderNotConfiguredError",
    # Document ingestion
    "DocumentIngestionError",
    "DocumentLoadError",
    "ChunkingError",
    "TransformationError",
    "PipelineStageError",
    # Embeddings
    "EmbeddingError",
    "EmbeddingConnectionError",
    "EmbeddingGenerationError",
    # Store
    "StoreError",
    "StoreConnectionError",
    "DatasetNotFoundError",
    "StoreWriteError",
    "StoreQueryError",
    "InvalidQueryError",
]
