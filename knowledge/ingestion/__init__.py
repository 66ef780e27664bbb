"""
Ingestion module for the knowledge core.

This module provides document ingestion functionality including:
- Loading documents from byte streams (PDF, text, markdown)
- Text splitting with per-file-type defaults
- Document transformers (filters, metadata enrichment)
- Complete ingestion pipeline orchestration
"""

from knowledge.ingestion.defaults import (
    default_document_transformers,
    default_text_splitter,
    is_markdown,
)
from knowledge.ingestion.loader import DocumentLoaderFactory, Loader, LoaderFactory
from knowledge.ingestion.pipeline import (
    IngestionPipeline,
    IngestionRequest,
    IngestionResult,
    Stage,
    TransformerErrorPolicy,
)
from knowledge.ingestion.textsplitter import (
    LangChainTextSplitter,
    MarkdownSplitter,
    TextSplitter,
    TextSplitterOptions,
    get_text_splitter,
)
from knowledge.ingestion.transformers import (
    DocumentTransformer,
    ExtraMetadata,
    FilterMarkdownDocsNoContent,
    GenericTransformer,
    get_document_transformer,
)

__all__ = [
    "default_document_transformers",
    "default_text_splitter",
    "is_markdown",
    "DocumentLoaderFactory",
    "Loader",
    "LoaderFactory",
    "IngestionPipeline",
    "IngestionRequest",
    "IngestionResult",
    "Stage",
    "TransformerErrorPolicy",
    "LangChainTextSplitter",
    "MarkdownSplitter",
    "TextSplitter",
    "TextSplitterOptions",
    "get_text_splitter",
    "DocumentTransformer",
    "ExtraMetadata",
    "FilterMarkdownDocsNoContent",
    "GenericTransformer",
    "get_document_transformer",
]
