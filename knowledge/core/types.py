"""
Data model shared by every pipeline stage.

Document extends LangChain's Document with an optional embedding vector so
the same object can flow from loader to store. Dataset, DatasetGetOpts and
WhereDocument describe what the Store exposes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable

from langchain_core.documents import Document as LangChainDocument

from knowledge.utils.exceptions import InvalidQueryError

# Metadata keys carrying provenance through the pipeline
SOURCE_ID_KEY = "source_id"
DATASET_ID_KEY = "dataset_id"
DOCUMENT_ID_KEY = "document_id"
CHUNK_INDEX_KEY = "chunk_index"
TOTAL_CHUNKS_KEY = "total_chunks"
FILETYPE_KEY = "filetype"
SIMILARITY_KEY = "similarity"

EmbeddingFunc = Callable[[list[str]], Awaitable[list[list[float]]]]
"""Async function mapping a batch of texts to one vector per text."""


class Document(LangChainDocument):
    """
    A unit of content plus metadata, optionally carrying its embedding.

    Example:
        >>> doc = Document(id="readme", page_content="# Title", metadata={"source_id": "readme"})
        >>> doc.embedding is None
        True
    """

    embedding: list[float] | None = None

    @classmethod
    def from_langchain(cls, document: LangChainDocument) -> "Document":
        """Wrap a plain LangChain document, copying its metadata."""
        return cls(
            id=document.id,
            page_content=document.page_content,
            metadata=dict(document.metadata),
        )


@dataclass
class DatasetGetOpts:
    """Detail and pagination options for Store.get_dataset."""

    include_documents: bool = False
    limit: int | None = None
    offset: int | None = None


@dataclass
class Dataset:
    """A named, persisted collection of documents."""

    id: str
    metadata: dict[str, Any] = field(default_factory=dict)
    document_count: int = 0
    documents: list[Document] = field(default_factory=list)


class WhereDocumentOperator(str, Enum):
    """Operators accepted in a document-content filter."""

    CONTAINS = "$contains"
    NOT_CONTAINS = "$not_contains"
    AND = "$and"
    OR = "$or"


@dataclass
class WhereDocument:
    """
    Predicate on document content.

    Leaf predicates use CONTAINS/NOT_CONTAINS with a value; AND/OR combine
    nested predicates.

    Example:
        >>> WhereDocument(WhereDocumentOperator.CONTAINS, "python").to_chroma()
        {'$contains': 'python'}
    """

    operator: WhereDocumentOperator
    value: str = ""
    where_documents: list["WhereDocument"] = field(default_factory=list)

    def __post_init__(self) -> None:
        try:
            self.operator = WhereDocumentOperator(self.operator)
        except ValueError as e:
            raise InvalidQueryError(
                f"Unknown where_document operator: {self.operator}",
                details={"operator": str(self.operator)},
                cause=e,
            ) from e

        if self.operator in (WhereDocumentOperator.AND, WhereDocumentOperator.OR):
            if not self.where_documents:
                raise InvalidQueryError(
                    f"{self.operator.value} requires nested predicates",
                    details={"operator": self.operator.value},
                )
        elif not self.value:
            raise InvalidQueryError(
                f"{self.operator.value} requires a value",
                details={"operator": self.operator.value},
            )

    def to_chroma(self) -> dict[str, Any]:
        """Translate to ChromaDB ``where_document`` syntax."""
        if self.operator in (WhereDocumentOperator.AND, WhereDocumentOperator.OR):
            return {self.operator.value: [w.to_chroma() for w in self.where_documents]}
        return {self.operator.value: self.value}
