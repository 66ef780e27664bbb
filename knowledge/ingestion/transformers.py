"""
Document transformers.

A transformer maps a batch of documents to a (possibly smaller) batch,
keeping the relative order of the survivors. Transformers chain: the output
of one is the input of the next.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Any, Callable, List

from knowledge.core.types import Document
from knowledge.utils.exceptions import InvalidConfigurationError, TransformationError
from knowledge.utils.logging import LoggerMixin

TransformationFunc = Callable[[List[Document]], List[Document]]


class DocumentTransformer(LoggerMixin, ABC):
    """Base class for document transformers."""

    name: str = "transformer"

    @abstractmethod
    def transform(self, documents: List[Document]) -> List[Document]:
        """
        Transform a batch of documents.

        Raises:
            TransformationError: The batch could not be transformed.
        """


class GenericTransformer(DocumentTransformer):
    """
    Wrap any function over a document batch as a transformer.

    Exceptions raised by the function are reported as TransformationError.

    Example:
        >>> upper = GenericTransformer(
        ...     lambda docs: [d.model_copy(update={"page_content": d.page_content.upper()}) for d in docs],
        ...     name="uppercase",
        ... )
    """

    def __init__(self, func: TransformationFunc, name: str = "generic") -> None:
        self.func = func
        self.name = name

    def transform(self, documents: List[Document]) -> List[Document]:
        try:
            return list(self.func(documents))
        except TransformationError:
            raise
        except Exception as e:
            raise TransformationError(
                f"Transformer '{self.name}' failed",
                details={"transformer": self.name, "batch_size": len(documents)},
                cause=e,
            ) from e


_HEADING_LINE_RE = re.compile(r"^ {0,3}#{1,6}(?:[ \t].*)?$")
_THEMATIC_BREAK_RE = re.compile(r"^ {0,3}([-*_])(?:[ \t]*\1){2,}[ \t]*$")


def has_markdown_content(text: str) -> bool:
    """Return True if text holds anything besides headings, rules and blank lines."""
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        if _HEADING_LINE_RE.match(line) or _THEMATIC_BREAK_RE.match(line):
            continue
        return True
    return False


class FilterMarkdownDocsNoContent(DocumentTransformer):
    """
    Drop markdown documents that contain only structure.

    A lone heading, or headings separated by blank lines and thematic
    breaks, carries nothing worth embedding.
    """

    name = "filter_markdown_docs_no_content"

    def transform(self, documents: List[Document]) -> List[Document]:
        kept = [doc for doc in documents if has_markdown_content(doc.page_content)]

        if len(kept) != len(documents):
            self.logger.debug(
                "markdown_documents_filtered",
                removed=len(documents) - len(kept),
                kept=len(kept),
            )
        return kept


class ExtraMetadata(DocumentTransformer):
    """Merge a fixed mapping into every document's metadata."""

    name = "extra_metadata"

    def __init__(self, metadata: dict[str, Any]) -> None:
        self.metadata = dict(metadata)

    def transform(self, documents: List[Document]) -> List[Document]:
        for doc in documents:
            doc.metadata.update(self.metadata)
        return documents


DOCUMENT_TRANSFORMERS: dict[str, Callable[..., DocumentTransformer]] = {
    FilterMarkdownDocsNoContent.name: FilterMarkdownDocsNoContent,
    ExtraMetadata.name: ExtraMetadata,
}


def get_document_transformer(name: str, **kwargs: Any) -> DocumentTransformer:
    """
    Build a transformer by name.

    Raises:
        InvalidConfigurationError: Unknown name or bad arguments.
    """
    factory = DOCUMENT_TRANSFORMERS.get(name)
    if factory is None:
        raise InvalidConfigurationError(
            f"Unknown document transformer: {name}. "
            f"Available: {', '.join(sorted(DOCUMENT_TRANSFORMERS))}",
            details={"transformer": name},
        )
    try:
        return factory(**kwargs)
    except TypeError as e:
        raise InvalidConfigurationError(
            f"Invalid arguments for transformer '{name}'",
            details={"transformer": name, "arguments": sorted(kwargs)},
            cause=e,
        ) from e
