"""
Text splitters for the ingestion pipeline.

This module provides the TextSplitter contract and its variants:
- "recursive_character": LangChain's RecursiveCharacterTextSplitter, for any text
- "markdown": splits on heading boundaries, then sizes sections with
  LangChain's MarkdownTextSplitter
- "token": LangChain's TokenTextSplitter on a tiktoken encoding

Every chunk inherits its parent's metadata plus chunk provenance
(document_id, chunk_index, total_chunks).
"""

from __future__ import annotations

import re
import uuid
from abc import ABC, abstractmethod
from typing import Callable, List

from langchain_text_splitters import (
    MarkdownTextSplitter,
    RecursiveCharacterTextSplitter,
    TokenTextSplitter,
)
from langchain_text_splitters import TextSplitter as LangChainSplitter
from pydantic import BaseModel, ConfigDict, Field, model_validator

from knowledge.core.types import (
    CHUNK_INDEX_KEY,
    DOCUMENT_ID_KEY,
    SOURCE_ID_KEY,
    TOTAL_CHUNKS_KEY,
    Document,
)
from knowledge.utils.exceptions import ChunkingError, InvalidConfigurationError
from knowledge.utils.logging import LoggerMixin

DEFAULT_SEPARATORS = [
    "\n\n",  # Paragraphs
    "\n",    # Lines
    ". ",    # Sentences
    "! ",    # Sentences
    "? ",    # Sentences
    "; ",    # Clauses
    ", ",    # Phrases
    " ",     # Words
    "",      # Characters
]


class TextSplitterOptions(BaseModel):
    """
    Explicit splitter configuration.

    Attributes:
        chunk_size: Maximum chunk size (characters, or tokens for "token").
        chunk_overlap: Overlap between consecutive chunks.
        encoding_name: tiktoken encoding used by the token splitter.
        max_heading_level: Deepest markdown heading that starts a new section.
    """

    model_config = ConfigDict(frozen=True)

    chunk_size: int = Field(default=1024, ge=1)
    chunk_overlap: int = Field(default=256, ge=0)
    encoding_name: str = "cl100k_base"
    max_heading_level: int = Field(default=6, ge=1, le=6)

    @model_validator(mode="after")
    def validate_overlap_less_than_size(self) -> "TextSplitterOptions":
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be less than "
                f"chunk_size ({self.chunk_size})"
            )
        return self


class TextSplitter(LoggerMixin, ABC):
    """
    Divides documents into ordered chunk documents.

    Subclasses implement split_text(); split_documents() handles metadata
    and chunk ids. Identical input and options always produce identical
    chunks in identical order.
    """

    def __init__(self, name: str) -> None:
        self.name = name

    @abstractmethod
    def split_text(self, text: str) -> List[str]:
        """Split raw text into chunk texts; empty text yields []."""

    def split_documents(self, documents: List[Document]) -> List[Document]:
        """
        Split a batch of documents.

        Args:
            documents: Documents produced by a loader.

        Returns:
            Chunk documents, grouped by parent in input order.

        Raises:
            ChunkingError: The underlying splitter failed.
        """
        chunks: List[Document] = []
        for document in documents:
            parent_id = self._parent_id(document)
            try:
                texts = self.split_text(document.page_content)
            except Exception as e:
                self.logger.error(
                    "split_failed",
                    splitter=self.name,
                    document_id=parent_id,
                    error=str(e),
                )
                raise ChunkingError(
                    f"Splitter '{self.name}' failed on document {parent_id}",
                    details={"splitter": self.name, "document_id": parent_id},
                    cause=e,
                ) from e

            for chunk_index, text in enumerate(texts):
                metadata = dict(document.metadata)
                metadata.update({
                    DOCUMENT_ID_KEY: parent_id,
                    CHUNK_INDEX_KEY: chunk_index,
                    TOTAL_CHUNKS_KEY: len(texts),
                })
                chunks.append(
                    Document(
                        id=f"{parent_id}-{chunk_index}",
                        page_content=text,
                        metadata=metadata,
                    )
                )

            self.logger.debug(
                "document_split",
                splitter=self.name,
                document_id=parent_id,
                num_chunks=len(texts),
            )

        return chunks

    @staticmethod
    def _parent_id(document: Document) -> str:
        if document.id:
            return document.id
        source_id = document.metadata.get(SOURCE_ID_KEY)
        if source_id:
            return str(source_id)
        return str(uuid.uuid5(uuid.NAMESPACE_OID, document.page_content))


class LangChainTextSplitter(TextSplitter):
    """
    Adapter exposing any LangChain text splitter under a name.

    Example:
        >>> splitter = LangChainTextSplitter("sentences", RecursiveCharacterTextSplitter(chunk_size=200))
        >>> splitter.split_text("short text")
        ['short text']
    """

    def __init__(self, name: str, splitter: LangChainSplitter) -> None:
        super().__init__(name)
        self.splitter = splitter

    def split_text(self, text: str) -> List[str]:
        if not text.strip():
            return []
        return self.splitter.split_text(text)


_HEADING_RE = re.compile(r"^ {0,3}(#{1,6})(?:[ \t]+|$)")
_FENCE_RE = re.compile(r"^ {0,3}(`{3,}|~{3,})")


class MarkdownSplitter(TextSplitter):
    """
    Markdown-aware splitter.

    Each ATX heading (up to max_heading_level) outside fenced code blocks
    starts a new section; the heading stays with its body. Sections larger
    than chunk_size are split further with LangChain's MarkdownTextSplitter.

    Example:
        >>> MarkdownSplitter().split_text("# A\\n\\n# B\\n\\nBody")
        ['# A', '# B\\n\\nBody']
    """

    def __init__(self, options: TextSplitterOptions | None = None) -> None:
        super().__init__("markdown")
        self.options = options or TextSplitterOptions()
        self.splitter = MarkdownTextSplitter(
            chunk_size=self.options.chunk_size,
            chunk_overlap=self.options.chunk_overlap,
        )

    def split_text(self, text: str) -> List[str]:
        chunks: List[str] = []
        for section in self.sections(text):
            chunks.extend(self.splitter.split_text(section))
        return chunks

    def sections(self, text: str) -> List[str]:
        """Split markdown text on heading boundaries, ignoring fenced code."""
        sections: List[str] = []
        current: List[str] = []
        fence: str | None = None

        for line in text.splitlines():
            fence_match = _FENCE_RE.match(line)
            if fence_match:
                marker = fence_match.group(1)
                if fence is None:
                    fence = marker
                elif marker[0] == fence[0] and len(marker) >= len(fence):
                    fence = None
            elif fence is None:
                heading = _HEADING_RE.match(line)
                if heading and len(heading.group(1)) <= self.options.max_heading_level:
                    self._flush(current, sections)
                    current = []
            current.append(line)

        self._flush(current, sections)
        return sections

    @staticmethod
    def _flush(lines: List[str], sections: List[str]) -> None:
        section = "\n".join(lines).strip()
        if section:
            sections.append(section)


def new_recursive_character_splitter(options: TextSplitterOptions | None = None) -> TextSplitter:
    """Generic splitter working on any text."""
    options = options or TextSplitterOptions()
    return LangChainTextSplitter(
        "recursive_character",
        RecursiveCharacterTextSplitter(
            chunk_size=options.chunk_size,
            chunk_overlap=options.chunk_overlap,
            separators=DEFAULT_SEPARATORS,
            length_function=len,
            is_separator_regex=False,
        ),
    )


def new_token_splitter(options: TextSplitterOptions | None = None) -> TextSplitter:
    """Splitter counting tiktoken tokens instead of characters."""
    options = options or TextSplitterOptions()
    return LangChainTextSplitter(
        "token",
        TokenTextSplitter(
            encoding_name=options.encoding_name,
            chunk_size=options.chunk_size,
            chunk_overlap=options.chunk_overlap,
        ),
    )


TEXT_SPLITTERS: dict[str, Callable[[TextSplitterOptions | None], TextSplitter]] = {
    "recursive_character": new_recursive_character_splitter,
    "markdown": MarkdownSplitter,
    "token": new_token_splitter,
}


def get_text_splitter(name: str, options: TextSplitterOptions | None = None) -> TextSplitter:
    """
    Build a text splitter by name.

    Raises:
        InvalidConfigurationError: The name is not a registered splitter.
    """
    factory = TEXT_SPLITTERS.get(name)
    if factory is None:
        raise InvalidConfigurationError(
            f"Unknown text splitter: {name}. "
            f"Available: {', '.join(sorted(TEXT_SPLITTERS))}",
            details={"text_splitter": name},
        )
    return factory(options)
