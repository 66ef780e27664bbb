"""
Default splitter and transformer selection by file type.

Both functions are pure: each call builds fresh instances and there is no
module state to share between concurrent pipelines. Unknown file types fall
back to the generic splitter and no transformers, so selection never fails.
"""

from __future__ import annotations

from typing import List

from knowledge.ingestion.textsplitter import (
    MarkdownSplitter,
    TextSplitter,
    TextSplitterOptions,
    new_recursive_character_splitter,
)
from knowledge.ingestion.transformers import DocumentTransformer, FilterMarkdownDocsNoContent

MARKDOWN_FILETYPES = frozenset({".md", ".markdown", "text/markdown", "text/x-markdown"})


def normalize_filetype(filetype: str) -> str:
    """Lower-case a file type and drop MIME parameters (``; charset=...``)."""
    return filetype.split(";", 1)[0].strip().lower()


def is_markdown(filetype: str) -> bool:
    return normalize_filetype(filetype) in MARKDOWN_FILETYPES


def default_text_splitter(
    filetype: str,
    options: TextSplitterOptions | None = None,
) -> TextSplitter:
    """
    Select the text splitter for a file type.

    Args:
        filetype: File extension (".md") or MIME type ("text/markdown").
        options: Explicit splitter options; defaults apply when None.

    Returns:
        The markdown splitter for markdown types, the generic splitter otherwise.
    """
    options = options or TextSplitterOptions()
    if is_markdown(filetype):
        return MarkdownSplitter(options)
    return new_recursive_character_splitter(options)


def default_document_transformers(filetype: str) -> List[DocumentTransformer]:
    """
    Select the ordered transformer chain for a file type.

    Returns:
        [FilterMarkdownDocsNoContent()] for markdown types, [] otherwise.
    """
    if is_markdown(filetype):
        return [FilterMarkdownDocsNoContent()]
    return []
