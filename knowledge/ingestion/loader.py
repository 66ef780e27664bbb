"""
Document loaders.

A loader is an async callable taking a binary stream and returning
Documents. The pipeline asks an injected loader factory for the loader of
each file type; DocumentLoaderFactory is the default factory:

- PDF (.pdf, application/pdf): PyMuPDF, one document per non-empty page
- everything else: decoded as text (markdown keeps its raw syntax)
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, BinaryIO, Callable, List

import fitz  # PyMuPDF

from knowledge.core.types import Document
from knowledge.ingestion.defaults import normalize_filetype
from knowledge.utils.exceptions import DocumentLoadError
from knowledge.utils.logging import LoggerMixin

Loader = Callable[[BinaryIO], Awaitable[List[Document]]]
LoaderFactory = Callable[[str], Loader]

PDF_FILETYPES = frozenset({".pdf", "application/pdf"})
TEXT_ENCODINGS = ("utf-8", "cp1252", "latin-1")


class DocumentLoaderFactory(LoggerMixin):
    """
    Default loader factory.

    Example:
        >>> factory = DocumentLoaderFactory()
        >>> load = factory(".pdf")
        >>> with open("report.pdf", "rb") as f:
        ...     documents = await load(f)
    """

    def __call__(self, filetype: str) -> Loader:
        return self.get_loader(filetype)

    def get_loader(self, filetype: str) -> Loader:
        """Return the loader for a file extension or MIME type."""
        if normalize_filetype(filetype) in PDF_FILETYPES:
            return self.load_pdf
        return self.load_text

    async def load_text(self, reader: BinaryIO) -> List[Document]:
        """
        Load a text or markdown stream as a single document.

        Raises:
            DocumentLoadError: The stream looks binary.
        """
        data = await asyncio.to_thread(reader.read)
        if not data:
            return []

        if b"\x00" in data[:8192]:
            self.logger.error("binary_content_rejected", size=len(data))
            raise DocumentLoadError(
                "Stream contains binary data and cannot be loaded as text",
                details={"size": len(data)},
            )

        # latin-1 decodes any byte sequence, so this loop always succeeds
        for encoding in TEXT_ENCODINGS:
            try:
                text = data.decode(encoding)
                break
            except UnicodeDecodeError:
                continue

        self.logger.debug("text_decoded", encoding=encoding, content_length=len(text))
        return [Document(page_content=text, metadata={"encoding": encoding})]

    async def load_pdf(self, reader: BinaryIO) -> List[Document]:
        """
        Load a PDF stream with PyMuPDF, one document per non-empty page.

        Raises:
            DocumentLoadError: The stream is not a readable PDF.
        """
        data = await asyncio.to_thread(reader.read)
        try:
            return await asyncio.to_thread(self._parse_pdf, data)
        except Exception as e:
            self.logger.error("pdf_load_failed", error=str(e))
            raise DocumentLoadError("Failed to load PDF", cause=e) from e

    def _parse_pdf(self, data: bytes) -> List[Document]:
        documents = []
        with fitz.open(stream=data, filetype="pdf") as pdf:
            total_pages = len(pdf)
            for page_num in range(total_pages):
                text = pdf[page_num].get_text()
                if not text.strip():
                    self.logger.debug("skipping_empty_page", page=page_num + 1)
                    continue
                documents.append(
                    Document(
                        page_content=text,
                        metadata={"page": page_num + 1, "total_pages": total_pages},
                    )
                )

        self.logger.info("pdf_loaded", total_pages=total_pages, num_documents=len(documents))
        return documents
