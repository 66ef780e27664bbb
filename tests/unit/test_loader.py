"""
Tests for document loaders.

Uses pytest for unit tests; PDF fixtures are generated with PyMuPDF.
"""

import io

import fitz
import pytest

from knowledge.ingestion.loader import DocumentLoaderFactory
from knowledge.utils.exceptions import DocumentLoadError


@pytest.fixture
def factory() -> DocumentLoaderFactory:
    return DocumentLoaderFactory()


@pytest.fixture
def pdf_bytes() -> bytes:
    """A three page PDF whose middle page is blank."""
    pdf = fitz.open()
    pdf.new_page().insert_text((72, 72), "First page text")
    pdf.new_page()
    pdf.new_page().insert_text((72, 72), "Third page text")
    data = pdf.tobytes()
    pdf.close()
    return data


class TestLoaderSelection:
    """Tests for loader selection by file type."""

    @pytest.mark.parametrize("filetype", [".pdf", ".PDF", "application/pdf"])
    def test_pdf_types(self, factory: DocumentLoaderFactory, filetype: str) -> None:
        assert factory.get_loader(filetype) == factory.load_pdf

    @pytest.mark.parametrize("filetype", [".md", ".txt", "text/plain", "", "application/x-unknown"])
    def test_other_types_load_as_text(self, factory: DocumentLoaderFactory, filetype: str) -> None:
        assert factory(filetype) == factory.load_text


class TestTextLoader:
    """Tests for load_text."""

    @pytest.mark.asyncio
    async def test_loads_utf8(self, factory: DocumentLoaderFactory) -> None:
        docs = await factory.load_text(io.BytesIO("# Título\n\nCafé".encode("utf-8")))

        assert len(docs) == 1
        assert docs[0].page_content == "# Título\n\nCafé"
        assert docs[0].metadata == {"encoding": "utf-8"}

    @pytest.mark.asyncio
    async def test_falls_back_to_legacy_encoding(self, factory: DocumentLoaderFactory) -> None:
        docs = await factory.load_text(io.BytesIO("naïve résumé".encode("cp1252")))

        assert docs[0].page_content == "naïve résumé"
        assert docs[0].metadata["encoding"] == "cp1252"

    @pytest.mark.asyncio
    async def test_empty_stream(self, factory: DocumentLoaderFactory) -> None:
        assert await factory.load_text(io.BytesIO(b"")) == []

    @pytest.mark.asyncio
    async def test_rejects_binary(self, factory: DocumentLoaderFactory) -> None:
        with pytest.raises(DocumentLoadError, match="binary data"):
            await factory.load_text(io.BytesIO(b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR"))


class TestPDFLoader:
    """Tests for load_pdf."""

    @pytest.mark.asyncio
    async def test_one_document_per_non_empty_page(
        self,
        factory: DocumentLoaderFactory,
        pdf_bytes: bytes,
    ) -> None:
        docs = await factory.load_pdf(io.BytesIO(pdf_bytes))

        assert len(docs) == 2
        assert "First page text" in docs[0].page_content
        assert "Third page text" in docs[1].page_content
        assert docs[0].metadata == {"page": 1, "total_pages": 3}
        assert docs[1].metadata == {"page": 3, "total_pages": 3}

    @pytest.mark.asyncio
    async def test_invalid_pdf(self, factory: DocumentLoaderFactory) -> None:
        with pytest.raises(DocumentLoadError, match="Failed to load PDF") as exc_info:
            await factory.load_pdf(io.BytesIO(b"this is not a pdf"))

        assert exc_info.value.cause is not None
